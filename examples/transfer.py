# Copyright © Aptos Foundation
# SPDX-License-Identifier: Apache-2.0

"""
Transfer KOII from the payer wallet to a freshly generated K2 wallet.

Usage::

    KOII_WALLET_PATH=./id.json python -m examples.transfer
"""

import asyncio

from koii_sdk.keypair import Keypair
from koii_sdk.solana import K2Tool

from .common import KOII_RPC_URL, KOII_WALLET_PATH


async def main():
    payer = Keypair.load(KOII_WALLET_PATH)
    # :!:>section_1
    alice = K2Tool({"address": payer.public_key, "key": payer.private_key_string()}, KOII_RPC_URL)
    bob = K2Tool(provider=KOII_RPC_URL)
    await bob.generate_wallet()  # <:!:section_1

    print("\n=== Addresses ===")
    print(f"Alice: {alice.address}")
    print(f"Bob: {bob.address}")

    print("\n=== Initial Balances ===")
    [alice_balance, bob_balance] = await asyncio.gather(alice.get_balance(), bob.get_balance())
    print(f"Alice: {alice_balance}")
    print(f"Bob: {bob_balance}")

    # :!:>section_2
    signature = await alice.transfer(bob.address, 0.001)  # <:!:section_2
    print(f"\nTransfer signature: {signature}")

    print("\n=== Final Balances ===")
    [alice_balance, bob_balance] = await asyncio.gather(alice.get_balance(), bob.get_balance())
    print(f"Alice: {alice_balance}")
    print(f"Bob: {bob_balance}")

    await asyncio.gather(alice.close(), bob.close())


if __name__ == "__main__":
    asyncio.run(main())
