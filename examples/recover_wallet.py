# Copyright © Aptos Foundation
# SPDX-License-Identifier: Apache-2.0

"""
Recover the K2, Solana and Ethereum accounts behind a seed phrase.

Usage::

    python -m examples.recover_wallet "neglect trigger better derive ..."

Without an argument a fresh phrase is generated, which resolves to the
default derivation path since nothing is funded yet.
"""

import asyncio
import sys

from koii_sdk.wallet import ChainVariant, ImportMethod, wallet_tool

from .common import ETHEREUM_RPC_URL, KOII_RPC_URL, SOLANA_RPC_URL


async def main(phrase: str = ""):
    # :!:>section_1
    k2 = wallet_tool(ChainVariant.K2, provider=KOII_RPC_URL)
    solana = wallet_tool(ChainVariant.SOLANA, provider=SOLANA_RPC_URL)
    ethereum = wallet_tool(ChainVariant.ETHEREUM, provider=ETHEREUM_RPC_URL)  # <:!:section_1

    if not phrase:
        phrase = await k2.generate_wallet()
        print(f"Generated phrase: {phrase}")

    # :!:>section_2
    k2_wallet = await k2.import_wallet(phrase, ImportMethod.SEEDPHRASE)
    solana_wallet = await solana.import_wallet(phrase, ImportMethod.SEEDPHRASE)
    ethereum_wallet = await ethereum.import_wallet(phrase, ImportMethod.SEEDPHRASE)
    # <:!:section_2

    print("\n=== K2 ===")
    print(f"Network: {k2.get_current_network()}")
    print(f"Address: {k2_wallet.address}")
    print(f"Balance: {await k2.get_balance()}")

    print("\n=== Solana ===")
    print(f"Network: {solana.get_current_network()}")
    print(f"Address: {solana_wallet.address}")
    print(f"Balance: {await solana.get_balance()}")

    print("\n=== Ethereum ===")
    print(f"Network: {ethereum.get_current_network()}")
    print(f"Address: {ethereum_wallet.address}")
    print(f"Balance: {await ethereum.get_balance()}")

    await asyncio.gather(k2.close(), solana.close(), ethereum.close())


if __name__ == "__main__":
    asyncio.run(main(" ".join(sys.argv[1:])))
