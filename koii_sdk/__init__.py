# Copyright © Aptos Foundation
# SPDX-License-Identifier: Apache-2.0

"""
Koii Python SDK - wallet and task program tooling for the Koii network.

The SDK recovers and manages wallets on K2 (Koii's Solana-derived chain),
Solana, Ethereum and Arweave, and builds transactions for the Koii task
program on K2. Network access is asynchronous and built on httpx.

Core Features:
- **Wallet Recovery**: Find the funded account behind a BIP-39 seed phrase
  by probing a default and a list of fallback derivation paths
- **Wallet Tools**: Import, generate, fund and sign with a wallet through one
  interface per chain
- **Task Program**: Encode the task program's instructions and submit
  create/update/fund/claim/withdraw transactions

Quick Start:
    Recovering a K2 wallet::

        import asyncio
        from koii_sdk.wallet import ChainVariant, ImportMethod, wallet_tool

        async def main():
            tool = wallet_tool(ChainVariant.K2, provider="testnet")
            wallet = await tool.import_wallet(phrase, ImportMethod.SEEDPHRASE)
            print(wallet.address, await tool.get_balance())
            await tool.close()

        asyncio.run(main())

    Creating a task::

        from koii_sdk.async_client import RpcClient
        from koii_sdk.keypair import Keypair
        from koii_sdk.tasks import TaskProgramClient

        client = TaskProgramClient(RpcClient("https://testnet.koii.live"))
        payer = Keypair.load("./id.json")
        await client.establish_payer(payer)
        created = await client.create_task(payer, ...)

Module Organization:
    - **hd**: Mnemonics, seeds and SLIP-0010 Ed25519 derivation
    - **recovery**: Funded keypair search across derivation paths
    - **keypair**: Ed25519 keypairs in the Solana/K2 encodings
    - **buffer_layout** / **instructions**: Task program instruction codec
    - **tasks**: Task program client
    - **async_client**: JSON-RPC and Arweave gateway clients
    - **solana** / **ethereum** / **arweave**: Per-chain wallet tools
    - **wallet**: Chain-independent wallet interface and factory
    - **networks** / **address**: Endpoint and address helpers
    - **errors**: Exception hierarchy
"""
