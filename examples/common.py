# Copyright © Aptos Foundation
# SPDX-License-Identifier: Apache-2.0

"""
Shared configuration for the example scripts.

Environment Variables:
    KOII_RPC_URL: K2 RPC endpoint or cluster name (default: testnet)
    SOLANA_RPC_URL: Solana cluster name (default: devnet)
    ETHEREUM_RPC_URL: Ethereum JSON-RPC endpoint (default: Infura sepolia)
    ARWEAVE_GATEWAY_URL: Arweave gateway (default: https://arweave.net)
    KOII_WALLET_PATH: JSON keypair file used to pay for task transactions
"""

import os
import os.path

# :!:>section_1
KOII_RPC_URL = os.getenv("KOII_RPC_URL", "testnet")

SOLANA_RPC_URL = os.getenv("SOLANA_RPC_URL", "devnet")

ETHEREUM_RPC_URL = os.getenv(
    "ETHEREUM_RPC_URL",
    "https://sepolia.infura.io/v3/f811f2257c4a4cceba5ab9044a1f03d2",
)

ARWEAVE_GATEWAY_URL = os.getenv("ARWEAVE_GATEWAY_URL", "https://arweave.net")

KOII_WALLET_PATH = os.getenv(
    "KOII_WALLET_PATH",
    os.path.expanduser("~/.config/koii/id.json"),
)
# <:!:section_1
