# Copyright © Aptos Foundation
# SPDX-License-Identifier: Apache-2.0

"""
The chain-independent wallet interface.

Each supported chain is a :class:`ChainVariant`; a concrete tool implements
:class:`WalletTool` for it. Callers that only need to import a wallet, read a
balance and move funds can stay oblivious to the chain:

Examples:
    ::

        from koii_sdk.wallet import ChainVariant, ImportMethod, wallet_tool

        tool = wallet_tool(ChainVariant.K2, provider="testnet")
        wallet = await tool.import_wallet(phrase, ImportMethod.SEEDPHRASE)
        print(wallet.address, await tool.get_balance())
        await tool.close()
"""

from __future__ import annotations

import unittest
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Union

from typing_extensions import Protocol


class ChainVariant(Enum):
    """Chains a wallet tool can be built for."""

    ARWEAVE = "arweave"
    SOLANA = "solana"
    K2 = "k2"
    ETHEREUM = "ethereum"


class ImportMethod(Enum):
    """How the secret handed to ``import_wallet`` is encoded.

    Attributes:
        SEEDPHRASE: A BIP-39 mnemonic.
        KEY: The chain's native private key encoding (base58 secret key for
            Solana/K2, hex for Ethereum, a JWK for Arweave).
    """

    SEEDPHRASE = "seedphrase"
    KEY = "key"


@dataclass(frozen=True)
class Wallet:
    """Address and serialized private key of an imported wallet."""

    address: str
    private_key: str


class WalletTool(Protocol):
    """Operations every chain variant supports."""

    async def import_wallet(
        self, key: Any, method: Union[ImportMethod, str]
    ) -> Wallet:
        """Replace the current wallet with the one described by ``key``."""
        ...

    async def generate_wallet(self) -> Optional[str]:
        """Create and load a new wallet.

        Returns the mnemonic when the variant is mnemonic based, ``None``
        otherwise.
        """
        ...

    async def get_balance(self) -> int:
        """Balance of the loaded wallet in the chain's smallest unit."""
        ...

    async def transfer(self, recipient: str, amount: Any) -> str:
        """Send ``amount`` to ``recipient`` and return the transaction id."""
        ...

    def get_current_network(self) -> str:
        ...

    async def close(self):
        ...


def wallet_tool(
    variant: Union[ChainVariant, str],
    provider: Optional[str] = None,
    credentials: Optional[Dict[str, Any]] = None,
) -> WalletTool:
    """Build the wallet tool for ``variant``.

    Args:
        variant: Chain tag, as a :class:`ChainVariant` or its string value.
        provider: Cluster name, RPC URL or gateway URL. Each variant has its
            own default.
        credentials: Previously exported wallet to restore.
    """
    from .arweave import ArweaveTool
    from .ethereum import EthereumTool
    from .solana import K2Tool, SolanaTool

    variant = ChainVariant(variant)
    if variant is ChainVariant.SOLANA:
        return SolanaTool(credentials, provider)
    if variant is ChainVariant.K2:
        return K2Tool(credentials, provider)
    if variant is ChainVariant.ETHEREUM:
        return EthereumTool(provider, credentials)
    return ArweaveTool(provider, credentials)


class Test(unittest.IsolatedAsyncioTestCase):
    async def test_factory(self):
        from .arweave import ArweaveTool
        from .ethereum import EthereumTool
        from .solana import K2Tool, SolanaTool

        expected = {
            ChainVariant.SOLANA: SolanaTool,
            ChainVariant.K2: K2Tool,
            ChainVariant.ETHEREUM: EthereumTool,
            ChainVariant.ARWEAVE: ArweaveTool,
        }
        for variant, cls in expected.items():
            tool = wallet_tool(variant.value)
            self.assertIs(type(tool), cls)
            await tool.close()

    async def test_providers(self):
        tool = wallet_tool(ChainVariant.K2, provider="devnet")
        self.assertEqual(tool.get_current_network(), "devnet")
        await tool.close()

        tool = wallet_tool(ChainVariant.SOLANA)
        self.assertEqual(tool.get_current_network(), "testnet")
        await tool.close()

    def test_unknown_variant(self):
        with self.assertRaises(ValueError):
            wallet_tool("bitcoin")

    def test_import_method_values(self):
        self.assertIs(ImportMethod("seedphrase"), ImportMethod.SEEDPHRASE)
        self.assertIs(ImportMethod("key"), ImportMethod.KEY)


if __name__ == "__main__":
    unittest.main()
