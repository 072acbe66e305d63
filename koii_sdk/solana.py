# Copyright © Aptos Foundation
# SPDX-License-Identifier: Apache-2.0

"""
Wallet tools for Solana and the Koii K2 chain.

K2 is a Solana fork, so both tools share one implementation. They differ
only in configuration:

================  ======================  =========================  =====================
Tool              Default path            Fallback paths             Recovery balances
================  ======================  =========================  =====================
``SolanaTool``    ``m/44'/501'/0'/0'``    40 Solana/Solflare paths   mainnet-beta
``K2Tool``        ``m/44'/501'/0'``       the Koii CLI raw seed      the tool's cluster
================  ======================  =========================  =====================

Seed phrase imports go through :func:`koii_sdk.recovery.recover_keypair`, so a
phrase that was used with another wallet resolves to the account that
actually holds funds.

Examples:
    ::

        from koii_sdk.solana import K2Tool

        tool = K2Tool(provider="testnet")
        wallet = await tool.import_wallet(phrase, "seedphrase")
        signature = await tool.transfer(recipient, 1.5)  # 1.5 KOII
        await tool.close()
"""

from __future__ import annotations

import unittest
import unittest.mock
from decimal import Decimal
from typing import Callable, Dict, List, Optional, Union

import base58
from solders.system_program import TransferParams, decode_transfer, transfer

from .address import solana_public_key
from .async_client import ClientConfig, RpcClient
from .errors import UninitializedProviderError
from .hd import (
    K2_DEFAULT_DERIVATION_PATH,
    SOLANA_DEFAULT_DERIVATION_PATH,
    DerivationPath,
    generate_mnemonic,
    k2_derivation_paths,
    mnemonic_to_seed,
    solana_derivation_paths,
)
from .keypair import Keypair, verify_signature
from .networks import cluster_api_url, k2_cluster_api_url
from .recovery import RecoveredKeypair, recover_keypair
from .wallet import ImportMethod, Wallet

LAMPORTS_PER_SOL = 1_000_000_000


def to_lamports(amount: Union[int, float, str, Decimal]) -> int:
    """Convert a SOL/KOII amount into lamports.

    :raises ValueError: for negative amounts or amounts finer than one lamport
    """
    lamports = Decimal(str(amount)) * LAMPORTS_PER_SOL
    if lamports < 0 or lamports != lamports.to_integral_value():
        raise ValueError(f"Cannot transfer {amount}: not a whole number of lamports")
    return int(lamports)


def _as_bytes(data: Union[bytes, str]) -> bytes:
    return data.encode("utf-8") if isinstance(data, str) else data


class SolanaTool:
    """Solana wallet tool.

    Attributes:
        keypair: The loaded keypair, ``None`` until a wallet is imported.
        provider: Cluster name or RPC URL the tool was built for.
        connection: RPC client for ``provider``.
    """

    default_provider = "testnet"
    default_derivation_path = SOLANA_DEFAULT_DERIVATION_PATH
    fallback_derivation_paths: Callable[[], List[DerivationPath]] = staticmethod(
        solana_derivation_paths
    )
    resolve_endpoint: Callable[[Optional[str]], str] = staticmethod(cluster_api_url)
    # Cluster whose balances decide seed phrase recovery. None means the
    # tool's own connection.
    recovery_cluster: Optional[str] = "mainnet-beta"

    keypair: Optional[Keypair]
    provider: str
    connection: RpcClient
    client_config: ClientConfig

    def __init__(
        self,
        credentials: Optional[Dict[str, str]] = None,
        provider: Optional[str] = None,
        client_config: ClientConfig = ClientConfig(),
    ):
        self.keypair = None
        if credentials:
            self.keypair = Keypair.from_private_key_string(credentials["key"])

        self.provider = provider or self.default_provider
        self.client_config = client_config
        self.connection = RpcClient(self.resolve_endpoint(self.provider), client_config)

    @property
    def address(self) -> Optional[str]:
        return self.keypair.public_key if self.keypair else None

    @property
    def key(self) -> Optional[str]:
        return self.keypair.private_key_string() if self.keypair else None

    def get_current_network(self) -> str:
        """The provider this tool was created with: a cluster name or an RPC URL."""
        return self.provider

    async def close(self):
        await self.connection.close()

    async def import_wallet(
        self, key: str, method: Union[ImportMethod, str]
    ) -> Wallet:
        """Load a wallet from a mnemonic or a base58 64-byte secret key.

        Any previously loaded keypair is replaced.

        :raises InvalidMnemonicError: for a bad seed phrase
        :raises ValueError: for a malformed secret key
        """
        if ImportMethod(method) is ImportMethod.SEEDPHRASE:
            self.keypair = (await self.recover(key)).keypair
        else:
            self.keypair = Keypair.from_base58(key)
        return self.wallet()

    async def recover(self, phrase: str) -> RecoveredKeypair:
        """Find the funded account behind ``phrase``.

        Balances are queried on ``recovery_cluster`` when one is set, and on
        this tool's own connection otherwise.
        """
        default = self.default_derivation_path
        fallback = self.fallback_derivation_paths()
        if self.recovery_cluster is None:
            return await recover_keypair(
                phrase, self.connection.get_balance, default, fallback
            )

        client = RpcClient(cluster_api_url(self.recovery_cluster), self.client_config)
        try:
            return await recover_keypair(phrase, client.get_balance, default, fallback)
        finally:
            await client.close()

    async def generate_wallet(self) -> str:
        """Create a mnemonic, import it and return it."""
        phrase = generate_mnemonic()
        await self.import_wallet(phrase, ImportMethod.SEEDPHRASE)
        return phrase

    def wallet(self) -> Wallet:
        """Address and comma-separated secret key of the loaded keypair.

        Raises:
            UninitializedProviderError: If no wallet has been imported.
        """
        keypair = self._require_keypair()
        return Wallet(address=keypair.public_key, private_key=keypair.private_key_string())

    async def get_balance(self) -> int:
        """Balance of the loaded wallet in lamports."""
        keypair = self._require_keypair()
        return await self.connection.get_balance(keypair.public_key)

    async def transfer(self, recipient: str, amount: Union[int, float, str, Decimal]) -> str:
        """Send ``amount`` SOL/KOII to ``recipient``; returns the signature.

        :raises InvalidAddressError: if ``recipient`` is not a valid public key
        """
        keypair = self._require_keypair()
        instruction = transfer(
            TransferParams(
                from_pubkey=keypair.to_solders().pubkey(),
                to_pubkey=solana_public_key(recipient),
                lamports=to_lamports(amount),
            )
        )
        return await self.connection.send_and_confirm_transaction([instruction], [keypair])

    def sign_payload(self, data: Union[bytes, str]) -> str:
        """Base58 Ed25519 signature of ``data``."""
        signature = self._require_keypair().sign(_as_bytes(data))
        return base58.b58encode(signature).decode("ascii")

    def verify_signature(
        self,
        data: Union[bytes, str],
        signature: str,
        public_key: Optional[str] = None,
    ) -> bool:
        """Check a base58 signature, by default against the loaded wallet."""
        public_key = public_key or self._require_keypair().public_key
        try:
            raw = base58.b58decode(signature)
        except ValueError:
            return False
        return verify_signature(public_key, _as_bytes(data), raw)

    def _require_keypair(self) -> Keypair:
        if self.keypair is None:
            raise UninitializedProviderError("No wallet has been imported")
        return self.keypair


class K2Tool(SolanaTool):
    """K2 wallet tool; also recovers wallets created by the Koii CLI."""

    default_derivation_path = K2_DEFAULT_DERIVATION_PATH
    fallback_derivation_paths = staticmethod(k2_derivation_paths)
    resolve_endpoint = staticmethod(k2_cluster_api_url)
    recovery_cluster = None


class Test(unittest.IsolatedAsyncioTestCase):
    MNEMONIC = (
        "neglect trigger better derive lawsuit erosion cry online private rib vehicle drop"
    )
    MAIN_ADDRESS = "9cGCJvVacp5V6xjeshprS3KDN3e5VwEUszHmxxaZuHmJ"
    MAIN_KEY = (
        "87,188,51,212,151,148,184,219,43,102,46,41,168,214,110,209,155,62,127,172,"
        "14,227,236,91,171,173,50,227,150,219,250,23,127,230,1,55,81,44,74,245,8,176,"
        "126,27,127,163,91,47,95,19,138,193,152,131,194,141,43,198,128,40,77,16,1,73"
    )
    SUB_ADDRESS = "5f6r16czBTinZiNdW7TnDHLWS2Hvt3eAyqZWyWQhur7j"
    SUB_KEY = (
        "198,5,157,173,48,253,15,5,119,7,41,27,252,169,165,190,24,129,196,37,113,187,"
        "191,172,230,172,221,90,135,0,71,0,69,49,109,96,73,35,196,99,141,237,132,184,"
        "222,79,76,22,199,153,39,2,164,51,237,174,243,134,18,50,7,153,127,170"
    )

    def config(self) -> ClientConfig:
        return ClientConfig(http2=False)

    def funded(self, *addresses: str):
        async def get_balance(public_key: str, commitment: Optional[str] = None) -> int:
            return LAMPORTS_PER_SOL if public_key in addresses else 0

        return unittest.mock.AsyncMock(side_effect=get_balance)

    async def test_import_main_wallet(self):
        tool = SolanaTool(client_config=self.config())
        with unittest.mock.patch.object(
            RpcClient, "get_balance", self.funded(self.MAIN_ADDRESS)
        ):
            wallet = await tool.import_wallet(self.MNEMONIC, "seedphrase")

        self.assertEqual(wallet, Wallet(self.MAIN_ADDRESS, self.MAIN_KEY))
        await tool.close()

    async def test_import_sub_wallet(self):
        tool = SolanaTool(client_config=self.config())
        with unittest.mock.patch.object(
            RpcClient, "get_balance", self.funded(self.SUB_ADDRESS)
        ):
            wallet = await tool.import_wallet(self.MNEMONIC, ImportMethod.SEEDPHRASE)

        self.assertEqual(wallet.address, self.SUB_ADDRESS)
        self.assertEqual(wallet.private_key, self.SUB_KEY)
        self.assertEqual(tool.address, self.SUB_ADDRESS)
        await tool.close()

    async def test_solana_recovery_queries_mainnet(self):
        tool = SolanaTool(provider="devnet", client_config=self.config())
        with unittest.mock.patch(f"{__name__}.RpcClient") as client_class:
            recovery_client = client_class.return_value
            recovery_client.get_balance = self.funded(self.MAIN_ADDRESS)
            recovery_client.close = unittest.mock.AsyncMock()
            await tool.import_wallet(self.MNEMONIC, "seedphrase")

        client_class.assert_called_once_with(
            cluster_api_url("mainnet-beta"), tool.client_config
        )
        recovery_client.close.assert_awaited_once()
        await tool.close()

    async def test_k2_recovers_koii_cli_wallet(self):
        cli_address = Keypair.from_seed(mnemonic_to_seed(self.MNEMONIC)[:32]).public_key
        tool = K2Tool(client_config=self.config())
        self.assertEqual(tool.connection.base_url, "https://testnet.koii.live")

        with unittest.mock.patch.object(
            tool.connection, "get_balance", self.funded(cli_address)
        ) as get_balance:
            wallet = await tool.import_wallet(self.MNEMONIC, "seedphrase")

        self.assertEqual(wallet.address, cli_address)
        self.assertEqual(get_balance.await_count, 2)
        await tool.close()

    async def test_k2_defaults_to_solflare_path(self):
        tool = K2Tool(client_config=self.config())
        with unittest.mock.patch.object(
            tool.connection, "get_balance", self.funded()
        ):
            wallet = await tool.import_wallet(self.MNEMONIC, "seedphrase")

        expected = Keypair.from_seed(
            DerivationPath.from_str(K2_DEFAULT_DERIVATION_PATH).derive(
                mnemonic_to_seed(self.MNEMONIC)
            )
        )
        self.assertEqual(wallet.address, expected.public_key)
        await tool.close()

    async def test_import_key(self):
        secret = Keypair.from_private_key_string(self.MAIN_KEY).base58_secret_key()
        tool = K2Tool(client_config=self.config())
        wallet = await tool.import_wallet(secret, "key")

        self.assertEqual(wallet, Wallet(self.MAIN_ADDRESS, self.MAIN_KEY))
        await tool.close()

    async def test_credentials(self):
        tool = K2Tool(
            {"address": self.SUB_ADDRESS, "key": self.SUB_KEY},
            client_config=self.config(),
        )
        self.assertEqual(tool.address, self.SUB_ADDRESS)
        self.assertEqual(tool.key, self.SUB_KEY)
        await tool.close()

    async def test_generate_wallet(self):
        tool = K2Tool(client_config=self.config())
        with unittest.mock.patch.object(tool.connection, "get_balance", self.funded()):
            phrase = await tool.generate_wallet()

        self.assertEqual(len(phrase.split()), 12)
        self.assertEqual(tool.wallet().address, tool.keypair.public_key)
        await tool.close()

    async def test_get_balance_requires_wallet(self):
        tool = SolanaTool(client_config=self.config())
        with self.assertRaises(UninitializedProviderError):
            await tool.get_balance()
        await tool.close()

    async def test_transfer(self):
        tool = K2Tool({"key": self.MAIN_KEY}, client_config=self.config())
        with unittest.mock.patch.object(
            tool.connection, "send_and_confirm_transaction", return_value="5sig"
        ) as send:
            signature = await tool.transfer(self.SUB_ADDRESS, 1.5)

        self.assertEqual(signature, "5sig")
        (instructions, signers) = send.await_args.args
        params = decode_transfer(instructions[0])
        self.assertEqual(params["lamports"], 1_500_000_000)
        self.assertEqual(str(params["to_pubkey"]), self.SUB_ADDRESS)
        self.assertEqual(signers, [tool.keypair])
        await tool.close()

    async def test_transfer_invalid_recipient(self):
        from .errors import InvalidAddressError

        tool = K2Tool({"key": self.MAIN_KEY}, client_config=self.config())
        with self.assertRaises(InvalidAddressError):
            await tool.transfer("not an address", 1)
        await tool.close()

    async def test_sign_payload(self):
        tool = SolanaTool({"key": self.MAIN_KEY}, client_config=self.config())
        signature = tool.sign_payload("hello")

        self.assertTrue(tool.verify_signature("hello", signature))
        self.assertTrue(tool.verify_signature(b"hello", signature, self.MAIN_ADDRESS))
        self.assertFalse(tool.verify_signature("hello", signature, self.SUB_ADDRESS))
        await tool.close()

    def test_to_lamports(self):
        self.assertEqual(to_lamports(1), LAMPORTS_PER_SOL)
        self.assertEqual(to_lamports(0.1), 100_000_000)
        self.assertEqual(to_lamports("0.000000001"), 1)
        with self.assertRaises(ValueError):
            to_lamports("0.0000000001")
        with self.assertRaises(ValueError):
            to_lamports(-1)


if __name__ == "__main__":
    unittest.main()
