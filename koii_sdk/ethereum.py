# Copyright © Aptos Foundation
# SPDX-License-Identifier: Apache-2.0

"""
Ethereum wallet tool.

Keys, HD derivation and signing are delegated to ``eth-account``; chain
access goes through the JSON-RPC methods of :class:`RpcClient`. Seed phrases
use the standard ``m/44'/60'/0'/0/0`` account and are not searched for
funded siblings.
"""

from __future__ import annotations

import unittest
import unittest.mock
from decimal import Decimal
from typing import Any, Dict, Optional, Union

from eth_account import Account
from eth_account.hdaccount import key_from_seed
from eth_account.messages import SignableMessage, encode_defunct
from eth_account.signers.local import LocalAccount

from .address import ethereum_address
from .async_client import ClientConfig, RpcClient
from .errors import UninitializedProviderError
from .hd import ETHEREUM_DEFAULT_DERIVATION_PATH, generate_mnemonic, mnemonic_to_seed
from .networks import DEFAULT_INFURA_API_KEY, clarify_ethereum_provider
from .wallet import ImportMethod, Wallet

WEI_PER_ETHER = 10**18
DEFAULT_ETHEREUM_PROVIDER = f"https://mainnet.infura.io/v3/{DEFAULT_INFURA_API_KEY}"


def to_wei(amount: Union[int, float, str, Decimal]) -> int:
    wei = Decimal(str(amount)) * WEI_PER_ETHER
    if wei < 0 or wei != wei.to_integral_value():
        raise ValueError(f"Cannot transfer {amount}: not a whole number of wei")
    return int(wei)


def _message(data: Union[bytes, str]) -> SignableMessage:
    if isinstance(data, str):
        return encode_defunct(text=data)
    return encode_defunct(primitive=data)


class EthereumTool:
    """Ethereum wallet tool.

    Attributes:
        provider: JSON-RPC endpoint, typically an Infura URL.
        network: Network name parsed from ``provider``.
        account: The loaded ``eth_account`` account, if any.
    """

    provider: str
    network: str
    account: Optional[LocalAccount]
    connection: RpcClient

    def __init__(
        self,
        provider: Optional[str] = None,
        credentials: Optional[Dict[str, str]] = None,
        client_config: ClientConfig = ClientConfig(),
    ):
        self.provider = provider or DEFAULT_ETHEREUM_PROVIDER
        self.network, _ = clarify_ethereum_provider(self.provider)
        self.connection = RpcClient(self.provider, client_config)
        self.account = None
        if credentials:
            self.account = Account.from_key(credentials["key"])

    @property
    def address(self) -> Optional[str]:
        return self.account.address if self.account else None

    def get_current_network(self) -> str:
        """The Infura-style provider URL in use."""
        return self.provider

    async def close(self):
        await self.connection.close()

    async def import_wallet(self, key: str, method: Union[ImportMethod, str]) -> Wallet:
        """Load a wallet from a hex private key or a mnemonic.

        :raises InvalidMnemonicError: for a bad seed phrase
        """
        if ImportMethod(method) is ImportMethod.SEEDPHRASE:
            seed = mnemonic_to_seed(key)
            key = key_from_seed(seed, ETHEREUM_DEFAULT_DERIVATION_PATH)
        self.account = Account.from_key(key)
        return self.wallet()

    async def generate_wallet(self) -> str:
        phrase = generate_mnemonic()
        await self.import_wallet(phrase, ImportMethod.SEEDPHRASE)
        return phrase

    def wallet(self) -> Wallet:
        """Checksummed address and 0x-prefixed private key of the loaded account."""
        account = self._require_account()
        return Wallet(address=account.address, private_key="0x" + bytes(account.key).hex())

    async def get_balance(self) -> int:
        """Balance in wei."""
        return await self.connection.eth_get_balance(self._require_account().address)

    async def estimate_gas(self, transaction: Dict[str, Any]) -> int:
        """Estimated fee of ``transaction`` in wei (gas units times gas price)."""
        gas = await self.connection.eth_estimate_gas(transaction)
        gas_price = await self.connection.eth_gas_price()
        return gas * gas_price

    async def transfer(self, recipient: str, amount: Union[int, float, str, Decimal]) -> str:
        """Send ``amount`` ether with a legacy gas price transaction.

        Returns the transaction hash.
        """
        account = self._require_account()
        recipient = ethereum_address(recipient)
        value = to_wei(amount)

        gas = await self.connection.eth_estimate_gas(
            {"from": account.address, "to": recipient, "value": value}
        )
        transaction = {
            "to": recipient,
            "value": value,
            "gas": gas,
            "gasPrice": await self.connection.eth_gas_price(),
            "nonce": await self.connection.eth_get_transaction_count(account.address),
            "chainId": await self.connection.eth_chain_id(),
        }
        signed = account.sign_transaction(transaction)
        return await self.connection.eth_send_raw_transaction(signed.raw_transaction)

    async def get_transaction_status(self, tx_hash: str) -> Optional[Dict[str, Any]]:
        """The transaction receipt, or ``None`` while it is pending."""
        return await self.connection.eth_get_transaction_receipt(tx_hash)

    def sign_payload(self, data: Union[bytes, str]) -> str:
        """EIP-191 personal message signature, hex encoded."""
        signed = self._require_account().sign_message(_message(data))
        return "0x" + bytes(signed.signature).hex()

    def verify_signature(
        self, data: Union[bytes, str], signature: str, address: Optional[str] = None
    ) -> bool:
        address = address or self._require_account().address
        recovered = Account.recover_message(_message(data), signature=signature)
        return recovered == ethereum_address(address)

    def _require_account(self) -> LocalAccount:
        if self.account is None:
            raise UninitializedProviderError("No wallet has been imported")
        return self.account


class Test(unittest.IsolatedAsyncioTestCase):
    PRIVATE_KEY = "0x4c0883a69102937d6231471b5dbb6204fe5129617082792ae468d01a3f362318"
    ADDRESS = "0x2c7536E3605D9C16a7a3D7b1898e529396a65c23"
    MNEMONIC = "test test test test test test test test test test test junk"
    MNEMONIC_ADDRESS = "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"
    MNEMONIC_KEY = "0xac0974bec39a17e36ba4a6b4d238ff944bacb478cbed5efcae784d7bf4f2ff80"

    async def asyncSetUp(self):
        self.tool = EthereumTool(
            "https://sepolia.infura.io/v3/abc123", client_config=ClientConfig(http2=False)
        )

    async def asyncTearDown(self):
        await self.tool.close()

    def test_network(self):
        self.assertEqual(self.tool.network, "sepolia")

    async def test_import_key(self):
        wallet = await self.tool.import_wallet(self.PRIVATE_KEY, "key")
        self.assertEqual(wallet, Wallet(self.ADDRESS, self.PRIVATE_KEY))

    async def test_import_seedphrase(self):
        wallet = await self.tool.import_wallet(self.MNEMONIC, ImportMethod.SEEDPHRASE)
        self.assertEqual(wallet, Wallet(self.MNEMONIC_ADDRESS, self.MNEMONIC_KEY))

    async def test_generate_wallet(self):
        phrase = await self.tool.generate_wallet()
        self.assertEqual(len(phrase.split()), 12)
        self.assertEqual(self.tool.wallet().address, self.tool.account.address)

    async def test_get_balance_requires_wallet(self):
        with self.assertRaises(UninitializedProviderError):
            await self.tool.get_balance()

    async def test_transfer(self):
        await self.tool.import_wallet(self.PRIVATE_KEY, "key")
        connection = self.tool.connection
        with unittest.mock.patch.multiple(
            connection,
            eth_estimate_gas=unittest.mock.AsyncMock(return_value=21000),
            eth_gas_price=unittest.mock.AsyncMock(return_value=10**9),
            eth_get_transaction_count=unittest.mock.AsyncMock(return_value=3),
            eth_chain_id=unittest.mock.AsyncMock(return_value=11155111),
            eth_send_raw_transaction=unittest.mock.AsyncMock(return_value="0xhash"),
        ):
            tx_hash = await self.tool.transfer(self.MNEMONIC_ADDRESS.lower(), "0.5")
            raw = connection.eth_send_raw_transaction.await_args.args[0]
            estimate = connection.eth_estimate_gas.await_args.args[0]

        self.assertEqual(tx_hash, "0xhash")
        self.assertEqual(estimate["value"], 5 * 10**17)
        self.assertEqual(estimate["to"], self.MNEMONIC_ADDRESS)
        self.assertEqual(Account.recover_transaction(raw), self.ADDRESS)

    async def test_estimate_gas(self):
        with unittest.mock.patch.multiple(
            self.tool.connection,
            eth_estimate_gas=unittest.mock.AsyncMock(return_value=21000),
            eth_gas_price=unittest.mock.AsyncMock(return_value=2 * 10**9),
        ):
            fee = await self.tool.estimate_gas({"to": self.ADDRESS, "value": 1})
        self.assertEqual(fee, 42000 * 10**9)

    async def test_sign_payload(self):
        await self.tool.import_wallet(self.PRIVATE_KEY, "key")
        signature = self.tool.sign_payload("hello")

        self.assertTrue(self.tool.verify_signature("hello", signature))
        self.assertFalse(self.tool.verify_signature("goodbye", signature))
        self.assertFalse(
            self.tool.verify_signature("hello", signature, self.MNEMONIC_ADDRESS)
        )


if __name__ == "__main__":
    unittest.main()
