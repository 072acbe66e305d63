# Copyright © Aptos Foundation
# SPDX-License-Identifier: Apache-2.0

"""
Arweave wallet tool.

Arweave wallets are RSA keys exchanged as JSON Web Keys (JWK). The wallet
address is the base64url SHA-256 digest of the public modulus ``n``, and all
signatures are RSA-PSS over SHA-256 with a 32-byte salt.

Transfers are format-2 transactions: the signed message is the SHA-384
"deep hash" of the transaction fields, and the transaction id is the SHA-256
of the signature.

Payload signing produces the bundler payload format used across Koii
services: ``data`` is serialized as compact JSON, signed, and the
``signature`` and public ``owner`` modulus are stored back on the payload so
anyone can verify it.

Examples:
    ::

        from koii_sdk.arweave import ArweaveTool

        tool = ArweaveTool("https://arweave.net")
        await tool.import_wallet(jwk, "key")
        payload = tool.sign_payload({"data": {"vote": 1}})
        assert ArweaveTool.verify_signature(payload)
"""

from __future__ import annotations

import base64
import hashlib
import json
import unittest
import unittest.mock
from typing import Any, Dict, Optional, Sequence, Tuple, Union

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import padding, rsa

from .address import assert_arweave_id
from .async_client import ArweaveClient, ClientConfig
from .errors import UninitializedProviderError, UnsupportedImportMethodError
from .wallet import ImportMethod, Wallet

DEFAULT_GATEWAY = "https://arweave.net"
KEY_SIZE = 4096
PUBLIC_EXPONENT = 65537
PSS_SALT_LENGTH = 32
WINSTON_PER_AR = 10**12

Jwk = Dict[str, str]
DeepHashChunk = Union[bytes, Sequence["DeepHashChunk"]]


def b64url_encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def b64url_decode(data: str) -> bytes:
    return base64.urlsafe_b64decode(data + "=" * (-len(data) % 4))


def _int_to_b64url(value: int) -> str:
    return b64url_encode(value.to_bytes((value.bit_length() + 7) // 8, "big"))


def _b64url_to_int(value: str) -> int:
    return int.from_bytes(b64url_decode(value), "big")


def generate_jwk(key_size: int = KEY_SIZE) -> Jwk:
    private_key = rsa.generate_private_key(public_exponent=PUBLIC_EXPONENT, key_size=key_size)
    numbers = private_key.private_numbers()
    return {
        "kty": "RSA",
        "e": _int_to_b64url(numbers.public_numbers.e),
        "n": _int_to_b64url(numbers.public_numbers.n),
        "d": _int_to_b64url(numbers.d),
        "p": _int_to_b64url(numbers.p),
        "q": _int_to_b64url(numbers.q),
        "dp": _int_to_b64url(numbers.dmp1),
        "dq": _int_to_b64url(numbers.dmq1),
        "qi": _int_to_b64url(numbers.iqmp),
    }


def jwk_to_private_key(jwk: Jwk) -> rsa.RSAPrivateKey:
    public_numbers = rsa.RSAPublicNumbers(_b64url_to_int(jwk["e"]), _b64url_to_int(jwk["n"]))
    return rsa.RSAPrivateNumbers(
        p=_b64url_to_int(jwk["p"]),
        q=_b64url_to_int(jwk["q"]),
        d=_b64url_to_int(jwk["d"]),
        dmp1=_b64url_to_int(jwk["dp"]),
        dmq1=_b64url_to_int(jwk["dq"]),
        iqmp=_b64url_to_int(jwk["qi"]),
        public_numbers=public_numbers,
    ).private_key()


def owner_to_address(owner: str) -> str:
    """Wallet address for a base64url public modulus."""
    return b64url_encode(hashlib.sha256(b64url_decode(owner)).digest())


def sign(jwk: Jwk, data: bytes) -> bytes:
    return jwk_to_private_key(jwk).sign(
        data,
        padding.PSS(mgf=padding.MGF1(hashes.SHA256()), salt_length=PSS_SALT_LENGTH),
        hashes.SHA256(),
    )


def verify(owner: str, data: bytes, signature: bytes) -> bool:
    """Verify an RSA-PSS signature against a base64url public modulus."""
    public_key = rsa.RSAPublicNumbers(PUBLIC_EXPONENT, _b64url_to_int(owner)).public_key()
    try:
        public_key.verify(
            signature,
            data,
            padding.PSS(mgf=padding.MGF1(hashes.SHA256()), salt_length=PSS_SALT_LENGTH),
            hashes.SHA256(),
        )
    except InvalidSignature:
        return False
    return True


def deep_hash(data: DeepHashChunk) -> bytes:
    """SHA-384 deep hash of a blob or a nested list of blobs."""
    if isinstance(data, (bytes, bytearray)):
        tag = hashlib.sha384(b"blob" + str(len(data)).encode()).digest()
        return hashlib.sha384(tag + hashlib.sha384(data).digest()).digest()

    accumulator = hashlib.sha384(b"list" + str(len(data)).encode()).digest()
    for chunk in data:
        accumulator = hashlib.sha384(accumulator + deep_hash(chunk)).digest()
    return accumulator


def transaction_signature_data(transaction: Dict[str, Any]) -> bytes:
    """Deep hash signed by a format-2 transaction."""
    tags = [
        [b64url_decode(tag["name"]), b64url_decode(tag["value"])]
        for tag in transaction["tags"]
    ]
    return deep_hash(
        [
            str(transaction["format"]).encode(),
            b64url_decode(transaction["owner"]),
            b64url_decode(transaction["target"]),
            transaction["quantity"].encode(),
            transaction["reward"].encode(),
            b64url_decode(transaction["last_tx"]),
            tags,
            transaction["data_size"].encode(),
            b64url_decode(transaction["data_root"]),
        ]
    )


def _payload_bytes(data: Any) -> bytes:
    return json.dumps(data, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


class ArweaveTool:
    """Arweave wallet tool.

    Attributes:
        gateway: Arweave gateway URL.
        jwk: The loaded JWK, ``None`` until a wallet is imported or generated.
    """

    gateway: str
    jwk: Optional[Jwk]
    client: ArweaveClient

    def __init__(
        self,
        gateway: Optional[str] = None,
        credentials: Optional[Jwk] = None,
        client_config: ClientConfig = ClientConfig(),
    ):
        self.gateway = gateway or DEFAULT_GATEWAY
        self.client = ArweaveClient(self.gateway, client_config)
        self.jwk = dict(credentials) if credentials else None

    @property
    def address(self) -> Optional[str]:
        return owner_to_address(self.jwk["n"]) if self.jwk else None

    def get_current_network(self) -> str:
        """The gateway URL in use."""
        return self.gateway

    async def close(self):
        await self.client.close()

    async def import_wallet(
        self, key: Union[Jwk, str], method: Union[ImportMethod, str] = ImportMethod.KEY
    ) -> Wallet:
        """Load a JWK given as a dict or a JSON string.

        :raises UnsupportedImportMethodError: for seed phrases
        """
        if ImportMethod(method) is ImportMethod.SEEDPHRASE:
            raise UnsupportedImportMethodError(
                "Arweave wallets can only be imported from a JWK"
            )
        jwk = json.loads(key) if isinstance(key, str) else dict(key)
        # Rebuilding the key rejects inconsistent JWKs.
        jwk_to_private_key(jwk)
        self.jwk = jwk
        return self.wallet()

    async def generate_wallet(self) -> None:
        """Generate and load a new RSA-4096 wallet. There is no mnemonic to return."""
        self.jwk = generate_jwk()

    def wallet(self) -> Wallet:
        """Address and serialized JWK of the loaded wallet.

        Raises:
            UninitializedProviderError: If no wallet has been imported.
        """
        jwk = self._require_jwk()
        return Wallet(address=owner_to_address(jwk["n"]), private_key=json.dumps(jwk))

    async def get_balance(self) -> int:
        """Balance in winston."""
        return await self.client.wallet_balance(owner_to_address(self._require_jwk()["n"]))

    async def get_block_height(self) -> int:
        """Current height of the gateway's chain view.

        Returns:
            int: Block height from the gateway's ``/info`` document.

        Raises:
            NetworkError: If the gateway answers with an HTTP error.
        """
        return await self.client.block_height()

    async def get_transaction(self, tx_id: str) -> Optional[Dict[str, Any]]:
        """Fetch a transaction by id.

        Args:
            tx_id: 43-character base64url transaction id.

        Returns:
            The transaction document, or ``None`` while it is pending.

        Raises:
            InvalidAddressError: If ``tx_id`` is not a well formed Arweave id.
        """
        return await self.client.transaction(assert_arweave_id(tx_id))

    async def transfer(
        self,
        recipient: str,
        amount: int,
        tags: Sequence[Tuple[str, str]] = (),
    ) -> str:
        """Send ``amount`` winston to ``recipient``; returns the transaction id."""
        jwk = self._require_jwk()
        target = assert_arweave_id(recipient)

        transaction: Dict[str, Any] = {
            "format": 2,
            "id": "",
            "last_tx": await self.client.tx_anchor(),
            "owner": jwk["n"],
            "tags": [
                {"name": b64url_encode(name.encode()), "value": b64url_encode(value.encode())}
                for name, value in tags
            ],
            "target": target,
            "quantity": str(int(amount)),
            "data": "",
            "data_size": "0",
            "data_root": "",
            "reward": str(await self.client.price(0, target)),
            "signature": "",
        }
        signature = sign(jwk, transaction_signature_data(transaction))
        transaction["signature"] = b64url_encode(signature)
        transaction["id"] = b64url_encode(hashlib.sha256(signature).digest())

        await self.client.submit_transaction(transaction)
        return transaction["id"]

    def sign_payload(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Sign ``payload["data"]``, adding ``signature`` and ``owner``."""
        jwk = self._require_jwk()
        signed = dict(payload)
        signed["signature"] = b64url_encode(sign(jwk, _payload_bytes(payload.get("data"))))
        signed["owner"] = jwk["n"]
        return signed

    @staticmethod
    def verify_signature(payload: Dict[str, Any]) -> bool:
        """Check a payload produced by :meth:`sign_payload`."""
        if not payload.get("signature") or not payload.get("owner"):
            return False
        return verify(
            payload["owner"],
            _payload_bytes(payload.get("data")),
            b64url_decode(payload["signature"]),
        )

    async def gql(
        self, query: str, variables: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        """Run a GraphQL query against the configured gateway.

        See :meth:`ArweaveClient.gql`.
        """
        return await self.client.gql(query, variables)

    def _require_jwk(self) -> Jwk:
        if self.jwk is None:
            raise UninitializedProviderError("No wallet has been imported")
        return self.jwk


class Test(unittest.IsolatedAsyncioTestCase):
    RECIPIENT = "QA7AIFVx1KBBmzC7WUNhJbDsHlSJArUT0jWrhZMZPS8"
    jwk: Jwk

    @classmethod
    def setUpClass(cls):
        cls.jwk = generate_jwk(key_size=2048)

    async def asyncSetUp(self):
        self.tool = ArweaveTool(client_config=ClientConfig(http2=False))

    async def asyncTearDown(self):
        await self.tool.close()

    async def test_import_wallet(self):
        wallet = await self.tool.import_wallet(json.dumps(self.jwk), "key")

        expected = b64url_encode(hashlib.sha256(b64url_decode(self.jwk["n"])).digest())
        self.assertEqual(wallet.address, expected)
        self.assertEqual(len(wallet.address), 43)
        self.assertEqual(json.loads(wallet.private_key), self.jwk)

    async def test_seedphrase_is_unsupported(self):
        with self.assertRaises(UnsupportedImportMethodError):
            await self.tool.import_wallet("neglect trigger better", "seedphrase")

    async def test_generate_wallet(self):
        self.assertIsNone(await self.tool.generate_wallet())
        self.assertEqual(len(b64url_decode(self.tool.jwk["n"])), KEY_SIZE // 8)

    async def test_balance_requires_wallet(self):
        with self.assertRaises(UninitializedProviderError):
            await self.tool.get_balance()

    async def test_sign_payload(self):
        await self.tool.import_wallet(self.jwk)
        payload = self.tool.sign_payload({"data": {"vote": 1, "direct": "ü"}})

        self.assertEqual(payload["owner"], self.jwk["n"])
        self.assertTrue(ArweaveTool.verify_signature(payload))

        tampered = dict(payload, data={"vote": 2, "direct": "ü"})
        self.assertFalse(ArweaveTool.verify_signature(tampered))
        self.assertFalse(ArweaveTool.verify_signature({"data": 1}))

    async def test_transfer(self):
        await self.tool.import_wallet(self.jwk)
        anchor = b64url_encode(b"\x01" * 48)
        with unittest.mock.patch.multiple(
            self.tool.client,
            tx_anchor=unittest.mock.AsyncMock(return_value=anchor),
            price=unittest.mock.AsyncMock(return_value=1234),
            submit_transaction=unittest.mock.AsyncMock(),
        ):
            tx_id = await self.tool.transfer(self.RECIPIENT, 10**12, tags=[("App", "koii")])
            transaction = self.tool.client.submit_transaction.await_args.args[0]
            self.tool.client.price.assert_awaited_once_with(0, self.RECIPIENT)

        signature = b64url_decode(transaction["signature"])
        self.assertEqual(tx_id, transaction["id"])
        self.assertEqual(tx_id, b64url_encode(hashlib.sha256(signature).digest()))
        self.assertEqual(transaction["quantity"], "1000000000000")
        self.assertEqual(transaction["reward"], "1234")
        self.assertEqual(transaction["last_tx"], anchor)
        self.assertEqual(b64url_decode(transaction["tags"][0]["value"]), b"koii")
        self.assertTrue(
            verify(self.jwk["n"], transaction_signature_data(transaction), signature)
        )

    async def test_transfer_invalid_recipient(self):
        from .errors import InvalidAddressError

        await self.tool.import_wallet(self.jwk)
        with self.assertRaises(InvalidAddressError):
            await self.tool.transfer("not-an-address", 1)

    def test_deep_hash_distinguishes_structure(self):
        self.assertEqual(len(deep_hash(b"abc")), 48)
        self.assertNotEqual(deep_hash(b"abc"), deep_hash([b"abc"]))
        self.assertNotEqual(deep_hash([b"a", b"bc"]), deep_hash([b"ab", b"c"]))


if __name__ == "__main__":
    unittest.main()
