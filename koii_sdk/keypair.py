# Copyright © Aptos Foundation
# SPDX-License-Identifier: Apache-2.0

"""
Ed25519 keypairs for Solana and K2 accounts.

A :class:`Keypair` wraps a NaCl signing key. Its public key, rendered in
base58, is the account address on both chains. The 64-byte secret key is the
32-byte seed followed by the public key, which is the format written by the
Solana and Koii command line tools (a JSON array of byte values) and the
format the wallet tools expose as a comma-separated string.

Examples:
    Generate, store and reload a keypair::

        from koii_sdk.keypair import Keypair

        keypair = Keypair.generate()
        keypair.store("./id.json")
        assert Keypair.load("./id.json") == keypair

    Import from a base58 secret key exported by a browser wallet::

        keypair = Keypair.from_base58("4Z7cXSyeFR8wNGMVXUE1TwtKn5D5Vu7FzEv69dokLv7K...")
        print(keypair.public_key)
"""

from __future__ import annotations

import json
import tempfile
import unittest
from typing import List

import base58
from nacl.exceptions import BadSignatureError
from nacl.signing import SigningKey, VerifyKey
from solders.keypair import Keypair as SoldersKeypair

SEED_LENGTH = 32
SECRET_KEY_LENGTH = 64


class Keypair:
    """An Ed25519 keypair with Solana-compatible encodings.

    Keypairs are immutable: importing a different key into a wallet tool
    replaces the whole object.

    Attributes:
        signing_key: The underlying NaCl SigningKey instance.
    """

    signing_key: SigningKey

    def __init__(self, signing_key: SigningKey):
        self.signing_key = signing_key

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Keypair):
            return NotImplemented
        return self.secret_key == other.secret_key

    def __hash__(self) -> int:
        return hash(self.secret_key)

    def __str__(self) -> str:
        return self.public_key

    def __repr__(self) -> str:
        return f"Keypair({self.public_key})"

    @staticmethod
    def generate() -> Keypair:
        """Create a keypair from a fresh random seed."""
        return Keypair(SigningKey.generate())

    @staticmethod
    def from_seed(seed: bytes) -> Keypair:
        """Build the keypair whose private key seed is ``seed`` (32 bytes)."""
        if len(seed) != SEED_LENGTH:
            raise ValueError(f"Expected seed of length {SEED_LENGTH}, got {len(seed)}")
        return Keypair(SigningKey(bytes(seed)))

    @staticmethod
    def from_secret_key(secret_key: bytes) -> Keypair:
        """Build a keypair from a 64-byte secret key (seed followed by public key).

        Raises:
            ValueError: If the length is wrong or the embedded public key does
                not belong to the seed.
        """
        secret_key = bytes(secret_key)
        if len(secret_key) != SECRET_KEY_LENGTH:
            raise ValueError(
                f"Expected secret key of length {SECRET_KEY_LENGTH}, got {len(secret_key)}"
            )
        keypair = Keypair.from_seed(secret_key[:SEED_LENGTH])
        if keypair.public_key_bytes != secret_key[SEED_LENGTH:]:
            raise ValueError("Provided secret key is invalid: public key mismatch")
        return keypair

    @staticmethod
    def from_base58(value: str) -> Keypair:
        """Parse a base58-encoded 64-byte secret key, as exported by Phantom.

        Args:
            value: Base58 text. Surrounding whitespace is ignored.

        Returns:
            Keypair: The keypair the secret key belongs to.

        Raises:
            ValueError: If the text is not base58 or the decoded secret key is
                malformed.

        Examples:
            Round trip through the export format::

                keypair = Keypair.generate()
                same = Keypair.from_base58(keypair.base58_secret_key())
                assert same == keypair
        """
        return Keypair.from_secret_key(base58.b58decode(value.strip()))

    @staticmethod
    def from_private_key_string(value: str) -> Keypair:
        """Parse the comma-separated byte list produced by :meth:`private_key_string`.

        Args:
            value: Decimal byte values separated by commas, e.g. ``"198,5,157,..."``.

        Returns:
            Keypair: The keypair the 64-byte secret key belongs to.

        Raises:
            ValueError: If an entry is not an integer in ``0..255`` or the
                secret key is malformed.
        """
        return Keypair.from_secret_key(bytes(int(byte) for byte in value.split(",")))

    @staticmethod
    def load(path: str) -> Keypair:
        """Load a keypair from a JSON array of 64 byte values.

        This is the file format of ``solana-keygen`` and the Koii CLI, and the
        one written by :meth:`store`.

        Args:
            path: Path to the JSON key file.

        Returns:
            Keypair: The keypair stored in the file.

        Raises:
            FileNotFoundError: If the file does not exist.
            json.JSONDecodeError: If the file is not valid JSON.
            ValueError: If the array is not a valid 64-byte secret key.
        """
        with open(path) as file:
            data = json.load(file)
        return Keypair.from_secret_key(bytes(data))

    def store(self, path: str):
        """Write the 64-byte secret key to ``path`` as a JSON array.

        Args:
            path: Destination file. An existing file is overwritten.
        """
        with open(path, "w") as file:
            json.dump(list(self.secret_key), file)

    @property
    def public_key(self) -> str:
        """Base58 public key, i.e. the account address."""
        return base58.b58encode(self.public_key_bytes).decode("ascii")

    @property
    def public_key_bytes(self) -> bytes:
        return self.signing_key.verify_key.encode()

    @property
    def secret_key(self) -> bytes:
        return self.signing_key.encode() + self.public_key_bytes

    def private_key_string(self) -> str:
        return ",".join(str(byte) for byte in self.secret_key)

    def base58_secret_key(self) -> str:
        return base58.b58encode(self.secret_key).decode("ascii")

    def secret_key_list(self) -> List[int]:
        return list(self.secret_key)

    def sign(self, data: bytes) -> bytes:
        """Detached 64-byte Ed25519 signature of ``data``.

        Args:
            data: Message bytes to sign.

        Returns:
            bytes: The raw signature, without the message.
        """
        return self.signing_key.sign(data).signature

    def verify(self, data: bytes, signature: bytes) -> bool:
        """Check a detached signature made by this keypair.

        Returns:
            bool: True if ``signature`` is valid for ``data``.
        """
        return verify_signature(self.public_key, data, signature)

    def to_solders(self) -> SoldersKeypair:
        """The same key as a ``solders`` signer for transaction building."""
        return SoldersKeypair.from_bytes(self.secret_key)


def verify_signature(public_key: str, data: bytes, signature: bytes) -> bool:
    """Check an Ed25519 signature against a base58 public key."""
    try:
        VerifyKey(base58.b58decode(public_key)).verify(data, signature)
    except BadSignatureError:
        return False
    return True


class Test(unittest.TestCase):
    ADDRESS = "9cGCJvVacp5V6xjeshprS3KDN3e5VwEUszHmxxaZuHmJ"
    KEY = (
        "87,188,51,212,151,148,184,219,43,102,46,41,168,214,110,209,155,62,127,172,"
        "14,227,236,91,171,173,50,227,150,219,250,23,127,230,1,55,81,44,74,245,8,176,"
        "126,27,127,163,91,47,95,19,138,193,152,131,194,141,43,198,128,40,77,16,1,73"
    )

    def test_private_key_string(self):
        keypair = Keypair.from_private_key_string(self.KEY)

        self.assertEqual(keypair.public_key, self.ADDRESS)
        self.assertEqual(keypair.private_key_string(), self.KEY)

    def test_from_seed_matches_secret_key(self):
        keypair = Keypair.from_private_key_string(self.KEY)
        self.assertEqual(Keypair.from_seed(keypair.secret_key[:32]), keypair)

    def test_base58_round_trip(self):
        keypair = Keypair.from_private_key_string(self.KEY)
        self.assertEqual(Keypair.from_base58(keypair.base58_secret_key()), keypair)

    def test_mismatched_public_key(self):
        secret_key = Keypair.generate().secret_key[:32] + Keypair.generate().public_key_bytes
        with self.assertRaises(ValueError):
            Keypair.from_secret_key(secret_key)

    def test_wrong_lengths(self):
        with self.assertRaises(ValueError):
            Keypair.from_seed(b"\x00" * 31)
        with self.assertRaises(ValueError):
            Keypair.from_secret_key(b"\x00" * 32)

    def test_load_and_store(self):
        (file, path) = tempfile.mkstemp()
        start = Keypair.generate()
        start.store(path)
        load = Keypair.load(path)

        self.assertEqual(start, load)

    def test_sign_and_verify(self):
        message = b"test message"
        keypair = Keypair.generate()
        signature = keypair.sign(message)

        self.assertTrue(keypair.verify(message, signature))
        self.assertFalse(keypair.verify(b"other message", signature))

    def test_to_solders(self):
        keypair = Keypair.from_private_key_string(self.KEY)
        self.assertEqual(str(keypair.to_solders().pubkey()), self.ADDRESS)


if __name__ == "__main__":
    unittest.main()
