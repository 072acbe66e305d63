# Copyright © Aptos Foundation
# SPDX-License-Identifier: Apache-2.0

"""
Mnemonic phrases and hierarchical deterministic (HD) key derivation.

Seeds follow BIP-39 (through the ``mnemonic`` package) and Ed25519 child keys
follow SLIP-0010 (through ``bip_utils``), which only defines hardened
derivation. Wallet vendors do not agree on a single path for Solana-style
chains, so this module also provides the ordered candidate lists used by
:mod:`koii_sdk.recovery`:

- ``m/44'/501'/0'/0'``: Solana CLI and Phantom
- ``m/44'/501'/0'``: Solflare and the K2 default
- the raw seed: the Koii CLI, which uses the first 32 seed bytes as the key

Examples:
    Deriving a Solana key seed::

        from koii_sdk.hd import DerivationPath, mnemonic_to_seed

        seed = mnemonic_to_seed("neglect trigger better derive ...")
        key_seed = DerivationPath.from_str("m/44'/501'/0'/0'").derive(seed)
"""

from __future__ import annotations

import unittest
from typing import List, Sequence, Tuple, Union

from bip_utils import Bip32Slip10Ed25519
from mnemonic import Mnemonic

from .errors import InvalidDerivationPathError, InvalidMnemonicError

HARDENED_OFFSET = 0x80000000

SOLANA_DEFAULT_DERIVATION_PATH = "m/44'/501'/0'/0'"
K2_DEFAULT_DERIVATION_PATH = "m/44'/501'/0'"
ETHEREUM_DEFAULT_DERIVATION_PATH = "m/44'/60'/0'/0/0"

MNEMONIC_GEN = Mnemonic("english")


def generate_mnemonic(strength: int = 128) -> str:
    """Generate a BIP-39 English phrase (12 words for the default strength)."""
    return MNEMONIC_GEN.generate(strength=strength)


def validate_mnemonic(phrase: str) -> bool:
    return MNEMONIC_GEN.check(phrase)


def mnemonic_to_seed(phrase: str, passphrase: str = "") -> bytes:
    """Convert a checked mnemonic into its 64-byte BIP-39 seed.

    Raises:
        InvalidMnemonicError: the phrase has unknown words or a bad checksum.
    """
    phrase = " ".join(phrase.split())
    if not validate_mnemonic(phrase):
        raise InvalidMnemonicError()
    return Mnemonic.to_seed(phrase, passphrase)


class DerivationPath:
    """A SLIP-0010 Ed25519 derivation path such as ``m/44'/501'/0'/0'``."""

    path: str
    indices: Tuple[int, ...]

    def __init__(self, path: str, indices: Sequence[int]):
        self.path = path
        self.indices = tuple(indices)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, DerivationPath):
            return NotImplemented
        return self.path == other.path

    def __hash__(self) -> int:
        return hash(self.path)

    def __str__(self) -> str:
        return self.path

    def __repr__(self) -> str:
        return f"DerivationPath({self.path!r})"

    @staticmethod
    def from_str(path: str) -> DerivationPath:
        segments = path.strip().split("/")
        if not segments or segments[0] != "m":
            raise InvalidDerivationPathError(path)

        indices = []
        for segment in segments[1:]:
            if not segment.endswith("'"):
                raise InvalidDerivationPathError(
                    path, "Only hardened derivation is supported for ed25519"
                )
            number = segment[:-1]
            if not number.isdigit() or int(number) >= HARDENED_OFFSET:
                raise InvalidDerivationPathError(path)
            indices.append(int(number) + HARDENED_OFFSET)
        return DerivationPath(path, indices)

    def derive(self, seed: bytes) -> bytes:
        """Return the 32-byte Ed25519 private key seed at this path."""
        context = Bip32Slip10Ed25519.FromSeed(seed)
        for index in self.indices:
            context = context.ChildKey(index)
        return context.PrivateKey().Raw().ToBytes()


class RawSeedPath(DerivationPath):
    """Koii CLI convention: the key seed is the first 32 bytes of the BIP-39 seed."""

    def __init__(self):
        super().__init__("koii-cli", [])

    def __repr__(self) -> str:
        return "RawSeedPath()"

    def derive(self, seed: bytes) -> bytes:
        return seed[:32]


PathLike = Union[str, DerivationPath]


def as_derivation_path(path: PathLike) -> DerivationPath:
    if isinstance(path, DerivationPath):
        return path
    return DerivationPath.from_str(path)


def solana_derivation_paths(count: int = 20) -> List[DerivationPath]:
    """Candidate paths for accounts created by the common Solana wallets.

    For every account index the Solana CLI / Phantom path comes first, then
    the Solflare path.
    """
    paths = []
    for i in range(count):
        paths.append(DerivationPath.from_str(f"m/44'/501'/{i}'/0'"))
        paths.append(DerivationPath.from_str(f"m/44'/501'/{i}'"))
    return paths


def k2_derivation_paths() -> List[DerivationPath]:
    return [RawSeedPath()]


class Test(unittest.TestCase):
    # SLIP-0010 test vector 1 for ed25519
    SEED = bytes.fromhex("000102030405060708090a0b0c0d0e0f")

    def test_slip10_master(self):
        self.assertEqual(
            DerivationPath.from_str("m").derive(self.SEED).hex(),
            "2b4be7f19ee27bbf30c667b642d5f4aa69fd169872f8fc3059c08ebae2eb19e7",
        )

    def test_slip10_chain(self):
        self.assertEqual(
            DerivationPath.from_str("m/0'").derive(self.SEED).hex(),
            "68e0fe46dfb67e368c75379acec591dad19df3cde26e63b93a8e704f1dade7a3",
        )
        self.assertEqual(
            DerivationPath.from_str("m/0'/1'/2'/2'/1000000000'").derive(self.SEED).hex(),
            "8f94d394a8e8fd6b1bc2f3f49f5c47e385281d5c17e65324b0f62483e37e8793",
        )

    def test_rejects_non_hardened_segments(self):
        with self.assertRaises(InvalidDerivationPathError):
            DerivationPath.from_str("m/44'/501'/0/0")

    def test_rejects_malformed_paths(self):
        for path in ["44'/501'", "m/abc'", "m//0'", f"m/{HARDENED_OFFSET}'"]:
            with self.subTest(path=path):
                with self.assertRaises(InvalidDerivationPathError):
                    DerivationPath.from_str(path)

    def test_solana_paths_order(self):
        paths = [str(path) for path in solana_derivation_paths()]
        self.assertEqual(len(paths), 40)
        self.assertEqual(paths[:4], [
            "m/44'/501'/0'/0'",
            "m/44'/501'/0'",
            "m/44'/501'/1'/0'",
            "m/44'/501'/1'",
        ])
        self.assertEqual(paths[-1], "m/44'/501'/19'")

    def test_raw_seed_path(self):
        seed = bytes(range(64))
        self.assertEqual(RawSeedPath().derive(seed), bytes(range(32)))
        self.assertIsInstance(k2_derivation_paths()[0], RawSeedPath)

    def test_invalid_mnemonic(self):
        with self.assertRaises(InvalidMnemonicError):
            # valid words, wrong checksum
            mnemonic_to_seed(" ".join(["abandon"] * 12))
        with self.assertRaises(InvalidMnemonicError):
            mnemonic_to_seed("not a real phrase")

    def test_generate_mnemonic(self):
        phrase = generate_mnemonic()
        self.assertEqual(len(phrase.split()), 12)
        self.assertEqual(len(mnemonic_to_seed(phrase)), 64)

    def test_as_derivation_path(self):
        path = as_derivation_path(K2_DEFAULT_DERIVATION_PATH)
        self.assertEqual(path, DerivationPath.from_str("m/44'/501'/0'"))
        self.assertIs(as_derivation_path(path), path)


if __name__ == "__main__":
    unittest.main()
