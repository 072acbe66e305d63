# Copyright © Aptos Foundation
# SPDX-License-Identifier: Apache-2.0

"""
Address validation for the supported chains.

Every helper raises :class:`koii_sdk.errors.InvalidAddressError` on bad input,
so wallet tools can validate a recipient before building a transaction.
"""

import re
import unittest
from typing import Union

from eth_utils import is_address, to_checksum_address
from solders.pubkey import Pubkey

from .errors import InvalidAddressError

ARWEAVE_ID_PATTERN = re.compile(r"^[a-zA-Z0-9_-]{43}$")


def solana_public_key(value: Union[str, Pubkey]) -> Pubkey:
    """Parse a base58 Solana/K2 address."""
    if isinstance(value, Pubkey):
        return value
    try:
        return Pubkey.from_string(value)
    except (ValueError, TypeError) as e:
        raise InvalidAddressError(str(value)) from e


def valid_arweave_id(value: str) -> bool:
    """True for 43-character base64url strings (wallet addresses and tx ids)."""
    return isinstance(value, str) and ARWEAVE_ID_PATTERN.match(value) is not None


def assert_arweave_id(value: str) -> str:
    if not valid_arweave_id(value):
        raise InvalidAddressError(str(value), f"Invalid Arweave id: {value}")
    return value


def ethereum_address(value: str) -> str:
    """Return the EIP-55 checksummed form of ``value``."""
    if not isinstance(value, str) or not is_address(value):
        raise InvalidAddressError(str(value))
    return to_checksum_address(value)


class Test(unittest.TestCase):
    def test_solana_public_key(self):
        address = "9cGCJvVacp5V6xjeshprS3KDN3e5VwEUszHmxxaZuHmJ"
        self.assertEqual(str(solana_public_key(address)), address)

        for bad in ["", "not-base58-0OIl", "9cGCJvVacp5V6xjeshprS3KDN3e5"]:
            with self.subTest(bad=bad):
                with self.assertRaises(InvalidAddressError):
                    solana_public_key(bad)

    def test_arweave_id(self):
        good = "QA7AIFVx1KBBmzC7WUNhJbDsHlSJArUT0jWrhZMZPS8"
        self.assertTrue(valid_arweave_id(good))
        self.assertFalse(valid_arweave_id(good[:-1]))
        self.assertFalse(valid_arweave_id(good[:-1] + "+"))
        with self.assertRaises(InvalidAddressError):
            assert_arweave_id("abc")

    def test_ethereum_address(self):
        lower = "0x5aaeb6053f3e94c9b9a09f33669435e7ef1beaed"
        self.assertEqual(
            ethereum_address(lower), "0x5aAeb6053F3E94C9b9A09f33669435E7Ef1BeAed"
        )
        with self.assertRaises(InvalidAddressError):
            ethereum_address("0x1234")


if __name__ == "__main__":
    unittest.main()
