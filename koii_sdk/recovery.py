# Copyright © Aptos Foundation
# SPDX-License-Identifier: Apache-2.0

"""
Recover the funded account behind a mnemonic.

The same mnemonic yields a different account under every derivation path,
and wallets have used several paths over time. When a user imports a phrase
we therefore look for the account they actually used:

1. Derive the keypair at the default path and query its balance. If it holds
   funds, it wins and nothing else is queried.
2. Otherwise derive each fallback path in order and query its balance; the
   first candidate with a positive balance wins.
3. If nothing is funded, fall back to the default keypair.

Balance queries run one at a time, in list order, so that "first funded
candidate" is well defined. A query that fails (RPC error, HTTP failure,
timeout) only disqualifies that candidate: it is logged and counted as a zero
balance. Cancelling the surrounding task aborts the whole search.

Examples:
    ::

        from koii_sdk.async_client import RpcClient
        from koii_sdk.hd import solana_derivation_paths
        from koii_sdk.recovery import recover_keypair

        client = RpcClient("https://api.mainnet-beta.solana.com")
        result = await recover_keypair(
            phrase,
            client.get_balance,
            "m/44'/501'/0'/0'",
            solana_derivation_paths(),
        )
        print(result.keypair.public_key, result.path, result.balance)
"""

from __future__ import annotations

import asyncio
import logging
import unittest
import unittest.mock
from dataclasses import dataclass
from typing import Awaitable, Callable, Iterable

import httpx

from .errors import InvalidDerivationPathError, NetworkError
from .hd import (
    DerivationPath,
    PathLike,
    as_derivation_path,
    mnemonic_to_seed,
    solana_derivation_paths,
)
from .keypair import Keypair

BalanceQuery = Callable[[str], Awaitable[int]]

# Failures that disqualify one candidate without aborting the search.
RECOVERABLE_QUERY_ERRORS = (NetworkError, httpx.HTTPError, asyncio.TimeoutError)


@dataclass(frozen=True)
class RecoveredKeypair:
    """The selected candidate, the path it came from and its observed balance."""

    keypair: Keypair
    path: DerivationPath
    balance: int


def derive_keypair(seed: bytes, path: PathLike) -> Keypair:
    return Keypair.from_seed(as_derivation_path(path).derive(seed))


async def recover_keypair(
    mnemonic: str,
    balance_of: BalanceQuery,
    default_path: PathLike,
    fallback_paths: Iterable[PathLike] = (),
) -> RecoveredKeypair:
    """Find the first funded keypair for ``mnemonic``.

    Args:
        mnemonic: BIP-39 phrase.
        balance_of: Coroutine returning the balance of a base58 public key.
        default_path: Path tried first and returned when nothing is funded.
        fallback_paths: Ordered candidates tried when the default is empty.

    Returns:
        The chosen keypair. It is always derived from ``default_path`` or
        one of ``fallback_paths``.

    Raises:
        InvalidMnemonicError: The phrase fails BIP-39 validation.
        InvalidDerivationPathError: ``default_path`` is unusable.
    """
    seed = mnemonic_to_seed(mnemonic)
    default = as_derivation_path(default_path)
    keypair = derive_keypair(seed, default)

    balance = await _query_balance(balance_of, keypair, default)
    if balance > 0:
        return RecoveredKeypair(keypair, default, balance)

    for candidate_path in fallback_paths:
        try:
            path = as_derivation_path(candidate_path)
            candidate = derive_keypair(seed, path)
        except InvalidDerivationPathError as e:
            logging.warning(f"Skipping derivation path {candidate_path}: {e}")
            continue

        candidate_balance = await _query_balance(balance_of, candidate, path)
        if candidate_balance > 0:
            logging.debug(f"Recovered funded account at {path}")
            return RecoveredKeypair(candidate, path, candidate_balance)

    return RecoveredKeypair(keypair, default, 0)


async def _query_balance(
    balance_of: BalanceQuery, keypair: Keypair, path: DerivationPath
) -> int:
    try:
        return await balance_of(keypair.public_key)
    except RECOVERABLE_QUERY_ERRORS as e:
        logging.warning(f"Balance query failed for {path}, treating as empty: {e}")
        return 0


class Test(unittest.IsolatedAsyncioTestCase):
    MNEMONIC = (
        "neglect trigger better derive lawsuit erosion cry online private rib vehicle drop"
    )
    MAIN_ADDRESS = "9cGCJvVacp5V6xjeshprS3KDN3e5VwEUszHmxxaZuHmJ"
    SUB_ADDRESS = "5f6r16czBTinZiNdW7TnDHLWS2Hvt3eAyqZWyWQhur7j"
    SUB_KEY = (
        "198,5,157,173,48,253,15,5,119,7,41,27,252,169,165,190,24,129,196,37,113,187,"
        "191,172,230,172,221,90,135,0,71,0,69,49,109,96,73,35,196,99,141,237,132,184,"
        "222,79,76,22,199,153,39,2,164,51,237,174,243,134,18,50,7,153,127,170"
    )
    DEFAULT_PATH = "m/44'/501'/0'/0'"

    def setUp(self):
        self.fallback = solana_derivation_paths()
        seed = mnemonic_to_seed(self.MNEMONIC)
        self.default_address = derive_keypair(seed, self.DEFAULT_PATH).public_key
        self.fallback_addresses = [
            derive_keypair(seed, path).public_key for path in self.fallback
        ]

    def _funded(self, address: str, amount: int = 1_000_000_000):
        async def balance_of(public_key: str) -> int:
            return amount if public_key == address else 0

        return unittest.mock.AsyncMock(side_effect=balance_of)

    async def test_recovers_funded_sub_account(self):
        balance_of = self._funded(self.SUB_ADDRESS)

        result = await recover_keypair(
            self.MNEMONIC, balance_of, self.DEFAULT_PATH, self.fallback
        )

        self.assertEqual(self.default_address, self.MAIN_ADDRESS)
        self.assertEqual(result.keypair.public_key, self.SUB_ADDRESS)
        self.assertEqual(result.keypair.private_key_string(), self.SUB_KEY)
        self.assertEqual(result.balance, 1_000_000_000)

    async def test_funded_default_short_circuits(self):
        balance_of = unittest.mock.AsyncMock(return_value=1_000_000_000)

        result = await recover_keypair(
            self.MNEMONIC, balance_of, self.DEFAULT_PATH, self.fallback
        )

        self.assertEqual(result.keypair.public_key, self.MAIN_ADDRESS)
        self.assertEqual(str(result.path), self.DEFAULT_PATH)
        balance_of.assert_awaited_once_with(self.MAIN_ADDRESS)

    async def test_first_funded_fallback_wins(self):
        k = 5
        balance_of = self._funded(self.fallback_addresses[k])

        result = await recover_keypair(
            self.MNEMONIC, balance_of, self.DEFAULT_PATH, self.fallback
        )

        self.assertEqual(result.path, self.fallback[k])
        self.assertEqual(result.keypair.public_key, self.fallback_addresses[k])
        self.assertEqual(balance_of.await_count, k + 2)
        queried = [call.args[0] for call in balance_of.await_args_list]
        self.assertEqual(queried, [self.default_address] + self.fallback_addresses[: k + 1])

    async def test_nothing_funded_returns_default(self):
        balance_of = unittest.mock.AsyncMock(return_value=0)

        result = await recover_keypair(
            self.MNEMONIC, balance_of, self.DEFAULT_PATH, self.fallback
        )

        self.assertEqual(result.keypair.public_key, self.default_address)
        self.assertEqual(result.balance, 0)
        self.assertEqual(balance_of.await_count, 1 + len(self.fallback))
        queried = [call.args[0] for call in balance_of.await_args_list]
        self.assertEqual(queried[1:], self.fallback_addresses)

    async def test_failed_query_counts_as_empty(self):
        failing = self.fallback_addresses[0]
        funded = self.fallback_addresses[1]

        async def balance_of(public_key: str) -> int:
            if public_key == failing:
                raise NetworkError("connection reset", 503)
            if public_key == self.default_address:
                raise httpx.ConnectTimeout("timed out")
            return 7 if public_key == funded else 0

        mock = unittest.mock.AsyncMock(side_effect=balance_of)
        with self.assertLogs(level="WARNING"):
            result = await recover_keypair(
                self.MNEMONIC, mock, self.DEFAULT_PATH, self.fallback
            )

        self.assertEqual(result.keypair.public_key, funded)
        self.assertEqual(mock.await_count, 3)

    async def test_unexpected_errors_propagate(self):
        balance_of = unittest.mock.AsyncMock(side_effect=KeyError("result"))
        with self.assertRaises(KeyError):
            await recover_keypair(
                self.MNEMONIC, balance_of, self.DEFAULT_PATH, self.fallback
            )

    async def test_invalid_mnemonic_queries_nothing(self):
        from .errors import InvalidMnemonicError

        balance_of = unittest.mock.AsyncMock(return_value=0)
        with self.assertRaises(InvalidMnemonicError):
            await recover_keypair(
                " ".join(["abandon"] * 12), balance_of, self.DEFAULT_PATH, self.fallback
            )
        balance_of.assert_not_awaited()

    async def test_invalid_fallback_path_is_skipped(self):
        funded = self.fallback_addresses[1]
        self.assertNotEqual(funded, self.default_address)
        balance_of = self._funded(funded)

        with self.assertLogs(level="WARNING") as logs:
            result = await recover_keypair(
                self.MNEMONIC,
                balance_of,
                self.DEFAULT_PATH,
                ["m/44'/501'/0/0", self.fallback[1]],
            )

        self.assertIn("Skipping derivation path", logs.output[0])
        self.assertEqual(result.keypair.public_key, funded)
        self.assertEqual(str(result.path), str(self.fallback[1]))
        queried = [call.args[0] for call in balance_of.await_args_list]
        self.assertEqual(queried, [self.default_address, funded])

    async def test_result_always_from_candidate_set(self):
        candidates = {self.default_address, *self.fallback_addresses}
        for funded in [None, self.fallback_addresses[-1], self.default_address]:
            balance_of = self._funded(funded) if funded else unittest.mock.AsyncMock(return_value=0)
            result = await recover_keypair(
                self.MNEMONIC, balance_of, self.DEFAULT_PATH, self.fallback
            )
            self.assertIn(result.keypair.public_key, candidates)


if __name__ == "__main__":
    unittest.main()
