# Copyright © Aptos Foundation
# SPDX-License-Identifier: Apache-2.0

"""
Asynchronous clients for the chains the wallet tools talk to.

Key Features:
- **RpcClient**: JSON-RPC 2.0 over HTTP. Speaks the Solana/K2 methods used by
  the wallet tools and the task program client, plus the handful of EVM
  methods the Ethereum tool needs.
- **ArweaveClient**: REST client for an Arweave gateway, with GraphQL queries
  through ``python_graphql_client``.
- **ClientConfig**: shared transport and confirmation settings.

Error Handling:
    HTTP responses with a status code of 400 or more, and JSON-RPC responses
    carrying an ``error`` object, raise :class:`koii_sdk.errors.NetworkError`
    with the remote message, the HTTP status and the RPC error code. Nothing is
    retried.

Examples:
    Query a K2 balance::

        from koii_sdk.async_client import RpcClient

        client = RpcClient("https://testnet.koii.live")
        lamports = await client.get_balance("9cGCJvVacp5V6xjeshprS3KDN3e5VwEUszHmxxaZuHmJ")
        await client.close()

    Submit instructions::

        signature = await client.send_and_confirm_transaction(
            [instruction], [payer_keypair]
        )

    Read an Arweave wallet::

        from koii_sdk.async_client import ArweaveClient

        gateway = ArweaveClient("https://arweave.net")
        winston = await gateway.wallet_balance(address)
        await gateway.close()

Note:
    All client operations are async and must be awaited. The clients use httpx
    for HTTP/2 support and connection pooling; always call ``close()``.
"""

import asyncio
import base64
import logging
import time
import unittest
import unittest.mock
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Union

import httpx
import python_graphql_client
from solders.hash import Hash
from solders.instruction import Instruction
from solders.transaction import Transaction

from .errors import NetworkError
from .keypair import Keypair
from .metadata import Metadata

COMMITMENT_LEVELS = ["processed", "confirmed", "finalized"]


@dataclass
class ClientConfig:
    """Configuration shared by the RPC and gateway clients.

    Confirmation Parameters:
        commitment: Commitment used for reads and required before a
            submitted transaction counts as confirmed (default: "confirmed")
        transaction_wait_in_seconds: Upper bound for confirmation polling
            (default: 30)
        poll_interval: Seconds between signature status polls (default: 0.5)

    Network Parameters:
        http2: Enable HTTP/2 (default: True)
        timeout: Read/connect timeout in seconds (default: 60.0)
        api_key: Optional bearer token for authenticated endpoints

    Examples:
        ::

            config = ClientConfig(commitment="finalized", transaction_wait_in_seconds=60)
            client = RpcClient(url, config)
    """

    commitment: str = "confirmed"
    transaction_wait_in_seconds: int = 30
    poll_interval: float = 0.5
    http2: bool = True
    timeout: float = 60.0
    api_key: Optional[str] = None


def _http_client(client_config: ClientConfig) -> httpx.AsyncClient:
    # Default limits
    limits = httpx.Limits()
    # Do not set a pool timeout, jobs wait as long as progress is being made.
    timeout = httpx.Timeout(client_config.timeout, pool=None)
    headers = {Metadata.KOII_HEADER: Metadata.get_koii_header_val()}
    if client_config.api_key:
        headers["Authorization"] = f"Bearer {client_config.api_key}"
    return httpx.AsyncClient(
        http2=client_config.http2,
        limits=limits,
        timeout=timeout,
        headers=headers,
    )


def _hex_quantity(value: Union[int, str]) -> str:
    return hex(value) if isinstance(value, int) else value


class RpcClient:
    """JSON-RPC client for Solana, K2 and EVM endpoints.

    Attributes:
        base_url: Endpoint every request is posted to.
        client: The underlying ``httpx.AsyncClient``.
        client_config: Commitment and timeout settings.
    """

    base_url: str
    client: httpx.AsyncClient
    client_config: ClientConfig
    _request_id: int

    def __init__(self, base_url: str, client_config: ClientConfig = ClientConfig()):
        self.base_url = base_url
        self.client = _http_client(client_config)
        self.client_config = client_config
        self._request_id = 0

    async def close(self):
        await self.client.aclose()

    async def call(self, method: str, params: Optional[List[Any]] = None) -> Any:
        """Invoke a JSON-RPC method and return its ``result`` member.

        :raises NetworkError: on HTTP errors or a JSON-RPC ``error`` object
        """
        self._request_id += 1
        payload = {
            "jsonrpc": "2.0",
            "id": self._request_id,
            "method": method,
            "params": [] if params is None else params,
        }
        response = await self.client.post(self.base_url, json=payload)
        if response.status_code >= 400:
            raise NetworkError(f"{response.text} - {method}", response.status_code)

        body = response.json()
        error = body.get("error")
        if error:
            raise NetworkError(
                f"{error.get('message', error)} - {method}",
                response.status_code,
                error.get("code"),
            )
        return body.get("result")

    #
    # Solana / K2
    #

    def _commitment(self, commitment: Optional[str] = None) -> Dict[str, str]:
        return {"commitment": commitment or self.client_config.commitment}

    async def get_balance(self, public_key: str, commitment: Optional[str] = None) -> int:
        """Balance of ``public_key`` in lamports."""
        result = await self.call(
            "getBalance", [str(public_key), self._commitment(commitment)]
        )
        return int(result["value"])

    async def get_version(self) -> Dict[str, Any]:
        """Software version reported by the node.

        Returns:
            Dict[str, Any]: The ``getVersion`` result, e.g.
            ``{"solana-core": "1.16.0", "feature-set": 123}``.

        Raises:
            NetworkError: If the node rejects the request.
        """
        return await self.call("getVersion")

    async def get_account_info(self, public_key: str) -> Optional[Dict[str, Any]]:
        """Account data (base64 encoded) or ``None`` when the account does not exist."""
        config = self._commitment()
        config["encoding"] = "base64"
        result = await self.call("getAccountInfo", [str(public_key), config])
        return result["value"]

    async def get_latest_blockhash(self) -> Hash:
        """Most recent blockhash at the configured commitment.

        Every transaction must reference a recent blockhash, so this is called
        once per submitted transaction.
        """
        result = await self.call("getLatestBlockhash", [self._commitment()])
        return Hash.from_string(result["value"]["blockhash"])

    async def get_minimum_balance_for_rent_exemption(self, space: int) -> int:
        """Lamports an account of ``space`` data bytes needs to be rent exempt.

        Args:
            space: Size of the account data in bytes.

        Returns:
            int: Minimum balance in lamports.
        """
        result = await self.call(
            "getMinimumBalanceForRentExemption", [space, self._commitment()]
        )
        return int(result)

    async def send_transaction(self, transaction: Transaction) -> str:
        """Submit a signed transaction, returning its base58 signature."""
        encoded = base64.b64encode(bytes(transaction)).decode("ascii")
        config = {
            "encoding": "base64",
            "preflightCommitment": self.client_config.commitment,
        }
        return await self.call("sendTransaction", [encoded, config])

    async def get_signature_statuses(
        self, signatures: Sequence[str]
    ) -> List[Optional[Dict[str, Any]]]:
        result = await self.call(
            "getSignatureStatuses",
            [list(signatures), {"searchTransactionHistory": False}],
        )
        return result["value"]

    async def confirm_transaction(self, signature: str) -> Dict[str, Any]:
        """
        Waits up to the duration specified in client_config for a transaction to
        reach the configured commitment.

        :raises NetworkError: if the transaction failed or did not confirm in time
        """
        required = COMMITMENT_LEVELS.index(self.client_config.commitment)
        deadline = time.monotonic() + self.client_config.transaction_wait_in_seconds

        while True:
            status = (await self.get_signature_statuses([signature]))[0]
            if status is not None:
                if status.get("err"):
                    raise NetworkError(
                        f"Transaction {signature} failed: {status['err']}"
                    )
                reached = status.get("confirmationStatus") or "processed"
                if COMMITMENT_LEVELS.index(reached) >= required:
                    return status
            if time.monotonic() >= deadline:
                raise NetworkError(f"transaction {signature} timed out")
            await asyncio.sleep(self.client_config.poll_interval)

    async def send_and_confirm_transaction(
        self, instructions: Sequence[Instruction], signers: Sequence[Keypair]
    ) -> str:
        """Sign ``instructions`` with ``signers`` (the first one pays) and submit them."""
        blockhash = await self.get_latest_blockhash()
        solders_signers = [signer.to_solders() for signer in signers]
        transaction = Transaction.new_signed_with_payer(
            list(instructions),
            solders_signers[0].pubkey(),
            solders_signers,
            blockhash,
        )
        signature = await self.send_transaction(transaction)
        await self.confirm_transaction(signature)
        logging.info(f"Transaction {signature} confirmed")
        return signature

    #
    # EVM
    #

    async def eth_get_balance(self, address: str, block: str = "latest") -> int:
        """Balance of ``address`` in wei at ``block``.

        Args:
            address: 0x-prefixed account address.
            block: Block tag or hex block number.

        Returns:
            int: The balance decoded from the hex quantity.
        """
        return int(await self.call("eth_getBalance", [address, block]), 16)

    async def eth_get_transaction_count(
        self, address: str, block: str = "pending"
    ) -> int:
        return int(await self.call("eth_getTransactionCount", [address, block]), 16)

    async def eth_gas_price(self) -> int:
        """Current gas price in wei."""
        return int(await self.call("eth_gasPrice"), 16)

    async def eth_chain_id(self) -> int:
        return int(await self.call("eth_chainId"), 16)

    async def eth_estimate_gas(self, transaction: Dict[str, Any]) -> int:
        """Gas units ``transaction`` would consume.

        Integer values are sent as hex quantities; strings are passed through.
        """
        params = {key: _hex_quantity(value) for key, value in transaction.items()}
        return int(await self.call("eth_estimateGas", [params]), 16)

    async def eth_send_raw_transaction(self, raw_transaction: Union[bytes, str]) -> str:
        """Broadcast a signed transaction.

        Args:
            raw_transaction: RLP-encoded signed transaction, as bytes or
                0x-prefixed hex.

        Returns:
            str: The transaction hash.
        """
        if isinstance(raw_transaction, bytes):
            raw_transaction = "0x" + bytes(raw_transaction).hex()
        return await self.call("eth_sendRawTransaction", [raw_transaction])

    async def eth_get_transaction_receipt(
        self, tx_hash: str
    ) -> Optional[Dict[str, Any]]:
        """Receipt of ``tx_hash``, or ``None`` while it is still pending."""
        return await self.call("eth_getTransactionReceipt", [tx_hash])


class ArweaveClient:
    """REST and GraphQL client for an Arweave gateway."""

    base_url: str
    client: httpx.AsyncClient
    graphql: python_graphql_client.GraphqlClient

    def __init__(
        self,
        gateway_url: str = "https://arweave.net",
        client_config: ClientConfig = ClientConfig(),
    ):
        self.base_url = gateway_url.rstrip("/")
        self.client = _http_client(client_config)
        headers = {Metadata.KOII_HEADER: Metadata.get_koii_header_val()}
        self.graphql = python_graphql_client.GraphqlClient(
            endpoint=f"{self.base_url}/graphql", headers=headers
        )

    async def close(self):
        await self.client.aclose()

    async def wallet_balance(self, address: str) -> int:
        """Balance of ``address`` in winston."""
        response = await self._get(f"wallet/{address}/balance")
        if response.status_code >= 400:
            raise NetworkError(f"{response.text} - {address}", response.status_code)
        return int(response.text)

    async def info(self) -> Dict[str, Any]:
        """Gateway ``/info`` document: network name, height and current block.

        Raises:
            NetworkError: If the gateway answers with an HTTP error.
        """
        response = await self._get("info")
        if response.status_code >= 400:
            raise NetworkError(response.text, response.status_code)
        return response.json()

    async def block_height(self) -> int:
        """Current block height as reported by :meth:`info`."""
        return int((await self.info())["height"])

    async def transaction(self, tx_id: str) -> Optional[Dict[str, Any]]:
        """Fetch a transaction; ``None`` while the gateway reports it as pending."""
        response = await self._get(f"tx/{tx_id}")
        if response.status_code == 202:
            return None
        if response.status_code >= 400:
            raise NetworkError(f"{response.text} - {tx_id}", response.status_code)
        return response.json()

    async def tx_anchor(self) -> str:
        """Anchor (``last_tx``) to embed in a new transaction.

        Returns:
            str: Base64url anchor text as served by the gateway.
        """
        response = await self._get("tx_anchor")
        if response.status_code >= 400:
            raise NetworkError(response.text, response.status_code)
        return response.text

    async def price(self, byte_size: int = 0, target: Optional[str] = None) -> int:
        """Winston fee for ``byte_size`` bytes of data, optionally sent to ``target``."""
        endpoint = f"price/{byte_size}" + (f"/{target}" if target else "")
        response = await self._get(endpoint)
        if response.status_code >= 400:
            raise NetworkError(response.text, response.status_code)
        return int(response.text)

    async def submit_transaction(self, transaction: Dict[str, Any]):
        """Post a signed transaction document to ``/tx``.

        Args:
            transaction: The signed transaction, with ``id`` and ``signature``
                already filled in.

        Raises:
            NetworkError: If the gateway rejects the transaction.
        """
        response = await self.client.post(f"{self.base_url}/tx", json=transaction)
        if response.status_code >= 400:
            raise NetworkError(
                f"{response.text} - {transaction.get('id')}", response.status_code
            )

    async def gql(
        self, query: str, variables: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        """Run a GraphQL query against the gateway.

        Args:
            query: GraphQL query text.
            variables: Values for the query variables.

        Returns:
            Dict[str, Any]: The ``data`` member of the response.

        Raises:
            NetworkError: If the response carries an ``errors`` list.

        Examples:
            Look up transactions by tag::

                data = await client.gql(
                    "query($tags: [TagFilter!]) { transactions(tags: $tags) { edges { node { id } } } }",
                    {"tags": [{"name": "App-Name", "values": ["koii"]}]},
                )
        """
        result = await self.graphql.execute_async(query, variables or {})
        if result.get("errors"):
            raise NetworkError(str(result["errors"]))
        return result["data"]

    async def _get(self, endpoint: str) -> httpx.Response:
        return await self.client.get(url=f"{self.base_url}/{endpoint}")


class Test(unittest.IsolatedAsyncioTestCase):
    ADDRESS = "9cGCJvVacp5V6xjeshprS3KDN3e5VwEUszHmxxaZuHmJ"
    BLOCKHASH = str(Hash.default())

    def rpc(self, result: Any) -> httpx.Response:
        return httpx.Response(200, json={"jsonrpc": "2.0", "id": 1, "result": result})

    async def asyncSetUp(self):
        self.client = RpcClient(
            "https://testnet.koii.live", ClientConfig(http2=False, poll_interval=0)
        )

    async def asyncTearDown(self):
        await self.client.close()

    async def test_get_balance(self):
        with unittest.mock.patch.object(
            self.client.client, "post", return_value=self.rpc({"value": 42})
        ) as post:
            self.assertEqual(await self.client.get_balance(self.ADDRESS), 42)

        payload = post.call_args.kwargs["json"]
        self.assertEqual(payload["method"], "getBalance")
        self.assertEqual(payload["params"], [self.ADDRESS, {"commitment": "confirmed"}])

    async def test_rpc_error(self):
        response = httpx.Response(
            200,
            json={"jsonrpc": "2.0", "id": 1, "error": {"code": -32602, "message": "Invalid param"}},
        )
        with unittest.mock.patch.object(self.client.client, "post", return_value=response):
            with self.assertRaises(NetworkError) as context:
                await self.client.get_balance("bad")

        self.assertEqual(context.exception.rpc_code, -32602)
        self.assertIn("Invalid param", str(context.exception))

    async def test_http_error(self):
        response = httpx.Response(429, text="Too many requests")
        with unittest.mock.patch.object(self.client.client, "post", return_value=response):
            with self.assertRaises(NetworkError) as context:
                await self.client.get_version()

        self.assertEqual(context.exception.status_code, 429)

    async def test_send_and_confirm_transaction(self):
        from solders.system_program import TransferParams, transfer

        payer = Keypair.generate()
        instruction = transfer(
            TransferParams(
                from_pubkey=payer.to_solders().pubkey(),
                to_pubkey=Keypair.generate().to_solders().pubkey(),
                lamports=1000,
            )
        )
        responses = [
            self.rpc({"context": {"slot": 1}, "value": {"blockhash": self.BLOCKHASH, "lastValidBlockHeight": 10}}),
            self.rpc("5sig"),
            self.rpc({"context": {"slot": 1}, "value": [None]}),
            self.rpc({"context": {"slot": 2}, "value": [{"confirmationStatus": "confirmed", "err": None}]}),
        ]
        with unittest.mock.patch.object(
            self.client.client, "post", side_effect=responses
        ) as post:
            signature = await self.client.send_and_confirm_transaction([instruction], [payer])

        self.assertEqual(signature, "5sig")
        self.assertEqual(post.await_count, 4)
        sent = post.await_args_list[1].kwargs["json"]["params"][0]
        transaction = Transaction.from_bytes(base64.b64decode(sent))
        self.assertEqual(transaction.message.account_keys[0], payer.to_solders().pubkey())
        self.assertEqual(str(transaction.message.recent_blockhash), self.BLOCKHASH)

    async def test_confirm_transaction_failure(self):
        response = self.rpc({"value": [{"confirmationStatus": "processed", "err": {"InstructionError": [0, "Custom"]}}]})
        with unittest.mock.patch.object(self.client.client, "post", return_value=response):
            with self.assertRaises(NetworkError):
                await self.client.confirm_transaction("5sig")

    async def test_confirm_transaction_timeout(self):
        self.client.client_config = ClientConfig(
            transaction_wait_in_seconds=0, poll_interval=0
        )
        with unittest.mock.patch.object(
            self.client.client, "post", return_value=self.rpc({"value": [None]})
        ):
            with self.assertRaises(NetworkError):
                await self.client.confirm_transaction("5sig")

    async def test_eth_quantities(self):
        with unittest.mock.patch.object(
            self.client.client, "post", return_value=self.rpc("0x5208")
        ) as post:
            gas = await self.client.eth_estimate_gas({"to": "0x01", "value": 16})

        self.assertEqual(gas, 21000)
        self.assertEqual(post.call_args.kwargs["json"]["params"], [{"to": "0x01", "value": "0x10"}])

    async def test_arweave_balance(self):
        gateway = ArweaveClient("https://arweave.net/", ClientConfig(http2=False))
        with unittest.mock.patch.object(
            gateway.client, "get", return_value=httpx.Response(200, text="1000000000000")
        ) as get:
            self.assertEqual(await gateway.wallet_balance("abc"), 10**12)

        get.assert_awaited_once_with(url="https://arweave.net/wallet/abc/balance")
        await gateway.close()

    async def test_arweave_pending_transaction(self):
        gateway = ArweaveClient(client_config=ClientConfig(http2=False))
        with unittest.mock.patch.object(
            gateway.client, "get", return_value=httpx.Response(202, text="Pending")
        ):
            self.assertIsNone(await gateway.transaction("abc"))
        with unittest.mock.patch.object(
            gateway.client, "get", return_value=httpx.Response(404, text="Not Found")
        ):
            with self.assertRaises(NetworkError):
                await gateway.transaction("abc")
        await gateway.close()


if __name__ == "__main__":
    unittest.main()
