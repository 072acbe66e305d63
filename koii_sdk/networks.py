# Copyright © Aptos Foundation
# SPDX-License-Identifier: Apache-2.0

"""Endpoint resolution for Solana clusters, K2 clusters and Infura-style Ethereum URLs."""

import logging
import re
import unittest
from typing import Dict, Optional, Tuple
from urllib.parse import urlsplit

SOLANA_ENDPOINTS: Dict[str, Dict[str, str]] = {
    "http": {
        "devnet": "http://api.devnet.solana.com",
        "testnet": "http://api.testnet.solana.com",
        "mainnet-beta": "http://solana-mainnet.g.alchemy.com/v2/Ofyia5hQc-c-yfWwI4C9Qa0UcJ5lewDy",
    },
    "https": {
        "devnet": "https://api.devnet.solana.com",
        "testnet": "https://api.testnet.solana.com",
        "mainnet-beta": "https://solana-mainnet.g.alchemy.com/v2/Ofyia5hQc-c-yfWwI4C9Qa0UcJ5lewDy",
    },
}

K2_ENDPOINTS: Dict[str, Dict[str, str]] = {
    "http": {
        "devnet": "http://k2-devnet.koii.live",
        "mainnet-beta": "http://mainnet.koii.network",
    },
    "https": {
        "devnet": "https://k2-devnet.koii.live",
        "mainnet-beta": "https://mainnet.koii.network",
    },
}
K2_TESTNET_URL = "https://testnet.koii.live"

DEFAULT_ETHEREUM_NETWORK = "mainnet"
DEFAULT_INFURA_API_KEY = "f811f2257c4a4cceba5ab9044a1f03d2"

# Host-and-path form without a scheme, e.g. "k2.example.com/rpc".
HOST_PATTERN = re.compile(r"^([\da-z.-]+)\.([a-z.]{2,6})[/\w .-]*$", re.IGNORECASE)


def is_url(value: str) -> bool:
    """True for an absolute URL or a bare host name with an optional path."""
    parts = urlsplit(value)
    if parts.scheme and parts.netloc:
        return True
    return HOST_PATTERN.match(value) is not None


def _resolve(endpoints: Dict[str, Dict[str, str]], cluster: Optional[str], tls: bool) -> str:
    key = "https" if tls else "http"
    if not cluster:
        return endpoints[key]["devnet"]
    url = endpoints[key].get(cluster)
    if url is None:
        raise ValueError(f"Unknown {key} cluster: {cluster}")
    return url


def cluster_api_url(cluster: Optional[str] = None, tls: bool = True) -> str:
    """RPC endpoint for a Solana cluster name; devnet when no name is given."""
    return _resolve(SOLANA_ENDPOINTS, cluster, tls)


def k2_cluster_api_url(cluster: Optional[str] = None, tls: bool = True) -> str:
    """RPC endpoint for a K2 cluster.

    Anything that already looks like a URL is returned untouched, so a custom
    RPC node can be passed wherever a cluster name is accepted.
    """
    if cluster and is_url(cluster):
        return cluster
    if cluster == "testnet":
        return K2_TESTNET_URL
    return _resolve(K2_ENDPOINTS, cluster, tls)


def clarify_ethereum_provider(provider: str) -> Tuple[str, str]:
    """Split ``https://<network>.infura.io/v3/<api key>`` into network and key."""
    try:
        parts = provider.split("/")
        return parts[2].split(".")[0], parts[4]
    except (AttributeError, IndexError) as e:
        logging.error(f"Failed to clarify Ethereum provider: {e}")
        return DEFAULT_ETHEREUM_NETWORK, DEFAULT_INFURA_API_KEY


class Test(unittest.TestCase):
    def test_cluster_api_url(self):
        self.assertEqual(cluster_api_url(), "https://api.devnet.solana.com")
        self.assertEqual(cluster_api_url("testnet"), "https://api.testnet.solana.com")
        self.assertEqual(
            cluster_api_url("devnet", tls=False), "http://api.devnet.solana.com"
        )
        self.assertTrue(cluster_api_url("mainnet-beta").startswith("https://"))

    def test_unknown_cluster(self):
        with self.assertRaises(ValueError) as context:
            cluster_api_url("mainnet")
        self.assertEqual(str(context.exception), "Unknown https cluster: mainnet")

    def test_k2_cluster_api_url(self):
        self.assertEqual(k2_cluster_api_url("testnet"), "https://testnet.koii.live")
        self.assertEqual(
            k2_cluster_api_url("https://my-node.example.com/rpc"),
            "https://my-node.example.com/rpc",
        )
        self.assertEqual(k2_cluster_api_url(), "https://k2-devnet.koii.live")
        with self.assertRaises(ValueError):
            k2_cluster_api_url("moon")

    def test_k2_cluster_api_url_with_query(self):
        url = "https://k2.example.com/" + "a" * 28 + "?key=1"
        self.assertEqual(k2_cluster_api_url(url), url)
        self.assertEqual(k2_cluster_api_url("k2.example.com/rpc"), "k2.example.com/rpc")
        self.assertTrue(is_url("http://127.0.0.1:8899"))
        self.assertFalse(is_url("mainnet-beta"))

    def test_clarify_ethereum_provider(self):
        self.assertEqual(
            clarify_ethereum_provider("https://sepolia.infura.io/v3/abc123"),
            ("sepolia", "abc123"),
        )
        with self.assertLogs(level="ERROR"):
            self.assertEqual(
                clarify_ethereum_provider("localhost"),
                (DEFAULT_ETHEREUM_NETWORK, DEFAULT_INFURA_API_KEY),
            )


if __name__ == "__main__":
    unittest.main()
