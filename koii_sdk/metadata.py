# Copyright © Aptos Foundation
# SPDX-License-Identifier: Apache-2.0

"""
SDK identification for outgoing HTTP requests.

Every client in :mod:`koii_sdk.async_client` sends the ``x-koii-client``
header so that gateways and RPC operators can tell Python SDK traffic apart.

Examples:
    ::

        from koii_sdk.metadata import Metadata

        headers = {Metadata.KOII_HEADER: Metadata.get_koii_header_val()}
        # {"x-koii-client": "koii-python-sdk/0.1.0"}
"""

import importlib.metadata as metadata
import unittest
import unittest.mock

# Package name constant for metadata lookup
PACKAGE_NAME = "koii-sdk"
UNKNOWN_VERSION = "0.0.0"


class Metadata:
    """HTTP header constants for SDK identification."""

    KOII_HEADER = "x-koii-client"

    @staticmethod
    def get_koii_header_val() -> str:
        """Return ``koii-python-sdk/<version>``.

        The version comes from the installed distribution; a source checkout
        that was never installed reports ``0.0.0``.
        """
        try:
            version = metadata.version(PACKAGE_NAME)
        except metadata.PackageNotFoundError:
            version = UNKNOWN_VERSION
        return f"koii-python-sdk/{version}"


class Test(unittest.TestCase):
    def test_header_value(self):
        value = Metadata.get_koii_header_val()
        self.assertTrue(value.startswith("koii-python-sdk/"))

    def test_not_installed(self):
        with unittest.mock.patch.object(
            metadata, "version", side_effect=metadata.PackageNotFoundError
        ):
            self.assertEqual(Metadata.get_koii_header_val(), "koii-python-sdk/0.0.0")


if __name__ == "__main__":
    unittest.main()
