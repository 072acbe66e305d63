# Copyright © Aptos Foundation
# SPDX-License-Identifier: Apache-2.0

"""
Generate an Arweave wallet, sign a bundler payload and read chain state.

Usage::

    python -m examples.arweave_payload
"""

import asyncio

from koii_sdk.arweave import WINSTON_PER_AR, ArweaveTool

from .common import ARWEAVE_GATEWAY_URL


async def main():
    tool = ArweaveTool(ARWEAVE_GATEWAY_URL)
    await tool.generate_wallet()
    print(f"Address: {tool.address}")

    # :!:>section_1
    payload = tool.sign_payload({"data": {"voteId": 1, "direct": "true"}})
    assert ArweaveTool.verify_signature(payload)  # <:!:section_1
    print(f"Signature: {payload['signature'][:32]}...")

    print(f"Balance: {await tool.get_balance() / WINSTON_PER_AR} AR")
    print(f"Block height: {await tool.get_block_height()}")

    await tool.close()


if __name__ == "__main__":
    asyncio.run(main())
