# Copyright © Aptos Foundation
# SPDX-License-Identifier: Apache-2.0

"""
Create a task on K2, fund it and activate it.

Usage::

    python -m examples.create_task [path/to/payer.json]
"""

import asyncio
import logging
import sys

from koii_sdk.async_client import RpcClient
from koii_sdk.keypair import Keypair
from koii_sdk.networks import k2_cluster_api_url
from koii_sdk.tasks import TaskProgramClient

from .common import KOII_RPC_URL, KOII_WALLET_PATH


async def main(wallet_path: str):
    logging.basicConfig(level=logging.INFO)

    # :!:>section_1
    rpc_client = RpcClient(k2_cluster_api_url(KOII_RPC_URL))
    client = TaskProgramClient(rpc_client)
    await client.establish_connection()
    await client.check_program()  # <:!:section_1

    payer = Keypair.load(wallet_path)
    await client.establish_payer(payer)

    # :!:>section_2
    created = await client.create_task(
        payer,
        task_name="example-task",
        task_audit_program="bafybeigdyrzt5sfp7udm7hu76uh7y26nf3efuylqabf3oclgtqy55fbzdi",
        total_bounty_amount=10,
        bounty_amount_per_round=1,
        space=1_000_000,
        task_description="Example task created from the Python SDK",
        task_executable_network="IPFS",
        round_time=600,
        audit_window=200,
        submission_window=200,
        minimum_stake_amount=5,
        allowed_failed_distributions=3,
    )  # <:!:section_2
    task_state = created.task_state_info_keypair.public_key
    print(f"Task state account: {task_state}")
    print(f"Stake pot account: {created.stake_pot_account}")

    await client.fund_task(payer, task_state, created.stake_pot_account, 1_000_000)
    await client.set_active(payer, task_state, True)

    await rpc_client.close()


if __name__ == "__main__":
    asyncio.run(main(sys.argv[1] if len(sys.argv) > 1 else KOII_WALLET_PATH))
