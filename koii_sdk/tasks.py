# Copyright © Aptos Foundation
# SPDX-License-Identifier: Apache-2.0

"""
Client for the Koii task program on K2.

:class:`TaskProgramClient` bundles the RPC connection and the program id that
every call needs. Each builder encodes its instruction data through
:mod:`koii_sdk.instructions` before touching the network, so invalid task
parameters fail without sending anything. Builders then assemble the account
list the program expects and submit the transaction signed by the payer and
any account that must co-sign.

Examples:
    Creating a task::

        from koii_sdk.async_client import RpcClient
        from koii_sdk.keypair import Keypair
        from koii_sdk.tasks import TaskProgramClient

        client = TaskProgramClient(RpcClient("https://testnet.koii.live"))
        await client.establish_connection()
        await client.check_program()

        payer = Keypair.load("./id.json")
        await client.establish_payer(payer)
        created = await client.create_task(
            payer,
            task_name="my-task",
            task_audit_program="bafybei...",
            total_bounty_amount=10,
            bounty_amount_per_round=1,
            space=10_000_000,
            task_description="Crawls things",
            task_executable_network="IPFS",
            round_time=600,
            audit_window=200,
            submission_window=200,
            minimum_stake_amount=5,
        )
        print(created.task_state_info_keypair.public_key, created.stake_pot_account)

Amounts:
    ``create_task`` and ``update_task`` take bounties and stakes in KOII and
    convert them to lamports. ``fund_task`` takes lamports, matching the
    program's ``FundTask`` instruction.
"""

from __future__ import annotations

import logging
import unittest
import unittest.mock
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence, Union

from solders.instruction import AccountMeta, Instruction
from solders.pubkey import Pubkey
from solders.system_program import (
    CreateAccountParams,
    create_account,
    decode_create_account,
)

from .address import solana_public_key
from .async_client import RpcClient
from .errors import (
    FieldTooLongError,
    InsufficientFundsError,
    InvalidTaskParametersError,
    ProgramNotDeployedError,
)
from .instructions import (
    ClaimReward,
    CreateTask,
    FundTask,
    SetActive,
    UpdateTask,
    Whitelist,
    Withdraw,
    decode,
)
from .keypair import Keypair
from .solana import LAMPORTS_PER_SOL, to_lamports

KOII_TASK_PROGRAM_ID = "Koiitask22222222222222222222222222222222222"
CLOCK_PUBLIC_KEY = Pubkey.from_string("SysvarC1ock11111111111111111111111111111111")
SYSTEM_PUBLIC_KEY = Pubkey.from_string("11111111111111111111111111111111")

STAKE_POT_PREFIX = "stakepotaccount"
# Extra lamports added on top of rent exemption for new program accounts.
ACCOUNT_PADDING_LAMPORTS = 1000
FUNDER_ACCOUNT_SPACE = 100
# Fee estimate used by establish_payer: rent for a small account plus a
# generous number of signatures.
FEE_ESTIMATE_SPACE = 1000
LAMPORTS_PER_SIGNATURE = 5000
FEE_ESTIMATE_SIGNATURES = 100

PublicKeyLike = Union[str, Pubkey]
Amount = Union[int, float, str, Decimal]


@dataclass(frozen=True)
class CreatedTask:
    """Accounts created for a new (or updated) task."""

    task_state_info_keypair: Keypair
    stake_pot_account: Pubkey


def stake_pot_account() -> Pubkey:
    """Generate an on-curve public key whose base58 form starts with ``stakepotaccount``."""
    while True:
        candidate = STAKE_POT_PREFIX + Keypair.generate().public_key[len(STAKE_POT_PREFIX):]
        try:
            pubkey = Pubkey.from_string(candidate)
        except ValueError:
            continue
        if pubkey.is_on_curve():
            return pubkey


def _meta(pubkey: PublicKeyLike, is_signer: bool = False, is_writable: bool = False) -> AccountMeta:
    return AccountMeta(solana_public_key(pubkey), is_signer=is_signer, is_writable=is_writable)


def _signer(keypair: Keypair, is_writable: bool = True) -> AccountMeta:
    return _meta(keypair.to_solders().pubkey(), is_signer=True, is_writable=is_writable)


class TaskProgramClient:
    """Connection and program id shared by the task program calls.

    Attributes:
        rpc_client: K2 RPC client used for every request.
        program_id: The deployed task program.
    """

    rpc_client: RpcClient
    program_id: Pubkey

    def __init__(
        self, rpc_client: RpcClient, program_id: PublicKeyLike = KOII_TASK_PROGRAM_ID
    ):
        self.rpc_client = rpc_client
        self.program_id = solana_public_key(program_id)

    async def establish_connection(self) -> Dict[str, Any]:
        """Query the node version and log the cluster we are talking to.

        Returns:
            Dict[str, Any]: The node's ``getVersion`` result.
        """
        version = await self.rpc_client.get_version()
        logging.info(
            f"Connection to cluster established: {self.rpc_client.base_url} {version}"
        )
        return version

    async def estimate_fees(self) -> int:
        """Lamports a payer should hold before creating a task.

        The estimate is the rent for a large account plus a fixed number of
        signature fees.
        """
        rent = await self.rpc_client.get_minimum_balance_for_rent_exemption(
            FEE_ESTIMATE_SPACE
        )
        return rent + LAMPORTS_PER_SIGNATURE * FEE_ESTIMATE_SIGNATURES

    async def establish_payer(self, payer: Keypair) -> int:
        """Check that ``payer`` can cover the estimated fees; returns its balance.

        :raises InsufficientFundsError: if the balance is below the estimate
        """
        fees = await self.estimate_fees()
        lamports = await self.rpc_client.get_balance(payer.public_key)
        if lamports < fees:
            logging.error(f"Your balance is not sufficient: {payer.public_key}")
            raise InsufficientFundsError(payer.public_key, lamports, fees)

        logging.info(
            f"Using account {payer.public_key} containing "
            f"{lamports / LAMPORTS_PER_SOL} KOII to pay for fees"
        )
        return lamports

    async def check_program(self):
        """
        :raises ProgramNotDeployedError: if the program account is missing or not
            executable
        """
        program_info = await self.rpc_client.get_account_info(str(self.program_id))
        if program_info is None:
            raise ProgramNotDeployedError(
                "Please use koii testnet or mainnet to deploy the program"
            )
        if not program_info.get("executable"):
            raise ProgramNotDeployedError("Program is not executable")
        logging.info(f"Using program {self.program_id}")

    #
    # Builders
    #

    async def create_task(
        self,
        payer: Keypair,
        task_name: str,
        task_audit_program: str,
        total_bounty_amount: Amount,
        bounty_amount_per_round: Amount,
        space: int,
        task_description: str,
        task_executable_network: str,
        round_time: int,
        audit_window: int,
        submission_window: int,
        minimum_stake_amount: Amount,
        task_metadata: str = "",
        local_vars: str = "",
        koii_vars: Optional[PublicKeyLike] = None,
        allowed_failed_distributions: int = 0,
    ) -> CreatedTask:
        """Create the task state account and register a new task.

        :raises InvalidTaskParametersError: if round_time is shorter than the windows
        :raises FieldTooLongError: if a text field exceeds its width
        """
        instruction = CreateTask(
            task_name=task_name,
            task_description=task_description,
            task_audit_program=task_audit_program,
            task_executable_network=task_executable_network,
            total_bounty_amount=to_lamports(total_bounty_amount),
            bounty_amount_per_round=to_lamports(bounty_amount_per_round),
            round_time=round_time,
            audit_window=audit_window,
            submission_window=submission_window,
            minimum_stake_amount=to_lamports(minimum_stake_amount),
            task_metadata=task_metadata,
            local_vars=local_vars,
            allowed_failed_distributions=allowed_failed_distributions,
        )
        data = instruction.encode()

        task_state = Keypair.generate()
        stake_pot = stake_pot_account()
        await self._create_program_account(payer, task_state, space)

        keys = [
            _signer(payer),
            _signer(task_state),
            _meta(stake_pot, is_writable=True),
            _meta(CLOCK_PUBLIC_KEY),
        ]
        if koii_vars:
            keys.append(_meta(koii_vars))
        await self._send(data, keys, [payer, task_state])
        logging.info(f"Created task {task_state.public_key}")
        return CreatedTask(task_state, stake_pot)

    async def update_task(
        self,
        payer: Keypair,
        task_name: str,
        task_audit_program: str,
        bounty_amount_per_round: Amount,
        space: int,
        task_description: str,
        task_executable_network: str,
        round_time: int,
        audit_window: int,
        submission_window: int,
        minimum_stake_amount: Amount,
        task_metadata: str,
        local_vars: str,
        allowed_failed_distributions: int,
        task_account: PublicKeyLike,
        state_pot_account: PublicKeyLike,
    ) -> CreatedTask:
        """Replace an existing task with a new state account and stake pot."""
        instruction = UpdateTask(
            task_name=task_name,
            task_description=task_description,
            task_audit_program=task_audit_program,
            task_executable_network=task_executable_network,
            bounty_amount_per_round=to_lamports(bounty_amount_per_round),
            round_time=round_time,
            audit_window=audit_window,
            submission_window=submission_window,
            minimum_stake_amount=to_lamports(minimum_stake_amount),
            task_metadata=task_metadata,
            local_vars=local_vars,
            allowed_failed_distributions=allowed_failed_distributions,
        )
        data = instruction.encode()

        new_task_state = Keypair.generate()
        new_stake_pot = stake_pot_account()
        await self._create_program_account(payer, new_task_state, space)

        keys = [
            _signer(payer),
            _meta(task_account, is_writable=True),
            _meta(state_pot_account, is_writable=True),
            _meta(CLOCK_PUBLIC_KEY),
            _signer(new_task_state),
            _meta(new_stake_pot, is_writable=True),
        ]
        await self._send(data, keys, [payer, new_task_state])
        logging.info(f"Updated task {task_account} to {new_task_state.public_key}")
        return CreatedTask(new_task_state, new_stake_pot)

    async def whitelist(
        self,
        payer: Keypair,
        task_state_info_address: PublicKeyLike,
        program_keypair: Keypair,
        is_whitelisted: bool,
    ) -> str:
        """Add a task to, or remove it from, the program whitelist.

        Args:
            payer: Pays the transaction fee.
            task_state_info_address: Task state account to update.
            program_keypair: The program owner key; only it may whitelist.
            is_whitelisted: New whitelist flag.

        Returns:
            str: Signature of the confirmed transaction.

        Examples:
            Whitelisting a freshly created task::

                created = await client.create_task(payer, ...)
                await client.whitelist(
                    payer, created.task_state_info_keypair.public_key, owner, True
                )
        """
        logging.info(f"Whitelist signed by {program_keypair.public_key}")
        keys = [
            _meta(task_state_info_address, is_writable=True),
            _signer(program_keypair, is_writable=False),
        ]
        return await self._send(
            Whitelist(is_whitelisted=is_whitelisted).encode(),
            keys,
            [payer, program_keypair],
        )

    async def set_active(
        self, payer: Keypair, task_state_info_address: PublicKeyLike, is_active: bool
    ) -> str:
        """Open or close a task to new submissions.

        ``payer`` must be the task manager and signs as such.

        Returns:
            str: Signature of the confirmed transaction.
        """
        keys = [
            _meta(task_state_info_address, is_writable=True),
            _signer(payer, is_writable=False),
        ]
        return await self._send(SetActive(is_active=is_active).encode(), keys, [payer])

    async def claim_reward(
        self,
        payer: Keypair,
        task_state_info_address: PublicKeyLike,
        stake_pot_account: PublicKeyLike,
        beneficiary_account: PublicKeyLike,
        claimer: Keypair,
    ) -> str:
        """Pay out the reward ``claimer`` earned on a task.

        Args:
            payer: Pays the transaction fee.
            task_state_info_address: Task the reward was earned on.
            stake_pot_account: The task's stake pot the reward is drawn from.
            beneficiary_account: Account that receives the lamports.
            claimer: Node key the reward was assigned to.

        Returns:
            str: Signature of the confirmed transaction.
        """
        keys = [
            _meta(task_state_info_address, is_writable=True),
            _signer(claimer),
            _meta(stake_pot_account, is_writable=True),
            _meta(beneficiary_account, is_writable=True),
        ]
        return await self._send(ClaimReward().encode(), keys, [payer, claimer])

    async def fund_task(
        self,
        payer: Keypair,
        task_state_info_address: PublicKeyLike,
        stake_pot_account: PublicKeyLike,
        amount: int,
    ) -> str:
        """Move ``amount`` lamports into a task through a temporary funder account."""
        data = FundTask(amount=amount).encode()
        funder = Keypair.generate()
        logging.info(f"Making new account {funder.public_key}")
        await self._create_program_account(
            payer, funder, FUNDER_ACCOUNT_SPACE, extra_lamports=amount
        )

        keys = [
            _meta(task_state_info_address, is_writable=True),
            _signer(funder),
            _meta(stake_pot_account, is_writable=True),
            _meta(SYSTEM_PUBLIC_KEY),
            _meta(CLOCK_PUBLIC_KEY),
        ]
        return await self._send(data, keys, [payer, funder])

    async def withdraw(
        self, payer: Keypair, task_state_info_address: PublicKeyLike, submitter: Keypair
    ) -> str:
        """Withdraw ``submitter``'s stake from a task."""
        keys = [
            _meta(task_state_info_address, is_writable=True),
            _signer(submitter),
            _meta(CLOCK_PUBLIC_KEY),
        ]
        return await self._send(Withdraw().encode(), keys, [payer, submitter])

    async def _create_program_account(
        self, payer: Keypair, account: Keypair, space: int, extra_lamports: int = 0
    ) -> str:
        rent = await self.rpc_client.get_minimum_balance_for_rent_exemption(space)
        instruction = create_account(
            CreateAccountParams(
                from_pubkey=payer.to_solders().pubkey(),
                to_pubkey=account.to_solders().pubkey(),
                lamports=extra_lamports + rent + ACCOUNT_PADDING_LAMPORTS,
                space=space,
                owner=self.program_id,
            )
        )
        return await self.rpc_client.send_and_confirm_transaction(
            [instruction], [payer, account]
        )

    async def _send(
        self, data: bytes, keys: List[AccountMeta], signers: Sequence[Keypair]
    ) -> str:
        instruction = Instruction(self.program_id, data, keys)
        return await self.rpc_client.send_and_confirm_transaction([instruction], signers)


class Test(unittest.IsolatedAsyncioTestCase):
    RENT = 5000

    async def asyncSetUp(self):
        self.rpc = unittest.mock.AsyncMock(spec=RpcClient)
        self.rpc.base_url = "https://testnet.koii.live"
        self.rpc.get_minimum_balance_for_rent_exemption.return_value = self.RENT
        self.rpc.send_and_confirm_transaction.return_value = "5sig"
        self.client = TaskProgramClient(self.rpc)
        self.payer = Keypair.generate()
        self.task_state = Keypair.generate().public_key
        self.stake_pot = stake_pot_account()

    def sent(self, index: int) -> Instruction:
        (instructions, _) = self.rpc.send_and_confirm_transaction.await_args_list[index].args
        return instructions[0]

    def signers(self, index: int) -> List[Keypair]:
        return list(self.rpc.send_and_confirm_transaction.await_args_list[index].args[1])

    def accounts(self, instruction: Instruction):
        return [
            (str(meta.pubkey), meta.is_signer, meta.is_writable)
            for meta in instruction.accounts
        ]

    def test_stake_pot_account(self):
        pubkey = stake_pot_account()
        self.assertTrue(str(pubkey).startswith(STAKE_POT_PREFIX))
        self.assertTrue(pubkey.is_on_curve())

    async def test_create_task(self):
        koii_vars = Keypair.generate().public_key
        created = await self.client.create_task(
            self.payer,
            task_name="abc",
            task_audit_program="bafybeigdyrzt5sfp7udm7hu76uh7y26nf3efuylqabf3oclgtqy55fbzdi",
            total_bounty_amount=10,
            bounty_amount_per_round=1,
            space=1000,
            task_description="A task that does things",
            task_executable_network="IPFS",
            round_time=600,
            audit_window=200,
            submission_window=200,
            minimum_stake_amount=5,
            koii_vars=koii_vars,
            allowed_failed_distributions=3,
        )

        self.assertEqual(self.rpc.send_and_confirm_transaction.await_count, 2)
        state_address = created.task_state_info_keypair.public_key

        params = decode_create_account(self.sent(0))
        self.assertEqual(params["lamports"], self.RENT + ACCOUNT_PADDING_LAMPORTS)
        self.assertEqual(params["space"], 1000)
        self.assertEqual(params["owner"], self.client.program_id)
        self.assertEqual(str(params["to_pubkey"]), state_address)
        self.rpc.get_minimum_balance_for_rent_exemption.assert_awaited_once_with(1000)

        instruction = self.sent(1)
        self.assertEqual(str(instruction.program_id), KOII_TASK_PROGRAM_ID)
        self.assertEqual(
            self.accounts(instruction),
            [
                (self.payer.public_key, True, True),
                (state_address, True, True),
                (str(created.stake_pot_account), False, True),
                (str(CLOCK_PUBLIC_KEY), False, False),
                (koii_vars, False, False),
            ],
        )
        self.assertEqual(
            self.signers(1), [self.payer, created.task_state_info_keypair]
        )

        decoded = decode(bytes(instruction.data))
        self.assertIsInstance(decoded, CreateTask)
        self.assertEqual(decoded.total_bounty_amount, 10 * LAMPORTS_PER_SOL)
        self.assertEqual(decoded.minimum_stake_amount, 5 * LAMPORTS_PER_SOL)
        self.assertEqual(decoded.task_name, "abc")
        self.assertEqual(decoded.allowed_failed_distributions, 3)

    async def test_create_task_validates_before_sending(self):
        with self.assertRaises(InvalidTaskParametersError):
            await self.client.create_task(
                self.payer, "abc", "audit", 10, 1, 1000, "desc", "IPFS",
                round_time=300, audit_window=200, submission_window=200,
                minimum_stake_amount=5,
            )
        with self.assertRaises(FieldTooLongError):
            await self.client.create_task(
                self.payer, "a" * 25, "audit", 10, 1, 1000, "desc", "IPFS",
                round_time=600, audit_window=200, submission_window=200,
                minimum_stake_amount=5,
            )
        self.rpc.send_and_confirm_transaction.assert_not_awaited()
        self.rpc.get_minimum_balance_for_rent_exemption.assert_not_awaited()

    async def test_update_task(self):
        created = await self.client.update_task(
            self.payer, "abc", "audit", 2, 1000, "desc", "IPFS",
            600, 200, 200, 5, "", "", 3,
            task_account=self.task_state,
            state_pot_account=str(self.stake_pot),
        )

        instruction = self.sent(1)
        self.assertEqual(
            self.accounts(instruction),
            [
                (self.payer.public_key, True, True),
                (self.task_state, False, True),
                (str(self.stake_pot), False, True),
                (str(CLOCK_PUBLIC_KEY), False, False),
                (created.task_state_info_keypair.public_key, True, True),
                (str(created.stake_pot_account), False, True),
            ],
        )
        decoded = decode(bytes(instruction.data))
        self.assertIsInstance(decoded, UpdateTask)
        self.assertEqual(decoded.bounty_amount_per_round, 2 * LAMPORTS_PER_SOL)

    async def test_set_active(self):
        signature = await self.client.set_active(self.payer, self.task_state, True)

        self.assertEqual(signature, "5sig")
        instruction = self.sent(0)
        self.assertEqual(bytes(instruction.data), bytes([6]) + (1).to_bytes(8, "little"))
        self.assertEqual(
            self.accounts(instruction),
            [(self.task_state, False, True), (self.payer.public_key, True, False)],
        )
        self.assertEqual(self.signers(0), [self.payer])

    async def test_whitelist(self):
        program_keypair = Keypair.generate()
        await self.client.whitelist(self.payer, self.task_state, program_keypair, False)

        instruction = self.sent(0)
        self.assertEqual(bytes(instruction.data), bytes([5]) + bytes(8))
        self.assertEqual(
            self.accounts(instruction),
            [(self.task_state, False, True), (program_keypair.public_key, True, False)],
        )
        self.assertEqual(self.signers(0), [self.payer, program_keypair])

    async def test_claim_reward(self):
        claimer = Keypair.generate()
        beneficiary = Keypair.generate().public_key
        await self.client.claim_reward(
            self.payer, self.task_state, self.stake_pot, beneficiary, claimer
        )

        instruction = self.sent(0)
        self.assertEqual(bytes(instruction.data), bytes([7]))
        self.assertEqual(
            self.accounts(instruction),
            [
                (self.task_state, False, True),
                (claimer.public_key, True, True),
                (str(self.stake_pot), False, True),
                (beneficiary, False, True),
            ],
        )
        self.assertEqual(self.signers(0), [self.payer, claimer])

    async def test_fund_task(self):
        await self.client.fund_task(self.payer, self.task_state, self.stake_pot, 250)

        params = decode_create_account(self.sent(0))
        self.assertEqual(params["lamports"], 250 + self.RENT + ACCOUNT_PADDING_LAMPORTS)
        self.assertEqual(params["space"], FUNDER_ACCOUNT_SPACE)
        funder = self.signers(0)[1]
        self.assertEqual(str(params["to_pubkey"]), funder.public_key)

        instruction = self.sent(1)
        self.assertEqual(decode(bytes(instruction.data)), FundTask(amount=250))
        self.assertEqual(
            self.accounts(instruction),
            [
                (self.task_state, False, True),
                (funder.public_key, True, True),
                (str(self.stake_pot), False, True),
                (str(SYSTEM_PUBLIC_KEY), False, False),
                (str(CLOCK_PUBLIC_KEY), False, False),
            ],
        )
        self.assertEqual(self.signers(1), [self.payer, funder])

    async def test_withdraw(self):
        submitter = Keypair.generate()
        await self.client.withdraw(self.payer, self.task_state, submitter)

        instruction = self.sent(0)
        self.assertEqual(bytes(instruction.data), bytes([10]))
        self.assertEqual(
            self.accounts(instruction),
            [
                (self.task_state, False, True),
                (submitter.public_key, True, True),
                (str(CLOCK_PUBLIC_KEY), False, False),
            ],
        )

    async def test_establish_payer(self):
        self.rpc.get_balance.return_value = 10 * LAMPORTS_PER_SOL
        self.assertEqual(
            await self.client.establish_payer(self.payer), 10 * LAMPORTS_PER_SOL
        )

        self.rpc.get_balance.return_value = 0
        with self.assertLogs(level="ERROR"):
            with self.assertRaises(InsufficientFundsError) as context:
                await self.client.establish_payer(self.payer)
        self.assertEqual(
            context.exception.required,
            self.RENT + LAMPORTS_PER_SIGNATURE * FEE_ESTIMATE_SIGNATURES,
        )

    async def test_check_program(self):
        self.rpc.get_account_info.return_value = None
        with self.assertRaises(ProgramNotDeployedError):
            await self.client.check_program()

        self.rpc.get_account_info.return_value = {"executable": False}
        with self.assertRaises(ProgramNotDeployedError):
            await self.client.check_program()

        self.rpc.get_account_info.return_value = {"executable": True}
        await self.client.check_program()
        self.rpc.get_account_info.assert_awaited_with(KOII_TASK_PROGRAM_ID)

    async def test_establish_connection(self):
        self.rpc.get_version.return_value = {"solana-core": "1.16.6"}
        with self.assertLogs(level="INFO"):
            version = await self.client.establish_connection()
        self.assertEqual(version["solana-core"], "1.16.6")


if __name__ == "__main__":
    unittest.main()
