"""
Transaction execution for Solana.
"""

import asyncio
import base64
import math
from typing import Optional, Sequence, Tuple, Union

import requests
from solana.exceptions import SolanaRpcException
from solana.rpc.async_api import AsyncClient
from solana.rpc.commitment import Commitment, Confirmed
from solana.rpc.core import (
    RPCException,
    TransactionExpiredBlockheightExceededError,
    UnconfirmedTxError,
)
from solana.rpc.types import TxOpts
from solders.hash import Hash
from solders.instruction import Instruction
from solders.keypair import Keypair
from solders.message import MessageV0
from solders.pubkey import Pubkey
from solders.signature import Signature
from solders.system_program import TransferParams, transfer
from solders.transaction import VersionedTransaction

from squadlink.config import CU_LIMIT_MULTIPLIER, LAMPORTS_PER_SOL, MAX_COMPUTE_UNITS
from squadlink.errors import ConfirmationTimeout, RpcError, SubmissionError
from squadlink.solana.fee_oracle import FeeOracle, compute_limit_instruction, compute_price_instruction
from squadlink.solana.models import OptimizedTransaction
from squadlink.solana.rpc import async_rpc_request
from squadlink.solana.squads_program import translate_error, translate_failure
from squadlink.utils.flow_logger import FlowLogger


def sol_to_lamports(amount_sol: float) -> int:
    return int(round(amount_sol * LAMPORTS_PER_SOL))


class TxExecutor:
    """
    Builds, signs, submits and confirms Solana transactions with
    fee optimization and retry handling.
    """

    # Retry backoff in seconds, doubled after every failed attempt
    RETRY_BACKOFF = 2

    def __init__(
        self,
        client: AsyncClient,
        endpoint: str,
        fee_oracle: Optional[FeeOracle] = None,
        flow_logger: Optional[FlowLogger] = None,
        commitment: Commitment = Confirmed,
    ):
        """
        Initialize the transaction executor.

        Args:
            client: Async RPC client of the selected environment
            endpoint: JSON-RPC endpoint used for simulation
            fee_oracle: FeeOracle instance
            flow_logger: Logger for transaction progress
            commitment: Commitment used for confirmation
        """
        self.client = client
        self.endpoint = endpoint
        self.log = flow_logger or FlowLogger("TxExecutor")
        self.fee_oracle = fee_oracle or FeeOracle(endpoint, self.log.child("FeeOracle"))
        self.commitment = commitment

    async def get_latest_blockhash(self) -> Tuple[Hash, int]:
        resp = await self.client.get_latest_blockhash(self.commitment)
        return resp.value.blockhash, resp.value.last_valid_block_height

    async def confirm_transaction(self, signature: Union[str, Signature], last_valid_block_height: Optional[int] = None):
        """
        Wait for a transaction to reach the configured commitment.

        Args:
            signature: Transaction signature
            last_valid_block_height: Expiry of the blockhash the transaction was built with

        Returns:
            Confirmation response

        Raises:
            ConfirmationTimeout: The blockhash expired before confirmation
            SubmissionError: The transaction landed with an error
        """
        if isinstance(signature, str):
            signature = Signature.from_string(signature)

        if last_valid_block_height is None:
            _, last_valid_block_height = await self.get_latest_blockhash()

        try:
            resp = await self.client.confirm_transaction(
                signature,
                self.commitment,
                last_valid_block_height=last_valid_block_height,
            )
        except (UnconfirmedTxError, TransactionExpiredBlockheightExceededError) as e:
            self.log.error(f"Transaction {signature} was not confirmed: {e}")
            raise ConfirmationTimeout(f"Transaction {signature} was not confirmed", str(signature)) from e

        status = resp.value[0] if resp.value else None
        if status is not None and status.err is not None:
            raise translate_failure(f"Transaction {signature} failed: {status.err}")

        return resp

    async def get_simulation_units(
        self,
        instructions: Sequence[Instruction],
        payer: Pubkey,
        lookup_tables: Optional[list] = None,
    ) -> Optional[int]:
        """
        Simulate instructions to find the compute units they consume.

        Args:
            instructions: Instructions to simulate
            payer: Fee payer
            lookup_tables: Address lookup table accounts

        Returns:
            Units consumed, or None when the simulation failed
        """
        test_instructions = [compute_limit_instruction(MAX_COMPUTE_UNITS), *instructions]
        message = MessageV0.try_compile(payer, test_instructions, lookup_tables or [], Hash.default())
        tx = VersionedTransaction.populate(
            message,
            [Signature.default()] * message.header.num_required_signatures,
        )
        encoded = base64.b64encode(bytes(tx)).decode("utf-8")

        try:
            result = await async_rpc_request(self.endpoint, "simulateTransaction", [
                encoded,
                {
                    "encoding": "base64",
                    "sigVerify": False,
                    "replaceRecentBlockhash": True,
                    "commitment": "confirmed",
                },
            ])
        except (RpcError, requests.RequestException) as e:
            self.log.error(f"Simulation request failed: {e}")
            return None

        value = (result or {}).get("value") or {}
        if value.get("err"):
            self.log.error(f"Simulation failed: {value['err']}")
            for line in value.get("logs") or []:
                self.log.details(line)
            return None

        return value.get("unitsConsumed")

    async def _priority_fee_for(self, program_address: Optional[Union[str, Pubkey]]) -> int:
        if program_address is None:
            return self.fee_oracle.default_fee
        fee = await self.fee_oracle.estimate_priority_fee(program_address, use_max=True)
        return fee or self.fee_oracle.default_fee

    async def build_optimized_transaction(
        self,
        instructions: Sequence[Instruction],
        payer: Pubkey,
        program_address: Optional[Union[str, Pubkey]] = None,
        lookup_tables: Optional[list] = None,
    ) -> OptimizedTransaction:
        """
        Compile a message with a priority fee and a simulated compute unit limit.

        The fee estimate, simulation and blockhash fetch run concurrently.
        A failed simulation leaves the compute unit limit unset.

        Args:
            instructions: Instructions to send
            payer: Fee payer
            program_address: Program whose recent fees are sampled
            lookup_tables: Address lookup table accounts

        Returns:
            OptimizedTransaction with the compiled message
        """
        priority_fee, units, (blockhash, last_valid_block_height) = await asyncio.gather(
            self._priority_fee_for(program_address),
            self.get_simulation_units(instructions, payer, lookup_tables),
            self.get_latest_blockhash(),
        )

        budget = [compute_price_instruction(priority_fee)]
        compute_unit_limit = None
        if units:
            compute_unit_limit = math.ceil(units * CU_LIMIT_MULTIPLIER)
            budget.insert(0, compute_limit_instruction(compute_unit_limit))

        message = MessageV0.try_compile(payer, [*budget, *instructions], lookup_tables or [], blockhash)
        self.log.details(
            f"fee={priority_fee} micro-lamports, cu_limit={compute_unit_limit}",
            label="Optimized transaction:",
        )

        return OptimizedTransaction(
            message=message,
            blockhash=blockhash,
            last_valid_block_height=last_valid_block_height,
            priority_fee=priority_fee,
            compute_unit_limit=compute_unit_limit,
        )

    async def send_transaction(
        self,
        message: MessageV0,
        signers: Sequence[Keypair],
        max_retries: Optional[int] = None,
    ) -> str:
        """
        Sign and submit a message.

        Transport failures are retried up to max_retries times with
        exponential backoff. Rejections by the network or the program are
        translated and raised immediately.

        Args:
            message: Compiled message
            signers: Keypairs required by the message, fee payer first
            max_retries: Retry budget; None submits once

        Returns:
            Transaction signature
        """
        unique_signers = list({bytes(kp.pubkey()): kp for kp in signers}.values())
        tx = VersionedTransaction(message, unique_signers)
        opts = TxOpts(skip_preflight=False, preflight_commitment=self.commitment, max_retries=max_retries)

        attempts = (max_retries or 0) + 1
        for attempt in range(1, attempts + 1):
            try:
                resp = await self.client.send_transaction(tx, opts=opts)
                signature = str(resp.value)
                self.log.signature(signature, label="Transaction sent:")
                return signature
            except RPCException as e:
                error = translate_error(e)
                self.log.error(f"Transaction rejected: {error}", code=error.code)
                for line in error.logs:
                    self.log.details(line)
                raise error from e
            except SolanaRpcException as e:
                if attempt >= attempts:
                    self.log.error(f"Transaction submission failed after {attempt} attempts: {e}")
                    raise SubmissionError(f"Transaction submission failed: {e}") from e
                wait_time = self.RETRY_BACKOFF * (2 ** (attempt - 1))
                self.log.info(f"Submission attempt {attempt} failed, retrying in {wait_time}s: {e}")
                await asyncio.sleep(wait_time)

        raise SubmissionError("Transaction submission failed")

    async def send_and_confirm(
        self,
        instructions: Sequence[Instruction],
        payer: Keypair,
        signers: Optional[Sequence[Keypair]] = None,
        optimize: bool = False,
        program_address: Optional[Union[str, Pubkey]] = None,
        max_retries: Optional[int] = None,
    ) -> str:
        """
        Build, submit and confirm a transaction.

        Args:
            instructions: Instructions to send
            payer: Fee payer keypair
            signers: Additional signers
            optimize: Add a priority fee and simulated compute unit limit
            program_address: Program whose recent fees are sampled when optimizing
            max_retries: Retry budget for submission

        Returns:
            Confirmed transaction signature
        """
        if optimize:
            built = await self.build_optimized_transaction(instructions, payer.pubkey(), program_address)
            message, last_valid_block_height = built.message, built.last_valid_block_height
        else:
            blockhash, last_valid_block_height = await self.get_latest_blockhash()
            message = MessageV0.try_compile(payer.pubkey(), list(instructions), [], blockhash)

        signature = await self.send_transaction(message, [payer, *(signers or [])], max_retries)
        await self.confirm_transaction(signature, last_valid_block_height)
        self.log.signature(signature, label="Transaction confirmed:")
        return signature

    def transfer_sol_instruction(self, sender: Pubkey, recipient: Pubkey, amount_sol: float) -> Instruction:
        return transfer(TransferParams(
            from_pubkey=sender,
            to_pubkey=recipient,
            lamports=sol_to_lamports(amount_sol),
        ))

    async def transfer_sol(self, sender: Keypair, recipient: Pubkey, amount_sol: float) -> str:
        """
        Transfer SOL and wait for confirmation.

        Args:
            sender: Paying keypair
            recipient: Receiving address
            amount_sol: Amount in SOL

        Returns:
            Transaction signature
        """
        ix = self.transfer_sol_instruction(sender.pubkey(), recipient, amount_sol)
        signature = await self.send_and_confirm([ix], sender)
        self.log.info(f"Transferred {amount_sol} SOL to {recipient}")
        return signature

    async def airdrop(self, recipient: Pubkey, amount_sol: float) -> str:
        """Request an airdrop on a test network and wait for it to land."""
        resp = await self.client.request_airdrop(recipient, sol_to_lamports(amount_sol), self.commitment)
        signature = str(resp.value)
        await self.confirm_transaction(signature)
        self.log.info(f"Airdropped {amount_sol} SOL to {recipient}")
        return signature
