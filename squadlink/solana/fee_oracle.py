"""
Priority fee estimation and compute budget instructions for Solana.
"""

import math
from typing import List, Optional, Sequence, Union

import requests
from solders.compute_budget import set_compute_unit_limit, set_compute_unit_price
from solders.instruction import Instruction
from solders.pubkey import Pubkey

from squadlink.config import DEFAULT_PRIORITY_FEE, FEE_SAMPLE_WINDOW
from squadlink.errors import RpcError
from squadlink.solana.models import FeeEstimate, PrioritizationFee
from squadlink.solana.rpc import async_rpc_request
from squadlink.utils.flow_logger import FlowLogger

# Passing this value as priority fee asks for an estimate instead
ESTIMATE_PRIORITY_FEE = 1


def weighted_priority_fee(fees: Sequence[int], use_max: bool = False, window: int = FEE_SAMPLE_WINDOW) -> int:
    """
    Derive a priority fee from chronologically ordered fee samples.

    Zero samples are idle slots and are dropped. Of the remaining samples the
    most recent `window` are used: either their maximum, or a triangular
    weighted sum (oldest weight 1 .. newest weight n) divided by n!, rounded up.

    Args:
        fees: Fee samples, oldest first
        use_max: Return the window maximum instead of the weighted value
        window: Maximum number of recent samples to consider

    Returns:
        Fee in micro-lamports, or 0 when there is no positive sample
    """
    positive = [int(fee) for fee in fees if fee > 0]
    if not positive:
        return 0

    recent = positive[-min(window, len(positive)):]
    if use_max:
        return max(recent)

    weighted = sum(fee * rank for rank, fee in enumerate(recent, start=1))
    divisor = math.factorial(len(recent))
    return -(-weighted // divisor)


def compute_limit_instruction(units: int) -> Instruction:
    return set_compute_unit_limit(int(units))


def compute_price_instruction(micro_lamports: int) -> Instruction:
    return set_compute_unit_price(int(micro_lamports))


class FeeOracle:
    """
    Estimates priority fees from the recent prioritization fee history
    of a program address.
    """

    def __init__(self, endpoint: str, flow_logger: Optional[FlowLogger] = None, default_fee: int = DEFAULT_PRIORITY_FEE):
        """
        Initialize the fee oracle.

        Args:
            endpoint: JSON-RPC endpoint of the selected environment
            flow_logger: Logger for fee decisions
            default_fee: Fee used by callers when no fee data is available
        """
        self.endpoint = endpoint
        self.default_fee = default_fee
        self.log = flow_logger or FlowLogger("FeeOracle")
        self.last_estimate: Optional[FeeEstimate] = None

    async def fetch_recent_fees(self, program_address: Union[str, Pubkey]) -> List[PrioritizationFee]:
        """
        Fetch recent prioritization fee samples for a program address.

        Returns:
            Samples ordered by slot, oldest first
        """
        result = await async_rpc_request(
            self.endpoint,
            "getRecentPrioritizationFees",
            [[str(program_address)]],
        )
        samples = [
            PrioritizationFee(slot=entry["slot"], prioritization_fee=entry["prioritizationFee"])
            for entry in (result or [])
        ]
        return sorted(samples, key=lambda sample: sample.slot)

    async def estimate_priority_fee(self, program_address: Union[str, Pubkey], use_max: bool = False) -> int:
        """
        Estimate a priority fee for transactions touching a program.

        Args:
            program_address: Program whose recent fees are sampled
            use_max: Use the maximum of the recent window instead of the weighted average

        Returns:
            Fee in micro-lamports; 0 means no fee data, callers supply a fallback
        """
        try:
            samples = await self.fetch_recent_fees(program_address)
        except (RpcError, requests.RequestException) as e:
            self.log.error(f"Error fetching prioritization fees for {program_address}: {e}")
            return 0

        fee = weighted_priority_fee([s.prioritization_fee for s in samples], use_max)
        self.last_estimate = FeeEstimate(
            micro_lamports=fee,
            sample_count=len([s for s in samples if s.prioritization_fee > 0]),
            use_max=use_max,
        )
        self.log.details(f"{fee} micro-lamports", label="Estimated priority fee:", program=str(program_address))
        return fee

    async def add_fee_to_instructions(
        self,
        instructions: Sequence[Instruction],
        priority_fee: int,
        program_address: Union[str, Pubkey],
        compute_limit: Optional[int] = None,
    ) -> List[Instruction]:
        """
        Prepend compute budget instructions to a list of instructions.

        Args:
            instructions: Instructions to execute
            priority_fee: Fee in micro-lamports; ESTIMATE_PRIORITY_FEE asks for an estimate
            program_address: Program used for the estimate
            compute_limit: Optional explicit compute unit limit

        Returns:
            [limit?, price, *instructions]
        """
        budget: List[Instruction] = []
        if compute_limit:
            budget.append(compute_limit_instruction(compute_limit))

        if priority_fee == ESTIMATE_PRIORITY_FEE:
            priority_fee = await self.estimate_priority_fee(program_address, use_max=True)
        if priority_fee:
            self.log.info(f"Using priority fee: {priority_fee}")

        budget.append(compute_price_instruction(priority_fee))
        return budget + list(instructions)
