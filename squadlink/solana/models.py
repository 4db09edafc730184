"""
Models for Solana operations.
"""
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field
from datetime import datetime

from solders.hash import Hash
from solders.message import MessageV0
from solders.pubkey import Pubkey


class PrioritizationFee(BaseModel):
    """A prioritization fee sample observed in a recent slot."""
    slot: int
    prioritization_fee: int


class FeeEstimate(BaseModel):
    """A priority fee estimate in micro-lamports per compute unit."""
    micro_lamports: int
    sample_count: int = 0
    use_max: bool = False
    timestamp: datetime = Field(default_factory=datetime.now)


class OptimizedTransaction(BaseModel):
    """A compiled, fee-optimized message ready to be signed."""
    model_config = ConfigDict(arbitrary_types_allowed=True)

    message: MessageV0
    blockhash: Hash
    last_valid_block_height: int
    priority_fee: int
    compute_unit_limit: Optional[int] = None


class WalletDescriptor(BaseModel):
    """A created Squad: its addresses, members and threshold."""
    model_config = ConfigDict(arbitrary_types_allowed=True)

    create_key: Pubkey
    multisig: Pubkey
    vault: Pubkey
    members: List[Pubkey]
    threshold: int
    signature: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.now)


class ProposalResult(BaseModel):
    """Signatures and transaction index of a created proposal."""
    model_config = ConfigDict(arbitrary_types_allowed=True)

    multisig: Pubkey
    transaction_index: int
    signatures: List[str]

    @property
    def signature(self) -> str:
        return self.signatures[0]
