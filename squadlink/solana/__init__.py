"""
Solana integration for squadlink.

This package contains modules for interacting with the Solana blockchain,
including Squads v4 instruction encoding, fee estimation, transaction
execution and the proposal lifecycle.

Note: proposals are created with a priority fee and a simulated compute
unit limit, and their submission is retried. Approvals and executions
are sent once.
"""

from squadlink.solana.models import OptimizedTransaction, PrioritizationFee, ProposalResult, WalletDescriptor
from squadlink.solana.fee_oracle import FeeOracle
from squadlink.solana.tx_executor import TxExecutor
from squadlink.solana.integration import SquadsOrchestrator
