"""
Integration module that combines the Solana components into the Squad
proposal lifecycle.

A proposal moves Created (Active) -> Approved -> Executed. Every change to a
Squad, including changes to its own configuration, goes through a proposal.
"""

import inspect
from typing import Awaitable, Callable, Iterable, List, Optional, Sequence, Union

from solana.rpc.async_api import AsyncClient
from solders.instruction import Instruction
from solders.keypair import Keypair
from solders.pubkey import Pubkey

from squadlink.config import DEFAULT_PRIORITY_FEE, PROPOSAL_SUBMIT_RETRIES, SQUADS_PROGRAM_ID, Environment
from squadlink.errors import AccountNotFound, InvalidThreshold, SquadlinkError
from squadlink.solana import squads_program as squads
from squadlink.solana.models import ProposalResult, WalletDescriptor
from squadlink.solana.squads_program import (
    AddMember,
    ChangeThreshold,
    ConfigAction,
    Member,
    MultisigAccount,
    Permission,
    ProposalAccount,
    RemoveMember,
)
from squadlink.solana.tx_executor import TxExecutor
from squadlink.utils.flow_logger import FlowLogger

InstructionSource = Union[
    Sequence[Instruction],
    Callable[[], Sequence[Instruction]],
    Callable[[], Awaitable[Sequence[Instruction]]],
]


def _as_pubkey(value: Union[str, Pubkey]) -> Pubkey:
    return value if isinstance(value, Pubkey) else Pubkey.from_string(value)


def _unique(keys: Iterable[Pubkey]) -> List[Pubkey]:
    seen = set()
    result = []
    for key in keys:
        if key not in seen:
            seen.add(key)
            result.append(key)
    return result


class SquadsOrchestrator:
    """
    Creates Squads and drives their proposals through creation,
    approval and execution.
    """

    def __init__(
        self,
        client: AsyncClient,
        env: Environment,
        tx_executor: Optional[TxExecutor] = None,
        flow_logger: Optional[FlowLogger] = None,
        program_id: Union[str, Pubkey] = SQUADS_PROGRAM_ID,
        submit_retries: int = PROPOSAL_SUBMIT_RETRIES,
        endpoint: Optional[str] = None,
    ):
        """
        Initialize the orchestrator.

        Args:
            client: Async RPC client of the selected environment
            env: Selected environment
            tx_executor: Optional TxExecutor instance. If None, creates a new one.
            flow_logger: Logger for lifecycle progress
            program_id: Squads program address
            submit_retries: Retry budget for proposal creation
            endpoint: JSON-RPC endpoint; needed only when tx_executor is None
        """
        self.client = client
        self.env = env
        self.log = flow_logger or FlowLogger("Squads")
        self.program_id = _as_pubkey(program_id)
        self.submit_retries = submit_retries

        if tx_executor is None:
            if endpoint is None:
                raise SquadlinkError("An endpoint is required to build a TxExecutor")
            tx_executor = TxExecutor(client, endpoint, flow_logger=self.log.child("TxExecutor"))
        self.tx_executor = tx_executor

    # Reads

    def vault_address(self, wallet: Union[str, Pubkey], index: int = 0) -> Pubkey:
        return squads.get_vault_pda(_as_pubkey(wallet), index, self.program_id)

    async def _fetch_account_data(self, address: Pubkey, kind: str) -> bytes:
        resp = await self.client.get_account_info(address)
        if resp.value is None:
            raise AccountNotFound(f"{kind} account {address} does not exist")
        return bytes(resp.value.data)

    async def get_wallet_details(self, wallet: Union[str, Pubkey]) -> MultisigAccount:
        data = await self._fetch_account_data(_as_pubkey(wallet), "Multisig")
        return squads.decode_multisig(data)

    async def get_proposal_details(self, wallet: Union[str, Pubkey], transaction_index: int) -> ProposalAccount:
        address = squads.get_proposal_pda(_as_pubkey(wallet), transaction_index, self.program_id)
        data = await self._fetch_account_data(address, "Proposal")
        return squads.decode_proposal(data)

    async def get_last_transaction_index(self, wallet: Union[str, Pubkey]) -> int:
        details = await self.get_wallet_details(wallet)
        return details.transaction_index

    async def get_next_transaction_index(self, wallet: Union[str, Pubkey]) -> int:
        return await self.get_last_transaction_index(wallet) + 1

    # Creation

    async def create_wallet(
        self,
        creator: Keypair,
        members: Sequence[Union[str, Pubkey]],
        threshold: int,
        create_key: Optional[Keypair] = None,
        memo: Optional[str] = None,
    ) -> WalletDescriptor:
        """
        Create an autonomous Squad with the creator prepended to its members.

        Args:
            creator: Creator and fee payer
            members: Additional member addresses
            threshold: Approvals required to execute a proposal
            create_key: One-time creation key; a fresh one is generated when omitted
            memo: Optional memo

        Returns:
            WalletDescriptor of the created Squad

        Raises:
            InvalidThreshold: threshold is not within 1..member count
        """
        member_keys = _unique([creator.pubkey(), *(_as_pubkey(m) for m in members)])
        if threshold < 1 or threshold > len(member_keys):
            raise InvalidThreshold(
                f"Threshold {threshold} is invalid for {len(member_keys)} members"
            )

        create_key = create_key or Keypair()
        multisig = squads.get_multisig_pda(create_key.pubkey(), self.program_id)
        vault = self.vault_address(multisig)

        config_data = await self._fetch_account_data(
            squads.get_program_config_pda(self.program_id), "Program config"
        )
        treasury = squads.decode_program_config_treasury(config_data)

        ix = squads.multisig_create_v2(
            treasury=treasury,
            create_key=create_key.pubkey(),
            creator=creator.pubkey(),
            members=[Member(key, Permission.ALL) for key in member_keys],
            threshold=threshold,
            memo=memo,
            program_id=self.program_id,
        )
        signature = await self.tx_executor.send_and_confirm([ix], creator, signers=[create_key])

        self.log.spotlight(str(multisig), label="Squad created:")
        self.log.details(str(vault), label="Vault:")

        return WalletDescriptor(
            create_key=create_key.pubkey(),
            multisig=multisig,
            vault=vault,
            members=member_keys,
            threshold=threshold,
            signature=signature,
        )

    # Proposals

    async def _resolve_instructions(self, instructions: InstructionSource) -> List[Instruction]:
        if callable(instructions):
            instructions = instructions()
        if inspect.isawaitable(instructions):
            instructions = await instructions
        resolved = list(instructions)
        if not resolved:
            raise SquadlinkError("A proposal needs at least one instruction")
        return resolved

    async def _submit_proposal(
        self,
        multisig: Pubkey,
        transaction_index: int,
        proposer: Keypair,
        create_ix: Instruction,
    ) -> ProposalResult:
        proposal_ix = squads.proposal_create(
            multisig,
            transaction_index,
            proposer.pubkey(),
            program_id=self.program_id,
        )
        signature = await self.tx_executor.send_and_confirm(
            [create_ix, proposal_ix],
            proposer,
            optimize=True,
            program_address=self.program_id,
            max_retries=self.submit_retries,
        )
        self.log.highlight(f"#{transaction_index}", label="Proposal created:")
        return ProposalResult(multisig=multisig, transaction_index=transaction_index, signatures=[signature])

    async def propose(
        self,
        wallet: Union[str, Pubkey],
        instructions: InstructionSource,
        proposer: Keypair,
        memo: Optional[str] = None,
    ) -> ProposalResult:
        """
        Propose instructions for the vault to execute.

        The instructions are resolved before the transaction index is read,
        so a failing builder leaves the index untouched.

        Args:
            wallet: Multisig address
            instructions: Instructions, or a sync or async callable returning them
            proposer: Member with initiate permission, also paying rent
            memo: Optional memo stored with the transaction

        Returns:
            ProposalResult with the signature and transaction index
        """
        multisig = _as_pubkey(wallet)
        resolved = await self._resolve_instructions(instructions)

        transaction_index = await self.get_next_transaction_index(multisig)
        message = squads.compile_vault_message(resolved, self.vault_address(multisig))
        create_ix = squads.vault_transaction_create(
            multisig,
            transaction_index,
            proposer.pubkey(),
            message,
            memo=memo,
            program_id=self.program_id,
        )
        return await self._submit_proposal(multisig, transaction_index, proposer, create_ix)

    async def propose_config_change(
        self,
        wallet: Union[str, Pubkey],
        proposer: Keypair,
        actions: Sequence[ConfigAction],
        memo: Optional[str] = None,
    ) -> ProposalResult:
        """
        Propose a change to the Squad's own configuration.

        Args:
            wallet: Multisig address
            proposer: Member with initiate permission, also paying rent
            actions: Config actions applied in order on execution
            memo: Optional memo

        Returns:
            ProposalResult with the signature and transaction index
        """
        if not actions:
            raise SquadlinkError("A config proposal needs at least one action")

        multisig = _as_pubkey(wallet)
        transaction_index = await self.get_next_transaction_index(multisig)
        create_ix = squads.config_transaction_create(
            multisig,
            transaction_index,
            proposer.pubkey(),
            list(actions),
            memo=memo,
            program_id=self.program_id,
        )
        return await self._submit_proposal(multisig, transaction_index, proposer, create_ix)

    async def _check_threshold(self, multisig: Pubkey, new_threshold: int, member_delta: int = 0):
        details = await self.get_wallet_details(multisig)
        member_count = len(details.members) + member_delta
        if new_threshold < 1 or new_threshold > member_count:
            raise InvalidThreshold(f"Threshold {new_threshold} is invalid for {member_count} members")

    async def propose_threshold_change(
        self,
        wallet: Union[str, Pubkey],
        proposer: Keypair,
        new_threshold: int,
    ) -> ProposalResult:
        multisig = _as_pubkey(wallet)
        await self._check_threshold(multisig, new_threshold)
        self.log.info(f"Proposing threshold change to {new_threshold}")
        return await self.propose_config_change(multisig, proposer, [ChangeThreshold(new_threshold)])

    async def propose_permission_change(
        self,
        wallet: Union[str, Pubkey],
        proposer: Keypair,
        target: Union[str, Pubkey],
        permissions: Permission,
    ) -> ProposalResult:
        target = _as_pubkey(target)
        self.log.info(f"Proposing permission change for {target}: {permissions!r}")
        return await self.propose_config_change(
            wallet,
            proposer,
            [RemoveMember(target), AddMember(Member(target, permissions))],
        )

    async def propose_permission_and_threshold_change(
        self,
        wallet: Union[str, Pubkey],
        proposer: Keypair,
        target: Union[str, Pubkey],
        permissions: Permission,
        new_threshold: int,
    ) -> ProposalResult:
        multisig = _as_pubkey(wallet)
        target = _as_pubkey(target)
        await self._check_threshold(multisig, new_threshold)
        self.log.info(f"Proposing permission change for {target} and threshold {new_threshold}")
        return await self.propose_config_change(
            multisig,
            proposer,
            [
                RemoveMember(target),
                AddMember(Member(target, permissions)),
                ChangeThreshold(new_threshold),
            ],
        )

    async def approve(
        self,
        wallet: Union[str, Pubkey],
        transaction_index: int,
        approver: Keypair,
        memo: Optional[str] = None,
    ) -> str:
        """
        Approve a proposal. Submitted once; a repeated approval surfaces AlreadyApproved.

        Returns:
            Transaction signature
        """
        ix = squads.proposal_approve(
            _as_pubkey(wallet),
            transaction_index,
            approver.pubkey(),
            memo=memo,
            program_id=self.program_id,
        )
        signature = await self.tx_executor.send_and_confirm([ix], approver)
        self.log.signature(signature, label=f"Proposal #{transaction_index} approved:")
        return signature

    async def execute(
        self,
        wallet: Union[str, Pubkey],
        transaction_index: int,
        executor: Keypair,
        compute_limit: Optional[int] = None,
        priority_fee: Optional[int] = None,
    ) -> str:
        """
        Execute an approved vault transaction.

        Args:
            wallet: Multisig address
            transaction_index: Index of the proposal to execute
            executor: Member with execute permission
            compute_limit: Explicit compute unit limit
            priority_fee: Priority fee; defaults to DEFAULT_PRIORITY_FEE when only
                compute_limit is given. Omitting both sends a plain submission.

        Returns:
            Transaction signature
        """
        multisig = _as_pubkey(wallet)
        transaction_pda = squads.get_transaction_pda(multisig, transaction_index, self.program_id)
        transaction = squads.decode_vault_transaction(
            await self._fetch_account_data(transaction_pda, "Vault transaction")
        )

        ix = squads.vault_transaction_execute(
            multisig,
            transaction_index,
            executor.pubkey(),
            squads.execute_remaining_accounts(transaction),
            program_id=self.program_id,
        )

        instructions = [ix]
        if compute_limit or priority_fee is not None:
            instructions = await self.tx_executor.fee_oracle.add_fee_to_instructions(
                instructions,
                priority_fee if priority_fee is not None else DEFAULT_PRIORITY_FEE,
                self.program_id,
                compute_limit,
            )

        signature = await self.tx_executor.send_and_confirm(instructions, executor)
        self.log.signature(signature, label=f"Proposal #{transaction_index} executed:")
        return signature

    async def execute_config(
        self,
        wallet: Union[str, Pubkey],
        transaction_index: int,
        executor: Keypair,
    ) -> str:
        """Execute an approved config transaction; the executor pays any reallocation rent."""
        ix = squads.config_transaction_execute(
            _as_pubkey(wallet),
            transaction_index,
            executor.pubkey(),
            rent_payer=executor.pubkey(),
            program_id=self.program_id,
        )
        signature = await self.tx_executor.send_and_confirm([ix], executor)
        self.log.signature(signature, label=f"Config proposal #{transaction_index} executed:")
        return signature
