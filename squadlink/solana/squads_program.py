"""
Squads v4 multisig program surface: account derivation, instruction
encoding, account decoding and program error translation.

Instruction data follows the Anchor convention: an 8 byte discriminator
(sha256 of "global:<instruction name>") followed by borsh encoded args.
"""

import hashlib
import re
import struct
from dataclasses import dataclass, field
from enum import IntEnum, IntFlag
from typing import Dict, List, Optional, Sequence, Tuple, Type, Union

from solders.instruction import AccountMeta, Instruction
from solders.message import Message
from solders.pubkey import Pubkey
from solders.system_program import ID as SYSTEM_PROGRAM_ID

from squadlink.config import SQUADS_PROGRAM_ID
from squadlink.errors import (
    AccountAlreadyExists,
    AlreadyApproved,
    InsufficientApprovals,
    NotAMember,
    SquadlinkError,
    StaleIndex,
    SubmissionError,
    Unauthorized,
)

PROGRAM_ID = Pubkey.from_string(SQUADS_PROGRAM_ID)

SEED_PREFIX = b"multisig"
SEED_PROGRAM_CONFIG = b"program_config"
SEED_MULTISIG = b"multisig"
SEED_VAULT = b"vault"
SEED_TRANSACTION = b"transaction"
SEED_PROPOSAL = b"proposal"

ACCOUNT_DISCRIMINATOR_SIZE = 8
MAX_MESSAGE_ACCOUNTS = 255


class Permission(IntFlag):
    """Member permission bits."""
    INITIATE = 1
    VOTE = 2
    EXECUTE = 4
    ALL = 7

    @classmethod
    def from_names(cls, names: Sequence[str]) -> "Permission":
        """
        Build a permission mask from names like "initiate", "vote", "execute".

        Args:
            names: Permission names, case insensitive

        Returns:
            Combined permission mask
        """
        mask = cls(0)
        for name in names:
            try:
                mask |= cls[name.strip().upper()]
            except KeyError:
                raise SquadlinkError(f"Unknown permission: {name!r}") from None
        return mask


@dataclass
class Member:
    key: Pubkey
    permissions: Permission = Permission.ALL


# Account derivation

def get_program_config_pda(program_id: Pubkey = PROGRAM_ID) -> Pubkey:
    return Pubkey.find_program_address([SEED_PREFIX, SEED_PROGRAM_CONFIG], program_id)[0]


def get_multisig_pda(create_key: Pubkey, program_id: Pubkey = PROGRAM_ID) -> Pubkey:
    return Pubkey.find_program_address([SEED_PREFIX, SEED_MULTISIG, bytes(create_key)], program_id)[0]


def get_vault_pda(multisig: Pubkey, index: int = 0, program_id: Pubkey = PROGRAM_ID) -> Pubkey:
    return Pubkey.find_program_address(
        [SEED_PREFIX, bytes(multisig), SEED_VAULT, bytes([index])],
        program_id,
    )[0]


def get_transaction_pda(multisig: Pubkey, index: int, program_id: Pubkey = PROGRAM_ID) -> Pubkey:
    return Pubkey.find_program_address(
        [SEED_PREFIX, bytes(multisig), SEED_TRANSACTION, struct.pack("<Q", index)],
        program_id,
    )[0]


def get_proposal_pda(multisig: Pubkey, index: int, program_id: Pubkey = PROGRAM_ID) -> Pubkey:
    return Pubkey.find_program_address(
        [SEED_PREFIX, bytes(multisig), SEED_TRANSACTION, struct.pack("<Q", index), SEED_PROPOSAL],
        program_id,
    )[0]


# Borsh encoding helpers

def instruction_discriminator(name: str) -> bytes:
    return hashlib.sha256(f"global:{name}".encode()).digest()[:8]


def _encode_bytes(data: bytes) -> bytes:
    return struct.pack("<I", len(data)) + data


def _encode_string(value: str) -> bytes:
    return _encode_bytes(value.encode("utf-8"))


def _encode_option_string(value: Optional[str]) -> bytes:
    if value is None:
        return b"\x00"
    return b"\x01" + _encode_string(value)


def _encode_option_pubkey(value: Optional[Pubkey]) -> bytes:
    if value is None:
        return b"\x00"
    return b"\x01" + bytes(value)


def _encode_member(member: Member) -> bytes:
    return bytes(member.key) + bytes([int(member.permissions)])


# Config actions

@dataclass
class AddMember:
    member: Member

    def encode(self) -> bytes:
        return b"\x00" + _encode_member(self.member)


@dataclass
class RemoveMember:
    key: Pubkey

    def encode(self) -> bytes:
        return b"\x01" + bytes(self.key)


@dataclass
class ChangeThreshold:
    new_threshold: int

    def encode(self) -> bytes:
        return b"\x02" + struct.pack("<H", self.new_threshold)


@dataclass
class SetTimeLock:
    new_time_lock: int

    def encode(self) -> bytes:
        return b"\x03" + struct.pack("<I", self.new_time_lock)


ConfigAction = Union[AddMember, RemoveMember, ChangeThreshold, SetTimeLock]


# Instructions

def multisig_create_v2(
    treasury: Pubkey,
    create_key: Pubkey,
    creator: Pubkey,
    members: Sequence[Member],
    threshold: int,
    time_lock: int = 0,
    config_authority: Optional[Pubkey] = None,
    rent_collector: Optional[Pubkey] = None,
    memo: Optional[str] = None,
    program_id: Pubkey = PROGRAM_ID,
) -> Instruction:
    """
    Create a new multisig controlled by its members.

    Args:
        treasury: Program treasury read from the program config account
        create_key: One-time key the multisig address is derived from; must sign
        creator: Fee payer; must sign
        members: Initial members with their permissions
        threshold: Approvals required to execute
        time_lock: Seconds between approval and execution
        config_authority: None for an autonomous multisig
        rent_collector: Account receiving rent from closed transactions
        memo: Optional memo
        program_id: Squads program

    Returns:
        Instruction
    """
    data = (
        instruction_discriminator("multisig_create_v2")
        + _encode_option_pubkey(config_authority)
        + struct.pack("<H", threshold)
        + struct.pack("<I", len(members))
        + b"".join(_encode_member(m) for m in members)
        + struct.pack("<I", time_lock)
        + _encode_option_pubkey(rent_collector)
        + _encode_option_string(memo)
    )
    accounts = [
        AccountMeta(get_program_config_pda(program_id), is_signer=False, is_writable=False),
        AccountMeta(treasury, is_signer=False, is_writable=True),
        AccountMeta(get_multisig_pda(create_key, program_id), is_signer=False, is_writable=True),
        AccountMeta(create_key, is_signer=True, is_writable=False),
        AccountMeta(creator, is_signer=True, is_writable=True),
        AccountMeta(SYSTEM_PROGRAM_ID, is_signer=False, is_writable=False),
    ]
    return Instruction(program_id, data, accounts)


def vault_transaction_create(
    multisig: Pubkey,
    transaction_index: int,
    creator: Pubkey,
    transaction_message: bytes,
    vault_index: int = 0,
    ephemeral_signers: int = 0,
    rent_payer: Optional[Pubkey] = None,
    memo: Optional[str] = None,
    program_id: Pubkey = PROGRAM_ID,
) -> Instruction:
    data = (
        instruction_discriminator("vault_transaction_create")
        + bytes([vault_index, ephemeral_signers])
        + _encode_bytes(transaction_message)
        + _encode_option_string(memo)
    )
    accounts = [
        AccountMeta(multisig, is_signer=False, is_writable=True),
        AccountMeta(get_transaction_pda(multisig, transaction_index, program_id), is_signer=False, is_writable=True),
        AccountMeta(creator, is_signer=True, is_writable=False),
        AccountMeta(rent_payer or creator, is_signer=True, is_writable=True),
        AccountMeta(SYSTEM_PROGRAM_ID, is_signer=False, is_writable=False),
    ]
    return Instruction(program_id, data, accounts)


def config_transaction_create(
    multisig: Pubkey,
    transaction_index: int,
    creator: Pubkey,
    actions: Sequence[ConfigAction],
    rent_payer: Optional[Pubkey] = None,
    memo: Optional[str] = None,
    program_id: Pubkey = PROGRAM_ID,
) -> Instruction:
    data = (
        instruction_discriminator("config_transaction_create")
        + struct.pack("<I", len(actions))
        + b"".join(action.encode() for action in actions)
        + _encode_option_string(memo)
    )
    accounts = [
        AccountMeta(multisig, is_signer=False, is_writable=True),
        AccountMeta(get_transaction_pda(multisig, transaction_index, program_id), is_signer=False, is_writable=True),
        AccountMeta(creator, is_signer=True, is_writable=False),
        AccountMeta(rent_payer or creator, is_signer=True, is_writable=True),
        AccountMeta(SYSTEM_PROGRAM_ID, is_signer=False, is_writable=False),
    ]
    return Instruction(program_id, data, accounts)


def proposal_create(
    multisig: Pubkey,
    transaction_index: int,
    creator: Pubkey,
    rent_payer: Optional[Pubkey] = None,
    draft: bool = False,
    program_id: Pubkey = PROGRAM_ID,
) -> Instruction:
    data = (
        instruction_discriminator("proposal_create")
        + struct.pack("<Q", transaction_index)
        + (b"\x01" if draft else b"\x00")
    )
    accounts = [
        AccountMeta(multisig, is_signer=False, is_writable=False),
        AccountMeta(get_proposal_pda(multisig, transaction_index, program_id), is_signer=False, is_writable=True),
        AccountMeta(creator, is_signer=True, is_writable=False),
        AccountMeta(rent_payer or creator, is_signer=True, is_writable=True),
        AccountMeta(SYSTEM_PROGRAM_ID, is_signer=False, is_writable=False),
    ]
    return Instruction(program_id, data, accounts)


def proposal_approve(
    multisig: Pubkey,
    transaction_index: int,
    member: Pubkey,
    memo: Optional[str] = None,
    program_id: Pubkey = PROGRAM_ID,
) -> Instruction:
    data = instruction_discriminator("proposal_approve") + _encode_option_string(memo)
    accounts = [
        AccountMeta(multisig, is_signer=False, is_writable=False),
        AccountMeta(member, is_signer=True, is_writable=True),
        AccountMeta(get_proposal_pda(multisig, transaction_index, program_id), is_signer=False, is_writable=True),
    ]
    return Instruction(program_id, data, accounts)


def vault_transaction_execute(
    multisig: Pubkey,
    transaction_index: int,
    member: Pubkey,
    remaining_accounts: Sequence[AccountMeta],
    program_id: Pubkey = PROGRAM_ID,
) -> Instruction:
    accounts = [
        AccountMeta(multisig, is_signer=False, is_writable=False),
        AccountMeta(get_proposal_pda(multisig, transaction_index, program_id), is_signer=False, is_writable=True),
        AccountMeta(get_transaction_pda(multisig, transaction_index, program_id), is_signer=False, is_writable=False),
        AccountMeta(member, is_signer=True, is_writable=False),
        *remaining_accounts,
    ]
    return Instruction(program_id, instruction_discriminator("vault_transaction_execute"), accounts)


def config_transaction_execute(
    multisig: Pubkey,
    transaction_index: int,
    member: Pubkey,
    rent_payer: Optional[Pubkey] = None,
    program_id: Pubkey = PROGRAM_ID,
) -> Instruction:
    # rent_payer and system_program are optional accounts; the program id stands in when absent
    accounts = [
        AccountMeta(multisig, is_signer=False, is_writable=True),
        AccountMeta(member, is_signer=True, is_writable=False),
        AccountMeta(get_proposal_pda(multisig, transaction_index, program_id), is_signer=False, is_writable=True),
        AccountMeta(get_transaction_pda(multisig, transaction_index, program_id), is_signer=False, is_writable=False),
    ]
    if rent_payer is not None:
        accounts.append(AccountMeta(rent_payer, is_signer=True, is_writable=True))
        accounts.append(AccountMeta(SYSTEM_PROGRAM_ID, is_signer=False, is_writable=False))
    else:
        accounts.append(AccountMeta(program_id, is_signer=False, is_writable=False))
        accounts.append(AccountMeta(program_id, is_signer=False, is_writable=False))
    return Instruction(program_id, instruction_discriminator("config_transaction_execute"), accounts)


# Vault transaction messages

def compile_vault_message(instructions: Sequence[Instruction], vault: Pubkey) -> bytes:
    """
    Compile instructions into the compact message format stored by
    vault_transaction_create, with the vault as fee payer.

    Header is three u8 counts (signers, writable signers, writable
    non-signers); account keys and instructions use u8 length prefixes,
    instruction data a u16 prefix. Address table lookups are not used.

    Args:
        instructions: Instructions the vault will execute
        vault: Vault address signing for the instructions

    Returns:
        Serialized message bytes
    """
    message = Message(list(instructions), vault)
    header = message.header
    keys = list(message.account_keys)
    if len(keys) > MAX_MESSAGE_ACCOUNTS:
        raise SquadlinkError(f"Vault transaction references too many accounts: {len(keys)}")

    num_signers = header.num_required_signatures
    num_writable_signers = num_signers - header.num_readonly_signed_accounts
    num_writable_non_signers = len(keys) - num_signers - header.num_readonly_unsigned_accounts

    out = bytearray([num_signers, num_writable_signers, num_writable_non_signers])
    out.append(len(keys))
    for key in keys:
        out += bytes(key)

    out.append(len(message.instructions))
    for ix in message.instructions:
        account_indexes = bytes(ix.accounts)
        data = bytes(ix.data)
        out.append(ix.program_id_index)
        out.append(len(account_indexes))
        out += account_indexes
        out += struct.pack("<H", len(data))
        out += data

    out.append(0)  # address table lookups
    return bytes(out)


# Account decoding

class _Reader:
    """Sequential little-endian reader over account data."""

    def __init__(self, data: bytes, offset: int = ACCOUNT_DISCRIMINATOR_SIZE):
        self.data = data
        self.offset = offset

    def _unpack(self, fmt: str):
        value = struct.unpack_from(fmt, self.data, self.offset)[0]
        self.offset += struct.calcsize(fmt)
        return value

    def u8(self) -> int:
        return self._unpack("<B")

    def u16(self) -> int:
        return self._unpack("<H")

    def u32(self) -> int:
        return self._unpack("<I")

    def u64(self) -> int:
        return self._unpack("<Q")

    def i64(self) -> int:
        return self._unpack("<q")

    def pubkey(self) -> Pubkey:
        if self.offset + 32 > len(self.data):
            raise struct.error("account data too short for pubkey")
        key = Pubkey.from_bytes(self.data[self.offset:self.offset + 32])
        self.offset += 32
        return key

    def raw(self, length: int) -> bytes:
        if self.offset + length > len(self.data):
            raise struct.error("account data too short")
        chunk = self.data[self.offset:self.offset + length]
        self.offset += length
        return chunk

    def vec_bytes(self) -> bytes:
        return self.raw(self.u32())

    def vec_pubkeys(self) -> List[Pubkey]:
        return [self.pubkey() for _ in range(self.u32())]


@dataclass
class MultisigAccount:
    create_key: Pubkey
    config_authority: Optional[Pubkey]
    threshold: int
    time_lock: int
    transaction_index: int
    stale_transaction_index: int
    rent_collector: Optional[Pubkey]
    bump: int
    members: List[Member]

    def member(self, key: Pubkey) -> Optional[Member]:
        return next((m for m in self.members if m.key == key), None)


class ProposalStatus(IntEnum):
    DRAFT = 0
    ACTIVE = 1
    REJECTED = 2
    APPROVED = 3
    EXECUTING = 4
    EXECUTED = 5
    CANCELLED = 6


@dataclass
class ProposalAccount:
    multisig: Pubkey
    transaction_index: int
    status: ProposalStatus
    status_timestamp: Optional[int]
    bump: int
    approved: List[Pubkey] = field(default_factory=list)
    rejected: List[Pubkey] = field(default_factory=list)
    cancelled: List[Pubkey] = field(default_factory=list)


@dataclass
class CompiledVaultInstruction:
    program_id_index: int
    account_indexes: bytes
    data: bytes


@dataclass
class AddressTableLookup:
    account_key: Pubkey
    writable_indexes: bytes
    readonly_indexes: bytes


@dataclass
class VaultTransactionAccount:
    multisig: Pubkey
    creator: Pubkey
    index: int
    bump: int
    vault_index: int
    vault_bump: int
    ephemeral_signer_bumps: bytes
    num_signers: int
    num_writable_signers: int
    num_writable_non_signers: int
    account_keys: List[Pubkey]
    instructions: List[CompiledVaultInstruction]
    address_table_lookups: List[AddressTableLookup]

    def is_writable_index(self, index: int) -> bool:
        if index < self.num_signers:
            return index < self.num_writable_signers
        return index - self.num_signers < self.num_writable_non_signers


def _decode(name: str, data: bytes, parse):
    try:
        return parse(_Reader(data))
    except (struct.error, ValueError, IndexError) as e:
        raise SquadlinkError(f"Malformed {name} account data: {e}") from e


def decode_program_config_treasury(data: bytes) -> Pubkey:
    """Treasury address of the program config (after authority and multisig creation fee)."""
    def parse(reader: _Reader) -> Pubkey:
        reader.pubkey()  # authority
        reader.u64()  # multisig creation fee
        return reader.pubkey()
    return _decode("program config", data, parse)


def decode_multisig(data: bytes) -> MultisigAccount:
    def parse(reader: _Reader) -> MultisigAccount:
        create_key = reader.pubkey()
        config_authority = reader.pubkey()
        threshold = reader.u16()
        time_lock = reader.u32()
        transaction_index = reader.u64()
        stale_transaction_index = reader.u64()
        rent_collector = reader.pubkey() if reader.u8() == 1 else None
        bump = reader.u8()
        members = [
            Member(reader.pubkey(), Permission(reader.u8() & Permission.ALL))
            for _ in range(reader.u32())
        ]
        return MultisigAccount(
            create_key=create_key,
            # All zero bytes means autonomous
            config_authority=None if config_authority == Pubkey.default() else config_authority,
            threshold=threshold,
            time_lock=time_lock,
            transaction_index=transaction_index,
            stale_transaction_index=stale_transaction_index,
            rent_collector=rent_collector,
            bump=bump,
            members=members,
        )
    return _decode("multisig", data, parse)


def decode_proposal(data: bytes) -> ProposalAccount:
    def parse(reader: _Reader) -> ProposalAccount:
        multisig = reader.pubkey()
        transaction_index = reader.u64()
        status = ProposalStatus(reader.u8())
        timestamp = None if status == ProposalStatus.EXECUTING else reader.i64()
        return ProposalAccount(
            multisig=multisig,
            transaction_index=transaction_index,
            status=status,
            status_timestamp=timestamp,
            bump=reader.u8(),
            approved=reader.vec_pubkeys(),
            rejected=reader.vec_pubkeys(),
            cancelled=reader.vec_pubkeys(),
        )
    return _decode("proposal", data, parse)


def decode_vault_transaction(data: bytes) -> VaultTransactionAccount:
    def parse(reader: _Reader) -> VaultTransactionAccount:
        multisig = reader.pubkey()
        creator = reader.pubkey()
        index = reader.u64()
        bump = reader.u8()
        vault_index = reader.u8()
        vault_bump = reader.u8()
        ephemeral_signer_bumps = reader.vec_bytes()
        num_signers = reader.u8()
        num_writable_signers = reader.u8()
        num_writable_non_signers = reader.u8()
        account_keys = reader.vec_pubkeys()
        instructions = [
            CompiledVaultInstruction(reader.u8(), reader.vec_bytes(), reader.vec_bytes())
            for _ in range(reader.u32())
        ]
        lookups = [
            AddressTableLookup(reader.pubkey(), reader.vec_bytes(), reader.vec_bytes())
            for _ in range(reader.u32())
        ]
        return VaultTransactionAccount(
            multisig=multisig,
            creator=creator,
            index=index,
            bump=bump,
            vault_index=vault_index,
            vault_bump=vault_bump,
            ephemeral_signer_bumps=ephemeral_signer_bumps,
            num_signers=num_signers,
            num_writable_signers=num_writable_signers,
            num_writable_non_signers=num_writable_non_signers,
            account_keys=account_keys,
            instructions=instructions,
            address_table_lookups=lookups,
        )
    return _decode("vault transaction", data, parse)


def execute_remaining_accounts(transaction: VaultTransactionAccount) -> List[AccountMeta]:
    """
    Accounts appended to vault_transaction_execute: every key of the stored
    message, none signing (the vault signs through the program).
    """
    if transaction.address_table_lookups:
        raise SquadlinkError("Vault transactions using address lookup tables are not supported")
    return [
        AccountMeta(key, is_signer=False, is_writable=transaction.is_writable_index(i))
        for i, key in enumerate(transaction.account_keys)
    ]


# Program errors

PROGRAM_ERRORS: Dict[int, Tuple[str, Type[SubmissionError]]] = {
    6000: ("DuplicateMember", SubmissionError),
    6001: ("EmptyMembers", SubmissionError),
    6002: ("TooManyMembers", SubmissionError),
    6003: ("InvalidThreshold", SubmissionError),
    6004: ("Unauthorized", Unauthorized),
    6005: ("NotAMember", NotAMember),
    6006: ("InvalidTransactionMessage", SubmissionError),
    6007: ("StaleProposal", StaleIndex),
    6008: ("InvalidProposalStatus", InsufficientApprovals),
    6009: ("InvalidTransactionIndex", StaleIndex),
    6010: ("AlreadyApproved", AlreadyApproved),
    6011: ("AlreadyRejected", SubmissionError),
    6012: ("AlreadyCancelled", SubmissionError),
    6013: ("InvalidNumberOfAccounts", SubmissionError),
    6014: ("InvalidAccount", SubmissionError),
    6015: ("RemoveLastMember", SubmissionError),
    6016: ("NoVoters", SubmissionError),
    6017: ("NoProposers", SubmissionError),
    6018: ("NoExecutors", SubmissionError),
    6019: ("InvalidStaleTransactionIndex", StaleIndex),
    6020: ("NotSupportedForControlled", SubmissionError),
    6021: ("TimeLockNotReleased", SubmissionError),
    6022: ("NoActions", SubmissionError),
    6023: ("MissingAccount", SubmissionError),
    6024: ("InvalidMint", SubmissionError),
    6025: ("InvalidDestination", SubmissionError),
    6026: ("SpendingLimitExceeded", SubmissionError),
    6027: ("DecimalsMismatch", SubmissionError),
    6028: ("UnknownPermission", SubmissionError),
    6029: ("ProtectedAccount", SubmissionError),
    6030: ("TimeLockExceedsMaxAllowed", SubmissionError),
    6031: ("IllegalAccountOwner", SubmissionError),
    6032: ("RentReclamationDisabled", SubmissionError),
    6033: ("InvalidRentCollector", SubmissionError),
    6034: ("ProposalForAnotherMultisig", SubmissionError),
    6035: ("TransactionForAnotherMultisig", SubmissionError),
    6036: ("TransactionNotMatchingProposal", SubmissionError),
    6037: ("TransactionNotLastInBatch", SubmissionError),
    6038: ("BatchNotEmpty", SubmissionError),
    6039: ("SpendingLimitInvalidAmount", SubmissionError),
}

_CUSTOM_CODE = re.compile(r"Custom\((\d+)\)")
_HEX_CODE = re.compile(r"custom program error: 0x([0-9a-fA-F]+)")
_FAILED_PROGRAM = re.compile(r"Program (\w+) failed: custom program error: 0x([0-9a-fA-F]+)")


def _error_logs(exc: BaseException) -> List[str]:
    for arg in getattr(exc, "args", ()):
        data = getattr(arg, "data", None)
        logs = getattr(data, "logs", None)
        if logs:
            return list(logs)
    return []


def parse_error_code(text: str) -> Optional[int]:
    match = _CUSTOM_CODE.search(text)
    if match:
        return int(match.group(1))
    match = _HEX_CODE.search(text)
    if match:
        return int(match.group(1), 16)
    return None


def translate_error(exc: BaseException) -> SubmissionError:
    """
    Map a submission failure to a typed SubmissionError.

    Args:
        exc: Exception raised while sending or simulating

    Returns:
        SubmissionError subclass carrying the program error code and logs
    """
    if isinstance(exc, SubmissionError):
        return exc
    return translate_failure(str(exc), _error_logs(exc))


def failing_program(logs: Sequence[str]) -> Optional[Tuple[str, int]]:
    """
    Find the innermost program that failed with a custom error.

    Inner invocations fail first, so the first matching log line wins.

    Args:
        logs: Transaction log messages

    Returns:
        (program id, error code), or None when no program failed with a custom error
    """
    for line in logs:
        match = _FAILED_PROGRAM.search(line)
        if match:
            return match.group(1), int(match.group(2), 16)
    return None


def translate_failure(
    description: str,
    logs: Optional[List[str]] = None,
    program_id: Pubkey = PROGRAM_ID,
) -> SubmissionError:
    """
    Map a failure description (and its program logs) to a typed SubmissionError.

    Squads error codes are applied only when the Squads program itself failed;
    custom errors of invoked programs surface as a plain SubmissionError
    naming that program.
    """
    logs = list(logs or [])
    text = " ".join([description, *logs])

    failed = failing_program(logs)
    if failed is not None:
        failed_program, code = failed
        if failed_program != str(program_id):
            return SubmissionError(
                f"Program {failed_program} failed with custom error {code}",
                code=code,
                logs=logs,
            )
    else:
        code = parse_error_code(text)

    if code in PROGRAM_ERRORS:
        name, error_cls = PROGRAM_ERRORS[code]
        return error_cls(f"Squads program error {code} ({name})", code=code, logs=logs)

    if "already in use" in text:
        return AccountAlreadyExists(f"Account already in use: {description}", code=code, logs=logs)

    return SubmissionError(f"Transaction rejected: {description}", code=code, logs=logs)
