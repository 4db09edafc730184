"""
Tests for Squads v4 account derivation, encoding, decoding and error translation.
"""

import struct

import pytest
from solders.keypair import Keypair
from solders.pubkey import Pubkey
from solders.system_program import ID as SYSTEM_PROGRAM_ID
from solders.system_program import TransferParams, transfer

from conftest import encode_multisig, encode_proposal, vault_transaction_from_message
from squadlink.errors import (
    AccountAlreadyExists,
    AlreadyApproved,
    InsufficientApprovals,
    SquadlinkError,
    StaleIndex,
    SubmissionError,
)
from squadlink.solana import squads_program as squads
from squadlink.solana.squads_program import (
    AddMember,
    ChangeThreshold,
    Member,
    Permission,
    ProposalStatus,
    RemoveMember,
    SetTimeLock,
)


def test_discriminator_is_anchor_global_hash():
    disc = squads.instruction_discriminator("proposal_approve")
    assert len(disc) == 8
    assert disc != squads.instruction_discriminator("proposal_create")


def test_transaction_and_proposal_pdas_differ_per_index():
    multisig = Keypair().pubkey()
    assert squads.get_transaction_pda(multisig, 1) != squads.get_transaction_pda(multisig, 2)
    assert squads.get_proposal_pda(multisig, 1) != squads.get_transaction_pda(multisig, 1)
    assert squads.get_vault_pda(multisig, 0) != squads.get_vault_pda(multisig, 1)


def test_permission_names():
    assert Permission.from_names(["initiate", "Vote"]) == Permission.INITIATE | Permission.VOTE
    assert Permission.from_names(["initiate", "vote", "execute"]) == Permission.ALL
    with pytest.raises(SquadlinkError):
        Permission.from_names(["admin"])


def test_config_action_encoding():
    key = Keypair().pubkey()
    assert AddMember(Member(key, Permission.VOTE)).encode() == b"\x00" + bytes(key) + b"\x02"
    assert RemoveMember(key).encode() == b"\x01" + bytes(key)
    assert ChangeThreshold(2).encode() == b"\x02\x02\x00"
    assert SetTimeLock(60).encode() == b"\x03" + struct.pack("<I", 60)


def test_multisig_create_requires_create_key_signature():
    create_key, creator, treasury = Keypair().pubkey(), Keypair().pubkey(), Keypair().pubkey()
    ix = squads.multisig_create_v2(treasury, create_key, creator, [Member(creator)], threshold=1)

    signers = [meta.pubkey for meta in ix.accounts if meta.is_signer]
    assert signers == [create_key, creator]
    assert ix.accounts[2].pubkey == squads.get_multisig_pda(create_key)

    data = bytes(ix.data)
    assert data[:8] == squads.instruction_discriminator("multisig_create_v2")
    # no config authority, threshold 1, one member
    assert data[8] == 0
    assert struct.unpack_from("<HI", data, 9) == (1, 1)
    assert data[15:47] == bytes(creator)
    assert data[47] == int(Permission.ALL)


def test_compile_vault_message_layout():
    vault, recipient = Keypair().pubkey(), Keypair().pubkey()
    ix = transfer(TransferParams(from_pubkey=vault, to_pubkey=recipient, lamports=1_000))

    message = squads.compile_vault_message([ix], vault)

    # one writable signer (vault), one writable non-signer (recipient)
    assert message[:3] == bytes([1, 1, 1])
    assert message[3] == 3
    keys = [Pubkey.from_bytes(message[4 + 32 * i:36 + 32 * i]) for i in range(3)]
    assert keys == [vault, recipient, SYSTEM_PROGRAM_ID]
    pos = 4 + 96
    assert message[pos] == 1  # instructions
    assert message[pos + 1] == 2  # program id index
    assert message[pos + 2] == 2  # account count
    assert message[-1] == 0  # no lookups


def test_vault_transaction_decode_and_remaining_accounts():
    vault, recipient = Keypair().pubkey(), Keypair().pubkey()
    ix = transfer(TransferParams(from_pubkey=vault, to_pubkey=recipient, lamports=1_000))
    multisig, creator = Keypair().pubkey(), Keypair().pubkey()
    raw = vault_transaction_from_message(multisig, creator, 4, squads.compile_vault_message([ix], vault))

    transaction = squads.decode_vault_transaction(raw)

    assert transaction.index == 4
    assert transaction.account_keys == [vault, recipient, SYSTEM_PROGRAM_ID]
    assert bytes(transaction.instructions[0].data) == bytes(ix.data)

    metas = squads.execute_remaining_accounts(transaction)
    assert [m.is_signer for m in metas] == [False, False, False]
    assert [m.is_writable for m in metas] == [True, True, False]


def test_lookup_table_messages_are_rejected():
    vault = Keypair().pubkey()
    ix = transfer(TransferParams(from_pubkey=vault, to_pubkey=Keypair().pubkey(), lamports=1))
    transaction = squads.decode_vault_transaction(
        vault_transaction_from_message(Keypair().pubkey(), Keypair().pubkey(), 1, squads.compile_vault_message([ix], vault))
    )
    transaction.address_table_lookups.append(squads.AddressTableLookup(Keypair().pubkey(), b"\x00", b""))

    with pytest.raises(SquadlinkError):
        squads.execute_remaining_accounts(transaction)


def test_decode_multisig():
    create_key, a, b = Keypair().pubkey(), Keypair().pubkey(), Keypair().pubkey()
    raw = encode_multisig(create_key, 2, [(a, 7), (b, 2)], transaction_index=5)

    account = squads.decode_multisig(raw)

    assert account.create_key == create_key
    assert account.config_authority is None
    assert account.threshold == 2
    assert account.transaction_index == 5
    assert account.rent_collector is None
    assert [m.key for m in account.members] == [a, b]
    assert account.member(b).permissions == Permission.VOTE


def test_decode_proposal():
    multisig, voter = Keypair().pubkey(), Keypair().pubkey()
    proposal = squads.decode_proposal(encode_proposal(multisig, 3, 3, [voter]))

    assert proposal.transaction_index == 3
    assert proposal.status == ProposalStatus.APPROVED
    assert proposal.approved == [voter]
    assert proposal.rejected == []


def test_truncated_account_is_reported():
    with pytest.raises(SquadlinkError, match="Malformed multisig"):
        squads.decode_multisig(b"\x00" * 20)


@pytest.mark.parametrize("text, error_cls, code", [
    ("Error processing Instruction 2: custom program error: 0x1778", InsufficientApprovals, 6008),
    ("InstructionError((0, Custom(6009)))", StaleIndex, 6009),
    ("InstructionError((0, Custom(6019)))", StaleIndex, 6019),
    ("custom program error: 0x177a", AlreadyApproved, 6010),
])
def test_translate_program_errors(text, error_cls, code):
    error = squads.translate_failure(text)
    assert isinstance(error, error_cls)
    assert error.code == code


def test_invoked_program_error_is_not_a_squads_error():
    logs = [
        "Program SQDS4ep65T869zMMBKyuUq6aD6EgTu8psMjkvj52pCf invoke [1]",
        "Program BUDDYtQp7Di1xfojiCSVDksiYLQx511DPdj2nbtG9Yu5 invoke [2]",
        "Program BUDDYtQp7Di1xfojiCSVDksiYLQx511DPdj2nbtG9Yu5 failed: custom program error: 0x1778",
        "Program SQDS4ep65T869zMMBKyuUq6aD6EgTu8psMjkvj52pCf failed: custom program error: 0x1778",
    ]

    error = squads.translate_failure("Error processing Instruction 0: custom program error: 0x1778", logs)

    assert type(error) is SubmissionError
    assert error.code == 6008
    assert "BUDDYtQp7Di1xfojiCSVDksiYLQx511DPdj2nbtG9Yu5" in str(error)


def test_squads_failure_in_logs_is_translated():
    logs = [
        "Program SQDS4ep65T869zMMBKyuUq6aD6EgTu8psMjkvj52pCf invoke [1]",
        "Program SQDS4ep65T869zMMBKyuUq6aD6EgTu8psMjkvj52pCf failed: custom program error: 0x177a",
    ]

    error = squads.translate_failure("Transaction simulation failed", logs)

    assert isinstance(error, AlreadyApproved)
    assert error.code == 6010


def test_translate_account_in_use():
    error = squads.translate_error(RuntimeError("Allocate: account Address { .. } already in use"))
    assert isinstance(error, AccountAlreadyExists)


def test_translate_unknown_failure():
    error = squads.translate_error(RuntimeError("Blockhash not found"))
    assert type(error) is SubmissionError
    assert error.code is None
