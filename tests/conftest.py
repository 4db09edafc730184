"""
Pytest fixtures for squadlink tests.

FakeSquadsNetwork interprets Squads instructions in memory and serves the
resulting accounts through a mocked AsyncClient, so the proposal lifecycle
runs end to end without an RPC node.
"""

import struct
from typing import Dict, List, Optional, Tuple
from unittest.mock import AsyncMock, MagicMock

import pytest
from solders.instruction import AccountMeta, Instruction
from solders.keypair import Keypair
from solders.pubkey import Pubkey

from squadlink.config import BUDDYLINK_PROGRAM_ID, Environment
from squadlink.errors import (
    AccountAlreadyExists,
    AlreadyApproved,
    InsufficientApprovals,
    NotAMember,
    StaleIndex,
)
from squadlink.referral.client import MemberStatistics, ReferralMember, ReferralProfile, Treasury
from squadlink.solana import squads_program as squads
from squadlink.solana.fee_oracle import FeeOracle
from squadlink.solana.integration import SquadsOrchestrator

ACCOUNT_DISC = b"\x00" * 8

STATUS_ACTIVE = 1
STATUS_APPROVED = 3
STATUS_EXECUTED = 5

REFERRAL_PROGRAM = Pubkey.from_string(BUDDYLINK_PROGRAM_ID)


def encode_multisig(create_key: Pubkey, threshold: int, members, transaction_index: int, stale: int = 0) -> bytes:
    data = bytearray(ACCOUNT_DISC)
    data += bytes(create_key)
    data += bytes(32)  # autonomous
    data += struct.pack("<HIQQ", threshold, 0, transaction_index, stale)
    data += b"\x00"  # no rent collector
    data += b"\xff"  # bump
    data += struct.pack("<I", len(members))
    for key, mask in members:
        data += bytes(key) + bytes([mask])
    return bytes(data)


def encode_proposal(multisig: Pubkey, index: int, status: int, approved: List[Pubkey]) -> bytes:
    data = bytearray(ACCOUNT_DISC)
    data += bytes(multisig)
    data += struct.pack("<QBq", index, status, 1_700_000_000)
    data += b"\xff"
    data += struct.pack("<I", len(approved)) + b"".join(bytes(k) for k in approved)
    data += struct.pack("<I", 0) + struct.pack("<I", 0)
    return bytes(data)


def vault_transaction_from_message(multisig: Pubkey, creator: Pubkey, index: int, message: bytes) -> bytes:
    """Re-encode a compact vault message the way the program stores it."""
    pos = 3
    header = message[0:3]
    num_keys = message[pos]
    pos += 1
    keys = message[pos:pos + 32 * num_keys]
    pos += 32 * num_keys
    num_instructions = message[pos]
    pos += 1

    out = bytearray(ACCOUNT_DISC)
    out += bytes(multisig) + bytes(creator) + struct.pack("<Q", index)
    out += bytes([255, 0, 255]) + struct.pack("<I", 0)
    out += header + struct.pack("<I", num_keys) + keys + struct.pack("<I", num_instructions)
    for _ in range(num_instructions):
        program_id_index = message[pos]
        num_accounts = message[pos + 1]
        pos += 2
        accounts = message[pos:pos + num_accounts]
        pos += num_accounts
        (data_len,) = struct.unpack_from("<H", message, pos)
        pos += 2
        data = message[pos:pos + data_len]
        pos += data_len
        out += bytes([program_id_index]) + struct.pack("<I", num_accounts) + accounts
        out += struct.pack("<I", data_len) + data
    out += struct.pack("<I", message[pos])
    return bytes(out)


def parse_config_actions(data: bytes) -> list:
    (count,) = struct.unpack_from("<I", data, 8)
    pos = 12
    actions = []
    for _ in range(count):
        tag = data[pos]
        pos += 1
        if tag == 0:
            actions.append(("add", Pubkey.from_bytes(data[pos:pos + 32]), data[pos + 32]))
            pos += 33
        elif tag == 1:
            actions.append(("remove", Pubkey.from_bytes(data[pos:pos + 32])))
            pos += 32
        elif tag == 2:
            actions.append(("threshold", struct.unpack_from("<H", data, pos)[0]))
            pos += 2
        elif tag == 3:
            actions.append(("time_lock", struct.unpack_from("<I", data, pos)[0]))
            pos += 4
    return actions


class FakeSquadsNetwork:
    """In-memory Squads program with a mocked AsyncClient in front of it."""

    def __init__(self):
        self.treasury = Keypair().pubkey()
        self.accounts: Dict[Pubkey, bytes] = {}
        self.multisigs: Dict[Pubkey, dict] = {}
        self.proposals: Dict[Pubkey, dict] = {}
        self.transactions: Dict[Tuple[Pubkey, int], dict] = {}
        self.sent: List[List[Instruction]] = []
        self.executed_vault: List[Tuple[Pubkey, int, List[AccountMeta]]] = []
        self.signature_count = 0

        self.accounts[squads.get_program_config_pda()] = (
            ACCOUNT_DISC + bytes(32) + struct.pack("<Q", 0) + bytes(self.treasury) + bytes(32)
        )

        self.client = MagicMock()
        self.client.get_account_info = AsyncMock(side_effect=self._get_account_info)
        self.tx_executor = FakeTxExecutor(self)

    async def _get_account_info(self, address, *args, **kwargs):
        data = self.accounts.get(address)
        return MagicMock(value=None if data is None else MagicMock(data=data))

    def _store_multisig(self, multisig: Pubkey):
        state = self.multisigs[multisig]
        self.accounts[multisig] = encode_multisig(
            state["create_key"], state["threshold"], state["members"], state["index"]
        )

    def _store_proposal(self, address: Pubkey):
        p = self.proposals[address]
        self.accounts[address] = encode_proposal(p["multisig"], p["index"], p["status"], p["approved"])

    def _member_mask(self, multisig: Pubkey, key: Pubkey) -> Optional[int]:
        return next((mask for k, mask in self.multisigs[multisig]["members"] if k == key), None)

    async def send(self, instructions, payer: Keypair, signers=None) -> str:
        self.sent.append(list(instructions))
        for ix in instructions:
            if ix.program_id == squads.PROGRAM_ID:
                self._apply(ix)
        self.signature_count += 1
        return f"sig{self.signature_count}"

    def _apply(self, ix: Instruction):
        data = bytes(ix.data)
        keys = [meta.pubkey for meta in ix.accounts]
        tag = data[:8]
        disc = squads.instruction_discriminator

        if tag == disc("multisig_create_v2"):
            self._create_multisig(keys, data)
        elif tag == disc("vault_transaction_create"):
            self._create_transaction(keys, data, "vault")
        elif tag == disc("config_transaction_create"):
            self._create_transaction(keys, data, "config")
        elif tag == disc("proposal_create"):
            self._create_proposal(keys, data)
        elif tag == disc("proposal_approve"):
            self._approve(keys)
        elif tag == disc("config_transaction_execute"):
            self._execute(keys[0], keys[2], ix)
        elif tag == disc("vault_transaction_execute"):
            self._execute(keys[0], keys[1], ix)
        else:
            raise AssertionError(f"unexpected instruction {tag.hex()}")

    def _create_multisig(self, keys, data):
        multisig = keys[2]
        if multisig in self.multisigs:
            raise AccountAlreadyExists(f"Allocate: account {multisig} already in use", code=0)
        pos = 9 + (32 if data[8] else 0)
        threshold, count = struct.unpack_from("<HI", data, pos)
        pos += 6
        members = []
        for _ in range(count):
            members.append((Pubkey.from_bytes(data[pos:pos + 32]), data[pos + 32]))
            pos += 33
        self.multisigs[multisig] = {
            "create_key": keys[3],
            "threshold": threshold,
            "members": members,
            "index": 0,
        }
        self._store_multisig(multisig)

    def _create_transaction(self, keys, data, kind):
        multisig, transaction, creator = keys[0], keys[1], keys[2]
        state = self.multisigs[multisig]
        index = state["index"] + 1
        if transaction != squads.get_transaction_pda(multisig, index):
            raise StaleIndex("Squads program error 6009 (InvalidTransactionIndex)", code=6009)
        if not (self._member_mask(multisig, creator) or 0) & squads.Permission.INITIATE:
            raise NotAMember("Squads program error 6005 (NotAMember)", code=6005)
        state["index"] = index

        if kind == "vault":
            (length,) = struct.unpack_from("<I", data, 10)
            message = data[14:14 + length]
            self.accounts[transaction] = vault_transaction_from_message(multisig, creator, index, message)
            self.transactions[(multisig, index)] = {"kind": kind}
        else:
            self.transactions[(multisig, index)] = {"kind": kind, "actions": parse_config_actions(data)}
        self._store_multisig(multisig)

    def _create_proposal(self, keys, data):
        multisig, proposal = keys[0], keys[1]
        (index,) = struct.unpack_from("<Q", data, 8)
        if index > self.multisigs[multisig]["index"]:
            raise StaleIndex("Squads program error 6009 (InvalidTransactionIndex)", code=6009)
        self.proposals[proposal] = {"multisig": multisig, "index": index, "status": STATUS_ACTIVE, "approved": []}
        self._store_proposal(proposal)

    def _approve(self, keys):
        multisig, member, proposal = keys
        if not (self._member_mask(multisig, member) or 0) & squads.Permission.VOTE:
            raise NotAMember("Squads program error 6005 (NotAMember)", code=6005)
        p = self.proposals[proposal]
        if member in p["approved"]:
            raise AlreadyApproved("Squads program error 6010 (AlreadyApproved)", code=6010)
        p["approved"].append(member)
        if len(p["approved"]) >= self.multisigs[multisig]["threshold"]:
            p["status"] = STATUS_APPROVED
        self._store_proposal(proposal)

    def _execute(self, multisig, proposal, ix):
        p = self.proposals[proposal]
        if p["status"] != STATUS_APPROVED:
            raise InsufficientApprovals("Squads program error 6008 (InvalidProposalStatus)", code=6008)

        transaction = self.transactions[(multisig, p["index"])]
        if transaction["kind"] == "config":
            state = self.multisigs[multisig]
            for action in transaction["actions"]:
                if action[0] == "add":
                    state["members"].append((action[1], action[2]))
                elif action[0] == "remove":
                    state["members"] = [m for m in state["members"] if m[0] != action[1]]
                elif action[0] == "threshold":
                    state["threshold"] = action[1]
            self._store_multisig(multisig)
        else:
            self.executed_vault.append((multisig, p["index"], list(ix.accounts)[4:]))

        p["status"] = STATUS_EXECUTED
        self._store_proposal(proposal)


class FakeTxExecutor:
    """Stands in for TxExecutor, forwarding submissions to the fake network."""

    def __init__(self, network: FakeSquadsNetwork):
        self.network = network
        self.fee_oracle = FeeOracle("http://127.0.0.1:8899")
        self.transfers = []
        self.airdrops = []
        self.submissions = []

    async def send_and_confirm(self, instructions, payer, signers=None, optimize=False,
                               program_address=None, max_retries=None):
        self.submissions.append({"optimize": optimize, "max_retries": max_retries})
        return await self.network.send(instructions, payer, signers)

    async def transfer_sol(self, sender, recipient, amount_sol):
        self.transfers.append((sender.pubkey(), recipient, amount_sol))
        return "transfer-sig"

    async def airdrop(self, recipient, amount_sol):
        self.airdrops.append((recipient, amount_sol))
        return "airdrop-sig"


class FakeReferralClient:
    """Referral program client returning canned data."""

    def __init__(self, available=True, member=None, stats=None, profile=None,
                 treasuries=None, balances=None, referees=None):
        self.available = available
        self.member = member
        self.stats = stats
        self.profile = profile
        self.treasuries = treasuries or []
        self.balances = balances or {}
        self.referees = referees or {}
        self.signer_key = None
        self.calls = []

    def _instruction(self, tag: bytes) -> Instruction:
        return Instruction(
            REFERRAL_PROGRAM,
            tag,
            [AccountMeta(self.signer_key, is_signer=True, is_writable=True)],
        )

    def generate_profile_name(self):
        return "profile-1"

    async def is_member_available(self, org_name, member_name):
        self.calls.append(("is_member_available", org_name, member_name))
        return self.available

    async def create_member_with_rewards(self, org_name, member_name, reward_mint, profile_name):
        self.calls.append(("create_member_with_rewards", org_name, member_name, str(reward_mint), profile_name))
        return [self._instruction(b"member")]

    async def create_member_statistics(self, org_name, member_name):
        self.calls.append(("create_member_statistics", org_name, member_name))
        return [self._instruction(b"stats")]

    async def get_member_by_name(self, org_name, member_name):
        return self.member

    async def get_member_statistics(self, member):
        return self.stats

    async def get_profile(self, owner):
        return self.profile

    async def get_treasuries_by_profile(self, profile):
        return self.treasuries

    async def get_members_by_treasury_referrer(self, treasury):
        return self.referees.get(treasury, [])

    async def get_claimable_balance(self, treasury):
        return self.balances.get(treasury.pda, 0)

    async def claim_treasury(self, treasury):
        self.calls.append(("claim_treasury", str(treasury.mint)))
        return [self._instruction(b"claim")]

    async def claim_golden_tickets(self, member, amount):
        self.calls.append(("claim_golden_tickets", amount))
        return [self._instruction(b"tickets")]


@pytest.fixture
def network():
    return FakeSquadsNetwork()


@pytest.fixture
def orchestrator(network):
    return SquadsOrchestrator(network.client, Environment.LOCAL, tx_executor=network.tx_executor)


@pytest.fixture
def creator():
    return Keypair()


@pytest.fixture
def referral_client():
    return FakeReferralClient()


@pytest.fixture
def client_factory(referral_client):
    def factory(connection, signer_key, program_id):
        referral_client.signer_key = signer_key
        referral_client.program_id = program_id
        return referral_client
    return factory


def make_member(owner: Pubkey, name: str = "mysquad") -> ReferralMember:
    return ReferralMember(pda=Keypair().pubkey(), name=name, owner=owner)


def make_profile(authority: Pubkey) -> ReferralProfile:
    return ReferralProfile(pda=Keypair().pubkey(), authority=authority)


def make_treasury(mint: str) -> Treasury:
    return Treasury(pda=Keypair().pubkey(), mint=Pubkey.from_string(mint))


def make_stats(total: int, claimed: int = 0) -> MemberStatistics:
    return MemberStatistics(total_referrer_volume=total, claimed_rewards_in_volume=claimed)
