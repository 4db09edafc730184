"""
Tests for the referral facade and golden ticket accounting.
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest
from solders.keypair import Keypair
from solders.pubkey import Pubkey

from conftest import FakeReferralClient, make_member, make_profile, make_stats, make_treasury
from squadlink.config import (
    ATLAS_MINT,
    BUDDYLINK_PROGRAM_ID,
    BUDDYLINK_PROGRAM_ID_DEVNET,
    GOLDEN_TICKET_VOLUME_RATIO,
    USDC_MINT,
    Environment,
)
from squadlink.errors import ConfigError, NameUnavailable, SquadlinkError
from squadlink.referral.client import ReferralClient, load_client_factory
from squadlink.referral.facade import ReferralFacade, pretty_balance, tickets_from_statistics, token_symbol_for_mint

RATIO = GOLDEN_TICKET_VOLUME_RATIO


def _facade(client_factory, env=Environment.LOCAL):
    return ReferralFacade(MagicMock(), env, client_factory)


@pytest.mark.parametrize("total, claimed, tickets", [
    (0, 0, 0),
    (RATIO, 0, 0),
    (RATIO + 1, 0, 1),
    (2 * RATIO, 0, 2),
    (5 * RATIO + 7, 2 * RATIO, 3),
    (RATIO, 2 * RATIO, 0),
])
def test_tickets_from_statistics(total, claimed, tickets):
    assert tickets_from_statistics(make_stats(total, claimed)) == tickets


def test_tickets_grow_with_volume():
    counts = [tickets_from_statistics(make_stats(volume)) for volume in range(0, 10 * RATIO, RATIO // 3)]
    assert counts == sorted(counts)
    assert tickets_from_statistics(None) == 0


def test_mint_symbols():
    assert token_symbol_for_mint(USDC_MINT) == "USDC"
    assert token_symbol_for_mint(Pubkey.from_string(ATLAS_MINT)) == "ATLAS"
    assert token_symbol_for_mint(str(Keypair().pubkey())) is None
    assert pretty_balance(1_500_000, USDC_MINT) == 1.5
    assert pretty_balance(250_000_000, ATLAS_MINT) == 2.5


@pytest.mark.parametrize("env, program_id", [
    (Environment.DEV, BUDDYLINK_PROGRAM_ID_DEVNET),
    (Environment.PROD, BUDDYLINK_PROGRAM_ID),
    (Environment.LOCAL, BUDDYLINK_PROGRAM_ID),
])
def test_program_id_per_environment(client_factory, env, program_id):
    assert str(_facade(client_factory, env).program_id) == program_id


def test_fake_client_satisfies_protocol(referral_client):
    assert isinstance(referral_client, ReferralClient)


def test_membership_creation_instructions(client_factory, referral_client):
    vault = Keypair().pubkey()

    instructions = asyncio.run(
        _facade(client_factory).check_and_build_membership_creation(vault, "staratlas", "mysquad")
    )

    assert [bytes(ix.data) for ix in instructions] == [b"member", b"stats"]
    assert referral_client.signer_key == vault
    assert referral_client.calls[1] == ("create_member_with_rewards", "staratlas", "mysquad", ATLAS_MINT, "profile-1")


def test_taken_name_is_rejected(client_factory, referral_client):
    referral_client.available = False

    with pytest.raises(NameUnavailable, match="mysquad"):
        asyncio.run(_facade(client_factory).check_and_build_membership_creation(Keypair().pubkey(), "staratlas", "mysquad"))

    assert [call[0] for call in referral_client.calls] == ["is_member_available"]


def test_reads_swallow_client_failures():
    failing = MagicMock()
    for name in ("get_member_by_name", "get_member_statistics", "get_profile", "get_claimable_balance"):
        setattr(failing, name, AsyncMock(side_effect=RuntimeError("rpc down")))
    facade = ReferralFacade(MagicMock(), Environment.LOCAL, lambda *args: failing)
    owner = Keypair().pubkey()

    async def reads():
        return (
            await facade.get_member(owner, "staratlas", "mysquad"),
            await facade.get_member_statistics(owner, make_member(owner)),
            await facade.get_profile(owner),
            await facade.get_treasuries(owner),
            await facade.get_claimable_balance(owner, make_treasury(USDC_MINT)),
        )

    assert asyncio.run(reads()) == (None, None, None, [], 0)


def test_referees_are_distinct_owners(client_factory, referral_client):
    owner, a, b = Keypair().pubkey(), Keypair().pubkey(), Keypair().pubkey()
    usdc, atlas = make_treasury(USDC_MINT), make_treasury(ATLAS_MINT)
    referral_client.referees = {
        usdc.pda: [make_member(a), make_member(b)],
        atlas.pda: [make_member(a)],
    }

    referees = asyncio.run(_facade(client_factory).get_referees(owner, [usdc, atlas]))

    assert referees == [a, b]


def test_treasuries_require_profile(client_factory, referral_client):
    owner = Keypair().pubkey()
    facade = _facade(client_factory)
    referral_client.treasuries = [make_treasury(USDC_MINT)]

    assert asyncio.run(facade.get_treasuries(owner)) == []

    referral_client.profile = make_profile(owner)
    assert asyncio.run(facade.get_treasuries(owner)) == referral_client.treasuries


def test_claim_instructions(client_factory, referral_client):
    owner = Keypair().pubkey()
    facade = _facade(client_factory)

    treasury_claim = asyncio.run(facade.build_claim_instructions(owner, treasury=make_treasury(USDC_MINT)))
    ticket_claim = asyncio.run(facade.build_claim_instructions(owner, member=make_member(owner), ticket_amount=3))

    assert bytes(treasury_claim[0].data) == b"claim"
    assert bytes(ticket_claim[0].data) == b"tickets"
    assert referral_client.calls == [("claim_treasury", USDC_MINT), ("claim_golden_tickets", 3)]

    with pytest.raises(SquadlinkError):
        asyncio.run(facade.build_claim_instructions(owner))


def test_load_client_factory():
    assert load_client_factory("conftest:FakeReferralClient") is FakeReferralClient


@pytest.mark.parametrize("path", [None, "", "conftest", "no_such_module_xyz:factory", "conftest:REFERRAL_PROGRAM"])
def test_invalid_client_factory(path):
    with pytest.raises(ConfigError):
        load_client_factory(path)
