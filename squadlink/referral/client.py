"""
Interface of the BuddyLink referral program client.

The referral program has no Python SDK; a concrete client is supplied by a
factory named in the configuration (``buddyLink.clientFactory`` as
``module:attribute``) and called as ``factory(connection, signer_key, program_id)``.
"""

import importlib
from typing import Callable, List, Optional, Protocol, runtime_checkable

from pydantic import BaseModel, ConfigDict
from solana.rpc.async_api import AsyncClient
from solders.instruction import Instruction
from solders.pubkey import Pubkey

from squadlink.errors import ConfigError


class ReferralModel(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)


class ReferralMember(ReferralModel):
    """A named member of a referral organization."""
    pda: Pubkey
    name: str
    owner: Pubkey


class MemberStatistics(ReferralModel):
    """Referral volume of a member, in USDC base units."""
    total_referrer_volume: int = 0
    claimed_rewards_in_volume: int = 0
    claimed_rewards: int = 0
    last_claimed: Optional[int] = None

    @property
    def pending_volume(self) -> int:
        return max(self.total_referrer_volume - self.claimed_rewards_in_volume, 0)


class ReferralProfile(ReferralModel):
    pda: Pubkey
    authority: Pubkey


class Treasury(ReferralModel):
    """Reward treasury of a profile for a single mint."""
    pda: Pubkey
    mint: Pubkey


@runtime_checkable
class ReferralClient(Protocol):
    """Operations the referral flows need from the BuddyLink program client."""

    def generate_profile_name(self) -> str: ...

    async def is_member_available(self, org_name: str, member_name: str) -> bool: ...

    async def create_member_with_rewards(
        self,
        org_name: str,
        member_name: str,
        reward_mint: Pubkey,
        profile_name: str,
    ) -> List[Instruction]: ...

    async def create_member_statistics(self, org_name: str, member_name: str) -> List[Instruction]: ...

    async def get_member_by_name(self, org_name: str, member_name: str) -> Optional[ReferralMember]: ...

    async def get_member_statistics(self, member: ReferralMember) -> Optional[MemberStatistics]: ...

    async def get_profile(self, owner: Pubkey) -> Optional[ReferralProfile]: ...

    async def get_treasuries_by_profile(self, profile: Pubkey) -> List[Treasury]: ...

    async def get_members_by_treasury_referrer(self, treasury: Pubkey) -> List[ReferralMember]: ...

    async def get_claimable_balance(self, treasury: Treasury) -> int: ...

    async def claim_treasury(self, treasury: Treasury) -> List[Instruction]: ...

    async def claim_golden_tickets(self, member: ReferralMember, amount: int) -> List[Instruction]: ...


ClientFactory = Callable[[AsyncClient, Pubkey, Pubkey], ReferralClient]


def load_client_factory(path: Optional[str]) -> ClientFactory:
    """
    Resolve a ``module:attribute`` path to a referral client factory.

    Args:
        path: Dotted module path and attribute separated by a colon

    Returns:
        The factory callable
    """
    if not path:
        raise ConfigError("buddyLink.clientFactory is not configured")

    module_name, _, attribute = path.partition(":")
    if not module_name or not attribute:
        raise ConfigError(f"Invalid client factory path {path!r}, expected 'module:attribute'")

    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise ConfigError(f"Cannot import referral client module {module_name!r}: {e}") from e

    factory = getattr(module, attribute, None)
    if not callable(factory):
        raise ConfigError(f"{path!r} is not a callable referral client factory")
    return factory
