"""
Referral membership facade over the BuddyLink program client.

Reads log failures and return None or an empty list. Instruction builders
propagate errors to the caller.
"""

import asyncio
from typing import List, Optional, Union

from solana.rpc.async_api import AsyncClient
from solders.instruction import Instruction
from solders.pubkey import Pubkey

from squadlink.config import (
    ATLAS_DECIMALS,
    ATLAS_MINT,
    BUDDYLINK_PROGRAM_ID,
    BUDDYLINK_PROGRAM_ID_DEVNET,
    GOLDEN_TICKET_VOLUME_RATIO,
    USDC_DECIMALS,
    USDC_MINT,
    Environment,
)
from squadlink.errors import NameUnavailable, SquadlinkError
from squadlink.referral.client import (
    ClientFactory,
    MemberStatistics,
    ReferralClient,
    ReferralMember,
    ReferralProfile,
    Treasury,
)
from squadlink.utils.flow_logger import FlowLogger

_MINT_SYMBOLS = {
    USDC_MINT: ("USDC", USDC_DECIMALS),
    ATLAS_MINT: ("ATLAS", ATLAS_DECIMALS),
}


def tickets_from_statistics(stats: Optional[MemberStatistics], ratio: int = GOLDEN_TICKET_VOLUME_RATIO) -> int:
    """
    Number of golden tickets claimable from pending referred volume.

    Args:
        stats: Member statistics, None when unavailable
        ratio: Referred volume (USDC base units) per ticket

    Returns:
        0 while pending volume is at or below the ratio, else pending // ratio
    """
    if stats is None:
        return 0
    pending = stats.pending_volume
    if pending <= ratio:
        return 0
    return pending // ratio


def token_symbol_for_mint(mint: Union[str, Pubkey]) -> Optional[str]:
    entry = _MINT_SYMBOLS.get(str(mint))
    return entry[0] if entry else None


def pretty_balance(balance: int, mint: Union[str, Pubkey]) -> Optional[float]:
    entry = _MINT_SYMBOLS.get(str(mint))
    if entry is None:
        return None
    return balance / 10 ** entry[1]


class ReferralFacade:
    """
    Membership creation, lookups and reward claims for the referral program.
    """

    def __init__(
        self,
        connection: AsyncClient,
        env: Environment,
        client_factory: ClientFactory,
        flow_logger: Optional[FlowLogger] = None,
    ):
        """
        Initialize the facade.

        Args:
            connection: Async RPC client of the selected environment
            env: Selected environment; DEV uses the development program
            client_factory: Builds a client as factory(connection, signer_key, program_id)
            flow_logger: Logger for referral lookups
        """
        self.connection = connection
        self.env = env
        self.client_factory = client_factory
        self.log = flow_logger or FlowLogger("Referral")

        program_id = BUDDYLINK_PROGRAM_ID_DEVNET if env == Environment.DEV else BUDDYLINK_PROGRAM_ID
        self.program_id = Pubkey.from_string(program_id)

    def client(self, signer_key: Pubkey) -> ReferralClient:
        return self.client_factory(self.connection, signer_key, self.program_id)

    async def check_and_build_membership_creation(
        self,
        signer_key: Pubkey,
        org_name: str,
        member_name: str,
    ) -> List[Instruction]:
        """
        Build the instructions creating a rewarded member and its statistics.

        Args:
            signer_key: Owner of the new member (the Squad vault)
            org_name: Referral organization
            member_name: Requested member name

        Returns:
            Member creation followed by statistics creation instructions

        Raises:
            NameUnavailable: The member name is taken
        """
        client = self.client(signer_key)
        if not await client.is_member_available(org_name, member_name):
            raise NameUnavailable(f'MemberName "{member_name}" is not available')

        profile_name = client.generate_profile_name()
        instructions = list(await client.create_member_with_rewards(
            org_name,
            member_name,
            Pubkey.from_string(ATLAS_MINT),
            profile_name,
        ))
        instructions.extend(await client.create_member_statistics(org_name, member_name))
        return instructions

    async def get_member(self, signer_key: Pubkey, org_name: str, member_name: str) -> Optional[ReferralMember]:
        try:
            return await self.client(signer_key).get_member_by_name(org_name, member_name)
        except Exception as e:
            self.log.error(f"Error fetching member {member_name}: {e}")
            return None

    async def get_member_statistics(self, signer_key: Pubkey, member: ReferralMember) -> Optional[MemberStatistics]:
        try:
            return await self.client(signer_key).get_member_statistics(member)
        except Exception as e:
            self.log.error(f"An error occurred while fetching the member statistics: {e}")
            return None

    async def get_profile(self, signer_key: Pubkey) -> Optional[ReferralProfile]:
        try:
            return await self.client(signer_key).get_profile(signer_key)
        except Exception as e:
            self.log.error(f"Error fetching profile of {signer_key}: {e}")
            return None

    async def get_treasuries(self, signer_key: Pubkey) -> List[Treasury]:
        """Treasuries of the signer's profile; empty when there is no profile."""
        profile = await self.get_profile(signer_key)
        if profile is None:
            return []
        try:
            return list(await self.client(signer_key).get_treasuries_by_profile(profile.pda))
        except Exception as e:
            self.log.error(f"Error fetching treasuries of {profile.pda}: {e}")
            return []

    async def get_referees(self, signer_key: Pubkey, treasuries: List[Treasury]) -> List[Pubkey]:
        """Distinct owners of members referred through any of the treasuries."""
        client = self.client(signer_key)
        try:
            per_treasury = await asyncio.gather(*(
                client.get_members_by_treasury_referrer(treasury.pda) for treasury in treasuries
            ))
        except Exception as e:
            self.log.error(f"Error fetching referees: {e}")
            return []

        referees = []
        for members in per_treasury:
            for member in members:
                if member.owner not in referees:
                    referees.append(member.owner)
        return referees

    async def get_claimable_balance(self, signer_key: Pubkey, treasury: Treasury) -> int:
        try:
            return await self.client(signer_key).get_claimable_balance(treasury)
        except Exception as e:
            self.log.error(f"Error fetching claimable balance of {treasury.pda}: {e}")
            return 0

    async def get_claimable_tickets(self, signer_key: Pubkey, member: ReferralMember) -> int:
        stats = await self.get_member_statistics(signer_key, member)
        return tickets_from_statistics(stats)

    async def build_claim_instructions(
        self,
        signer_key: Pubkey,
        treasury: Optional[Treasury] = None,
        member: Optional[ReferralMember] = None,
        ticket_amount: int = 1,
    ) -> List[Instruction]:
        """
        Build claim instructions for a treasury balance or for golden tickets.

        Args:
            signer_key: Claiming owner (the Squad vault)
            treasury: Treasury to claim from
            member: Member claiming golden tickets when no treasury is given
            ticket_amount: Number of tickets to claim

        Returns:
            Claim instructions
        """
        client = self.client(signer_key)
        if treasury is not None:
            return list(await client.claim_treasury(treasury))
        if member is not None:
            return list(await client.claim_golden_tickets(member, ticket_amount))
        raise SquadlinkError("Nothing to claim: neither a treasury nor a member was given")
