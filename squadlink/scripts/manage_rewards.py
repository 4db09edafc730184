"""
Rewards flow: show the referral state of the Squad vault and create
claim proposals for pending rewards.
"""

import asyncio
from enum import Enum
from typing import Callable, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from solders.keypair import Keypair
from solders.pubkey import Pubkey

from squadlink.config.app_config import BuddyLinkConfig
from squadlink.errors import ConfigError, SquadlinkError
from squadlink.referral.client import ReferralMember, Treasury
from squadlink.referral.facade import ReferralFacade, pretty_balance, token_symbol_for_mint
from squadlink.solana.integration import SquadsOrchestrator
from squadlink.solana.models import ProposalResult
from squadlink.utils.flow_logger import FlowLogger
from squadlink.utils.settings_storage import Settings

REFERRAL_LINK = "https://play.staratlas.com/?r={name}"
GOLDEN_TICKETS_MINT = "gt"


class RewardType(Enum):
    NONE = "NONE"
    ATLAS = "ATLAS"
    USDC = "USDC"
    GOLDEN_TICKETS = "GoldenTickets"


REWARD_LABELS = {
    RewardType.NONE: "None at this time",
    RewardType.ATLAS: "ATLAS",
    RewardType.USDC: "USDC",
    RewardType.GOLDEN_TICKETS: "Golden Tickets",
}


class PendingReward(BaseModel):
    mint: str
    symbol: RewardType
    balance: int
    pretty_balance: float


class ReferralDetails(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    member: Optional[ReferralMember] = None
    treasuries: List[Treasury] = Field(default_factory=list)
    pending_rewards: List[PendingReward] = Field(default_factory=list)


Prompt = Callable[[List[PendingReward]], RewardType]


def prompt_claim_reward(pending_rewards: List[PendingReward]) -> RewardType:
    """Ask on the terminal which pending reward to create a claim proposal for."""
    choices = [RewardType.NONE] + [reward.symbol for reward in pending_rewards]

    print('\nFor which claimable reward do you want to create a "Claim"-proposal?')
    for number, choice in enumerate(choices):
        print(f"  {number}) {REWARD_LABELS[choice]}")

    try:
        answer = input("Choice [0]: ").strip()
    except (EOFError, KeyboardInterrupt):
        return RewardType.NONE

    if not answer:
        return RewardType.NONE
    if answer.isdigit() and int(answer) < len(choices):
        return choices[int(answer)]

    print(f"Unknown choice: {answer}")
    return RewardType.NONE


def _vault_key(settings: Settings) -> Pubkey:
    if not settings.vault_pda:
        raise ConfigError("Settings do not contain a vault address")
    return Pubkey.from_string(settings.vault_pda)


async def show_referral_data(
    referral: ReferralFacade,
    settings: Settings,
    config: BuddyLinkConfig,
    flow_logger: Optional[FlowLogger] = None,
) -> ReferralDetails:
    """
    Log the referral member, profile, statistics, treasuries and golden
    tickets of the vault and collect the pending rewards.

    Args:
        referral: Referral facade
        settings: Settings holding the vault address
        config: Referral organization and member name

    Returns:
        ReferralDetails with the member, treasuries and pending rewards
    """
    log = flow_logger or FlowLogger("Rewards")
    vault = _vault_key(settings)

    member = await referral.get_member(vault, config.org_name, config.member_name)
    log.highlight("Buddy Link:")
    if member:
        log.spotlight(REFERRAL_LINK.format(name=member.name))
    else:
        log.error("BuddyLink Member does not exist!")

    profile = await referral.get_profile(vault)
    if profile:
        log.details(str(profile.authority), label="Authority:")
    else:
        log.error("BuddyLink Profile does not exist!")

    stats = await referral.get_member_statistics(vault, member) if member else None
    if stats:
        log.details(f"{stats.total_referrer_volume // 10 ** 6} USDC", label="Total referred volume:")

    treasuries = await referral.get_treasuries(vault)
    balances = await asyncio.gather(*(referral.get_claimable_balance(vault, t) for t in treasuries))
    referees = await referral.get_referees(vault, treasuries)
    log.details(str(len(referees)), label="Referees:")

    pending_rewards: List[PendingReward] = []
    claimable = [(t, b) for t, b in zip(treasuries, balances) if b]

    log.highlight(f"Treasuries ({len(treasuries)}):")
    if not treasuries:
        log.error("No treasuries could be found!")
    elif not claimable:
        log.details("No claimable balances")
    else:
        log.details(f"{len(claimable)} claimable balances:")
        for treasury, balance in claimable:
            symbol = token_symbol_for_mint(treasury.mint)
            if symbol is None:
                log.details(f"{balance}", label=f"{treasury.mint}:")
                continue
            pretty = pretty_balance(balance, treasury.mint)
            log.details(f"{pretty}", label=f"{symbol}:")
            pending_rewards.append(PendingReward(
                mint=str(treasury.mint),
                symbol=RewardType(symbol),
                balance=balance,
                pretty_balance=pretty,
            ))

    if member:
        tickets = await referral.get_claimable_tickets(vault, member)
        if tickets > 0:
            pending_rewards.append(PendingReward(
                mint=GOLDEN_TICKETS_MINT,
                symbol=RewardType.GOLDEN_TICKETS,
                balance=tickets,
                pretty_balance=tickets,
            ))
        log.highlight("Golden Tickets:")
        log.details(str(tickets), label="Claimable tickets:")
        if stats:
            log.details(str(stats.claimed_rewards), label="Claimed tickets:")
            log.details(str(stats.last_claimed or "never"), label="Last claimed:")

    return ReferralDetails(member=member, treasuries=treasuries, pending_rewards=pending_rewards)


async def claim_pending_reward(
    orchestrator: SquadsOrchestrator,
    referral: ReferralFacade,
    settings: Settings,
    creator: Keypair,
    reward: PendingReward,
    details: ReferralDetails,
    flow_logger: Optional[FlowLogger] = None,
) -> ProposalResult:
    """
    Create a claim proposal for one pending reward.

    Raises:
        SquadlinkError: No claim instructions could be built
    """
    log = flow_logger or FlowLogger("Rewards")
    vault = _vault_key(settings)

    instructions = []
    try:
        if reward.symbol in (RewardType.ATLAS, RewardType.USDC):
            treasury = next((t for t in details.treasuries if str(t.mint) == reward.mint), None)
            if treasury is not None:
                instructions = await referral.build_claim_instructions(vault, treasury=treasury)
        elif details.member is not None:
            instructions = await referral.build_claim_instructions(
                vault, member=details.member, ticket_amount=reward.balance
            )
    except Exception as e:
        log.error(f"Failed to build claim instructions for {reward.symbol.value}: {e}")

    if not instructions:
        raise SquadlinkError("Failed to create Claim Proposal")

    result = await orchestrator.propose(
        settings.multisig_pda,
        instructions,
        creator,
        memo=f"Claim BuddyLink {reward.symbol.value} reward",
    )
    log.highlight(f"Transaction & Proposal created to claim {reward.symbol.value}!")
    for signature in result.signatures:
        log.signature(signature)
    return result


async def manage_referral_rewards(
    orchestrator: SquadsOrchestrator,
    referral: ReferralFacade,
    creator: Keypair,
    settings: Settings,
    config: BuddyLinkConfig,
    prompt: Prompt = prompt_claim_reward,
    flow_logger: Optional[FlowLogger] = None,
) -> List[ProposalResult]:
    """
    Offer each pending reward until the user declines or all are claimed.

    Args:
        orchestrator: Squads lifecycle orchestrator
        referral: Referral facade
        creator: Proposer and fee payer
        settings: Settings of the Squad
        config: Referral organization and member name
        prompt: Chooses a reward from the pending list

    Returns:
        Created claim proposals
    """
    log = flow_logger or FlowLogger("Rewards")
    details = await show_referral_data(referral, settings, config, log)
    pending = list(details.pending_rewards)
    created: List[ProposalResult] = []

    while pending:
        choice = prompt(pending)
        if choice == RewardType.NONE:
            return created

        reward = next((r for r in pending if r.symbol == choice), None)
        if reward is None:
            log.error(f"No pending {choice.value} reward")
            return created

        created.append(await claim_pending_reward(
            orchestrator, referral, settings, creator, reward, details, log
        ))
        pending.remove(reward)

    log.details("There are no (more) pending rewards outstanding!")
    return created
