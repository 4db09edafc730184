"""
Bootstrap flow: create a Squad, register its vault as a referral member
and hand control over to the configured members.

The creator joins with full permissions and a temporary threshold of 1 so
it can drive the setup proposals alone. The last proposal raises the
threshold to the configured value (and optionally downgrades the creator).
"""

from typing import Optional

from solders.keypair import Keypair
from solders.pubkey import Pubkey

from squadlink.config import (
    DEV_AIRDROP_SOL,
    MEMBERSHIP_EXECUTE_COMPUTE_LIMIT,
    MEMBERSHIP_VAULT_FUNDING_SOL,
    Environment,
)
from squadlink.config.app_config import BuddyLinkConfig, Configuration, SquadConfig
from squadlink.errors import InvalidThreshold, NameUnavailable
from squadlink.referral.facade import ReferralFacade
from squadlink.solana.integration import SquadsOrchestrator
from squadlink.solana.squads_program import MultisigAccount, Permission
from squadlink.solana.tx_executor import TxExecutor
from squadlink.utils.flow_logger import FlowLogger
from squadlink.utils.keys import keypair_from_base58
from squadlink.utils.settings_storage import Settings, SettingsStorage


def _validate_target_threshold(creator: Keypair, squad_config: SquadConfig):
    members = {str(creator.pubkey()), *squad_config.members}
    if squad_config.threshold < 1 or squad_config.threshold > len(members):
        raise InvalidThreshold(
            f"Configured threshold {squad_config.threshold} is invalid for {len(members)} members"
        )


async def create_membership(
    orchestrator: SquadsOrchestrator,
    referral: ReferralFacade,
    tx_executor: TxExecutor,
    multisig: Pubkey,
    creator: Keypair,
    buddy_link: BuddyLinkConfig,
    log: FlowLogger,
) -> Optional[str]:
    """
    Create the referral member owned by the vault through a proposal.

    Returns:
        Execution signature, or None when the member name is taken
    """
    vault = orchestrator.vault_address(multisig)
    log.details(str(vault), label="Vault account:")

    try:
        result = await orchestrator.propose(
            multisig,
            lambda: referral.check_and_build_membership_creation(
                vault, buddy_link.org_name, buddy_link.member_name
            ),
            creator,
        )
    except NameUnavailable as e:
        log.error(str(e))
        return None
    log.signature(result.signature, label="Membership - Proposal created:")

    signature = await orchestrator.approve(multisig, result.transaction_index, creator)
    log.signature(signature, label="Membership - Proposal approved:")

    # The vault pays rent for the member accounts
    signature = await tx_executor.transfer_sol(creator, vault, MEMBERSHIP_VAULT_FUNDING_SOL)
    log.signature(signature, label="Membership - Funds transferred to vault:")

    signature = await orchestrator.execute(
        multisig,
        result.transaction_index,
        creator,
        compute_limit=MEMBERSHIP_EXECUTE_COMPUTE_LIMIT,
    )
    log.signature(signature, label="Membership - Proposal executed:")
    return signature


def _is_finalized(details: MultisigAccount, creator: Keypair, squad_config: SquadConfig) -> bool:
    if details.threshold != squad_config.threshold:
        return False
    if squad_config.creator_permissions:
        member = details.member(creator.pubkey())
        target = Permission.from_names(squad_config.creator_permissions)
        return member is not None and member.permissions == target
    return True


async def finalize_squad(
    orchestrator: SquadsOrchestrator,
    multisig: Pubkey,
    creator: Keypair,
    squad_config: SquadConfig,
    log: FlowLogger,
) -> Optional[str]:
    """
    Raise the threshold (and downgrade the creator when configured) through a config proposal.

    Returns:
        Execution signature, or None when the Squad already has the configured setup
    """
    details = await orchestrator.get_wallet_details(multisig)
    if _is_finalized(details, creator, squad_config):
        log.details(str(details.threshold), label="Threshold already set:")
        return None

    if squad_config.creator_permissions:
        permissions = Permission.from_names(squad_config.creator_permissions)
        result = await orchestrator.propose_permission_and_threshold_change(
            multisig, creator, creator.pubkey(), permissions, squad_config.threshold
        )
    else:
        result = await orchestrator.propose_threshold_change(multisig, creator, squad_config.threshold)
    log.signature(result.signature, label="Threshold update - Proposal created:")

    signature = await orchestrator.approve(multisig, result.transaction_index, creator)
    log.signature(signature, label="Threshold update - Proposal approved:")

    signature = await orchestrator.execute_config(multisig, result.transaction_index, creator)
    log.signature(signature, label="Threshold update - Proposal executed:")
    return signature


async def create_squad_with_membership(
    orchestrator: SquadsOrchestrator,
    referral: Optional[ReferralFacade],
    tx_executor: TxExecutor,
    creator: Keypair,
    config: Configuration,
    storage: SettingsStorage,
    env: Environment,
    flow_logger: Optional[FlowLogger] = None,
) -> Settings:
    """
    Run the bootstrap flow once.

    Progress is stored after every step. A finalized Squad short-circuits the
    flow; a stored Squad that is not finalized resumes where it stopped.

    Args:
        orchestrator: Squads lifecycle orchestrator
        referral: Referral facade; None skips the membership
        tx_executor: Executor used for funding transfers and airdrops
        creator: Creator and fee payer
        config: Loaded configuration
        storage: Settings storage
        env: Selected environment

    Returns:
        Settings of the (existing or created) Squad
    """
    log = flow_logger or FlowLogger("Bootstrap")

    existing = storage.load()
    if existing is not None and existing.has_wallet and existing.finalized:
        log.highlight("Squad already exists:")
        log.details(existing.multisig_pda, label="Multisig:")
        log.details(existing.vault_pda, label="Vault:")
        return existing

    squad_config = config.squads
    _validate_target_threshold(creator, squad_config)

    if existing is not None and existing.has_wallet:
        settings = existing
        multisig = Pubkey.from_string(settings.multisig_pda)
        log.highlight("Resuming the setup of Squad:")
        log.details(settings.multisig_pda, label="Multisig:")
    else:
        if env in (Environment.DEV, Environment.LOCAL):
            await tx_executor.airdrop(creator.pubkey(), DEV_AIRDROP_SOL)

        create_key = (
            keypair_from_base58(squad_config.create_key, "squads.createKey")
            if squad_config.create_key
            else Keypair()
        )
        log.details(str(creator.pubkey()), label="Creator & fee payer:")

        wallet = await orchestrator.create_wallet(creator, squad_config.members, 1, create_key=create_key)
        log.signature(wallet.signature, label="Multisig created:")

        multisig = wallet.multisig
        settings = Settings(
            create_key=str(wallet.create_key),
            multisig_pda=str(wallet.multisig),
            vault_pda=str(wallet.vault),
        )
        storage.save(settings)

    if settings.membership_created:
        log.details("Referral membership already created")
    elif referral is None:
        log.error("No referral client configured (buddyLink.clientFactory), skipping the membership")
    else:
        signature = await create_membership(
            orchestrator, referral, tx_executor, multisig, creator, config.buddy_link, log
        )
        if signature is not None:
            settings.membership_created = True
            storage.save(settings)

    await finalize_squad(orchestrator, multisig, creator, squad_config, log)
    settings.finalized = True
    storage.save(settings)

    log.spotlight(f"Squad {multisig} is ready")
    return settings
