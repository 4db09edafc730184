#!/usr/bin/env python
"""
Entry point: bootstrap a Squad, or manage the referral rewards of an
existing one.
"""

import argparse
import asyncio
from typing import List, Optional

from loguru import logger
from solana.rpc.async_api import AsyncClient
from solana.rpc.commitment import Confirmed
from solders.keypair import Keypair

from squadlink.config import CONFIG_PATH, LOG_DIR, LOG_LEVEL, SETTINGS_PATH, Environment
from squadlink.config.app_config import Configuration, load_configuration
from squadlink.errors import ConfigError, SquadlinkError
from squadlink.referral.client import load_client_factory
from squadlink.referral.facade import ReferralFacade
from squadlink.scripts.create_squad import create_squad_with_membership
from squadlink.scripts.manage_rewards import manage_referral_rewards
from squadlink.solana.fee_oracle import FeeOracle
from squadlink.solana.integration import SquadsOrchestrator
from squadlink.solana.tx_executor import TxExecutor
from squadlink.utils.flow_logger import FlowLogger, setup_logging
from squadlink.utils.keys import keypair_from_base58
from squadlink.utils.settings_storage import SettingsStorage

COMMANDS = ("auto", "bootstrap", "rewards")


def load_signer(config: Configuration, env: Environment) -> Keypair:
    account = config.account_for(env)
    name = "mainnetAccount.private" if env == Environment.PROD else "devnetAccount.private"
    signer = keypair_from_base58(account.private, name)
    if account.public and str(signer.pubkey()) != account.public:
        raise ConfigError(f"{name} does not belong to {account.public}")
    return signer


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Create and manage a Squads multisig with a referral membership")
    parser.add_argument("command", nargs="?", choices=COMMANDS, default="auto",
                        help="auto bootstraps when no Squad is stored, otherwise manages rewards")
    parser.add_argument("--config", type=str, default=CONFIG_PATH, help="Path to the JSON configuration")
    parser.add_argument("--settings", type=str, default=SETTINGS_PATH, help="Path to the JSON settings record")
    parser.add_argument("--log-level", type=str, default=LOG_LEVEL, help="Log level")
    return parser.parse_args(argv)


async def run(args: argparse.Namespace) -> int:
    """
    Wire the components for the configured environment and run a flow.

    Returns:
        Process exit code
    """
    flow_logger = FlowLogger("squadlink")

    try:
        config = load_configuration(args.config)
        env = config.environment
        signer = load_signer(config, env)
        client_factory = (
            load_client_factory(config.buddy_link.client_factory)
            if config.buddy_link.client_factory
            else None
        )
    except SquadlinkError as e:
        logger.error(f"Configuration error: {e}")
        return 1

    endpoint = config.rpc_endpoint(env)
    flow_logger.highlight(f"Running in {env.value} mode against {endpoint}")

    storage = SettingsStorage(args.settings)
    client = AsyncClient(endpoint, commitment=Confirmed)
    try:
        fee_oracle = FeeOracle(endpoint, flow_logger.child("FeeOracle"))
        tx_executor = TxExecutor(client, endpoint, fee_oracle, flow_logger.child("TxExecutor"))
        orchestrator = SquadsOrchestrator(client, env, tx_executor, flow_logger.child("Squads"))
        referral = None
        if client_factory is None:
            flow_logger.error("buddyLink.clientFactory is not configured, referral features are disabled")
        else:
            referral = ReferralFacade(client, env, client_factory, flow_logger.child("Referral"))

        settings = storage.load()
        command = args.command
        if command == "auto":
            command = "rewards" if settings is not None and settings.finalized else "bootstrap"

        if command == "bootstrap":
            await create_squad_with_membership(
                orchestrator, referral, tx_executor, signer, config, storage, env,
                flow_logger.child("Bootstrap"),
            )
        else:
            if settings is None or not settings.has_wallet:
                raise ConfigError(f"No Squad stored in {storage.path}; run the bootstrap first")
            if referral is None:
                raise ConfigError("The rewards command needs buddyLink.clientFactory")
            await manage_referral_rewards(
                orchestrator, referral, signer, settings, config.buddy_link,
                flow_logger=flow_logger.child("Rewards"),
            )
    except SquadlinkError as e:
        logger.error(f"{type(e).__name__}: {e}")
        return 1
    except Exception as e:
        logger.exception(f"Unexpected error: {str(e)}")
        return 1
    finally:
        await client.close()

    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """Parse arguments, set up logging and run."""
    args = parse_args(argv)
    setup_logging(args.log_level, LOG_DIR)
    logger.info("Starting squadlink")
    return asyncio.run(run(args))


if __name__ == "__main__":
    raise SystemExit(main())
