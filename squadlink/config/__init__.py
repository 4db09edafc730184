"""
Configuration package for squadlink.
Core constants, environment selection and file locations.
"""

import os
from enum import Enum
from dotenv import load_dotenv

from squadlink.errors import ConfigError

# Load environment variables from .env file
load_dotenv()

# File locations
CONFIG_PATH = os.getenv("SQUADLINK_CONFIG", "config.json")
SETTINGS_PATH = os.getenv("SQUADLINK_SETTINGS", "settings.json")

# Logging configuration
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_DIR = os.getenv("LOG_DIR", "logs")

# Program addresses
SQUADS_PROGRAM_ID = "SQDS4ep65T869zMMBKyuUq6aD6EgTu8psMjkvj52pCf"
BUDDYLINK_PROGRAM_ID = "BUDDYtQp7Di1xfojiCSVDksiYLQx511DPdj2nbtG9Yu5"
BUDDYLINK_PROGRAM_ID_DEVNET = "9zE4EQ5tJbEeMYwtS2w8KrSHTtTW4UPqwfbBSEkUrNCA"

# Reward token mints
ATLAS_MINT = "ATLASXmbPQxBUYbxPsV97usA3fPQYEqzQBUHgiFCUsXx"
USDC_MINT = "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v"
ATLAS_DECIMALS = 8
USDC_DECIMALS = 6

LAMPORTS_PER_SOL = 1_000_000_000

# Fee / compute budget configuration
DEFAULT_PRIORITY_FEE = 100  # micro-lamports per CU
CU_LIMIT_MULTIPLIER = 1.1
MAX_COMPUTE_UNITS = 1_400_000
FEE_SAMPLE_WINDOW = 3

# Only the proposal creation submission is retried
PROPOSAL_SUBMIT_RETRIES = 5

# Membership creation is compute heavy; its cost is known up front
MEMBERSHIP_EXECUTE_COMPUTE_LIMIT = 300_000
MEMBERSHIP_VAULT_FUNDING_SOL = 0.1
DEV_AIRDROP_SOL = 1.0

# Golden tickets: one ticket per 500 USDC of referred volume
GOLDEN_TICKET_VOLUME_RATIO = 500 * 10 ** USDC_DECIMALS


class Environment(Enum):
    PROD = "prod"
    DEV = "dev"
    LOCAL = "local"

    @classmethod
    def from_mode(cls, mode: str) -> "Environment":
        """
        Parse the configured run mode.

        Args:
            mode: Mode string from the configuration file

        Returns:
            Matching Environment
        """
        normalized = (mode or "").strip().lower()
        if normalized in ("prod", "production", "mainnet"):
            return cls.PROD
        if normalized in ("dev", "development", "devnet"):
            return cls.DEV
        if normalized in ("local", "localnet", "localhost"):
            return cls.LOCAL
        raise ConfigError(f"Unknown run mode: {mode!r}")


# Make everything available at package level
__all__ = [
    'ConfigError',
    'Environment',
    'CONFIG_PATH',
    'SETTINGS_PATH',
    'LOG_LEVEL',
    'LOG_DIR',
    'SQUADS_PROGRAM_ID',
    'BUDDYLINK_PROGRAM_ID',
    'BUDDYLINK_PROGRAM_ID_DEVNET',
    'ATLAS_MINT',
    'USDC_MINT',
    'ATLAS_DECIMALS',
    'USDC_DECIMALS',
    'LAMPORTS_PER_SOL',
    'DEFAULT_PRIORITY_FEE',
    'CU_LIMIT_MULTIPLIER',
    'MAX_COMPUTE_UNITS',
    'FEE_SAMPLE_WINDOW',
    'PROPOSAL_SUBMIT_RETRIES',
    'MEMBERSHIP_EXECUTE_COMPUTE_LIMIT',
    'MEMBERSHIP_VAULT_FUNDING_SOL',
    'DEV_AIRDROP_SOL',
    'GOLDEN_TICKET_VOLUME_RATIO',
]
