"""
JSON configuration file for squadlink.

The file uses camelCase keys, e.g.:

    {
      "mode": "dev",
      "rpc": {"mainnet": "...", "devnet": "...", "local": "http://127.0.0.1:8899"},
      "devnetAccount": {"public": "...", "private": "<base58 secret>"},
      "mainnetAccount": {"public": "...", "private": "<base58 secret>"},
      "squads": {"members": ["..."], "threshold": 2},
      "buddyLink": {"orgName": "staratlas", "memberName": "mysquad"}
    }
"""

import json
from pathlib import Path
from typing import List, Optional, Union

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from squadlink.config import Environment
from squadlink.errors import ConfigError


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class RpcEndpoints(_CamelModel):
    mainnet: str = "https://api.mainnet-beta.solana.com"
    devnet: str = "https://api.devnet.solana.com"
    local: str = "http://127.0.0.1:8899"


class AccountConfig(_CamelModel):
    public: Optional[str] = None
    private: Optional[str] = None


class SquadConfig(_CamelModel):
    create_key: Optional[str] = Field(default=None, alias="createKey")
    members: List[str] = Field(default_factory=list)
    threshold: int = 1
    creator_permissions: Optional[List[str]] = Field(default=None, alias="creatorPermissions")


class BuddyLinkConfig(_CamelModel):
    org_name: str = Field(alias="orgName")
    member_name: str = Field(alias="memberName")
    client_factory: Optional[str] = Field(default=None, alias="clientFactory")


class Configuration(_CamelModel):
    """Validated contents of the configuration file."""
    mode: str = "dev"
    rpc: RpcEndpoints = Field(default_factory=RpcEndpoints)
    devnet_account: AccountConfig = Field(default_factory=AccountConfig, alias="devnetAccount")
    mainnet_account: AccountConfig = Field(default_factory=AccountConfig, alias="mainnetAccount")
    squads: SquadConfig = Field(default_factory=SquadConfig)
    buddy_link: BuddyLinkConfig = Field(alias="buddyLink")

    @property
    def environment(self) -> Environment:
        return Environment.from_mode(self.mode)

    def rpc_endpoint(self, env: Environment) -> str:
        if env == Environment.PROD:
            return self.rpc.mainnet
        if env == Environment.DEV:
            return self.rpc.devnet
        return self.rpc.local

    def account_for(self, env: Environment) -> AccountConfig:
        # Local validators share the devnet signer
        if env == Environment.PROD:
            return self.mainnet_account
        return self.devnet_account


def load_configuration(path: Union[str, Path]) -> Configuration:
    """
    Load and validate the configuration file.

    Args:
        path: Path to the JSON configuration file

    Returns:
        Validated Configuration

    Raises:
        ConfigError: If the file is missing, not JSON, or fails validation
    """
    config_path = Path(path)
    if not config_path.exists():
        raise ConfigError(f"Configuration file not found: {config_path}")

    try:
        with open(config_path, 'r') as f:
            raw = json.load(f)
    except json.JSONDecodeError as e:
        raise ConfigError(f"Configuration file {config_path} is not valid JSON: {e}") from e

    try:
        config = Configuration.model_validate(raw)
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration in {config_path}: {e}") from e

    # Fail early on an unknown mode
    env = config.environment
    logger.info(f"Loaded configuration from {config_path} (mode: {env.value})")
    return config
