"""
Simple settings storage for persisting the Squad created at bootstrap.
Stores the creation key, the multisig address and the vault address.
"""

import json
import os
from pathlib import Path
from typing import Optional, Union

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, ValidationError


class Settings(BaseModel):
    """Identifiers tying a session to a previously created Squad."""
    model_config = ConfigDict(populate_by_name=True)

    create_key: str = Field(alias="createKey")
    multisig_pda: Optional[str] = Field(default=None, alias="multisigPda")
    vault_pda: Optional[str] = Field(default=None, alias="vaultPda")
    # Bootstrap progress; a wallet that is not finalized is still controlled by the creator alone
    membership_created: bool = Field(default=False, alias="membershipCreated")
    finalized: bool = False

    @property
    def has_wallet(self) -> bool:
        return bool(self.multisig_pda and self.vault_pda)


class SettingsStorage:
    """File-based key-value storage for the settings record."""

    def __init__(self, path: Union[str, Path] = "settings.json"):
        """
        Initialize settings storage.

        Args:
            path: Location of the settings JSON file
        """
        self.path = Path(path)

    def exists(self) -> bool:
        return self.path.exists()

    def load(self) -> Optional[Settings]:
        """
        Load the settings record.

        Returns:
            Settings, or None when the file is missing or unreadable
        """
        if not self.path.exists():
            return None

        try:
            with open(self.path, 'r') as f:
                raw = json.load(f)
            return Settings.model_validate(raw)
        except (json.JSONDecodeError, ValidationError) as e:
            logger.error(f"Failed to load settings from {self.path}: {e}")
            return None

    def save(self, settings: Settings) -> None:
        """
        Persist the settings record.

        Args:
            settings: Settings to write
        """
        if self.path.parent and not self.path.parent.exists():
            os.makedirs(self.path.parent, exist_ok=True)

        with open(self.path, 'w') as f:
            json.dump(settings.model_dump(by_alias=True), f, indent=2)

        logger.info(f"Stored settings for multisig {settings.multisig_pda} in {self.path}")
