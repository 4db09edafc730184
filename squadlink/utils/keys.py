"""
Keypair loading from base58 encoded secrets.
"""

import base58
from solders.keypair import Keypair

from squadlink.errors import ConfigError


def keypair_from_base58(secret: str, name: str = "secret key") -> Keypair:
    """
    Decode a base58 encoded 64 byte secret key.

    Args:
        secret: Base58 secret key as exported by Solana wallets
        name: Description used in error messages

    Returns:
        Keypair
    """
    if not secret:
        raise ConfigError(f"No {name} configured")
    try:
        raw = base58.b58decode(secret.strip())
    except ValueError as e:
        raise ConfigError(f"The {name} is not valid base58: {e}") from e

    if len(raw) != 64:
        raise ConfigError(f"The {name} must decode to 64 bytes, got {len(raw)}")
    try:
        return Keypair.from_bytes(raw)
    except ValueError as e:
        raise ConfigError(f"The {name} is not a valid keypair: {e}") from e
