"""
squadlink: bootstrap a Squads v4 multisig on Solana, drive its proposals
and manage the referral membership owned by its vault.
"""

__version__ = "0.1.0"
