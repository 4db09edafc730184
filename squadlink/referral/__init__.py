"""
Referral membership of the Squad vault on the BuddyLink program.
"""

from squadlink.referral.client import (
    ClientFactory,
    MemberStatistics,
    ReferralClient,
    ReferralMember,
    ReferralProfile,
    Treasury,
    load_client_factory,
)
from squadlink.referral.facade import ReferralFacade, tickets_from_statistics
