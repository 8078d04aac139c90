"""Affiliate program for Diamond Tier Capital.

Referral partners share a link carrying their code:
- Each visit with ?ref=CODE is recorded as a click
- Applications submitted after that visit are attributed to the affiliate
- Attribution creates one commission per (affiliate, application)
- Failed attributions are queued for manual retry by an admin
"""

from diamondtier.affiliates.models import (
    Affiliate,
    AffiliateClick,
    AffiliateCommission,
    AffiliateTrackingRetry,
    AffiliateStatus,
    CommissionStatus,
)
from diamondtier.affiliates.service import AffiliateError, AffiliateNotFound, AffiliateService, affiliate_service
from diamondtier.affiliates.tracking import AffiliateTrackingService, AttributionResult, tracking_service

__all__ = [
    "Affiliate",
    "AffiliateClick",
    "AffiliateCommission",
    "AffiliateTrackingRetry",
    "AffiliateStatus",
    "CommissionStatus",
    "AffiliateError",
    "AffiliateNotFound",
    "AffiliateService",
    "affiliate_service",
    "AffiliateTrackingService",
    "AttributionResult",
    "tracking_service",
]
