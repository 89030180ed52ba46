"""Entitlement evaluation for capability-gated agents and tools.

Every check is computed from the subscription fields passed in; nothing is
cached between calls so plan changes applied by billing events take effect on
the next request.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import List, Optional

from .catalog import get_plan_definition
from .models import TERMINAL_STATUSES, AccountSubscription, CapabilityTier, SubscriptionStatus

_TIER_ORDER = (CapabilityTier.BASIC, CapabilityTier.PREMIUM, CapabilityTier.BUSINESS)

_UPGRADE_MESSAGES = {
    CapabilityTier.BASIC: "",
    CapabilityTier.PREMIUM: "Upgrade to Premium to unlock the Premium culinary assistant",
    CapabilityTier.BUSINESS: "Upgrade to Business to unlock the Business culinary assistant",
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def is_expired_by_date(subscription: AccountSubscription, *, now: Optional[datetime] = None) -> bool:
    """Return ``True`` when ``period_end`` lies in the past.

    The stored status is not consulted, so an ``ACTIVE`` row whose period
    ended without a billing event is still reported as expired.
    """

    if subscription.period_end is None:
        return False
    return (now or _utcnow()) > subscription.period_end


def has_access_to_agent(
    subscription: Optional[AccountSubscription],
    tier: CapabilityTier,
    *,
    now: Optional[datetime] = None,
) -> bool:
    """Decide whether the subscription authorizes the requested tier."""

    tier = CapabilityTier(tier)
    if subscription is None:
        return False

    if subscription.status in TERMINAL_STATUSES:
        return tier == CapabilityTier.BASIC

    if is_expired_by_date(subscription, now=now):
        return tier == CapabilityTier.BASIC

    return get_plan_definition(subscription.plan).allows(tier)


def accessible_tiers(
    subscription: Optional[AccountSubscription],
    *,
    now: Optional[datetime] = None,
) -> List[CapabilityTier]:
    current = now or _utcnow()
    return [tier for tier in _TIER_ORDER if has_access_to_agent(subscription, tier, now=current)]


def is_subscription_active(
    subscription: Optional[AccountSubscription],
    *,
    now: Optional[datetime] = None,
) -> bool:
    if subscription is None:
        return False
    if subscription.status in TERMINAL_STATUSES:
        return False
    if subscription.period_end is not None:
        return not is_expired_by_date(subscription, now=now)
    return subscription.status in {SubscriptionStatus.ACTIVE, SubscriptionStatus.TRIAL}


def upgrade_message(tier: CapabilityTier) -> str:
    return _UPGRADE_MESSAGES[CapabilityTier(tier)]


__all__ = [
    "accessible_tiers",
    "has_access_to_agent",
    "is_expired_by_date",
    "is_subscription_active",
    "upgrade_message",
]
