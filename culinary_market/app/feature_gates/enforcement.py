"""Helpers for enforcing capability tiers on API and service layers."""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from ..entitlements import (
    AccountSubscription,
    CapabilityTier,
    accessible_tiers,
    has_access_to_agent,
    upgrade_message,
)
from .exceptions import FeatureGateError


def require_capability(
    subscription: Optional[AccountSubscription],
    tier: CapabilityTier,
    *,
    now: Optional[datetime] = None,
    error_code: str = "upgrade_required",
) -> None:
    """Ensure the subscription reaches ``tier`` before proceeding.

    Parameters
    ----------
    subscription:
        Subscription fields of the calling account, or ``None`` when the caller
        is anonymous.
    tier:
        Capability tier required by the operation.
    error_code:
        Code surfaced in the error payload when access is refused.
    """

    tier = CapabilityTier(tier)
    if has_access_to_agent(subscription, tier, now=now):
        return

    message = upgrade_message(tier) or "Sign in to use this assistant"
    raise FeatureGateError(
        code=error_code,
        message=message,
        required_tier=tier,
        accessible_tiers=accessible_tiers(subscription, now=now),
    )
