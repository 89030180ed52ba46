"""Convenience wrapper around an account subscription for feature gating."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional

from ..entitlements import (
    AccountSubscription,
    CapabilityTier,
    PlanKey,
    accessible_tiers,
    has_access_to_agent,
    is_subscription_active,
)
from .enforcement import require_capability


@dataclass(frozen=True)
class EntitlementContext:
    """Facade exposing gating helpers for one request.

    ``now`` is pinned at construction so every check made while serving a
    request agrees on the same instant.
    """

    subscription: Optional[AccountSubscription]
    now: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def for_account(cls, account) -> "EntitlementContext":
        if account is None:
            return cls(subscription=None)
        return cls(subscription=account.subscription)

    @property
    def plan(self) -> Optional[PlanKey]:
        return self.subscription.plan if self.subscription else None

    @property
    def is_active(self) -> bool:
        return is_subscription_active(self.subscription, now=self.now)

    @property
    def tiers(self) -> List[CapabilityTier]:
        return accessible_tiers(self.subscription, now=self.now)

    def has(self, tier: CapabilityTier) -> bool:
        return has_access_to_agent(self.subscription, tier, now=self.now)

    def require(self, tier: CapabilityTier, *, error_code: str = "upgrade_required") -> None:
        require_capability(self.subscription, tier, now=self.now, error_code=error_code)
