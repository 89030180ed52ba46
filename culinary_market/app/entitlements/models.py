"""Domain models for plans, subscription state and capability tiers."""
from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class PlanKey(str, Enum):
    """Canonical identifiers for subscription plans."""

    FREE = "FREE"
    PREMIUM = "PREMIUM"
    BUSINESS = "BUSINESS"


class SubscriptionStatus(str, Enum):
    """Health of an account subscription as reported by the billing provider."""

    ACTIVE = "ACTIVE"
    EXPIRED = "EXPIRED"
    CANCELLED = "CANCELLED"
    TRIAL = "TRIAL"


class CapabilityTier(str, Enum):
    """Gate level required by an agent or tool."""

    BASIC = "basic"
    PREMIUM = "premium"
    BUSINESS = "business"


class AccountRole(str, Enum):
    """Marketplace roles an account can hold."""

    CLIENT = "CLIENT"
    PROVIDER = "PROVIDER"
    ADMIN = "ADMIN"


TERMINAL_STATUSES = frozenset({SubscriptionStatus.EXPIRED, SubscriptionStatus.CANCELLED})


class AccountSubscription(BaseModel):
    """Subscription fields stored on an account."""

    account_id: Optional[int] = None
    plan: PlanKey = PlanKey.FREE
    status: SubscriptionStatus = SubscriptionStatus.ACTIVE
    period_start: Optional[datetime] = Field(default=None, alias="periodStart")
    period_end: Optional[datetime] = Field(default=None, alias="periodEnd")
    trial_used: bool = Field(default=False, alias="trialUsed")

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    @field_validator("period_start", "period_end")
    @classmethod
    def _assume_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value


__all__ = [
    "AccountRole",
    "AccountSubscription",
    "CapabilityTier",
    "PlanKey",
    "SubscriptionStatus",
    "TERMINAL_STATUSES",
]
