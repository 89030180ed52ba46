"""API schemas for subscription endpoints."""
from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..billing import ProviderSubscription
from ..entitlements import (
    AccountSubscription,
    CapabilityTier,
    PlanKey,
    SubscriptionStatus,
    accessible_tiers,
    is_subscription_active,
)


class CheckoutRequest(BaseModel):
    plan: Optional[str] = None


class CheckoutResponse(BaseModel):
    url: str
    session_id: str = Field(alias="sessionId")

    model_config = ConfigDict(populate_by_name=True)


class ConfirmCheckoutRequest(BaseModel):
    session_id: Optional[str] = Field(default=None, alias="sessionId")

    model_config = ConfigDict(populate_by_name=True)


class SubscriptionOut(BaseModel):
    plan: PlanKey
    status: SubscriptionStatus
    period_start: Optional[datetime] = Field(default=None, alias="periodStart")
    period_end: Optional[datetime] = Field(default=None, alias="periodEnd")
    trial_used: bool = Field(default=False, alias="trialUsed")
    active: bool
    accessible_tiers: List[CapabilityTier] = Field(default_factory=list, alias="accessibleTiers")

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_subscription(cls, subscription: AccountSubscription) -> "SubscriptionOut":
        return cls(
            plan=subscription.plan,
            status=subscription.status,
            period_start=subscription.period_start,
            period_end=subscription.period_end,
            trial_used=subscription.trial_used,
            active=is_subscription_active(subscription),
            accessible_tiers=accessible_tiers(subscription),
        )


class ConfirmCheckoutResponse(BaseModel):
    message: str
    subscription: SubscriptionOut


class ManageSubscriptionResponse(BaseModel):
    subscription: SubscriptionOut
    provider_subscription: Optional[ProviderSubscription] = Field(default=None, alias="stripeInfo")

    model_config = ConfigDict(populate_by_name=True)


class CancelSubscriptionResponse(BaseModel):
    message: str
    provider_subscription: ProviderSubscription = Field(alias="subscription")

    model_config = ConfigDict(populate_by_name=True)


class WebhookAck(BaseModel):
    received: bool = True
