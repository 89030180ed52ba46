"""API schemas for accounts and authentication."""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from ..entitlements.models import AccountRole, AccountSubscription, PlanKey, SubscriptionStatus


class OrganizationSummary(BaseModel):
    id: int
    name: str
    sector: Optional[str] = None

    model_config = ConfigDict(populate_by_name=True)


class AccountOut(BaseModel):
    """Public view of an account, including its subscription fields."""

    id: int
    email: str
    first_name: Optional[str] = Field(default=None, alias="firstName")
    last_name: Optional[str] = Field(default=None, alias="lastName")
    role: AccountRole
    organization_id: Optional[int] = Field(default=None, alias="organizationId")
    organization: Optional[OrganizationSummary] = None
    email_verified: bool = Field(default=False, alias="emailVerified")
    subscription_plan: PlanKey = Field(default=PlanKey.FREE, alias="subscriptionPlan")
    subscription_status: SubscriptionStatus = Field(default=SubscriptionStatus.ACTIVE, alias="subscriptionStatus")
    subscription_start: Optional[datetime] = Field(default=None, alias="subscriptionStart")
    subscription_end: Optional[datetime] = Field(default=None, alias="subscriptionEnd")
    trial_used: bool = Field(default=False, alias="trialUsed")
    created_at: Optional[datetime] = Field(default=None, alias="createdAt")

    model_config = ConfigDict(populate_by_name=True)

    @property
    def subscription(self) -> AccountSubscription:
        return AccountSubscription(
            account_id=self.id,
            plan=self.subscription_plan,
            status=self.subscription_status,
            period_start=self.subscription_start,
            period_end=self.subscription_end,
            trial_used=self.trial_used,
        )


class RegisterRequest(BaseModel):
    email: Optional[str] = None
    password: Optional[str] = None
    first_name: Optional[str] = Field(default=None, alias="firstName")
    last_name: Optional[str] = Field(default=None, alias="lastName")
    role: Optional[str] = None

    model_config = ConfigDict(populate_by_name=True)


class LoginRequest(BaseModel):
    email: Optional[str] = None
    password: Optional[str] = None


class AuthResponse(BaseModel):
    token: str
    user: AccountOut

    model_config = ConfigDict(populate_by_name=True)
