"""Domain models for the billing system."""
from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..entitlements.models import AccountSubscription, PlanKey, SubscriptionStatus


class BillingEventType(str, Enum):
    """Provider event types that change stored subscription state."""

    CHECKOUT_COMPLETED = "checkout.session.completed"
    INVOICE_PAYMENT_SUCCEEDED = "invoice.payment_succeeded"
    INVOICE_PAYMENT_FAILED = "invoice.payment_failed"
    SUBSCRIPTION_DELETED = "customer.subscription.deleted"


class BillingEvent(BaseModel):
    """Authenticated webhook event as delivered by the payment provider."""

    event_id: str
    event_type: str
    data_object: Dict[str, Any] = Field(default_factory=dict)
    received_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    @property
    def known_type(self) -> Optional[BillingEventType]:
        try:
            return BillingEventType(self.event_type)
        except ValueError:
            return None

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "BillingEvent":
        """Build an event from the provider's JSON envelope."""

        event_id = payload.get("id")
        event_type = payload.get("type")
        if not event_id or not event_type:
            raise ValueError("Webhook payload is missing id or type")
        data = payload.get("data") or {}
        data_object = data.get("object") if isinstance(data, dict) else None
        return cls(
            event_id=str(event_id),
            event_type=str(event_type),
            data_object=data_object if isinstance(data_object, dict) else {},
        )


class SubscriptionUpdate(BaseModel):
    """Partial overwrite of the subscription fields on an account.

    Only fields explicitly set are written.
    """

    plan: Optional[PlanKey] = None
    status: Optional[SubscriptionStatus] = None
    period_start: Optional[datetime] = None
    period_end: Optional[datetime] = None

    model_config = ConfigDict(frozen=True)

    def changes(self) -> Dict[str, Any]:
        return self.model_dump(exclude_unset=True)


class CheckoutSessionInfo(BaseModel):
    """Hosted checkout session created for an account."""

    session_id: str = Field(alias="sessionId")
    url: str

    model_config = ConfigDict(populate_by_name=True, frozen=True)


class CheckoutSessionRecord(BaseModel):
    """Checkout session as recorded by the payment provider."""

    session_id: str
    mode: Optional[str] = None
    payment_status: Optional[str] = None
    customer_id: Optional[str] = None
    customer_email: Optional[str] = None
    subscription_id: Optional[str] = None
    metadata: Dict[str, str] = Field(default_factory=dict)

    model_config = ConfigDict(frozen=True)

    @property
    def is_paid(self) -> bool:
        return self.payment_status == "paid"

    @property
    def owner_account_id(self) -> Optional[int]:
        raw = self.metadata.get("account_id")
        if raw is None:
            return None
        try:
            return int(raw)
        except (TypeError, ValueError):
            return None

    @property
    def requested_plan(self) -> Optional[PlanKey]:
        raw = self.metadata.get("plan")
        try:
            return PlanKey(raw) if raw else None
        except ValueError:
            return None


class ProviderSubscription(BaseModel):
    """Recurring subscription held at the payment provider."""

    subscription_id: str = Field(alias="id")
    status: str
    customer_id: Optional[str] = Field(default=None, alias="customerId")
    current_period_end: Optional[datetime] = Field(default=None, alias="currentPeriodEnd")
    cancel_at_period_end: bool = Field(default=False, alias="cancelAtPeriodEnd")

    model_config = ConfigDict(populate_by_name=True, frozen=True)


class SubscriptionOverview(BaseModel):
    """Stored subscription state with the provider's view when available."""

    subscription: AccountSubscription
    provider_subscription: Optional[ProviderSubscription] = None

    model_config = ConfigDict(frozen=True)


class BillingAuditEventType(str, Enum):
    """Audit event categories emitted by the billing subsystem."""

    SUBSCRIPTION_ACTIVATED = "subscription_activated"
    SUBSCRIPTION_RENEWED = "subscription_renewed"
    PAYMENT_FAILED = "payment_failed"
    SUBSCRIPTION_CANCELLED = "subscription_cancelled"
    CANCELLATION_SCHEDULED = "cancellation_scheduled"
    SUBSCRIPTION_EXPIRED = "subscription_expired"
    EVENT_UNMATCHED = "event_unmatched"


class BillingAuditEvent(BaseModel):
    """Structured audit event for billing state changes."""

    event_type: BillingAuditEventType
    account_id: Optional[int] = None
    provider_event_id: Optional[str] = None
    metadata: Dict[str, str] = Field(default_factory=dict)
    occurred_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = ConfigDict(populate_by_name=True, frozen=True)


__all__ = [
    "BillingAuditEvent",
    "BillingAuditEventType",
    "BillingEvent",
    "BillingEventType",
    "CheckoutSessionInfo",
    "CheckoutSessionRecord",
    "ProviderSubscription",
    "SubscriptionOverview",
    "SubscriptionUpdate",
]
