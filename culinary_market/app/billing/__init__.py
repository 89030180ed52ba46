"""Billing domain package synchronizing paid plans with the payment provider."""

from .exceptions import BillingProviderError, BillingWebhookError
from .models import (
    BillingAuditEvent,
    BillingAuditEventType,
    BillingEvent,
    BillingEventType,
    CheckoutSessionInfo,
    CheckoutSessionRecord,
    ProviderSubscription,
    SubscriptionOverview,
    SubscriptionUpdate,
)
from .service import (
    AccountSubscriptionRepository,
    BillingEventLogger,
    BillingService,
    PaymentProvider,
    add_months,
)

__all__ = [
    "AccountSubscriptionRepository",
    "BillingAuditEvent",
    "BillingAuditEventType",
    "BillingEvent",
    "BillingEventLogger",
    "BillingEventType",
    "BillingProviderError",
    "BillingService",
    "BillingWebhookError",
    "CheckoutSessionInfo",
    "CheckoutSessionRecord",
    "PaymentProvider",
    "ProviderSubscription",
    "SubscriptionOverview",
    "SubscriptionUpdate",
    "add_months",
]
