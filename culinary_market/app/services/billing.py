"""Application wiring for the billing service."""
from __future__ import annotations

import logging
from functools import lru_cache

from ...config import load_app_config
from ..billing import BillingAuditEvent, BillingEventLogger, BillingService
from ..billing.repository import PostgresAccountSubscriptionRepository
from ..billing.stripe_provider import StripePaymentProvider


logger = logging.getLogger("billing")


class LoggingBillingEventLogger(BillingEventLogger):
    """Event logger forwarding billing audit events to logging."""

    def log(self, event: BillingAuditEvent) -> None:
        logger.info(
            "Billing event %s account=%s provider_event=%s metadata=%s",
            event.event_type.value,
            event.account_id,
            event.provider_event_id,
            event.metadata,
        )


@lru_cache(maxsize=1)
def get_billing_service() -> BillingService:
    config = load_app_config()
    return BillingService(
        repository=PostgresAccountSubscriptionRepository(),
        provider=StripePaymentProvider(
            config.stripe_secret_key,
            webhook_secret=config.stripe_webhook_secret,
        ),
        event_logger=LoggingBillingEventLogger(),
        app_base_url=config.app_base_url,
    )


__all__ = ["LoggingBillingEventLogger", "get_billing_service"]
