"""Core service keeping account subscriptions in sync with the payment provider."""
from __future__ import annotations

import calendar
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Protocol

from ..entitlements.catalog import PAID_PLANS, PlanDefinition, get_plan_definition
from ..entitlements.models import AccountSubscription, PlanKey, SubscriptionStatus
from .exceptions import BillingProviderError
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

logger = logging.getLogger(__name__)

CHECKOUT_SESSION_PLACEHOLDER = "{CHECKOUT_SESSION_ID}"


class PaymentProvider(Protocol):
    """External payment processor integration."""

    def create_checkout_session(
        self,
        *,
        plan: PlanDefinition,
        customer_email: str,
        metadata: Dict[str, str],
        success_url: str,
        cancel_url: str,
    ) -> CheckoutSessionInfo:
        """Create a hosted subscription checkout session."""

    def retrieve_checkout_session(self, session_id: str) -> CheckoutSessionRecord:
        """Load a checkout session; raise ``LookupError`` when unknown."""

    def resolve_customer_email(
        self,
        *,
        subscription_id: Optional[str] = None,
        customer_id: Optional[str] = None,
    ) -> Optional[str]:
        """Return the email of the customer owning a subscription or customer id."""

    def find_active_subscription(self, customer_email: str) -> Optional[ProviderSubscription]:
        ...

    def cancel_at_period_end(self, subscription_id: str) -> ProviderSubscription:
        ...

    def parse_webhook(self, body: bytes, signature: Optional[str]) -> BillingEvent:
        """Authenticate and decode a webhook delivery."""


class BillingEventLogger(Protocol):
    """Captures structured billing audit events."""

    def log(self, event: BillingAuditEvent) -> None:
        ...


class AccountSubscriptionRepository(Protocol):
    """Persistence operations required by the billing service."""

    def get_subscription(self, account_id: int) -> Optional[AccountSubscription]:
        ...

    def find_account_id_by_email(self, email: str) -> Optional[int]:
        ...

    def apply_subscription_update(
        self,
        account_id: int,
        update: SubscriptionUpdate,
    ) -> Optional[AccountSubscription]:
        ...

    def record_webhook_event(self, event: BillingEvent) -> bool:
        ...

    def release_webhook_event(self, event_id: str) -> None:
        ...

    def record_checkout_session(self, session_id: str, account_id: int) -> bool:
        """Store an applied checkout session; returns ``False`` if already stored."""

    def release_checkout_session(self, session_id: str) -> None:
        ...

    def expire_lapsed_subscriptions(self, now: datetime) -> List[int]:
        ...


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def add_months(value: datetime, months: int) -> datetime:
    """Shift ``value`` by calendar months, clamping to the last day of the month."""

    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


@dataclass
class BillingService:
    """Applies billing lifecycle events to account subscriptions.

    Every transition overwrites the stored fields unconditionally; the last
    event to be applied wins.
    """

    repository: AccountSubscriptionRepository
    provider: PaymentProvider
    event_logger: BillingEventLogger
    app_base_url: str = "http://localhost:3000"
    clock: Callable[[], datetime] = field(default=_utcnow)

    def _now(self) -> datetime:
        return self.clock()

    def start_checkout(self, *, account_id: int, email: str, plan: PlanKey) -> CheckoutSessionInfo:
        try:
            plan_key = PlanKey(plan)
        except ValueError as exc:
            raise ValueError("Invalid subscription plan") from exc
        if plan_key not in PAID_PLANS:
            raise ValueError("Invalid subscription plan")

        base_url = self.app_base_url.rstrip("/")
        return self.provider.create_checkout_session(
            plan=get_plan_definition(plan_key),
            customer_email=email,
            metadata={"account_id": str(account_id), "plan": plan_key.value},
            success_url=f"{base_url}/subscriptions/success?session_id={CHECKOUT_SESSION_PLACEHOLDER}",
            cancel_url=f"{base_url}/subscriptions",
        )

    def receive_webhook(self, body: bytes, signature: Optional[str]) -> bool:
        """Authenticate a webhook delivery and apply it."""

        event = self.provider.parse_webhook(body, signature)
        return self.handle_event(event)

    def handle_event(self, event: BillingEvent) -> bool:
        """Apply one provider event. Returns ``False`` when it was skipped."""

        event_type = event.known_type
        if event_type is None:
            logger.debug("Ignoring billing event %s of type %s", event.event_id, event.event_type)
            return False

        if not self.repository.record_webhook_event(event):
            logger.info("Skipping already processed billing event %s", event.event_id)
            return False

        try:
            if event_type == BillingEventType.CHECKOUT_COMPLETED:
                self._handle_checkout_completed(event)
            elif event_type == BillingEventType.INVOICE_PAYMENT_SUCCEEDED:
                self._handle_payment_succeeded(event)
            elif event_type == BillingEventType.INVOICE_PAYMENT_FAILED:
                self._handle_payment_failed(event)
            elif event_type == BillingEventType.SUBSCRIPTION_DELETED:
                self._handle_subscription_deleted(event)
        except Exception:
            self.repository.release_webhook_event(event.event_id)
            raise
        return True

    def confirm_checkout(self, *, session_id: str, account_id: int) -> AccountSubscription:
        """Apply a completed checkout on behalf of the account that paid for it."""

        if not session_id:
            raise ValueError("sessionId is required")

        session = self.provider.retrieve_checkout_session(session_id)
        if not session.is_paid:
            raise ValueError("Payment has not been completed")

        if session.owner_account_id != account_id:
            logger.warning(
                "Checkout confirmation rejected for account %s: session %s belongs to %s",
                account_id,
                session_id,
                session.metadata.get("account_id"),
            )
            raise PermissionError("Checkout session belongs to another account")

        plan = session.requested_plan
        if plan not in PAID_PLANS:
            raise ValueError("Invalid subscription plan")

        if not self.repository.record_checkout_session(session_id, account_id):
            logger.info(
                "Checkout session %s was already applied",
                session_id,
                extra={"account_id": account_id},
            )
            current = self.repository.get_subscription(account_id)
            if current is None:
                raise LookupError("Account not found")
            return current

        try:
            updated = self._activate(account_id, plan)
        except Exception:
            self.repository.release_checkout_session(session_id)
            raise
        if updated is None:
            self.repository.release_checkout_session(session_id)
            raise LookupError("Account not found")
        return updated

    def describe_subscription(self, *, account_id: int, email: Optional[str]) -> SubscriptionOverview:
        subscription = self.repository.get_subscription(account_id)
        if subscription is None:
            raise LookupError("Account not found")

        provider_subscription = None
        if subscription.plan != PlanKey.FREE and email:
            try:
                provider_subscription = self.provider.find_active_subscription(email)
            except BillingProviderError:
                logger.warning(
                    "Unable to load provider subscription",
                    extra={"account_id": account_id},
                    exc_info=True,
                )
        return SubscriptionOverview(subscription=subscription, provider_subscription=provider_subscription)

    def cancel_subscription(self, *, account_id: int, email: str) -> ProviderSubscription:
        """Schedule cancellation at the end of the current billing period.

        Stored state changes once the provider reports the subscription deleted.
        """

        subscription = self.repository.get_subscription(account_id)
        if subscription is None:
            raise LookupError("Account not found")
        if subscription.plan == PlanKey.FREE:
            raise ValueError("No paid subscription to cancel")

        active = self.provider.find_active_subscription(email)
        if active is None:
            raise LookupError("No active subscription found")

        updated = self.provider.cancel_at_period_end(active.subscription_id)
        self.event_logger.log(
            BillingAuditEvent(
                event_type=BillingAuditEventType.CANCELLATION_SCHEDULED,
                account_id=account_id,
                metadata={"subscription_id": updated.subscription_id},
            )
        )
        return updated

    def reconcile_expired_subscriptions(self) -> List[int]:
        """Mark subscriptions whose period ended as ``EXPIRED``.

        Access checks already treat these rows as expired; the sweep only
        brings the stored status in line.
        """

        now = self._now()
        expired = self.repository.expire_lapsed_subscriptions(now)
        for account_id in expired:
            self.event_logger.log(
                BillingAuditEvent(
                    event_type=BillingAuditEventType.SUBSCRIPTION_EXPIRED,
                    account_id=account_id,
                    occurred_at=now,
                )
            )
        logger.info("Expired %d lapsed subscriptions", len(expired))
        return expired

    def _activate(
        self,
        account_id: int,
        plan: PlanKey,
        *,
        provider_event_id: Optional[str] = None,
    ) -> Optional[AccountSubscription]:
        now = self._now()
        update = SubscriptionUpdate(
            plan=plan,
            status=SubscriptionStatus.ACTIVE,
            period_start=now,
            period_end=add_months(now, 1),
        )
        updated = self.repository.apply_subscription_update(account_id, update)
        if updated is None:
            self._log_unmatched(provider_event_id, account_id=account_id)
            return None

        self.event_logger.log(
            BillingAuditEvent(
                event_type=BillingAuditEventType.SUBSCRIPTION_ACTIVATED,
                account_id=account_id,
                provider_event_id=provider_event_id,
                metadata={"plan": plan.value},
            )
        )
        return updated

    def _handle_checkout_completed(self, event: BillingEvent) -> None:
        data = event.data_object
        if data.get("mode") != "subscription":
            logger.debug("Ignoring non-subscription checkout %s", event.event_id)
            return

        metadata = _safe_metadata(data.get("metadata"))
        session = CheckoutSessionRecord(session_id=str(data.get("id") or ""), metadata=metadata)
        account_id = session.owner_account_id
        plan = session.requested_plan
        if account_id is None or plan not in PAID_PLANS:
            logger.warning(
                "Checkout event %s carries unusable metadata %s",
                event.event_id,
                metadata,
            )
            self._log_unmatched(event.event_id)
            return

        # A later confirmation of the same session must not reactivate.
        if session.session_id:
            self.repository.record_checkout_session(session.session_id, account_id)
        self._activate(account_id, plan, provider_event_id=event.event_id)

    def _handle_payment_succeeded(self, event: BillingEvent) -> None:
        account_id = self._resolve_invoice_account(event)
        if account_id is None:
            return

        update = SubscriptionUpdate(
            status=SubscriptionStatus.ACTIVE,
            period_end=add_months(self._now(), 1),
        )
        if self.repository.apply_subscription_update(account_id, update) is None:
            self._log_unmatched(event.event_id, account_id=account_id)
            return
        self.event_logger.log(
            BillingAuditEvent(
                event_type=BillingAuditEventType.SUBSCRIPTION_RENEWED,
                account_id=account_id,
                provider_event_id=event.event_id,
            )
        )

    def _handle_payment_failed(self, event: BillingEvent) -> None:
        account_id = self._resolve_invoice_account(event)
        if account_id is None:
            return

        update = SubscriptionUpdate(status=SubscriptionStatus.EXPIRED)
        if self.repository.apply_subscription_update(account_id, update) is None:
            self._log_unmatched(event.event_id, account_id=account_id)
            return
        self.event_logger.log(
            BillingAuditEvent(
                event_type=BillingAuditEventType.PAYMENT_FAILED,
                account_id=account_id,
                provider_event_id=event.event_id,
            )
        )

    def _handle_subscription_deleted(self, event: BillingEvent) -> None:
        customer_id = event.data_object.get("customer")
        email = None
        if customer_id:
            email = self.provider.resolve_customer_email(customer_id=str(customer_id))
        account_id = self._account_for_email(email, event)
        if account_id is None:
            return

        update = SubscriptionUpdate(
            plan=PlanKey.FREE,
            status=SubscriptionStatus.CANCELLED,
            period_end=self._now(),
        )
        if self.repository.apply_subscription_update(account_id, update) is None:
            self._log_unmatched(event.event_id, account_id=account_id)
            return
        self.event_logger.log(
            BillingAuditEvent(
                event_type=BillingAuditEventType.SUBSCRIPTION_CANCELLED,
                account_id=account_id,
                provider_event_id=event.event_id,
            )
        )

    def _resolve_invoice_account(self, event: BillingEvent) -> Optional[int]:
        data = event.data_object
        subscription_id = data.get("subscription")
        email = None
        if subscription_id:
            email = self.provider.resolve_customer_email(subscription_id=str(subscription_id))
        if not email:
            email = data.get("customer_email")
        return self._account_for_email(email, event)

    def _account_for_email(self, email: Optional[str], event: BillingEvent) -> Optional[int]:
        if not email:
            logger.warning("No customer email found for billing event %s", event.event_id)
            self._log_unmatched(event.event_id)
            return None
        account_id = self.repository.find_account_id_by_email(email)
        if account_id is None:
            logger.warning("No account matches billing event %s", event.event_id)
            self._log_unmatched(event.event_id)
        return account_id

    def _log_unmatched(self, provider_event_id: Optional[str], *, account_id: Optional[int] = None) -> None:
        self.event_logger.log(
            BillingAuditEvent(
                event_type=BillingAuditEventType.EVENT_UNMATCHED,
                account_id=account_id,
                provider_event_id=provider_event_id,
            )
        )


def _safe_metadata(value: object) -> Dict[str, str]:
    if isinstance(value, dict):
        return {str(k): str(v) for k, v in value.items()}
    return {}


__all__ = [
    "AccountSubscriptionRepository",
    "BillingEventLogger",
    "BillingService",
    "PaymentProvider",
    "add_months",
]
