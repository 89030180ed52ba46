"""Stripe implementation of the :class:`PaymentProvider` protocol."""
from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import stripe

from ..entitlements.catalog import PlanDefinition
from .exceptions import BillingProviderError, BillingWebhookError
from .models import BillingEvent, CheckoutSessionInfo, CheckoutSessionRecord, ProviderSubscription

logger = logging.getLogger(__name__)

WEBHOOK_SECRET_PREFIX = "whsec_"


def _plain(obj: Any) -> Dict[str, Any]:
    if obj is None:
        return {}
    to_dict = getattr(obj, "to_dict", None) or getattr(obj, "to_dict_recursive", None)
    if callable(to_dict):
        return to_dict()
    return dict(obj)


def _string_map(value: Any) -> Dict[str, str]:
    if isinstance(value, dict):
        return {str(k): str(v) for k, v in value.items()}
    return {}


def _timestamp(value: Any) -> Optional[datetime]:
    if not value:
        return None
    return datetime.fromtimestamp(int(value), tz=timezone.utc)


def _subscription_from_data(data: Dict[str, Any]) -> ProviderSubscription:
    period_end = data.get("current_period_end")
    if period_end is None:
        items = (data.get("items") or {}).get("data") or []
        if items:
            period_end = items[0].get("current_period_end")
    customer = data.get("customer")
    return ProviderSubscription(
        subscription_id=str(data["id"]),
        status=str(data.get("status") or ""),
        customer_id=customer if isinstance(customer, str) else None,
        current_period_end=_timestamp(period_end),
        cancel_at_period_end=bool(data.get("cancel_at_period_end")),
    )


class StripePaymentProvider:
    """Talks to Stripe with the credentials supplied at construction."""

    def __init__(self, secret_key: Optional[str], webhook_secret: Optional[str] = None) -> None:
        self._secret_key = secret_key
        self._webhook_secret = webhook_secret or ""

    @property
    def verifies_signatures(self) -> bool:
        """Signatures are checked only when the secret has production shape."""

        return self._webhook_secret.startswith(WEBHOOK_SECRET_PREFIX)

    def _api_key(self) -> str:
        if not self._secret_key:
            raise BillingProviderError("STRIPE_SECRET_KEY not configured")
        return self._secret_key

    def create_checkout_session(
        self,
        *,
        plan: PlanDefinition,
        customer_email: str,
        metadata: Dict[str, str],
        success_url: str,
        cancel_url: str,
    ) -> CheckoutSessionInfo:
        try:
            session = stripe.checkout.Session.create(
                api_key=self._api_key(),
                mode="subscription",
                payment_method_types=["card"],
                customer_email=customer_email,
                line_items=[
                    {
                        "price_data": {
                            "currency": plan.currency,
                            "product_data": {
                                "name": f"{plan.display_name} plan",
                                "description": plan.description,
                            },
                            "unit_amount": plan.monthly_price_cents,
                            "recurring": {"interval": "month"},
                        },
                        "quantity": 1,
                    }
                ],
                success_url=success_url,
                cancel_url=cancel_url,
                metadata=metadata,
            )
        except stripe.StripeError as exc:
            raise BillingProviderError(f"Stripe checkout session creation failed: {exc}") from exc
        data = _plain(session)
        return CheckoutSessionInfo(session_id=str(data["id"]), url=str(data.get("url") or ""))

    def retrieve_checkout_session(self, session_id: str) -> CheckoutSessionRecord:
        try:
            session = stripe.checkout.Session.retrieve(session_id, api_key=self._api_key())
        except stripe.InvalidRequestError as exc:
            raise LookupError("Checkout session not found") from exc
        except stripe.StripeError as exc:
            raise BillingProviderError(f"Stripe checkout session lookup failed: {exc}") from exc

        data = _plain(session)
        customer_details = data.get("customer_details") or {}
        customer = data.get("customer")
        subscription = data.get("subscription")
        return CheckoutSessionRecord(
            session_id=str(data.get("id") or session_id),
            mode=data.get("mode"),
            payment_status=data.get("payment_status"),
            customer_id=customer if isinstance(customer, str) else None,
            customer_email=customer_details.get("email") or data.get("customer_email"),
            subscription_id=subscription if isinstance(subscription, str) else None,
            metadata=_string_map(data.get("metadata")),
        )

    def resolve_customer_email(
        self,
        *,
        subscription_id: Optional[str] = None,
        customer_id: Optional[str] = None,
    ) -> Optional[str]:
        api_key = self._api_key()
        try:
            if subscription_id and not customer_id:
                subscription = _plain(stripe.Subscription.retrieve(subscription_id, api_key=api_key))
                customer = subscription.get("customer")
                customer_id = customer if isinstance(customer, str) else None
            if not customer_id:
                return None
            customer = _plain(stripe.Customer.retrieve(customer_id, api_key=api_key))
        except stripe.StripeError as exc:
            raise BillingProviderError(f"Stripe customer lookup failed: {exc}") from exc

        if customer.get("deleted"):
            return None
        return customer.get("email")

    def find_active_subscription(self, customer_email: str) -> Optional[ProviderSubscription]:
        api_key = self._api_key()
        try:
            customers = _plain(stripe.Customer.list(email=customer_email, limit=1, api_key=api_key))
            customer_rows = customers.get("data") or []
            if not customer_rows:
                return None
            subscriptions = _plain(
                stripe.Subscription.list(
                    customer=customer_rows[0]["id"],
                    status="active",
                    limit=1,
                    api_key=api_key,
                )
            )
        except stripe.StripeError as exc:
            raise BillingProviderError(f"Stripe subscription lookup failed: {exc}") from exc

        rows = subscriptions.get("data") or []
        if not rows:
            return None
        return _subscription_from_data(rows[0])

    def cancel_at_period_end(self, subscription_id: str) -> ProviderSubscription:
        try:
            subscription = stripe.Subscription.modify(
                subscription_id,
                cancel_at_period_end=True,
                api_key=self._api_key(),
            )
        except stripe.StripeError as exc:
            raise BillingProviderError(f"Stripe subscription cancellation failed: {exc}") from exc
        return _subscription_from_data(_plain(subscription))

    def parse_webhook(self, body: bytes, signature: Optional[str]) -> BillingEvent:
        """Verify the Stripe signature when possible and decode the event.

        Without a ``whsec_`` secret the body is accepted unsigned and every
        delivery logs a warning.
        """

        if self.verifies_signatures:
            if not signature:
                raise BillingWebhookError("Missing Stripe-Signature header")
            try:
                stripe.Webhook.construct_event(body, signature, self._webhook_secret)
            except ValueError as exc:
                raise BillingWebhookError(f"Invalid payload: {exc}") from exc
            except stripe.SignatureVerificationError as exc:
                raise BillingWebhookError(f"Invalid signature: {exc}") from exc
        else:
            logger.warning("Stripe webhook secret not configured; accepting unsigned webhook payload (insecure)")

        try:
            payload = json.loads(body)
        except (ValueError, UnicodeDecodeError) as exc:
            raise BillingWebhookError("Webhook body is not valid JSON") from exc
        if not isinstance(payload, dict):
            raise BillingWebhookError("Webhook body must be a JSON object")

        try:
            return BillingEvent.from_payload(payload)
        except ValueError as exc:
            raise BillingWebhookError(str(exc)) from exc


__all__ = ["StripePaymentProvider", "WEBHOOK_SECRET_PREFIX"]
