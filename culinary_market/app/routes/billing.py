"""API routes for plan checkout, subscription management and billing webhooks."""
from __future__ import annotations

import logging
from functools import lru_cache
from typing import Any, Callable, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Request, status
from starlette.concurrency import run_in_threadpool

from ..billing import BillingProviderError, BillingWebhookError
from ..schemas.billing import (
    CancelSubscriptionResponse,
    CheckoutRequest,
    CheckoutResponse,
    ConfirmCheckoutRequest,
    ConfirmCheckoutResponse,
    ManageSubscriptionResponse,
    SubscriptionOut,
    WebhookAck,
)
from ..services.billing import get_billing_service

logger = logging.getLogger("billing")


def _resolve_get_current_user() -> Callable[..., Any]:  # pragma: no cover
    from ...main import get_current_user as resolved

    return resolved


@lru_cache(maxsize=1)
def _get_current_user_callable() -> Callable[..., Any]:
    return _resolve_get_current_user()


def _get_current_user(authorization: Optional[str] = Header(None)):
    resolved = _get_current_user_callable()
    return resolved(authorization=authorization)


def _provider_failure(exc: BillingProviderError) -> HTTPException:
    logger.error("Payment provider request failed: %s", exc)
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail="Payment provider request failed",
    )


router = APIRouter(prefix="/api/subscriptions", tags=["subscriptions"])


@router.post("/create-checkout", response_model=CheckoutResponse)
def create_checkout(
    payload: CheckoutRequest,
    *,
    current_user=Depends(_get_current_user),
) -> CheckoutResponse:
    service = get_billing_service()
    try:
        session = service.start_checkout(
            account_id=current_user.id,
            email=current_user.email,
            plan=payload.plan,
        )
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except BillingProviderError as exc:
        raise _provider_failure(exc) from exc
    return CheckoutResponse(url=session.url, session_id=session.session_id)


@router.post("/update-user", response_model=ConfirmCheckoutResponse)
def confirm_checkout(
    payload: ConfirmCheckoutRequest,
    *,
    current_user=Depends(_get_current_user),
) -> ConfirmCheckoutResponse:
    service = get_billing_service()
    try:
        subscription = service.confirm_checkout(
            session_id=payload.session_id or "",
            account_id=current_user.id,
        )
    except PermissionError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc
    except LookupError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except BillingProviderError as exc:
        raise _provider_failure(exc) from exc
    return ConfirmCheckoutResponse(
        message="Subscription updated successfully",
        subscription=SubscriptionOut.from_subscription(subscription),
    )


@router.get("/manage", response_model=ManageSubscriptionResponse)
def read_subscription(*, current_user=Depends(_get_current_user)) -> ManageSubscriptionResponse:
    service = get_billing_service()
    try:
        overview = service.describe_subscription(account_id=current_user.id, email=current_user.email)
    except LookupError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    return ManageSubscriptionResponse(
        subscription=SubscriptionOut.from_subscription(overview.subscription),
        provider_subscription=overview.provider_subscription,
    )


@router.delete("/manage", response_model=CancelSubscriptionResponse)
def cancel_subscription(*, current_user=Depends(_get_current_user)) -> CancelSubscriptionResponse:
    service = get_billing_service()
    try:
        cancelled = service.cancel_subscription(account_id=current_user.id, email=current_user.email)
    except LookupError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except BillingProviderError as exc:
        raise _provider_failure(exc) from exc
    return CancelSubscriptionResponse(
        message="Subscription will be cancelled at the end of the current period",
        provider_subscription=cancelled,
    )


@router.post("/webhook", response_model=WebhookAck)
async def receive_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(None, alias="Stripe-Signature"),
) -> WebhookAck:
    body = await request.body()
    service = get_billing_service()
    try:
        await run_in_threadpool(service.receive_webhook, body, stripe_signature)
    except BillingWebhookError as exc:
        logger.warning("Rejected billing webhook: %s", exc)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except Exception as exc:
        logger.exception("Billing webhook processing failed")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Webhook processing failed",
        ) from exc
    return WebhookAck()
