from __future__ import annotations

from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest

from culinary_market.app.entitlements import AccountSubscription, CapabilityTier, PlanKey, SubscriptionStatus
from culinary_market.app.feature_gates import (
    EntitlementContext,
    FeatureGateError,
    cheapest_plan_for,
    require_capability,
)

NOW = datetime(2024, 6, 15, tzinfo=timezone.utc)


@pytest.fixture
def premium_subscription() -> AccountSubscription:
    return AccountSubscription(
        account_id=5,
        plan=PlanKey.PREMIUM,
        status=SubscriptionStatus.ACTIVE,
        period_end=NOW + timedelta(days=20),
    )


def test_require_capability_allows_unlocked_tier(premium_subscription: AccountSubscription) -> None:
    require_capability(premium_subscription, CapabilityTier.PREMIUM, now=NOW)


def test_require_capability_raises_with_upgrade_payload(premium_subscription: AccountSubscription) -> None:
    with pytest.raises(FeatureGateError) as exc:
        require_capability(premium_subscription, CapabilityTier.BUSINESS, now=NOW)

    assert exc.value.code == "upgrade_required"
    assert exc.value.status_code == 403
    assert exc.value.payload["required_tier"] == "business"
    assert exc.value.payload["accessible_tiers"] == ["basic", "premium"]
    assert exc.value.payload["upgrade_plan"] == "BUSINESS"
    assert "Business" in exc.value.payload["message"]


def test_anonymous_caller_is_asked_to_sign_in() -> None:
    with pytest.raises(FeatureGateError) as exc:
        require_capability(None, CapabilityTier.BASIC, now=NOW)

    assert exc.value.message == "Sign in to use this assistant"
    assert exc.value.payload["accessible_tiers"] == []
    assert exc.value.payload["upgrade_plan"] == "FREE"


@pytest.mark.parametrize(
    ("tier", "plan"),
    [
        (CapabilityTier.BASIC, PlanKey.FREE),
        (CapabilityTier.PREMIUM, PlanKey.PREMIUM),
        (CapabilityTier.BUSINESS, PlanKey.BUSINESS),
    ],
)
def test_cheapest_plan_for_tier(tier: CapabilityTier, plan: PlanKey) -> None:
    assert cheapest_plan_for(tier) == plan


def test_feature_gate_error_converts_to_http_exception() -> None:
    error = FeatureGateError(
        code="upgrade_required",
        message="Upgrade",
        required_tier="premium",
        accessible_tiers=["basic"],
    )

    http_exc = error.to_http_exception()

    assert http_exc.status_code == 403
    assert http_exc.detail == {
        "error": "upgrade_required",
        "message": "Upgrade",
        "required_tier": "premium",
        "accessible_tiers": ["basic"],
        "upgrade_plan": "PREMIUM",
    }


def test_feature_gate_error_without_tier_keeps_extra_detail() -> None:
    error = FeatureGateError(code="quota_exceeded", message="Slow down", status_code=429, detail={"retry_after": 30})

    assert error.payload == {"error": "quota_exceeded", "message": "Slow down", "retry_after": 30}
    assert error.to_http_exception().status_code == 429
    assert str(error) == "Slow down"


def test_entitlement_context_helpers(premium_subscription: AccountSubscription) -> None:
    context = EntitlementContext(premium_subscription, now=NOW)

    assert context.plan == PlanKey.PREMIUM
    assert context.is_active is True
    assert context.tiers == [CapabilityTier.BASIC, CapabilityTier.PREMIUM]
    assert context.has(CapabilityTier.PREMIUM) is True
    assert context.has(CapabilityTier.BUSINESS) is False

    context.require(CapabilityTier.BASIC)
    with pytest.raises(FeatureGateError):
        context.require(CapabilityTier.BUSINESS)


def test_entitlement_context_for_account(premium_subscription: AccountSubscription) -> None:
    account = SimpleNamespace(id=5, subscription=premium_subscription)

    assert EntitlementContext.for_account(account).subscription is premium_subscription
    assert EntitlementContext.for_account(None).plan is None
    assert EntitlementContext.for_account(None).has(CapabilityTier.BASIC) is False
