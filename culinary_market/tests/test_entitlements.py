from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from culinary_market.app.entitlements import (
    AGENT_CATALOG,
    PAID_PLANS,
    AccountSubscription,
    CapabilityTier,
    PlanKey,
    SubscriptionStatus,
    accessible_tiers,
    get_agent_definition,
    get_plan_definition,
    has_access_to_agent,
    is_expired_by_date,
    is_subscription_active,
    upgrade_message,
)

NOW = datetime(2024, 6, 15, 12, 0, tzinfo=timezone.utc)


def _subscription(plan: PlanKey, status: SubscriptionStatus = SubscriptionStatus.ACTIVE, **kwargs) -> AccountSubscription:
    return AccountSubscription(account_id=1, plan=plan, status=status, **kwargs)


def test_anonymous_caller_has_no_access() -> None:
    for tier in CapabilityTier:
        assert has_access_to_agent(None, tier, now=NOW) is False
    assert accessible_tiers(None, now=NOW) == []


@pytest.mark.parametrize(
    "plan,expected",
    [
        (PlanKey.FREE, [CapabilityTier.BASIC]),
        (PlanKey.PREMIUM, [CapabilityTier.BASIC, CapabilityTier.PREMIUM]),
        (PlanKey.BUSINESS, [CapabilityTier.BASIC, CapabilityTier.PREMIUM, CapabilityTier.BUSINESS]),
    ],
)
def test_active_plans_unlock_their_tiers(plan: PlanKey, expected) -> None:
    subscription = _subscription(plan, period_end=NOW + timedelta(days=10))

    assert accessible_tiers(subscription, now=NOW) == expected


@pytest.mark.parametrize("status", [SubscriptionStatus.EXPIRED, SubscriptionStatus.CANCELLED])
def test_terminal_status_falls_back_to_basic(status: SubscriptionStatus) -> None:
    subscription = _subscription(PlanKey.BUSINESS, status, period_end=NOW + timedelta(days=10))

    assert has_access_to_agent(subscription, CapabilityTier.BASIC, now=NOW) is True
    assert has_access_to_agent(subscription, CapabilityTier.PREMIUM, now=NOW) is False
    assert has_access_to_agent(subscription, CapabilityTier.BUSINESS, now=NOW) is False


def test_lapsed_period_is_expired_even_when_status_is_active() -> None:
    subscription = _subscription(PlanKey.PREMIUM, period_end=NOW - timedelta(seconds=1))

    assert is_expired_by_date(subscription, now=NOW) is True
    assert has_access_to_agent(subscription, CapabilityTier.PREMIUM, now=NOW) is False
    assert has_access_to_agent(subscription, CapabilityTier.BASIC, now=NOW) is True
    assert is_subscription_active(subscription, now=NOW) is False


def test_trial_status_grants_plan_tiers() -> None:
    subscription = _subscription(
        PlanKey.PREMIUM,
        SubscriptionStatus.TRIAL,
        period_end=NOW + timedelta(days=3),
    )

    assert has_access_to_agent(subscription, CapabilityTier.PREMIUM, now=NOW) is True
    assert is_subscription_active(subscription, now=NOW) is True


def test_missing_period_end_never_expires() -> None:
    subscription = _subscription(PlanKey.FREE)

    assert is_expired_by_date(subscription, now=NOW) is False
    assert is_subscription_active(subscription, now=NOW) is True


def test_naive_period_end_is_treated_as_utc() -> None:
    subscription = _subscription(PlanKey.PREMIUM, period_end=datetime(2024, 6, 16))

    assert subscription.period_end.tzinfo is not None
    assert has_access_to_agent(subscription, CapabilityTier.PREMIUM, now=NOW) is True


def test_evaluation_reflects_new_subscription_immediately() -> None:
    free = _subscription(PlanKey.FREE)
    upgraded = free.model_copy(update={"plan": PlanKey.PREMIUM, "period_end": NOW + timedelta(days=30)})

    assert has_access_to_agent(free, CapabilityTier.PREMIUM, now=NOW) is False
    assert has_access_to_agent(upgraded, CapabilityTier.PREMIUM, now=NOW) is True


def test_subscription_accepts_camel_case_aliases() -> None:
    subscription = AccountSubscription.model_validate(
        {"plan": "BUSINESS", "status": "ACTIVE", "periodEnd": "2024-07-01T00:00:00Z", "trialUsed": True}
    )

    assert subscription.plan == PlanKey.BUSINESS
    assert subscription.trial_used is True
    assert subscription.period_end == datetime(2024, 7, 1, tzinfo=timezone.utc)


def test_catalog_lists_paid_plans_and_agents() -> None:
    assert PAID_PLANS == (PlanKey.PREMIUM, PlanKey.BUSINESS)
    assert get_plan_definition(PlanKey.FREE).is_paid is False
    assert get_plan_definition(PlanKey.PREMIUM).monthly_price_cents == 1900
    assert [agent.tier for agent in AGENT_CATALOG] == [
        CapabilityTier.BASIC,
        CapabilityTier.PREMIUM,
        CapabilityTier.BUSINESS,
    ]
    assert get_agent_definition("cuisinier-premium").tier == CapabilityTier.PREMIUM
    assert get_agent_definition("unknown") is None


def test_upgrade_messages() -> None:
    assert upgrade_message(CapabilityTier.BASIC) == ""
    assert "Premium" in upgrade_message(CapabilityTier.PREMIUM)
    assert "Business" in upgrade_message(CapabilityTier.BUSINESS)
