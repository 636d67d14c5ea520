"""Integration tests for reconciling subscriber state from gateway info."""
from datetime import datetime, timedelta

import pytest
from prometheus_client import REGISTRY
from structlog.testing import capture_logs

from billable.exceptions import GatewayError
from billable.services.subscription_manager import SubscriptionManager
from tests.utils.factories import SubscriptionInfoFactory
from tests.utils.fakes import FakeGateway
from tests.utils.models import User


def _assert_cleared(subscriber: User) -> None:
    assert subscriber.billing_active is False
    assert subscriber.billing_subscription is None
    assert subscriber.billing_plan is None
    assert subscriber.billing_amount == 0
    assert subscriber.billing_interval is None
    assert subscriber.billing_quantity == 0
    assert subscriber.billing_card is None
    assert subscriber.billing_trial_ends_at is None
    assert subscriber.billing_subscription_ends_at is None
    assert subscriber.billing_subscription_discounts is None


@pytest.mark.asyncio
async def test_refresh_projects_active_info(gateway: FakeGateway, user: User) -> None:
    """Test that active info is copied onto the subscriber."""
    trial_ends_at = datetime.utcnow() + timedelta(days=7)
    info = SubscriptionInfoFactory.create({
        "plan": "team",
        "interval": "year",
        "quantity": 12,
        "card": "card_4242",
        "trial_ends_at": trial_ends_at,
        "discounts": [{"coupon": "ANNUAL10", "percent_off": 10}],
    })
    del info["amount"]
    gateway.seed(info)
    user.billing_subscription_ends_at = datetime.utcnow()

    manager = SubscriptionManager(user, gateway, handle=gateway.subscription(info["id"]))
    await manager.refresh()

    assert user.billing_active is True
    assert user.billing_subscription == info["id"]
    assert user.billing_plan == "team"
    assert user.billing_amount == 0
    assert user.billing_interval == "year"
    assert user.billing_quantity == 12
    assert user.billing_card == "card_4242"
    assert user.billing_trial_ends_at == trial_ends_at
    assert user.billing_subscription_ends_at is None
    assert user.billing_subscription_discounts == [{"coupon": "ANNUAL10", "percent_off": 10}]
    assert manager.to_dict() == info


@pytest.mark.asyncio
async def test_refresh_deactivates_lapsed_subscription(gateway: FakeGateway, active_user: User) -> None:
    """Test that inactive info marks the subscriber as ended at the period end."""
    period_ends_at = datetime.utcnow() - timedelta(days=1)
    gateway.subscriptions[active_user.billing_subscription].update({
        "active": False,
        "period_ends_at": period_ends_at,
        "trial_ends_at": datetime.utcnow() + timedelta(days=1),
    })

    manager = await active_user.subscription()
    await manager.refresh()

    assert active_user.billing_active is False
    assert active_user.billing_trial_ends_at is None
    assert active_user.billing_subscription_ends_at == period_ends_at
    assert active_user.billing_plan == "pro"
    assert active_user.is_canceled()
    assert not active_user.on_grace_period()


@pytest.mark.asyncio
async def test_refresh_lapsed_without_period_end_uses_now(gateway: FakeGateway, active_user: User) -> None:
    """Test that a missing period end defaults to the current time."""
    gateway.subscriptions[active_user.billing_subscription].update({"active": False, "period_ends_at": None})

    manager = await active_user.subscription()
    await manager.refresh()

    assert abs((active_user.billing_subscription_ends_at - datetime.utcnow()).total_seconds()) < 60


@pytest.mark.asyncio
async def test_refresh_swallows_info_failure(gateway: FakeGateway, active_user: User) -> None:
    """Test that a failing info fetch clears the subscriber without raising."""
    manager = await active_user.subscription()
    gateway.info_error = GatewayError("connection reset")
    failures_before = REGISTRY.get_sample_value("subscription_info_fetch_failures_total") or 0

    with capture_logs() as logs:
        result = await manager.refresh()

    assert result is manager
    _assert_cleared(active_user)
    assert manager.to_dict() == {}
    assert REGISTRY.get_sample_value("subscription_info_fetch_failures_total") == failures_before + 1
    assert any(
        entry["event"] == "subscription_info_fetch_failed" and entry["error"] == "connection reset"
        for entry in logs
    )


@pytest.mark.asyncio
async def test_refresh_after_successful_mutation_hides_info_failure(gateway: FakeGateway, active_user: User) -> None:
    """Test that a read failure after a successful update deactivates the subscriber silently."""
    manager = await active_user.subscription("team")
    gateway.info_error = RuntimeError("gateway timeout")

    await manager.swap()

    assert len(gateway.calls_to("update")) == 1
    _assert_cleared(active_user)


@pytest.mark.asyncio
async def test_refresh_clears_when_gateway_has_no_record(gateway: FakeGateway, active_user: User) -> None:
    """Test that empty info resets every billing field."""
    manager = await active_user.subscription()
    gateway.subscriptions.clear()

    await manager.refresh()

    _assert_cleared(active_user)


@pytest.mark.asyncio
async def test_refresh_without_handle_clears(gateway: FakeGateway, user: User) -> None:
    """Test that a subscriber without a gateway subscription is reset."""
    user.billing_plan = "stale"
    user.billing_quantity = 4

    manager = await user.subscription()
    await manager.refresh()

    _assert_cleared(user)
    assert gateway.calls_to("info") == []


@pytest.mark.asyncio
async def test_loading_manager_propagates_info_failure(gateway: FakeGateway, active_user: User) -> None:
    """Test that info failures outside refresh reach the caller."""
    gateway.info_error = GatewayError("unauthorized")

    with pytest.raises(GatewayError):
        await active_user.subscription()


@pytest.mark.asyncio
async def test_prefetched_info_skips_fetch(gateway: FakeGateway, active_user: User) -> None:
    """Test that a supplied snapshot is used as-is."""
    snapshot = SubscriptionInfoFactory.create({"quantity": 8})

    manager = await SubscriptionManager.for_subscriber(active_user, "pro", info=snapshot, gateway=gateway)

    assert gateway.calls_to("info") == []
    assert manager.quantity == 8


@pytest.mark.asyncio
async def test_info_accessors(gateway: FakeGateway, active_user: User) -> None:
    """Test read-only access to the info snapshot."""
    manager = await active_user.subscription("pro")

    assert manager.model is active_user
    assert manager.get("plan") == "pro"
    assert manager.get("quantity") == 3
    assert manager.get("missing") is None
    assert manager.get("discounts", []) == []
    assert "plan" in manager
    assert "missing" not in manager
    assert "discounts" not in manager

    snapshot = manager.to_dict()
    snapshot["plan"] = "changed"
    assert manager.get("plan") == "pro"
