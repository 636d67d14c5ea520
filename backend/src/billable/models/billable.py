"""Subscription billing columns and behaviour for subscriber models."""
from datetime import datetime
from typing import Any

from sqlalchemy import JSON, Boolean, Column, DateTime, Integer, String
from sqlalchemy.ext.asyncio import async_object_session

from billable.exceptions import SubscriberNotPersistedError
from billable.gateways.interfaces import RemoteSubscription, SubscriptionGateway
from billable.gateways.registry import get_gateway
from billable.services.subscription_manager import SubscriptionManager


def billing_columns() -> list[Column]:
    """
    Build the subscription billing columns.

    Returns fresh Column objects, for use in migrations that add billing
    support to an existing table.
    """
    return [
        Column("billing_active", Boolean, nullable=False, default=False, server_default="0"),
        Column("billing_subscription", String, nullable=True),  # Gateway subscription ID
        Column("billing_plan", String, nullable=True),
        Column("billing_amount", Integer, nullable=True, default=0),  # Minor units (cents)
        Column("billing_interval", String, nullable=True),
        Column("billing_quantity", Integer, nullable=True, default=0),  # Per-seat billing
        Column("billing_card", String, nullable=True),
        Column("billing_trial_ends_at", DateTime, nullable=True),
        Column("billing_subscription_ends_at", DateTime, nullable=True),
        Column("billing_subscription_discounts", JSON, nullable=True),
    ]


class SubscriptionBillableMixin:
    """
    Mixin for models that hold a gateway subscription.

    Columns are maintained by SubscriptionManager.refresh(); application code
    should treat them as read-only. Override customer() to link the model to
    its billing customer.
    """

    billing_active = Column(Boolean, nullable=False, default=False)
    billing_subscription = Column(String, nullable=True, index=True)
    billing_plan = Column(String, nullable=True)
    billing_amount = Column(Integer, nullable=True, default=0)
    billing_interval = Column(String, nullable=True)
    billing_quantity = Column(Integer, nullable=True, default=0)
    billing_card = Column(String, nullable=True)
    billing_trial_ends_at = Column(DateTime, nullable=True)
    billing_subscription_ends_at = Column(DateTime, nullable=True)
    billing_subscription_discounts = Column(JSON, nullable=True)

    def is_billing_active(self) -> bool:
        return bool(self.billing_active)

    def is_canceled(self) -> bool:
        """Whether the gateway subscription has ended."""
        return self.billing_subscription_ends_at is not None

    def on_trial(self) -> bool:
        return self.billing_trial_ends_at is not None and datetime.utcnow() < self.billing_trial_ends_at

    def on_grace_period(self) -> bool:
        """Whether a canceled subscription is still within its paid period."""
        return self.billing_subscription_ends_at is not None and datetime.utcnow() < self.billing_subscription_ends_at

    def ever_subscribed(self) -> bool:
        return self.billing_subscription is not None

    def customer(self) -> Any:
        """Billing customer that pays for this subscription, if any."""
        return None

    def gateway_subscription(self, gateway: SubscriptionGateway | None = None) -> RemoteSubscription | None:
        """
        Bind a handle to the stored gateway subscription.

        Args:
            gateway: Gateway factory (defaults to the registry's default driver)

        Returns:
            Remote subscription handle, or None if no subscription was ever created
        """
        if not self.billing_subscription:
            return None

        gateway = gateway or get_gateway()
        customer = self.customer()
        return gateway.subscription(
            self.billing_subscription,
            customer.gateway_customer() if customer is not None else None,
        )

    async def save(self) -> None:
        """
        Flush billing changes through the session this instance belongs to.

        Raises:
            SubscriberNotPersistedError: If the instance is not attached to an AsyncSession
        """
        session = async_object_session(self)
        if session is None:
            raise SubscriberNotPersistedError(self)
        await session.flush()

    async def subscription(
        self, plan: Any = None, gateway: SubscriptionGateway | None = None
    ) -> SubscriptionManager:
        """
        Get a subscription manager for this model.

        Args:
            plan: Target plan for create/resume/swap
            gateway: Gateway factory (defaults to the registry's default driver)

        Returns:
            SubscriptionManager: Manager loaded with the current gateway info
        """
        return await SubscriptionManager.for_subscriber(self, plan, gateway=gateway)
