"""Subscription lifecycle synchronization between a subscriber and the billing gateway."""
from datetime import datetime
from typing import Any, Mapping

import structlog

from billable.gateways.interfaces import (
    RemoteSubscription,
    Subscriber,
    SubscriptionGateway,
    SubscriptionInfo,
)
from billable.gateways.registry import get_gateway
from billable.metrics import subscription_info_fetch_failures_total, subscription_operations_total
from billable.tracing import get_tracer

logger = structlog.get_logger(__name__)
tracer = get_tracer(__name__)


class SubscriptionManager:
    """
    Drives a subscriber's gateway subscription through its lifecycle.

    Every mutating operation talks to the gateway first and then calls
    refresh(), which projects the gateway's subscription info onto the
    subscriber's billing_* fields and saves it. A failed gateway mutation
    propagates before refresh() runs, so the subscriber is left untouched.

    Pending configuration (coupon, card token, card, skip trial) is set with
    the chainable with_*() / skip_trial() methods and consumed by the next
    operation.
    """

    def __init__(
        self,
        subscriber: Subscriber,
        gateway: SubscriptionGateway,
        plan: Any = None,
        handle: RemoteSubscription | None = None,
        info: SubscriptionInfo | None = None,
    ):
        """
        Bind a manager without touching the gateway.

        Args:
            subscriber: Local subscriber record
            gateway: Factory for remote subscription handles
            plan: Target plan for create/resume/swap
            handle: Remote subscription handle, if one exists
            info: Last known subscription info snapshot
        """
        self._subscriber = subscriber
        self._gateway = gateway
        self._plan = plan
        self._handle = handle
        self._info: dict[str, Any] = dict(info or {})

        self._coupon: str | None = None
        self._card_token: str | None = None
        self._card: str | None = None
        self._skip_trial = False

        self._log = logger.bind(subscriber_id=str(getattr(subscriber, "id", None)), plan=plan)

    @classmethod
    async def for_subscriber(
        cls,
        subscriber: Subscriber,
        plan: Any = None,
        *,
        handle: RemoteSubscription | None = None,
        info: SubscriptionInfo | None = None,
        gateway: SubscriptionGateway | None = None,
    ) -> "SubscriptionManager":
        """
        Build a manager, resolving the handle and then its info snapshot.

        Args:
            subscriber: Local subscriber record
            plan: Target plan
            handle: Remote handle (defaults to the subscriber's gateway binding)
            info: Pre-fetched snapshot (fetched from the handle when empty)
            gateway: Gateway factory (defaults to the registry's default driver)

        Returns:
            SubscriptionManager: Bound manager

        Raises:
            GatewayError: If fetching the initial snapshot fails
        """
        gateway = gateway or get_gateway()

        if handle is None:
            handle = subscriber.gateway_subscription(gateway)

        if not info:
            info = await handle.info() if handle is not None else {}

        return cls(subscriber, gateway, plan=plan, handle=handle, info=info)

    async def create(self, properties: dict[str, Any] | None = None) -> "SubscriptionManager":
        """
        Create this subscription in the billing gateway.

        Provisions the gateway customer (or attaches the pending card to an
        existing one) before creating the subscription.

        Args:
            properties: Extra properties passed to the gateway

        Returns:
            SubscriptionManager: self
        """
        if self._subscriber.is_billing_active():
            return self

        properties = dict(properties or {})

        with tracer.start_as_current_span("subscription.create"):
            customer = self._subscriber.customer()
            if customer is not None:
                if not customer.ready_for_billing():
                    if self._card_token:
                        await customer.billing().with_card_token(self._card_token).create(properties)
                        if customer.billing_cards:
                            self._card_token = None
                    else:
                        await customer.billing().create(properties)
                elif self._card_token:
                    await self._consume_card_token(customer)

            customer_ref = customer.gateway_customer() if customer is not None else None
            self._handle = await self._gateway.subscription(None, customer_ref).create(
                self._plan,
                {
                    **properties,
                    "trial_ends_at": self._trial_ends_at(),
                    "coupon": self._coupon,
                    "card_token": self._card_token,
                    "card": self._card,
                },
            )

            subscription_operations_total.labels(operation="create").inc()
            self._log.info("subscription_created", coupon=self._coupon)

            return await self.refresh()

    async def cancel(self, at_period_end: bool = True) -> "SubscriptionManager":
        """
        Cancel this subscription in the billing gateway.

        Args:
            at_period_end: Keep the subscription running until the period ends

        Returns:
            SubscriptionManager: self
        """
        if not self._subscriber.is_billing_active():
            return self

        with tracer.start_as_current_span("subscription.cancel"):
            await self._handle.cancel(at_period_end)

            subscription_operations_total.labels(operation="cancel").inc()
            self._log.info("subscription_cancelled", at_period_end=at_period_end)

            return await self.refresh()

    async def resume(self) -> "SubscriptionManager":
        """
        Resume a canceled subscription in the billing gateway.

        Updates the existing gateway subscription when it still exists,
        otherwise creates a new one. The trial period always ends now.

        Returns:
            SubscriptionManager: self
        """
        if not self._subscriber.is_canceled():
            return self

        with tracer.start_as_current_span("subscription.resume"):
            customer = self._subscriber.customer()
            if customer is not None and self._card_token:
                await self._consume_card_token(customer)

            customer_ref = customer.gateway_customer() if customer is not None else None
            self._handle = self._gateway.subscription(self._subscriber.billing_subscription, customer_ref)

            if await self._handle.info():
                await self._handle.update({
                    "plan": self._plan,
                    "trial_ends_at": datetime.utcnow(),
                    "prorate": False,
                    "card_token": self._card_token,
                    "card": self._card,
                })
            else:
                self._handle = await self._gateway.subscription(None, customer_ref).create(
                    self._plan,
                    {
                        "trial_ends_at": datetime.utcnow(),
                        "card_token": self._card_token,
                        "card": self._card,
                    },
                )

            subscription_operations_total.labels(operation="resume").inc()
            self._log.info("subscription_resumed")

            return await self.refresh()

    async def swap(self, quantity: int | None = None) -> "SubscriptionManager":
        """
        Swap this subscription to the target plan.

        Args:
            quantity: New quantity (defaults to the current quantity)

        Returns:
            SubscriptionManager: self
        """
        if not self._subscriber.is_billing_active():
            return self

        if quantity is None:
            quantity = self.quantity

        # Without a stored trial end the swap must not open a new trial
        if not self._subscriber.billing_trial_ends_at:
            self.skip_trial()

        with tracer.start_as_current_span("subscription.swap"):
            await self._handle.update({
                "plan": self._plan,
                "quantity": quantity,
                "trial_ends_at": self._trial_ends_at(),
            })

            subscription_operations_total.labels(operation="swap").inc()
            self._log.info("subscription_swapped", quantity=quantity)

            return await self.refresh()

    async def increment(self, count: int = 1) -> "SubscriptionManager":
        """Increment the subscription quantity by count."""
        return await self._change_quantity("increment", count)

    async def decrement(self, count: int = 1) -> "SubscriptionManager":
        """Decrement the subscription quantity by count."""
        return await self._change_quantity("decrement", -count)

    async def _change_quantity(self, operation: str, delta: int) -> "SubscriptionManager":
        if not self._subscriber.is_billing_active():
            return self

        quantity = (self.quantity or 0) + delta

        with tracer.start_as_current_span(f"subscription.{operation}"):
            # Quantity changes keep the subscriber's current plan
            await self._handle.update({
                "plan": self._subscriber.billing_plan,
                "quantity": quantity,
                "trial_ends_at": self._trial_ends_at(),
            })

            subscription_operations_total.labels(operation=operation).inc()
            self._log.info("subscription_quantity_changed", operation=operation, quantity=quantity)

            return await self.refresh()

    async def refresh(self) -> "SubscriptionManager":
        """
        Refresh the subscriber's billing fields from the gateway and save it.

        A failed info fetch is logged and treated as "no subscription": the
        subscriber is deactivated rather than left with stale state.

        Returns:
            SubscriptionManager: self
        """
        info: Mapping[str, Any] = {}
        if self._handle is not None:
            try:
                info = await self._handle.info() or {}
            except Exception as exc:
                subscription_info_fetch_failures_total.inc()
                self._log.warning("subscription_info_fetch_failed", error=str(exc))

        subscriber = self._subscriber
        if info:
            subscriber.billing_active = True
            subscriber.billing_subscription = self._handle.id
            subscriber.billing_plan = info.get("plan")
            subscriber.billing_amount = info.get("amount") or 0
            subscriber.billing_interval = info.get("interval")
            subscriber.billing_quantity = info.get("quantity")
            subscriber.billing_card = info.get("card")
            subscriber.billing_trial_ends_at = info.get("trial_ends_at")
            subscriber.billing_subscription_ends_at = None
            subscriber.billing_subscription_discounts = info.get("discounts")

            if not info.get("active"):
                subscriber.billing_active = False
                subscriber.billing_trial_ends_at = None
                subscriber.billing_subscription_ends_at = info.get("period_ends_at") or datetime.utcnow()
        else:
            subscriber.billing_active = False
            subscriber.billing_subscription = None
            subscriber.billing_plan = None
            subscriber.billing_amount = 0
            subscriber.billing_interval = None
            subscriber.billing_quantity = 0
            subscriber.billing_card = None
            subscriber.billing_trial_ends_at = None
            subscriber.billing_subscription_ends_at = None
            subscriber.billing_subscription_discounts = None

        await subscriber.save()

        self._info = dict(info)
        self._log.debug("subscription_refreshed", active=subscriber.billing_active)
        return self

    def with_coupon(self, coupon: str | None) -> "SubscriptionManager":
        """Apply a coupon to the new subscription."""
        self._coupon = coupon
        return self

    def with_card_token(self, card_token: str | None) -> "SubscriptionManager":
        """Assign a card token to the new subscription."""
        self._card_token = card_token
        return self

    def with_card(self, card: Any) -> "SubscriptionManager":
        """
        Assign an existing card to the new subscription.

        Args:
            card: Card ID, a mapping with an "id" key, or an object with an id attribute
        """
        if isinstance(card, Mapping):
            card = card.get("id")
        elif card is not None and not isinstance(card, str):
            card = getattr(card, "id", card)
        self._card = card
        return self

    def skip_trial(self) -> "SubscriptionManager":
        """End any trial period as part of the next operation."""
        self._skip_trial = True
        return self

    @property
    def model(self) -> Subscriber:
        """The subscriber bound to this manager."""
        return self._subscriber

    @property
    def quantity(self) -> int | None:
        return self._info.get("quantity")

    def to_dict(self) -> dict[str, Any]:
        """Return a copy of the last fetched subscription info."""
        return dict(self._info)

    def get(self, key: str, default: Any = None) -> Any:
        """Look up a subscription info value, returning default when absent."""
        value = self._info.get(key)
        return default if value is None else value

    def __contains__(self, key: object) -> bool:
        return self._info.get(key) is not None

    def __repr__(self) -> str:
        return f"<SubscriptionManager(plan={self._plan!r}, subscription={self._info.get('id')!r})>"

    def _trial_ends_at(self) -> datetime | None:
        return datetime.utcnow() if self._skip_trial else self._subscriber.billing_trial_ends_at

    async def _consume_card_token(self, customer: Any) -> None:
        card = await customer.creditcards().create(self._card_token)
        self._card = card.id
        self._card_token = None
