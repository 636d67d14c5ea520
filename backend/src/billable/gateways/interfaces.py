"""
Billing gateway protocols.

Defines the collaborators the subscription manager talks to. Gateway
clients (Stripe, Braintree, ...) implement these; the manager never calls a
gateway API directly.

Timestamps crossing these interfaces are ``datetime`` values. Subscription
info is a mapping with at least ``id``, ``plan``, ``amount``, ``interval``,
``quantity``, ``card``, ``trial_ends_at``, ``active``, ``period_ends_at`` and
``discounts``; an empty mapping or ``None`` means the gateway has no record.
"""
from datetime import datetime
from typing import Any, Mapping, Optional, Protocol


SubscriptionInfo = Mapping[str, Any]


class RemoteSubscription(Protocol):
    """Handle on a gateway-side subscription object."""

    @property
    def id(self) -> Optional[str]:
        """Gateway subscription ID."""
        ...

    async def create(self, plan: Any, properties: dict[str, Any]) -> "RemoteSubscription":
        """
        Create the subscription at the gateway.

        Args:
            plan: Gateway plan identifier
            properties: trial_ends_at, coupon, card_token, card and any extras

        Returns:
            The handle bound to the created subscription

        Raises:
            GatewayError: If the gateway rejects the call
        """
        ...

    async def update(self, properties: dict[str, Any]) -> "RemoteSubscription":
        """Update plan, quantity, trial end, proration or payment card."""
        ...

    async def cancel(self, at_period_end: bool = True) -> "RemoteSubscription":
        """Cancel immediately or at the end of the current period."""
        ...

    async def info(self) -> Optional[SubscriptionInfo]:
        """Fetch the current subscription snapshot."""
        ...


class SubscriptionGateway(Protocol):
    """Factory for remote subscription handles."""

    def subscription(self, subscription_id: Optional[str] = None, customer: Any = None) -> RemoteSubscription:
        """
        Bind a handle to an existing subscription or prepare a new one.

        Args:
            subscription_id: Existing gateway subscription ID, or None for a new one
            customer: Gateway customer reference, or None
        """
        ...


class Card(Protocol):
    id: str


class CardCollection(Protocol):
    async def create(self, token: str) -> Card:
        ...


class CustomerProvisioner(Protocol):
    """Creates the customer record at the gateway."""

    def with_card_token(self, token: str) -> "CustomerProvisioner":
        ...

    async def create(self, properties: Optional[dict[str, Any]] = None) -> Any:
        ...


class BillingCustomer(Protocol):
    """Local customer entity linked to a gateway customer."""

    billing_cards: Any

    def ready_for_billing(self) -> bool:
        ...

    def billing(self) -> CustomerProvisioner:
        ...

    def creditcards(self) -> CardCollection:
        ...

    def gateway_customer(self) -> Any:
        ...


class Subscriber(Protocol):
    """Local record that holds a billing subscription."""

    billing_active: bool
    billing_subscription: Optional[str]
    billing_plan: Optional[str]
    billing_amount: Optional[int]
    billing_interval: Optional[str]
    billing_quantity: Optional[int]
    billing_card: Optional[str]
    billing_trial_ends_at: Optional[datetime]
    billing_subscription_ends_at: Optional[datetime]
    billing_subscription_discounts: Any

    def is_billing_active(self) -> bool:
        ...

    def is_canceled(self) -> bool:
        ...

    def customer(self) -> Optional[BillingCustomer]:
        ...

    def gateway_subscription(self, gateway: Optional[SubscriptionGateway] = None) -> Optional[RemoteSubscription]:
        ...

    async def save(self) -> None:
        ...
