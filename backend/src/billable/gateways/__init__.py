"""Billing gateway interfaces and driver registry."""
from billable.gateways.interfaces import (
    BillingCustomer,
    RemoteSubscription,
    Subscriber,
    SubscriptionGateway,
    SubscriptionInfo,
)
from billable.gateways.registry import get_gateway, register_gateway, reset_gateways

__all__ = [
    "BillingCustomer",
    "RemoteSubscription",
    "Subscriber",
    "SubscriptionGateway",
    "SubscriptionInfo",
    "get_gateway",
    "register_gateway",
    "reset_gateways",
]
