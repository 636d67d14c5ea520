"""Registry of billing gateway drivers."""
from typing import Any, Callable

import structlog

from billable.config import settings
from billable.exceptions import GatewayNotConfiguredError
from billable.gateways.interfaces import SubscriptionGateway

logger = structlog.get_logger(__name__)

GatewayFactory = Callable[[dict[str, Any]], SubscriptionGateway]

_factories: dict[str, GatewayFactory] = {}
_instances: dict[str, SubscriptionGateway] = {}


def register_gateway(name: str, factory: GatewayFactory) -> None:
    """
    Register a gateway driver.

    Args:
        name: Driver name (e.g. "stripe")
        factory: Callable receiving the driver's options from settings.gateways
    """
    _factories[name] = factory
    _instances.pop(name, None)
    logger.debug("gateway_registered", driver=name)


def get_gateway(name: str | None = None) -> SubscriptionGateway:
    """
    Resolve a gateway instance, building it on first use.

    Args:
        name: Driver name (defaults to settings.billing_gateway)

    Returns:
        SubscriptionGateway: Cached gateway instance

    Raises:
        GatewayNotConfiguredError: If no factory is registered for the driver
    """
    name = name or settings.billing_gateway
    if name in _instances:
        return _instances[name]

    factory = _factories.get(name)
    if factory is None:
        raise GatewayNotConfiguredError(name)

    gateway = factory(dict(settings.gateways.get(name, {})))
    _instances[name] = gateway
    logger.info("gateway_initialized", driver=name)
    return gateway


def reset_gateways() -> None:
    """Forget all registered drivers and cached instances."""
    _factories.clear()
    _instances.clear()
