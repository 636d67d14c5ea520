"""
Billing exceptions.

Gateway implementations raise GatewayError subclasses for failed mutations;
the subscription manager lets them propagate untouched.
"""
from typing import Any


class BillingError(Exception):
    """
    Base billing error with context.

    Attributes:
        message: Human-readable error message
        error_code: Machine-readable error code
        context: Additional context data about the error
    """

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        context: dict[str, Any] | None = None,
    ):
        self.message = message
        self.error_code = error_code or "BILLING_ERROR"
        self.context = context or {}
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging and API responses."""
        return {
            "error_code": self.error_code,
            "message": self.message,
            "context": self.context,
        }


class GatewayError(BillingError):
    """A call to the billing gateway failed."""

    def __init__(self, message: str, context: dict[str, Any] | None = None):
        super().__init__(message, "GATEWAY_ERROR", context=context)


class GatewayNotConfiguredError(BillingError):
    """No gateway driver is registered under the requested name."""

    def __init__(self, driver: str):
        super().__init__(
            f"Billing gateway '{driver}' is not registered",
            "GATEWAY_NOT_CONFIGURED",
            context={"driver": driver},
        )


class SubscriberNotPersistedError(BillingError):
    """The subscriber is not attached to a database session and cannot be saved."""

    def __init__(self, subscriber: Any):
        super().__init__(
            f"{type(subscriber).__name__} is not attached to a session",
            "SUBSCRIBER_NOT_PERSISTED",
            context={"subscriber": repr(subscriber)},
        )
