"""SQLAlchemy ORM building blocks for subscriber models."""

from billable.models.base import Base
from billable.models.billable import SubscriptionBillableMixin, billing_columns

__all__ = [
    "Base",
    "SubscriptionBillableMixin",
    "billing_columns",
]
