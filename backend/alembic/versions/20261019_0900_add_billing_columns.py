"""Add subscription billing columns to subscriber tables

Revision ID: 20261019_0900
Revises:
Create Date: 2026-10-19 09:00:00.000000

Adds the billing_* columns maintained by SubscriptionManager.refresh() to
every table listed in settings.subscriber_tables.
"""
from alembic import op

from billable.config import settings
from billable.models.billable import billing_columns


# revision identifiers, used by Alembic.
revision = '20261019_0900'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    """Add billing columns and the subscription lookup index."""
    for table in settings.subscriber_tables:
        for column in billing_columns():
            op.add_column(table, column)

        # Subscribers are looked up by gateway subscription ID
        op.create_index(
            f'ix_{table}_billing_subscription',
            table,
            ['billing_subscription'],
            unique=False
        )


def downgrade() -> None:
    """Drop billing columns."""
    for table in settings.subscriber_tables:
        op.drop_index(f'ix_{table}_billing_subscription', table_name=table)
        with op.batch_alter_table(table) as batch_op:
            for column in reversed(billing_columns()):
                batch_op.drop_column(column.name)
