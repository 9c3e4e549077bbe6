"""Orders and withdrawals ledger tables.

Revision ID: 20261019_01
Revises: 
Create Date: 2026-10-19
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "20261019_01"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


ORDER_STATUSES = ("NEW", "PROCESSING", "INVALID", "PROCESSED")


def upgrade() -> None:
    order_status = sa.Enum(*ORDER_STATUSES, name="order_status_enum")

    op.create_table(
        "orders",
        sa.Column("number", sa.String(length=32), primary_key=True),
        sa.Column("user_id", sa.String(length=64), nullable=False),
        sa.Column("status", order_status, nullable=False, server_default="NEW"),
        sa.Column("accrual", sa.Numeric(12, 2), nullable=True),
        sa.Column("uploaded_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.CheckConstraint("accrual IS NULL OR accrual >= 0", name="ck_orders_accrual_non_negative"),
    )
    op.create_index("ix_orders_user_id_uploaded_at", "orders", ["user_id", "uploaded_at"])
    op.create_index("ix_orders_status", "orders", ["status"])

    op.create_table(
        "withdrawals",
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True),
        sa.Column("order_number", sa.String(length=32), nullable=False),
        sa.Column("user_id", sa.String(length=64), nullable=False),
        sa.Column("sum", sa.Numeric(12, 2), nullable=False),
        sa.Column("processed_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.CheckConstraint("sum > 0", name="ck_withdrawals_sum_positive"),
    )
    op.create_index("ix_withdrawals_user_id_processed_at", "withdrawals", ["user_id", "processed_at"])


def downgrade() -> None:
    op.drop_index("ix_withdrawals_user_id_processed_at", table_name="withdrawals")
    op.drop_table("withdrawals")
    op.drop_index("ix_orders_status", table_name="orders")
    op.drop_index("ix_orders_user_id_uploaded_at", table_name="orders")
    op.drop_table("orders")
    sa.Enum(name="order_status_enum").drop(op.get_bind(), checkfirst=True)
