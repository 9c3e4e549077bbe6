from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import CheckConstraint, Column, DateTime, Index, Numeric, String, Uuid, func

from gophermart_api.db.base import Base


class Withdrawal(Base):
    __tablename__ = "withdrawals"
    __table_args__ = (
        Index("ix_withdrawals_user_id_processed_at", "user_id", "processed_at"),
        CheckConstraint("sum > 0", name="ck_withdrawals_sum_positive"),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    order_number = Column(String(32), nullable=False)
    user_id = Column(String(64), nullable=False)
    sum = Column(Numeric(12, 2), nullable=False)
    processed_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        server_default=func.now(),
        nullable=False,
    )
