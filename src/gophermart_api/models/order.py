from datetime import datetime, timezone
from enum import Enum

from sqlalchemy import CheckConstraint, Column, DateTime, Enum as SqlEnum, Index, Numeric, String, func

from gophermart_api.db.base import Base


class OrderStatusEnum(str, Enum):
    NEW = "NEW"
    PROCESSING = "PROCESSING"
    INVALID = "INVALID"
    PROCESSED = "PROCESSED"

    @classmethod
    def live(cls) -> tuple["OrderStatusEnum", ...]:
        """Statuses the reconciliation worker still has to resolve."""
        return (cls.NEW, cls.PROCESSING)

    @property
    def is_terminal(self) -> bool:
        return self in (OrderStatusEnum.INVALID, OrderStatusEnum.PROCESSED)


class Order(Base):
    __tablename__ = "orders"
    __table_args__ = (
        Index("ix_orders_user_id_uploaded_at", "user_id", "uploaded_at"),
        Index("ix_orders_status", "status"),
        CheckConstraint("accrual IS NULL OR accrual >= 0", name="ck_orders_accrual_non_negative"),
    )

    number = Column(String(32), primary_key=True)
    user_id = Column(String(64), nullable=False)
    status = Column(
        SqlEnum(OrderStatusEnum, name="order_status_enum"),
        nullable=False,
        default=OrderStatusEnum.NEW,
        server_default=OrderStatusEnum.NEW.value,
    )
    accrual = Column(Numeric(12, 2), nullable=True)
    uploaded_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        server_default=func.now(),
        nullable=False,
    )
