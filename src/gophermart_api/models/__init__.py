"""SQLAlchemy models package."""

from .order import Order, OrderStatusEnum  # noqa: F401
from .withdrawal import Withdrawal  # noqa: F401
