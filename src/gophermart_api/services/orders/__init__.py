"""Order submission services."""

from .order_service import OrderService  # noqa: F401
