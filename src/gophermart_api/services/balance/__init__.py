"""Balance and withdrawal services."""

from .balance_service import BalanceService  # noqa: F401
from .locks import UserLockRegistry  # noqa: F401
