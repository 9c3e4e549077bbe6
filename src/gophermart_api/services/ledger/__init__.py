"""Order ledger persistence and validation."""

from .errors import (  # noqa: F401
    InsufficientFundsError,
    InvalidOrderNumberError,
    InvalidWithdrawalAmountError,
    LedgerError,
    OrderOwnershipConflictError,
)
from .luhn import is_valid_luhn, luhn_check_digit, normalize_order_number  # noqa: F401
from .store import Balance, OrderLedgerStore, SubmissionOutcome, as_money  # noqa: F401
