"""Domain errors raised by the order ledger and balance services."""

from __future__ import annotations

from decimal import Decimal


class LedgerError(RuntimeError):
    """Base exception for order ledger failures."""


class InvalidOrderNumberError(LedgerError):
    """Raised when an order number is not a digit string passing the Luhn checksum."""

    def __init__(self, number: str) -> None:
        super().__init__(f"Invalid order number: {number!r}")
        self.number = number


class OrderOwnershipConflictError(LedgerError):
    """Raised when an order number was already uploaded by another user."""

    def __init__(self, number: str) -> None:
        super().__init__(f"Order {number} was uploaded by another user")
        self.number = number


class InvalidWithdrawalAmountError(LedgerError):
    """Raised when a withdrawal amount is not strictly positive."""

    def __init__(self, amount: Decimal) -> None:
        super().__init__(f"Withdrawal amount must be positive, got {amount}")
        self.amount = amount


class InsufficientFundsError(LedgerError):
    """Raised when a withdrawal exceeds the balance observed in its transaction."""

    def __init__(self, *, requested: Decimal, available: Decimal) -> None:
        super().__init__(f"Insufficient funds: requested {requested}, available {available}")
        self.requested = requested
        self.available = available


__all__ = [
    "InsufficientFundsError",
    "InvalidOrderNumberError",
    "InvalidWithdrawalAmountError",
    "LedgerError",
    "OrderOwnershipConflictError",
]
