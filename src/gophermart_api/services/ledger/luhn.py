"""Luhn mod-10 checksum helpers for order numbers."""

from __future__ import annotations


def normalize_order_number(raw: str | int) -> str:
    """Strip surrounding whitespace; integers are rendered as digit strings."""

    return str(raw).strip()


def is_valid_luhn(number: str | int) -> bool:
    """Return True when ``number`` is a non-empty digit string passing the Luhn check."""

    digits = normalize_order_number(number)
    if not digits or not digits.isascii() or not digits.isdigit():
        return False

    total = 0
    for index, char in enumerate(reversed(digits)):
        value = int(char)
        if index % 2 == 1:
            value *= 2
            if value > 9:
                value -= 9
        total += value
    return total % 10 == 0


def luhn_check_digit(payload: str) -> int:
    """Compute the digit that makes ``payload + digit`` Luhn-valid."""

    for candidate in range(10):
        if is_valid_luhn(f"{payload}{candidate}"):
            return candidate
    raise ValueError(f"Payload {payload!r} is not a digit string")


__all__ = ["is_valid_luhn", "luhn_check_digit", "normalize_order_number"]
