"""Exact lamports <-> SOL conversion (9 fixed decimal places, no float math)."""
from __future__ import annotations

import math
from decimal import Decimal, InvalidOperation

SOL_DECIMALS = 9
LAMPORTS_PER_SOL = 10**SOL_DECIMALS


def lamports_to_sol(lamports: int) -> str:
    """Render an integer lamport amount as a SOL decimal string.

    Works for arbitrarily large and negative integers.

    Examples:
        1_500_000_000 → "1.500000000"
        -1 → "-0.000000001"
    """
    lamports = int(lamports)
    sign = "-" if lamports < 0 else ""
    digits = str(abs(lamports)).rjust(SOL_DECIMALS + 1, "0")
    return f"{sign}{digits[:-SOL_DECIMALS]}.{digits[-SOL_DECIMALS:]}"


def sol_to_lamports(amount: str | int | float | Decimal) -> int:
    """Convert a SOL amount to integer lamports.

    NaN and blank input return 0 so empty form fields never raise. The value
    is rendered with exactly nine fractional digits and the digit string is
    parsed as an int, so string and Decimal input never pass through a binary
    float. Extra fractional digits are rounded half-even.

    Examples:
        "1.5" → 1_500_000_000
        float("nan") → 0
    """
    if isinstance(amount, bool):
        raise TypeError("Boolean is not a valid SOL amount")

    if isinstance(amount, float):
        if math.isnan(amount):
            return 0
        if math.isinf(amount):
            raise ValueError(f"Invalid SOL amount: {amount!r}")
        fixed = format(amount, f".{SOL_DECIMALS}f")
        return int(fixed.replace(".", ""))

    if isinstance(amount, str):
        amount = amount.strip().replace("_", "")
        if not amount:
            return 0

    try:
        value = Decimal(amount)
    except (InvalidOperation, TypeError) as e:
        raise ValueError(f"Invalid SOL amount: {amount!r}") from e

    if value.is_nan():
        return 0
    if value.is_infinite():
        raise ValueError(f"Invalid SOL amount: {amount!r}")

    fixed = format(value, f".{SOL_DECIMALS}f")
    return int(fixed.replace(".", ""))
