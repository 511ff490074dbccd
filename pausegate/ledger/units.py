"""Conversion between whole-token amounts and the ledger's smallest unit."""

from __future__ import annotations

from decimal import Decimal, InvalidOperation, localcontext

DEFAULT_DECIMALS = 18


def parse_units(value: str | int | Decimal, decimals: int = DEFAULT_DECIMALS) -> int:
    """
    Convert a whole-token amount (e.g. ``"10.5"``) to smallest units.

    Raises:
        ValueError: If the value is not a number or has more fractional
            digits than ``decimals`` allows.
    """
    try:
        amount = Decimal(str(value).strip())
    except InvalidOperation as e:
        raise ValueError(f"Invalid token amount: {value!r}") from e
    if not amount.is_finite():
        raise ValueError(f"Invalid token amount: {value!r}")

    with localcontext() as ctx:
        ctx.prec = 80
        scaled = amount.scaleb(decimals)
        if scaled != scaled.to_integral_value():
            raise ValueError(f"{value!r} has more than {decimals} decimal places")
        return int(scaled)


def format_units(value: int, decimals: int = DEFAULT_DECIMALS) -> str:
    """Render smallest units as a whole-token string (``50000...`` -> ``"50.0"``)."""
    with localcontext() as ctx:
        ctx.prec = 80
        text = f"{Decimal(value).scaleb(-decimals):f}"
    if "." in text:
        whole, frac = text.split(".")
        frac = frac.rstrip("0") or "0"
        return f"{whole}.{frac}"
    return f"{text}.0"
