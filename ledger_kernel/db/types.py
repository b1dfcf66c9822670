"""
Module: ledger_kernel.db.types
Responsibility: The money constants and helpers every model and service
    shares, so precision and rounding are defined in one place.
Architecture position: Kernel > DB.  May be imported by models/, domain/,
    services/ and selectors/.  MUST NOT import from any of those layers.

Invariants enforced:
    - Amounts are Decimal, stored through db.base.ExactDecimal.
    - Posted amounts carry at most MINOR_UNIT_PLACES decimal places; the
      balance check is then exact integer-minor-unit arithmetic.
    - round_money() is the only sanctioned rounding function.
"""

from decimal import ROUND_HALF_UP, Decimal

MINOR_UNIT_PLACES = 2
DEFAULT_ROUNDING = ROUND_HALF_UP

ZERO = Decimal("0")


def round_money(
    value: Decimal,
    decimal_places: int = MINOR_UNIT_PLACES,
    rounding: str = DEFAULT_ROUNDING,
) -> Decimal:
    """
    Round a monetary value to the given number of decimal places.

    Args:
        value: The Decimal value to round.
        decimal_places: Number of decimal places to keep.
        rounding: Rounding mode (default: ROUND_HALF_UP).

    Returns:
        The quantized Decimal.
    """
    quantize_str = "0." + "0" * decimal_places if decimal_places else "1"
    return Decimal(value).quantize(Decimal(quantize_str), rounding=rounding)


def percentage(numerator: Decimal, denominator: Decimal) -> Decimal:
    """
    ``numerator / |denominator| * 100`` rounded to two places; 0 when the
    denominator is zero.
    """
    if denominator == 0:
        return round_money(ZERO)
    return round_money(numerator / abs(denominator) * Decimal("100"))
