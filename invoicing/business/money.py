"""Fixed-precision money helpers.

All arithmetic is done on ``Decimal`` at full precision. ``round_money`` is the
only place values are reduced to two places, and callers apply it when a value
is about to be persisted or shown, never in between.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, localcontext

ZERO = Decimal("0")
HUNDRED = Decimal("100")
TWOPLACES = Decimal("0.01")
# Largest value a Numeric(18, 2) column holds.
MAX_AMOUNT = Decimal("9999999999999999.99")


def to_decimal(value: Decimal | int | str) -> Decimal:
    if isinstance(value, float):
        raise TypeError("money values must not be floats")
    return value if isinstance(value, Decimal) else Decimal(value)


def _quantize(amount: Decimal) -> Decimal:
    # Widen precision so quantizing never overflows the default 28 digits.
    with localcontext() as ctx:
        ctx.prec = max(ctx.prec, amount.adjusted() + 3)
        return amount.quantize(TWOPLACES, rounding=ROUND_HALF_UP)


def round_money(value: Decimal | int | str) -> Decimal:
    amount = to_decimal(value)
    if not amount.is_finite():
        raise ValueError("money values must be finite")
    return _quantize(amount)


def is_minor_unit_safe(value: Decimal | int | str) -> bool:
    amount = to_decimal(value)
    return amount.is_finite() and amount == _quantize(amount)


def is_storable_amount(value: Decimal | int | str) -> bool:
    amount = to_decimal(value)
    return amount.is_finite() and abs(amount) <= MAX_AMOUNT


def _require_non_negative(name: str, value: Decimal) -> None:
    if value < ZERO:
        raise ValueError(f"{name} must not be negative")


def apply_percentage_discount(
    amount: Decimal | int | str,
    percent: Decimal | int | str,
    cap: Decimal | int | str | None = None,
) -> Decimal:
    """Return ``amount * percent / 100``, bounded by ``cap`` and by ``amount`` itself."""
    base = to_decimal(amount)
    rate = to_decimal(percent)
    _require_non_negative("amount", base)
    _require_non_negative("percent", rate)

    discount = base * rate / HUNDRED
    if cap is not None:
        limit = to_decimal(cap)
        _require_non_negative("cap", limit)
        discount = min(discount, limit)
    return min(discount, base)


def apply_fixed_discount(amount: Decimal | int | str, fixed_value: Decimal | int | str) -> Decimal:
    base = to_decimal(amount)
    value = to_decimal(fixed_value)
    _require_non_negative("amount", base)
    _require_non_negative("fixed_value", value)
    return min(value, base)


def extract_inclusive_tax(amount: Decimal | int | str, tax_rate_percent: Decimal | int | str) -> Decimal:
    """Back-calculate the tax component of a tax-inclusive amount.

    18% GST on 118 yields 18: ``amount * rate / (100 + rate)``.
    """
    gross = to_decimal(amount)
    rate = to_decimal(tax_rate_percent)
    _require_non_negative("amount", gross)
    _require_non_negative("tax_rate_percent", rate)
    if gross == ZERO or rate == ZERO:
        return ZERO
    return gross * rate / (HUNDRED + rate)
