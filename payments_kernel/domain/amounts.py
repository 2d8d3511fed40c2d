"""
Amounts -- fixed-point Decimal helpers for currency values.

Responsibility:
    The ONLY sanctioned way for the escrow and installment engines to accept,
    validate and round monetary amounts.  Amounts are Decimal with at most two
    decimal places; floats are refused at the boundary so no binary drift can
    enter a balance.

Architecture position:
    Kernel > Domain -- pure functions, zero I/O.

Invariants enforced:
    - No float ever becomes an amount (``to_amount`` rejects it).
    - Inputs carrying more than two decimal places are rejected, never
      silently rounded.
    - Every accepted amount fits Numeric(15, 2); larger values are rejected
      before they reach a column that would round or refuse them.
    - ``round2`` is half-up to two places; every derived amount (installment
      amounts, late fees) goes through it.

Failure modes:
    - InvalidAmountError for floats, bools, non-numeric strings, NaN/Infinity,
      excess precision, a value too large for an Amount column, or a
      violated sign constraint.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from payments_kernel.db.types import AMOUNT_DECIMAL_PLACES, AMOUNT_PRECISION
from payments_kernel.exceptions import InvalidAmountError

ZERO = Decimal("0.00")

_QUANTUM = Decimal(1).scaleb(-AMOUNT_DECIMAL_PLACES)

# Largest integer-part exponent an Amount column can hold
_MAX_ADJUSTED = AMOUNT_PRECISION - AMOUNT_DECIMAL_PLACES - 1


def to_amount(value: Decimal | int | str, field: str = "amount") -> Decimal:
    """
    Coerce a caller-supplied value into a two-place Decimal.

    Preconditions:
        ``value`` is a Decimal, int, or numeric string.  float and bool are
        refused even when they would convert exactly.

    Postconditions:
        Returns a finite Decimal quantized to two places.  The numeric value
        is unchanged (no rounding happens here).

    Raises:
        InvalidAmountError: on any malformed input.
    """
    if isinstance(value, bool) or isinstance(value, float):
        raise InvalidAmountError(field, value, "floats and booleans are not amounts")
    if isinstance(value, Decimal):
        amount = value
    elif isinstance(value, (int, str)):
        try:
            amount = Decimal(str(value).strip())
        except InvalidOperation as exc:
            raise InvalidAmountError(field, value, "not a number") from exc
    else:
        raise InvalidAmountError(field, value, f"unsupported type {type(value).__name__}")

    if not amount.is_finite():
        raise InvalidAmountError(field, value, "must be finite")
    if amount != amount.quantize(_QUANTUM, rounding=ROUND_HALF_UP):
        raise InvalidAmountError(
            field, value, f"more than {AMOUNT_DECIMAL_PLACES} decimal places"
        )
    return require_storable(amount.quantize(_QUANTUM), field, value)


def require_storable(amount: Decimal, field: str = "amount", value: object = None) -> Decimal:
    """
    Require ``amount`` to fit an ``Amount`` column (at most 13 integer digits).

    Also applied to running totals, which can outgrow the column even when
    every single input fits.
    """
    if amount.adjusted() > _MAX_ADJUSTED:
        raise InvalidAmountError(
            field,
            amount if value is None else value,
            f"exceeds Numeric({AMOUNT_PRECISION}, {AMOUNT_DECIMAL_PLACES})",
        )
    return amount


def require_positive(value: Decimal | int | str, field: str = "amount") -> Decimal:
    """Coerce via ``to_amount`` and require ``> 0``."""
    amount = to_amount(value, field)
    if amount <= ZERO:
        raise InvalidAmountError(field, value, "must be positive")
    return amount


def require_non_negative(value: Decimal | int | str, field: str = "amount") -> Decimal:
    """Coerce via ``to_amount`` and require ``>= 0``."""
    amount = to_amount(value, field)
    if amount < ZERO:
        raise InvalidAmountError(field, value, "must not be negative")
    return amount


def round2(value: Decimal) -> Decimal:
    """Round half-up to two decimal places."""
    return value.quantize(_QUANTUM, rounding=ROUND_HALF_UP)


def percent_of(amount: Decimal, rate: Decimal) -> Decimal:
    """``round2(amount * rate)`` -- e.g. a 2% late fee is ``percent_of(a, Decimal("0.02"))``."""
    return round2(amount * rate)


def split_evenly(total: Decimal, parts: int) -> Decimal:
    """
    Per-part amount of ``total`` divided into ``parts``, rounded half-up.

    The rounding remainder is NOT redistributed: ``parts * result`` may differ
    from ``total`` by up to ``parts`` cents.
    """
    if parts < 1:
        raise ValueError(f"parts must be >= 1, got {parts}")
    return round2(total / Decimal(parts))
