"""
Module: campaign_kernel.domain.decimals
Responsibility: Parsing and rounding helpers for exact-decimal arithmetic.
    Centralizes the conversion of raw inputs (strings, ints, Decimals) into
    ``Decimal`` and the quantization used by every precision policy.
Architecture position: Kernel > Domain.  Imported by values, engines and
    services.  MUST NOT import from outer layers.

Invariants enforced:
    - No binary floats: ``to_decimal`` rejects ``float`` (and ``bool``)
      outright instead of converting through ``str()``.
    - Finite only: NaN and infinities are rejected.
    - ``quantize`` is the ONLY sanctioned rounding function; precision
      policies delegate to it.

Failure modes:
    - InvalidDecimalFormatError on malformed strings, floats, NaN, infinity
      or unsupported types.  The offending raw value is carried on the error.
"""

from decimal import ROUND_HALF_UP, Context, Decimal, InvalidOperation
from typing import Any

from campaign_kernel.exceptions import InvalidDecimalFormatError

DEFAULT_ROUNDING = ROUND_HALF_UP

# Quantization ignores the caller's thread-local decimal context.
_QUANTIZE_CONTEXT = Context(prec=38)


def to_decimal(raw: Any) -> Decimal:
    """
    Convert a raw operand to an exact Decimal.

    Preconditions: raw is a Decimal, int, or decimal string.
    Postconditions: Returns a finite Decimal equal to the input, with the
        input's scale preserved (``"100.00"`` stays ``Decimal("100.00")``).

    Raises:
        InvalidDecimalFormatError: If raw cannot be represented exactly.
    """
    if isinstance(raw, bool):
        raise InvalidDecimalFormatError(raw, "booleans are not amounts")
    if isinstance(raw, Decimal):
        value = raw
    elif isinstance(raw, int):
        value = Decimal(raw)
    elif isinstance(raw, float):
        raise InvalidDecimalFormatError(raw, "binary floats are not accepted")
    elif isinstance(raw, str):
        text = raw.strip()
        if not text:
            raise InvalidDecimalFormatError(raw, "empty string")
        try:
            value = Decimal(text)
        except InvalidOperation as exc:
            raise InvalidDecimalFormatError(raw) from exc
    else:
        raise InvalidDecimalFormatError(raw, f"unsupported type {type(raw).__name__}")

    if not value.is_finite():
        raise InvalidDecimalFormatError(raw, "value must be finite")
    return value


def quantize(
    value: Decimal,
    decimal_places: int,
    rounding: str = DEFAULT_ROUNDING,
) -> Decimal:
    """
    Round a Decimal to a fixed number of decimal places.

    Preconditions: value is a finite Decimal; decimal_places >= 0.
    Postconditions: Returns value quantized to exactly ``decimal_places``
        digits after the point.  Idempotent: quantizing an already
        quantized value with the same arguments returns it unchanged.
    """
    exponent = Decimal(1).scaleb(-decimal_places)
    return value.quantize(exponent, rounding=rounding, context=_QUANTIZE_CONTEXT)


def decimal_to_str(value: Decimal) -> str:
    """Fixed-point string (no exponent) that keeps the value's scale."""
    return format(value, "f")
