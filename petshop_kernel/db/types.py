"""
Module: petshop_kernel.db.types
Responsibility: Money helpers every service uses to turn user input into
    Decimal amounts.
Architecture position: Kernel > DB.  May be imported by models/, domain/,
    services/ and selectors/.  MUST NOT import from any of those layers.

Invariants enforced:
    - No floats for money.  Floats given by callers are converted through
      their string form, never through binary representation.
    - round_money() is the single rounding function for stored amounts
      (2 places, ROUND_HALF_UP).
    - parse_amount() rejects NaN, infinities, booleans, blanks and negatives
      before anything reaches a session.

Failure modes:
    - ValidationError from parse_amount() on malformed or out-of-range input.
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from petshop_kernel.exceptions import ValidationError

MONEY_DECIMAL_PLACES = 2
DEFAULT_ROUNDING = ROUND_HALF_UP
ZERO = Decimal("0.00")
# Numeric(18, 2) leaves 16 integer digits
MAX_AMOUNT = Decimal("9999999999999999.99")


def round_money(
    value: Decimal,
    decimal_places: int = MONEY_DECIMAL_PLACES,
    rounding: str = DEFAULT_ROUNDING,
) -> Decimal:
    """
    Round a monetary value to the given number of decimal places.

    This is the only sanctioned rounding function for money in the kernel.
    """
    quantize_str = "0." + "0" * decimal_places
    return value.quantize(Decimal(quantize_str), rounding=rounding)


def parse_amount(
    value: object,
    field: str = "amount",
    *,
    allow_zero: bool = True,
) -> Decimal:
    """
    Parse user input into a non-negative money Decimal.

    Accepts Decimal, int, float (via str) and strings.  A comma decimal
    separator ("12,50") is accepted, since the till form is filled in by hand.

    Args:
        value: Raw input.
        field: Field name reported in the ValidationError.
        allow_zero: If False, zero is rejected too (ledger amounts).

    Returns:
        The amount rounded to 2 decimal places.

    Raises:
        ValidationError: If the value is missing, not numeric, not finite,
            negative, or zero when allow_zero is False,
            or larger than MAX_AMOUNT.
    """
    if value is None or isinstance(value, bool):
        raise ValidationError(field, value, "a numeric amount is required")

    if isinstance(value, Decimal):
        parsed = value
    elif isinstance(value, (int, float)):
        parsed = Decimal(str(value))
    elif isinstance(value, str):
        text = value.strip().replace(",", ".")
        if not text:
            raise ValidationError(field, value, "a numeric amount is required")
        try:
            parsed = Decimal(text)
        except InvalidOperation:
            raise ValidationError(field, value, "not a number")
    else:
        raise ValidationError(field, value, "unsupported amount type")

    if not parsed.is_finite():
        raise ValidationError(field, value, "amount must be finite")
    if parsed < 0:
        raise ValidationError(field, value, "amount must not be negative")

    if parsed > MAX_AMOUNT:
        raise ValidationError(field, value, "amount exceeds the storable maximum")

    try:
        rounded = round_money(parsed)
    except InvalidOperation:
        raise ValidationError(field, value, "amount exceeds the storable maximum")
    if rounded > MAX_AMOUNT:
        raise ValidationError(field, value, "amount exceeds the storable maximum")
    if not allow_zero and rounded == ZERO:
        raise ValidationError(field, value, "amount must be greater than zero")
    return rounded
