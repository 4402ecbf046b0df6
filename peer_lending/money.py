"""
Money Helpers

Decimal parsing and rounding for principal and interest amounts. Values are
single-currency; NEVER uses float for monetary values.
"""

from decimal import Decimal, ROUND_HALF_UP, InvalidOperation, getcontext

from .exceptions import ValidationError

getcontext().prec = 28

CENT = Decimal('0.01')
ZERO = Decimal('0')
HUNDRED = Decimal('100')
MAX_AMOUNT = Decimal('1000000000000')  # Keeps cent rounding inside the 28-digit context


def quantize_money(amount: Decimal) -> Decimal:
    """Round to two places, half up"""
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def to_decimal(value, field_name: str = "amount") -> Decimal:
    """Parse ints, strings and Decimals; floats go through ``str`` first"""
    if isinstance(value, bool) or value is None:
        raise ValidationError(f"{field_name} must be a number")
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value).strip())
        except (InvalidOperation, ValueError):
            raise ValidationError(f"{field_name} must be a number")
    if not result.is_finite():
        raise ValidationError(f"{field_name} must be a finite number")
    return result


def positive_amount(value, field_name: str = "amount") -> Decimal:
    """Parse a strictly positive amount no larger than MAX_AMOUNT"""
    amount = to_decimal(value, field_name)
    if amount <= ZERO:
        raise ValidationError(f"{field_name} must be greater than 0")
    if amount > MAX_AMOUNT:
        raise ValidationError(f"{field_name} must not exceed {MAX_AMOUNT}")
    return amount


def monthly_interest(outstanding_principal: Decimal, interest_percentage: Decimal) -> Decimal:
    """Simple monthly interest: round(principal * rate / 100, 2)"""
    if outstanding_principal < ZERO:
        outstanding_principal = ZERO
    try:
        return quantize_money(outstanding_principal * interest_percentage / HUNDRED)
    except InvalidOperation:
        raise ValidationError("Monthly interest is too large to represent")
