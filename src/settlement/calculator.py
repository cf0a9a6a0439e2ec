"""
Payout Calculator.

Splits a gross payout into platform fee, temporary reserve and net amount.
Fee and reserve are each computed from gross and rounded half-up to the
cent; net is what is left. Same inputs always produce same outputs.

Example:
    >>> compute(Decimal("100.00"), Decimal("0.05"), Decimal("0.10"))
    PayoutSplit(gross=Decimal('100.00'), fee=Decimal('5.00'), reserve=Decimal('10.00'), net=Decimal('85.00'))
"""

from decimal import Decimal

from core.exceptions import ValidationError
from core.money import Numeric, ZERO, money, to_decimal
from settlement.models import PayoutSplit

MIN_GROSS = Decimal("0.01")
_ONE = Decimal("1")


def _as_decimal(value: Numeric, field: str) -> Decimal:
    try:
        result = to_decimal(value)
    except ValueError as e:
        raise ValidationError(f"{field} must be numeric", field=field) from e
    if not result.is_finite():
        raise ValidationError(f"{field} must be a finite number", field=field)
    return result


def validate_rates(fee_rate: Numeric, reserve_rate: Numeric) -> None:
    """
    Raises:
        ValidationError: If either rate is outside [0, 1] or they sum above 1
    """
    fee = _as_decimal(fee_rate, "fee_rate")
    reserve = _as_decimal(reserve_rate, "reserve_rate")
    if not ZERO <= fee <= _ONE:
        raise ValidationError("fee_rate must be between 0 and 1", field="fee_rate")
    if not ZERO <= reserve <= _ONE:
        raise ValidationError("reserve_rate must be between 0 and 1", field="reserve_rate")
    if fee + reserve > _ONE:
        raise ValidationError("fee_rate + reserve_rate must not exceed 1", field="reserve_rate")


def compute(gross: Numeric, fee_rate: Numeric, reserve_rate: Numeric) -> PayoutSplit:
    """
    Compute the fee, reserve and net for a gross amount.

    Gross is rounded to the cent first. When both fee and reserve round up
    and would leave a negative net, the reserve absorbs the difference.

    Raises:
        ValidationError: Gross below 0.01 or invalid rates
    """
    validate_rates(fee_rate, reserve_rate)
    gross_amount = money(_as_decimal(gross, "gross"))
    if gross_amount < MIN_GROSS:
        raise ValidationError("gross must be at least 0.01", field="gross")

    fee_rate = to_decimal(fee_rate)
    reserve_rate = to_decimal(reserve_rate)

    fee = money(gross_amount * fee_rate)
    reserve = money(gross_amount * reserve_rate)
    net = gross_amount - fee - reserve
    if net < ZERO:
        reserve = reserve + net
        net = ZERO

    return PayoutSplit(gross=gross_amount, fee=fee, reserve=money(reserve), net=money(net))
