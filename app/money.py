"""
Commission arithmetic.

Models publish a net hourly price; users are charged the gross price, which
carries the platform commission on top. All amounts are Decimals quantized
to cents.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from app.errors import ValidationError
from app.settings import COMMISSION_RATE

CENTS = Decimal("0.01")


def _quantize(amount: Decimal) -> Decimal:
    return amount.quantize(CENTS, rounding=ROUND_HALF_UP)


def parse_amount(value, name: str) -> Decimal:
    """Coerce a price coming from outside (JSON, directory record) to Decimal."""
    if value is None:
        raise ValidationError(f"{name} is missing")
    try:
        amount = Decimal(str(value))
    except InvalidOperation:
        raise ValidationError(f"{name} is not a number: {value!r}") from None
    if not amount.is_finite():
        raise ValidationError(f"{name} is not a number: {value!r}")
    return amount


def _require_positive(amount: Decimal, name: str) -> Decimal:
    amount = parse_amount(amount, name)
    if amount <= 0:
        raise ValidationError(f"{name} must be greater than zero")
    return amount


def gross(net_price: Decimal, rate: Decimal = COMMISSION_RATE) -> Decimal:
    """User-facing price for a model's net price."""
    net_price = _require_positive(net_price, "net price")
    return _quantize(net_price * (1 + rate))


def net(gross_amount: Decimal, rate: Decimal = COMMISSION_RATE) -> Decimal:
    """Portion of a paid gross amount that belongs to the model."""
    gross_amount = _require_positive(gross_amount, "gross amount")
    return _quantize(gross_amount / (1 + rate))


def commission(gross_amount: Decimal, rate: Decimal = COMMISSION_RATE) -> Decimal:
    """Portion of a paid gross amount retained by the platform."""
    return _quantize(Decimal(str(gross_amount))) - net(gross_amount, rate)


def split(gross_amount: Decimal, rate: Decimal = COMMISSION_RATE) -> tuple[Decimal, Decimal]:
    """Return (net, commission); the two always add up to the gross amount."""
    net_amount = net(gross_amount, rate)
    return net_amount, _quantize(Decimal(str(gross_amount))) - net_amount
