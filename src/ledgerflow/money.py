"""Fixed-point money helpers shared by every ledger component."""

from __future__ import annotations

from decimal import ROUND_DOWN, ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Union

from .errors import InvalidAmount
from .models.enums import Currency

MoneyLike = Union[Decimal, int, str, float]

ZERO = Decimal("0")

# BTC is tracked to the satoshi; everything else to the cent.
_PLACES = {
    Currency.ARS: Decimal("0.01"),
    Currency.USD: Decimal("0.01"),
    Currency.USDT: Decimal("0.01"),
    Currency.USDC: Decimal("0.01"),
    Currency.BTC: Decimal("0.00000001"),
}


def quantum(currency: Currency | str) -> Decimal:
    """Smallest representable unit for ``currency``."""

    return _PLACES[Currency(currency)]


def to_decimal(value: MoneyLike) -> Decimal:
    """Convert user input to Decimal without passing through binary floats."""

    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, float):
        # repr() gives the shortest string that round-trips, e.g. 0.1 -> "0.1"
        result = Decimal(repr(value))
    else:
        try:
            result = Decimal(str(value).strip())
        except InvalidOperation as exc:
            raise InvalidAmount(f"Not a valid amount: {value!r}") from exc
    if not result.is_finite():
        raise InvalidAmount(f"Not a valid amount: {value!r}")
    return result


def quantize(amount: MoneyLike, currency: Currency | str) -> Decimal:
    """Round half-up to the currency's precision."""

    return to_decimal(amount).quantize(quantum(currency), rounding=ROUND_HALF_UP)


def positive_amount(amount: MoneyLike, currency: Currency | str) -> Decimal:
    """Quantize and require a strictly positive amount."""

    value = quantize(amount, currency)
    if value <= ZERO:
        raise InvalidAmount("The amount must be greater than zero.", amount=amount)
    return value


def convert(amount: Decimal, rate: Decimal, currency: Currency | str) -> Decimal:
    """Apply a directional rate and quantize to the target currency."""

    return quantize(amount * rate, currency)


def split_evenly(total: Decimal, parts: int, currency: Currency | str) -> list[Decimal]:
    """Split ``total`` into ``parts`` amounts that sum to it exactly.

    Every part gets the truncated share; the last part absorbs the remainder.

    >>> split_evenly(Decimal("100.00"), 3, "USD")
    [Decimal('33.33'), Decimal('33.33'), Decimal('33.34')]
    """

    if parts < 1:
        raise InvalidAmount("Installment count must be at least 1.", parts=parts)
    unit = quantum(currency)
    base = (total / parts).quantize(unit, rounding=ROUND_DOWN)
    shares = [base] * parts
    shares[-1] = total - base * (parts - 1)
    return shares


def percentage_of(amount: Decimal, percent: Decimal, currency: Currency | str) -> Decimal:
    """``percent`` % of ``amount``, rounded to the currency."""

    return quantize(amount * percent / Decimal(100), currency)


def format_amount(amount: Decimal) -> str:
    """Plain, exponent-free string form used for storage and transport."""

    return format(amount, "f")


def quantize_cents(amount: MoneyLike) -> Decimal:
    """Round half-up to two places, for amounts not yet tied to a currency."""

    return to_decimal(amount).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
