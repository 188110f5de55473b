"""Exchange-rate resolution between supported currencies."""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from sqlmodel import Session

from ..errors import InvalidAmount, RateUnavailable, ValidationError, returns_result
from ..infra.database import SessionFactory
from ..infra.repositories.exchange_rate import SQLModelExchangeRateRepository
from ..logging_config import get_logger
from ..models.enums import Currency
from ..models.exchange_rate import ExchangeRate
from ..models.types import utcnow
from ..money import convert, to_decimal

logger = get_logger(__name__)

ONE = Decimal(1)


def _as_utc(moment: datetime) -> datetime:
    """Naive datetimes are taken to be UTC already."""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)

# Reference table loaded by ``seed_default_rates``. Each pair is stored in both
# directions; reciprocals are computed here, never at lookup time.
DEFAULT_RATES: tuple[tuple[Currency, Currency, Decimal], ...] = (
    (Currency.USD, Currency.ARS, Decimal("1350")),
    (Currency.BTC, Currency.USD, Decimal("95000")),
    (Currency.USDT, Currency.USD, Decimal("1")),
    (Currency.USDC, Currency.USD, Decimal("1")),
    (Currency.BTC, Currency.ARS, Decimal("128250000")),
    (Currency.USDT, Currency.ARS, Decimal("1350")),
    (Currency.USDC, Currency.ARS, Decimal("1350")),
)


class ExchangeRateResolver:
    """Looks up directional rates.

    Only stored pairs are used: an ARS->USD request does not invert a USD->ARS
    row and no path through a third currency is attempted.
    """

    def __init__(self, session_factory: SessionFactory):
        self.session_factory = session_factory

    # In-unit API used by the other engines

    def latest_rate_in(self, session: Session, from_currency: Currency, to_currency: Currency) -> Decimal:
        from_currency, to_currency = Currency(from_currency), Currency(to_currency)
        if from_currency == to_currency:
            return ONE
        row = SQLModelExchangeRateRepository(session).latest(from_currency, to_currency)
        if row is None:
            raise RateUnavailable(
                f"No exchange rate from {from_currency.value} to {to_currency.value}.",
                from_currency=from_currency.value,
                to_currency=to_currency.value,
            )
        return row.rate

    def convert_in(
        self, session: Session, amount: Decimal, from_currency: Currency, to_currency: Currency
    ) -> tuple[Decimal, Decimal]:
        rate = self.latest_rate_in(session, from_currency, to_currency)
        return convert(amount, rate, to_currency), rate

    # Public API

    @returns_result
    def get_latest_rate(self, from_currency: Currency, to_currency: Currency) -> Decimal:
        """Most recent stored rate for the ordered pair."""
        with self.session_factory() as session:
            return self.latest_rate_in(session, from_currency, to_currency)

    @returns_result
    def convert(
        self, amount: Decimal, from_currency: Currency, to_currency: Currency
    ) -> tuple[Decimal, Decimal]:
        """Return ``(converted_amount, rate_used)``."""
        value = to_decimal(amount)
        with self.session_factory() as session:
            return self.convert_in(session, value, from_currency, to_currency)

    @returns_result
    def list_rates(self) -> list[ExchangeRate]:
        with self.session_factory() as session:
            return SQLModelExchangeRateRepository(session).list_all()

    @returns_result
    def add_rate(
        self,
        from_currency: Currency,
        to_currency: Currency,
        rate: Decimal,
        *,
        effective_at: Optional[datetime] = None,
        source: str = "MANUAL",
    ) -> ExchangeRate:
        from_currency, to_currency = Currency(from_currency), Currency(to_currency)
        if from_currency == to_currency:
            raise ValidationError("Source and target currency must differ.")
        value = to_decimal(rate)
        if value <= 0:
            raise InvalidAmount("Exchange rate must be greater than zero.", rate=rate)
        with self.session_factory() as session:
            row = SQLModelExchangeRateRepository(session).add(
                ExchangeRate(
                    from_currency=from_currency,
                    to_currency=to_currency,
                    rate=value,
                    effective_at=_as_utc(effective_at) if effective_at else utcnow(),
                    source=source,
                )
            )
        logger.info(
            "Exchange rate stored",
            extra={"from_currency": from_currency.value, "to_currency": to_currency.value, "rate": value},
        )
        return row

    @returns_result
    def seed_default_rates(self) -> int:
        """Insert the reference rates for pairs that have none yet.

        Returns the number of rows created; running it twice creates nothing.
        """
        created = 0
        with self.session_factory() as session:
            repo = SQLModelExchangeRateRepository(session)
            for base, quote, value in DEFAULT_RATES:
                for from_currency, to_currency, rate in (
                    (base, quote, value),
                    (quote, base, ONE / value),
                ):
                    if repo.latest(from_currency, to_currency) is not None:
                        continue
                    repo.add(
                        ExchangeRate(
                            from_currency=from_currency,
                            to_currency=to_currency,
                            rate=rate,
                            source="SEED",
                        )
                    )
                    created += 1
        logger.info("Default exchange rates seeded", extra={"rates_created": created})
        return created
