"""SQLModel implementation of the exchange-rate table."""

from __future__ import annotations

from typing import Optional

from sqlmodel import Session, select

from ...models.enums import Currency
from ...models.exchange_rate import ExchangeRate


class SQLModelExchangeRateRepository:
    """Exchange rates are global reference data, not scoped by user."""

    def __init__(self, session: Session):
        self.session = session

    def latest(self, from_currency: Currency, to_currency: Currency) -> Optional[ExchangeRate]:
        """Most recent rate for the exact ordered pair."""
        statement = (
            select(ExchangeRate)
            .where(ExchangeRate.from_currency == from_currency)
            .where(ExchangeRate.to_currency == to_currency)
            .order_by(ExchangeRate.effective_at.desc(), ExchangeRate.id.desc())  # type: ignore
        )
        return self.session.exec(statement).first()

    def list_all(self) -> list[ExchangeRate]:
        statement = select(ExchangeRate).order_by(
            ExchangeRate.from_currency,  # type: ignore
            ExchangeRate.to_currency,  # type: ignore
            ExchangeRate.effective_at.desc(),  # type: ignore
            ExchangeRate.id.desc(),  # type: ignore
        )
        return list(self.session.exec(statement).all())

    def add(self, rate: ExchangeRate) -> ExchangeRate:
        self.session.add(rate)
        self.session.flush()
        return rate
