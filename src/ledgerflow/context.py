"""Application context for dependency injection."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Callable, Optional

from sqlalchemy.engine import Engine
from sqlmodel import select

from .config import BaseConfig
from .infra.database import SessionFactory, bootstrap_database
from .models.user import User
from .services.bills import RecurringBillEngine
from .services.ledger import ProductLedger
from .services.rates import ExchangeRateResolver
from .services.statements import StatementCycleEngine
from .services.transactions import TransactionEngine

LOCAL_USERNAME = "local"


@dataclass
class AppContext:
    """The storage handle and every engine built on top of it."""

    config: BaseConfig
    engine: Engine
    session_factory: SessionFactory

    rates: ExchangeRateResolver
    ledger: ProductLedger
    statements: StatementCycleEngine
    transactions: TransactionEngine
    bills: RecurringBillEngine

    current_user: Optional[User] = None

    def require_user_id(self) -> int:
        """Return the current user id or raise if not set."""

        if self.current_user is None or self.current_user.id is None:
            raise RuntimeError("No user is bound to the context")
        return self.current_user.id

    def dispose(self) -> None:
        self.engine.dispose()


def ensure_local_user(session_factory: SessionFactory, username: str = LOCAL_USERNAME) -> User:
    """Create or return the default local profile."""

    with session_factory() as session:
        user = session.exec(select(User).where(User.username == username)).first()
        if user is None:
            user = User(username=username)
            session.add(user)
            session.flush()
        session.expunge(user)
        return user


def create_app_context(
    config: Optional[BaseConfig] = None,
    *,
    clock: Callable[[], date] = date.today,
    bootstrap_user: bool = False,
) -> AppContext:
    """Create the engine, initialize the schema and wire the engines together."""

    if config is None:
        config = BaseConfig()

    engine, session_factory = bootstrap_database(config)

    rates = ExchangeRateResolver(session_factory)
    ledger = ProductLedger(session_factory, rates, clock=clock)
    statements = StatementCycleEngine(
        session_factory,
        ledger,
        rates,
        clock=clock,
        default_closing_day=config.DEFAULT_CLOSING_DAY,
        default_due_day=config.DEFAULT_DUE_DAY,
    )
    transactions = TransactionEngine(session_factory, ledger, rates, statements, clock=clock)
    bills = RecurringBillEngine(session_factory, transactions, clock=clock)

    return AppContext(
        config=config,
        engine=engine,
        session_factory=session_factory,
        rates=rates,
        ledger=ledger,
        statements=statements,
        transactions=transactions,
        bills=bills,
        current_user=ensure_local_user(session_factory) if bootstrap_user else None,
    )
