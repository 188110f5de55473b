"""Command-line entry points for LedgerFlow."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Optional

import click

from .config import BaseConfig
from .context import AppContext, create_app_context
from .errors import OperationResult
from .infra.repositories.transaction import TransactionFilters
from .logging_config import setup_logging
from .models.enums import Currency
from .services.export_csv import export_transactions_csv

CURRENCY_CHOICE = click.Choice([c.value for c in Currency], case_sensitive=False)


def _context(ctx: click.Context) -> AppContext:
    return ctx.ensure_object(dict)["app"]


def _unwrap(result: OperationResult):
    """Return the payload or turn the failure into a click error."""
    if not result.ok:
        assert result.error is not None
        raise click.ClickException(f"{result.error.message} [{result.error.code}]")
    return result.value


def _parse_decimal(ctx, param, value: Optional[str]) -> Optional[Decimal]:
    if value is None:
        return None
    try:
        return Decimal(value)
    except InvalidOperation as exc:
        raise click.BadParameter(f"{value!r} is not a number") from exc


@click.group()
@click.pass_context
def main(ctx: click.Context) -> None:
    """Multi-currency ledger with card statements and recurring bills."""

    config = BaseConfig()
    setup_logging(config)
    app = create_app_context(config, bootstrap_user=True)
    ctx.ensure_object(dict)["app"] = app
    ctx.call_on_close(app.dispose)


@main.command("init-db")
@click.pass_context
def init_db(ctx: click.Context) -> None:
    """Create the schema and the local user."""

    app = _context(ctx)
    click.echo(f"Database ready for user '{app.current_user.username}'.")


@main.command("seed-rates")
@click.pass_context
def seed_rates(ctx: click.Context) -> None:
    """Load the reference exchange rates for pairs that have none."""

    created = _unwrap(_context(ctx).rates.seed_default_rates())
    click.echo(f"Seeded {created} exchange rates.")


@main.command("rates")
@click.pass_context
def list_rates(ctx: click.Context) -> None:
    """List stored exchange rates."""

    rows = _unwrap(_context(ctx).rates.list_rates())
    if not rows:
        click.echo("No exchange rates stored.")
        return
    for row in rows:
        click.echo(
            f"{row.from_currency.value}->{row.to_currency.value}\t{format(row.rate, 'f')}\t"
            f"{row.effective_at.isoformat()}\t{row.source}"
        )


@main.command("add-rate")
@click.argument("from_currency", type=CURRENCY_CHOICE)
@click.argument("to_currency", type=CURRENCY_CHOICE)
@click.argument("rate", callback=_parse_decimal)
@click.option("--source", default="MANUAL", show_default=True)
@click.pass_context
def add_rate(ctx: click.Context, from_currency: str, to_currency: str, rate: Decimal, source: str) -> None:
    """Store a directional exchange rate."""

    row = _unwrap(
        _context(ctx).rates.add_rate(
            Currency(from_currency.upper()), Currency(to_currency.upper()), rate, source=source
        )
    )
    click.echo(f"Stored {row.from_currency.value}->{row.to_currency.value} = {format(row.rate, 'f')}")


@main.command("close-statements")
@click.option("--as-of", "as_of", type=click.DateTime(formats=["%Y-%m-%d"]), default=None)
@click.pass_context
def close_statements(ctx: click.Context, as_of: Optional[datetime]) -> None:
    """Close every card statement past its closing date."""

    app = _context(ctx)
    day: Optional[date] = as_of.date() if as_of else None
    closed = _unwrap(app.statements.close_due_statements(app.require_user_id(), day))
    for statement in closed:
        click.echo(
            f"Closed statement {statement.year}-{statement.month:02d} of product {statement.product_id}: "
            f"{format(statement.total_amount, 'f')}"
        )
    click.echo(f"{len(closed)} statement(s) closed.")


@main.command("generate-bills")
@click.option("--year", type=int, required=True)
@click.option("--month", type=click.IntRange(1, 12), required=True)
@click.pass_context
def generate_bills(ctx: click.Context, year: int, month: int) -> None:
    """Create this period's bills for every active service."""

    app = _context(ctx)
    created = _unwrap(app.bills.generate_bills(app.require_user_id(), year, month))
    click.echo(f"{len(created)} bill(s) generated for {year}-{month:02d}.")


@main.command("export-transactions")
@click.argument("output", type=click.Path(dir_okay=False, path_type=Path))
@click.option("--product", "product_id", type=int, default=None, help="Only this product's transactions.")
@click.pass_context
def export_transactions(ctx: click.Context, output: Path, product_id: Optional[int]) -> None:
    """Write transactions to a CSV file."""

    app = _context(ctx)
    rows = _unwrap(
        app.transactions.list_transactions(app.require_user_id(), TransactionFilters(product_id=product_id))
    )
    path = export_transactions_csv(transactions=rows, output_path=output)
    click.echo(f"Exported {len(rows)} transaction(s) to {path}")


if __name__ == "__main__":  # pragma: no cover
    main()
