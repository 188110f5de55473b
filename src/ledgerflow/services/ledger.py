"""Product ledger: products, institutions and every balance mutation.

All balance changes go through :meth:`ProductLedger.apply_balance_delta`,
which must run inside an open unit of work and writes with a version check.
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from datetime import date
from decimal import Decimal
from typing import Callable, Optional

from sqlmodel import Session

from ..errors import (
    CreditLimitExceeded,
    DuplicateRecord,
    InsufficientFunds,
    ProductInUse,
    RateUnavailable,
    ValidationError,
    returns_result,
)
from ..infra.database import SessionFactory
from ..infra.repositories.institution import SQLModelInstitutionRepository
from ..infra.repositories.product import SQLModelProductRepository
from ..infra.repositories.service import SQLModelServiceRepository
from ..infra.repositories.statement import SQLModelStatementRepository
from ..infra.repositories.transaction import SQLModelTransactionRepository
from ..logging_config import get_logger
from ..models.enums import CardProvider, Currency, InstitutionType, ProductType, TransactionType
from ..models.institution import FinancialInstitution
from ..models.product import FinancialProduct
from ..models.transaction import Transaction
from ..models.types import utcnow
from ..money import ZERO, quantize
from . import validations
from .rates import ExchangeRateResolver

logger = get_logger(__name__)

OPENING_BALANCE_DESCRIPTION = "Initial balance"
MANUAL_ADJUSTMENT_DESCRIPTION = "Manual balance adjustment"


@dataclass(slots=True)
class ProductInput:
    """Fields accepted when opening a product."""

    name: str
    type: ProductType
    currency: Currency
    balance: Decimal = ZERO
    institution_id: Optional[int] = None
    closing_day: Optional[int] = None
    due_day: Optional[int] = None
    limit: Optional[Decimal] = None
    limit_single_payment: Optional[Decimal] = None
    limit_installments: Optional[Decimal] = None
    shared_limit: bool = False
    unified_limit: bool = False
    linked_product_id: Optional[int] = None
    last_four_digits: Optional[str] = None
    provider: Optional[CardProvider] = None
    expiration_date: Optional[date] = None


@dataclass(slots=True)
class ProductUpdate:
    """Partial update; ``None`` leaves a field unchanged.

    ``type`` and ``currency`` are accepted only to reject changes to them.
    """

    name: Optional[str] = None
    type: Optional[ProductType] = None
    currency: Optional[Currency] = None
    balance: Optional[Decimal] = None
    institution_id: Optional[int] = None
    closing_day: Optional[int] = None
    due_day: Optional[int] = None
    limit: Optional[Decimal] = None
    limit_single_payment: Optional[Decimal] = None
    limit_installments: Optional[Decimal] = None
    shared_limit: Optional[bool] = None
    unified_limit: Optional[bool] = None
    linked_product_id: Optional[int] = None
    last_four_digits: Optional[str] = None
    provider: Optional[CardProvider] = None
    expiration_date: Optional[date] = None


_MONEY_FIELDS = ("limit", "limit_single_payment", "limit_installments")


class ProductLedger:
    """Owns product state and applies signed balance deltas."""

    def __init__(
        self,
        session_factory: SessionFactory,
        rates: ExchangeRateResolver,
        *,
        clock: Callable[[], date] = date.today,
    ):
        self.session_factory = session_factory
        self.rates = rates
        self.clock = clock

    # In-unit primitives

    def posting_target(self, session: Session, product: FinancialProduct) -> FinancialProduct:
        """Product whose balance actually moves; debit cards post to their savings account."""
        if product.type != ProductType.DEBIT_CARD:
            return product
        if product.linked_product_id is None:
            raise ValidationError("The debit card has no linked savings account.", product_id=product.id)
        return SQLModelProductRepository(session).require(product.linked_product_id, user_id=product.user_id)

    def institution_type_of(self, session: Session, product: FinancialProduct) -> Optional[InstitutionType]:
        if product.institution_id is None:
            return None
        institution = SQLModelInstitutionRepository(session).get_by_id(
            product.institution_id, user_id=product.user_id
        )
        return institution.type if institution else None

    def available_credit_in(
        self, session: Session, card: FinancialProduct, *, installments: bool = False
    ) -> Optional[Decimal]:
        """Remaining credit on ``card`` or None when no limit is configured.

        Cards with a shared limit use the holder card's limits and the
        combined balance of every same-currency card in the group.
        """
        if card.type != ProductType.CREDIT_CARD:
            return None
        products = SQLModelProductRepository(session)
        holder = card
        if card.shared_limit and card.linked_product_id is not None:
            holder = products.require(card.linked_product_id, user_id=card.user_id)
        if holder.unified_limit or not installments:
            limit = holder.limit_single_payment
        else:
            limit = holder.limit_installments
        if limit is None:
            return None
        group = {holder.id: holder, card.id: card}
        for member in products.linked_to(holder.id):
            if member.type == ProductType.CREDIT_CARD and member.shared_limit:
                group.setdefault(member.id, member)
        used = sum((p.balance for p in group.values() if p.currency == holder.currency), ZERO)
        return quantize(limit + used, holder.currency)

    def apply_balance_delta(
        self,
        session: Session,
        product: FinancialProduct,
        delta: Decimal,
        *,
        enforce_bounds: bool = True,
        installments: bool = False,
    ) -> Decimal:
        """Add ``delta`` to the product balance and return the new balance.

        With ``enforce_bounds`` a liquid product may not drop below its floor
        and a credit card may not exceed its available credit. Reversals pass
        ``enforce_bounds=False`` so undoing a posting can never fail on bounds.
        """
        delta = quantize(delta, product.currency)
        new_balance = quantize(product.balance + delta, product.currency)
        if enforce_bounds and delta < 0:
            if product.type == ProductType.CREDIT_CARD:
                available = self.available_credit_in(session, product, installments=installments)
                if available is not None and -delta > available:
                    raise CreditLimitExceeded(
                        "The purchase exceeds the card's available credit.",
                        product_id=product.id,
                        available=available,
                        amount=-delta,
                    )
            elif product.type != ProductType.LOAN:
                message = validations.balance_floor_error(
                    new_balance, product.type, self.institution_type_of(session, product)
                )
                if message is not None:
                    raise InsufficientFunds(
                        message, product_id=product.id, balance=product.balance, amount=-delta
                    )
        SQLModelProductRepository(session).update_balance(product, new_balance)
        return new_balance

    def balance_effects(self, session: Session, txn: Transaction) -> list[tuple[FinancialProduct, Decimal]]:
        """Signed deltas ``txn`` applies, already routed to posting targets."""
        products = SQLModelProductRepository(session)

        def target(product_id: Optional[int]) -> FinancialProduct:
            if product_id is None:
                raise ValidationError("Transaction is missing a product reference.", transaction_id=txn.id)
            return self.posting_target(session, products.require(product_id, user_id=txn.user_id))

        if txn.type == TransactionType.INCOME:
            return [(target(txn.to_product_id), txn.amount)]
        if txn.type == TransactionType.EXPENSE:
            return [(target(txn.from_product_id), -txn.amount)]
        return [
            (target(txn.from_product_id), -txn.amount),
            (target(txn.to_product_id), txn.destination_amount),
        ]

    def post(
        self,
        session: Session,
        txn: Transaction,
        *,
        enforce_bounds: bool = True,
        installments: bool = False,
    ) -> None:
        """Apply the balance effect of a freshly written transaction."""
        for product, delta in self.balance_effects(session, txn):
            self.apply_balance_delta(
                session, product, delta, enforce_bounds=enforce_bounds, installments=installments
            )

    def reverse(self, session: Session, txn: Transaction) -> None:
        """Undo the balance effect of ``txn``; never fails on bounds."""
        for product, delta in self.balance_effects(session, txn):
            self.apply_balance_delta(session, product, -delta, enforce_bounds=False)

    def _post_balance_change(
        self, session: Session, product: FinancialProduct, delta: Decimal, description: str
    ) -> Optional[Transaction]:
        """Record a balance correction as an INCOME or EXPENSE on the product."""
        if delta == 0:
            return None
        txn = Transaction(
            user_id=product.user_id,
            type=TransactionType.INCOME if delta > 0 else TransactionType.EXPENSE,
            amount=abs(delta),
            occurred_on=self.clock(),
            description=description,
            to_product_id=product.id if delta > 0 else None,
            from_product_id=product.id if delta < 0 else None,
        )
        SQLModelTransactionRepository(session).add(txn)
        self.post(session, txn, enforce_bounds=False)
        return txn

    def _resolve_placement(
        self,
        session: Session,
        user_id: int,
        product_type: ProductType,
        currency: Currency,
        institution_id: Optional[int],
    ) -> Optional[InstitutionType]:
        institution_type = None
        if institution_id is not None:
            institution_type = (
                SQLModelInstitutionRepository(session).require(institution_id, user_id=user_id).type
            )
        validations.validate_placement(product_type, currency, institution_type)
        return institution_type

    def _validate_shape(self, session: Session, user_id: int, product: FinancialProduct) -> None:
        """Type-specific field checks shared by create and update."""
        if product.type == ProductType.CREDIT_CARD:
            validations.validate_credit_card_fields(
                product.closing_day,
                product.due_day,
                product.limit_single_payment,
                product.limit_installments,
            )
        if product.type == ProductType.LOAN:
            validations.validate_loan_fields(product.limit)
        validations.validate_last_four_digits(product.last_four_digits)
        linked = None
        if product.linked_product_id is not None:
            if product.id is not None and product.linked_product_id == product.id:
                raise ValidationError("A product cannot be linked to itself.")
            linked = SQLModelProductRepository(session).require(product.linked_product_id, user_id=user_id)
        validations.validate_link(
            product.type,
            product.institution_id,
            product.currency,
            linked,
            shared_limit=product.shared_limit,
        )

    # Products

    @returns_result
    def create_product(self, user_id: int, data: ProductInput) -> FinancialProduct:
        """Open a product and post its opening balance as a transaction."""
        product_type = ProductType(data.type)
        currency = Currency(data.currency)
        name = (data.name or "").strip()
        if not name:
            raise ValidationError("The product needs a name.")
        opening = quantize(data.balance, currency)
        with self.session_factory() as session:
            institution_type = self._resolve_placement(
                session, user_id, product_type, currency, data.institution_id
            )
            validations.validate_balance(opening, product_type, institution_type)
            if product_type == ProductType.DEBIT_CARD and opening != 0:
                raise ValidationError("A debit card uses the balance of its linked account.")
            products = SQLModelProductRepository(session)
            if products.find_duplicate(name, currency, data.institution_id, user_id=user_id):
                raise DuplicateRecord(
                    f'A product named "{name}" in {currency.value} already exists here.',
                    name=name,
                    currency=currency.value,
                )
            product = FinancialProduct(
                user_id=user_id,
                name=name,
                type=product_type,
                currency=currency,
                balance=ZERO,
                institution_id=data.institution_id,
                closing_day=data.closing_day,
                due_day=data.due_day,
                limit=_optional_money(data.limit, currency),
                limit_single_payment=_optional_money(data.limit_single_payment, currency),
                limit_installments=_optional_money(data.limit_installments, currency),
                shared_limit=data.shared_limit,
                unified_limit=data.unified_limit,
                linked_product_id=data.linked_product_id,
                last_four_digits=data.last_four_digits,
                provider=CardProvider(data.provider) if data.provider else None,
                expiration_date=data.expiration_date,
            )
            self._validate_shape(session, user_id, product)
            products.add(product)
            self._post_balance_change(session, product, opening, OPENING_BALANCE_DESCRIPTION)
        logger.info(
            "Product created",
            extra={
                "user_id": user_id,
                "product_id": product.id,
                "product_type": product_type.value,
                "currency": currency.value,
                "opening_balance": opening,
            },
        )
        return product

    @returns_result
    def update_product(self, user_id: int, product_id: int, changes: ProductUpdate) -> FinancialProduct:
        with self.session_factory() as session:
            products = SQLModelProductRepository(session)
            product = products.require(product_id, user_id=user_id)
            if changes.type is not None and ProductType(changes.type) != product.type:
                raise ValidationError("The product type cannot be changed.", product_id=product_id)
            if changes.currency is not None and Currency(changes.currency) != product.currency:
                raise ValidationError("The product currency cannot be changed.", product_id=product_id)

            skip = {"type", "currency", "balance"}
            for field in fields(changes):
                value = getattr(changes, field.name)
                if field.name in skip or value is None:
                    continue
                if field.name in _MONEY_FIELDS:
                    value = quantize(value, product.currency)
                elif field.name == "provider":
                    value = CardProvider(value)
                elif field.name == "name":
                    value = value.strip()
                    if not value:
                        raise ValidationError("The product needs a name.")
                setattr(product, field.name, value)

            institution_type = self._resolve_placement(
                session, user_id, product.type, product.currency, product.institution_id
            )
            self._validate_shape(session, user_id, product)
            if products.find_duplicate(
                product.name, product.currency, product.institution_id, user_id=user_id, exclude_id=product.id
            ):
                raise DuplicateRecord(f'A product named "{product.name}" already exists here.')
            product.updated_at = utcnow()
            session.add(product)
            session.flush()

            if changes.balance is not None:
                target = quantize(changes.balance, product.currency)
                if product.type == ProductType.DEBIT_CARD and target != product.balance:
                    raise ValidationError("A debit card uses the balance of its linked account.")
                validations.validate_balance(target, product.type, institution_type)
                self._post_balance_change(
                    session, product, target - product.balance, MANUAL_ADJUSTMENT_DESCRIPTION
                )
        logger.info("Product updated", extra={"user_id": user_id, "product_id": product_id})
        return product

    @returns_result
    def delete_product(self, user_id: int, product_id: int) -> None:
        with self.session_factory() as session:
            products = SQLModelProductRepository(session)
            product = products.require(product_id, user_id=user_id)
            if SQLModelTransactionRepository(session).references_product(product_id):
                raise ProductInUse("The product still has transactions.", product_id=product_id)
            if products.linked_to(product_id):
                raise ProductInUse("Another product is linked to this one.", product_id=product_id)
            if SQLModelServiceRepository(session).rules_for_product(product_id):
                raise ProductInUse("A service pays through this product.", product_id=product_id)
            statements = SQLModelStatementRepository(session)
            for statement in statements.list_for_card(product_id, user_id=user_id):
                statements.delete(statement)
            products.delete(product)
        logger.info("Product deleted", extra={"user_id": user_id, "product_id": product_id})

    @returns_result
    def get_product(self, user_id: int, product_id: int) -> FinancialProduct:
        with self.session_factory() as session:
            return SQLModelProductRepository(session).require(product_id, user_id=user_id)

    @returns_result
    def list_products(
        self,
        user_id: int,
        *,
        product_type: Optional[ProductType] = None,
        institution_id: Optional[int] = None,
    ) -> list[FinancialProduct]:
        with self.session_factory() as session:
            return SQLModelProductRepository(session).list_all(
                user_id=user_id,
                product_type=ProductType(product_type) if product_type else None,
                institution_id=institution_id,
            )

    @returns_result
    def balance_in(self, user_id: int, product_id: int, currency: Currency) -> Optional[Decimal]:
        """Balance converted to ``currency``; None when no rate is stored."""
        with self.session_factory() as session:
            product = SQLModelProductRepository(session).require(product_id, user_id=user_id)
            try:
                rate = self.rates.latest_rate_in(session, product.currency, Currency(currency))
            except RateUnavailable:
                return None
            return quantize(product.balance * rate, currency)

    @returns_result
    def available_credit(self, user_id: int, product_id: int, *, installments: bool = False) -> Optional[Decimal]:
        with self.session_factory() as session:
            card = SQLModelProductRepository(session).require(product_id, user_id=user_id)
            return self.available_credit_in(session, card, installments=installments)

    # Institutions

    @returns_result
    def create_institution(
        self, user_id: int, name: str, institution_type: InstitutionType, *, share_summary: bool = False
    ) -> FinancialInstitution:
        name = (name or "").strip()
        if not name:
            raise ValidationError("The institution needs a name.")
        with self.session_factory() as session:
            repo = SQLModelInstitutionRepository(session)
            if repo.get_by_name(name, user_id=user_id):
                raise DuplicateRecord(f'An institution named "{name}" already exists.', name=name)
            institution = repo.add(
                FinancialInstitution(
                    user_id=user_id,
                    name=name,
                    type=InstitutionType(institution_type),
                    share_summary=share_summary,
                )
            )
        logger.info("Institution created", extra={"user_id": user_id, "institution_id": institution.id})
        return institution

    @returns_result
    def update_institution(
        self,
        user_id: int,
        institution_id: int,
        *,
        name: Optional[str] = None,
        institution_type: Optional[InstitutionType] = None,
        share_summary: Optional[bool] = None,
    ) -> FinancialInstitution:
        with self.session_factory() as session:
            repo = SQLModelInstitutionRepository(session)
            institution = repo.require(institution_id, user_id=user_id)
            if name is not None:
                name = name.strip()
                if not name:
                    raise ValidationError("The institution needs a name.")
                existing = repo.get_by_name(name, user_id=user_id)
                if existing is not None and existing.id != institution.id:
                    raise DuplicateRecord(f'An institution named "{name}" already exists.', name=name)
                institution.name = name
            if institution_type is not None:
                institution.type = InstitutionType(institution_type)
                # Existing products must still be allowed under the new type.
                for product in SQLModelProductRepository(session).list_all(
                    user_id=user_id, institution_id=institution.id
                ):
                    validations.validate_placement(product.type, product.currency, institution.type)
            if share_summary is not None:
                institution.share_summary = share_summary
            session.add(institution)
            session.flush()
        return institution

    @returns_result
    def delete_institution(self, user_id: int, institution_id: int) -> None:
        with self.session_factory() as session:
            repo = SQLModelInstitutionRepository(session)
            institution = repo.require(institution_id, user_id=user_id)
            if repo.has_products(institution_id):
                raise ProductInUse("The institution still has products.", institution_id=institution_id)
            repo.delete(institution)
        logger.info("Institution deleted", extra={"user_id": user_id, "institution_id": institution_id})

    @returns_result
    def list_institutions(self, user_id: int) -> list[FinancialInstitution]:
        with self.session_factory() as session:
            return SQLModelInstitutionRepository(session).list_all(user_id=user_id)


def _optional_money(value: Optional[Decimal], currency: Currency) -> Optional[Decimal]:
    return None if value is None else quantize(value, currency)

