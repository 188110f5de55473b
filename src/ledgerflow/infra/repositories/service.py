"""SQLModel implementation of services, payment rules and bills."""

from __future__ import annotations

from typing import Optional

from sqlmodel import Session, select

from ...errors import NotFoundError
from ...models.enums import BillStatus
from ...models.service import Service, ServiceBill, ServicePaymentRule


class SQLModelServiceRepository:
    """SQLModel-based recurring service repository."""

    def __init__(self, session: Session):
        self.session = session

    # Services

    def get_by_id(self, service_id: int, *, user_id: int) -> Optional[Service]:
        return self.session.exec(
            select(Service).where(Service.id == service_id, Service.user_id == user_id)
        ).first()

    def require(self, service_id: int, *, user_id: int) -> Service:
        service = self.get_by_id(service_id, user_id=user_id)
        if service is None:
            raise NotFoundError("Service not found.", service_id=service_id)
        return service

    def list_all(self, *, user_id: int, active_only: bool = False) -> list[Service]:
        statement = select(Service).where(Service.user_id == user_id)
        if active_only:
            statement = statement.where(Service.active == True)  # noqa: E712
        statement = statement.order_by(Service.name)  # type: ignore
        return list(self.session.exec(statement).all())

    # Rules

    def rules(self, service_id: int) -> list[ServicePaymentRule]:
        return list(
            self.session.exec(
                select(ServicePaymentRule)
                .where(ServicePaymentRule.service_id == service_id)
                .order_by(ServicePaymentRule.id)  # type: ignore
            ).all()
        )

    def default_rule(self, service_id: int) -> Optional[ServicePaymentRule]:
        return self.session.exec(
            select(ServicePaymentRule).where(
                ServicePaymentRule.service_id == service_id,
                ServicePaymentRule.is_default == True,  # noqa: E712
            )
        ).first()

    def rule_for(self, service_id: int, product_id: int) -> Optional[ServicePaymentRule]:
        return self.session.exec(
            select(ServicePaymentRule).where(
                ServicePaymentRule.service_id == service_id,
                ServicePaymentRule.product_id == product_id,
            )
        ).first()

    def get_rule(self, rule_id: int, *, user_id: int) -> Optional[ServicePaymentRule]:
        return self.session.exec(
            select(ServicePaymentRule)
            .join(Service, ServicePaymentRule.service_id == Service.id)
            .where(ServicePaymentRule.id == rule_id, Service.user_id == user_id)
        ).first()

    def rules_for_product(self, product_id: int) -> list[ServicePaymentRule]:
        return list(
            self.session.exec(
                select(ServicePaymentRule).where(ServicePaymentRule.product_id == product_id)
            ).all()
        )

    # Bills

    def get_bill(self, bill_id: int, *, user_id: int) -> Optional[ServiceBill]:
        return self.session.exec(
            select(ServiceBill).where(ServiceBill.id == bill_id, ServiceBill.user_id == user_id)
        ).first()

    def require_bill(self, bill_id: int, *, user_id: int) -> ServiceBill:
        bill = self.get_bill(bill_id, user_id=user_id)
        if bill is None:
            raise NotFoundError("Bill not found.", bill_id=bill_id)
        return bill

    def bill_for_period(self, service_id: int, year: int, month: int) -> Optional[ServiceBill]:
        return self.session.exec(
            select(ServiceBill).where(
                ServiceBill.service_id == service_id,
                ServiceBill.year == year,
                ServiceBill.month == month,
            )
        ).first()

    def bills_for_period(self, year: int, month: int, *, user_id: int) -> list[ServiceBill]:
        statement = (
            select(ServiceBill)
            .where(ServiceBill.user_id == user_id)
            .where(ServiceBill.year == year, ServiceBill.month == month)
            .order_by(ServiceBill.due_date, ServiceBill.id)  # type: ignore
        )
        return list(self.session.exec(statement).all())

    def pending_before(self, year: int, month: int, *, user_id: int) -> list[ServiceBill]:
        """PENDING bills of any period strictly earlier than (year, month)."""
        statement = (
            select(ServiceBill)
            .where(ServiceBill.user_id == user_id)
            .where(ServiceBill.status == BillStatus.PENDING)
            .where((ServiceBill.year < year) | ((ServiceBill.year == year) & (ServiceBill.month < month)))
            .order_by(ServiceBill.due_date, ServiceBill.id)  # type: ignore
        )
        return list(self.session.exec(statement).all())

    def bills_for_service(self, service_id: int) -> list[ServiceBill]:
        return list(
            self.session.exec(select(ServiceBill).where(ServiceBill.service_id == service_id)).all()
        )

    def bills_for_transaction(self, transaction_id: int) -> list[ServiceBill]:
        return list(
            self.session.exec(
                select(ServiceBill).where(ServiceBill.transaction_id == transaction_id)
            ).all()
        )

    def add(self, row):
        """Insert a service, rule or bill and flush to assign its id."""
        self.session.add(row)
        self.session.flush()
        return row

    def delete(self, row) -> None:
        self.session.delete(row)
        self.session.flush()
