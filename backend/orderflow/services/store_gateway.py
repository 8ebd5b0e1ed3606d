# Overview: SQLAlchemy implementation of the data store collaborators used by order submission.

"""
SQL Store Gateway

WHY: The submission flow talks to the store through a narrow contract
(collaborators.py). This module fulfils it against the local schema.

DESIGN:
- Every call commits on its own. There is no transaction spanning calls,
  so a failure in a later call leaves earlier rows in place.
- Any database error is rolled back and re-raised as CollaboratorError
  naming the operation.
- Schedule generation and installment payment processing are the only
  calls with business rules; the rest are plain inserts and lookups.

SCHEDULE GENERATION:
- principal = order total, minus the plan advance for flexible plans
- principal <= 0 -> no rows (the advance covers everything)
- otherwise `duration` rows labelled "1".."N", equal amounts in cents,
  the last row absorbing the rounding remainder
- due dates are monthly from start (start + 1 month, ...); grace is applied
  only by the overdue sweep
"""

from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from typing import Callable, Optional, Sequence

from dateutil.relativedelta import relativedelta
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import Customer, Installment, InstallmentPlan, Order, OrderItem, OrderSubmission, Payment, Product
from ..models.financing import (
    INSTALLMENT_STATUS_PAID,
    INSTALLMENT_STATUS_PENDING,
    PLAN_TYPE_FLEXIBLE,
)
from ..validation import TWOPLACES, to_decimal
from orderflow.time_utils import today as business_today, utcnow
from .collaborators import (
    CollaboratorError,
    InstallmentDraft,
    OrderHeader,
    OrderItemDraft,
    PaymentDraft,
    ProcessedPayment,
    ScheduleResult,
)
from .concurrency import lock_for_update, run_with_retry
from .linkage_service import VALID_PAYMENT_METHODS


logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")


class SqlAlchemyOrderingBackend:
    """OrderingBackend over Flask-SQLAlchemy's session. Requires an app context."""

    def __init__(self, clock: Callable[[], date] = business_today):
        self.clock = clock

    # -------------------------------------------------------------------------
    # orders
    # -------------------------------------------------------------------------

    def create_order(self, header: OrderHeader) -> Order:
        def _op():
            if not db.session.get(Customer, header.customer_id):
                raise CollaboratorError("create_order", f"customer {header.customer_id} not found")

            order = Order(
                customer_id=header.customer_id,
                total_amount=header.total_amount,
                payment_method=header.payment_method,
                status=header.status,
                order_date=header.order_date,
            )
            db.session.add(order)
            db.session.commit()
            return order

        return self._guard("create_order", _op)

    def create_order_items(self, items: Sequence[OrderItemDraft]) -> list[OrderItem]:
        def _op():
            if not items:
                raise CollaboratorError("create_order_items", "no items supplied")

            rows = []
            for item in items:
                if not db.session.get(Product, item.product_id):
                    raise CollaboratorError("create_order_items", f"product {item.product_id} not found")
                row = OrderItem(
                    order_id=item.order_id,
                    product_id=item.product_id,
                    quantity=item.quantity,
                    unit_price=item.unit_price,
                    total_price=item.total_price,
                )
                db.session.add(row)
                rows.append(row)

            db.session.commit()
            return rows

        return self._guard("create_order_items", _op)

    # -------------------------------------------------------------------------
    # installments
    # -------------------------------------------------------------------------

    def generate_installment_schedule(self, order_id: int, plan_id: int, start_date: date) -> ScheduleResult:
        def _op():
            order = db.session.get(Order, order_id)
            if not order:
                raise CollaboratorError("generate_installment_schedule", f"order {order_id} not found")

            plan = db.session.get(InstallmentPlan, plan_id)
            if not plan:
                raise CollaboratorError("generate_installment_schedule", f"plan {plan_id} not found")

            existing = db.session.query(Installment).filter(
                Installment.order_id == order_id,
                Installment.sequence >= 1,
            ).count()
            if existing:
                raise CollaboratorError(
                    "generate_installment_schedule",
                    f"order {order_id} already has an installment schedule",
                )

            principal = to_decimal(order.total_amount)
            if plan.plan_type == PLAN_TYPE_FLEXIBLE and plan.advance_payment_amount:
                principal -= to_decimal(plan.advance_payment_amount)

            if principal <= ZERO:
                return ScheduleResult(installments_created=0)

            amounts = split_evenly(principal, plan.duration)

            rows = []
            for number, amount in enumerate(amounts, start=1):
                row = Installment(
                    order_id=order_id,
                    installment_plan_id=plan_id,
                    installment_number=str(number),
                    sequence=number,
                    due_date=start_date + relativedelta(months=number),
                    amount=amount,
                    status=INSTALLMENT_STATUS_PENDING,
                )
                db.session.add(row)
                rows.append(row)

            db.session.commit()
            logger.info("Generated %d installments for order %s (plan %s)", len(rows), order_id, plan_id)
            return ScheduleResult(installments_created=len(rows), installment_ids=tuple(r.id for r in rows))

        return self._guard("generate_installment_schedule", _op)

    def create_installment(self, record: InstallmentDraft) -> Installment:
        def _op():
            if not db.session.get(Order, record.order_id):
                raise CollaboratorError("create_installment", f"order {record.order_id} not found")

            row = Installment(
                order_id=record.order_id,
                installment_plan_id=record.installment_plan_id,
                installment_number=record.installment_number,
                sequence=record.sequence,
                due_date=record.due_date,
                amount=record.amount,
                status=record.status,
                payment_date=record.payment_date,
            )
            db.session.add(row)
            db.session.commit()
            return row

        return self._guard("create_installment", _op)

    def list_installments(self, order_id: int, sequence_label: str) -> list[Installment]:
        def _op():
            return db.session.query(Installment).filter_by(
                order_id=order_id,
                installment_number=sequence_label,
            ).order_by(Installment.sequence, Installment.id).all()

        return self._guard("list_installments", _op)

    # -------------------------------------------------------------------------
    # payments
    # -------------------------------------------------------------------------

    def process_installment_payment(
        self,
        order_id: int,
        amount: Decimal,
        method: str,
        installment_id: int,
        reference_number: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> ProcessedPayment:
        """
        Record a payment against an installment and settle it when covered.

        remaining_amount is what is still owed on the installment
        (amount + late fee - payments so far), never negative.
        """
        def _op():
            if amount is None or amount <= ZERO:
                raise CollaboratorError("process_installment_payment", "amount must be positive")
            if method not in VALID_PAYMENT_METHODS:
                raise CollaboratorError("process_installment_payment", f"invalid payment method {method}")

            installment = lock_for_update(
                db.session.query(Installment).filter_by(id=installment_id)
            ).first()
            if not installment or installment.order_id != order_id:
                raise CollaboratorError(
                    "process_installment_payment",
                    f"installment {installment_id} not found for order {order_id}",
                )
            if installment.status == INSTALLMENT_STATUS_PAID:
                raise CollaboratorError("process_installment_payment", f"installment {installment_id} already paid")

            payment_day = self.clock()
            payment = Payment(
                order_id=order_id,
                installment_id=installment_id,
                amount=amount,
                payment_method=method,
                payment_date=payment_day,
                reference_number=reference_number,
                notes=notes,
            )
            db.session.add(payment)
            db.session.flush()

            payments = db.session.query(Payment).filter_by(installment_id=installment_id).all()
            paid = sum((to_decimal(p.amount) for p in payments), ZERO)

            due = to_decimal(installment.amount) + to_decimal(installment.late_fee or 0)
            remaining = max(due - paid, ZERO).quantize(TWOPLACES)

            if remaining == ZERO:
                installment.status = INSTALLMENT_STATUS_PAID
                installment.payment_date = payment_day

            db.session.commit()
            return ProcessedPayment(payment_id=payment.id, remaining_amount=remaining)

        return self._guard("process_installment_payment", lambda: run_with_retry(_op))

    def create_payment(self, record: PaymentDraft) -> Payment:
        def _op():
            if not db.session.get(Order, record.order_id):
                raise CollaboratorError("create_payment", f"order {record.order_id} not found")

            payment = Payment(
                order_id=record.order_id,
                installment_id=record.installment_id,
                amount=record.amount,
                payment_method=record.payment_method,
                payment_date=record.payment_date,
                reference_number=record.reference_number,
                notes=record.notes,
            )
            db.session.add(payment)
            db.session.commit()
            return payment

        return self._guard("create_payment", _op)

    # -------------------------------------------------------------------------
    # internals
    # -------------------------------------------------------------------------

    def _guard(self, operation: str, func):
        try:
            return func()
        except CollaboratorError:
            db.session.rollback()
            raise
        except SQLAlchemyError as exc:
            db.session.rollback()
            raise CollaboratorError(operation, str(exc)) from exc


def split_evenly(total: Decimal, periods: int) -> list[Decimal]:
    """Split `total` into `periods` cent amounts; the last one takes the remainder."""
    share = (total / periods).quantize(TWOPLACES, rounding=ROUND_HALF_UP)
    amounts = [share] * (periods - 1)
    amounts.append((total - share * (periods - 1)).quantize(TWOPLACES))
    return amounts


class SqlSubmissionJournal:
    """Persists SubmissionAttempt progress to order_submissions."""

    def record(self, attempt, request) -> None:
        row = db.session.get(OrderSubmission, attempt.journal_id) if attempt.journal_id else None
        if row is None:
            row = OrderSubmission(
                customer_id=request.customer_id,
                payment_method=request.payment_method,
                installment_plan_id=request.plan.id if request.plan else None,
            )
            db.session.add(row)

        row.stage = attempt.stage
        row.failed_stage = attempt.failed_stage
        row.error_message = attempt.error
        row.order_id = attempt.order_id
        row.warnings = list(attempt.warnings)
        row.updated_at = utcnow()

        try:
            db.session.commit()
        except SQLAlchemyError:
            db.session.rollback()
            raise
        attempt.journal_id = row.id
