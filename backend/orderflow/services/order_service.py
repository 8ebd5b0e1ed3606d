# Overview: Service-layer operations for orders; drafts, quotes, submission wiring and lock guards.

"""
Order Service

- OrderDraft: the editable state of a new order before it is confirmed.
  Switching the payment method away from "installment" drops the plan.
- quote(): price breakdown + suggested first payment, no side effects.
- submit_order(): builds a SubmissionRequest and runs the orchestrator
  against the SQL store, journaling every stage.
- update_order() / delete_order(): post-creation guards. Only `status`
  may change; shipped/delivered orders cannot be deleted.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from datetime import date
from decimal import Decimal
from typing import Iterable, Optional, Sequence

from flask import current_app

from ..extensions import db
from ..models import Customer, Installment, Order, OrderItem, OrderSubmission, Payment, Product
from ..models.orders import LOCKED_ORDER_STATUSES, ORDER_STATUS_PENDING, VALID_ORDER_STATUSES
from ..validation import (
    LockViolationError,
    NotFoundError,
    ValidationError,
    money,
    optional_date,
    optional_int,
    optional_money,
    optional_str,
    to_int,
)
from orderflow.time_utils import today as business_today
from .linkage_service import PaymentInput, first_payment_amount
from .order_submission_service import (
    LineInput,
    OrderSubmissionOrchestrator,
    SubmissionRequest,
    SubmissionResult,
)
from .plan_service import load_plan_snapshots
from .pricing_service import (
    PAYMENT_METHOD_INSTALLMENT,
    PlanSnapshot,
    PriceBreakdown,
    find_plan,
    price_breakdown,
)
from .store_gateway import SqlAlchemyOrderingBackend, SqlSubmissionJournal


logger = logging.getLogger(__name__)


# =============================================================================
# DRAFTS & QUOTES
# =============================================================================

def line_from_product(product, quantity: int) -> LineInput:
    """Order line with the product's current price snapshotted."""
    if quantity < 1:
        raise ValidationError("quantity must be at least 1")
    return LineInput(product_id=product.id, quantity=quantity, unit_price=money(product.price, "price"))


@dataclass(frozen=True)
class OrderDraft:
    customer_id: Optional[int] = None
    payment_method: Optional[str] = None
    installment_plan_id: Optional[int] = None
    lines: Sequence[LineInput] = field(default_factory=tuple)
    status: str = ORDER_STATUS_PENDING
    order_date: date = field(default_factory=business_today)

    @property
    def base_total(self) -> Decimal:
        return sum((line.total_price for line in self.lines), Decimal("0"))

    def with_payment_method(self, payment_method: str) -> "OrderDraft":
        if payment_method != PAYMENT_METHOD_INSTALLMENT:
            return replace(self, payment_method=payment_method, installment_plan_id=None)
        return replace(self, payment_method=payment_method)

    def with_plan(self, plan_id: Optional[int]) -> "OrderDraft":
        return replace(self, installment_plan_id=plan_id)

    def with_lines(self, lines: Iterable[LineInput]) -> "OrderDraft":
        return replace(self, lines=tuple(lines))

    def selected_plan(self, plans: Iterable[PlanSnapshot]) -> Optional[PlanSnapshot]:
        if self.payment_method != PAYMENT_METHOD_INSTALLMENT or self.installment_plan_id is None:
            return None
        return find_plan(plans, self.installment_plan_id)

    def quote(self, plans: Iterable[PlanSnapshot]) -> PriceBreakdown:
        return price_breakdown(self.base_total, self.selected_plan(plans), self.payment_method)


@dataclass(frozen=True)
class Quote:
    breakdown: PriceBreakdown
    plan: Optional[PlanSnapshot]
    suggested_first_payment: Optional[Decimal]

    def to_dict(self) -> dict:
        return {
            **self.breakdown.to_dict(),
            "installment_plan_id": self.plan.id if self.plan else None,
            "suggested_first_payment": (
                str(self.suggested_first_payment) if self.suggested_first_payment is not None else None
            ),
        }


def quote(draft: OrderDraft, plans: Optional[Sequence[PlanSnapshot]] = None) -> Quote:
    plans = load_plan_snapshots() if plans is None else plans
    plan = draft.selected_plan(plans)
    if draft.payment_method == PAYMENT_METHOD_INSTALLMENT and draft.installment_plan_id is not None and plan is None:
        raise NotFoundError(f"Installment plan {draft.installment_plan_id} not found")

    breakdown = draft.quote(plans)
    suggested = None
    if plan is not None and breakdown.total > 0:
        suggested = first_payment_amount(plan, breakdown.total, PaymentInput(payment_method="cash"))
    return Quote(breakdown=breakdown, plan=plan, suggested_first_payment=suggested)


# =============================================================================
# PAYLOAD PARSING
# =============================================================================

def _parse_lines(raw_items) -> list[LineInput]:
    """
    Lines from request JSON. Unit prices come from the catalog unless the
    payload provides one explicitly.
    """
    if not isinstance(raw_items, list):
        raise ValidationError("items must be a list")

    lines = []
    for idx, raw in enumerate(raw_items):
        if not isinstance(raw, dict):
            raise ValidationError(f"Item {idx + 1}: must be an object")
        product_id = to_int(raw.get("product_id"), f"items[{idx}].product_id")
        quantity = to_int(raw.get("quantity", 1), f"items[{idx}].quantity")
        product = db.session.get(Product, product_id)
        if not product:
            raise ValidationError(f"Item {idx + 1}: product {product_id} not found")
        unit_price = optional_money(raw.get("unit_price"), f"items[{idx}].unit_price")
        if unit_price is None:
            lines.append(line_from_product(product, quantity))
        else:
            lines.append(LineInput(product_id=product_id, quantity=quantity, unit_price=unit_price))
    return lines


def draft_from_payload(data: dict) -> OrderDraft:
    draft = OrderDraft(
        customer_id=optional_int(data.get("customer_id"), "customer_id"),
        status=data.get("status") or ORDER_STATUS_PENDING,
        order_date=optional_date(data.get("order_date"), "order_date") or business_today(),
        lines=tuple(_parse_lines(data.get("items") or [])),
    )
    draft = draft.with_plan(optional_int(data.get("installment_plan_id"), "installment_plan_id"))
    return draft.with_payment_method(data.get("payment_method"))


def payment_input_from_payload(data: Optional[dict]) -> Optional[PaymentInput]:
    if not data:
        return None
    if not isinstance(data, dict):
        raise ValidationError("first_payment must be an object")
    return PaymentInput(
        payment_method=data.get("payment_method"),
        amount=optional_money(data.get("amount"), "first_payment.amount"),
        payment_date=optional_date(data.get("payment_date"), "first_payment.payment_date"),
        reference_number=optional_str(data.get("reference_number"), "reference_number", max_length=128),
        notes=optional_str(data.get("notes"), "notes", max_length=2000),
    )


# =============================================================================
# SUBMISSION
# =============================================================================

def build_submission(
    draft: OrderDraft,
    first_payment: Optional[PaymentInput],
    plans: Optional[Sequence[PlanSnapshot]] = None,
) -> SubmissionRequest:
    """Resolve the draft against a plan snapshot list. Raises ValidationError."""
    if draft.customer_id is None or not db.session.get(Customer, draft.customer_id):
        raise ValidationError("Customer is required")

    plan = None
    if draft.payment_method == PAYMENT_METHOD_INSTALLMENT:
        if draft.installment_plan_id is None:
            raise ValidationError("An installment plan is required for installment orders")
        plans = load_plan_snapshots() if plans is None else plans
        plan = draft.selected_plan(plans)
        if plan is None:
            raise ValidationError(f"Installment plan {draft.installment_plan_id} not found")

    return SubmissionRequest(
        customer_id=draft.customer_id,
        payment_method=draft.payment_method,
        lines=tuple(draft.lines),
        order_date=draft.order_date,
        status=draft.status,
        plan=plan,
        first_payment=first_payment,
    )


def make_orchestrator() -> OrderSubmissionOrchestrator:
    config = current_app.config
    return OrderSubmissionOrchestrator(
        SqlAlchemyOrderingBackend(),
        SqlSubmissionJournal(),
        first_label=config.get("FIRST_INSTALLMENT_LABEL", "1"),
        advance_label=config.get("ADVANCE_INSTALLMENT_LABEL", "Advance Payment"),
    )


def submit_order(request: SubmissionRequest) -> SubmissionResult:
    """
    Create order, lines, schedule and first payment.

    Raises:
        ValidationError: pre-flight problem, nothing written
        StageFailure: a store call failed, earlier stages are kept
    """
    return make_orchestrator().submit(request)


def get_submission(submission_id: int) -> OrderSubmission:
    submission = db.session.get(OrderSubmission, submission_id)
    if not submission:
        raise NotFoundError(f"Submission {submission_id} not found")
    return submission


# =============================================================================
# QUERIES
# =============================================================================

def get_order(order_id: int) -> Order:
    order = db.session.get(Order, order_id)
    if not order:
        raise NotFoundError(f"Order {order_id} not found")
    return order


def get_order_detail(order_id: int) -> dict:
    order = get_order(order_id)
    items = db.session.query(OrderItem).filter_by(order_id=order_id).order_by(OrderItem.id).all()
    installments = db.session.query(Installment).filter_by(order_id=order_id).order_by(
        Installment.sequence, Installment.id
    ).all()
    payments = db.session.query(Payment).filter_by(order_id=order_id).order_by(Payment.id).all()
    return {
        "order": order.to_dict(),
        "items": [i.to_dict() for i in items],
        "installments": [i.to_dict() for i in installments],
        "payments": [p.to_dict() for p in payments],
    }


# =============================================================================
# POST-CREATION EDITS
# =============================================================================

def is_order_locked(order: Order) -> bool:
    return order.status in LOCKED_ORDER_STATUSES


def update_order(order_id: int, changes: dict) -> Order:
    """
    Apply an edit to an existing order.

    Only `status` can change: lines, installments and payments are all
    anchored to the original total.
    """
    if not changes:
        raise ValidationError("No changes supplied")

    frozen = sorted(set(changes) - {"status"})
    if frozen:
        raise LockViolationError(f"Only status can be changed after creation (rejected: {', '.join(frozen)})")

    status = changes["status"]
    if status not in VALID_ORDER_STATUSES:
        raise ValidationError(f"Invalid order status: {status}. Must be one of {VALID_ORDER_STATUSES}")

    order = get_order(order_id)
    if order.status != status:
        logger.info("Order %s status %s -> %s", order_id, order.status, status)
        order.status = status
        db.session.commit()
    return order


def delete_order(order_id: int) -> None:
    """
    Delete an order with its lines, installments and payments.

    Shipped and delivered orders are locked.
    """
    order = get_order(order_id)
    if is_order_locked(order):
        raise LockViolationError(f"Order {order_id} is {order.status} and cannot be deleted")

    db.session.query(Payment).filter_by(order_id=order_id).delete()
    db.session.query(Installment).filter_by(order_id=order_id).delete()
    db.session.query(OrderItem).filter_by(order_id=order_id).delete()
    db.session.query(OrderSubmission).filter_by(order_id=order_id).update({"order_id": None})
    db.session.delete(order)
    db.session.commit()
    logger.info("Deleted order %s", order_id)
