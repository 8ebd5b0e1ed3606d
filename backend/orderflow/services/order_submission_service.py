# Overview: Drives the multi-step creation of an order, its lines, its schedule and its first payment.

"""
Order Submission Orchestrator

================================================================================
PURPOSE: Turn a confirmed order draft into stored records, one stage at a time
================================================================================

STATE MACHINE (one submission attempt):

    IDLE -> ORDER_CREATED -> ITEMS_PERSISTED -> SCHEDULE_GENERATED
         -> PAYMENT_CAPTURED -> DONE

    FAILED is reachable from every non-terminal stage.

    Orders not paid in installments go ITEMS_PERSISTED -> DONE.

NON-ATOMIC: every stage is an independent write to the data store. A
failure does NOT undo earlier stages:

    failed at ORDER_CREATED       nothing was written
    failed at ITEMS_PERSISTED     order exists with no lines
    failed at SCHEDULE_GENERATED  order + lines exist, no installments
    failed at PAYMENT_CAPTURED    fully scheduled order, first payment missing

StageFailure carries the failing stage, the completed stages and the
order id so the caller can retry the whole flow (which always creates a
new order) or reconcile by hand. The attempt is journaled after every
transition.

ORDERING RULES:
- stages run strictly one after another; each needs the ids of the last
- the schedule is generated at most once per order, only after lines exist
- no payment call is issued before the schedule call has returned
================================================================================
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from datetime import date
from decimal import Decimal
from typing import Callable, Optional, Protocol, Sequence

from ..models.orders import ORDER_STATUS_PENDING, VALID_ORDER_STATUSES
from ..validation import ValidationError, money
from orderflow.time_utils import today as business_today
from .collaborators import OrderHeader, OrderingBackend, OrderItemDraft, ScheduleResult
from .linkage_service import (
    ADVANCE_INSTALLMENT_LABEL,
    FIRST_INSTALLMENT_LABEL,
    VALID_PAYMENT_METHODS,
    FirstPaymentOutcome,
    PaymentInput,
    apply_payment_intent,
    first_payment_amount,
    resolve_first_payment,
)
from .pricing_service import (
    PAYMENT_METHOD_INSTALLMENT,
    VALID_ORDER_PAYMENT_METHODS,
    FlexibleStrategy,
    PlanSnapshot,
    PriceBreakdown,
    price_breakdown,
)


logger = logging.getLogger(__name__)


# =============================================================================
# STAGES (CONSTANTS)
# =============================================================================

STAGE_IDLE = "IDLE"
STAGE_ORDER_CREATED = "ORDER_CREATED"
STAGE_ITEMS_PERSISTED = "ITEMS_PERSISTED"
STAGE_SCHEDULE_GENERATED = "SCHEDULE_GENERATED"
STAGE_PAYMENT_CAPTURED = "PAYMENT_CAPTURED"
STAGE_DONE = "DONE"
STAGE_FAILED = "FAILED"

TERMINAL_STAGES = {STAGE_DONE, STAGE_FAILED}

# Forward-only; FAILED is entered through SubmissionAttempt.fail()
NEXT_STAGES = {
    STAGE_IDLE: {STAGE_ORDER_CREATED},
    STAGE_ORDER_CREATED: {STAGE_ITEMS_PERSISTED},
    STAGE_ITEMS_PERSISTED: {STAGE_SCHEDULE_GENERATED, STAGE_DONE},
    STAGE_SCHEDULE_GENERATED: {STAGE_PAYMENT_CAPTURED},
    STAGE_PAYMENT_CAPTURED: {STAGE_DONE},
}


def can_transition(from_stage: str, to_stage: str) -> bool:
    return to_stage in NEXT_STAGES.get(from_stage, set())


class SubmissionStateError(RuntimeError):
    """A stage was attempted out of order, e.g. a second schedule run on one attempt."""


class StageFailure(Exception):
    """A data store call failed mid-submission. Earlier stages are NOT rolled back."""
    def __init__(
        self,
        stage: str,
        completed_stages: Sequence[str],
        order_id: Optional[int],
        cause: BaseException,
        submission_id: Optional[int] = None,
    ):
        self.stage = stage
        self.completed_stages = list(completed_stages)
        self.order_id = order_id
        self.cause = cause
        self.submission_id = submission_id
        super().__init__(self._describe())

    def _describe(self) -> str:
        message = f"Order submission failed at {self.stage}: {self.cause}"
        if self.order_id is not None:
            done = ", ".join(self.completed_stages)
            message += f" (completed: {done}; order {self.order_id} left for manual reconciliation)"
        return message

    def to_dict(self) -> dict:
        return {
            "error": str(self),
            "failed_stage": self.stage,
            "completed_stages": self.completed_stages,
            "order_id": self.order_id,
            "submission_id": self.submission_id,
        }


# =============================================================================
# REQUEST / ATTEMPT / RESULT
# =============================================================================

@dataclass(frozen=True)
class LineInput:
    product_id: int
    quantity: int
    unit_price: Decimal

    @property
    def total_price(self) -> Decimal:
        return self.unit_price * self.quantity


@dataclass(frozen=True)
class SubmissionRequest:
    customer_id: Optional[int]
    payment_method: Optional[str]
    lines: Sequence[LineInput]
    order_date: date
    status: str = ORDER_STATUS_PENDING
    plan: Optional[PlanSnapshot] = None
    first_payment: Optional[PaymentInput] = None

    @property
    def base_total(self) -> Decimal:
        return sum((line.total_price for line in self.lines), Decimal("0"))

    @property
    def is_financed(self) -> bool:
        return self.payment_method == PAYMENT_METHOD_INSTALLMENT

    def normalized(self) -> "SubmissionRequest":
        """Drop plan and first payment when the order is not paid in installments."""
        if self.is_financed:
            return self
        return replace(self, plan=None, first_payment=None)


@dataclass
class SubmissionAttempt:
    """In-memory progress of one run; mirrored to the journal after each transition."""
    stage: str = STAGE_IDLE
    failed_stage: Optional[str] = None
    error: Optional[str] = None
    order_id: Optional[int] = None
    completed_stages: list = field(default_factory=list)
    warnings: list = field(default_factory=list)
    journal_id: Optional[int] = None

    @property
    def cancellable(self) -> bool:
        # Once the order row exists there is no compensation path
        return self.stage == STAGE_IDLE

    def check_next(self, stage: str) -> None:
        if not can_transition(self.stage, stage):
            raise SubmissionStateError(f"Submission is at {self.stage}, cannot move to {stage}")

    def advance(self, stage: str) -> None:
        self.check_next(stage)
        self.stage = stage
        self.completed_stages.append(stage)

    def fail(self, stage: str, error: BaseException) -> None:
        self.stage = STAGE_FAILED
        self.failed_stage = stage
        self.error = str(error)


class SubmissionJournal(Protocol):
    def record(self, attempt: SubmissionAttempt, request: SubmissionRequest) -> None:
        ...


class NullJournal:
    def record(self, attempt: SubmissionAttempt, request: SubmissionRequest) -> None:
        return None


@dataclass(frozen=True)
class SubmissionResult:
    order: object
    items: list
    breakdown: PriceBreakdown
    attempt: SubmissionAttempt
    schedule: Optional[ScheduleResult] = None
    first_payment: Optional[FirstPaymentOutcome] = None

    @property
    def warnings(self) -> list:
        return list(self.attempt.warnings)


# =============================================================================
# PRE-FLIGHT VALIDATION
# =============================================================================

def validate_submission(request: SubmissionRequest) -> PriceBreakdown:
    """
    Local checks run before any store call. Raises ValidationError.

    Returns the price breakdown the order will be written with.
    """
    if not request.customer_id:
        raise ValidationError("Customer is required")

    if request.payment_method not in VALID_ORDER_PAYMENT_METHODS:
        raise ValidationError(
            f"Invalid payment method: {request.payment_method}. Must be one of {VALID_ORDER_PAYMENT_METHODS}"
        )

    if request.status not in VALID_ORDER_STATUSES:
        raise ValidationError(f"Invalid order status: {request.status}. Must be one of {VALID_ORDER_STATUSES}")

    if not request.lines:
        raise ValidationError("Order must have at least one item")

    for idx, line in enumerate(request.lines):
        if not line.product_id:
            raise ValidationError(f"Item {idx + 1}: product is required")
        if line.quantity < 1:
            raise ValidationError(f"Item {idx + 1}: quantity must be at least 1")
        if line.unit_price < 0:
            raise ValidationError(f"Item {idx + 1}: unit price cannot be negative")

    if request.is_financed:
        if request.plan is None:
            raise ValidationError("An installment plan is required for installment orders")
        if request.first_payment is None:
            raise ValidationError("A first payment is required for installment orders")
        if request.first_payment.payment_method not in VALID_PAYMENT_METHODS:
            raise ValidationError(
                f"Invalid payment method: {request.first_payment.payment_method}. "
                f"Must be one of {VALID_PAYMENT_METHODS}"
            )
        strategy = request.plan.strategy
        if isinstance(strategy, FlexibleStrategy) and strategy.advance_amount > request.base_total:
            raise ValidationError("Advance payment exceeds the order amount")

    breakdown = price_breakdown(request.base_total, request.plan, request.payment_method)
    if breakdown.total <= 0:
        raise ValidationError("Order total must be positive")

    if request.is_financed:
        first_payment_amount(request.plan, breakdown.total, request.first_payment)

    return breakdown


# =============================================================================
# ORCHESTRATOR
# =============================================================================

class OrderSubmissionOrchestrator:
    """
    Executes one submission against an OrderingBackend.

    The instance holds no per-submission state; every submit() call gets
    its own SubmissionAttempt and creates a new order.
    """

    def __init__(
        self,
        backend: OrderingBackend,
        journal: Optional[SubmissionJournal] = None,
        *,
        first_label: str = FIRST_INSTALLMENT_LABEL,
        advance_label: str = ADVANCE_INSTALLMENT_LABEL,
        clock: Callable[[], date] = business_today,
    ):
        self.backend = backend
        self.journal = journal or NullJournal()
        self.first_label = first_label
        self.advance_label = advance_label
        self.clock = clock

    def submit(self, request: SubmissionRequest) -> SubmissionResult:
        request = request.normalized()
        breakdown = validate_submission(request)
        total = money(breakdown.total, "total_amount")

        attempt = SubmissionAttempt()
        self._journal(attempt, request)

        # IDLE -> ORDER_CREATED
        header = OrderHeader(
            customer_id=request.customer_id,
            total_amount=total,
            payment_method=request.payment_method,
            status=request.status,
            order_date=request.order_date,
        )
        order = self._call(attempt, request, STAGE_ORDER_CREATED, lambda: self.backend.create_order(header))
        attempt.order_id = order.id
        self._transition(attempt, request, STAGE_ORDER_CREATED)

        # ORDER_CREATED -> ITEMS_PERSISTED
        drafts = [
            OrderItemDraft(
                order_id=order.id,
                product_id=line.product_id,
                quantity=line.quantity,
                unit_price=money(line.unit_price, "unit_price"),
            )
            for line in request.lines
        ]
        items = self._call(
            attempt, request, STAGE_ITEMS_PERSISTED, lambda: self.backend.create_order_items(drafts)
        )
        self._transition(attempt, request, STAGE_ITEMS_PERSISTED)

        if not request.is_financed:
            self._transition(attempt, request, STAGE_DONE)
            return SubmissionResult(order=order, items=list(items), breakdown=breakdown, attempt=attempt)

        # ITEMS_PERSISTED -> SCHEDULE_GENERATED
        schedule = self._call(
            attempt,
            request,
            STAGE_SCHEDULE_GENERATED,
            lambda: self.backend.generate_installment_schedule(order.id, request.plan.id, request.order_date),
        )
        if schedule.installments_created == 0:
            logger.info("No installments generated for order %s; advance covers the balance", order.id)
        self._transition(attempt, request, STAGE_SCHEDULE_GENERATED)

        # SCHEDULE_GENERATED -> PAYMENT_CAPTURED
        def _capture() -> FirstPaymentOutcome:
            intent = resolve_first_payment(
                request.plan,
                order,
                total,
                request.first_payment,
                self.backend,
                today=self.clock(),
                first_label=self.first_label,
                advance_label=self.advance_label,
            )
            return apply_payment_intent(intent, self.backend)

        outcome = self._call(attempt, request, STAGE_PAYMENT_CAPTURED, _capture)
        attempt.warnings.extend(outcome.warnings)
        self._transition(attempt, request, STAGE_PAYMENT_CAPTURED)

        self._transition(attempt, request, STAGE_DONE)
        return SubmissionResult(
            order=order,
            items=list(items),
            breakdown=breakdown,
            attempt=attempt,
            schedule=schedule,
            first_payment=outcome,
        )

    # -------------------------------------------------------------------------
    # internals
    # -------------------------------------------------------------------------

    def _call(self, attempt: SubmissionAttempt, request: SubmissionRequest, stage: str, operation):
        attempt.check_next(stage)
        try:
            return operation()
        except Exception as exc:
            attempt.fail(stage, exc)
            logger.error(
                "Order submission failed at %s (order_id=%s, completed=%s): %s",
                stage,
                attempt.order_id,
                attempt.completed_stages,
                exc,
            )
            self._journal(attempt, request)
            raise StageFailure(
                stage,
                attempt.completed_stages,
                attempt.order_id,
                exc,
                submission_id=attempt.journal_id,
            ) from exc

    def _transition(self, attempt: SubmissionAttempt, request: SubmissionRequest, stage: str) -> None:
        attempt.advance(stage)
        logger.info("Order submission reached %s (order_id=%s)", stage, attempt.order_id)
        self._journal(attempt, request)

    def _journal(self, attempt: SubmissionAttempt, request: SubmissionRequest) -> None:
        # Journal write failures never abort the submission
        try:
            self.journal.record(attempt, request)
        except Exception:
            logger.exception("Failed to journal submission at %s (order_id=%s)", attempt.stage, attempt.order_id)
