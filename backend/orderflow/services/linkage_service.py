# Overview: Decides which installment the first payment of a financed order binds to.

"""
First Payment Linkage

WHY: A financed order collects one payment at confirmation. Where that
payment lands depends on the plan:

- fixed: the payment settles the first generated installment (label "1").
  It goes through process_installment_payment so the store can decrement
  and close that installment. If no first installment exists the payment
  is still recorded, unlinked, and a warning is surfaced.
- flexible (with advance): the advance is not part of the generated
  schedule. A separate "Advance Payment" installment is created already
  paid, and the payment is recorded against it.

resolve_first_payment() only reads from the store. apply_payment_intent()
performs the writes. Neither is idempotent across repeated calls.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Optional, Union

from ..models.financing import ADVANCE_SEQUENCE, INSTALLMENT_STATUS_PAID
from ..validation import ValidationError, money
from orderflow.time_utils import today as business_today
from .collaborators import InstallmentDraft, OrderingBackend, PaymentDraft
from .pricing_service import FixedStrategy, FlexibleStrategy, PlanSnapshot, suggested_first_payment


logger = logging.getLogger(__name__)

FIRST_INSTALLMENT_LABEL = "1"
ADVANCE_INSTALLMENT_LABEL = "Advance Payment"

# Tender types accepted for payments (orders additionally allow "installment")
VALID_PAYMENT_METHODS = [
    "cash",
    "credit_card",
    "debit_card",
    "bank_transfer",
    "check",
]


@dataclass(frozen=True)
class PaymentInput:
    """What the operator entered for the first payment."""
    payment_method: str
    amount: Optional[Decimal] = None  # None -> suggested amount for the plan
    payment_date: Optional[date] = None
    reference_number: Optional[str] = None
    notes: Optional[str] = None


# =============================================================================
# INTENTS
# =============================================================================

@dataclass(frozen=True)
class InstallmentPaymentIntent:
    """Settle an existing installment via the store's payment procedure."""
    order_id: int
    installment_id: int
    amount: Decimal
    payment_method: str
    reference_number: Optional[str] = None
    notes: Optional[str] = None


@dataclass(frozen=True)
class AdvancePaymentIntent:
    """Create a paid advance installment, then a payment pointing at it."""
    installment: InstallmentDraft
    payment: PaymentDraft


@dataclass(frozen=True)
class UnlinkedPaymentIntent:
    """Record the payment without an installment reference."""
    payment: PaymentDraft
    warning: str


PaymentIntent = Union[InstallmentPaymentIntent, AdvancePaymentIntent, UnlinkedPaymentIntent]


@dataclass(frozen=True)
class FirstPaymentOutcome:
    payment_id: int
    installment_id: Optional[int]
    amount: Decimal
    remaining_amount: Optional[Decimal]
    warnings: tuple = ()

    @property
    def linked(self) -> bool:
        return self.installment_id is not None

    def to_dict(self) -> dict:
        return {
            "payment_id": self.payment_id,
            "installment_id": self.installment_id,
            "amount": str(self.amount),
            "remaining_amount": str(self.remaining_amount) if self.remaining_amount is not None else None,
            "linked": self.linked,
            "warnings": list(self.warnings),
        }


def first_payment_amount(plan: PlanSnapshot, computed_total, payment_input: PaymentInput) -> Decimal:
    """Entered amount, or the plan's suggested amount, rounded to cents."""
    if payment_input.amount is not None:
        amount = money(payment_input.amount, "payment amount")
    else:
        amount = money(suggested_first_payment(plan, computed_total), "payment amount")
    if amount <= 0:
        raise ValidationError("Payment amount must be positive")
    return amount


def resolve_first_payment(
    plan: PlanSnapshot,
    order,
    computed_total,
    payment_input: PaymentInput,
    backend: OrderingBackend,
    *,
    today: Optional[date] = None,
    first_label: str = FIRST_INSTALLMENT_LABEL,
    advance_label: str = ADVANCE_INSTALLMENT_LABEL,
) -> PaymentIntent:
    """
    Build the payment intent for the first payment of a freshly created order.

    Args:
        plan: Snapshot of the plan the order was priced with
        order: The created order record (needs `id`)
        computed_total: Financed total written to the order
        payment_input: Operator-entered payment details
        backend: Store used to look up the first installment (fixed plans)

    Returns:
        One of InstallmentPaymentIntent, AdvancePaymentIntent,
        UnlinkedPaymentIntent
    """
    current_day = today or business_today()
    amount = first_payment_amount(plan, computed_total, payment_input)
    payment_date = payment_input.payment_date or current_day

    strategy = plan.strategy
    if isinstance(strategy, FlexibleStrategy):
        installment = InstallmentDraft(
            order_id=order.id,
            installment_plan_id=plan.id,
            installment_number=advance_label,
            sequence=ADVANCE_SEQUENCE,
            due_date=current_day,
            amount=amount,
            status=INSTALLMENT_STATUS_PAID,
            payment_date=payment_date,
        )
        payment = PaymentDraft(
            order_id=order.id,
            amount=amount,
            payment_method=payment_input.payment_method,
            payment_date=payment_date,
            reference_number=payment_input.reference_number,
            notes=payment_input.notes,
        )
        return AdvancePaymentIntent(
            installment=installment,
            payment=payment,
        )

    if isinstance(strategy, FixedStrategy):
        installments = backend.list_installments(order.id, first_label)
        if installments:
            return InstallmentPaymentIntent(
                order_id=order.id,
                installment_id=installments[0].id,
                amount=amount,
                payment_method=payment_input.payment_method,
                reference_number=payment_input.reference_number,
                notes=payment_input.notes,
            )

        warning = f"No first installment found for order {order.id}; payment recorded without installment link"
        logger.warning(warning)
        return UnlinkedPaymentIntent(
            payment=PaymentDraft(
                order_id=order.id,
                amount=amount,
                payment_method=payment_input.payment_method,
                payment_date=payment_date,
                reference_number=payment_input.reference_number,
                notes=payment_input.notes,
            ),
            warning=warning,
        )

    raise TypeError(f"Unhandled plan strategy: {strategy!r}")


def apply_payment_intent(intent: PaymentIntent, backend: OrderingBackend) -> FirstPaymentOutcome:
    """Issue the store writes for a resolved intent. Exactly one payment is created."""
    if isinstance(intent, InstallmentPaymentIntent):
        result = backend.process_installment_payment(
            intent.order_id,
            intent.amount,
            intent.payment_method,
            intent.installment_id,
            reference_number=intent.reference_number,
            notes=intent.notes,
        )
        return FirstPaymentOutcome(
            payment_id=result.payment_id,
            installment_id=intent.installment_id,
            amount=intent.amount,
            remaining_amount=result.remaining_amount,
        )

    if isinstance(intent, AdvancePaymentIntent):
        installment = backend.create_installment(intent.installment)
        payment = backend.create_payment(
            PaymentDraft(
                order_id=intent.payment.order_id,
                installment_id=installment.id,
                amount=intent.payment.amount,
                payment_method=intent.payment.payment_method,
                payment_date=intent.payment.payment_date,
                reference_number=intent.payment.reference_number,
                notes=intent.payment.notes,
            )
        )
        return FirstPaymentOutcome(
            payment_id=payment.id,
            installment_id=installment.id,
            amount=intent.payment.amount,
            remaining_amount=Decimal("0.00"),
        )

    if isinstance(intent, UnlinkedPaymentIntent):
        payment = backend.create_payment(intent.payment)
        return FirstPaymentOutcome(
            payment_id=payment.id,
            installment_id=None,
            amount=intent.payment.amount,
            remaining_amount=None,
            warnings=(intent.warning,),
        )

    raise TypeError(f"Unhandled payment intent: {intent!r}")
