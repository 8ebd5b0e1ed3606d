# Overview: Pytest coverage for first-payment linkage.

"""
First Payment Linkage Tests

Three branches:
- fixed, first installment found -> processed against installment "1"
- fixed, no first installment -> unlinked payment + warning
- flexible with advance -> paid "Advance Payment" installment + linked payment
"""

from datetime import date
from decimal import Decimal
from types import SimpleNamespace

import pytest

from orderflow.services.collaborators import ScheduleResult
from orderflow.services.linkage_service import (
    AdvancePaymentIntent,
    InstallmentPaymentIntent,
    PaymentInput,
    UnlinkedPaymentIntent,
    apply_payment_intent,
    first_payment_amount,
    resolve_first_payment,
)
from orderflow.validation import ValidationError


TODAY = date(2026, 3, 1)


def _order(backend):
    order = SimpleNamespace(id=500)
    backend.orders.append(order)
    return order


class TestFixedPlanLinkage:

    def test_links_to_first_installment(self, fake_backend, fixed_snapshot):
        order = _order(fake_backend)
        fake_backend.generate_installment_schedule(order.id, fixed_snapshot.id, TODAY)
        first = next(i for i in fake_backend.installments if i.installment_number == "1")

        intent = resolve_first_payment(
            fixed_snapshot, order, Decimal("1100.00"),
            PaymentInput(payment_method="cash"), fake_backend, today=TODAY,
        )

        assert isinstance(intent, InstallmentPaymentIntent)
        assert intent.installment_id == first.id
        assert intent.amount == Decimal("183.33")

        outcome = apply_payment_intent(intent, fake_backend)
        assert outcome.linked
        assert outcome.installment_id == first.id
        assert outcome.warnings == ()
        assert fake_backend.operations[-1] == "process_installment_payment"

    def test_missing_first_installment_falls_back_to_unlinked(self, make_backend, fixed_snapshot):
        backend = make_backend(schedule_size=0)
        order = _order(backend)

        intent = resolve_first_payment(
            fixed_snapshot, order, Decimal("1100.00"),
            PaymentInput(payment_method="cash"), backend, today=TODAY,
        )
        assert isinstance(intent, UnlinkedPaymentIntent)

        outcome = apply_payment_intent(intent, backend)
        assert not outcome.linked
        assert outcome.remaining_amount is None
        assert len(outcome.warnings) == 1
        assert backend.payments[0].installment_id is None
        assert "process_installment_payment" not in backend.operations

    def test_custom_first_label(self, fake_backend, fixed_snapshot):
        order = _order(fake_backend)
        resolve_first_payment(
            fixed_snapshot, order, Decimal("1100.00"),
            PaymentInput(payment_method="cash"), fake_backend, today=TODAY, first_label="01",
        )
        assert fake_backend.calls[-1] == ("list_installments", (order.id, "01"))

    def test_entered_amount_overrides_suggestion(self, fake_backend, fixed_snapshot):
        order = _order(fake_backend)
        fake_backend.generate_installment_schedule(order.id, fixed_snapshot.id, TODAY)
        intent = resolve_first_payment(
            fixed_snapshot, order, Decimal("1100.00"),
            PaymentInput(payment_method="bank_transfer", amount=Decimal("200")), fake_backend, today=TODAY,
        )
        assert intent.amount == Decimal("200.00")
        assert intent.payment_method == "bank_transfer"


class TestFlexiblePlanLinkage:

    def test_advance_installment_created_paid(self, fake_backend, flex_snapshot):
        order = _order(fake_backend)

        intent = resolve_first_payment(
            flex_snapshot, order, Decimal("2075.00"),
            PaymentInput(payment_method="cash", reference_number="RCPT-1"), fake_backend, today=TODAY,
        )
        assert isinstance(intent, AdvancePaymentIntent)
        assert intent.installment.installment_number == "Advance Payment"
        assert intent.installment.status == "paid"
        assert intent.installment.sequence == 0
        assert intent.installment.amount == Decimal("500.00")
        assert intent.installment.due_date == TODAY
        # resolving a flexible plan does not read the store
        assert fake_backend.calls == []

        outcome = apply_payment_intent(intent, fake_backend)
        advance = fake_backend.installments[-1]
        assert fake_backend.operations == ["create_installment", "create_payment"]
        assert outcome.installment_id == advance.id
        assert fake_backend.payments[-1].installment_id == advance.id
        assert fake_backend.payments[-1].reference_number == "RCPT-1"
        assert outcome.remaining_amount == Decimal("0.00")

    def test_custom_advance_label(self, fake_backend, flex_snapshot):
        order = _order(fake_backend)
        intent = resolve_first_payment(
            flex_snapshot, order, Decimal("2075.00"),
            PaymentInput(payment_method="cash"), fake_backend, today=TODAY, advance_label="Deposit",
        )
        assert intent.installment.installment_number == "Deposit"


class TestFirstPaymentAmount:

    def test_non_positive_amount_rejected(self, fixed_snapshot):
        with pytest.raises(ValidationError):
            first_payment_amount(fixed_snapshot, Decimal("1100"), PaymentInput(payment_method="cash", amount=Decimal("0")))

    def test_amount_rounded_to_cents(self, fixed_snapshot):
        amount = first_payment_amount(
            fixed_snapshot, Decimal("1100"), PaymentInput(payment_method="cash", amount=Decimal("10.005"))
        )
        assert amount == Decimal("10.01")


def test_unknown_intent_rejected(fake_backend):
    with pytest.raises(TypeError):
        apply_payment_intent(ScheduleResult(installments_created=0), fake_backend)
