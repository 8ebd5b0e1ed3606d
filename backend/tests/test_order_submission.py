# Overview: Pytest coverage for the order submission state machine.

"""
Order Submission Tests

- stage ordering for cash, fixed and flexible orders
- pre-flight validation issues no store calls
- each failing stage leaves earlier writes in place and reports them
- a retry after failure creates a new order
"""

from datetime import date
from decimal import Decimal

import pytest

from orderflow.services.collaborators import CollaboratorError
from orderflow.services.linkage_service import PaymentInput
from orderflow.services.order_submission_service import (
    STAGE_DONE,
    STAGE_FAILED,
    STAGE_ITEMS_PERSISTED,
    STAGE_ORDER_CREATED,
    STAGE_PAYMENT_CAPTURED,
    STAGE_SCHEDULE_GENERATED,
    LineInput,
    OrderSubmissionOrchestrator,
    StageFailure,
    SubmissionAttempt,
    SubmissionRequest,
    SubmissionStateError,
    can_transition,
)
from orderflow.validation import ValidationError


ORDER_DATE = date(2026, 3, 1)


class RecordingJournal:
    def __init__(self):
        self.stages = []

    def record(self, attempt, request):
        self.stages.append(attempt.stage)
        attempt.journal_id = 1


def _request(plan=None, method="installment", first_payment=None, price="1000.00", quantity=1):
    if method == "installment" and first_payment is None:
        first_payment = PaymentInput(payment_method="cash")
    return SubmissionRequest(
        customer_id=1,
        payment_method=method,
        lines=(LineInput(product_id=7, quantity=quantity, unit_price=Decimal(price)),),
        order_date=ORDER_DATE,
        plan=plan,
        first_payment=first_payment,
    )


def _orchestrator(backend, journal=None):
    return OrderSubmissionOrchestrator(backend, journal, clock=lambda: ORDER_DATE)


class TestSuccessfulSubmission:

    def test_cash_order_skips_financing(self, fake_backend):
        result = _orchestrator(fake_backend).submit(_request(method="cash"))

        assert fake_backend.operations == ["create_order", "create_order_items"]
        assert result.attempt.stage == STAGE_DONE
        assert result.attempt.completed_stages == [STAGE_ORDER_CREATED, STAGE_ITEMS_PERSISTED, STAGE_DONE]
        assert result.first_payment is None
        assert fake_backend.orders[0].total_amount == Decimal("1000.00")

    def test_cash_order_ignores_selected_plan(self, fake_backend, fixed_snapshot):
        result = _orchestrator(fake_backend).submit(_request(plan=fixed_snapshot, method="cash"))
        assert result.breakdown.total == Decimal("1000.00")
        assert "generate_installment_schedule" not in fake_backend.operations

    def test_fixed_plan_call_order(self, fake_backend, fixed_snapshot):
        """Scenario: 1000 on a 10% fixed plan, first payment settles installment 1."""
        result = _orchestrator(fake_backend).submit(_request(plan=fixed_snapshot))

        assert fake_backend.operations == [
            "create_order",
            "create_order_items",
            "generate_installment_schedule",
            "list_installments",
            "process_installment_payment",
        ]
        order = fake_backend.orders[0]
        assert order.total_amount == Decimal("1100.00")
        assert result.first_payment.amount == Decimal("183.33")
        assert result.first_payment.linked
        assert result.attempt.completed_stages == [
            STAGE_ORDER_CREATED,
            STAGE_ITEMS_PERSISTED,
            STAGE_SCHEDULE_GENERATED,
            STAGE_PAYMENT_CAPTURED,
            STAGE_DONE,
        ]

    def test_flexible_plan_call_order(self, fake_backend, flex_snapshot):
        """Scenario: 2000 with 500 advance at 5% -> 2075, advance installment paid."""
        result = _orchestrator(fake_backend).submit(_request(plan=flex_snapshot, price="1000.00", quantity=2))

        assert fake_backend.operations == [
            "create_order",
            "create_order_items",
            "generate_installment_schedule",
            "create_installment",
            "create_payment",
        ]
        assert fake_backend.orders[0].total_amount == Decimal("2075.00")
        advance = fake_backend.installments[-1]
        assert advance.installment_number == "Advance Payment"
        assert advance.status == "paid"
        assert result.first_payment.amount == Decimal("500.00")

    def test_advance_covering_whole_order(self, make_backend, flex_snapshot):
        """Advance equals the base: empty schedule, advance still recorded, flow completes."""
        backend = make_backend(schedule_size=0)
        result = _orchestrator(backend).submit(_request(plan=flex_snapshot, price="500.00"))

        assert result.attempt.stage == STAGE_DONE
        assert result.schedule.installments_created == 0
        assert backend.operations == [
            "create_order",
            "create_order_items",
            "generate_installment_schedule",
            "create_installment",
            "create_payment",
        ]
        assert backend.orders[0].total_amount == Decimal("500.00")
        assert len(backend.payments) == 1
        assert backend.payments[0].amount == Decimal("500.00")
        assert backend.payments[0].installment_id == backend.installments[-1].id
        assert backend.installments[-1].status == "paid"
        assert result.warnings == []

    def test_schedule_runs_once_with_order_date(self, fake_backend, fixed_snapshot):
        _orchestrator(fake_backend).submit(_request(plan=fixed_snapshot))
        schedule_calls = [args for name, args in fake_backend.calls if name == "generate_installment_schedule"]
        order_id = fake_backend.orders[0].id
        assert schedule_calls == [(order_id, fixed_snapshot.id, ORDER_DATE)]

    def test_exactly_one_payment(self, fake_backend, fixed_snapshot):
        _orchestrator(fake_backend).submit(_request(plan=fixed_snapshot))
        assert len(fake_backend.payments) == 1

    def test_missing_first_installment_reports_warning(self, make_backend, fixed_snapshot):
        backend = make_backend(schedule_size=0)
        result = _orchestrator(backend).submit(_request(plan=fixed_snapshot))

        assert result.attempt.stage == STAGE_DONE
        assert len(result.warnings) == 1
        assert backend.payments[0].installment_id is None

    def test_journal_sees_every_transition(self, fake_backend, fixed_snapshot):
        journal = RecordingJournal()
        result = _orchestrator(fake_backend, journal).submit(_request(plan=fixed_snapshot))

        assert journal.stages == [
            "IDLE",
            STAGE_ORDER_CREATED,
            STAGE_ITEMS_PERSISTED,
            STAGE_SCHEDULE_GENERATED,
            STAGE_PAYMENT_CAPTURED,
            STAGE_DONE,
        ]
        assert result.attempt.journal_id == 1

    def test_broken_journal_does_not_stop_submission(self, fake_backend, fixed_snapshot):
        class BrokenJournal:
            def record(self, attempt, request):
                raise RuntimeError("disk full")

        result = _orchestrator(fake_backend, BrokenJournal()).submit(_request(plan=fixed_snapshot))
        assert result.attempt.stage == STAGE_DONE


class TestPreflightValidation:

    def test_missing_plan(self, fake_backend):
        with pytest.raises(ValidationError):
            _orchestrator(fake_backend).submit(_request(plan=None))
        assert fake_backend.calls == []

    def test_missing_first_payment(self, fake_backend, fixed_snapshot):
        request = SubmissionRequest(
            customer_id=1,
            payment_method="installment",
            lines=(LineInput(product_id=7, quantity=1, unit_price=Decimal("1000.00")),),
            order_date=ORDER_DATE,
            plan=fixed_snapshot,
        )
        with pytest.raises(ValidationError):
            _orchestrator(fake_backend).submit(request)
        assert fake_backend.calls == []

    def test_no_lines(self, fake_backend):
        request = SubmissionRequest(customer_id=1, payment_method="cash", lines=(), order_date=ORDER_DATE)
        with pytest.raises(ValidationError):
            _orchestrator(fake_backend).submit(request)
        assert fake_backend.calls == []

    def test_missing_customer(self, fake_backend):
        request = SubmissionRequest(
            customer_id=None,
            payment_method="cash",
            lines=(LineInput(product_id=7, quantity=1, unit_price=Decimal("10")),),
            order_date=ORDER_DATE,
        )
        with pytest.raises(ValidationError):
            _orchestrator(fake_backend).submit(request)

    def test_unknown_payment_method(self, fake_backend):
        with pytest.raises(ValidationError):
            _orchestrator(fake_backend).submit(_request(method="barter"))
        assert fake_backend.calls == []

    def test_unknown_first_payment_method(self, fake_backend, fixed_snapshot):
        request = _request(plan=fixed_snapshot, first_payment=PaymentInput(payment_method="installment"))
        with pytest.raises(ValidationError):
            _orchestrator(fake_backend).submit(request)
        assert fake_backend.calls == []

    def test_advance_larger_than_order(self, fake_backend, flex_snapshot):
        with pytest.raises(ValidationError):
            _orchestrator(fake_backend).submit(_request(plan=flex_snapshot, price="300.00"))
        assert fake_backend.calls == []

    def test_zero_total(self, fake_backend):
        with pytest.raises(ValidationError):
            _orchestrator(fake_backend).submit(_request(method="cash", price="0"))
        assert fake_backend.calls == []


class TestStageFailures:

    def test_order_creation_failure_writes_nothing(self, make_backend, fixed_snapshot):
        backend = make_backend(fail_on={"create_order"})
        with pytest.raises(StageFailure) as excinfo:
            _orchestrator(backend).submit(_request(plan=fixed_snapshot))

        failure = excinfo.value
        assert failure.stage == STAGE_ORDER_CREATED
        assert failure.completed_stages == []
        assert failure.order_id is None
        assert isinstance(failure.__cause__, CollaboratorError)

    def test_items_failure_leaves_order_without_lines(self, make_backend, fixed_snapshot):
        """Scenario: order row created, line insert fails, no schedule."""
        backend = make_backend(fail_on={"create_order_items"})
        journal = RecordingJournal()
        with pytest.raises(StageFailure) as excinfo:
            _orchestrator(backend, journal).submit(_request(plan=fixed_snapshot))

        failure = excinfo.value
        assert failure.stage == STAGE_ITEMS_PERSISTED
        assert failure.completed_stages == [STAGE_ORDER_CREATED]
        assert failure.order_id == backend.orders[0].id
        assert failure.submission_id == 1
        assert backend.items == []
        assert "generate_installment_schedule" not in backend.operations
        assert journal.stages[-1] == STAGE_FAILED

    def test_retry_after_failure_creates_new_order(self, make_backend, fixed_snapshot):
        backend = make_backend(fail_on={"create_order_items"})
        orchestrator = _orchestrator(backend)
        with pytest.raises(StageFailure) as excinfo:
            orchestrator.submit(_request(plan=fixed_snapshot))
        stranded_id = excinfo.value.order_id

        backend.fail_on.clear()
        result = orchestrator.submit(_request(plan=fixed_snapshot))

        assert result.order.id != stranded_id
        assert len(backend.orders) == 2
        assert all(item.order_id == result.order.id for item in backend.items)

    def test_schedule_failure_skips_payment(self, make_backend, fixed_snapshot):
        backend = make_backend(fail_on={"generate_installment_schedule"})
        with pytest.raises(StageFailure) as excinfo:
            _orchestrator(backend).submit(_request(plan=fixed_snapshot))

        assert excinfo.value.stage == STAGE_SCHEDULE_GENERATED
        assert excinfo.value.completed_stages == [STAGE_ORDER_CREATED, STAGE_ITEMS_PERSISTED]
        assert backend.payments == []
        assert "process_installment_payment" not in backend.operations

    def test_payment_failure_keeps_schedule(self, make_backend, fixed_snapshot):
        backend = make_backend(fail_on={"process_installment_payment"})
        with pytest.raises(StageFailure) as excinfo:
            _orchestrator(backend).submit(_request(plan=fixed_snapshot))

        failure = excinfo.value
        assert failure.stage == STAGE_PAYMENT_CAPTURED
        assert failure.completed_stages == [STAGE_ORDER_CREATED, STAGE_ITEMS_PERSISTED, STAGE_SCHEDULE_GENERATED]
        assert len(backend.installments) == 6
        assert failure.to_dict()["failed_stage"] == STAGE_PAYMENT_CAPTURED

    def test_advance_payment_failure(self, make_backend, flex_snapshot):
        backend = make_backend(fail_on={"create_payment"})
        with pytest.raises(StageFailure) as excinfo:
            _orchestrator(backend).submit(_request(plan=flex_snapshot, quantity=2))

        assert excinfo.value.stage == STAGE_PAYMENT_CAPTURED
        # the advance installment was written before the payment failed
        assert backend.installments[-1].installment_number == "Advance Payment"


class TestStageGuard:

    def _attempt_at(self, *stages):
        attempt = SubmissionAttempt()
        for stage in stages:
            attempt.advance(stage)
        return attempt

    def test_schedule_stage_cannot_repeat(self):
        attempt = self._attempt_at(STAGE_ORDER_CREATED, STAGE_ITEMS_PERSISTED, STAGE_SCHEDULE_GENERATED)
        with pytest.raises(SubmissionStateError):
            attempt.check_next(STAGE_SCHEDULE_GENERATED)
        assert attempt.completed_stages == [STAGE_ORDER_CREATED, STAGE_ITEMS_PERSISTED, STAGE_SCHEDULE_GENERATED]

    def test_stages_cannot_be_skipped(self):
        attempt = self._attempt_at(STAGE_ORDER_CREATED)
        with pytest.raises(SubmissionStateError):
            attempt.advance(STAGE_SCHEDULE_GENERATED)
        assert attempt.stage == STAGE_ORDER_CREATED

    def test_cash_orders_finish_after_items(self):
        assert can_transition(STAGE_ITEMS_PERSISTED, STAGE_DONE)
        assert not can_transition(STAGE_ORDER_CREATED, STAGE_DONE)

    def test_failed_attempt_cannot_continue(self):
        attempt = self._attempt_at(STAGE_ORDER_CREATED)
        attempt.fail(STAGE_ITEMS_PERSISTED, CollaboratorError("create_order_items", "down"))
        with pytest.raises(SubmissionStateError):
            attempt.check_next(STAGE_ITEMS_PERSISTED)
