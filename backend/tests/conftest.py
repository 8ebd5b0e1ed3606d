"""
Pytest fixtures for orderflow backend tests.

Provides test database setup, catalog/plan fixtures, the Flask test
client, and an in-memory ordering backend that records every call.
"""

from datetime import date
from decimal import Decimal
from types import SimpleNamespace

import pytest
from orderflow import create_app
from orderflow.extensions import db
from orderflow.models import Customer, Product
from orderflow.services import plan_service
from orderflow.services.collaborators import CollaboratorError, ProcessedPayment, ScheduleResult
from orderflow.services.pricing_service import PlanSnapshot


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def customer(db_session):
    customer = Customer(
        first_name="Mona",
        last_name="Adel",
        email="mona@example.com",
        identity_number="29001011234567",
    )
    db_session.add(customer)
    db_session.commit()
    return customer


@pytest.fixture(scope='function')
def fridge(db_session):
    product = Product(name="Refrigerator", price=Decimal("1000.00"), cost=Decimal("750.00"), quantity=5)
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def washer(db_session):
    product = Product(name="Washing Machine", price=Decimal("500.00"), cost=Decimal("380.00"), quantity=5)
    db_session.add(product)
    db_session.commit()
    return product


@pytest.fixture(scope='function')
def fixed_plan(db_session):
    """6 months, 10% on the full base."""
    return plan_service.create_plan({
        "name": "Fixed 6",
        "plan_type": "fixed",
        "duration": 6,
        "interest_rate": "0.10",
    })


@pytest.fixture(scope='function')
def flexible_plan(db_session):
    """6 months, 500 upfront, 5% on the remainder."""
    return plan_service.create_plan({
        "name": "Flex 6",
        "plan_type": "flexible",
        "duration": 6,
        "interest_rate": "0.05",
        "advance_payment_amount": "500.00",
    })


# =============================================================================
# IN-MEMORY ORDERING BACKEND
# =============================================================================

FIXED_PLAN = PlanSnapshot(id=1, name="Fixed 6", plan_type="fixed", duration=6, interest_rate=Decimal("0.10"))
FLEX_PLAN = PlanSnapshot(
    id=2,
    name="Flex 6",
    plan_type="flexible",
    duration=6,
    interest_rate=Decimal("0.05"),
    advance_payment_amount=Decimal("500.00"),
)


class FakeBackend:
    """
    Records every collaborator call in `calls` as (operation, args).

    `fail_on` names operations that raise CollaboratorError.
    `schedule_size` is how many installments generate_installment_schedule
    creates (labelled "1".."N"); 0 simulates an empty schedule.
    """

    def __init__(self, fail_on=(), schedule_size=6):
        self.fail_on = set(fail_on)
        self.schedule_size = schedule_size
        self.calls = []
        self.orders = []
        self.items = []
        self.installments = []
        self.payments = []
        self._next_id = 100

    def _new_id(self):
        self._next_id += 1
        return self._next_id

    def _record(self, operation, *args):
        self.calls.append((operation, args))
        if operation in self.fail_on:
            raise CollaboratorError(operation, "simulated outage")

    @property
    def operations(self):
        return [name for name, _ in self.calls]

    def create_order(self, header):
        self._record("create_order", header)
        order = SimpleNamespace(id=self._new_id(), **header.__dict__)
        self.orders.append(order)
        return order

    def create_order_items(self, items):
        self._record("create_order_items", list(items))
        rows = [SimpleNamespace(id=self._new_id(), **i.__dict__) for i in items]
        self.items.extend(rows)
        return rows

    def generate_installment_schedule(self, order_id, plan_id, start_date):
        self._record("generate_installment_schedule", order_id, plan_id, start_date)
        ids = []
        for number in range(1, self.schedule_size + 1):
            row = SimpleNamespace(
                id=self._new_id(),
                order_id=order_id,
                installment_plan_id=plan_id,
                installment_number=str(number),
                sequence=number,
                status="pending",
            )
            self.installments.append(row)
            ids.append(row.id)
        return ScheduleResult(installments_created=len(ids), installment_ids=tuple(ids))

    def list_installments(self, order_id, sequence_label):
        self._record("list_installments", order_id, sequence_label)
        return [
            i for i in self.installments
            if i.order_id == order_id and i.installment_number == sequence_label
        ]

    def process_installment_payment(self, order_id, amount, method, installment_id, reference_number=None, notes=None):
        self._record("process_installment_payment", order_id, amount, method, installment_id)
        payment = SimpleNamespace(
            id=self._new_id(), order_id=order_id, installment_id=installment_id, amount=amount, payment_method=method
        )
        self.payments.append(payment)
        return ProcessedPayment(payment_id=payment.id, remaining_amount=Decimal("0.00"))

    def create_installment(self, record):
        self._record("create_installment", record)
        row = SimpleNamespace(id=self._new_id(), **record.__dict__)
        self.installments.append(row)
        return row

    def create_payment(self, record):
        self._record("create_payment", record)
        payment = SimpleNamespace(id=self._new_id(), **record.__dict__)
        self.payments.append(payment)
        return payment


@pytest.fixture
def fake_backend():
    return FakeBackend()


@pytest.fixture
def fixed_clock():
    return lambda: date(2026, 3, 1)


@pytest.fixture
def fixed_snapshot():
    return FIXED_PLAN


@pytest.fixture
def flex_snapshot():
    return FLEX_PLAN


@pytest.fixture
def make_backend():
    """FakeBackend factory for tests that need failures or a custom schedule size."""
    return FakeBackend
