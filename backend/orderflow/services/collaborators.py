# Overview: Contracts the order-submission flow consumes from the data store.

"""
Data Store Collaborators

The submission flow never touches tables directly. It issues the calls
below, in order, and treats any raised exception as a failure of the
stage that issued it. `SqlAlchemyOrderingBackend` (store_gateway.py) is
the production implementation; tests use an in-memory fake.

Returned records only need the attributes the flow reads (`id`,
`total_amount`, ...), so ORM rows and plain dataclasses both satisfy the
contract.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any, Optional, Protocol, Sequence


class CollaboratorError(Exception):
    """Raised when a data store call fails."""
    def __init__(self, operation: str, message: str):
        super().__init__(f"{operation} failed: {message}")
        self.operation = operation


# =============================================================================
# WRITE SHAPES
# =============================================================================

@dataclass(frozen=True)
class OrderHeader:
    customer_id: int
    total_amount: Decimal
    payment_method: str
    status: str
    order_date: date


@dataclass(frozen=True)
class OrderItemDraft:
    order_id: int
    product_id: int
    quantity: int
    unit_price: Decimal

    @property
    def total_price(self) -> Decimal:
        return self.unit_price * self.quantity


@dataclass(frozen=True)
class InstallmentDraft:
    order_id: int
    installment_plan_id: int
    installment_number: str
    sequence: int
    due_date: date
    amount: Decimal
    status: str
    payment_date: Optional[date] = None


@dataclass(frozen=True)
class PaymentDraft:
    order_id: int
    amount: Decimal
    payment_method: str
    payment_date: date
    installment_id: Optional[int] = None
    reference_number: Optional[str] = None
    notes: Optional[str] = None


# =============================================================================
# RESULTS
# =============================================================================

@dataclass(frozen=True)
class ScheduleResult:
    installments_created: int
    installment_ids: Sequence[int] = field(default_factory=tuple)


@dataclass(frozen=True)
class ProcessedPayment:
    payment_id: int
    remaining_amount: Decimal


class OrderingBackend(Protocol):
    def create_order(self, header: OrderHeader) -> Any:
        ...

    def create_order_items(self, items: Sequence[OrderItemDraft]) -> list:
        ...

    def generate_installment_schedule(self, order_id: int, plan_id: int, start_date: date) -> ScheduleResult:
        ...

    def process_installment_payment(
        self,
        order_id: int,
        amount: Decimal,
        method: str,
        installment_id: int,
        reference_number: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> ProcessedPayment:
        ...

    def create_payment(self, record: PaymentDraft) -> Any:
        ...

    def create_installment(self, record: InstallmentDraft) -> Any:
        ...

    def list_installments(self, order_id: int, sequence_label: str) -> list:
        ...
