# Overview: Installment queries and the overdue sweep.

"""
Installment Service

OVERDUE RULE: a pending installment becomes "late" once
today > due_date + plan grace period (days). Paid installments are
never touched. The sweep is idempotent.
"""

from __future__ import annotations

import logging
from datetime import date, timedelta
from typing import Optional

from ..extensions import db
from ..models import Installment, InstallmentPlan, Order
from ..models.financing import INSTALLMENT_STATUS_LATE, INSTALLMENT_STATUS_PENDING
from ..validation import NotFoundError
from orderflow.time_utils import today as business_today


logger = logging.getLogger(__name__)


def list_order_installments(order_id: int) -> list[Installment]:
    """Installments of an order in schedule order (advance first)."""
    if not db.session.get(Order, order_id):
        raise NotFoundError(f"Order {order_id} not found")
    return db.session.query(Installment).filter_by(order_id=order_id).order_by(
        Installment.sequence, Installment.id
    ).all()


def is_overdue(installment: Installment, grace_days: int, today: date) -> bool:
    if installment.status != INSTALLMENT_STATUS_PENDING:
        return False
    return today > installment.due_date + timedelta(days=grace_days or 0)


def mark_overdue_installments(today: Optional[date] = None) -> list[int]:
    """
    Flag pending installments past due + grace as late.

    Returns:
        Ids of the installments that changed status
    """
    current_day = today or business_today()

    rows = db.session.query(Installment, InstallmentPlan.grace_period).join(
        InstallmentPlan, Installment.installment_plan_id == InstallmentPlan.id
    ).filter(
        Installment.status == INSTALLMENT_STATUS_PENDING,
        Installment.due_date < current_day,
    ).all()

    changed = []
    for installment, grace in rows:
        if is_overdue(installment, grace, current_day):
            installment.status = INSTALLMENT_STATUS_LATE
            changed.append(installment.id)

    db.session.commit()
    if changed:
        logger.info("Marked %d installments late as of %s", len(changed), current_day.isoformat())
    return changed
