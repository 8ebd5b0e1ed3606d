# Overview: Service-layer operations for installment plans; validation and snapshots.

"""
Installment Plan Service

WHY: Pricing assumes every plan it sees is well formed (duration >= 1,
rate in [0, 1], no advance on fixed plans). This module is the only
writer of plans and enforces those rules before anything is stored.
"""

from __future__ import annotations

from ..extensions import db
from ..models import InstallmentPlan
from ..models.financing import PLAN_TYPE_FIXED, PLAN_TYPE_FLEXIBLE, VALID_PLAN_TYPES
from ..validation import NotFoundError, optional_money, require_str, to_decimal, to_int
from .pricing_service import PlanError, PlanSnapshot


PLAN_FIELDS = {"name", "plan_type", "duration", "interest_rate", "grace_period", "advance_payment_amount"}


def _clean_plan_data(data: dict, current: InstallmentPlan | None = None) -> dict:
    unknown = set(data) - PLAN_FIELDS
    if unknown:
        raise PlanError(f"Unknown plan fields: {', '.join(sorted(unknown))}")

    def pick(key, default=None):
        if key in data:
            return data[key]
        if current is not None:
            return getattr(current, key)
        return default

    name = require_str(pick("name"), "name", max_length=128)

    plan_type = pick("plan_type", PLAN_TYPE_FIXED)
    if plan_type not in VALID_PLAN_TYPES:
        raise PlanError(f"Invalid plan type: {plan_type}. Must be one of {VALID_PLAN_TYPES}")

    if pick("duration") is None:
        raise PlanError("duration is required")
    duration = to_int(pick("duration"), "duration")
    if duration < 1:
        raise PlanError("duration must be at least 1")

    interest_rate = to_decimal(pick("interest_rate", 0), "interest_rate")
    if interest_rate < 0 or interest_rate > 1:
        raise PlanError("interest_rate must be a fraction between 0 and 1")

    grace_period = to_int(pick("grace_period", 0), "grace_period")
    if grace_period < 0:
        raise PlanError("grace_period cannot be negative")

    advance = optional_money(pick("advance_payment_amount"), "advance_payment_amount")
    if plan_type == PLAN_TYPE_FIXED:
        # A stored advance is dropped when a plan switches to fixed
        if "advance_payment_amount" not in data:
            advance = None
        if advance is not None and advance > 0:
            raise PlanError("Fixed plans cannot have an advance payment")
        advance = None
    elif plan_type == PLAN_TYPE_FLEXIBLE and advance is not None and advance <= 0:
        # A zero advance is the same as no advance
        advance = None

    return {
        "name": name,
        "plan_type": plan_type,
        "duration": duration,
        "interest_rate": interest_rate,
        "grace_period": grace_period,
        "advance_payment_amount": advance,
    }


def create_plan(data: dict) -> InstallmentPlan:
    """Create a plan. Raises PlanError on invalid input."""
    plan = InstallmentPlan(**_clean_plan_data(data))
    db.session.add(plan)
    db.session.commit()
    return plan


def update_plan(plan_id: int, data: dict) -> InstallmentPlan:
    """
    Update a plan.

    Orders already priced with this plan keep their stored totals and
    schedules; only future quotes see the change.
    """
    plan = db.session.get(InstallmentPlan, plan_id)
    if not plan:
        raise NotFoundError(f"Installment plan {plan_id} not found")

    for key, value in _clean_plan_data(data, current=plan).items():
        setattr(plan, key, value)
    db.session.commit()
    return plan


def list_plans() -> list[InstallmentPlan]:
    return db.session.query(InstallmentPlan).order_by(InstallmentPlan.created_at.desc(), InstallmentPlan.id.desc()).all()


def get_plan_snapshot(plan_id: int) -> PlanSnapshot:
    plan = db.session.get(InstallmentPlan, plan_id)
    if not plan:
        raise NotFoundError(f"Installment plan {plan_id} not found")
    return PlanSnapshot.from_model(plan)


def load_plan_snapshots() -> list[PlanSnapshot]:
    """Read every plan once; callers price against this list, not live rows."""
    return [PlanSnapshot.from_model(plan) for plan in list_plans()]
