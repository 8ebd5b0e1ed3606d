from __future__ import annotations

from ..extensions import db
from orderflow.time_utils import to_iso_date, to_utc_z


# Plan types
PLAN_TYPE_FIXED = "fixed"
PLAN_TYPE_FLEXIBLE = "flexible"

VALID_PLAN_TYPES = [PLAN_TYPE_FIXED, PLAN_TYPE_FLEXIBLE]

# Installment statuses
INSTALLMENT_STATUS_PENDING = "pending"
INSTALLMENT_STATUS_PAID = "paid"
INSTALLMENT_STATUS_LATE = "late"

VALID_INSTALLMENT_STATUSES = [
    INSTALLMENT_STATUS_PENDING,
    INSTALLMENT_STATUS_PAID,
    INSTALLMENT_STATUS_LATE,
]

# Ordering slot of the synthesized advance installment (generated rows use 1..N)
ADVANCE_SEQUENCE = 0


class InstallmentPlan(db.Model):
    """
    Financing plan.

    PLAN TYPES:
    - fixed: interest on the full base amount, repaid in `duration` equal periods
    - flexible: optional upfront advance; interest only on the remaining balance

    interest_rate is a fraction (0.10 == 10%). advance_payment_amount is
    only ever set on flexible plans.
    """
    __tablename__ = "installment_plans"
    __table_args__ = (
        db.CheckConstraint("duration >= 1", name="ck_installment_plans_duration_positive"),
        db.CheckConstraint(
            "interest_rate >= 0 AND interest_rate <= 1",
            name="ck_installment_plans_interest_rate_fraction",
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(128), nullable=False)
    plan_type = db.Column(db.String(16), nullable=False, default=PLAN_TYPE_FIXED)
    duration = db.Column(db.Integer, nullable=False)
    interest_rate = db.Column(db.Numeric(8, 6), nullable=False, default=0)
    grace_period = db.Column(db.Integer, nullable=False, default=0)
    advance_payment_amount = db.Column(db.Numeric(12, 2), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=True, onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "plan_type": self.plan_type,
            "duration": self.duration,
            "interest_rate": str(self.interest_rate),
            "grace_period": self.grace_period,
            "advance_payment_amount": (
                str(self.advance_payment_amount) if self.advance_payment_amount is not None else None
            ),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Installment(db.Model):
    """
    One scheduled repayment of a financed order.

    installment_number is a display label ("1", "2", ..., "Advance Payment"),
    never parsed as a number. `sequence` is the ordering key.
    """
    __tablename__ = "installments"
    __table_args__ = (
        db.Index("ix_installments_order_sequence", "order_id", "sequence"),
        db.Index("ix_installments_status_due", "status", "due_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    installment_plan_id = db.Column(db.Integer, db.ForeignKey("installment_plans.id"), nullable=False, index=True)

    installment_number = db.Column(db.String(32), nullable=False)
    sequence = db.Column(db.Integer, nullable=False)
    due_date = db.Column(db.Date, nullable=False)
    amount = db.Column(db.Numeric(12, 2), nullable=False)
    status = db.Column(db.String(16), nullable=False, default=INSTALLMENT_STATUS_PENDING)
    late_fee = db.Column(db.Numeric(12, 2), nullable=True)
    payment_date = db.Column(db.Date, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=True, onupdate=db.func.now())

    order = db.relationship("Order", backref=db.backref("installments", lazy=True))
    plan = db.relationship("InstallmentPlan")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "installment_plan_id": self.installment_plan_id,
            "installment_number": self.installment_number,
            "sequence": self.sequence,
            "due_date": to_iso_date(self.due_date),
            "amount": str(self.amount),
            "status": self.status,
            "late_fee": str(self.late_fee) if self.late_fee is not None else None,
            "payment_date": to_iso_date(self.payment_date),
            "created_at": to_utc_z(self.created_at),
        }


class Payment(db.Model):
    """
    Money received against an order, optionally bound to one installment.

    A payment without installment_id is an unlinked payment (fallback
    when the first installment of a fixed plan cannot be found).
    """
    __tablename__ = "payments"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    installment_id = db.Column(db.Integer, db.ForeignKey("installments.id"), nullable=True, index=True)

    amount = db.Column(db.Numeric(12, 2), nullable=False)
    payment_method = db.Column(db.String(32), nullable=False)
    payment_date = db.Column(db.Date, nullable=False)
    reference_number = db.Column(db.String(128), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    order = db.relationship("Order", backref=db.backref("payments", lazy=True))
    installment = db.relationship("Installment", backref=db.backref("payments", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "installment_id": self.installment_id,
            "amount": str(self.amount),
            "payment_method": self.payment_method,
            "payment_date": to_iso_date(self.payment_date),
            "reference_number": self.reference_number,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
        }
