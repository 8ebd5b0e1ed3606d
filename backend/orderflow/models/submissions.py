from __future__ import annotations

from ..extensions import db
from orderflow.time_utils import to_utc_z


class OrderSubmission(db.Model):
    """
    Journal row for one order-submission attempt.

    WHY: Order creation is a sequence of independent writes with no
    rollback. This row records the last stage that completed (and the
    stage that failed, if any) so a partially created order can be
    diagnosed without guessing from the raw order/item/installment rows.
    """
    __tablename__ = "order_submissions"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=True, index=True)
    customer_id = db.Column(db.Integer, nullable=True)
    installment_plan_id = db.Column(db.Integer, nullable=True)
    payment_method = db.Column(db.String(32), nullable=True)

    stage = db.Column(db.String(32), nullable=False, index=True)
    failed_stage = db.Column(db.String(32), nullable=True)
    error_message = db.Column(db.Text, nullable=True)
    warnings = db.Column(db.JSON, nullable=False, default=list)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "customer_id": self.customer_id,
            "installment_plan_id": self.installment_plan_id,
            "payment_method": self.payment_method,
            "stage": self.stage,
            "failed_stage": self.failed_stage,
            "error_message": self.error_message,
            "warnings": list(self.warnings or []),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
