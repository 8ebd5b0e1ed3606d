# Overview: Flask API routes for installment maintenance.

from flask import Blueprint, request, jsonify, current_app

from ..services import installment_service
from ..validation import ValidationError, optional_date


installments_bp = Blueprint("installments", __name__, url_prefix="/api/installments")


@installments_bp.post("/refresh-late")
def refresh_late_route():
    """
    Mark overdue installments late.

    Request body (optional): {"today": "2026-05-01"}
    """
    try:
        data = request.get_json(silent=True) or {}
        today = optional_date(data.get("today"), "today")
        changed = installment_service.mark_overdue_installments(today)
        return jsonify({"marked_late": changed, "count": len(changed)}), 200

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to refresh late installments")
        return jsonify({"error": "Internal server error"}), 500
