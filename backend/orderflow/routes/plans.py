# Overview: Flask API routes for installment plans; parses input and returns JSON responses.

# backend/orderflow/routes/plans.py
"""
Installment Plan API Routes

- List plans
- Create a plan (fixed or flexible)
- Update a plan; existing orders keep their stored totals
"""

from flask import Blueprint, request, jsonify, current_app

from ..services import plan_service
from ..validation import NotFoundError, ValidationError


plans_bp = Blueprint("installment_plans", __name__, url_prefix="/api/installment-plans")


@plans_bp.get("")
def list_plans_route():
    try:
        plans = plan_service.list_plans()
        return jsonify({"installment_plans": [p.to_dict() for p in plans]}), 200
    except Exception:
        current_app.logger.exception("Failed to list installment plans")
        return jsonify({"error": "Internal server error"}), 500


@plans_bp.post("")
def create_plan_route():
    """
    Create an installment plan.

    Request body:
    {
        "name": "Flex 6",
        "plan_type": "flexible",
        "duration": 6,
        "interest_rate": "0.05",
        "grace_period": 0,
        "advance_payment_amount": "500.00"   (flexible only)
    }

    Returns:
        201: Plan created
        400: Invalid plan
    """
    try:
        data = request.get_json(silent=True) or {}
        plan = plan_service.create_plan(data)
        return jsonify({"installment_plan": plan.to_dict()}), 201

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to create installment plan")
        return jsonify({"error": "Internal server error"}), 500


@plans_bp.put("/<int:plan_id>")
def update_plan_route(plan_id: int):
    try:
        data = request.get_json(silent=True) or {}
        plan = plan_service.update_plan(plan_id, data)
        return jsonify({"installment_plan": plan.to_dict()}), 200

    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to update installment plan")
        return jsonify({"error": "Internal server error"}), 500
