# Overview: Flask API routes for orders; parses input and returns JSON responses.

# backend/orderflow/routes/orders.py
"""
Order API Routes

DESIGN:
- Quote an order draft (no side effects)
- Submit an order: order -> lines -> schedule -> first payment
- Read an order with its lines, installments and payments
- Change status; delete unless shipped/delivered

A submission that fails after the order row exists answers 502 with the
failing stage, the completed stages and the order id. Nothing is rolled
back; the submission journal row keeps the same information.
"""

from flask import Blueprint, request, jsonify, current_app

from ..services import installment_service, order_service
from ..services.order_submission_service import StageFailure
from ..validation import LockViolationError, NotFoundError, ValidationError


orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


def _result_payload(result) -> dict:
    return {
        "order": result.order.to_dict(),
        "items": [i.to_dict() for i in result.items],
        "pricing": result.breakdown.to_dict(),
        "installments_created": result.schedule.installments_created if result.schedule else 0,
        "first_payment": result.first_payment.to_dict() if result.first_payment else None,
        "warnings": result.warnings,
        "stage": result.attempt.stage,
        "submission_id": result.attempt.journal_id,
    }


# =============================================================================
# QUOTE & SUBMIT
# =============================================================================

@orders_bp.post("/quote")
def quote_order_route():
    """
    Price an order draft.

    Request body: same shape as POST /api/orders (customer optional).

    Returns:
        200: {base_amount, principal, advance, interest, total, suggested_first_payment}
        400: Invalid input
        404: Unknown plan
    """
    try:
        data = request.get_json(silent=True) or {}
        draft = order_service.draft_from_payload(data)
        quote = order_service.quote(draft)
        return jsonify({"quote": quote.to_dict()}), 200

    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to quote order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.post("")
def create_order_route():
    """
    Submit an order.

    Request body:
    {
        "customer_id": 1,
        "payment_method": "installment",
        "installment_plan_id": 2,            (installment only)
        "order_date": "2026-03-01",          (optional, defaults to today)
        "status": "pending",                 (optional)
        "items": [{"product_id": 3, "quantity": 2, "unit_price": "500.00"}],
        "first_payment": {                   (installment only)
            "payment_method": "cash",
            "amount": "183.33",              (optional, defaults to suggested)
            "reference_number": "RCPT-1",
            "notes": "..."
        }
    }

    Returns:
        201: Order created
        400: Invalid input, nothing written
        502: A store call failed mid-way; body names what completed
    """
    try:
        data = request.get_json(silent=True) or {}
        draft = order_service.draft_from_payload(data)
        first_payment = order_service.payment_input_from_payload(data.get("first_payment"))
        submission = order_service.build_submission(draft, first_payment)

        result = order_service.submit_order(submission)
        return jsonify(_result_payload(result)), 201

    except StageFailure as e:
        return jsonify(e.to_dict()), 502
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to create order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.get("/submissions/<int:submission_id>")
def get_submission_route(submission_id: int):
    try:
        submission = order_service.get_submission(submission_id)
        return jsonify({"submission": submission.to_dict()}), 200

    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to get submission")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# EXISTING ORDERS
# =============================================================================

@orders_bp.get("/<int:order_id>")
def get_order_route(order_id: int):
    try:
        return jsonify(order_service.get_order_detail(order_id)), 200

    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to get order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.get("/<int:order_id>/installments")
def list_order_installments_route(order_id: int):
    try:
        installments = installment_service.list_order_installments(order_id)
        return jsonify({"installments": [i.to_dict() for i in installments]}), 200

    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to list installments")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.patch("/<int:order_id>")
def update_order_route(order_id: int):
    """
    Change order status.

    Returns:
        200: Updated
        400: Invalid status
        404: Unknown order
        409: Field other than status supplied
    """
    try:
        data = request.get_json(silent=True) or {}
        order = order_service.update_order(order_id, data)
        return jsonify({"order": order.to_dict()}), 200

    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except LockViolationError as e:
        return jsonify({"error": str(e)}), 409
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to update order")
        return jsonify({"error": "Internal server error"}), 500


@orders_bp.delete("/<int:order_id>")
def delete_order_route(order_id: int):
    try:
        order_service.delete_order(order_id)
        return jsonify({"deleted": order_id}), 200

    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except LockViolationError as e:
        return jsonify({"error": str(e)}), 409
    except Exception:
        current_app.logger.exception("Failed to delete order")
        return jsonify({"error": "Internal server error"}), 500
