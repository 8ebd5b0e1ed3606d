# Overview: Flask API routes for customers; parses input and returns JSON responses.

# backend/orderflow/routes/customers.py
"""
Customer API Routes

Customers with orders cannot be deleted and keep their identity fields.
"""

from flask import Blueprint, request, jsonify, current_app

from ..services import customer_service
from ..validation import LockViolationError, NotFoundError, ValidationError


customers_bp = Blueprint("customers", __name__, url_prefix="/api/customers")


@customers_bp.post("")
def create_customer_route():
    try:
        data = request.get_json(silent=True) or {}
        customer = customer_service.create_customer(data)
        return jsonify({"customer": customer.to_dict()}), 201

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to create customer")
        return jsonify({"error": "Internal server error"}), 500


@customers_bp.put("/<int:customer_id>")
def update_customer_route(customer_id: int):
    """
    Update customer fields.

    Returns:
        200: Updated
        404: Unknown customer
        409: Identity change on a customer with orders
    """
    try:
        data = request.get_json(silent=True) or {}
        customer = customer_service.update_customer(customer_id, data)
        return jsonify({"customer": customer.to_dict()}), 200

    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except LockViolationError as e:
        return jsonify({"error": str(e)}), 409
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to update customer")
        return jsonify({"error": "Internal server error"}), 500


@customers_bp.delete("/<int:customer_id>")
def delete_customer_route(customer_id: int):
    try:
        customer_service.delete_customer(customer_id)
        return jsonify({"deleted": customer_id}), 200

    except NotFoundError as e:
        return jsonify({"error": str(e)}), 404
    except LockViolationError as e:
        return jsonify({"error": str(e)}), 409
    except Exception:
        current_app.logger.exception("Failed to delete customer")
        return jsonify({"error": "Internal server error"}), 500
