# Overview: Service-layer operations for customers; edit and delete guards.

"""
Customer Service

LOCKING: a customer with orders is anchored by them.
- delete is rejected
- identity fields (name, identity number) cannot change
- contact fields (email, phone, address) stay editable
"""

from __future__ import annotations

import logging

from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Customer, Order
from ..validation import LockViolationError, NotFoundError, ValidationError, optional_str, require_str


logger = logging.getLogger(__name__)

IDENTITY_FIELDS = {"first_name", "last_name", "identity_number"}
CONTACT_FIELDS = {"email", "phone_number", "address"}
EDITABLE_FIELDS = IDENTITY_FIELDS | CONTACT_FIELDS


def get_customer(customer_id: int) -> Customer:
    customer = db.session.get(Customer, customer_id)
    if not customer:
        raise NotFoundError(f"Customer {customer_id} not found")
    return customer


def customer_has_orders(customer_id: int) -> bool:
    return db.session.query(Order.id).filter_by(customer_id=customer_id).first() is not None


def create_customer(data: dict) -> Customer:
    customer = Customer(
        first_name=require_str(data.get("first_name"), "first_name", max_length=128),
        last_name=require_str(data.get("last_name"), "last_name", max_length=128),
        email=require_str(data.get("email"), "email"),
        phone_number=optional_str(data.get("phone_number"), "phone_number", max_length=32),
        address=optional_str(data.get("address"), "address"),
        identity_number=optional_str(data.get("identity_number"), "identity_number", max_length=32),
    )
    db.session.add(customer)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ValidationError(f"A customer with email {customer.email} already exists")
    return customer


def update_customer(customer_id: int, changes: dict) -> Customer:
    """
    Edit a customer.

    Raises:
        LockViolationError: identity fields changed on a customer with orders
        ValidationError: unknown field or bad value
    """
    customer = get_customer(customer_id)

    unknown = set(changes) - EDITABLE_FIELDS
    if unknown:
        raise ValidationError(f"Unknown customer fields: {', '.join(sorted(unknown))}")

    touched_identity = sorted(
        key for key in IDENTITY_FIELDS & set(changes)
        if optional_str(changes[key], key) != getattr(customer, key)
    )
    if touched_identity and customer_has_orders(customer_id):
        raise LockViolationError(
            f"Customer {customer_id} has orders; cannot change {', '.join(touched_identity)}"
        )

    for key, value in changes.items():
        if key in ("first_name", "last_name", "email"):
            setattr(customer, key, require_str(value, key, max_length=255))
        else:
            setattr(customer, key, optional_str(value, key))

    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ValidationError(f"A customer with email {changes.get('email')} already exists")
    return customer


def delete_customer(customer_id: int) -> None:
    customer = get_customer(customer_id)
    if customer_has_orders(customer_id):
        raise LockViolationError(f"Customer {customer_id} has orders and cannot be deleted")

    db.session.delete(customer)
    db.session.commit()
    logger.info("Deleted customer %s", customer_id)
