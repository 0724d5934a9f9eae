# Overview: Flask API routes for checkout and order queries; parses input and returns JSON responses.

from flask import Blueprint, jsonify, request

from ..decorators import current_identity, require_auth
from ..services import checkout_service, order_service

orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


@orders_bp.post("/checkout")
@require_auth
def checkout_route():
    """
    Charge the cart and create an order.

    Body: {"token": "<payment source>", "attempt_id": "<optional>"}
    The Idempotency-Key header, when present, takes precedence over
    attempt_id. Clients retrying after an ambiguous failure must resend the
    same value; a replay returns the order created by the first attempt.
    Without either, each request is a new attempt, and an ambiguous failure
    responds with the generated attempt_id to resend.

    Returns:
    - 201: order created
    - 202: charged, order pending confirmation
    - 400: empty cart / missing token
    - 402: payment failed
    """
    data = request.get_json(silent=True) or {}
    attempt_id = request.headers.get("Idempotency-Key") or data.get("attempt_id")
    if attempt_id is not None:
        attempt_id = str(attempt_id)

    order = checkout_service.checkout(current_identity(), data.get("token"), attempt_id)
    return jsonify({"order": order.to_dict()}), 201


@orders_bp.get("")
@require_auth
def list_orders_route():
    orders = order_service.list_orders(current_identity())
    return jsonify({"orders": [o.to_dict() for o in orders]})


@orders_bp.get("/<int:order_id>")
@require_auth
def get_order_route(order_id: int):
    return jsonify({"order": order_service.get_order(current_identity(), order_id).to_dict()})
