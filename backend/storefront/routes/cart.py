# Overview: Flask API routes for the caller's cart; parses input and returns JSON responses.

from flask import Blueprint, jsonify, request

from ..decorators import current_identity, require_auth
from ..errors import ValidationError
from ..services import cart_service

cart_bp = Blueprint("cart", __name__, url_prefix="/api/cart")


@cart_bp.get("")
@require_auth
def get_cart_route():
    return jsonify(cart_service.get_cart(current_identity().user_id))


@cart_bp.post("/items")
@require_auth
def add_to_cart_route():
    data = request.get_json(silent=True) or {}
    item_id = data.get("item_id")
    if not isinstance(item_id, int) or isinstance(item_id, bool):
        raise ValidationError("item_id must be an integer")
    row = cart_service.add_item(current_identity().user_id, item_id)
    return jsonify({"cart_item": row.to_dict()})


@cart_bp.delete("/items/<int:cart_item_id>")
@require_auth
def remove_from_cart_route(cart_item_id: int):
    removed = cart_service.remove_item(current_identity(), cart_item_id)
    return jsonify({"cart_item": removed})
