# Overview: Flask API routes for catalogue items; parses input and returns JSON responses.

from flask import Blueprint, jsonify, request

from ..decorators import current_identity, require_auth
from ..services import item_service

items_bp = Blueprint("items", __name__, url_prefix="/api/items")


@items_bp.get("")
def list_items_route():
    """
    List catalogue items.

    Query params:
    - page: int (optional) - page number (1-indexed). If omitted, returns all items.
    - per_page: int (optional) - items per page (default 20, max 100)
    """
    page = request.args.get("page", type=int)
    per_page = request.args.get("per_page", type=int)
    return jsonify(item_service.list_items(page=page, per_page=per_page))


@items_bp.get("/<int:item_id>")
def get_item_route(item_id: int):
    return jsonify({"item": item_service.get_item(item_id).to_dict()})


@items_bp.post("")
@require_auth
def create_item_route():
    item = item_service.create_item(current_identity(), request.get_json(silent=True))
    return jsonify({"item": item.to_dict()}), 201


@items_bp.patch("/<int:item_id>")
@require_auth
def update_item_route(item_id: int):
    item = item_service.update_item(current_identity(), item_id, request.get_json(silent=True))
    return jsonify({"item": item.to_dict()})


@items_bp.delete("/<int:item_id>")
@require_auth
def delete_item_route(item_id: int):
    return jsonify({"item": item_service.delete_item(current_identity(), item_id)})
