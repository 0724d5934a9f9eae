# Overview: Flask API routes for admin operations; user permissions and payment reconciliation.

from flask import Blueprint, jsonify, request

from ..decorators import current_identity, require_auth, require_permission
from ..errors import ValidationError
from ..permissions import ADMIN, PERMISSIONUPDATE, PERMISSION_DEFINITIONS
from ..services import permission_service, reconciliation_service

admin_bp = Blueprint("admin", __name__, url_prefix="/api/admin")


@admin_bp.get("/users")
@require_auth
def list_users_route():
    users = permission_service.list_users(current_identity())
    return jsonify({"users": [u.to_dict() for u in users]})


@admin_bp.put("/users/<int:user_id>/permissions")
@require_auth
def update_permissions_route(user_id: int):
    data = request.get_json(silent=True) or {}
    if "permissions" not in data:
        raise ValidationError("permissions required")
    user = permission_service.update_permissions(current_identity(), user_id, data["permissions"])
    return jsonify({"user": user.to_dict()})


@admin_bp.get("/permissions")
@require_auth
@require_permission(ADMIN, PERMISSIONUPDATE)
def list_permissions_route():
    return jsonify({
        "permissions": [
            {"code": code, "name": name, "description": description, "category": category}
            for code, name, description, category in PERMISSION_DEFINITIONS
        ]
    })


@admin_bp.get("/reconciliations")
@require_auth
@require_permission(ADMIN)
def list_reconciliations_route():
    records = reconciliation_service.list_records(request.args.get("status"))
    return jsonify({"records": [r.to_dict() for r in records]})


@admin_bp.post("/reconciliations/<charge_id>/retry")
@require_auth
@require_permission(ADMIN)
def retry_reconciliation_route(charge_id: str):
    order = reconciliation_service.retry(charge_id)
    return jsonify({"order": order.to_dict()})
