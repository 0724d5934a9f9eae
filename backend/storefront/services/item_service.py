# Overview: Service-layer operations for catalogue items; encapsulates business logic and database work.

from __future__ import annotations

from flask import current_app

from ..errors import NotFound
from ..extensions import db
from ..models import Item
from ..permissions import MANAGE_ITEMS_DELETE, MANAGE_ITEMS_UPDATE
from ..validation import ModelValidationPolicy, enforce_rules_item, validate_payload
from . import cart_service, permission_service
from .session_service import Identity

ITEM_POLICY = ModelValidationPolicy(
    writable_fields={"title", "description", "image", "large_image", "price"},
    required_on_create={"title", "price"},
)


def list_items(page: int | None = None, per_page: int | None = None) -> dict:
    """
    Public catalogue listing, newest first, with optional pagination.

    Args:
        page: Page number (1-indexed). If None, returns all items.
        per_page: Items per page (default 20, max 100)

    Returns:
        Dict with 'items', 'count', and pagination metadata if paginated.
    """
    base_query = db.session.query(Item).order_by(Item.id.desc())

    # If no pagination requested, return all items
    if page is None:
        items = base_query.all()
        return {
            "items": [i.to_dict() for i in items],
            "count": len(items),
        }

    per_page = max(1, min(per_page or 20, 100))  # Default 20, max 100
    page = max(page, 1)

    total = base_query.count()
    total_pages = (total + per_page - 1) // per_page if total > 0 else 1

    items = base_query.offset((page - 1) * per_page).limit(per_page).all()

    return {
        "items": [i.to_dict() for i in items],
        "count": len(items),
        "pagination": {
            "page": page,
            "per_page": per_page,
            "total": total,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    }


def get_item(item_id: int) -> Item:
    item = db.session.get(Item, item_id)
    if item is None:
        raise NotFound("Item not found")
    return item


def create_item(identity: Identity | None, payload: dict) -> Item:
    """Any signed-in user may list an item; they become its owner."""
    identity = permission_service.require_authenticated(identity)
    patch = validate_payload(model=Item, payload=payload, policy=ITEM_POLICY, partial=False)
    enforce_rules_item(patch)

    item = Item(user_id=identity.user_id, **patch)
    db.session.add(item)
    db.session.commit()
    current_app.logger.info("User %s created item %s", identity.user_id, item.id)
    return item


def update_item(identity: Identity | None, item_id: int, payload: dict) -> Item:
    """Owner, or ITEMUPDATE / ADMIN."""
    item = get_item(item_id)
    permission_service.require_owner_or_any(identity, item.user_id, MANAGE_ITEMS_UPDATE, action=f"ITEM_UPDATE:{item_id}")

    patch = validate_payload(model=Item, payload=payload, policy=ITEM_POLICY, partial=True)
    enforce_rules_item(patch)

    for key, value in patch.items():
        setattr(item, key, value)
    db.session.commit()
    return item


def delete_item(identity: Identity | None, item_id: int) -> dict:
    """
    Owner, or ITEMDELETE / ADMIN.

    Cart rows for the item go with it; orders keep their own snapshots.
    """
    item = get_item(item_id)
    permission_service.require_owner_or_any(identity, item.user_id, MANAGE_ITEMS_DELETE, action=f"ITEM_DELETE:{item_id}")

    removed = item.to_dict()
    cart_service.remove_item_everywhere(item_id)
    db.session.delete(item)
    db.session.commit()
    current_app.logger.info("User %s deleted item %s", identity.user_id, item_id)
    return removed
