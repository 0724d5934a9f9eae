# Overview: Service-layer operations for carts; encapsulates per-user cart lines and their snapshots.

"""
Cart Service

WHY: A cart is a set of (user, item, quantity) rows. Concurrent adds for the
same user and item must merge into one row without losing increments, so
add-to-cart is a single conditional upsert at the database level rather than
a read-then-write in Python.

Rows never hold quantity 0. Checkout consumes exactly the quantities it
charged for; anything added concurrently stays in the cart.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass

from flask import current_app
from sqlalchemy import delete, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError

from ..errors import NotFound
from ..extensions import db
from ..models import CartItem, Item
from .concurrency import lock_for_update, run_with_retry
from .permission_service import deny_ownership
from .session_service import Identity

_UPSERT_INSERTS = {
    "sqlite": sqlite_insert,
    "postgresql": pg_insert,
}


@dataclass(frozen=True)
class CartLine:
    """A cart row joined with the item fields current at read time."""
    cart_item_id: int
    item_id: int
    quantity: int
    title: str
    description: str
    image: str | None
    large_image: str | None
    price: int

    @property
    def line_total(self) -> int:
        return self.price * self.quantity

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "CartLine":
        return cls(
            cart_item_id=int(data["cart_item_id"]),
            item_id=int(data["item_id"]),
            quantity=int(data["quantity"]),
            title=data["title"],
            description=data.get("description") or "",
            image=data.get("image"),
            large_image=data.get("large_image"),
            price=int(data["price"]),
        )


def _upsert_increment(user_id: int, item_id: int) -> None:
    dialect = db.session.get_bind().dialect.name
    insert = _UPSERT_INSERTS.get(dialect)

    if insert is not None:
        table = CartItem.__table__
        stmt = insert(table).values(user_id=user_id, item_id=item_id, quantity=1)
        stmt = stmt.on_conflict_do_update(
            index_elements=[table.c.user_id, table.c.item_id],
            set_={"quantity": table.c.quantity + 1},
        )
        db.session.execute(stmt)
        db.session.commit()
        return

    # Dialects without ON CONFLICT: lock the row, or insert and let the unique
    # constraint reject a concurrent insert (retried by the caller)
    def _op():
        row = lock_for_update(
            db.session.query(CartItem).filter_by(user_id=user_id, item_id=item_id)
        ).first()
        if row is None:
            db.session.add(CartItem(user_id=user_id, item_id=item_id, quantity=1))
        else:
            row.quantity = CartItem.quantity + 1
        db.session.commit()

    run_with_retry(_op, retry_on=(IntegrityError,))


def add_item(user_id: int, item_id: int) -> CartItem:
    """
    Add one unit of an item to the user's cart.

    A second add of the same item increments the existing row. Raises
    NotFound when the item does not exist.
    """
    if db.session.get(Item, item_id) is None:
        raise NotFound("Item not found")

    try:
        _upsert_increment(user_id, item_id)
    except IntegrityError:
        # Item deleted between the check and the write (foreign key)
        db.session.rollback()
        raise NotFound("Item not found")

    row = db.session.execute(
        select(CartItem)
        .where(CartItem.user_id == user_id, CartItem.item_id == item_id)
        .execution_options(populate_existing=True)
    ).scalar_one()
    current_app.logger.debug("Cart %s: item %s now x%s", user_id, item_id, row.quantity)
    return row


def remove_item(identity: Identity, cart_item_id: int) -> dict:
    """
    Delete a cart row owned by the caller.

    Raises NotFound for a missing row and OwnershipViolation (logged) for a
    row in someone else's cart; in both cases nothing is changed.
    """
    row = db.session.get(CartItem, cart_item_id)
    if row is None:
        raise NotFound("Cart item not found")
    if row.user_id != identity.user_id:
        deny_ownership(identity, f"CART_ITEM:{cart_item_id}")

    removed = row.to_dict()
    db.session.delete(row)
    db.session.commit()
    return removed


def snapshot(user_id: int) -> list[CartLine]:
    """One joined read of the user's cart lines with current item data."""
    rows = db.session.execute(
        select(CartItem, Item)
        .join(Item, Item.id == CartItem.item_id)
        .where(CartItem.user_id == user_id)
        .order_by(CartItem.id.asc())
        .execution_options(populate_existing=True)
    ).all()

    return [
        CartLine(
            cart_item_id=cart_item.id,
            item_id=item.id,
            quantity=cart_item.quantity,
            title=item.title,
            description=item.description or "",
            image=item.image,
            large_image=item.large_image,
            price=item.price,
        )
        for cart_item, item in rows
    ]


def get_cart(user_id: int) -> dict:
    lines = snapshot(user_id)
    return {
        "items": [dict(line.to_dict(), line_total=line.line_total) for line in lines],
        "count": sum(line.quantity for line in lines),
        "total": sum(line.line_total for line in lines),
    }


def consume_lines(user_id: int, lines: list[CartLine]) -> None:
    """
    Take the charged quantities out of the cart. Does not commit.

    Rows whose quantity is at most the charged quantity are deleted; rows
    that grew since the snapshot keep the difference. Rows already removed
    are skipped.
    """
    for line in lines:
        result = db.session.execute(
            delete(CartItem).where(
                CartItem.id == line.cart_item_id,
                CartItem.user_id == user_id,
                CartItem.quantity <= line.quantity,
            )
        )
        if result.rowcount:
            continue
        db.session.execute(
            update(CartItem)
            .where(
                CartItem.id == line.cart_item_id,
                CartItem.user_id == user_id,
                CartItem.quantity > line.quantity,
            )
            .values(quantity=CartItem.quantity - line.quantity)
        )


def remove_item_everywhere(item_id: int) -> int:
    """Delete every cart row for an item. Does not commit."""
    result = db.session.execute(delete(CartItem).where(CartItem.item_id == item_id))
    return result.rowcount or 0
