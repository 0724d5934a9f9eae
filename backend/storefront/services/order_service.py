# Overview: Service-layer operations for orders; materializes paid carts and serves order queries.

"""
Order Service

WHY: Checkout and reconciliation must turn a charge into an order in exactly
the same way. materialize_order is that one path: it writes the order and its
line snapshots, takes the charged quantities out of the cart and resolves any
pending reconciliation record, all without committing so the caller owns the
transaction boundary.
"""

from __future__ import annotations

from sqlalchemy import select

from ..errors import NotFound
from ..extensions import db
from ..models import Order, OrderItem, ReconciliationRecord, RECONCILIATION_PENDING, RECONCILIATION_RESOLVED
from ..permissions import VIEW_ANY_ORDER
from ..time_utils import utcnow
from . import cart_service, permission_service
from .cart_service import CartLine
from .session_service import Identity


def find_by_charge(charge_id: str) -> Order | None:
    return db.session.execute(select(Order).where(Order.charge_id == charge_id)).scalar_one_or_none()


def find_by_idempotency_key(idempotency_key: str) -> Order | None:
    return db.session.execute(
        select(Order).where(Order.idempotency_key == idempotency_key)
    ).scalar_one_or_none()


def materialize_order(
    *,
    user_id: int,
    lines: list[CartLine],
    charge_id: str,
    currency: str,
    idempotency_key: str,
) -> Order:
    """
    Stage an order for a charge. Does not commit.

    The total is computed from the same snapshot that was charged. A unique
    violation on charge_id at commit time means another request already
    recorded this charge.
    """
    order = Order(
        user_id=user_id,
        total=sum(line.line_total for line in lines),
        currency=currency,
        charge_id=charge_id,
        idempotency_key=idempotency_key,
    )
    order.items = [
        OrderItem(
            position=position,
            title=line.title,
            description=line.description,
            image=line.image,
            large_image=line.large_image,
            price=line.price,
            quantity=line.quantity,
        )
        for position, line in enumerate(lines)
    ]
    db.session.add(order)
    db.session.flush()

    cart_service.consume_lines(user_id, lines)

    pending = db.session.execute(
        select(ReconciliationRecord).where(
            ReconciliationRecord.charge_id == charge_id,
            ReconciliationRecord.status == RECONCILIATION_PENDING,
        )
    ).scalar_one_or_none()
    if pending is not None:
        pending.status = RECONCILIATION_RESOLVED
        pending.order_id = order.id
        pending.resolved_at = utcnow()

    return order


def get_order(identity: Identity, order_id: int) -> Order:
    """Owner or ADMIN only."""
    order = db.session.get(Order, order_id)
    if order is None:
        raise NotFound("Order not found")
    permission_service.require_owner_or_any(identity, order.user_id, VIEW_ANY_ORDER, action=f"ORDER:{order_id}")
    return order


def list_orders(identity: Identity) -> list[Order]:
    """The caller's own orders, newest first."""
    return (
        db.session.query(Order)
        .filter(Order.user_id == identity.user_id)
        .order_by(Order.created_at.desc(), Order.id.desc())
        .all()
    )
