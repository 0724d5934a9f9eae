from __future__ import annotations

from sqlalchemy import event
from sqlalchemy.orm import object_session

from ..extensions import db
from ..time_utils import to_utc_z


class Order(db.Model):
    """
    A paid order.

    IMMUTABLE: Orders and their lines are written once, at checkout or by
    reconciliation, and never updated. charge_id is unique so that a payment
    can materialize at most one order no matter how often it is retried.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.UniqueConstraint("charge_id", name="uq_orders_charge_id"),
        db.UniqueConstraint("idempotency_key", name="uq_orders_idempotency_key"),
        db.Index("ix_orders_user_created", "user_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    # Computed once from the line snapshots (minor units)
    total = db.Column(db.Integer, nullable=False)
    currency = db.Column(db.String(3), nullable=False)

    # Gateway reference
    charge_id = db.Column(db.String(255), nullable=False)
    idempotency_key = db.Column(db.String(128), nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    items = db.relationship(
        "OrderItem",
        back_populates="order",
        order_by="OrderItem.position",
        lazy="selectin",
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "total": self.total,
            "currency": self.currency,
            "charge_id": self.charge_id,
            "created_at": to_utc_z(self.created_at),
            "items": [line.to_dict() for line in self.items],
        }


class OrderItem(db.Model):
    """Snapshot of an item's title/price/description/images at checkout time."""
    __tablename__ = "order_items"
    __table_args__ = (
        db.UniqueConstraint("order_id", "position", name="uq_order_items_position"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    position = db.Column(db.Integer, nullable=False)

    title = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=False, default="")
    image = db.Column(db.String(512), nullable=True)
    large_image = db.Column(db.String(512), nullable=True)
    price = db.Column(db.Integer, nullable=False)
    quantity = db.Column(db.Integer, nullable=False)

    order = db.relationship("Order", back_populates="items")

    @property
    def line_total(self) -> int:
        return self.price * self.quantity

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "image": self.image,
            "large_image": self.large_image,
            "price": self.price,
            "quantity": self.quantity,
            "line_total": self.line_total,
        }


@event.listens_for(Order, "before_update")
@event.listens_for(OrderItem, "before_update")
def _reject_order_updates(mapper, connection, target):
    session = object_session(target)
    if session is not None and session.is_modified(target, include_collections=False):
        raise ValueError(f"{type(target).__name__} {target.id} is immutable")


RECONCILIATION_PENDING = "PENDING"
RECONCILIATION_RESOLVED = "RESOLVED"


class ReconciliationRecord(db.Model):
    """
    A charge that succeeded at the gateway but has no order yet.

    WHY: The payment is irreversible; if recording the order fails we keep
    everything needed to materialize it later (the charged line snapshot),
    keyed by the gateway's charge id.
    """
    __tablename__ = "reconciliation_records"
    __table_args__ = (
        db.UniqueConstraint("charge_id", name="uq_reconciliation_charge_id"),
        db.Index("ix_reconciliation_status_created", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    charge_id = db.Column(db.String(255), nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    amount = db.Column(db.Integer, nullable=False)
    currency = db.Column(db.String(3), nullable=False)
    idempotency_key = db.Column(db.String(128), nullable=False)

    # Charged cart lines: [{cart_item_id, item_id, quantity, title, price, ...}]
    lines = db.Column(db.JSON, nullable=False)

    status = db.Column(db.String(16), nullable=False, default=RECONCILIATION_PENDING, index=True)
    attempts = db.Column(db.Integer, nullable=False, default=0)
    last_error = db.Column(db.Text, nullable=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    resolved_at = db.Column(db.DateTime(timezone=True), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "charge_id": self.charge_id,
            "user_id": self.user_id,
            "amount": self.amount,
            "currency": self.currency,
            "status": self.status,
            "attempts": self.attempts,
            "last_error": self.last_error,
            "order_id": self.order_id,
            "created_at": to_utc_z(self.created_at),
            "resolved_at": to_utc_z(self.resolved_at) if self.resolved_at else None,
        }
