# Overview: Service-layer operations for checkout; charges the cart and records the order.

"""
Checkout Saga

    START -> CART_LOADED -> CART_VALIDATED -> CHARGED -> ORDER_RECORDED -> CART_CLEARED
    failure exits: EMPTY_CART, PAYMENT_FAILED, RECONCILIATION_PENDING

WHY: The payment gateway and the database fail independently and share no
transaction. The saga keeps exactly one order per charge by:

- deriving an idempotency key from the user, the attempt id and the cart
  lines, and sending it with the charge (the gateway deduplicates on it).
  A checkout without a client attempt id gets a fresh one, so cart contents
  alone never identify a payment
- returning the existing order when that key has already been recorded
- writing the order and clearing the charged cart lines in one transaction
- turning any failure after a successful charge into a reconciliation record
  instead of an error the client might answer with a second payment

Nothing is charged for an empty cart, and nothing is written when the charge
is declined.
"""

from __future__ import annotations

import hashlib
import uuid

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..errors import EmptyCartError, PaymentError, ReconciliationRequired, ValidationError
from ..extensions import db
from ..models import Order
from . import cart_service, order_service, permission_service, reconciliation_service
from .cart_service import CartLine
from .payment_gateway import ChargeDeclined, ChargeResult, GatewayError, GatewayTimeout, get_payment_gateway
from .session_service import Identity

START = "START"
CART_LOADED = "CART_LOADED"
CART_VALIDATED = "CART_VALIDATED"
CHARGED = "CHARGED"
ORDER_RECORDED = "ORDER_RECORDED"
CART_CLEARED = "CART_CLEARED"
EMPTY_CART = "EMPTY_CART"
PAYMENT_FAILED = "PAYMENT_FAILED"
RECONCILIATION_PENDING = "RECONCILIATION_PENDING"

AMBIGUOUS_PAYMENT_MESSAGE = (
    "We could not confirm your payment. Please retry with the same attempt id; "
    "you will not be charged twice."
)


def _transition(user_id: int, state: str, **details) -> None:
    extra = " ".join(f"{k}={v}" for k, v in details.items())
    current_app.logger.info("checkout user=%s state=%s %s", user_id, state, extra)


def make_idempotency_key(user_id: int, attempt_id: str | None, lines: list[CartLine]) -> str:
    """
    Stable key for one payment attempt over one cart.

    Same user, attempt id and cart lines give the same key; any change to a
    line (quantity, price, item) gives a new one.
    """
    digest = hashlib.sha256()
    digest.update(f"user:{user_id}\n".encode("utf-8"))
    digest.update(f"attempt:{attempt_id or ''}\n".encode("utf-8"))
    for line in lines:
        digest.update(f"{line.cart_item_id}:{line.item_id}:{line.quantity}:{line.price}\n".encode("utf-8"))
    return digest.hexdigest()


def _charge(gateway, *, user_id: int, amount: int, currency: str, payment_token: str, key: str,
            attempt_id: str) -> ChargeResult:
    try:
        return gateway.charge(amount, currency, payment_token, key)
    except ChargeDeclined as exc:
        _transition(user_id, PAYMENT_FAILED, reason="declined")
        raise PaymentError(str(exc) or "Your card was declined") from exc
    except GatewayError as exc:
        _transition(user_id, PAYMENT_FAILED, reason="gateway_error")
        raise PaymentError(str(exc) or None) from exc
    except GatewayTimeout:
        current_app.logger.warning("Charge for user %s timed out; re-querying by idempotency key", user_id)

    try:
        found = gateway.find_charge(key)
    except (GatewayTimeout, GatewayError):
        current_app.logger.warning("Charge lookup for user %s failed", user_id, exc_info=True)
        found = None
    if found is None:
        _transition(user_id, PAYMENT_FAILED, reason="ambiguous")
        raise PaymentError(AMBIGUOUS_PAYMENT_MESSAGE, ambiguous=True, attempt_id=attempt_id)
    return found


def _escalate(*, user_id: int, charge: ChargeResult, amount: int, currency: str, key: str,
              lines: list[CartLine], error: str) -> ReconciliationRequired:
    _transition(user_id, RECONCILIATION_PENDING, charge_id=charge.charge_id)
    try:
        reconciliation_service.record_pending(
            user_id=user_id,
            charge_id=charge.charge_id,
            amount=amount,
            currency=currency,
            idempotency_key=key,
            lines=lines,
            error=error,
        )
    except Exception:
        db.session.rollback()
        current_app.logger.critical(
            "UNRECORDED CHARGE %s for user %s (amount %s %s, key %s): reconciliation record could not be written",
            charge.charge_id, user_id, amount, currency, key,
            exc_info=True,
        )
    return ReconciliationRequired(charge.charge_id)


def checkout(identity: Identity, payment_token: str, attempt_id: str | None = None, *, gateway=None) -> Order:
    """
    Charge the caller's cart and record the order.

    Without an attempt_id every call is a new payment attempt. Raises
    EmptyCartError (no gateway call), PaymentError (nothing written;
    `ambiguous` set when the client should retry with `attempt_id`) or
    ReconciliationRequired (charged, order pending).
    """
    permission_service.require_authenticated(identity)
    user_id = identity.user_id
    if not payment_token or not isinstance(payment_token, str):
        raise ValidationError("A payment token is required")
    gateway = gateway or get_payment_gateway()
    currency = current_app.config["PAYMENT_CURRENCY"]

    _transition(user_id, START)
    lines = cart_service.snapshot(user_id)
    _transition(user_id, CART_LOADED, lines=len(lines))

    if not lines:
        _transition(user_id, EMPTY_CART)
        raise EmptyCartError()

    amount = sum(line.line_total for line in lines)
    if amount <= 0:
        raise ValidationError("Nothing to charge")
    if not attempt_id:
        attempt_id = uuid.uuid4().hex
    key = make_idempotency_key(user_id, attempt_id, lines)
    _transition(user_id, CART_VALIDATED, amount=amount, key=key[:12])

    replay = order_service.find_by_idempotency_key(key)
    if replay is not None:
        current_app.logger.info("checkout user=%s replayed order %s", user_id, replay.id)
        return replay

    charge = _charge(gateway, user_id=user_id, amount=amount, currency=currency,
                     payment_token=payment_token, key=key, attempt_id=attempt_id)
    _transition(user_id, CHARGED, charge_id=charge.charge_id)

    try:
        order = order_service.materialize_order(
            user_id=user_id,
            lines=lines,
            charge_id=charge.charge_id,
            currency=currency,
            idempotency_key=key,
        )
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        existing = order_service.find_by_charge(charge.charge_id) or order_service.find_by_idempotency_key(key)
        if existing is not None:
            current_app.logger.info("checkout user=%s charge %s already recorded as order %s",
                                    user_id, charge.charge_id, existing.id)
            return existing
        raise _escalate(user_id=user_id, charge=charge, amount=amount, currency=currency,
                        key=key, lines=lines, error=str(exc.orig)) from exc
    except Exception as exc:
        db.session.rollback()
        current_app.logger.exception("Recording order for charge %s failed", charge.charge_id)
        raise _escalate(user_id=user_id, charge=charge, amount=amount, currency=currency,
                        key=key, lines=lines, error=type(exc).__name__) from exc

    _transition(user_id, ORDER_RECORDED, order_id=order.id, total=order.total)
    _transition(user_id, CART_CLEARED, order_id=order.id)
    return order
