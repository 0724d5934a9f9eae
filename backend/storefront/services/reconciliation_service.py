# Overview: Service-layer operations for reconciliation; turns charges without orders into orders.

"""
Reconciliation Service

WHY: A charge is irreversible, but recording its order can still fail
(database outage, crash between commit points). Such charges are written to
reconciliation_records with the exact line snapshot that was charged, and
are materialized later through the same path checkout uses.

INVARIANT: at most one Order per charge_id, however many times a record is
retried and by however many operators at once. The record row is locked
during a retry, and the unique constraint on orders.charge_id settles any
remaining race.
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..errors import NotFound, ReconciliationRequired
from ..extensions import db
from ..models import Order, ReconciliationRecord, RECONCILIATION_PENDING, RECONCILIATION_RESOLVED
from ..time_utils import utcnow
from . import order_service
from .cart_service import CartLine
from .concurrency import lock_for_update, run_with_retry


def record_pending(
    *,
    user_id: int,
    charge_id: str,
    amount: int,
    currency: str,
    idempotency_key: str,
    lines: list[CartLine],
    error: str | None = None,
) -> ReconciliationRecord:
    """Create or refresh the pending record for a charge, in its own transaction."""
    def _op():
        record = lock_for_update(
            db.session.query(ReconciliationRecord).filter_by(charge_id=charge_id)
        ).first()
        if record is None:
            record = ReconciliationRecord(
                charge_id=charge_id,
                user_id=user_id,
                amount=amount,
                currency=currency,
                idempotency_key=idempotency_key,
                lines=[line.to_dict() for line in lines],
                status=RECONCILIATION_PENDING,
                attempts=0,
            )
            db.session.add(record)
        record.last_error = error
        db.session.commit()
        return record

    record = run_with_retry(_op, retry_on=(IntegrityError,))
    current_app.logger.warning(
        "Charge %s for user %s recorded for reconciliation: %s", charge_id, user_id, error
    )
    return record


def _mark_resolved(record: ReconciliationRecord, order: Order) -> None:
    record.status = RECONCILIATION_RESOLVED
    record.order_id = order.id
    record.resolved_at = utcnow()


def _record_failure(charge_id: str, error: str) -> None:
    record = db.session.query(ReconciliationRecord).filter_by(charge_id=charge_id).first()
    if record is not None:
        record.attempts = (record.attempts or 0) + 1
        record.last_error = error
        db.session.commit()


def retry(charge_id: str) -> Order:
    """
    Materialize the order for a pending charge.

    Returns the existing order when the charge was already materialized.
    Raises NotFound for an unknown charge id and ReconciliationRequired when
    the order still cannot be written (attempts and last_error are updated).
    """
    try:
        record = lock_for_update(
            db.session.query(ReconciliationRecord).filter_by(charge_id=charge_id)
        ).first()
        if record is None:
            raise NotFound("Reconciliation record not found")

        existing = order_service.find_by_charge(charge_id)
        if existing is not None:
            if record.status != RECONCILIATION_RESOLVED:
                _mark_resolved(record, existing)
                db.session.commit()
            return existing

        record.attempts = (record.attempts or 0) + 1
        order = order_service.materialize_order(
            user_id=record.user_id,
            lines=[CartLine.from_dict(data) for data in record.lines],
            charge_id=record.charge_id,
            currency=record.currency,
            idempotency_key=record.idempotency_key,
        )
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        existing = order_service.find_by_charge(charge_id)
        if existing is None:
            current_app.logger.exception("Reconciliation of charge %s failed", charge_id)
            _record_failure(charge_id, "Integrity error while recording order")
            raise ReconciliationRequired(charge_id)
        record = db.session.query(ReconciliationRecord).filter_by(charge_id=charge_id).first()
        if record is not None and record.status != RECONCILIATION_RESOLVED:
            _mark_resolved(record, existing)
            db.session.commit()
        return existing
    except NotFound:
        raise
    except Exception as exc:
        # Database failure or an unreadable line snapshot
        db.session.rollback()
        current_app.logger.exception("Reconciliation of charge %s failed", charge_id)
        _record_failure(charge_id, type(exc).__name__)
        raise ReconciliationRequired(charge_id)

    current_app.logger.info("Charge %s reconciled into order %s", charge_id, order.id)
    return order


def retry_pending(limit: int = 50) -> dict:
    """Retry the oldest pending records. Returns counts of resolved and still-pending charges."""
    charge_ids = [
        charge_id
        for (charge_id,) in db.session.query(ReconciliationRecord.charge_id)
        .filter(ReconciliationRecord.status == RECONCILIATION_PENDING)
        .order_by(ReconciliationRecord.created_at.asc(), ReconciliationRecord.id.asc())
        .limit(limit)
        .all()
    ]

    resolved, failed = [], []
    for charge_id in charge_ids:
        try:
            order = retry(charge_id)
        except ReconciliationRequired:
            failed.append(charge_id)
            continue
        resolved.append({"charge_id": charge_id, "order_id": order.id})

    return {"resolved": resolved, "failed": failed}


def list_records(status: str | None = None) -> list[ReconciliationRecord]:
    query = db.session.query(ReconciliationRecord)
    if status:
        query = query.filter(ReconciliationRecord.status == status.upper())
    return query.order_by(ReconciliationRecord.created_at.desc(), ReconciliationRecord.id.desc()).all()
