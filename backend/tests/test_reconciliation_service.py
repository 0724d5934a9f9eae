"""
Reconciliation tests.

Verifies:
- A pending charge is materialized from its stored snapshot
- Retrying any number of times yields exactly one order per charge
- A retry that fails again stays pending with the error recorded
"""

import pytest
from sqlalchemy.exc import OperationalError

from storefront.errors import NotFound, ReconciliationRequired
from storefront.models import Order, ReconciliationRecord, RECONCILIATION_PENDING, RECONCILIATION_RESOLVED
from storefront.services import cart_service, checkout_service, order_service, reconciliation_service

from conftest import identity_for


def _boom(**kwargs):
    raise OperationalError("INSERT INTO orders", {}, Exception("disk I/O error"))


@pytest.fixture
def pending_charge(db_session, user, other_user, make_item, gateway, monkeypatch):
    """A charge that went through while the order could not be written."""
    item = make_item(other_user, title="Lamp", price=2500)
    cart_service.add_item(user.id, item.id)
    cart_service.add_item(user.id, item.id)

    with monkeypatch.context() as m:
        m.setattr(order_service, "materialize_order", _boom)
        with pytest.raises(ReconciliationRequired) as excinfo:
            checkout_service.checkout(identity_for(user), "tok_visa", "attempt-1")
    return excinfo.value.charge_id


def _corrupt(db_session, charge_id):
    record = db_session.query(ReconciliationRecord).filter_by(charge_id=charge_id).one()
    record.lines = [{"quantity": "two"}]
    db_session.commit()


class TestRetry:
    def test_materializes_from_snapshot(self, db_session, user, pending_charge):
        order = reconciliation_service.retry(pending_charge)

        assert order.charge_id == pending_charge
        assert order.user_id == user.id
        assert order.total == 5000
        assert [(i.title, i.quantity) for i in order.items] == [("Lamp", 2)]
        assert cart_service.snapshot(user.id) == []

        record = db_session.query(ReconciliationRecord).filter_by(charge_id=pending_charge).one()
        assert record.status == RECONCILIATION_RESOLVED
        assert record.order_id == order.id
        assert record.resolved_at is not None

    def test_exactly_one_order_per_charge(self, db_session, pending_charge):
        first = reconciliation_service.retry(pending_charge)
        second = reconciliation_service.retry(pending_charge)
        third = reconciliation_service.retry(pending_charge)

        assert first.id == second.id == third.id
        assert db_session.query(Order).filter_by(charge_id=pending_charge).count() == 1

    def test_existing_order_marks_record_resolved(self, db_session, user, pending_charge):
        # The client retried checkout and the order landed that way
        order = checkout_service.checkout(identity_for(user), "tok_visa", "attempt-1")
        assert order.charge_id == pending_charge

        assert reconciliation_service.retry(pending_charge).id == order.id
        assert reconciliation_service.list_records(RECONCILIATION_PENDING) == []

    def test_failed_retry_stays_pending(self, db_session, pending_charge, monkeypatch):
        monkeypatch.setattr(order_service, "materialize_order", _boom)
        with pytest.raises(ReconciliationRequired):
            reconciliation_service.retry(pending_charge)

        record = db_session.query(ReconciliationRecord).filter_by(charge_id=pending_charge).one()
        assert record.status == RECONCILIATION_PENDING
        assert record.attempts == 1
        assert record.last_error == "OperationalError"

    def test_unreadable_snapshot_stays_pending(self, db_session, pending_charge):
        _corrupt(db_session, pending_charge)

        with pytest.raises(ReconciliationRequired):
            reconciliation_service.retry(pending_charge)

        db_session.expire_all()
        record = db_session.query(ReconciliationRecord).filter_by(charge_id=pending_charge).one()
        assert record.status == RECONCILIATION_PENDING
        assert record.attempts == 1
        assert record.last_error == "KeyError"
        assert db_session.query(Order).count() == 0

    def test_unknown_charge(self, db_session):
        with pytest.raises(NotFound):
            reconciliation_service.retry("ch_missing")


class TestBatch:
    def test_retry_pending(self, db_session, pending_charge):
        result = reconciliation_service.retry_pending(limit=10)
        assert [entry["charge_id"] for entry in result["resolved"]] == [pending_charge]
        assert result["failed"] == []
        assert reconciliation_service.retry_pending(limit=10) == {"resolved": [], "failed": []}

    def test_bad_record_does_not_stop_batch(self, db_session, user, pending_charge):
        reconciliation_service.record_pending(
            user_id=user.id,
            charge_id="ch_broken",
            amount=100,
            currency="EUR",
            idempotency_key="key-broken",
            lines=[],
        )
        _corrupt(db_session, "ch_broken")

        result = reconciliation_service.retry_pending(limit=10)

        assert [entry["charge_id"] for entry in result["resolved"]] == [pending_charge]
        assert result["failed"] == ["ch_broken"]

    def test_list_records_by_status(self, db_session, pending_charge):
        assert [r.charge_id for r in reconciliation_service.list_records("pending")] == [pending_charge]
        assert reconciliation_service.list_records(RECONCILIATION_RESOLVED) == []
