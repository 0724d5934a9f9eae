"""
Pytest fixtures for storefront backend tests.

Provides test database setup, fake payment gateway and mailer, user/item
fixtures, and test client.
"""

import pytest

from storefront import create_app
from storefront.extensions import db
from storefront.models import Item, UserPermission
from storefront.services import auth_service, session_service
from storefront.services.payment_gateway import ChargeDeclined, ChargeResult, GatewayTimeout
from storefront.services.session_service import Identity

PASSWORD = "Password123!"


class FakeGateway:
    """
    In-memory payment processor.

    Deduplicates on idempotency key like the real one. `mode` selects the
    outcome of the next charges:
    - "ok": succeed
    - "decline": raise ChargeDeclined, nothing recorded
    - "timeout_charged": record the charge, then raise GatewayTimeout
    - "timeout_lost": raise GatewayTimeout without charging
    """

    def __init__(self):
        self.mode = "ok"
        self.charges = {}
        self.charge_calls = 0
        self.find_calls = 0
        self.on_charge = None

    def charge(self, amount, currency, token, idempotency_key):
        self.charge_calls += 1
        if self.on_charge is not None:
            self.on_charge()
        if self.mode == "decline":
            raise ChargeDeclined("Your card was declined")
        if self.mode == "timeout_lost":
            raise GatewayTimeout("read timed out")

        result = self.charges.get(idempotency_key)
        if result is None:
            result = ChargeResult(
                charge_id=f"ch_test_{len(self.charges) + 1}",
                amount=amount,
                currency=currency,
            )
            self.charges[idempotency_key] = result

        if self.mode == "timeout_charged":
            raise GatewayTimeout("read timed out")
        return result

    def find_charge(self, idempotency_key):
        self.find_calls += 1
        return self.charges.get(idempotency_key)


class RecordingMailer:
    def __init__(self):
        self.sent = []

    def send(self, to, subject, html_body):
        self.sent.append({"to": to, "subject": subject, "html": html_body})


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'APP_SECRET': 'test-signing-secret',
        'BCRYPT_ROUNDS': 4,
        'STRIPE_SECRET_KEY': 'sk_test_unused',
        'FRONTEND_URL': 'http://localhost:7777',
        'PAYMENT_CURRENCY': 'EUR',
        'REVEAL_NONEXISTENT_ACCOUNTS': False,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function', autouse=True)
def gateway(app):
    fake = FakeGateway()
    app.extensions["payment_gateway"] = fake
    return fake


@pytest.fixture(scope='function', autouse=True)
def mailer(app):
    fake = RecordingMailer()
    app.extensions["mailer"] = fake
    return fake


@pytest.fixture(scope='function', autouse=True)
def reset_config(app):
    """Undo per-test config tweaks."""
    saved = dict(app.config)
    yield
    app.config.clear()
    app.config.update(saved)


@pytest.fixture(scope='function')
def make_user(db_session):
    """Factory: signup a user and optionally replace their permissions."""
    def _make(email, name="Test User", permissions=None):
        user = auth_service.signup(email, name, PASSWORD)
        if permissions is not None:
            for row in list(user.permission_rows):
                if row.code not in permissions:
                    user.permission_rows.remove(row)
            for code in sorted(set(permissions) - user.permissions):
                user.permission_rows.append(UserPermission(code=code))
            db_session.commit()
        return user
    return _make


@pytest.fixture(scope='function')
def user(make_user):
    return make_user("customer@example.com", "Customer")


@pytest.fixture(scope='function')
def other_user(make_user):
    return make_user("other@example.com", "Other")


@pytest.fixture(scope='function')
def admin(make_user):
    return make_user("admin@example.com", "Admin", permissions={"ADMIN", "USER"})


@pytest.fixture(scope='function')
def make_item(db_session):
    def _make(owner, title="Thing", price=500, **fields):
        item = Item(user_id=owner.id, title=title, price=price, description=fields.pop("description", ""), **fields)
        db_session.add(item)
        db_session.commit()
        return item
    return _make


def identity_for(user) -> Identity:
    return Identity.from_user(user)


def token_for(user) -> str:
    return session_service.issue_token(user.id)


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}
