"""
Stripe gateway tests.

Verifies:
- Charges carry the idempotency key in the request and in metadata
- Connection failures on charge are reported as timeouts
- Any failure while looking a charge up is reported as a timeout
- A checkout whose charge and lookup both fail is ambiguous, never a 500
"""

import pytest
import stripe

from storefront.errors import PaymentError
from storefront.services import cart_service, checkout_service
from storefront.services.payment_gateway import ChargeDeclined, GatewayTimeout, StripeGateway

from conftest import identity_for


@pytest.fixture
def stripe_gateway(monkeypatch):
    # The adapter configures the stripe module globally; restore it afterwards
    monkeypatch.setattr(stripe, "default_http_client", None)
    monkeypatch.setattr(stripe, "max_network_retries", stripe.max_network_retries)
    return StripeGateway(api_key="sk_test_unused", timeout=2.0)


def _raise(exc):
    def _call(**kwargs):
        raise exc
    return _call


class TestCharge:
    def test_key_sent_twice(self, stripe_gateway, monkeypatch):
        calls = []

        def create(**kwargs):
            calls.append(kwargs)
            return {"id": "ch_1", "amount": kwargs["amount"], "currency": kwargs["currency"], "status": "succeeded"}

        monkeypatch.setattr(stripe.Charge, "create", create)
        result = stripe_gateway.charge(1300, "EUR", "tok_visa", "key-1")

        assert result.charge_id == "ch_1"
        assert result.currency == "EUR"
        assert calls[0]["idempotency_key"] == "key-1"
        assert calls[0]["metadata"] == {"idempotency_key": "key-1"}

    def test_card_error_is_a_decline(self, stripe_gateway, monkeypatch):
        monkeypatch.setattr(stripe.Charge, "create", _raise(stripe.CardError("declined", None, "card_declined")))
        with pytest.raises(ChargeDeclined):
            stripe_gateway.charge(1300, "EUR", "tok_chargeDeclined", "key-1")

    def test_connection_error_is_a_timeout(self, stripe_gateway, monkeypatch):
        monkeypatch.setattr(stripe.Charge, "create", _raise(stripe.APIConnectionError("read timed out")))
        with pytest.raises(GatewayTimeout):
            stripe_gateway.charge(1300, "EUR", "tok_visa", "key-1")


class TestFindCharge:
    @pytest.mark.parametrize(
        "error",
        [
            stripe.APIConnectionError("read timed out"),
            stripe.InvalidRequestError("Search is not available", None),
            stripe.AuthenticationError("Invalid API key"),
            stripe.RateLimitError("Too many requests"),
        ],
    )
    def test_every_failure_is_a_timeout(self, stripe_gateway, monkeypatch, error):
        monkeypatch.setattr(stripe.Charge, "search", _raise(error))
        with pytest.raises(GatewayTimeout):
            stripe_gateway.find_charge("key-1")


class TestCheckoutWithStripe:
    def test_failed_lookup_is_ambiguous(self, db_session, user, other_user, make_item, stripe_gateway, monkeypatch):
        item = make_item(other_user, price=500)
        cart_service.add_item(user.id, item.id)
        monkeypatch.setattr(stripe.Charge, "create", _raise(stripe.APIConnectionError("read timed out")))
        monkeypatch.setattr(stripe.Charge, "search", _raise(stripe.InvalidRequestError("Search is not available", None)))

        with pytest.raises(PaymentError) as excinfo:
            checkout_service.checkout(identity_for(user), "tok_visa", "attempt-1", gateway=stripe_gateway)

        assert excinfo.value.ambiguous is True
        assert excinfo.value.attempt_id == "attempt-1"
        assert len(cart_service.snapshot(user.id)) == 1
