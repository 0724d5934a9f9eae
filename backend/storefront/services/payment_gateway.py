# Overview: Payment gateway adapter (Stripe charges) with idempotent charge and lookup by key.

"""
Payment Gateway

The checkout saga talks to the processor through two calls:

- charge(amount, currency, token, idempotency_key) -> ChargeResult
- find_charge(idempotency_key) -> ChargeResult | None

Every charge carries an idempotency key, both as Stripe's request-level
Idempotency-Key and in the charge metadata, so a retried or re-queried
payment never produces a second charge.

Failures are split in two: ChargeDeclined means the card was refused and no
money moved; GatewayTimeout means the outcome is unknown and the caller must
look the charge up by key before deciding.
"""

from __future__ import annotations

from dataclasses import dataclass

import stripe
from flask import current_app


@dataclass(frozen=True)
class ChargeResult:
    charge_id: str
    amount: int
    currency: str
    status: str = "succeeded"


class GatewayError(Exception):
    """The processor rejected the request; no charge was made."""


class ChargeDeclined(GatewayError):
    """The card was declined."""


class GatewayTimeout(Exception):
    """No definite answer from the processor; the charge may or may not exist."""


class StripeGateway:
    def __init__(self, *, api_key: str, timeout: float = 10.0):
        self.api_key = api_key
        self.timeout = timeout
        # Bounded timeout, no automatic network retries: ambiguity is handled by find_charge
        stripe.default_http_client = stripe.RequestsClient(timeout=timeout)
        stripe.max_network_retries = 0

    @staticmethod
    def _result(charge) -> ChargeResult:
        return ChargeResult(
            charge_id=charge["id"],
            amount=int(charge["amount"]),
            currency=str(charge["currency"]).upper(),
            status=charge["status"],
        )

    def charge(self, amount: int, currency: str, token: str, idempotency_key: str) -> ChargeResult:
        try:
            charge = stripe.Charge.create(
                api_key=self.api_key,
                amount=amount,
                currency=currency.lower(),
                source=token,
                metadata={"idempotency_key": idempotency_key},
                idempotency_key=idempotency_key,
            )
        except stripe.CardError as exc:
            raise ChargeDeclined(exc.user_message or "Your card was declined") from exc
        except (stripe.APIConnectionError, stripe.APIError) as exc:
            raise GatewayTimeout(str(exc)) from exc
        except stripe.StripeError as exc:
            raise GatewayError(exc.user_message or "Payment could not be processed") from exc

        if charge["status"] == "failed":
            raise ChargeDeclined(charge.get("failure_message") or "Your card was declined")
        return self._result(charge)

    def find_charge(self, idempotency_key: str) -> ChargeResult | None:
        """
        Look up a successful or pending charge by its idempotency key.

        NOTE: Stripe search is eventually consistent; a charge made seconds
        ago may not be visible yet. Callers treat None as "unknown", not
        "never charged". Every lookup failure raises GatewayTimeout.
        """
        try:
            found = stripe.Charge.search(
                api_key=self.api_key,
                query=f"metadata['idempotency_key']:'{idempotency_key}'",
                limit=1,
            )
        except stripe.StripeError as exc:
            # Any lookup failure leaves the charge outcome unknown
            raise GatewayTimeout(str(exc)) from exc

        for charge in found.data:
            if charge["status"] in ("succeeded", "pending"):
                return self._result(charge)
        return None


def init_payment_gateway(app) -> None:
    """Register the Stripe gateway unless one is already installed (tests)."""
    if "payment_gateway" in app.extensions:
        return
    app.extensions["payment_gateway"] = StripeGateway(
        api_key=app.config["STRIPE_SECRET_KEY"],
        timeout=app.config["PAYMENT_TIMEOUT_SECONDS"],
    )


def get_payment_gateway():
    return current_app.extensions["payment_gateway"]
