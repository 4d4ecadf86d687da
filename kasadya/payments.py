"""Payment gateway used by the booking service.

Wallet, bank and cash payments are simulated and receive a local reference.
Card payments are charged through Stripe when ``STRIPE_SECRET_KEY`` is set,
otherwise they are simulated as well.
"""
from __future__ import annotations

import secrets

import stripe
from flask import current_app

PAYMENT_METHODS = ("gcash", "maya", "bank", "cash", "card")


class PaymentError(Exception):
    def __init__(self, error: str, message: str, status_code: int = 400) -> None:
        super().__init__(message)
        self.error = error
        self.message = message
        self.status_code = status_code


def _mock_reference() -> str:
    return f"payment-{secrets.token_hex(4)}"


def _charge_card(
    amount_cents: int, payment_token: str | None, metadata: dict[str, str], idempotency_key: str | None
) -> str:
    stripe.api_key = current_app.config["STRIPE_SECRET_KEY"]
    try:
        intent = stripe.PaymentIntent.create(
            amount=int(amount_cents),
            currency=current_app.config.get("CURRENCY", "php"),
            payment_method=payment_token,
            confirm=True,
            automatic_payment_methods={"enabled": True, "allow_redirects": "never"},
            metadata=metadata,
            idempotency_key=idempotency_key,
        )
    except stripe.error.StripeError as exc:
        current_app.logger.exception("Stripe API error while charging card", exc_info=exc)
        raise PaymentError("payment_error", "An error occurred while processing the payment.", 502) from exc

    if intent.status != "succeeded":
        current_app.logger.warning("Payment intent %s ended in status %s", intent.id, intent.status)
        raise PaymentError("payment_declined", f"Payment was not completed (status: {intent.status})", 402)

    return intent.id


def _uses_stripe(method: str) -> bool:
    return method == "card" and bool(current_app.config.get("STRIPE_SECRET_KEY"))


def check_request(method: str, payment_token: str | None = None) -> None:
    """Raise :class:`PaymentError` if ``method`` cannot be charged right now."""
    if not current_app.config.get("ENABLE_PAYMENTS", True):
        raise PaymentError(
            "payments_unavailable",
            "Payments are not currently available. Please contact support.",
            503,
        )
    if method not in PAYMENT_METHODS:
        raise PaymentError("invalid_payload", f"method must be one of: {', '.join(PAYMENT_METHODS)}")
    if _uses_stripe(method) and not payment_token:
        raise PaymentError("invalid_payload", "payment_token is required for card payments")


def charge(
    amount_cents: int,
    method: str,
    payment_token: str | None = None,
    metadata: dict[str, str] | None = None,
    idempotency_key: str | None = None,
) -> str:
    """Collect ``amount_cents`` with ``method`` and return the gateway reference."""
    check_request(method, payment_token)

    if _uses_stripe(method):
        return _charge_card(amount_cents, payment_token, metadata or {}, idempotency_key)

    return _mock_reference()
