"""
Payment gateway adapter.

The rest of the application sees gateway state only through the plain
dataclasses below; ``StripeGateway`` is the single place that talks to the
Stripe SDK. Amounts crossing this boundary are in major currency units.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, UTC
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Protocol

import stripe

from reservapp.core.exceptions import PaymentGatewayException, ValidationException

logger = logging.getLogger(__name__)

# Refund reasons accepted by Stripe; anything else is kept only in our metadata
STRIPE_REFUND_REASONS = frozenset({"duplicate", "fraudulent", "requested_by_customer"})

CENTS = Decimal("0.01")


def to_minor_units(amount: Decimal) -> int:
    return int((Decimal(amount) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def from_minor_units(amount: int | None) -> Decimal:
    return (Decimal(amount or 0) / 100).quantize(CENTS)


@dataclass(frozen=True)
class GatewayIntent:
    """Payment intent as reported by the gateway"""

    id: str
    status: str
    amount: Decimal
    currency: str
    metadata: dict[str, Any] = field(default_factory=dict)
    client_secret: str | None = None
    last_error: str | None = None
    requires_action: bool = False


@dataclass(frozen=True)
class GatewayRefund:
    id: str
    amount: Decimal
    currency: str
    status: str
    reason: str | None
    created: datetime


@dataclass(frozen=True)
class GatewayCharge:
    """Charge snapshot; ``amount_refunded`` is cumulative"""

    id: str
    payment_intent_id: str | None
    amount: Decimal
    amount_refunded: Decimal
    currency: str


@dataclass(frozen=True)
class GatewayEvent:
    """Verified webhook event with its payload already converted"""

    id: str
    type: str
    object_id: str | None = None
    intent: GatewayIntent | None = None
    charge: GatewayCharge | None = None


class PaymentGateway(Protocol):
    def create_payment_intent(
        self,
        amount: Decimal,
        currency: str,
        metadata: dict[str, str] | None = None,
        description: str | None = None,
        customer_id: str | None = None,
    ) -> GatewayIntent: ...

    def confirm_payment_intent(
        self, payment_intent_id: str, payment_method_id: str | None = None
    ) -> GatewayIntent: ...

    def retrieve_payment_intent(self, payment_intent_id: str) -> GatewayIntent: ...

    def create_refund(
        self, payment_intent_id: str, amount: Decimal | None = None, reason: str | None = None
    ) -> GatewayRefund: ...

    def construct_webhook_event(self, payload: bytes, signature: str) -> GatewayEvent: ...


def _plain_dict(value: Any) -> dict[str, Any]:
    if value is None:
        return {}
    if hasattr(value, "to_dict"):
        return dict(value.to_dict())
    return dict(value)


def intent_from_stripe(obj: Any) -> GatewayIntent:
    last_error = getattr(obj, "last_payment_error", None)
    return GatewayIntent(
        id=obj.id,
        status=obj.status,
        amount=from_minor_units(obj.amount),
        currency=obj.currency,
        metadata=_plain_dict(getattr(obj, "metadata", None)),
        client_secret=getattr(obj, "client_secret", None),
        last_error=getattr(last_error, "message", None) if last_error else None,
        requires_action=obj.status == "requires_action",
    )


def refund_from_stripe(obj: Any) -> GatewayRefund:
    return GatewayRefund(
        id=obj.id,
        amount=from_minor_units(obj.amount),
        currency=obj.currency,
        status=obj.status,
        reason=getattr(obj, "reason", None),
        created=datetime.fromtimestamp(obj.created, UTC),
    )


def charge_from_stripe(obj: Any) -> GatewayCharge:
    payment_intent = getattr(obj, "payment_intent", None)
    if payment_intent is not None and not isinstance(payment_intent, str):
        payment_intent = payment_intent.id
    return GatewayCharge(
        id=obj.id,
        payment_intent_id=payment_intent,
        amount=from_minor_units(obj.amount),
        amount_refunded=from_minor_units(obj.amount_refunded),
        currency=obj.currency,
    )


class StripeGateway:
    """Stripe-backed payment gateway"""

    def __init__(self, api_key: str, webhook_secret: str, api_version: str | None = None):
        self.api_key = api_key
        self.webhook_secret = webhook_secret
        self.api_version = api_version

    def _request_options(self) -> dict[str, Any]:
        options: dict[str, Any] = {"api_key": self.api_key}
        if self.api_version:
            options["stripe_version"] = self.api_version
        return options

    def create_payment_intent(
        self,
        amount: Decimal,
        currency: str,
        metadata: dict[str, str] | None = None,
        description: str | None = None,
        customer_id: str | None = None,
    ) -> GatewayIntent:
        params: dict[str, Any] = {
            "amount": to_minor_units(amount),
            "currency": currency,
            "automatic_payment_methods": {"enabled": True},
            "metadata": {"source": "reservapp-api", **(metadata or {})},
        }
        if description:
            params["description"] = description
        if customer_id:
            params["customer"] = customer_id

        try:
            intent = stripe.PaymentIntent.create(**params, **self._request_options())
        except stripe.StripeError as e:
            logger.error("Stripe create_payment_intent failed: %s", e)
            raise PaymentGatewayException("Payment provider error") from e
        return intent_from_stripe(intent)

    def confirm_payment_intent(
        self, payment_intent_id: str, payment_method_id: str | None = None
    ) -> GatewayIntent:
        params: dict[str, Any] = {}
        if payment_method_id:
            params["payment_method"] = payment_method_id

        try:
            intent = stripe.PaymentIntent.confirm(
                payment_intent_id, **params, **self._request_options()
            )
        except stripe.StripeError as e:
            logger.error("Stripe confirm_payment_intent %s failed: %s", payment_intent_id, e)
            raise PaymentGatewayException("Payment provider error") from e
        return intent_from_stripe(intent)

    def retrieve_payment_intent(self, payment_intent_id: str) -> GatewayIntent:
        try:
            intent = stripe.PaymentIntent.retrieve(payment_intent_id, **self._request_options())
        except stripe.StripeError as e:
            logger.error("Stripe retrieve_payment_intent %s failed: %s", payment_intent_id, e)
            raise PaymentGatewayException("Payment provider error") from e
        return intent_from_stripe(intent)

    def create_refund(
        self, payment_intent_id: str, amount: Decimal | None = None, reason: str | None = None
    ) -> GatewayRefund:
        params: dict[str, Any] = {"payment_intent": payment_intent_id}
        if amount is not None:
            params["amount"] = to_minor_units(amount)
        if reason in STRIPE_REFUND_REASONS:
            params["reason"] = reason

        try:
            refund = stripe.Refund.create(**params, **self._request_options())
        except stripe.StripeError as e:
            logger.error("Stripe create_refund for %s failed: %s", payment_intent_id, e)
            raise PaymentGatewayException("Payment provider error") from e
        return refund_from_stripe(refund)

    def construct_webhook_event(self, payload: bytes, signature: str) -> GatewayEvent:
        """
        Verify the Stripe-Signature header and convert the event payload.

        Raises:
            ValidationException: If the signature or payload is invalid
        """
        try:
            event = stripe.Webhook.construct_event(payload, signature, self.webhook_secret)
        except stripe.SignatureVerificationError as e:
            logger.warning("Rejected webhook with invalid signature: %s", e)
            raise ValidationException("Invalid webhook signature") from e
        except ValueError as e:
            logger.warning("Rejected webhook with invalid payload: %s", e)
            raise ValidationException("Invalid webhook payload") from e

        obj = event.data.object
        object_type = getattr(obj, "object", None)
        return GatewayEvent(
            id=event.id,
            type=event.type,
            object_id=getattr(obj, "id", None),
            intent=intent_from_stripe(obj) if object_type == "payment_intent" else None,
            charge=charge_from_stripe(obj) if object_type == "charge" else None,
        )
