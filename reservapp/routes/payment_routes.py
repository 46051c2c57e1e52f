from fastapi import APIRouter, Depends, Header, Query, Request, status
from sqlalchemy.orm import Session

from reservapp.core.exceptions import ValidationException
from reservapp.core.security import Claim
from reservapp.database import get_db
from reservapp.dependencies import get_payment_gateway, require
from reservapp.models.payment import PaymentStatus
from reservapp.schemas.common import ApiResponse, Page, ok
from reservapp.schemas.payment_schemas import (
    ConfirmPaymentRequest,
    CreatePaymentIntentRequest,
    PaymentIntentResponse,
    PaymentResponse,
    RefundRequest,
    RefundResponse,
    WebhookAck,
)
from reservapp.services.gateway import PaymentGateway
from reservapp.services.payment_service import PaymentService

router = APIRouter()


@router.post(
    "/create-intent",
    response_model=ApiResponse[PaymentIntentResponse],
    status_code=status.HTTP_201_CREATED,
)
def create_payment_intent(
    request_data: CreatePaymentIntentRequest,
    claim: Claim = Depends(require("payments", "create")),
    db: Session = Depends(get_db),
    gateway: PaymentGateway = Depends(get_payment_gateway),
):
    """
    Open a payment intent for a PENDING reservation.

    - Amount defaults to the reservation total; a different amount needs payments:update
    - The returned client_secret is handed to the payment form
    """
    service = PaymentService(db, gateway)
    payment, intent = service.create_payment_intent(
        request_data.reservation_id,
        claim,
        amount=request_data.amount,
        currency=request_data.currency,
        description=request_data.description,
        customer_id=request_data.customer_id,
        metadata=request_data.metadata,
    )
    return ok(
        "Payment intent created successfully",
        PaymentIntentResponse(
            payment_id=payment.id,
            payment_intent_id=intent.id,
            client_secret=intent.client_secret,
            amount=float(intent.amount),
            currency=intent.currency,
            status=intent.status,
            requires_action=intent.requires_action,
            metadata=intent.metadata,
        ),
    )


@router.post("/confirm", response_model=ApiResponse[PaymentResponse])
def confirm_payment(
    request_data: ConfirmPaymentRequest,
    claim: Claim = Depends(require("payments", "create")),
    db: Session = Depends(get_db),
    gateway: PaymentGateway = Depends(get_payment_gateway),
):
    """Confirm an intent with a payment method and apply the reported status"""
    service = PaymentService(db, gateway)
    payment, intent = service.confirm_payment(
        request_data.payment_intent_id, request_data.payment_method_id, claim
    )
    message = (
        "Payment requires additional action"
        if intent.requires_action
        else "Payment confirmed successfully"
    )
    return ok(message, PaymentResponse.model_validate(payment))


@router.post("/refund", response_model=ApiResponse[RefundResponse])
def refund_payment(
    request_data: RefundRequest,
    claim: Claim = Depends(require("payments", "refund")),
    db: Session = Depends(get_db),
    gateway: PaymentGateway = Depends(get_payment_gateway),
):
    """
    Refund a COMPLETED payment.

    - **Requires payments:refund** (ADMIN or higher)
    - Omit amount to refund whatever is left; partial refunds accumulate
    - A full refund cancels the reservation
    """
    service = PaymentService(db, gateway)
    payment, refund, is_full = service.refund_payment(
        request_data.payment_id, request_data.amount, request_data.reason
    )
    return ok(
        "Refund processed successfully",
        RefundResponse(
            refund_id=refund.id,
            payment_id=payment.id,
            amount=float(refund.amount),
            currency=refund.currency,
            status=refund.status,
            reason=request_data.reason,
            is_full_refund=is_full,
            payment_status=payment.status,
            created=refund.created,
        ),
    )


@router.post("/webhook", response_model=ApiResponse[WebhookAck])
async def payment_webhook(
    request: Request,
    stripe_signature: str | None = Header(default=None, alias="stripe-signature"),
    db: Session = Depends(get_db),
    gateway: PaymentGateway = Depends(get_payment_gateway),
):
    """
    Gateway webhook.

    The raw body is verified against the Stripe-Signature header before
    anything is read from it. Redelivered events are acknowledged without
    being applied twice.
    """
    if not stripe_signature:
        raise ValidationException("Missing Stripe-Signature header")
    payload = await request.body()
    event = gateway.construct_webhook_event(payload, stripe_signature)

    service = PaymentService(db, gateway)
    payment = service.handle_webhook_event(event)
    return ok(
        "Webhook processed successfully",
        WebhookAck(
            event_id=event.id,
            event_type=event.type,
            payment_id=payment.id if payment else None,
        ),
    )


@router.get("/", response_model=ApiResponse[Page[PaymentResponse]])
def list_payments(
    status_filter: PaymentStatus | None = Query(None, alias="status"),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    claim: Claim = Depends(require("payments", "read")),
    db: Session = Depends(get_db),
    gateway: PaymentGateway = Depends(get_payment_gateway),
):
    """List own payments; staff with payments:update see all"""
    service = PaymentService(db, gateway)
    payments, total = service.list_payments(claim, status_filter, limit, offset)
    return ok(
        "Payments retrieved successfully",
        Page[PaymentResponse](
            items=[PaymentResponse.model_validate(p) for p in payments],
            total=total,
            limit=limit,
            offset=offset,
        ),
    )


@router.get("/{payment_id}", response_model=ApiResponse[PaymentResponse])
def get_payment(
    payment_id: str,
    claim: Claim = Depends(require("payments", "read")),
    db: Session = Depends(get_db),
    gateway: PaymentGateway = Depends(get_payment_gateway),
):
    service = PaymentService(db, gateway)
    payment = service.get_payment(payment_id, claim)
    return ok("Payment retrieved successfully", PaymentResponse.model_validate(payment))
