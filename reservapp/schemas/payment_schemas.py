from datetime import datetime
from decimal import Decimal
from typing import Any
from pydantic import BaseModel, Field
from reservapp.models.payment import PaymentStatus


class CreatePaymentIntentRequest(BaseModel):
    """Amount defaults to the reservation total"""

    reservation_id: str = Field(..., min_length=1)
    amount: Decimal | None = Field(None, gt=0, decimal_places=2)
    currency: str | None = Field(None, min_length=3, max_length=3)
    description: str | None = Field(None, max_length=500)
    customer_id: str | None = None
    metadata: dict[str, str] | None = None


class ConfirmPaymentRequest(BaseModel):
    payment_intent_id: str = Field(..., min_length=1)
    payment_method_id: str = Field(..., min_length=1)


class RefundRequest(BaseModel):
    """Omitting amount refunds everything not refunded yet"""

    payment_id: str = Field(..., min_length=1)
    amount: Decimal | None = Field(None, gt=0, decimal_places=2)
    reason: str | None = Field(None, max_length=500)


class PaymentResponse(BaseModel):
    id: str
    reservation_id: str
    user_id: str
    amount: float
    currency: str
    status: PaymentStatus
    gateway_payment_id: str | None
    metadata: dict[str, Any] = Field(validation_alias="payment_metadata")
    paid_at: datetime | None
    refunded_at: datetime | None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class PaymentIntentResponse(BaseModel):
    payment_id: str
    payment_intent_id: str
    client_secret: str | None
    amount: float
    currency: str
    status: str
    requires_action: bool = False
    metadata: dict[str, Any] = Field(default_factory=dict)


class RefundResponse(BaseModel):
    refund_id: str
    payment_id: str
    amount: float
    currency: str
    status: str
    reason: str | None
    is_full_refund: bool
    payment_status: PaymentStatus
    created: datetime


class WebhookAck(BaseModel):
    event_id: str
    event_type: str
    payment_id: str | None = None
