import logging
from decimal import Decimal

from sqlalchemy.orm import Session

from reservapp.config import settings
from reservapp.core.exceptions import (
    NotFoundException,
    PaymentNotFoundError,
    ReservationNotFoundError,
    ValidationException,
)
from reservapp.core.permissions import is_authorized
from reservapp.core.security import Claim
from reservapp.models.payment import Payment, PaymentStatus
from reservapp.models.reservation import Reservation, ReservationStatus
from reservapp.repositories.payment_repository import PaymentRepository
from reservapp.repositories.reservation_repository import ReservationRepository
from reservapp.repositories.service_repository import ServiceRepository
from reservapp.services.gateway import GatewayEvent, GatewayIntent, GatewayRefund, PaymentGateway
from reservapp.services.payment_reconciler import PaymentReconciler

logger = logging.getLogger(__name__)

PAYMENT_INTENT_SUCCEEDED = "payment_intent.succeeded"
PAYMENT_INTENT_PAYMENT_FAILED = "payment_intent.payment_failed"
PAYMENT_INTENT_CANCELED = "payment_intent.canceled"
PAYMENT_INTENT_PROCESSING = "payment_intent.processing"
CHARGE_REFUNDED = "charge.refunded"

INTENT_EVENTS = (
    PAYMENT_INTENT_SUCCEEDED,
    PAYMENT_INTENT_PAYMENT_FAILED,
    PAYMENT_INTENT_CANCELED,
    PAYMENT_INTENT_PROCESSING,
)


class PaymentService:
    """Service layer for payment business logic"""

    def __init__(self, db: Session, gateway: PaymentGateway):
        self.db = db
        self.gateway = gateway
        self.payment_repo = PaymentRepository(db)
        self.reservation_repo = ReservationRepository(db)
        self.service_repo = ServiceRepository(db)
        self.reconciler = PaymentReconciler(
            db, payment_repo=self.payment_repo, reservation_repo=self.reservation_repo
        )

    def create_payment_intent(
        self,
        reservation_id: str,
        claim: Claim,
        amount: Decimal | None = None,
        currency: str | None = None,
        description: str | None = None,
        customer_id: str | None = None,
        metadata: dict[str, str] | None = None,
    ) -> tuple[Payment, GatewayIntent]:
        """
        Open a gateway payment intent for a reservation and record it.

        The amount defaults to the reservation total.

        Raises:
            ReservationNotFoundError: If reservation doesn't exist or isn't visible
            ValidationException: If the reservation is not PENDING, amount <= 0, or
                a caller without payments:update sets an amount other than the total
        """
        reservation = self.reservation_repo.get_by_id(reservation_id)
        if not reservation or not self._can_access(claim, reservation.user_id, "reservations", "update"):
            raise ReservationNotFoundError(f"Reservation {reservation_id} not found")
        if reservation.status != ReservationStatus.PENDING:
            raise ValidationException(
                f"Reservation is {reservation.status.value}; only pending reservations can be paid"
            )

        if amount is not None and Decimal(amount) != Decimal(reservation.total_amount):
            if not is_authorized(claim.role, "payments", "update"):
                raise ValidationException("Amount must match the reservation total")
        amount = Decimal(amount) if amount is not None else Decimal(reservation.total_amount)
        if amount <= 0:
            raise ValidationException("Amount must be greater than 0")
        currency = (currency or settings.DEFAULT_CURRENCY).lower()

        intent = self.gateway.create_payment_intent(
            amount=amount,
            currency=currency,
            description=description or f"Payment for reservation {reservation.id}",
            customer_id=customer_id,
            metadata={
                "reservation_id": reservation.id,
                "service_id": reservation.service_id,
                "user_id": reservation.user_id,
                "check_in_date": reservation.check_in_date.isoformat(),
                "check_out_date": reservation.check_out_date.isoformat(),
                "guest_count": str(reservation.guest_count),
                **(metadata or {}),
            },
        )

        payment = Payment(
            reservation_id=reservation.id,
            user_id=reservation.user_id,
            amount=amount,
            currency=currency,
            status=PaymentStatus.PENDING,
            gateway_payment_id=intent.id,
            payment_metadata={**intent.metadata, "gateway_status": intent.status},
        )
        payment = self.payment_repo.create(payment)
        logger.info("Created payment %s for reservation %s (intent %s)", payment.id, reservation.id, intent.id)
        return payment, intent

    def confirm_payment(
        self, payment_intent_id: str, payment_method_id: str, claim: Claim
    ) -> tuple[Payment, GatewayIntent]:
        """
        Confirm an intent with the gateway and reconcile the result.

        Raises:
            PaymentNotFoundError: If no payment has this intent id or it isn't visible
            ValidationException: If the reservation can no longer be confirmed
        """
        payment = self.payment_repo.get_by_gateway_id(payment_intent_id)
        if not payment or not self._can_access(claim, payment.user_id, "payments", "update"):
            raise PaymentNotFoundError(f"Payment not found for payment intent {payment_intent_id}")

        reservation = self.reservation_repo.get_by_id(payment.reservation_id)
        if not reservation or not reservation.can_transition_to(ReservationStatus.CONFIRMED):
            status = reservation.status.value if reservation else "missing"
            raise ValidationException(f"Reservation is {status}; it can no longer be paid")
        if reservation.status == ReservationStatus.CANCELLED:
            self._check_capacity_for_retry(reservation)

        intent = self.gateway.confirm_payment_intent(payment_intent_id, payment_method_id)

        if payment.gateway_payment_method_id != payment_method_id:
            payment.gateway_payment_method_id = payment_method_id
            self.payment_repo.update(payment)
        payment = self.reconciler.reconcile(intent)
        return payment, intent

    def _check_capacity_for_retry(self, reservation: Reservation) -> None:
        """Capacity freed by a failed payment may have been booked since"""
        service = self.service_repo.get_active_by_id(reservation.service_id)
        booked = self.service_repo.booked_guests(
            reservation.service_id, reservation.check_in_date, reservation.check_out_date
        )
        if not service or booked + reservation.guest_count > service.capacity:
            raise ValidationException(
                "The selected service is no longer available for the specified dates and capacity"
            )

    def refund_payment(
        self, payment_id: str, amount: Decimal | None = None, reason: str | None = None
    ) -> tuple[Payment, GatewayRefund, bool]:
        """
        Refund a completed payment through the gateway and record the result.

        Returns:
            Tuple of (payment, gateway refund, is_full_refund)

        Raises:
            PaymentNotFoundError, InvalidPaymentStateError, ValidationException:
                see PaymentReconciler.check_refundable
        """
        payment, refund_amount = self.reconciler.check_refundable(payment_id, amount)
        if not payment.gateway_payment_id:
            raise ValidationException("Payment does not have a gateway payment intent")

        refund = self.gateway.create_refund(
            payment.gateway_payment_id, None if amount is None else refund_amount, reason
        )
        payment = self.reconciler.reconcile_refund(
            payment_id, refund_amount=refund.amount, reason=reason, refund=refund
        )
        return payment, refund, payment.status == PaymentStatus.REFUNDED

    def handle_webhook_event(self, event: GatewayEvent) -> Payment | None:
        """
        Dispatch a verified gateway event to the reconciler.

        Event types the reconciler doesn't handle are acknowledged and logged.
        Events that can never apply (unknown payment, unrefundable state) are
        logged and acknowledged too, so the gateway stops redelivering them.
        """
        logger.info("Received gateway webhook %s (%s)", event.type, event.id)
        try:
            if event.type in INTENT_EVENTS:
                if event.intent is None:
                    raise ValidationException("Event payload is not a payment intent")
                if event.type == PAYMENT_INTENT_PAYMENT_FAILED:
                    return self.reconciler.reconcile_failure(event.intent, event_id=event.id)
                return self.reconciler.reconcile(event.intent, event_id=event.id, event_type=event.type)
            if event.type == CHARGE_REFUNDED:
                if event.charge is None:
                    raise ValidationException("Event payload is not a charge")
                return self.reconciler.reconcile_charge_refund(event.charge, event_id=event.id)
        except (NotFoundException, ValidationException) as e:
            logger.warning("Webhook %s (%s) not applied: %s", event.type, event.id, e)
            return None

        logger.info("Unhandled webhook event type %s: %s", event.type, event.object_id)
        return None

    def get_payment(self, payment_id: str, claim: Claim) -> Payment:
        """
        Raises:
            PaymentNotFoundError: If payment doesn't exist or belongs to another user
        """
        payment = self.payment_repo.get_by_id(payment_id)
        if not payment or not self._can_access(claim, payment.user_id, "payments", "update"):
            raise PaymentNotFoundError(f"Payment {payment_id} not found")
        return payment

    def list_payments(
        self,
        claim: Claim,
        status: PaymentStatus | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[Payment], int]:
        """Staff with payments:update see every payment, others only their own"""
        user_id = None if is_authorized(claim.role, "payments", "update") else claim.subject_id
        return self.payment_repo.find_many(user_id=user_id, status=status, limit=limit, offset=offset)

    @staticmethod
    def _can_access(claim: Claim, owner_id: str, module: str, action: str) -> bool:
        return owner_id == claim.subject_id or is_authorized(claim.role, module, action)
