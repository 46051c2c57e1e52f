"""
Payment reconciliation.

Translates payment state reported by the gateway (intent status, refunds,
charge refunds) into internal payment and reservation status.

Every reconciliation commits the payment write, the reservation write and
the processed-event ledger row in one transaction. A gateway event id that
is already in the ledger is a no-op, and a redelivered intent that would
not change anything writes nothing.
"""

import logging
from datetime import datetime, UTC
from decimal import Decimal

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from reservapp.core.exceptions import (
    ConflictException,
    InvalidPaymentStateError,
    PaymentNotFoundError,
    ReservationNotFoundError,
    ValidationException,
)
from reservapp.models.payment import Payment, PaymentStatus
from reservapp.models.reservation import CancellationSource, Reservation, ReservationStatus
from reservapp.repositories.payment_repository import GatewayEventRepository, PaymentRepository
from reservapp.repositories.reservation_repository import ReservationRepository
from reservapp.services.gateway import GatewayCharge, GatewayIntent, GatewayRefund

logger = logging.getLogger(__name__)

# Gateway intent status -> (payment status, reservation status or None for unchanged)
INTENT_STATUS_TRANSITIONS: dict[str, tuple[PaymentStatus, ReservationStatus | None]] = {
    "succeeded": (PaymentStatus.COMPLETED, ReservationStatus.CONFIRMED),
    "processing": (PaymentStatus.PENDING, None),
    "requires_action": (PaymentStatus.PENDING, None),
    "requires_confirmation": (PaymentStatus.PENDING, None),
    "requires_payment_method": (PaymentStatus.PENDING, None),
    "canceled": (PaymentStatus.FAILED, ReservationStatus.CANCELLED),
}

# Target payment status -> statuses an intent update may move a payment from.
# Settled payments never fall back to PENDING; a failed intent may still succeed
# after the customer retries with another payment method.
PAYMENT_TRANSITIONS: dict[PaymentStatus, frozenset[PaymentStatus]] = {
    PaymentStatus.PENDING: frozenset(),
    PaymentStatus.COMPLETED: frozenset({PaymentStatus.PENDING, PaymentStatus.FAILED}),
    PaymentStatus.FAILED: frozenset({PaymentStatus.PENDING}),
}

INTENT_SYNC_EVENT = "payment_intent.sync"
INTENT_FAILED_EVENT = "payment_intent.payment_failed"
CHARGE_REFUNDED_EVENT = "charge.refunded"


def resolve_intent_status(status: str) -> tuple[PaymentStatus, ReservationStatus | None]:
    """
    Map a gateway intent status to internal statuses.

    Unknown statuses leave the payment PENDING and the reservation unchanged.
    """
    return INTENT_STATUS_TRANSITIONS.get(status, (PaymentStatus.PENDING, None))


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()


class PaymentReconciler:
    """Applies gateway-reported payment state to payments and reservations"""

    def __init__(
        self,
        db: Session,
        payment_repo: PaymentRepository | None = None,
        reservation_repo: ReservationRepository | None = None,
        event_repo: GatewayEventRepository | None = None,
    ):
        self.db = db
        self.payment_repo = payment_repo or PaymentRepository(db)
        self.reservation_repo = reservation_repo or ReservationRepository(db)
        self.event_repo = event_repo or GatewayEventRepository(db)

    def reconcile(
        self,
        intent: GatewayIntent,
        event_id: str | None = None,
        event_type: str = INTENT_SYNC_EVENT,
    ) -> Payment:
        """
        Apply a gateway payment intent to its payment and reservation.

        Args:
            intent: Intent as reported by the gateway
            event_id: Webhook event id, used as the idempotency key
            event_type: Webhook event type, stored in the ledger

        Returns:
            The payment after reconciliation

        Raises:
            PaymentNotFoundError: If no payment has this gateway intent id
            ConflictException: If the payment was updated concurrently
        """
        payment = self._get_by_intent(intent.id)
        if self._already_processed(event_id):
            return payment

        payment_status, reservation_status = resolve_intent_status(intent.status)
        return self._transition(
            payment,
            payment_status,
            reservation_status,
            {"gateway_status": intent.status},
            event_id,
            event_type,
        )

    def reconcile_failure(
        self, intent: GatewayIntent, event_id: str | None = None
    ) -> Payment:
        """
        Apply a failed payment attempt: payment FAILED, reservation CANCELLED.

        Raises:
            PaymentNotFoundError: If no payment has this gateway intent id
        """
        payment = self._get_by_intent(intent.id)
        if self._already_processed(event_id):
            return payment

        return self._transition(
            payment,
            PaymentStatus.FAILED,
            ReservationStatus.CANCELLED,
            {
                "gateway_status": intent.status,
                "last_payment_error": intent.last_error or "Unknown error",
            },
            event_id,
            INTENT_FAILED_EVENT,
        )

    def check_refundable(
        self, payment_id: str, refund_amount: Decimal | None = None
    ) -> tuple[Payment, Decimal]:
        """
        Validate a refund request before it is sent to the gateway.

        An omitted amount means everything not refunded yet.

        Returns:
            Tuple of (payment, amount to refund)

        Raises:
            PaymentNotFoundError: If payment doesn't exist
            InvalidPaymentStateError: If payment is not COMPLETED
            ValidationException: If the amount is not positive or exceeds what is left
        """
        payment = self.payment_repo.get_by_id(payment_id)
        if not payment:
            raise PaymentNotFoundError(f"Payment {payment_id} not found")
        if payment.status != PaymentStatus.COMPLETED:
            raise InvalidPaymentStateError("Only completed payments can be refunded")

        remaining = Decimal(payment.amount) - payment.refunded_amount
        amount = remaining if refund_amount is None else Decimal(refund_amount)
        if amount <= 0:
            raise ValidationException("Refund amount must be greater than 0")
        if amount > remaining:
            raise ValidationException(
                "Refund amount cannot exceed the remaining refundable amount"
            )
        return payment, amount

    def reconcile_refund(
        self,
        payment_id: str,
        refund_amount: Decimal | None = None,
        reason: str | None = None,
        refund: GatewayRefund | None = None,
    ) -> Payment:
        """
        Record a refund issued through the API.

        Once refunds add up to the original amount the payment becomes
        REFUNDED and the reservation CANCELLED. A partial refund keeps the
        payment COMPLETED and is recorded in metadata only.

        Args:
            payment_id: Internal payment id
            refund_amount: Amount refunded, None for the full remaining amount
            reason: Free-text reason
            refund: Gateway refund object, when one was created

        Raises:
            PaymentNotFoundError, InvalidPaymentStateError, ValidationException:
                see check_refundable
        """
        existing = self.payment_repo.get_by_id(payment_id)
        if refund is not None and existing is not None and self._refund_recorded(existing, refund):
            logger.info("Refund %s already reflected on payment %s", refund.id, existing.id)
            return existing

        payment, amount = self.check_refundable(payment_id, refund_amount)
        refunds = list((payment.payment_metadata or {}).get("refunds", []))
        recorded_here = sum((Decimal(entry["amount"]) for entry in refunds), Decimal("0"))

        refunds.append(
            {
                "refund_id": refund.id if refund else None,
                "amount": str(amount),
                "reason": (refund.reason if refund and refund.reason else reason),
                "status": refund.status if refund else None,
                "created_at": _now_iso(),
            }
        )
        # A charge.refunded webhook may have recorded this refund's total already
        refunded_total = max(payment.refunded_amount, recorded_here + amount)
        is_full_refund = refunded_total >= Decimal(payment.amount)

        payment.merge_metadata(
            refunds=refunds,
            refunded_amount=str(refunded_total),
            partial_refund=not is_full_refund,
            last_refund_at=_now_iso(),
        )
        return self._settle_refund(payment, is_full_refund, event_id=None, event_type=None)

    def reconcile_charge_refund(
        self, charge: GatewayCharge, event_id: str | None = None
    ) -> Payment:
        """
        Apply a charge refund reported by webhook.

        ``charge.amount_refunded`` is the gateway's cumulative total, so a
        refund already recorded through reconcile_refund is not counted twice.

        Raises:
            ValidationException: If the charge is not linked to a payment intent
            PaymentNotFoundError: If no payment has the charge's intent id
            InvalidPaymentStateError: If the payment was never completed
        """
        if not charge.payment_intent_id:
            raise ValidationException(f"Charge {charge.id} is not linked to a payment intent")

        payment = self._get_by_intent(charge.payment_intent_id)
        if self._already_processed(event_id):
            return payment

        already_settled = payment.status == PaymentStatus.REFUNDED or (
            charge.amount_refunded <= payment.refunded_amount
        )
        if already_settled:
            logger.info("Charge refund %s already reflected on payment %s", charge.id, payment.id)
            return self._record_event_only(payment, event_id, CHARGE_REFUNDED_EVENT)

        if payment.status != PaymentStatus.COMPLETED:
            raise InvalidPaymentStateError(
                f"Payment {payment.id} is {payment.status.value}; cannot apply a refund"
            )

        is_full_refund = charge.amount_refunded >= charge.amount
        payment.merge_metadata(
            refunded_amount=str(charge.amount_refunded),
            partial_refund=not is_full_refund,
            webhook_processed_at=_now_iso(),
        )
        return self._settle_refund(payment, is_full_refund, event_id, CHARGE_REFUNDED_EVENT)

    def _get_by_intent(self, gateway_payment_id: str) -> Payment:
        payment = self.payment_repo.get_by_gateway_id(gateway_payment_id)
        if not payment:
            logger.warning("Payment not found for gateway intent %s", gateway_payment_id)
            raise PaymentNotFoundError(f"Payment not found for payment intent {gateway_payment_id}")
        return payment

    def _get_reservation(self, payment: Payment) -> Reservation:
        reservation = self.reservation_repo.get_by_id(payment.reservation_id)
        if not reservation:
            raise ReservationNotFoundError(f"Reservation {payment.reservation_id} not found")
        return reservation

    @staticmethod
    def _refund_recorded(payment: Payment, refund: GatewayRefund) -> bool:
        refunds = (payment.payment_metadata or {}).get("refunds", [])
        return any(entry.get("refund_id") == refund.id for entry in refunds)

    def _already_processed(self, event_id: str | None) -> bool:
        if event_id and self.event_repo.exists(event_id):
            logger.info("Gateway event %s already processed, skipping", event_id)
            return True
        return False

    def _transition(
        self,
        payment: Payment,
        payment_status: PaymentStatus,
        reservation_status: ReservationStatus | None,
        metadata: dict,
        event_id: str | None,
        event_type: str,
    ) -> Payment:
        current = payment.status
        if current != payment_status and current not in PAYMENT_TRANSITIONS.get(
            payment_status, frozenset()
        ):
            logger.warning(
                "Ignoring stale gateway update for payment %s: %s -> %s",
                payment.id,
                current.value,
                payment_status.value,
            )
            return self._record_event_only(payment, event_id, event_type)

        existing = payment.payment_metadata or {}
        unchanged = current == payment_status and all(
            existing.get(key) == value for key, value in metadata.items()
        )
        if unchanged:
            logger.info("Payment %s already %s, nothing to update", payment.id, current.value)
            return self._record_event_only(payment, event_id, event_type)

        payment.status = payment_status
        payment.merge_metadata(
            **metadata,
            **({"webhook_processed_at": _now_iso()} if event_id else {"last_updated_at": _now_iso()}),
        )
        if payment_status == PaymentStatus.COMPLETED and payment.paid_at is None:
            payment.paid_at = datetime.now(UTC)

        reservation = None
        if reservation_status is not None:
            reservation = self._get_reservation(payment)
            if reservation.can_transition_to(reservation_status):
                reservation.move_to(reservation_status, CancellationSource.PAYMENT)
            else:
                if reservation.status != reservation_status:
                    logger.warning(
                        "Reservation %s left %s; payment %s moved to %s",
                        reservation.id,
                        reservation.status.value,
                        payment.id,
                        payment_status.value,
                    )
                reservation = None

        payment = self._persist(payment, reservation, event_id, event_type)
        logger.info(
            "Payment %s reconciled %s -> %s%s",
            payment.id,
            current.value,
            payment_status.value,
            f", reservation {reservation.id} -> {reservation_status.value}" if reservation else "",
        )
        return payment

    def _settle_refund(
        self,
        payment: Payment,
        is_full_refund: bool,
        event_id: str | None,
        event_type: str | None,
    ) -> Payment:
        reservation = None
        if is_full_refund:
            payment.status = PaymentStatus.REFUNDED
            payment.refunded_at = datetime.now(UTC)
            reservation = self._get_reservation(payment)
            if reservation.can_transition_to(ReservationStatus.CANCELLED):
                reservation.move_to(ReservationStatus.CANCELLED, CancellationSource.REFUND)
            else:
                logger.warning(
                    "Reservation %s left %s after full refund of payment %s",
                    reservation.id,
                    reservation.status.value,
                    payment.id,
                )
                reservation = None

        payment = self._persist(payment, reservation, event_id, event_type)
        logger.info(
            "Payment %s %s (refunded %s of %s)",
            payment.id,
            "fully refunded" if is_full_refund else "partially refunded",
            payment.refunded_amount,
            payment.amount,
        )
        return payment

    def _record_event_only(
        self, payment: Payment, event_id: str | None, event_type: str | None
    ) -> Payment:
        if not event_id:
            return payment
        return self._persist(payment, None, event_id, event_type)

    def _persist(
        self,
        payment: Payment,
        reservation: Reservation | None,
        event_id: str | None,
        event_type: str | None,
    ) -> Payment:
        """
        Commit payment, reservation and ledger row together.

        Raises:
            ConflictException: If the payment row changed since it was read
        """
        payment_id = payment.id
        try:
            if event_id:
                self.event_repo.add(event_id, event_type or INTENT_SYNC_EVENT, payment_id)
            self.payment_repo.update(payment, commit=False)
            if reservation is not None:
                self.reservation_repo.update(reservation, commit=False)
            self.db.commit()
        except StaleDataError as e:
            self.db.rollback()
            logger.warning("Concurrent update of payment %s rejected", payment_id)
            raise ConflictException("Payment was updated concurrently, retry the request") from e
        except IntegrityError:
            self.db.rollback()
            if event_id and self.event_repo.exists(event_id):
                # Another delivery of the same event committed first
                logger.info("Gateway event %s processed concurrently, skipping", event_id)
                return self.payment_repo.get_by_id(payment_id)
            logger.exception("Failed to persist reconciliation of payment %s", payment_id)
            raise
        except SQLAlchemyError:
            self.db.rollback()
            logger.exception("Failed to persist reconciliation of payment %s", payment_id)
            raise

        self.db.refresh(payment)
        return payment
