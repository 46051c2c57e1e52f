import logging
import math
from datetime import datetime, UTC
from decimal import Decimal

from sqlalchemy.orm import Session

from reservapp.core.exceptions import (
    ForbiddenException,
    NotFoundException,
    ReservationNotFoundError,
    ValidationException,
)
from reservapp.core.permissions import is_authorized
from reservapp.core.security import Claim
from reservapp.models.reservation import CancellationSource, Reservation, ReservationStatus
from reservapp.repositories.reservation_repository import ReservationRepository
from reservapp.repositories.service_repository import ServiceRepository
from reservapp.schemas.reservation_schemas import ReservationCreate

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 60 * 60 * 24


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC"""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


class ReservationService:
    """Service layer for reservation business logic"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = ReservationRepository(db)
        self.service_repo = ServiceRepository(db)

    def create_reservation(self, data: ReservationCreate, claim: Claim) -> Reservation:
        """
        Book a service for the authenticated user.

        Services with a duration are charged per guest, others per night.

        Raises:
            NotFoundException: If service doesn't exist or is inactive
            ValidationException: If dates are invalid or capacity is exhausted
        """
        service = self.service_repo.get_active_by_id(data.service_id)
        if not service:
            raise NotFoundException("Service not found")

        check_in = as_utc(data.check_in_date)
        check_out = as_utc(data.check_out_date)
        if check_in >= check_out:
            raise ValidationException("Check-in date must be before check-out date")
        if check_in < datetime.now(UTC):
            raise ValidationException("Check-in date cannot be in the past")

        booked = self.service_repo.booked_guests(service.id, check_in, check_out)
        if booked + data.guest_count > service.capacity:
            raise ValidationException(
                "The selected service is not available for the specified dates and capacity"
            )

        price = Decimal(service.price)
        if service.duration_minutes:
            total_amount = price * data.guest_count
        else:
            nights = math.ceil((check_out - check_in).total_seconds() / SECONDS_PER_DAY)
            total_amount = price * nights

        reservation = Reservation(
            user_id=claim.subject_id,
            service_id=service.id,
            check_in_date=check_in,
            check_out_date=check_out,
            guest_count=data.guest_count,
            total_amount=total_amount,
            status=ReservationStatus.PENDING,
            special_requests=data.special_requests,
        )
        reservation = self.repo.create(reservation)
        logger.info("Reservation %s created by user %s", reservation.id, claim.subject_id)
        return reservation

    def get_reservation(self, reservation_id: str, claim: Claim) -> Reservation:
        """
        Get reservation; staff with reservations:update may see any.

        Raises:
            ReservationNotFoundError: If reservation doesn't exist or isn't visible
        """
        if is_authorized(claim.role, "reservations", "update"):
            reservation = self.repo.get_by_id(reservation_id)
        else:
            reservation = self.repo.get_by_id_and_user(reservation_id, claim.subject_id)
        if not reservation:
            raise ReservationNotFoundError(f"Reservation {reservation_id} not found")
        return reservation

    def list_reservations(
        self,
        claim: Claim,
        status: ReservationStatus | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[Reservation], int]:
        user_id = None if is_authorized(claim.role, "reservations", "update") else claim.subject_id
        return self.repo.find_many(user_id=user_id, status=status, limit=limit, offset=offset)

    def cancel_reservation(self, reservation_id: str, claim: Claim) -> Reservation:
        """
        Cancel a reservation.

        Owners may cancel while the reservation is still PENDING; holders of
        reservations:cancel may also cancel CONFIRMED ones. Paid reservations
        are not refunded here; refunds go through the payments API.

        Raises:
            ReservationNotFoundError: If reservation doesn't exist or isn't visible
            ForbiddenException: If an owner tries to cancel a confirmed reservation
            ValidationException: If the reservation can no longer be cancelled
        """
        reservation = self.get_reservation(reservation_id, claim)

        if not reservation.can_transition_to(ReservationStatus.CANCELLED):
            raise ValidationException(
                f"Reservation is {reservation.status.value} and cannot be cancelled"
            )
        if reservation.status != ReservationStatus.PENDING and not is_authorized(
            claim.role, "reservations", "cancel"
        ):
            raise ForbiddenException("Only pending reservations can be cancelled by the guest")

        reservation.move_to(ReservationStatus.CANCELLED, CancellationSource.REQUEST)
        reservation = self.repo.update(reservation)
        logger.info("Reservation %s cancelled by user %s", reservation.id, claim.subject_id)
        return reservation
