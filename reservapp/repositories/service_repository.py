from datetime import datetime
from sqlalchemy import func
from sqlalchemy.orm import Session
from reservapp.models.reservation import Reservation, ReservationStatus
from reservapp.models.venue import Service

# Reservations in these states hold capacity
ACTIVE_RESERVATION_STATUSES = (
    ReservationStatus.PENDING,
    ReservationStatus.CONFIRMED,
    ReservationStatus.CHECKED_IN,
    ReservationStatus.IN_PROGRESS,
)


class ServiceRepository:
    """Repository for bookable services"""

    def __init__(self, db: Session):
        self.db = db

    def get_active_by_id(self, service_id: str) -> Service | None:
        return (
            self.db.query(Service)
            .filter(Service.id == service_id, Service.is_active.is_(True))
            .first()
        )

    def booked_guests(self, service_id: str, check_in: datetime, check_out: datetime) -> int:
        """
        Guests already booked on a service in an overlapping date range.

        Two ranges overlap when each starts before the other ends.
        """
        total = (
            self.db.query(func.coalesce(func.sum(Reservation.guest_count), 0))
            .filter(
                Reservation.service_id == service_id,
                Reservation.status.in_(ACTIVE_RESERVATION_STATUSES),
                Reservation.check_in_date < check_out,
                Reservation.check_out_date > check_in,
            )
            .scalar()
        )
        return int(total or 0)
