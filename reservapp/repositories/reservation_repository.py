from sqlalchemy.orm import Session
from reservapp.models.reservation import Reservation, ReservationStatus


class ReservationRepository:
    """Repository for Reservation model operations"""

    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, reservation_id: str) -> Reservation | None:
        return self.db.query(Reservation).filter(Reservation.id == reservation_id).first()

    def get_by_id_and_user(self, reservation_id: str, user_id: str) -> Reservation | None:
        """
        Get reservation ensuring it belongs to user.

        Returns None if reservation doesn't exist or belongs to another user.
        """
        return (
            self.db.query(Reservation)
            .filter(Reservation.id == reservation_id, Reservation.user_id == user_id)
            .first()
        )

    def find_many(
        self,
        user_id: str | None = None,
        status: ReservationStatus | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[Reservation], int]:
        """
        List reservations, newest first.

        Returns:
            Tuple of (reservations, total_count)
        """
        query = self.db.query(Reservation)
        if user_id is not None:
            query = query.filter(Reservation.user_id == user_id)
        if status is not None:
            query = query.filter(Reservation.status == status)

        total = query.count()
        reservations = (
            query.order_by(Reservation.created_at.desc()).offset(offset).limit(limit).all()
        )
        return reservations, total

    def create(self, reservation: Reservation) -> Reservation:
        self.db.add(reservation)
        self.db.commit()
        self.db.refresh(reservation)
        return reservation

    def update(self, reservation: Reservation, commit: bool = True) -> Reservation:
        """
        Persist reservation changes.

        With commit=False the change is only flushed, so the caller can
        commit it together with other writes.
        """
        if not commit:
            self.db.flush()
            return reservation
        self.db.commit()
        self.db.refresh(reservation)
        return reservation
