from datetime import datetime
from decimal import Decimal
from enum import Enum as PyEnum
from sqlalchemy import String, Integer, Numeric, ForeignKey, Enum, DateTime, Text, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship
from typing import TYPE_CHECKING
from reservapp.models.base import Base, IdMixin, TimestampMixin

if TYPE_CHECKING:
    from reservapp.models.user import User
    from reservapp.models.venue import Service
    from reservapp.models.payment import Payment


class ReservationStatus(str, PyEnum):
    """Reservation lifecycle states"""

    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    CANCELLED = "CANCELLED"
    CHECKED_IN = "CHECKED_IN"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"


class CancellationSource(str, PyEnum):
    """Who cancelled a reservation"""

    PAYMENT = "PAYMENT"  # failed or canceled payment attempt, may still be retried
    REFUND = "REFUND"
    REQUEST = "REQUEST"  # explicit cancel through the API


# Statuses a reservation may be moved out of into the key, by payment events
# or explicit cancellation. Stays that already started are never rewound, and
# only a reservation cancelled by a failed payment may be confirmed again.
RESERVATION_TRANSITIONS: dict[ReservationStatus, frozenset[ReservationStatus]] = {
    ReservationStatus.CONFIRMED: frozenset(
        {ReservationStatus.PENDING, ReservationStatus.CANCELLED}
    ),
    ReservationStatus.CANCELLED: frozenset(
        {ReservationStatus.PENDING, ReservationStatus.CONFIRMED}
    ),
}


class Reservation(Base, IdMixin, TimestampMixin):
    """
    A user's booking of a service.

    Status moves to CONFIRMED only through a completed payment, and to
    CANCELLED on refund, gateway cancellation or an explicit cancel.
    """

    __tablename__ = "reservations"

    user_id: Mapped[str] = mapped_column(
        String(32), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    service_id: Mapped[str] = mapped_column(
        String(32), ForeignKey("services.id"), nullable=False, index=True
    )
    check_in_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    check_out_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    guest_count: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    total_amount: Mapped[Decimal] = mapped_column(Numeric(precision=10, scale=2), nullable=False)
    status: Mapped[ReservationStatus] = mapped_column(
        Enum(ReservationStatus, native_enum=False),
        nullable=False,
        default=ReservationStatus.PENDING,
        index=True,
    )
    special_requests: Mapped[str | None] = mapped_column(Text, nullable=True)
    cancellation_source: Mapped[CancellationSource | None] = mapped_column(
        Enum(CancellationSource, native_enum=False), nullable=True
    )

    # Relationships
    user: Mapped["User"] = relationship("User", back_populates="reservations")
    service: Mapped["Service"] = relationship("Service")
    payments: Mapped[list["Payment"]] = relationship("Payment", back_populates="reservation")

    __table_args__ = (
        Index("ix_reservations_service_dates", "service_id", "check_in_date", "check_out_date"),
    )

    def can_transition_to(self, new_status: ReservationStatus) -> bool:
        """Check whether a payment-driven or cancel transition is allowed."""
        if self.status == new_status:
            return False
        allowed_from = RESERVATION_TRANSITIONS.get(new_status)
        if allowed_from is None or self.status not in allowed_from:
            return False
        if self.status == ReservationStatus.CANCELLED:
            # Explicit cancels and refunds are final
            return self.cancellation_source == CancellationSource.PAYMENT
        return True

    def move_to(
        self, new_status: ReservationStatus, source: CancellationSource | None = None
    ) -> None:
        """Set the status; the cancellation source is kept only while CANCELLED."""
        self.status = new_status
        self.cancellation_source = source if new_status == ReservationStatus.CANCELLED else None

    def __repr__(self) -> str:
        return f"<Reservation(id={self.id}, status={self.status.value})>"
