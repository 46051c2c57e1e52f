from datetime import datetime
from decimal import Decimal
from enum import Enum as PyEnum
from sqlalchemy import String, Integer, Numeric, ForeignKey, Enum, DateTime, JSON
from sqlalchemy.orm import Mapped, mapped_column, relationship
from typing import Any, TYPE_CHECKING
from reservapp.models.base import Base, IdMixin, TimestampMixin, utcnow

if TYPE_CHECKING:
    from reservapp.models.reservation import Reservation


class PaymentStatus(str, PyEnum):
    """Internal payment status; there is no separate partial-refund state"""

    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    REFUNDED = "REFUNDED"


class Payment(Base, IdMixin, TimestampMixin):
    """
    Payment for a reservation, mirrored from a gateway payment intent.

    Rows are never deleted. Gateway status, refunds and webhook processing
    times are appended to ``payment_metadata``. ``version`` is an optimistic
    lock: concurrent writers of the same row fail instead of overwriting.
    """

    __tablename__ = "payments"

    reservation_id: Mapped[str] = mapped_column(
        String(32), ForeignKey("reservations.id"), nullable=False, index=True
    )
    user_id: Mapped[str] = mapped_column(
        String(32), ForeignKey("users.id"), nullable=False, index=True
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(precision=10, scale=2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="usd")
    status: Mapped[PaymentStatus] = mapped_column(
        Enum(PaymentStatus, native_enum=False),
        nullable=False,
        default=PaymentStatus.PENDING,
        index=True,
    )
    gateway_payment_id: Mapped[str | None] = mapped_column(
        String(255), unique=True, nullable=True, index=True
    )
    gateway_payment_method_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    # "metadata" is reserved on declarative classes
    payment_metadata: Mapped[dict[str, Any]] = mapped_column(
        "metadata", JSON, nullable=False, default=dict
    )
    paid_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    refunded_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    # Relationships
    reservation: Mapped["Reservation"] = relationship("Reservation", back_populates="payments")

    __mapper_args__ = {"version_id_col": version}

    @property
    def refunded_amount(self) -> Decimal:
        """Total refunded so far, in major currency units."""
        return Decimal(str((self.payment_metadata or {}).get("refunded_amount", "0")))

    def merge_metadata(self, **values: Any) -> None:
        """Replace the JSON dict so SQLAlchemy sees the change."""
        self.payment_metadata = {**(self.payment_metadata or {}), **values}

    def __repr__(self) -> str:
        return f"<Payment(id={self.id}, status={self.status.value}, amount={self.amount})>"


class GatewayEventRecord(Base):
    """
    Ledger of processed gateway webhook events.

    The unique event id makes redelivered webhooks no-ops, and because the
    row is written in the same transaction as the status changes, two
    concurrent deliveries of one event cannot both commit.
    """

    __tablename__ = "gateway_events"

    event_id: Mapped[str] = mapped_column(String(255), primary_key=True)
    event_type: Mapped[str] = mapped_column(String(100), nullable=False)
    payment_id: Mapped[str | None] = mapped_column(
        String(32), ForeignKey("payments.id"), nullable=True, index=True
    )
    processed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    def __repr__(self) -> str:
        return f"<GatewayEventRecord(event_id={self.event_id}, type={self.event_type})>"
