from decimal import Decimal
from sqlalchemy import String, Integer, Numeric, Boolean, ForeignKey, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship
from reservapp.models.base import Base, IdMixin, TimestampMixin


class Venue(Base, IdMixin, TimestampMixin):
    """A place that offers bookable services (hotel, spa, restaurant...)."""

    __tablename__ = "venues"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    address: Mapped[str | None] = mapped_column(String(500), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    # Relationships
    services: Mapped[list["Service"]] = relationship(
        "Service", back_populates="venue", cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<Venue(id={self.id}, name='{self.name}')>"


class Service(Base, IdMixin, TimestampMixin):
    """
    A bookable offering of a venue.

    Services with a duration are priced per guest; services without one
    (rooms) are priced per night.
    """

    __tablename__ = "services"

    venue_id: Mapped[str] = mapped_column(
        String(32), ForeignKey("venues.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    price: Mapped[Decimal] = mapped_column(Numeric(precision=10, scale=2), nullable=False)
    duration_minutes: Mapped[int | None] = mapped_column(Integer, nullable=True)
    capacity: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    # Relationships
    venue: Mapped["Venue"] = relationship("Venue", back_populates="services")

    def __repr__(self) -> str:
        return f"<Service(id={self.id}, name='{self.name}', venue_id={self.venue_id})>"
