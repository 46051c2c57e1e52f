from reservapp.models.base import Base
from reservapp.models.role import UserRole
from reservapp.models.user import User
from reservapp.models.venue import Venue, Service
from reservapp.models.reservation import Reservation, ReservationStatus
from reservapp.models.payment import Payment, PaymentStatus, GatewayEventRecord

__all__ = [
    "Base",
    "UserRole",
    "User",
    "Venue",
    "Service",
    "Reservation",
    "ReservationStatus",
    "Payment",
    "PaymentStatus",
    "GatewayEventRecord",
]
