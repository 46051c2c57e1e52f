from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from reservapp.core.security import Claim
from reservapp.database import get_db
from reservapp.dependencies import require
from reservapp.models.reservation import ReservationStatus
from reservapp.schemas.common import ApiResponse, Page, ok
from reservapp.schemas.reservation_schemas import ReservationCreate, ReservationResponse
from reservapp.services.reservation_service import ReservationService

router = APIRouter()


@router.post(
    "/",
    response_model=ApiResponse[ReservationResponse],
    status_code=status.HTTP_201_CREATED,
)
def create_reservation(
    reservation_data: ReservationCreate,
    claim: Claim = Depends(require("reservations", "create")),
    db: Session = Depends(get_db),
):
    """
    Book a service.

    - Reservation starts PENDING until its payment succeeds
    - Check-in must be in the future and before check-out
    - Fails when the service has no capacity left for the dates
    """
    service = ReservationService(db)
    reservation = service.create_reservation(reservation_data, claim)
    return ok("Reservation created successfully", ReservationResponse.model_validate(reservation))


@router.get("/", response_model=ApiResponse[Page[ReservationResponse]])
def list_reservations(
    status_filter: ReservationStatus | None = Query(None, alias="status"),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    claim: Claim = Depends(require("reservations", "read")),
    db: Session = Depends(get_db),
):
    """List own reservations; staff with reservations:update see all"""
    service = ReservationService(db)
    reservations, total = service.list_reservations(claim, status_filter, limit, offset)
    return ok(
        "Reservations retrieved successfully",
        Page[ReservationResponse](
            items=[ReservationResponse.model_validate(r) for r in reservations],
            total=total,
            limit=limit,
            offset=offset,
        ),
    )


@router.get("/{reservation_id}", response_model=ApiResponse[ReservationResponse])
def get_reservation(
    reservation_id: str,
    claim: Claim = Depends(require("reservations", "read")),
    db: Session = Depends(get_db),
):
    service = ReservationService(db)
    reservation = service.get_reservation(reservation_id, claim)
    return ok("Reservation retrieved successfully", ReservationResponse.model_validate(reservation))


@router.post("/{reservation_id}/cancel", response_model=ApiResponse[ReservationResponse])
def cancel_reservation(
    reservation_id: str,
    claim: Claim = Depends(require("reservations", "read")),
    db: Session = Depends(get_db),
):
    """
    Cancel a reservation.

    - Guests may cancel their own PENDING reservations
    - CONFIRMED reservations require reservations:cancel (ADMIN or higher)
    """
    service = ReservationService(db)
    reservation = service.cancel_reservation(reservation_id, claim)
    return ok("Reservation cancelled successfully", ReservationResponse.model_validate(reservation))
