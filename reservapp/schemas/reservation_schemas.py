from datetime import datetime
from pydantic import BaseModel, Field
from reservapp.models.reservation import CancellationSource, ReservationStatus


class ReservationCreate(BaseModel):
    """Schema for booking a service"""

    service_id: str = Field(..., min_length=1)
    check_in_date: datetime
    check_out_date: datetime
    guest_count: int = Field(default=1, ge=1)
    special_requests: str | None = Field(None, max_length=2000)


class ReservationResponse(BaseModel):
    id: str
    user_id: str
    service_id: str
    check_in_date: datetime
    check_out_date: datetime
    guest_count: int
    total_amount: float
    status: ReservationStatus
    special_requests: str | None
    cancellation_source: CancellationSource | None = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True
