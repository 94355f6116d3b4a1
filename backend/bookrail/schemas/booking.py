# backend/bookrail/schemas/booking.py
"""Booking request and response schemas."""

from datetime import date, datetime
from decimal import Decimal
import re
from typing import List, Optional

from pydantic import Field, field_validator

from ..domain.booking_state_machine import BookingStatus
from .base import StandardizedModel, StrictRequestModel

_TIME_PATTERN = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")


class BookingLocation(StrictRequestModel):
    """Optional structured address with coordinates."""

    address: str = Field(..., min_length=1, max_length=500)
    city: Optional[str] = Field(None, max_length=100)
    state: Optional[str] = Field(None, max_length=100)
    postal_code: Optional[str] = Field(None, max_length=20)
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)


class BookingCreate(StrictRequestModel):
    """
    Client request for a booking.

    The price is never part of the request; it is snapshotted from the
    service when the booking is created.
    """

    provider_id: str = Field(..., min_length=1, description="Provider user id")
    service_id: str = Field(..., min_length=1, description="Service being booked")
    scheduled_date: date = Field(..., description="Date of the booking")
    scheduled_time: str = Field(..., description="Start time as HH:MM")
    notes: Optional[str] = Field(None, max_length=1000)
    location: Optional[BookingLocation] = None

    @field_validator("scheduled_time")
    @classmethod
    def _validate_time(cls, v: str) -> str:
        if not _TIME_PATTERN.match(v):
            raise ValueError(f"Invalid time format: {v}. Expected HH:MM format.")
        return v


class BookingResponse(StandardizedModel):
    id: str
    client_id: str
    provider_id: str
    service_id: str
    service_name: str
    scheduled_date: date
    scheduled_time: str
    price: Decimal
    status: BookingStatus
    notes: Optional[str] = None
    location: Optional[dict] = None
    created_at: Optional[datetime] = None
    confirmed_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    declined_at: Optional[datetime] = None


class BookingSummary(StandardizedModel):
    """Booking fields shown alongside a payment."""

    id: str
    client_id: str
    provider_id: str
    service_name: str
    scheduled_date: date
    scheduled_time: str
    status: BookingStatus


class BookingListResponse(StandardizedModel):
    bookings: List[BookingResponse]
    total: int
