# backend/bookrail/routes/bookings.py
"""
Booking lifecycle routes.

Endpoints:
    POST /api/bookings                   Create a booking (client)
    GET  /api/bookings                   List the caller's bookings
    GET  /api/bookings/{id}              Get one booking
    POST /api/bookings/{id}/accept       Provider accepts
    POST /api/bookings/{id}/decline      Provider declines
    POST /api/bookings/{id}/cancel       Client or provider cancels
    POST /api/bookings/{id}/complete     Provider marks work delivered
"""

import asyncio
import logging
from typing import Callable, Optional

from fastapi import APIRouter, Body, Depends, Path, Query, status

from ..api.dependencies import get_actor_id, get_booking_service
from ..core.config import settings
from ..core.exceptions import DomainException
from ..domain.booking_state_machine import BookingStatus
from ..models.booking import Booking
from ..schemas.booking import BookingCreate, BookingListResponse, BookingResponse
from ..services.booking_service import BookingService
from ._helpers import handle_domain_exception, run_with_retry

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/bookings", tags=["bookings"])


@router.post("", response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
async def create_booking(
    booking_data: BookingCreate = Body(...),
    actor_id: str = Depends(get_actor_id),
    booking_service: BookingService = Depends(get_booking_service),
) -> BookingResponse:
    try:
        booking = await asyncio.to_thread(booking_service.create_booking, actor_id, booking_data)
        return BookingResponse.model_validate(booking)
    except DomainException as e:
        handle_domain_exception(e)


@router.get("", response_model=BookingListResponse)
async def list_bookings(
    role: Optional[str] = Query(None, pattern="^(client|provider)$"),
    status_filter: Optional[BookingStatus] = Query(None, alias="status"),
    actor_id: str = Depends(get_actor_id),
    booking_service: BookingService = Depends(get_booking_service),
) -> BookingListResponse:
    try:
        bookings = await asyncio.to_thread(
            booking_service.list_user_bookings, actor_id, role, status_filter
        )
        return BookingListResponse(
            bookings=[BookingResponse.model_validate(b) for b in bookings],
            total=len(bookings),
        )
    except DomainException as e:
        handle_domain_exception(e)


@router.get("/{booking_id}", response_model=BookingResponse)
async def get_booking(
    booking_id: str = Path(..., description="Booking ULID"),
    actor_id: str = Depends(get_actor_id),
    booking_service: BookingService = Depends(get_booking_service),
) -> BookingResponse:
    try:
        booking = await asyncio.to_thread(booking_service.get_booking, booking_id, actor_id)
        return BookingResponse.model_validate(booking)
    except DomainException as e:
        handle_domain_exception(e)


async def _transition(
    method: Callable[[str, str], Booking], booking_id: str, actor_id: str
) -> BookingResponse:
    try:
        booking = await run_with_retry(
            method,
            booking_id,
            actor_id,
            max_attempts=settings.concurrency_retry_attempts,
            backoff_seconds=settings.concurrency_retry_backoff_seconds,
        )
        return BookingResponse.model_validate(booking)
    except DomainException as e:
        handle_domain_exception(e)


@router.post("/{booking_id}/accept", response_model=BookingResponse)
async def accept_booking(
    booking_id: str = Path(...),
    actor_id: str = Depends(get_actor_id),
    booking_service: BookingService = Depends(get_booking_service),
) -> BookingResponse:
    return await _transition(booking_service.accept_booking, booking_id, actor_id)


@router.post("/{booking_id}/decline", response_model=BookingResponse)
async def decline_booking(
    booking_id: str = Path(...),
    actor_id: str = Depends(get_actor_id),
    booking_service: BookingService = Depends(get_booking_service),
) -> BookingResponse:
    return await _transition(booking_service.decline_booking, booking_id, actor_id)


@router.post("/{booking_id}/cancel", response_model=BookingResponse)
async def cancel_booking(
    booking_id: str = Path(...),
    actor_id: str = Depends(get_actor_id),
    booking_service: BookingService = Depends(get_booking_service),
) -> BookingResponse:
    return await _transition(booking_service.cancel_booking, booking_id, actor_id)


@router.post("/{booking_id}/complete", response_model=BookingResponse)
async def complete_booking(
    booking_id: str = Path(...),
    actor_id: str = Depends(get_actor_id),
    booking_service: BookingService = Depends(get_booking_service),
) -> BookingResponse:
    return await _transition(booking_service.complete_booking, booking_id, actor_id)
