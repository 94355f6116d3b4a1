# backend/bookrail/api/dependencies/services.py
"""
Service layer dependencies for dependency injection.

Factories that build request-scoped services with their collaborators.
"""

from typing import Generator

from fastapi import Depends
from sqlalchemy.orm import Session

from ...database import get_db as original_get_db
from ...integrations.factory import get_fee_rail, get_transfer_rail
from ...integrations.fee_rail import FeeRail
from ...integrations.transfer_rail import TransferRail
from ...services.booking_service import BookingService
from ...services.settlement_service import SettlementService


def get_db() -> Generator[Session, None, None]:
    yield from original_get_db()


def get_fee_rail_dep() -> FeeRail:
    return get_fee_rail()


def get_transfer_rail_dep() -> TransferRail:
    return get_transfer_rail()


def get_booking_service(db: Session = Depends(get_db)) -> BookingService:
    return BookingService(db)


def get_settlement_service(
    db: Session = Depends(get_db),
    fee_rail: FeeRail = Depends(get_fee_rail_dep),
    transfer_rail: TransferRail = Depends(get_transfer_rail_dep),
) -> SettlementService:
    return SettlementService(db, fee_rail, transfer_rail)
