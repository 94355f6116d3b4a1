from .base import BaseService
from .booking_service import BookingService
from .pricing_service import SettlementSplit, compute_split
from .settlement_service import PayoutAccountStatus, SettlementInitiation, SettlementService

__all__ = [
    "BaseService",
    "BookingService",
    "PayoutAccountStatus",
    "SettlementInitiation",
    "SettlementService",
    "SettlementSplit",
    "compute_split",
]
