from .auth import get_actor_id
from .services import (
    get_booking_service,
    get_db,
    get_fee_rail_dep,
    get_settlement_service,
    get_transfer_rail_dep,
)

__all__ = [
    "get_actor_id",
    "get_booking_service",
    "get_db",
    "get_fee_rail_dep",
    "get_settlement_service",
    "get_transfer_rail_dep",
]
