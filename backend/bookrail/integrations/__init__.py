"""Payment rail integrations."""

from .fee_rail import FakeFeeRail, FeeCharge, FeeChargeStatus, FeeRail, StripeFeeRail
from .transfer_rail import (
    FakeTransferRail,
    PayoutAccount,
    PlaidTransferRail,
    TransferRail,
    TransferResult,
)

__all__ = [
    "FakeFeeRail",
    "FakeTransferRail",
    "FeeCharge",
    "FeeChargeStatus",
    "FeeRail",
    "PayoutAccount",
    "PlaidTransferRail",
    "StripeFeeRail",
    "TransferRail",
    "TransferResult",
]
