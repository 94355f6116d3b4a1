# backend/bookrail/schemas/payment.py
"""Settlement request and response schemas."""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import Field

from ..domain.settlement_state_machine import PaymentStatus, SettlementState
from .base import StandardizedModel, StrictRequestModel
from .booking import BookingSummary


class InitiateSettlementRequest(StrictRequestModel):
    booking_id: str = Field(..., min_length=1)


class ConfirmFeeRequest(StrictRequestModel):
    booking_id: str = Field(..., min_length=1)
    fee_rail_reference: str = Field(..., min_length=1, description="Charge id returned by initiate")


class SettleProviderRequest(StrictRequestModel):
    booking_id: str = Field(..., min_length=1)


class PaymentResponse(StandardizedModel):
    id: str
    booking_id: str
    total_amount: Decimal
    provider_amount: Decimal
    platform_fee: Decimal
    currency: str
    status: PaymentStatus
    settlement_state: SettlementState
    display_summary: str
    fee_rail_reference: Optional[str] = None
    transfer_rail_reference: Optional[str] = None
    paid_at: Optional[datetime] = None
    settled_at: Optional[datetime] = None
    created_at: Optional[datetime] = None


class InitiateSettlementResponse(StandardizedModel):
    payment: PaymentResponse
    fee_rail_reference: str
    client_secret: Optional[str] = None


class PaymentHistoryItem(PaymentResponse):
    booking: BookingSummary


class PaymentHistoryResponse(StandardizedModel):
    payments: List[PaymentHistoryItem]
    total: int


class PayoutAccountStatusResponse(StandardizedModel):
    provider_id: str
    linked: bool
    verified: bool
    account_mask: Optional[str] = None


class PayoutLinkTokenResponse(StandardizedModel):
    link_token: str


class LinkPayoutAccountRequest(StrictRequestModel):
    public_token: str = Field(..., min_length=1, description="Token returned by the bank-link flow")
