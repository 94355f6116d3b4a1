# backend/bookrail/routes/payments.py
"""
Settlement routes.

Endpoints:
    POST /api/payments/initiate          Start the fee leg (client)
    POST /api/payments/confirm           Confirm the fee leg (client)
    POST /api/payments/settle-provider   Run the transfer leg
    GET  /api/payments/booking/{id}      Payment for a booking
    GET  /api/payments/history           Caller's payment history
    GET  /api/payments/payout-account    Caller's payout account status (provider)
    POST /api/payments/payout-account/link-token   Start bank linking (provider)
    POST /api/payments/payout-account/exchange     Store the linked account (provider)
"""

import asyncio
import logging

from fastapi import APIRouter, Body, Depends, Path, Query

from ..api.dependencies import get_actor_id, get_settlement_service
from ..core.config import settings
from ..core.exceptions import DomainException
from ..schemas.payment import (
    ConfirmFeeRequest,
    InitiateSettlementRequest,
    InitiateSettlementResponse,
    LinkPayoutAccountRequest,
    PaymentHistoryItem,
    PaymentHistoryResponse,
    PaymentResponse,
    PayoutAccountStatusResponse,
    PayoutLinkTokenResponse,
    SettleProviderRequest,
)
from ..services.settlement_service import SettlementService
from ._helpers import handle_domain_exception, run_with_retry

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/payments", tags=["payments"])


@router.post("/initiate", response_model=InitiateSettlementResponse)
async def initiate_settlement(
    request: InitiateSettlementRequest = Body(...),
    actor_id: str = Depends(get_actor_id),
    settlement_service: SettlementService = Depends(get_settlement_service),
) -> InitiateSettlementResponse:
    try:
        result = await run_with_retry(
            settlement_service.initiate_settlement,
            request.booking_id,
            actor_id,
            max_attempts=settings.rail_retry_attempts,
            backoff_seconds=settings.rail_retry_backoff_seconds,
        )
        return InitiateSettlementResponse(
            payment=PaymentResponse.model_validate(result.payment),
            fee_rail_reference=result.fee_rail_reference,
            client_secret=result.client_secret,
        )
    except DomainException as e:
        handle_domain_exception(e)


@router.post("/confirm", response_model=PaymentResponse)
async def confirm_fee_leg(
    request: ConfirmFeeRequest = Body(...),
    actor_id: str = Depends(get_actor_id),
    settlement_service: SettlementService = Depends(get_settlement_service),
) -> PaymentResponse:
    try:
        payment = await run_with_retry(
            settlement_service.confirm_fee_leg,
            request.booking_id,
            request.fee_rail_reference,
            actor_id,
            max_attempts=settings.rail_retry_attempts,
            backoff_seconds=settings.rail_retry_backoff_seconds,
        )
        return PaymentResponse.model_validate(payment)
    except DomainException as e:
        handle_domain_exception(e)


@router.post("/settle-provider", response_model=PaymentResponse)
async def settle_provider_leg(
    request: SettleProviderRequest = Body(...),
    actor_id: str = Depends(get_actor_id),
    settlement_service: SettlementService = Depends(get_settlement_service),
) -> PaymentResponse:
    try:
        payment = await run_with_retry(
            settlement_service.settle_provider_leg,
            request.booking_id,
            actor_id,
            max_attempts=settings.rail_retry_attempts,
            backoff_seconds=settings.rail_retry_backoff_seconds,
        )
        return PaymentResponse.model_validate(payment)
    except DomainException as e:
        handle_domain_exception(e)


@router.get("/booking/{booking_id}", response_model=PaymentResponse)
async def get_payment_for_booking(
    booking_id: str = Path(...),
    actor_id: str = Depends(get_actor_id),
    settlement_service: SettlementService = Depends(get_settlement_service),
) -> PaymentResponse:
    try:
        payment = await asyncio.to_thread(
            settlement_service.get_payment_for_booking, booking_id, actor_id
        )
        return PaymentResponse.model_validate(payment)
    except DomainException as e:
        handle_domain_exception(e)


@router.get("/history", response_model=PaymentHistoryResponse)
async def get_payment_history(
    limit: int = Query(100, ge=1, le=500),
    actor_id: str = Depends(get_actor_id),
    settlement_service: SettlementService = Depends(get_settlement_service),
) -> PaymentHistoryResponse:
    payments = await asyncio.to_thread(settlement_service.get_payment_history, actor_id, limit)
    return PaymentHistoryResponse(
        payments=[PaymentHistoryItem.model_validate(p) for p in payments],
        total=len(payments),
    )


@router.get("/payout-account", response_model=PayoutAccountStatusResponse)
async def get_payout_account_status(
    actor_id: str = Depends(get_actor_id),
    settlement_service: SettlementService = Depends(get_settlement_service),
) -> PayoutAccountStatusResponse:
    try:
        account_status = await asyncio.to_thread(
            settlement_service.get_payout_account_status, actor_id
        )
        return PayoutAccountStatusResponse.model_validate(account_status)
    except DomainException as e:
        handle_domain_exception(e)


@router.post("/payout-account/link-token", response_model=PayoutLinkTokenResponse)
async def create_payout_link_token(
    actor_id: str = Depends(get_actor_id),
    settlement_service: SettlementService = Depends(get_settlement_service),
) -> PayoutLinkTokenResponse:
    try:
        link_token = await run_with_retry(
            settlement_service.create_payout_link_token,
            actor_id,
            max_attempts=settings.rail_retry_attempts,
            backoff_seconds=settings.rail_retry_backoff_seconds,
        )
        return PayoutLinkTokenResponse(link_token=link_token)
    except DomainException as e:
        handle_domain_exception(e)


@router.post("/payout-account/exchange", response_model=PayoutAccountStatusResponse)
async def link_payout_account(
    request: LinkPayoutAccountRequest = Body(...),
    actor_id: str = Depends(get_actor_id),
    settlement_service: SettlementService = Depends(get_settlement_service),
) -> PayoutAccountStatusResponse:
    try:
        # Public tokens are single-use, so the exchange is not retried
        account_status = await asyncio.to_thread(
            settlement_service.link_payout_account, actor_id, request.public_token
        )
        return PayoutAccountStatusResponse.model_validate(account_status)
    except DomainException as e:
        handle_domain_exception(e)
