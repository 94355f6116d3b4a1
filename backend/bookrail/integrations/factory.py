"""Build payment rails from settings."""

from functools import lru_cache
import logging

from ..core.config import Settings, settings
from .fee_rail import FakeFeeRail, FeeRail, StripeFeeRail
from .transfer_rail import FakeTransferRail, PlaidTransferRail, TransferRail

logger = logging.getLogger(__name__)


def build_fee_rail(config: Settings) -> FeeRail:
    if config.rails_fake:
        logger.info("Using in-memory fee rail")
        return FakeFeeRail()
    return StripeFeeRail(api_key=config.stripe_secret_key, timeout=config.stripe_timeout_seconds)


def build_transfer_rail(config: Settings) -> TransferRail:
    if config.rails_fake:
        logger.info("Using in-memory transfer rail")
        return FakeTransferRail()
    return PlaidTransferRail(
        client_id=config.plaid_client_id,
        secret=config.plaid_secret,
        base_url=config.plaid_base_url,
        timeout=config.plaid_timeout_seconds,
        client_name=config.plaid_client_name,
    )


@lru_cache(maxsize=1)
def get_fee_rail() -> FeeRail:
    """Process-wide fee rail; the fake keeps its state across requests."""
    return build_fee_rail(settings)


@lru_cache(maxsize=1)
def get_transfer_rail() -> TransferRail:
    return build_transfer_rail(settings)
