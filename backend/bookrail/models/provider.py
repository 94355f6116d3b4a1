# backend/bookrail/models/provider.py
"""Provider profile with payout account linkage."""

from sqlalchemy import Boolean, Column, DateTime, String
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import ulid

from ..database import Base


class ProviderProfile(Base):
    """
    Provider-facing profile.

    ``user_id`` is the provider's user id, the value stored on bookings.
    The payout account is linked through the transfer rail's account-link flow;
    only the resulting access token and account id are stored here.
    """

    __tablename__ = "provider_profiles"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    user_id = Column(String(26), nullable=False, unique=True, index=True)
    display_name = Column(String(255), nullable=False)
    legal_name = Column(String(255), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)

    payout_item_id = Column(String(255), nullable=True)
    payout_access_token = Column(String(255), nullable=True)
    payout_account_id = Column(String(255), nullable=True)
    payout_account_mask = Column(String(8), nullable=True)
    payout_account_verified = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=True, onupdate=func.now())

    services = relationship("Service", back_populates="provider_profile")

    @property
    def has_verified_payout_account(self) -> bool:
        return bool(
            self.payout_account_verified
            and self.payout_access_token
            and self.payout_account_id
        )

    def __repr__(self) -> str:
        return f"<ProviderProfile {self.id}: user={self.user_id}, active={self.is_active}>"
