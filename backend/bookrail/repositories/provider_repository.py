# backend/bookrail/repositories/provider_repository.py
"""Provider profile and service lookups."""

from typing import Optional

from sqlalchemy.orm import Session

from ..models.provider import ProviderProfile
from ..models.service import Service
from .base_repository import BaseRepository


class ProviderProfileRepository(BaseRepository[ProviderProfile]):
    def __init__(self, db: Session):
        super().__init__(db, ProviderProfile)

    def get_by_user_id(self, user_id: str) -> Optional[ProviderProfile]:
        return self.find_one_by(user_id=user_id)

    def link_payout_account(
        self,
        profile: ProviderProfile,
        *,
        access_token: str,
        item_id: str,
        account_id: str,
        account_mask: Optional[str],
    ) -> ProviderProfile:
        """Store a verified payout account, replacing any previously linked one."""
        profile.payout_access_token = access_token
        profile.payout_item_id = item_id
        profile.payout_account_id = account_id
        profile.payout_account_mask = account_mask
        profile.payout_account_verified = True
        self.db.flush()
        return profile


class ServiceRepository(BaseRepository[Service]):
    def __init__(self, db: Session):
        super().__init__(db, Service)

    def get_active_for_provider(self, service_id: str, provider_profile_id: str) -> Optional[Service]:
        """Return the service only if it is active and owned by ``provider_profile_id``."""
        return (
            self.db.query(Service)
            .filter(Service.id == service_id)
            .filter(Service.provider_profile_id == provider_profile_id)
            .filter(Service.is_active.is_(True))
            .first()
        )
