# backend/tests/conftest.py
"""
Pytest configuration.

Every test gets a fresh in-memory SQLite database and in-memory payment rails.
No test talks to Stripe, Plaid, Redis or a real database.
"""

import os

# Set testing mode BEFORE any bookrail imports
os.environ.setdefault("SITE_MODE", "local")
os.environ["RAILS_FAKE"] = "true"
os.environ["DATABASE_URL"] = "sqlite+pysqlite:///:memory:"

from datetime import date, timedelta
from decimal import Decimal
from typing import Callable, Iterator

import pytest
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool
import ulid

from bookrail.database import Base
import bookrail.models  # noqa: F401
from bookrail.integrations.fee_rail import FakeFeeRail
from bookrail.integrations.transfer_rail import FakeTransferRail
from bookrail.models.booking import Booking
from bookrail.models.provider import ProviderProfile
from bookrail.models.service import Service
from bookrail.schemas.booking import BookingCreate
from bookrail.services.booking_service import BookingService
from bookrail.services.settlement_service import SettlementService

SERVICE_PRICE = Decimal("120.00")


def new_id() -> str:
    return str(ulid.ULID())


@pytest.fixture
def engine() -> Iterator[Engine]:
    test_engine = create_engine(
        "sqlite+pysqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    Base.metadata.create_all(bind=test_engine)
    yield test_engine
    Base.metadata.drop_all(bind=test_engine)
    test_engine.dispose()


@pytest.fixture
def session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)


@pytest.fixture
def db(session_factory: sessionmaker) -> Iterator[Session]:
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client_id() -> str:
    return new_id()


@pytest.fixture
def provider_id() -> str:
    return new_id()


@pytest.fixture
def outsider_id() -> str:
    return new_id()


@pytest.fixture
def provider_profile(db: Session, provider_id: str) -> ProviderProfile:
    profile = ProviderProfile(
        user_id=provider_id,
        display_name="Sarah C.",
        legal_name="Sarah Chen",
        is_active=True,
        payout_access_token="access-sandbox-1234",
        payout_account_id="acct_checking_1",
        payout_account_verified=True,
    )
    db.add(profile)
    db.commit()
    return profile


@pytest.fixture
def service(db: Session, provider_profile: ProviderProfile) -> Service:
    offering = Service(
        provider_profile_id=provider_profile.id,
        name="Piano lesson",
        price=SERVICE_PRICE,
        duration_minutes=60,
        is_active=True,
    )
    db.add(offering)
    db.commit()
    return offering


@pytest.fixture
def fee_rail() -> FakeFeeRail:
    return FakeFeeRail()


@pytest.fixture
def transfer_rail() -> FakeTransferRail:
    return FakeTransferRail()


@pytest.fixture
def booking_service(db: Session) -> BookingService:
    return BookingService(db)


@pytest.fixture
def settlement_service(
    db: Session, fee_rail: FakeFeeRail, transfer_rail: FakeTransferRail
) -> SettlementService:
    return SettlementService(db, fee_rail, transfer_rail, fee_percent=Decimal("10"), currency="usd")


@pytest.fixture
def booking_request(provider_id: str, service: Service) -> Callable[..., BookingCreate]:
    def _build(**overrides) -> BookingCreate:
        data = {
            "provider_id": provider_id,
            "service_id": service.id,
            "scheduled_date": date.today() + timedelta(days=3),
            "scheduled_time": "14:00",
            "notes": "Bring sheet music",
        }
        data.update(overrides)
        return BookingCreate(**data)

    return _build


@pytest.fixture
def pending_booking(
    booking_service: BookingService, client_id: str, booking_request: Callable[..., BookingCreate]
) -> Booking:
    return booking_service.create_booking(client_id, booking_request())


@pytest.fixture
def confirmed_booking(
    booking_service: BookingService, pending_booking: Booking, provider_id: str
) -> Booking:
    return booking_service.accept_booking(pending_booking.id, provider_id)
