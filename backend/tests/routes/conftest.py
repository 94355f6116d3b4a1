"""HTTP-level fixtures: the app wired to the per-test database and fake rails."""

from typing import Iterator

from fastapi.testclient import TestClient
import pytest
from sqlalchemy.orm import Session, sessionmaker

from bookrail.api.dependencies.services import get_db, get_fee_rail_dep, get_transfer_rail_dep
from bookrail.core.config import settings
from bookrail.main import create_app


@pytest.fixture
def client(
    session_factory: sessionmaker, fee_rail, transfer_rail, monkeypatch
) -> Iterator[TestClient]:
    monkeypatch.setattr(settings, "rail_retry_backoff_seconds", 0.0)
    monkeypatch.setattr(settings, "concurrency_retry_backoff_seconds", 0.0)
    app = create_app()

    def override_get_db() -> Iterator[Session]:
        session = session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_fee_rail_dep] = lambda: fee_rail
    app.dependency_overrides[get_transfer_rail_dep] = lambda: transfer_rail
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def as_user():
    def _headers(user_id: str) -> dict:
        return {"X-Actor-Id": user_id}

    return _headers
