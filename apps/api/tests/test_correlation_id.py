from __future__ import annotations

from collections.abc import Generator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from leadpool.core.database import Base, get_db
from leadpool.lifecycle.api import get_current_user
from leadpool.lifecycle.roles import Operator, Role
from leadpool.main import app


@pytest.fixture()
def db_session() -> Generator[Session, None, None]:
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def client(db_session: Session) -> Generator[TestClient, None, None]:
    def override_get_db() -> Generator[Session, None, None]:
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_current_user] = lambda: Operator(id="admin-1", name="Admin", role=Role.SUPER_ADMIN)
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


MISSING_CUSTOMER = "/api/customers/00000000-0000-4000-8000-000000000000/move-to-public"


def test_generated_correlation_id_returned_in_header_and_error_envelope(client: TestClient) -> None:
    response = client.post(MISSING_CUSTOMER)
    assert response.status_code == 404
    header_value = response.headers.get("x-correlation-id")
    assert header_value
    body = response.json()
    assert body["correlation_id"] == header_value
    assert body["code"] == "not_found"
    assert body["message"] == "customer not found"


def test_correlation_id_respected_when_provided(client: TestClient) -> None:
    response = client.post(MISSING_CUSTOMER, headers={"X-Correlation-Id": "abc-123"})
    assert response.status_code == 404
    assert response.headers.get("x-correlation-id") == "abc-123"
    assert response.json()["correlation_id"] == "abc-123"


def test_successful_responses_carry_correlation_header(client: TestClient) -> None:
    response = client.get("/health", headers={"X-Correlation-Id": "health-1"})
    assert response.status_code == 200
    assert response.headers.get("x-correlation-id") == "health-1"
