from __future__ import annotations

from collections.abc import Callable, Generator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, select
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from leadpool.core.database import Base, get_db
from leadpool.lifecycle.api import get_current_user
from leadpool.lifecycle.models import Customer, CustomerProgressHistory
from leadpool.lifecycle.roles import Operator, Role
from leadpool.main import app


INITIAL = "初步接触"
NORMAL = "正常推进"
POOL = "进入公海"
DISABLED = "禁用"
SAMPLE = "样板评估"

SALES = Operator(id="sales-1", name="Sales One", role=Role.FACTORY_SALES)


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
def client(db_session: Session) -> Generator[tuple[TestClient, Callable[[Operator | None], None]], None, None]:
    def override_get_db() -> Generator[Session, None, None]:
        yield db_session

    state: dict[str, Operator | None] = {"current": SALES}

    def override_get_current_user() -> Operator | None:
        return state["current"]

    def act_as(operator: Operator | None) -> None:
        state["current"] = operator

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_current_user] = override_get_current_user
    with TestClient(app) as test_client:
        yield test_client, act_as
    app.dependency_overrides.clear()


def _customer(db: Session, name: str = "Progress Corp", progress: str = INITIAL) -> Customer:
    customer = Customer(
        name=name,
        progress=progress,
        related_sales_id=SALES.id,
        related_sales_name=SALES.name,
    )
    db.add(customer)
    db.commit()
    return customer


def _progress_rows(db: Session, customer: Customer) -> list[CustomerProgressHistory]:
    return list(
        db.scalars(
            select(CustomerProgressHistory).where(CustomerProgressHistory.customer_id == str(customer.id))
        ).all()
    )


def test_change_to_normal_records_history_and_disables_siblings(
    client: tuple[TestClient, Callable[[Operator | None], None]],
    db_session: Session,
) -> None:
    test_client, _ = client
    customer = _customer(db_session, "Same Name")
    sibling = _customer(db_session, "Same Name")

    response = test_client.post(
        f"/api/change_customers/{customer.id}/progress",
        json={"progress": NORMAL, "remark": "first sample shipped"},
    )

    assert response.status_code == 200
    assert response.json() == {
        "customer_id": str(customer.id),
        "from_progress": INITIAL,
        "to_progress": NORMAL,
        "changed": True,
    }
    db_session.refresh(customer)
    db_session.refresh(sibling)
    assert customer.progress == NORMAL
    assert sibling.progress == DISABLED

    rows = _progress_rows(db_session, customer)
    assert len(rows) == 1
    assert rows[0].remark == "first sample shipped"
    assert rows[0].operator_id == SALES.id


def test_change_accepts_state_names(
    client: tuple[TestClient, Callable[[Operator | None], None]],
    db_session: Session,
) -> None:
    test_client, _ = client
    customer = _customer(db_session)

    response = test_client.post(f"/api/change_customers/{customer.id}/progress", json={"progress": "SAMPLE_EVALUATION"})

    assert response.status_code == 200
    assert response.json()["to_progress"] == SAMPLE
    db_session.refresh(customer)
    assert customer.progress == SAMPLE


def test_change_to_current_value_is_a_noop(
    client: tuple[TestClient, Callable[[Operator | None], None]],
    db_session: Session,
) -> None:
    test_client, _ = client
    customer = _customer(db_session)

    response = test_client.post(f"/api/change_customers/{customer.id}/progress", json={"progress": INITIAL})

    assert response.status_code == 200
    assert response.json()["changed"] is False
    assert _progress_rows(db_session, customer) == []


def test_change_rejects_unknown_progress(
    client: tuple[TestClient, Callable[[Operator | None], None]],
    db_session: Session,
) -> None:
    test_client, _ = client
    customer = _customer(db_session)

    response = test_client.post(f"/api/change_customers/{customer.id}/progress", json={"progress": "won"})

    assert response.status_code == 400
    assert response.json()["details"]["allowed"] == [INITIAL, NORMAL, POOL, DISABLED, SAMPLE]
    db_session.refresh(customer)
    assert customer.progress == INITIAL

    missing = test_client.post(f"/api/change_customers/{customer.id}/progress", json={})
    assert missing.status_code == 400


def test_change_into_public_pool_applies_pool_entry(
    client: tuple[TestClient, Callable[[Operator | None], None]],
    db_session: Session,
) -> None:
    test_client, _ = client
    customer = _customer(db_session, progress=NORMAL)

    response = test_client.post(f"/api/change_customers/{customer.id}/progress", json={"progress": POOL})

    assert response.status_code == 200
    db_session.refresh(customer)
    assert customer.is_in_public_pool is True
    assert customer.related_sales_id is None
    assert customer.previous_owner_id == SALES.id
    assert [(row.from_progress, row.to_progress) for row in _progress_rows(db_session, customer)] == [(NORMAL, POOL)]

    leave = test_client.post(f"/api/change_customers/{customer.id}/progress", json={"progress": NORMAL})
    assert leave.status_code == 400
    db_session.refresh(customer)
    assert customer.progress == POOL


def test_change_requires_progress_capability(
    client: tuple[TestClient, Callable[[Operator | None], None]],
    db_session: Session,
) -> None:
    test_client, act_as = client
    customer = _customer(db_session)

    act_as(Operator(id="inv-1", name="Inventory", role=Role.INVENTORY_MANAGER))
    forbidden = test_client.post(f"/api/change_customers/{customer.id}/progress", json={"progress": NORMAL})
    assert forbidden.status_code == 403

    act_as(SALES)
    missing = test_client.post(
        "/api/change_customers/00000000-0000-4000-8000-000000000000/progress",
        json={"progress": NORMAL},
    )
    assert missing.status_code == 404


def test_change_into_public_pool_requires_ownership(
    client: tuple[TestClient, Callable[[Operator | None], None]],
    db_session: Session,
) -> None:
    test_client, act_as = client
    customer = _customer(db_session, progress=NORMAL)

    act_as(Operator(id="sales-2", name="Sales Two", role=Role.FACTORY_SALES))
    response = test_client.post(f"/api/change_customers/{customer.id}/progress", json={"progress": POOL})

    assert response.status_code == 403
    db_session.refresh(customer)
    assert customer.is_in_public_pool is False
    assert customer.progress == NORMAL
    assert customer.related_sales_id == SALES.id
    assert _progress_rows(db_session, customer) == []

    act_as(Operator(id="admin-1", name="Admin", role=Role.SUPER_ADMIN))
    allowed = test_client.post(f"/api/change_customers/{customer.id}/progress", json={"progress": POOL})
    assert allowed.status_code == 200
