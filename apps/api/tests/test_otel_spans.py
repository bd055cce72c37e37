from __future__ import annotations

from collections.abc import Generator
from datetime import datetime, timedelta, timezone

import pytest
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from leadpool.core.config import Settings
from leadpool.core.database import Base
from leadpool.lifecycle.auto_transfer import AutoTransferJob
from leadpool.lifecycle.models import Customer, SystemConfig, User
from leadpool.otel import setup_inmemory_otel


NOW = datetime(2026, 10, 18, 1, 0, tzinfo=timezone.utc)


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
def span_exporter() -> InMemorySpanExporter:
    exporter = setup_inmemory_otel()
    exporter.clear()
    return exporter


def test_auto_transfer_run_emits_span(db_session: Session, span_exporter: InMemorySpanExporter) -> None:
    target = User(username="S9", role="FACTORY_SALES")
    db_session.add(target)
    db_session.commit()
    db_session.add_all(
        [
            SystemConfig(
                config_type="customer_auto_transfer",
                config_key="default",
                config_value={"targetSalesId": str(target.id), "targetSalesName": "S9", "daysWithoutProgress": 30},
            ),
            Customer(name="Stale", progress="初步接触", initial_contact_time=NOW - timedelta(days=45)),
        ]
    )
    db_session.commit()

    summary = AutoTransferJob(settings=Settings()).run(db_session, NOW)

    spans = [span for span in span_exporter.get_finished_spans() if span.name == "customer.auto_transfer.run"]
    assert len(spans) == 1
    attributes = spans[0].attributes
    assert attributes["job_id"] == summary.run_id
    assert attributes["job_type"] == "AUTO_TRANSFER"
    assert attributes["status"] == "succeeded"
    assert attributes["transferred"] == 1


def test_aborted_run_still_closes_span(db_session: Session, span_exporter: InMemorySpanExporter) -> None:
    AutoTransferJob(settings=Settings()).run(db_session, NOW)

    spans = [span for span in span_exporter.get_finished_spans() if span.name == "customer.auto_transfer.run"]
    assert len(spans) == 1
    assert spans[0].attributes["status"] == "no_config"
