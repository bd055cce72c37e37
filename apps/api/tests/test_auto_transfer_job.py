from __future__ import annotations

import threading
from collections.abc import Generator
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import create_engine, select
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from leadpool.core.config import Settings
from leadpool.core.database import Base
from leadpool.lifecycle.assignment import AssignmentResult, AssignmentService
from leadpool.lifecycle.auto_transfer import (
    AutoTransferJob,
    AutoTransferScheduler,
    AutoTransferSummary,
    as_utc,
    elapsed_days,
    next_run_after,
)
from leadpool.lifecycle.errors import NotFoundError
from leadpool.lifecycle.models import Agent, Customer, CustomerAssignmentHistory, SystemConfig, User


INITIAL = "初步接触"
NORMAL = "正常推进"
NOW = datetime(2026, 10, 18, 1, 0, tzinfo=timezone.utc)

SETTINGS = Settings(system_operator_id="system-admin", system_operator_name="admin")


@pytest.fixture()
def session_factory() -> Generator[sessionmaker[Session], None, None]:
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    Base.metadata.create_all(bind=engine)
    yield SessionLocal
    Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def db_session(session_factory: sessionmaker[Session]) -> Generator[Session, None, None]:
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def target(db_session: Session) -> User:
    s9 = User(username="S9", role="FACTORY_SALES")
    db_session.add(s9)
    db_session.commit()
    db_session.add(
        SystemConfig(
            config_type="customer_auto_transfer",
            config_key="default",
            config_value={"targetSalesId": str(s9.id), "targetSalesName": "S9", "daysWithoutProgress": 30},
        )
    )
    db_session.commit()
    return s9


def _stale_customer(db: Session, name: str, days: int, **values: object) -> Customer:
    customer = Customer(
        name=name,
        progress=values.pop("progress", INITIAL),
        initial_contact_time=NOW - timedelta(days=days, minutes=5),
        **values,
    )
    db.add(customer)
    db.commit()
    return customer


def test_stale_customer_is_transferred_by_system_operator(db_session: Session, target: User) -> None:
    s3 = User(username="S3", role="FACTORY_SALES")
    db_session.add(s3)
    db_session.commit()
    stale = _stale_customer(db_session, "Stale Co", 31, related_sales_id=str(s3.id), related_sales_name="S3")
    fresh = _stale_customer(db_session, "Fresh Co", 10, related_sales_id=str(s3.id), related_sales_name="S3")
    advanced = _stale_customer(db_session, "Normal Co", 90, progress=NORMAL, related_sales_id=str(s3.id))
    original_contact_time = NOW - timedelta(days=31, minutes=5)

    summary = AutoTransferJob(settings=SETTINGS).run(db_session, NOW)

    assert summary.status == "succeeded"
    assert summary.checked == 2
    assert summary.transferred == 1
    assert summary.failed == 0
    assert summary.config_id is not None
    for row in (stale, fresh, advanced):
        db_session.refresh(row)
    assert stale.related_sales_id == str(target.id)
    assert stale.related_sales_name == "S9"
    assert stale.progress == INITIAL
    assert as_utc(stale.initial_contact_time) != original_contact_time
    assert fresh.related_sales_id == str(s3.id)
    assert advanced.related_sales_id == str(s3.id)

    history = db_session.scalars(
        select(CustomerAssignmentHistory).where(CustomerAssignmentHistory.customer_id == str(stale.id))
    ).all()
    assert len(history) == 1
    assert history[0].operator_id == "system-admin"
    assert history[0].operator_name == "admin"
    assert history[0].operation_type == "分配"
    assert history[0].from_related_sales_id == str(s3.id)
    assert history[0].to_related_sales_id == str(target.id)


def test_customer_already_with_target_is_skipped_unless_agent_attached(db_session: Session, target: User) -> None:
    agent = Agent(company_name="Agent One")
    db_session.add(agent)
    db_session.commit()
    exclusive = _stale_customer(db_session, "Exclusive", 40, related_sales_id=str(target.id), related_sales_name="S9")
    shared = _stale_customer(
        db_session,
        "Shared",
        40,
        related_sales_id=str(target.id),
        related_sales_name="S9",
        related_agent_id=str(agent.id),
        related_agent_name="Agent One",
    )
    unowned = _stale_customer(db_session, "Unowned", 40)

    summary = AutoTransferJob(settings=SETTINGS).run(db_session, NOW)

    assert summary.skipped == 1
    assert summary.transferred == 2
    for row in (exclusive, shared, unowned):
        db_session.refresh(row)
    assert shared.related_agent_id is None
    assert unowned.related_sales_id == str(target.id)
    assert elapsed_days(NOW, exclusive.initial_contact_time) >= 40


def test_created_at_is_used_when_initial_contact_time_is_missing(db_session: Session, target: User) -> None:
    customer = Customer(name="Old Intake", progress=INITIAL, created_at=NOW - timedelta(days=60))
    db_session.add(customer)
    db_session.commit()

    summary = AutoTransferJob(settings=SETTINGS).run(db_session, NOW)

    assert summary.transferred == 1


def test_sla_boundary_is_inclusive(db_session: Session, target: User) -> None:
    customer = Customer(name="Boundary", progress=INITIAL, initial_contact_time=NOW - timedelta(days=30))
    db_session.add(customer)
    db_session.commit()

    summary = AutoTransferJob(settings=SETTINGS).run(db_session, NOW)

    assert summary.transferred == 1


class FlakyAssignments(AssignmentService):
    def __init__(self, broken_id: str, rejected_id: str) -> None:
        super().__init__()
        self.broken_id = broken_id
        self.rejected_id = rejected_id

    def assign(self, session, customer_id, sales_id, agent_id, operator):  # type: ignore[no-untyped-def]
        if customer_id == self.broken_id:
            raise RuntimeError("store unreachable")
        if customer_id == self.rejected_id:
            return AssignmentResult.failure(NotFoundError("customer not found"))
        return super().assign(session, customer_id, sales_id, agent_id, operator)


def test_per_customer_failures_do_not_stop_the_run(db_session: Session, target: User) -> None:
    broken = _stale_customer(db_session, "Broken", 31)
    rejected = _stale_customer(db_session, "Rejected", 31)
    healthy = _stale_customer(db_session, "Healthy", 31)
    assignments = FlakyAssignments(str(broken.id), str(rejected.id))

    summary = AutoTransferJob(settings=SETTINGS, assignments=assignments).run(db_session, NOW)

    assert summary.status == "succeeded"
    assert summary.checked == 3
    assert summary.failed == 2
    assert summary.transferred == 1
    db_session.refresh(healthy)
    db_session.refresh(broken)
    assert healthy.related_sales_id == str(target.id)
    assert broken.related_sales_id is None


def test_target_id_written_in_another_format_still_matches_owner(db_session: Session) -> None:
    s9 = User(username="S9", role="FACTORY_SALES")
    db_session.add(s9)
    db_session.commit()
    db_session.add(
        SystemConfig(
            config_type="customer_auto_transfer",
            config_key="uppercase",
            config_value={"targetSalesId": str(s9.id).upper(), "targetSalesName": "S9", "daysWithoutProgress": 30},
        )
    )
    db_session.commit()
    owned = _stale_customer(db_session, "Owned Co", 31, related_sales_id=str(s9.id), related_sales_name="S9")

    summary = AutoTransferJob(settings=SETTINGS).run(db_session, NOW)

    assert summary.status == "succeeded"
    assert summary.skipped == 1
    assert summary.transferred == 0
    db_session.refresh(owned)
    assert as_utc(owned.initial_contact_time) == NOW - timedelta(days=31, minutes=5)
    assert db_session.scalars(select(CustomerAssignmentHistory)).all() == []

def test_run_aborts_without_enabled_config(db_session: Session) -> None:
    _stale_customer(db_session, "Stale", 90)
    db_session.add(
        SystemConfig(
            config_type="customer_auto_transfer",
            config_key="disabled",
            config_value={"targetSalesId": "s9", "targetSalesName": "S9", "daysWithoutProgress": 30},
            is_enabled=False,
        )
    )
    db_session.commit()

    summary = AutoTransferJob(settings=SETTINGS).run(db_session, NOW)

    assert summary.status == "no_config"
    assert summary.checked == 0


def test_run_aborts_on_unparsable_config(db_session: Session) -> None:
    db_session.add(
        SystemConfig(
            config_type="customer_auto_transfer",
            config_key="broken",
            config_value={"targetSalesId": "s9"},
        )
    )
    db_session.commit()

    summary = AutoTransferJob(settings=SETTINGS).run(db_session, NOW)

    assert summary.status == "no_config"
    assert summary.reason == "invalid auto transfer config"


def test_next_run_after() -> None:
    before = datetime(2026, 10, 18, 0, 30)
    assert next_run_after(before, 1, 0, 0) == datetime(2026, 10, 18, 1, 0)

    exactly = datetime(2026, 10, 18, 1, 0)
    assert next_run_after(exactly, 1, 0, 0) == datetime(2026, 10, 19, 1, 0)

    after = datetime(2026, 10, 18, 13, 45, 10, 500)
    assert next_run_after(after, 1, 0, 0) == datetime(2026, 10, 19, 1, 0)


class FakeClock:
    def __init__(self, start: datetime, wakeups: int) -> None:
        self.current = start
        self.wakeups = wakeups
        self.sleeps: list[float] = []

    def now(self) -> datetime:
        return self.current

    def sleep(self, seconds: float, stop_event: threading.Event) -> bool:
        if len(self.sleeps) >= self.wakeups:
            return True
        self.sleeps.append(seconds)
        self.current += timedelta(seconds=seconds)
        return stop_event.is_set()


class RecordingJob:
    def __init__(self) -> None:
        self.runs: list[datetime | None] = []

    def run(self, session: Session, now: datetime | None = None) -> AutoTransferSummary:
        self.runs.append(now)
        return AutoTransferSummary(run_id=str(len(self.runs)), status="succeeded")


def test_scheduler_runs_once_per_day_at_configured_time(session_factory: sessionmaker[Session]) -> None:
    clock = FakeClock(datetime(2026, 10, 18, 0, 30), wakeups=3)
    job = RecordingJob()
    scheduler = AutoTransferScheduler(session_factory, job=job, hour=1, clock=clock)  # type: ignore[arg-type]

    scheduler.run_forever()

    assert clock.sleeps == [1800.0, 86400.0, 86400.0]
    assert job.runs == [
        datetime(2026, 10, 18, 1, 0),
        datetime(2026, 10, 19, 1, 0),
        datetime(2026, 10, 20, 1, 0),
    ]


def test_scheduler_survives_a_failing_run(session_factory: sessionmaker[Session]) -> None:
    class ExplodingJob:
        def run(self, session: Session, now: datetime | None = None) -> AutoTransferSummary:
            raise RuntimeError("boom")

    clock = FakeClock(datetime(2026, 10, 18, 0, 30), wakeups=2)
    scheduler = AutoTransferScheduler(session_factory, job=ExplodingJob(), clock=clock)  # type: ignore[arg-type]

    scheduler.run_forever()

    assert len(clock.sleeps) == 2


def test_scheduler_thread_stops_on_request(session_factory: sessionmaker[Session]) -> None:
    job = RecordingJob()
    scheduler = AutoTransferScheduler(session_factory, job=job, hour=1)  # type: ignore[arg-type]

    scheduler.start()
    assert scheduler.running
    scheduler.stop(timeout=2.0)

    assert not scheduler.running
    assert job.runs == []


def test_scheduler_run_once_uses_real_job(session_factory: sessionmaker[Session], target: User) -> None:
    seed = session_factory()
    _stale_customer(seed, "Stale", 31)
    seed.close()
    clock = FakeClock(NOW, wakeups=0)
    scheduler = AutoTransferScheduler(session_factory, job=AutoTransferJob(settings=SETTINGS), clock=clock)

    summary = scheduler.run_once()

    assert summary is not None
    assert summary.transferred == 1
