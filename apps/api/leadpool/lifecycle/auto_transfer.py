"""Daily reassignment of customers stuck in initial contact.

:class:`AutoTransferJob` performs one run against a session.
:class:`AutoTransferScheduler` owns the in-process daily loop: a worker thread
that sleeps until the configured wall-clock time, runs the job and repeats
until :meth:`AutoTransferScheduler.stop` is called. The clock is injectable so
tests can drive days of schedule without sleeping.
"""

from __future__ import annotations

import logging
import threading
import time
import uuid
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Protocol

from opentelemetry import trace
from sqlalchemy.orm import Session, sessionmaker

from leadpool.context import correlation_scope
from leadpool.core.config import Settings, get_settings
from leadpool.lifecycle.assignment import AssignmentService
from leadpool.lifecycle.config_provider import ConfigProvider
from leadpool.lifecycle.errors import LifecycleError
from leadpool.lifecycle.progress import ProgressState, ProgressStateMachine
from leadpool.lifecycle.repositories import CustomerRepository
from leadpool.lifecycle.roles import Operator, system_operator
from leadpool.metrics import observe_auto_transfer_customer, observe_auto_transfer_run


logger = logging.getLogger("leadpool.jobs")
tracer = trace.get_tracer("leadpool.jobs")

JOB_TYPE = "AUTO_TRANSFER"


def as_utc(value: datetime) -> datetime:
    # sqlite hands back naive datetimes even for timezone-aware columns
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def elapsed_days(now: datetime, reference: datetime) -> int:
    return int((as_utc(now) - as_utc(reference)).total_seconds() // 86400)


def next_run_after(now: datetime, hour: int, minute: int, second: int) -> datetime:
    candidate = now.replace(hour=hour, minute=minute, second=second, microsecond=0)
    if candidate <= now:
        candidate += timedelta(days=1)
    return candidate


@dataclass
class AutoTransferSummary:
    run_id: str
    status: str
    checked: int = 0
    transferred: int = 0
    skipped: int = 0
    failed: int = 0
    config_id: str | None = None
    reason: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class _Candidate:
    id: str
    name: str
    sales_id: str
    agent_id: str
    reference_time: datetime


class AutoTransferJob:
    def __init__(
        self,
        *,
        settings: Settings | None = None,
        assignments: AssignmentService | None = None,
        config_provider: ConfigProvider | None = None,
        customers: CustomerRepository | None = None,
        machine: ProgressStateMachine | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.machine = machine or ProgressStateMachine()
        self.customers = customers or CustomerRepository()
        self.assignments = assignments or AssignmentService(customers=self.customers, machine=self.machine)
        self.config_provider = config_provider or ConfigProvider()

    @property
    def operator(self) -> Operator:
        return system_operator(self.settings.system_operator_id, self.settings.system_operator_name)

    def run(self, session: Session, now: datetime | None = None) -> AutoTransferSummary:
        run_id = str(uuid.uuid4())
        with correlation_scope(f"auto-transfer-{run_id}"):
            return self._traced_run(session, now or datetime.now(timezone.utc), run_id)

    def _traced_run(self, session: Session, now: datetime, run_id: str) -> AutoTransferSummary:
        started = time.perf_counter()
        summary = AutoTransferSummary(run_id=run_id, status="running")
        try:
            with tracer.start_as_current_span("customer.auto_transfer.run") as span:
                span.set_attribute("job_id", run_id)
                span.set_attribute("job_type", JOB_TYPE)
                logger.info(
                    "job.started",
                    extra={"job_id": run_id, "job_type": JOB_TYPE, "status": "running", "duration_ms": 0.0},
                )
                self._run(session, now, summary)
                span.set_attribute("status", summary.status)
                span.set_attribute("checked", summary.checked)
                span.set_attribute("transferred", summary.transferred)
                span.set_attribute("failed", summary.failed)
        except Exception as exc:
            session.rollback()
            summary.status = "failed"
            summary.reason = "internal error"
            logger.exception("job.failed", extra={"job_id": run_id, "job_type": JOB_TYPE, "error": str(exc)})
        finally:
            duration = time.perf_counter() - started
            observe_auto_transfer_run(summary.status, duration)
            logger.info(
                "job.finished",
                extra={
                    "job_id": run_id,
                    "job_type": JOB_TYPE,
                    "status": summary.status,
                    "duration_ms": round(duration * 1000, 2),
                    "checked": summary.checked,
                    "transferred": summary.transferred,
                    "skipped": summary.skipped,
                    "failed": summary.failed,
                },
            )
        return summary

    def _run(self, session: Session, now: datetime, summary: AutoTransferSummary) -> None:
        try:
            config = self.config_provider.load_auto_transfer(session)
        except LifecycleError as exc:
            summary.status = "no_config"
            summary.reason = exc.message
            logger.warning("job.aborted", extra={"job_type": JOB_TYPE, "status": "no_config", "error": exc.message})
            return
        summary.config_id = config.config_id

        initial_label = self.machine.vocabulary.label(ProgressState.INITIAL_CONTACT)
        candidates = [
            _Candidate(
                id=str(customer.id),
                name=customer.name,
                sales_id=customer.related_sales_id or "",
                agent_id=customer.related_agent_id or "",
                reference_time=customer.initial_contact_time or customer.created_at,
            )
            for customer in self.customers.list_by_progress(session, initial_label)
        ]
        operator = self.operator

        for candidate in candidates:
            summary.checked += 1
            days = elapsed_days(now, candidate.reference_time)
            if days < config.days_without_progress:
                continue
            if not candidate.agent_id and candidate.sales_id == config.target_sales_id:
                summary.skipped += 1
                observe_auto_transfer_customer("skipped")
                continue

            try:
                result = self.assignments.assign(session, candidate.id, config.target_sales_id, "", operator)
            except Exception as exc:
                session.rollback()
                summary.failed += 1
                observe_auto_transfer_customer("failed")
                logger.exception(
                    "job.customer_failed",
                    extra={"job_type": JOB_TYPE, "customer_id": candidate.id, "error": str(exc)},
                )
                continue

            if result.ok:
                summary.transferred += 1
                observe_auto_transfer_customer("transferred")
                logger.info(
                    "job.customer_transferred",
                    extra={
                        "job_type": JOB_TYPE,
                        "customer_id": candidate.id,
                        "customer_name": candidate.name,
                        "sales_id": config.target_sales_id,
                        "days": days,
                    },
                )
            else:
                summary.failed += 1
                observe_auto_transfer_customer("failed")
                logger.warning(
                    "job.customer_failed",
                    extra={
                        "job_type": JOB_TYPE,
                        "customer_id": candidate.id,
                        "customer_name": candidate.name,
                        "status_code": result.status_code,
                        "error": result.error.message if result.error else None,
                    },
                )

        summary.status = "succeeded"


class Clock(Protocol):
    def now(self) -> datetime: ...

    def sleep(self, seconds: float, stop_event: threading.Event) -> bool:
        """Wait up to ``seconds``; return True if ``stop_event`` was set meanwhile."""


class SystemClock:
    def now(self) -> datetime:
        return datetime.now().astimezone()

    def sleep(self, seconds: float, stop_event: threading.Event) -> bool:
        return stop_event.wait(max(seconds, 0.0))


class AutoTransferScheduler:
    def __init__(
        self,
        session_factory: sessionmaker[Session],
        *,
        job: AutoTransferJob | None = None,
        hour: int = 1,
        minute: int = 0,
        second: int = 0,
        clock: Clock | None = None,
    ) -> None:
        self.session_factory = session_factory
        self.job = job or AutoTransferJob()
        self.hour = hour
        self.minute = minute
        self.second = second
        self.clock = clock or SystemClock()
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    @classmethod
    def from_settings(cls, session_factory: sessionmaker[Session], settings: Settings) -> AutoTransferScheduler:
        return cls(
            session_factory,
            job=AutoTransferJob(settings=settings),
            hour=settings.auto_transfer_hour,
            minute=settings.auto_transfer_minute,
            second=settings.auto_transfer_second,
        )

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self.run_forever, name="auto-transfer-scheduler", daemon=True)
        self._thread.start()
        logger.info("job.scheduler_started", extra={"job_type": JOB_TYPE, "status": "started"})

    def stop(self, timeout: float | None = 5.0) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
        logger.info("job.scheduler_stopped", extra={"job_type": JOB_TYPE, "status": "stopped"})

    def run_forever(self) -> None:
        while not self._stop.is_set():
            now = self.clock.now()
            next_run = next_run_after(now, self.hour, self.minute, self.second)
            if self.clock.sleep((next_run - now).total_seconds(), self._stop):
                break
            self.run_once()

    def run_once(self) -> AutoTransferSummary | None:
        session = self.session_factory()
        try:
            return self.job.run(session, self.clock.now())
        except Exception as exc:
            logger.exception("job.failed", extra={"job_type": JOB_TYPE, "error": str(exc)})
            return None
        finally:
            session.close()
