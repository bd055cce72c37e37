"""Append-only assignment and progress history.

Rows are inserted once and never updated or deleted here. Callers that write
history after a primary mutation run the write as a post-commit hook, so a
failure here is logged and counted but does not undo the mutation.
"""

from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from leadpool.lifecycle.errors import HistoryValidationError
from leadpool.lifecycle.models import CustomerAssignmentHistory, CustomerProgressHistory, utcnow
from leadpool.metrics import observe_history_write_failure


logger = logging.getLogger("leadpool.history")

ASSIGNMENT_SINK = "assignment"
PROGRESS_SINK = "progress"

OPERATION_ASSIGN = "分配"
OPERATION_CLAIM = "认领"
OPERATION_MOVE_TO_POOL = "移入公海池"


def _require(sink: str, **fields: str | None) -> None:
    missing = [name for name, value in fields.items() if not value]
    if missing:
        observe_history_write_failure(sink)
        logger.warning(
            "history.rejected",
            extra={"sink": sink, "error": f"missing: {', '.join(sorted(missing))}"},
        )
        raise HistoryValidationError(sink, missing)


class HistoryLogger:
    def record_assignment(
        self,
        session: Session,
        *,
        customer_id: str,
        customer_name: str,
        operator_id: str,
        operator_name: str,
        operation_type: str,
        from_sales_id: str | None = None,
        from_sales_name: str | None = None,
        to_sales_id: str | None = None,
        to_sales_name: str | None = None,
        from_agent_id: str | None = None,
        from_agent_name: str | None = None,
        to_agent_id: str | None = None,
        to_agent_name: str | None = None,
        created_at: datetime | None = None,
        updated_at: datetime | None = None,
    ) -> CustomerAssignmentHistory:
        _require(
            ASSIGNMENT_SINK,
            customer_id=customer_id,
            customer_name=customer_name,
            operator_id=operator_id,
            operator_name=operator_name,
            operation_type=operation_type,
        )
        now = utcnow()
        entry = CustomerAssignmentHistory(
            customer_id=customer_id,
            customer_name=customer_name,
            from_related_sales_id=from_sales_id or "",
            from_related_sales_name=from_sales_name or "",
            to_related_sales_id=to_sales_id or "",
            to_related_sales_name=to_sales_name or "",
            from_related_agent_id=from_agent_id or "",
            from_related_agent_name=from_agent_name or "",
            to_related_agent_id=to_agent_id or "",
            to_related_agent_name=to_agent_name or "",
            operator_id=operator_id,
            operator_name=operator_name,
            operation_type=operation_type,
            created_at=created_at or now,
            updated_at=updated_at or created_at or now,
        )
        self._insert(session, entry, ASSIGNMENT_SINK)
        logger.info(
            "history.assignment_recorded",
            extra={
                "history_id": str(entry.id),
                "customer_id": customer_id,
                "customer_name": customer_name,
                "operation_type": operation_type,
                "operator_id": operator_id,
            },
        )
        return entry

    def record_progress(
        self,
        session: Session,
        *,
        customer_id: str,
        customer_name: str,
        from_progress: str,
        to_progress: str,
        operator_id: str,
        operator_name: str,
        remark: str | None = None,
        created_at: datetime | None = None,
        updated_at: datetime | None = None,
    ) -> CustomerProgressHistory:
        _require(
            PROGRESS_SINK,
            customer_id=customer_id,
            customer_name=customer_name,
            from_progress=from_progress,
            to_progress=to_progress,
            operator_id=operator_id,
            operator_name=operator_name,
        )
        now = utcnow()
        entry = CustomerProgressHistory(
            customer_id=customer_id,
            customer_name=customer_name,
            from_progress=from_progress,
            to_progress=to_progress,
            operator_id=operator_id,
            operator_name=operator_name,
            remark=remark,
            created_at=created_at or now,
            updated_at=updated_at or created_at or now,
        )
        self._insert(session, entry, PROGRESS_SINK)
        logger.info(
            "history.progress_recorded",
            extra={
                "history_id": str(entry.id),
                "customer_id": customer_id,
                "from_progress": from_progress,
                "to_progress": to_progress,
                "operator_id": operator_id,
            },
        )
        return entry

    def _insert(self, session: Session, entry: CustomerAssignmentHistory | CustomerProgressHistory, sink: str) -> None:
        try:
            session.add(entry)
            session.commit()
        except Exception:
            session.rollback()
            observe_history_write_failure(sink)
            logger.exception("history.write_failed", extra={"sink": sink, "customer_id": entry.customer_id})
            raise
        session.refresh(entry)

    def list_assignments(
        self,
        session: Session,
        *,
        customer_id: str | None = None,
        operation_type: str | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[CustomerAssignmentHistory]:
        stmt = select(CustomerAssignmentHistory)
        if customer_id:
            stmt = stmt.where(CustomerAssignmentHistory.customer_id == customer_id)
        if operation_type:
            stmt = stmt.where(CustomerAssignmentHistory.operation_type == operation_type)
        if start is not None:
            stmt = stmt.where(CustomerAssignmentHistory.created_at >= start)
        if end is not None:
            stmt = stmt.where(CustomerAssignmentHistory.created_at <= end)
        stmt = stmt.order_by(CustomerAssignmentHistory.created_at.desc(), CustomerAssignmentHistory.id.desc())
        return list(session.scalars(stmt).all())

    def list_progress(
        self,
        session: Session,
        *,
        customer_id: str | None = None,
        progress: str | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[CustomerProgressHistory]:
        stmt = select(CustomerProgressHistory)
        if customer_id:
            stmt = stmt.where(CustomerProgressHistory.customer_id == customer_id)
        if progress:
            stmt = stmt.where(
                or_(
                    CustomerProgressHistory.from_progress == progress,
                    CustomerProgressHistory.to_progress == progress,
                )
            )
        if start is not None:
            stmt = stmt.where(CustomerProgressHistory.created_at >= start)
        if end is not None:
            stmt = stmt.where(CustomerProgressHistory.created_at <= end)
        stmt = stmt.order_by(CustomerProgressHistory.created_at.desc(), CustomerProgressHistory.id.desc())
        return list(session.scalars(stmt).all())
