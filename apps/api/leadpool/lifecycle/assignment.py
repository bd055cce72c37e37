"""Ownership assignment: the single code path that sets a customer's sales/agent owner.

HTTP handlers and the auto-transfer job both go through
:meth:`AssignmentService.assign`, which returns an :class:`AssignmentResult`
instead of raising so each caller can react on its own terms.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from leadpool import events
from leadpool.lifecycle.errors import ForbiddenError, InfrastructureError, LifecycleError, NotFoundError
from leadpool.lifecycle.history import OPERATION_ASSIGN, OPERATION_CLAIM, HistoryLogger
from leadpool.lifecycle.hooks import PostCommitHooks, first_failure
from leadpool.lifecycle.models import utcnow
from leadpool.lifecycle.progress import ProgressState, ProgressStateMachine
from leadpool.lifecycle.repositories import CustomerRepository, DirectoryRepository, ProjectRepository, parse_id
from leadpool.lifecycle.roles import Operator
from leadpool.metrics import observe_ownership_change, observe_progress_change


logger = logging.getLogger("leadpool.lifecycle")

DISABLE_SIBLINGS_HOOK = "disable_siblings"


@dataclass(frozen=True)
class AssignmentResult:
    status_code: int
    payload: dict[str, Any] = field(default_factory=dict)
    error: LifecycleError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def failure(cls, error: LifecycleError) -> AssignmentResult:
        return cls(
            status_code=error.status_code,
            payload={"code": error.code, "message": error.message, "details": error.details},
            error=error,
        )


def classify_operation(operator: Operator, sales_id: str, agent_id: str) -> str:
    if operator.is_sales(sales_id) or operator.is_agent(agent_id):
        return OPERATION_CLAIM
    return OPERATION_ASSIGN


class AssignmentService:
    def __init__(
        self,
        *,
        customers: CustomerRepository | None = None,
        directory: DirectoryRepository | None = None,
        projects: ProjectRepository | None = None,
        history: HistoryLogger | None = None,
        machine: ProgressStateMachine | None = None,
    ) -> None:
        self.customers = customers or CustomerRepository()
        self.directory = directory or DirectoryRepository()
        self.projects = projects or ProjectRepository()
        self.history = history or HistoryLogger()
        self.machine = machine or ProgressStateMachine()

    def assign(
        self,
        session: Session,
        customer_id: str,
        sales_id: str,
        agent_id: str | None,
        operator: Operator,
    ) -> AssignmentResult:
        try:
            return self._assign(session, customer_id, sales_id, agent_id or "", operator)
        except LifecycleError as exc:
            logger.info(
                "customer.assign_rejected",
                extra={"customer_id": customer_id, "operator_id": operator.id, "status_code": exc.status_code, "error": exc.message},
            )
            return AssignmentResult.failure(exc)
        except SQLAlchemyError as exc:
            session.rollback()
            logger.exception(
                "customer.assign_failed",
                extra={"customer_id": customer_id, "operator_id": operator.id, "error": str(exc)},
            )
            return AssignmentResult.failure(InfrastructureError("internal error"))

    def _assign(
        self,
        session: Session,
        customer_id: str,
        sales_id: str,
        agent_id: str,
        operator: Operator,
    ) -> AssignmentResult:
        if not operator.role.can_assign():
            raise ForbiddenError("operator may not assign customers")

        customer_uuid = parse_id(customer_id, "customer")
        customer = self.customers.get(session, customer_uuid)
        sales_user = self.directory.get_sales_user(session, parse_id(sales_id, "sales"))
        agent = self.directory.get_agent(session, parse_id(agent_id, "agent")) if agent_id else None

        name = customer.name
        prior_progress = customer.progress
        prior_sales_id = customer.related_sales_id or ""
        prior_sales_name = customer.related_sales_name or ""
        prior_agent_id = customer.related_agent_id or ""
        prior_agent_name = customer.related_agent_name or ""

        new_sales_id = str(sales_user.id)
        new_sales_name = sales_user.username
        new_agent_id = str(agent.id) if agent is not None else ""
        new_agent_name = agent.company_name if agent is not None else ""

        to_state = self.machine.on_assignment(self.projects.has_visible_projects(session, customer_uuid))
        transition = self.machine.transition(prior_progress, to_state)
        values: dict[str, Any] = {
            "related_sales_id": new_sales_id,
            "related_sales_name": new_sales_name,
            "related_agent_id": new_agent_id or None,
            "related_agent_name": new_agent_name or None,
            "is_in_public_pool": False,
            "progress": transition.to_label,
        }
        if to_state is ProgressState.INITIAL_CONTACT:
            values["initial_contact_time"] = utcnow()

        if self.customers.update(session, customer_uuid, values) == 0:
            raise NotFoundError("customer not found or already modified")

        logger.info(
            "customer.assigned",
            extra={
                "customer_id": customer_id,
                "customer_name": name,
                "operator_id": operator.id,
                "sales_id": new_sales_id,
                "agent_id": new_agent_id,
                "to_progress": transition.to_label,
            },
        )

        ownership_changed = new_sales_id != prior_sales_id or new_agent_id != prior_agent_id
        operation_type = classify_operation(operator, new_sales_id, new_agent_id)
        progress_changed = transition.to_label != prior_progress

        hooks = PostCommitHooks()
        if to_state is ProgressState.NORMAL:
            hooks.add(DISABLE_SIBLINGS_HOOK, lambda: self.disable_siblings(session, customer_uuid, name, operator))
        if ownership_changed:
            hooks.add(
                "assignment_history",
                lambda: self.history.record_assignment(
                    session,
                    customer_id=str(customer_uuid),
                    customer_name=name,
                    from_sales_id=prior_sales_id,
                    from_sales_name=prior_sales_name,
                    to_sales_id=new_sales_id,
                    to_sales_name=new_sales_name,
                    from_agent_id=prior_agent_id,
                    from_agent_name=prior_agent_name,
                    to_agent_id=new_agent_id,
                    to_agent_name=new_agent_name,
                    operator_id=operator.id,
                    operator_name=operator.name,
                    operation_type=operation_type,
                ),
            )
        if progress_changed:
            hooks.add(
                "progress_history",
                lambda: self.history.record_progress(
                    session,
                    customer_id=str(customer_uuid),
                    customer_name=name,
                    from_progress=prior_progress,
                    to_progress=transition.to_label,
                    operator_id=operator.id,
                    operator_name=operator.name,
                ),
            )
        hooks.add(
            "event",
            lambda: events.publish(
                events.customer_event(
                    "customer.assigned",
                    actor_user_id=operator.id,
                    customer_id=str(customer_uuid),
                    payload={
                        "sales_id": new_sales_id,
                        "agent_id": new_agent_id,
                        "operation_type": operation_type if ownership_changed else None,
                        "progress": transition.to_label,
                    },
                )
            ),
        )
        outcomes = hooks.run(session)

        if ownership_changed:
            observe_ownership_change(operation_type)
        if progress_changed:
            observe_progress_change(transition.to_label)

        data = {
            "sales_id": new_sales_id,
            "sales_name": new_sales_name,
            "agent_id": new_agent_id,
            "agent_name": new_agent_name,
            "progress": transition.to_label,
            "operation_type": operation_type if ownership_changed else None,
            "history_recorded": ownership_changed and all(o.ok for o in outcomes if o.name == "assignment_history"),
        }
        if first_failure(outcomes, DISABLE_SIBLINGS_HOOK) is not None:
            # the primary assignment has already committed
            error = InfrastructureError("customer assigned but same-name customers could not be disabled")
            return AssignmentResult(
                status_code=error.status_code,
                payload={"code": error.code, "message": error.message, "details": {"data": data}},
                error=error,
            )
        return AssignmentResult(status_code=200, payload={"message": "customer assigned", "data": data})

    def disable_siblings(self, session: Session, customer_id: uuid.UUID, name: str, operator: Operator) -> list[str]:
        disabled = self.machine.disable_siblings(session, customer_id, name)
        vocabulary = self.machine.vocabulary
        for sibling_id in disabled:
            try:
                self.history.record_progress(
                    session,
                    customer_id=sibling_id,
                    customer_name=name,
                    from_progress=vocabulary.label(ProgressState.INITIAL_CONTACT),
                    to_progress=vocabulary.label(ProgressState.DISABLED),
                    operator_id=operator.id,
                    operator_name=operator.name,
                    remark="same-name customer moved to normal progress",
                )
            except Exception:
                session.rollback()
                logger.exception("customer.sibling_history_failed", extra={"customer_id": sibling_id})
            observe_progress_change(vocabulary.label(ProgressState.DISABLED))
        return disabled
