from __future__ import annotations

import logging
from dataclasses import dataclass, field

from sqlalchemy.orm import Session

from leadpool import events
from leadpool.lifecycle.assignment import DISABLE_SIBLINGS_HOOK, AssignmentService
from leadpool.lifecycle.errors import ForbiddenError, NotFoundError
from leadpool.lifecycle.history import HistoryLogger
from leadpool.lifecycle.hooks import HookOutcome, PostCommitHooks
from leadpool.lifecycle.progress import ProgressState, ProgressStateMachine
from leadpool.lifecycle.public_pool import PublicPoolService
from leadpool.lifecycle.repositories import CustomerRepository, parse_id
from leadpool.lifecycle.roles import Operator
from leadpool.metrics import observe_progress_change


logger = logging.getLogger("leadpool.lifecycle")


@dataclass(frozen=True)
class ProgressChange:
    customer_id: str
    from_progress: str
    to_progress: str
    changed: bool
    outcomes: list[HookOutcome] = field(default_factory=list)


class ProgressChangeService:
    """Operator-driven progress changes.

    Entering the pool delegates to :class:`PublicPoolService` so the owner
    fields are cleared the same way as an explicit reclaim; moving to NORMAL
    disables same-named INITIAL_CONTACT customers just like an assignment does.
    """

    def __init__(
        self,
        *,
        customers: CustomerRepository | None = None,
        history: HistoryLogger | None = None,
        machine: ProgressStateMachine | None = None,
        pool: PublicPoolService | None = None,
        assignments: AssignmentService | None = None,
    ) -> None:
        self.customers = customers or CustomerRepository()
        self.history = history or HistoryLogger()
        self.machine = machine or ProgressStateMachine()
        self.pool = pool or PublicPoolService(customers=self.customers, history=self.history, machine=self.machine)
        self.assignments = assignments or AssignmentService(
            customers=self.customers, history=self.history, machine=self.machine
        )

    def change(
        self,
        session: Session,
        customer_id: str,
        target: str | None,
        operator: Operator,
        *,
        remark: str | None = None,
    ) -> ProgressChange:
        if not operator.role.can_change_progress():
            raise ForbiddenError("operator may not change customer progress")

        customer_uuid = parse_id(customer_id, "customer")
        customer = self.customers.get(session, customer_uuid)
        current = customer.progress
        transition = self.machine.plan_change(current, target)
        if transition is None:
            return ProgressChange(customer_id=str(customer_uuid), from_progress=current, to_progress=current, changed=False)

        if transition.to_state is ProgressState.PUBLIC_POOL:
            self.pool.authorize_reclaim(customer, operator)
            entry = self.pool.enter_public_pool(session, customer, operator, remark=remark)
            return ProgressChange(
                customer_id=str(customer_uuid),
                from_progress=current,
                to_progress=transition.to_label,
                changed=True,
                outcomes=entry.outcomes,
            )

        name = customer.name
        if self.customers.update(session, customer_uuid, {"progress": transition.to_label}) == 0:
            raise NotFoundError("customer not found or already modified")

        logger.info(
            "customer.progress_changed",
            extra={
                "customer_id": str(customer_uuid),
                "customer_name": name,
                "operator_id": operator.id,
                "from_progress": current,
                "to_progress": transition.to_label,
            },
        )

        hooks = PostCommitHooks()
        if transition.to_state is ProgressState.NORMAL:
            hooks.add(
                DISABLE_SIBLINGS_HOOK,
                lambda: self.assignments.disable_siblings(session, customer_uuid, name, operator),
            )
        hooks.add(
            "progress_history",
            lambda: self.history.record_progress(
                session,
                customer_id=str(customer_uuid),
                customer_name=name,
                from_progress=current,
                to_progress=transition.to_label,
                operator_id=operator.id,
                operator_name=operator.name,
                remark=remark,
            ),
        )
        hooks.add(
            "event",
            lambda: events.publish(
                events.customer_event(
                    "customer.progress_changed",
                    actor_user_id=operator.id,
                    customer_id=str(customer_uuid),
                    payload={"from_progress": current, "to_progress": transition.to_label},
                )
            ),
        )
        outcomes = hooks.run(session)
        observe_progress_change(transition.to_label)
        return ProgressChange(
            customer_id=str(customer_uuid),
            from_progress=current,
            to_progress=transition.to_label,
            changed=True,
            outcomes=outcomes,
        )
