"""Public pool reclamation and redistribution."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from sqlalchemy.orm import Session

from leadpool import events
from leadpool.lifecycle.assignment import classify_operation
from leadpool.lifecycle.errors import ForbiddenError, NotFoundError, ValidationError
from leadpool.lifecycle.history import OPERATION_MOVE_TO_POOL, HistoryLogger
from leadpool.lifecycle.hooks import HookOutcome, PostCommitHooks
from leadpool.lifecycle.models import Agent, Customer, User
from leadpool.lifecycle.progress import ProgressState, ProgressStateMachine
from leadpool.lifecycle.repositories import CustomerRepository, DirectoryRepository, ProjectRepository, parse_id
from leadpool.lifecycle.roles import Operator, Role
from leadpool.metrics import observe_ownership_change, observe_progress_change


logger = logging.getLogger("leadpool.lifecycle")


@dataclass(frozen=True)
class PoolEntry:
    customer_id: str
    customer_name: str
    previous_owner_id: str | None
    previous_owner_name: str | None
    previous_owner_type: str | None
    hidden_projects: int | None
    outcomes: list[HookOutcome]


@dataclass(frozen=True)
class Redistribution:
    customer_id: str
    target_type: Role
    target_id: str
    target_name: str
    operation_type: str
    progress: str
    outcomes: list[HookOutcome]


def previous_owner(customer: Customer) -> tuple[str | None, str | None, str | None]:
    """Breadcrumb for pool entry: current sales owner, else agent owner, else creator."""
    if customer.related_sales_id:
        return customer.related_sales_id, customer.related_sales_name, Role.FACTORY_SALES.value
    if customer.related_agent_id:
        return customer.related_agent_id, customer.related_agent_name, Role.AGENT.value
    return customer.owner_id, customer.owner_name, customer.owner_type


class PublicPoolService:
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

    def move_to_public_pool(self, session: Session, customer_id: str, operator: Operator) -> PoolEntry:
        customer_uuid = parse_id(customer_id, "customer")
        customer = self.customers.get(session, customer_uuid)
        self.authorize_reclaim(customer, operator)
        if customer.is_in_public_pool:
            raise ValidationError("customer is already in the public pool")
        return self.enter_public_pool(session, customer, operator)

    @staticmethod
    def authorize_reclaim(customer: Customer, operator: Operator) -> None:
        if not operator.role.can_reclaim(
            operator.id,
            creator_id=customer.owner_id,
            sales_id=customer.related_sales_id,
            agent_id=customer.related_agent_id,
        ):
            raise ForbiddenError("operator may not move this customer to the public pool")

    def enter_public_pool(
        self,
        session: Session,
        customer: Customer,
        operator: Operator,
        *,
        remark: str | None = None,
    ) -> PoolEntry:
        customer_uuid = customer.id
        name = customer.name
        prior_progress = customer.progress
        prior_sales_id = customer.related_sales_id or ""
        prior_sales_name = customer.related_sales_name or ""
        prior_agent_id = customer.related_agent_id or ""
        prior_agent_name = customer.related_agent_name or ""
        owner_id, owner_name, owner_type = previous_owner(customer)
        pool_label = self.machine.vocabulary.label(ProgressState.PUBLIC_POOL)

        matched = self.customers.update(
            session,
            customer_uuid,
            {
                "progress": pool_label,
                "is_in_public_pool": True,
                "related_sales_id": None,
                "related_sales_name": None,
                "related_agent_id": None,
                "related_agent_name": None,
                "previous_owner_id": owner_id,
                "previous_owner_name": owner_name,
                "previous_owner_type": owner_type,
                "contact_person": "",
                "contact_phone": "",
            },
            Customer.is_in_public_pool.is_(False),
        )
        if matched == 0:
            raise NotFoundError("customer not found or already modified")

        logger.info(
            "customer.moved_to_public_pool",
            extra={"customer_id": str(customer_uuid), "customer_name": name, "operator_id": operator.id},
        )

        hooks = PostCommitHooks()
        hooks.add(
            "assignment_history",
            lambda: self.history.record_assignment(
                session,
                customer_id=str(customer_uuid),
                customer_name=name,
                from_sales_id=prior_sales_id,
                from_sales_name=prior_sales_name,
                from_agent_id=prior_agent_id,
                from_agent_name=prior_agent_name,
                operator_id=operator.id,
                operator_name=operator.name,
                operation_type=OPERATION_MOVE_TO_POOL,
            ),
        )
        if prior_progress != pool_label:
            hooks.add(
                "progress_history",
                lambda: self.history.record_progress(
                    session,
                    customer_id=str(customer_uuid),
                    customer_name=name,
                    from_progress=prior_progress,
                    to_progress=pool_label,
                    operator_id=operator.id,
                    operator_name=operator.name,
                    remark=remark,
                ),
            )
        hooks.add("hide_projects", lambda: self.projects.hide_for_customer(session, customer_uuid))
        hooks.add(
            "event",
            lambda: events.publish(
                events.customer_event(
                    "customer.moved_to_public_pool",
                    actor_user_id=operator.id,
                    customer_id=str(customer_uuid),
                    payload={"previous_owner_id": owner_id, "previous_owner_type": owner_type},
                )
            ),
        )
        outcomes = hooks.run(session)
        observe_ownership_change(OPERATION_MOVE_TO_POOL)
        observe_progress_change(pool_label)

        hidden = next((o.result for o in outcomes if o.name == "hide_projects" and o.ok), None)
        return PoolEntry(
            customer_id=str(customer_uuid),
            customer_name=name,
            previous_owner_id=owner_id,
            previous_owner_name=owner_name,
            previous_owner_type=owner_type,
            hidden_projects=hidden,
            outcomes=outcomes,
        )

    def assign_from_public_pool(
        self,
        session: Session,
        customer_id: str,
        target_type: str,
        target_id: str,
        operator: Operator,
    ) -> Redistribution:
        if not operator.role.can_assign_from_pool():
            raise ForbiddenError("operator may not assign public pool customers")

        customer_uuid = parse_id(customer_id, "customer")
        customer = self.customers.get(session, customer_uuid)
        if not customer.is_in_public_pool:
            raise ValidationError("customer is not in the public pool")

        role = Role.parse(target_type)
        if role is Role.FACTORY_SALES:
            user = self.directory.get_sales_user(session, parse_id(target_id, "sales"), approved_only=True)
            resolved_id, resolved_name = str(user.id), user.username
            values: dict[str, Any] = {
                "related_sales_id": resolved_id,
                "related_sales_name": resolved_name,
                "related_agent_id": None,
                "related_agent_name": None,
            }
            operation_type = classify_operation(operator, resolved_id, "")
        elif role is Role.AGENT:
            agent = self.directory.get_agent(session, parse_id(target_id, "agent"), approved_only=True)
            resolved_id, resolved_name = str(agent.id), agent.company_name
            values = {
                "related_sales_id": None,
                "related_sales_name": None,
                "related_agent_id": resolved_id,
                "related_agent_name": resolved_name,
            }
            operation_type = classify_operation(operator, "", resolved_id)
        else:
            raise ValidationError("target type must be FACTORY_SALES or AGENT")

        name = customer.name
        prior_progress = customer.progress
        sample_label = self.machine.vocabulary.label(ProgressState.SAMPLE_EVALUATION)
        values.update({"progress": sample_label, "is_in_public_pool": False})

        to_sales = (resolved_id, resolved_name) if role is Role.FACTORY_SALES else ("", "")
        to_agent = (resolved_id, resolved_name) if role is Role.AGENT else ("", "")
        matched = self.customers.update(session, customer_uuid, values, Customer.is_in_public_pool.is_(True))
        if matched == 0:
            raise NotFoundError("customer not found or already modified")

        logger.info(
            "customer.assigned_from_public_pool",
            extra={
                "customer_id": str(customer_uuid),
                "customer_name": name,
                "operator_id": operator.id,
                "operation_type": operation_type,
                "sales_id": to_sales[0],
                "agent_id": to_agent[0],
            },
        )

        hooks = PostCommitHooks()
        hooks.add(
            "assignment_history",
            lambda: self.history.record_assignment(
                session,
                customer_id=str(customer_uuid),
                customer_name=name,
                to_sales_id=to_sales[0],
                to_sales_name=to_sales[1],
                to_agent_id=to_agent[0],
                to_agent_name=to_agent[1],
                operator_id=operator.id,
                operator_name=operator.name,
                operation_type=operation_type,
            ),
        )
        hooks.add(
            "progress_history",
            lambda: self.history.record_progress(
                session,
                customer_id=str(customer_uuid),
                customer_name=name,
                from_progress=prior_progress,
                to_progress=sample_label,
                operator_id=operator.id,
                operator_name=operator.name,
            ),
        )
        hooks.add(
            "event",
            lambda: events.publish(
                events.customer_event(
                    "customer.assigned_from_public_pool",
                    actor_user_id=operator.id,
                    customer_id=str(customer_uuid),
                    payload={"target_type": role.value, "target_id": resolved_id, "operation_type": operation_type},
                )
            ),
        )
        outcomes = hooks.run(session)
        observe_ownership_change(operation_type)
        observe_progress_change(sample_label)

        return Redistribution(
            customer_id=str(customer_uuid),
            target_type=role,
            target_id=resolved_id,
            target_name=resolved_name,
            operation_type=operation_type,
            progress=sample_label,
            outcomes=outcomes,
        )

    def list_customers(
        self,
        session: Session,
        *,
        keyword: str | None = None,
        nature: str | None = None,
        importance: str | None = None,
        application_field: str | None = None,
    ) -> list[Customer]:
        return self.customers.list_public_pool(
            session,
            progress=self.machine.vocabulary.label(ProgressState.PUBLIC_POOL),
            keyword=keyword,
            nature=nature,
            importance=importance,
            application_field=application_field,
        )

    def assignable_targets(self, session: Session, operator: Operator) -> tuple[list[User], list[Agent]]:
        if not operator.role.can_assign_from_pool():
            raise ForbiddenError("operator may not list assignable users")
        return self.directory.list_assignable(session)
