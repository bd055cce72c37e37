from __future__ import annotations

import uuid
from typing import Any

from sqlalchemy import and_, select, update
from sqlalchemy.orm import Session

from leadpool.lifecycle.errors import NotFoundError, ValidationError
from leadpool.lifecycle.models import Agent, Customer, Project, User, utcnow
from leadpool.lifecycle.roles import Role


APPROVED = "approved"


def parse_id(raw: str | None, label: str) -> uuid.UUID:
    if not raw:
        raise ValidationError(f"{label} id is required")
    try:
        return uuid.UUID(str(raw))
    except ValueError as exc:
        raise ValidationError(f"invalid {label} id format") from exc


class CustomerRepository:
    def get(self, session: Session, customer_id: uuid.UUID) -> Customer:
        customer = session.get(Customer, customer_id)
        if customer is None:
            raise NotFoundError("customer not found")
        return customer

    def update(self, session: Session, customer_id: uuid.UUID, values: dict[str, Any], *conditions: Any) -> int:
        """Conditionally update one customer row and commit; returns the matched row count."""
        now = utcnow()
        stmt = (
            update(Customer)
            .where(and_(Customer.id == customer_id, *conditions))
            .values(**{"last_update_time": now, "updated_at": now, **values})
            .execution_options(synchronize_session=False)
        )
        result = session.execute(stmt)
        session.commit()
        return result.rowcount

    def list_by_progress(self, session: Session, progress: str) -> list[Customer]:
        return list(session.scalars(select(Customer).where(Customer.progress == progress).order_by(Customer.created_at)).all())

    def list_public_pool(
        self,
        session: Session,
        *,
        progress: str,
        keyword: str | None = None,
        nature: str | None = None,
        importance: str | None = None,
        application_field: str | None = None,
    ) -> list[Customer]:
        stmt = select(Customer).where(and_(Customer.is_in_public_pool.is_(True), Customer.progress == progress))
        if keyword:
            stmt = stmt.where(Customer.name.ilike(f"%{keyword}%"))
        if nature:
            stmt = stmt.where(Customer.nature == nature)
        if importance:
            stmt = stmt.where(Customer.importance == importance)
        if application_field:
            stmt = stmt.where(Customer.application_field.ilike(f"%{application_field}%"))
        return list(session.scalars(stmt.order_by(Customer.updated_at.desc())).all())


class DirectoryRepository:
    """Read access to the user and agent directories."""

    def get_sales_user(self, session: Session, user_id: uuid.UUID, *, approved_only: bool = False) -> User:
        user = session.get(User, user_id)
        if user is None:
            raise NotFoundError("sales user not found")
        if Role.parse(user.role) is not Role.FACTORY_SALES:
            raise ValidationError("user is not a factory sales user")
        if approved_only and user.status != APPROVED:
            raise ValidationError("sales user is not approved")
        return user

    def get_agent(self, session: Session, agent_id: uuid.UUID, *, approved_only: bool = False) -> Agent:
        agent = session.get(Agent, agent_id)
        if agent is None:
            raise NotFoundError("agent not found")
        if approved_only and agent.status != APPROVED:
            raise ValidationError("agent is not approved")
        return agent

    def list_assignable(self, session: Session) -> tuple[list[User], list[Agent]]:
        sales = session.scalars(
            select(User)
            .where(and_(User.role == Role.FACTORY_SALES.value, User.status == APPROVED))
            .order_by(User.username)
        ).all()
        agents = session.scalars(select(Agent).where(Agent.status == APPROVED).order_by(Agent.company_name)).all()
        return list(sales), list(agents)


class ProjectRepository:
    def has_visible_projects(self, session: Session, customer_id: uuid.UUID) -> bool:
        stmt = select(Project.id).where(and_(Project.customer_id == customer_id, Project.web_hidden.is_(False))).limit(1)
        return session.scalar(stmt) is not None

    def hide_for_customer(self, session: Session, customer_id: uuid.UUID) -> int:
        result = session.execute(
            update(Project)
            .where(and_(Project.customer_id == customer_id, Project.web_hidden.is_(False)))
            .values(web_hidden=True)
            .execution_options(synchronize_session=False)
        )
        session.commit()
        return result.rowcount
