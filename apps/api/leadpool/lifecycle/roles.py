from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class Role(str, Enum):
    SUPER_ADMIN = "SUPER_ADMIN"
    FACTORY_SALES = "FACTORY_SALES"
    AGENT = "AGENT"
    INVENTORY_MANAGER = "INVENTORY_MANAGER"

    @classmethod
    def parse(cls, value: str | None) -> Role | None:
        if not value:
            return None
        try:
            return cls(value.upper())
        except ValueError:
            return None

    def can_assign(self) -> bool:
        return self in {Role.SUPER_ADMIN, Role.FACTORY_SALES, Role.AGENT}

    def can_assign_from_pool(self) -> bool:
        return self in {Role.SUPER_ADMIN, Role.FACTORY_SALES, Role.AGENT}

    def can_change_progress(self) -> bool:
        return self is not Role.INVENTORY_MANAGER

    def can_read_history(self) -> bool:
        return self is not Role.INVENTORY_MANAGER

    def can_manage_config(self) -> bool:
        return self is Role.SUPER_ADMIN

    def can_reclaim(self, operator_id: str, *, creator_id: str | None, sales_id: str | None, agent_id: str | None) -> bool:
        """Whether this role may release a customer into the public pool."""
        if self is Role.SUPER_ADMIN:
            return True
        if self is Role.FACTORY_SALES:
            return operator_id in {creator_id, sales_id}
        if self is Role.AGENT:
            return operator_id in {creator_id, agent_id}
        return False


@dataclass(frozen=True)
class Operator:
    id: str
    name: str
    role: Role

    @property
    def is_super_admin(self) -> bool:
        return self.role is Role.SUPER_ADMIN

    def is_sales(self, user_id: str | None) -> bool:
        return self.role is Role.FACTORY_SALES and bool(user_id) and self.id == user_id

    def is_agent(self, agent_id: str | None) -> bool:
        return self.role is Role.AGENT and bool(agent_id) and self.id == agent_id


def system_operator(operator_id: str, operator_name: str) -> Operator:
    return Operator(id=operator_id, name=operator_name, role=Role.SUPER_ADMIN)
