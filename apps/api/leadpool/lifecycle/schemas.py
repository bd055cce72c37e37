from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class AssignRequest(BaseModel):
    sales_id: str | None = None
    agent_id: str | None = None


class AssignmentData(BaseModel):
    sales_id: str
    sales_name: str
    agent_id: str
    agent_name: str
    progress: str
    operation_type: str | None
    history_recorded: bool


class AssignResponse(BaseModel):
    message: str
    data: AssignmentData


class ProgressChangeRequest(BaseModel):
    progress: str | None = None
    remark: str | None = None


class ProgressChangeResponse(BaseModel):
    customer_id: str
    from_progress: str
    to_progress: str
    changed: bool


class MoveToPublicPoolResponse(BaseModel):
    message: str
    customer_id: str
    previous_owner_id: str | None
    previous_owner_name: str | None
    previous_owner_type: str | None


class PublicPoolAssignRequest(BaseModel):
    target_type: str | None = None
    target_id: str | None = None


class PublicPoolAssignResponse(BaseModel):
    message: str
    customer_id: str
    target_type: str
    target_id: str
    target_name: str
    operation_type: str
    progress: str


class PublicPoolCustomerRead(BaseModel):
    id: UUID
    name: str
    nature: str | None
    importance: str | None
    application_field: str | None
    progress: str
    address: str | None
    enter_pool_time: datetime
    previous_owner_id: str | None
    previous_owner_name: str | None
    previous_owner_type: str | None
    creator_id: str | None
    creator_name: str | None
    creator_type: str | None
    created_at: datetime


class UserBrief(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    username: str
    phone: str | None
    role: str


class AgentBrief(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    company_name: str
    contact_person: str | None
    phone: str | None
    related_sales_id: str | None
    related_sales_name: str | None


class AssignableUsersResponse(BaseModel):
    sales_users: list[UserBrief]
    agents: list[AgentBrief]


class AssignmentHistoryCreate(BaseModel):
    customer_id: str | None = None
    customer_name: str | None = None
    from_related_sales_id: str | None = None
    from_related_sales_name: str | None = None
    to_related_sales_id: str | None = None
    to_related_sales_name: str | None = None
    from_related_agent_id: str | None = None
    from_related_agent_name: str | None = None
    to_related_agent_id: str | None = None
    to_related_agent_name: str | None = None
    operator_id: str | None = None
    operator_name: str | None = None
    operation_type: str | None = None


class AssignmentHistoryRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    customer_id: str
    customer_name: str
    from_related_sales_id: str | None
    from_related_sales_name: str | None
    to_related_sales_id: str | None
    to_related_sales_name: str | None
    from_related_agent_id: str | None
    from_related_agent_name: str | None
    to_related_agent_id: str | None
    to_related_agent_name: str | None
    operator_id: str
    operator_name: str
    operation_type: str
    created_at: datetime
    updated_at: datetime


class ProgressHistoryCreate(BaseModel):
    customer_id: str | None = None
    customer_name: str | None = None
    from_progress: str | None = None
    to_progress: str | None = None
    operator_id: str | None = None
    operator_name: str | None = None
    remark: str | None = None


class ProgressHistoryRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    customer_id: str
    customer_name: str
    from_progress: str
    to_progress: str
    operator_id: str
    operator_name: str
    remark: str | None
    created_at: datetime
    updated_at: datetime


class SystemConfigCreate(BaseModel):
    config_type: str = Field(default="", max_length=64)
    config_key: str = Field(default="", max_length=128)
    config_value: Any = None
    description: str | None = None
    is_enabled: bool | None = None


class SystemConfigUpdate(BaseModel):
    config_value: Any = None
    description: str | None = None
    is_enabled: bool | None = None


class SystemConfigRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    config_type: str
    config_key: str
    config_value: Any
    description: str | None
    is_enabled: bool
    creator_id: str | None
    creator_name: str | None
    updater_id: str | None
    updater_name: str | None
    created_at: datetime
    updated_at: datetime


class AutoTransferRunResponse(BaseModel):
    run_id: str
    status: str
    checked: int
    transferred: int
    skipped: int
    failed: int
    config_id: str | None
    reason: str | None
