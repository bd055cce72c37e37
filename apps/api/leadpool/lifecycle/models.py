from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import JSON, Boolean, DateTime, Index, String, Text, Uuid, text
from sqlalchemy.orm import Mapped, mapped_column

from leadpool.core.database import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Customer(Base):
    __tablename__ = "customers"

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    nature: Mapped[str | None] = mapped_column(String(64), nullable=True)
    importance: Mapped[str | None] = mapped_column(String(64), nullable=True)
    application_field: Mapped[str | None] = mapped_column(Text, nullable=True)
    contact_person: Mapped[str | None] = mapped_column(Text, nullable=True)
    contact_phone: Mapped[str | None] = mapped_column(String(32), nullable=True)
    address: Mapped[str | None] = mapped_column(Text, nullable=True)
    progress: Mapped[str] = mapped_column(String(32), nullable=False)

    # creator; never rewritten after intake
    owner_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    owner_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    owner_type: Mapped[str | None] = mapped_column(String(32), nullable=True)

    related_sales_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    related_sales_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    related_agent_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    related_agent_name: Mapped[str | None] = mapped_column(Text, nullable=True)

    is_in_public_pool: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=text("false"))
    previous_owner_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    previous_owner_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    previous_owner_type: Mapped[str | None] = mapped_column(String(32), nullable=True)

    initial_contact_time: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    last_update_time: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (
        Index("ix_customers_progress", "progress"),
        Index("ix_customers_name_progress", "name", "progress"),
        Index("ix_customers_public_pool", "is_in_public_pool"),
    )


class CustomerAssignmentHistory(Base):
    __tablename__ = "customer_assignment_history"

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    customer_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    customer_name: Mapped[str] = mapped_column(Text, nullable=False)
    from_related_sales_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    from_related_sales_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    to_related_sales_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    to_related_sales_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    from_related_agent_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    from_related_agent_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    to_related_agent_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    to_related_agent_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    operator_id: Mapped[str] = mapped_column(String(64), nullable=False)
    operator_name: Mapped[str] = mapped_column(Text, nullable=False)
    operation_type: Mapped[str] = mapped_column(String(32), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)


class CustomerProgressHistory(Base):
    __tablename__ = "customer_progress_history"

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    customer_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    customer_name: Mapped[str] = mapped_column(Text, nullable=False)
    from_progress: Mapped[str] = mapped_column(String(32), nullable=False)
    to_progress: Mapped[str] = mapped_column(String(32), nullable=False)
    operator_id: Mapped[str] = mapped_column(String(64), nullable=False)
    operator_name: Mapped[str] = mapped_column(Text, nullable=False)
    remark: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)


class SystemConfig(Base):
    __tablename__ = "system_configs"

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    config_type: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    config_key: Mapped[str] = mapped_column(String(128), nullable=False)
    config_value: Mapped[Any] = mapped_column(JSON, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default=text("true"))
    creator_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    creator_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    updater_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    updater_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)


class User(Base):
    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    username: Mapped[str] = mapped_column(Text, nullable=False)
    phone: Mapped[str | None] = mapped_column(String(32), nullable=True)
    role: Mapped[str] = mapped_column(String(32), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="approved", server_default="approved")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)


class Agent(Base):
    __tablename__ = "agents"

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    company_name: Mapped[str] = mapped_column(Text, nullable=False)
    contact_person: Mapped[str | None] = mapped_column(Text, nullable=True)
    phone: Mapped[str | None] = mapped_column(String(32), nullable=True)
    related_sales_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    related_sales_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="approved", server_default="approved")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)


class Project(Base):
    __tablename__ = "projects"

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    customer_id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), nullable=False, index=True)
    customer_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    project_name: Mapped[str] = mapped_column(Text, nullable=False)
    project_progress: Mapped[str | None] = mapped_column(String(32), nullable=True)
    web_hidden: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=text("false"))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
