"""create customer lifecycle tables

Revision ID: 202610180001
Revises:
Create Date: 2026-10-18 00:01:00
"""

from collections.abc import Sequence

from alembic import op
import sqlalchemy as sa


revision: str = "202610180001"
down_revision: str | None = None
branch_labels: Sequence[str] | None = None
depends_on: Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "customers",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("nature", sa.String(length=64), nullable=True),
        sa.Column("importance", sa.String(length=64), nullable=True),
        sa.Column("application_field", sa.Text(), nullable=True),
        sa.Column("contact_person", sa.Text(), nullable=True),
        sa.Column("contact_phone", sa.String(length=32), nullable=True),
        sa.Column("address", sa.Text(), nullable=True),
        sa.Column("progress", sa.String(length=32), nullable=False),
        sa.Column("owner_id", sa.String(length=64), nullable=True),
        sa.Column("owner_name", sa.Text(), nullable=True),
        sa.Column("owner_type", sa.String(length=32), nullable=True),
        sa.Column("related_sales_id", sa.String(length=64), nullable=True),
        sa.Column("related_sales_name", sa.Text(), nullable=True),
        sa.Column("related_agent_id", sa.String(length=64), nullable=True),
        sa.Column("related_agent_name", sa.Text(), nullable=True),
        sa.Column("is_in_public_pool", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("previous_owner_id", sa.String(length=64), nullable=True),
        sa.Column("previous_owner_name", sa.Text(), nullable=True),
        sa.Column("previous_owner_type", sa.String(length=32), nullable=True),
        sa.Column("initial_contact_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_update_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_customers_progress", "customers", ["progress"], unique=False)
    op.create_index("ix_customers_name_progress", "customers", ["name", "progress"], unique=False)
    op.create_index("ix_customers_public_pool", "customers", ["is_in_public_pool"], unique=False)

    op.create_table(
        "customer_assignment_history",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("customer_id", sa.String(length=64), nullable=False),
        sa.Column("customer_name", sa.Text(), nullable=False),
        sa.Column("from_related_sales_id", sa.String(length=64), nullable=True),
        sa.Column("from_related_sales_name", sa.Text(), nullable=True),
        sa.Column("to_related_sales_id", sa.String(length=64), nullable=True),
        sa.Column("to_related_sales_name", sa.Text(), nullable=True),
        sa.Column("from_related_agent_id", sa.String(length=64), nullable=True),
        sa.Column("from_related_agent_name", sa.Text(), nullable=True),
        sa.Column("to_related_agent_id", sa.String(length=64), nullable=True),
        sa.Column("to_related_agent_name", sa.Text(), nullable=True),
        sa.Column("operator_id", sa.String(length=64), nullable=False),
        sa.Column("operator_name", sa.Text(), nullable=False),
        sa.Column("operation_type", sa.String(length=32), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_customer_assignment_history_customer_id",
        "customer_assignment_history",
        ["customer_id"],
        unique=False,
    )

    op.create_table(
        "customer_progress_history",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("customer_id", sa.String(length=64), nullable=False),
        sa.Column("customer_name", sa.Text(), nullable=False),
        sa.Column("from_progress", sa.String(length=32), nullable=False),
        sa.Column("to_progress", sa.String(length=32), nullable=False),
        sa.Column("operator_id", sa.String(length=64), nullable=False),
        sa.Column("operator_name", sa.Text(), nullable=False),
        sa.Column("remark", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_customer_progress_history_customer_id",
        "customer_progress_history",
        ["customer_id"],
        unique=False,
    )

    op.create_table(
        "system_configs",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("config_type", sa.String(length=64), nullable=False),
        sa.Column("config_key", sa.String(length=128), nullable=False),
        sa.Column("config_value", sa.JSON(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("is_enabled", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("creator_id", sa.String(length=64), nullable=True),
        sa.Column("creator_name", sa.Text(), nullable=True),
        sa.Column("updater_id", sa.String(length=64), nullable=True),
        sa.Column("updater_name", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_system_configs_config_type", "system_configs", ["config_type"], unique=False)

    op.create_table(
        "users",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("username", sa.Text(), nullable=False),
        sa.Column("phone", sa.String(length=32), nullable=True),
        sa.Column("role", sa.String(length=32), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="approved"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "agents",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("company_name", sa.Text(), nullable=False),
        sa.Column("contact_person", sa.Text(), nullable=True),
        sa.Column("phone", sa.String(length=32), nullable=True),
        sa.Column("related_sales_id", sa.String(length=64), nullable=True),
        sa.Column("related_sales_name", sa.Text(), nullable=True),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="approved"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "projects",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("customer_id", sa.Uuid(), nullable=False),
        sa.Column("customer_name", sa.Text(), nullable=True),
        sa.Column("project_name", sa.Text(), nullable=False),
        sa.Column("project_progress", sa.String(length=32), nullable=True),
        sa.Column("web_hidden", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_projects_customer_id", "projects", ["customer_id"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_projects_customer_id", table_name="projects")
    op.drop_table("projects")
    op.drop_table("agents")
    op.drop_table("users")
    op.drop_index("ix_system_configs_config_type", table_name="system_configs")
    op.drop_table("system_configs")
    op.drop_index("ix_customer_progress_history_customer_id", table_name="customer_progress_history")
    op.drop_table("customer_progress_history")
    op.drop_index("ix_customer_assignment_history_customer_id", table_name="customer_assignment_history")
    op.drop_table("customer_assignment_history")
    op.drop_index("ix_customers_public_pool", table_name="customers")
    op.drop_index("ix_customers_name_progress", table_name="customers")
    op.drop_index("ix_customers_progress", table_name="customers")
    op.drop_table("customers")
