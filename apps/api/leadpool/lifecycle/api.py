from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, Query, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from leadpool.context import get_correlation_id
from leadpool.core.auth import AuthUser, get_current_user as get_auth_user
from leadpool.core.database import get_db
from leadpool.lifecycle.assignment import AssignmentService
from leadpool.lifecycle.auto_transfer import AutoTransferJob, as_utc
from leadpool.lifecycle.config_provider import SystemConfigService
from leadpool.lifecycle.errors import ForbiddenError, LifecycleError, UnauthenticatedError
from leadpool.lifecycle.history import HistoryLogger
from leadpool.lifecycle.models import Customer
from leadpool.lifecycle.progress_change import ProgressChangeService
from leadpool.lifecycle.public_pool import PublicPoolService
from leadpool.lifecycle.roles import Operator, Role
from leadpool.lifecycle.schemas import (
    AgentBrief,
    AssignableUsersResponse,
    AssignmentHistoryCreate,
    AssignmentHistoryRead,
    AssignRequest,
    AutoTransferRunResponse,
    MoveToPublicPoolResponse,
    ProgressChangeRequest,
    ProgressChangeResponse,
    ProgressHistoryCreate,
    ProgressHistoryRead,
    PublicPoolAssignRequest,
    PublicPoolAssignResponse,
    PublicPoolCustomerRead,
    SystemConfigCreate,
    SystemConfigRead,
    SystemConfigUpdate,
    UserBrief,
)


logger = logging.getLogger("leadpool.lifecycle")

change_customers_router = APIRouter(prefix="/api/change_customers", tags=["customer-lifecycle"])
customers_router = APIRouter(prefix="/api/customers", tags=["customer-lifecycle"])
public_pool_router = APIRouter(prefix="/api/public-pool", tags=["public-pool"])
assignments_router = APIRouter(prefix="/api/customer-assignments", tags=["customer-history"])
progress_history_router = APIRouter(prefix="/api/customer-progress", tags=["customer-history"])
system_configs_router = APIRouter(prefix="/api/system-configs", tags=["system-configs"])
auto_transfer_router = APIRouter(prefix="/api/auto-transfer", tags=["auto-transfer"])

assignment_service = AssignmentService()
public_pool_service = PublicPoolService()
progress_change_service = ProgressChangeService()
history_logger = HistoryLogger()
system_config_service = SystemConfigService()


@dataclass
class ErrorEnvelope:
    code: str
    message: str
    details: Any
    correlation_id: str | None


def error_response(
    request: Request,
    *,
    status_code: int,
    code: str,
    message: str,
    details: Any = None,
) -> JSONResponse:
    correlation_id = get_correlation_id() or getattr(request.state, "correlation_id", None)
    payload = ErrorEnvelope(
        code=code,
        message=message,
        details=details,
        correlation_id=correlation_id,
    )
    return JSONResponse(status_code=status_code, content=payload.__dict__)


def lifecycle_error_response(request: Request, exc: LifecycleError) -> JSONResponse:
    if exc.status_code >= 500:
        return internal_error_response(request, exc)
    return error_response(request, status_code=exc.status_code, code=exc.code, message=exc.message, details=exc.details)


def internal_error_response(request: Request, exc: Exception) -> JSONResponse:
    logger.error("http.internal_error", exc_info=exc, extra={"path": request.url.path, "error": str(exc)})
    return error_response(
        request,
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        code="internal_error",
        message="internal error",
    )


def get_current_user(auth_user: AuthUser = Depends(get_auth_user)) -> Operator | None:
    role = Role.parse(auth_user.role)
    if role is None or not auth_user.sub or auth_user.sub == "anonymous":
        return None
    return Operator(id=auth_user.sub, name=auth_user.name, role=role)


def require_operator(user: Operator | None) -> Operator:
    if user is None:
        raise UnauthenticatedError("authentication required")
    return user


def _parse_datetime(raw: str | None) -> datetime | None:
    if not raw:
        return None
    try:
        parsed = datetime.fromisoformat(raw.replace("Z", "+00:00"))
    except ValueError:
        return None
    return as_utc(parsed)


def _pool_customer(customer: Customer) -> PublicPoolCustomerRead:
    return PublicPoolCustomerRead(
        id=customer.id,
        name=customer.name,
        nature=customer.nature,
        importance=customer.importance,
        application_field=customer.application_field,
        progress=customer.progress,
        address=customer.address,
        enter_pool_time=customer.last_update_time or customer.updated_at,
        previous_owner_id=customer.previous_owner_id,
        previous_owner_name=customer.previous_owner_name,
        previous_owner_type=customer.previous_owner_type,
        creator_id=customer.owner_id,
        creator_name=customer.owner_name,
        creator_type=customer.owner_type,
        created_at=customer.created_at,
    )


@change_customers_router.post("/{customer_id}/assign")
def assign_customer(
    request: Request,
    customer_id: str,
    dto: AssignRequest,
    db: Session = Depends(get_db),
    user: Operator | None = Depends(get_current_user),
) -> JSONResponse:
    try:
        operator = require_operator(user)
    except LifecycleError as exc:
        return lifecycle_error_response(request, exc)

    result = assignment_service.assign(db, customer_id, dto.sales_id or "", dto.agent_id, operator)
    if result.error is not None:
        return error_response(
            request,
            status_code=result.status_code,
            code=result.error.code,
            message=result.error.message,
            details=result.payload.get("details"),
        )
    return JSONResponse(status_code=result.status_code, content=result.payload)


@change_customers_router.post("/{customer_id}/progress", response_model=ProgressChangeResponse)
def change_customer_progress(
    request: Request,
    customer_id: str,
    dto: ProgressChangeRequest,
    db: Session = Depends(get_db),
    user: Operator | None = Depends(get_current_user),
) -> ProgressChangeResponse | JSONResponse:
    try:
        operator = require_operator(user)
        change = progress_change_service.change(db, customer_id, dto.progress, operator, remark=dto.remark)
        return ProgressChangeResponse(
            customer_id=change.customer_id,
            from_progress=change.from_progress,
            to_progress=change.to_progress,
            changed=change.changed,
        )
    except LifecycleError as exc:
        return lifecycle_error_response(request, exc)
    except SQLAlchemyError as exc:
        db.rollback()
        return internal_error_response(request, exc)


@customers_router.post("/{customer_id}/move-to-public", response_model=MoveToPublicPoolResponse)
def move_customer_to_public_pool(
    request: Request,
    customer_id: str,
    db: Session = Depends(get_db),
    user: Operator | None = Depends(get_current_user),
) -> MoveToPublicPoolResponse | JSONResponse:
    try:
        operator = require_operator(user)
        entry = public_pool_service.move_to_public_pool(db, customer_id, operator)
        return MoveToPublicPoolResponse(
            message="customer moved to public pool",
            customer_id=entry.customer_id,
            previous_owner_id=entry.previous_owner_id,
            previous_owner_name=entry.previous_owner_name,
            previous_owner_type=entry.previous_owner_type,
        )
    except LifecycleError as exc:
        return lifecycle_error_response(request, exc)
    except SQLAlchemyError as exc:
        db.rollback()
        return internal_error_response(request, exc)


@public_pool_router.get("", response_model=list[PublicPoolCustomerRead])
def list_public_pool(
    request: Request,
    keyword: str | None = Query(default=None),
    nature: str | None = Query(default=None),
    importance: str | None = Query(default=None),
    application_field: str | None = Query(default=None),
    db: Session = Depends(get_db),
    user: Operator | None = Depends(get_current_user),
) -> list[PublicPoolCustomerRead] | JSONResponse:
    try:
        require_operator(user)
        customers = public_pool_service.list_customers(
            db,
            keyword=keyword,
            nature=nature,
            importance=importance,
            application_field=application_field,
        )
        return [_pool_customer(customer) for customer in customers]
    except LifecycleError as exc:
        return lifecycle_error_response(request, exc)


@public_pool_router.get("/assignable-users", response_model=AssignableUsersResponse)
def list_assignable_users(
    request: Request,
    db: Session = Depends(get_db),
    user: Operator | None = Depends(get_current_user),
) -> AssignableUsersResponse | JSONResponse:
    try:
        operator = require_operator(user)
        sales_users, agents = public_pool_service.assignable_targets(db, operator)
        return AssignableUsersResponse(
            sales_users=[UserBrief.model_validate(item) for item in sales_users],
            agents=[AgentBrief.model_validate(item) for item in agents],
        )
    except LifecycleError as exc:
        return lifecycle_error_response(request, exc)


@public_pool_router.post("/{customer_id}/assign", response_model=PublicPoolAssignResponse)
def assign_public_pool_customer(
    request: Request,
    customer_id: str,
    dto: PublicPoolAssignRequest,
    db: Session = Depends(get_db),
    user: Operator | None = Depends(get_current_user),
) -> PublicPoolAssignResponse | JSONResponse:
    try:
        operator = require_operator(user)
        outcome = public_pool_service.assign_from_public_pool(
            db, customer_id, dto.target_type or "", dto.target_id or "", operator
        )
        return PublicPoolAssignResponse(
            message="customer assigned from public pool",
            customer_id=outcome.customer_id,
            target_type=outcome.target_type.value,
            target_id=outcome.target_id,
            target_name=outcome.target_name,
            operation_type=outcome.operation_type,
            progress=outcome.progress,
        )
    except LifecycleError as exc:
        return lifecycle_error_response(request, exc)
    except SQLAlchemyError as exc:
        db.rollback()
        return internal_error_response(request, exc)


def _require_history_reader(user: Operator | None) -> Operator:
    operator = require_operator(user)
    if not operator.role.can_read_history():
        raise ForbiddenError("operator may not read customer history")
    return operator


@assignments_router.get("", response_model=list[AssignmentHistoryRead])
def list_assignment_history(
    request: Request,
    customer_id: str | None = Query(default=None),
    operation_type: str | None = Query(default=None),
    start_date: str | None = Query(default=None),
    end_date: str | None = Query(default=None),
    db: Session = Depends(get_db),
    user: Operator | None = Depends(get_current_user),
) -> list[AssignmentHistoryRead] | JSONResponse:
    try:
        _require_history_reader(user)
        rows = history_logger.list_assignments(
            db,
            customer_id=customer_id,
            operation_type=operation_type,
            start=_parse_datetime(start_date),
            end=_parse_datetime(end_date),
        )
        return [AssignmentHistoryRead.model_validate(row) for row in rows]
    except LifecycleError as exc:
        return lifecycle_error_response(request, exc)


@assignments_router.get("/{customer_id}", response_model=list[AssignmentHistoryRead])
def get_customer_assignment_history(
    request: Request,
    customer_id: str,
    db: Session = Depends(get_db),
    user: Operator | None = Depends(get_current_user),
) -> list[AssignmentHistoryRead] | JSONResponse:
    try:
        _require_history_reader(user)
        rows = history_logger.list_assignments(db, customer_id=customer_id)
        return [AssignmentHistoryRead.model_validate(row) for row in rows]
    except LifecycleError as exc:
        return lifecycle_error_response(request, exc)


@assignments_router.post("", response_model=AssignmentHistoryRead, status_code=status.HTTP_201_CREATED)
def add_assignment_history(
    request: Request,
    dto: AssignmentHistoryCreate,
    db: Session = Depends(get_db),
    user: Operator | None = Depends(get_current_user),
) -> AssignmentHistoryRead | JSONResponse:
    try:
        operator = require_operator(user)
        if not operator.role.can_assign():
            raise ForbiddenError("operator may not write assignment history")
        entry = history_logger.record_assignment(
            db,
            customer_id=dto.customer_id or "",
            customer_name=dto.customer_name or "",
            from_sales_id=dto.from_related_sales_id,
            from_sales_name=dto.from_related_sales_name,
            to_sales_id=dto.to_related_sales_id,
            to_sales_name=dto.to_related_sales_name,
            from_agent_id=dto.from_related_agent_id,
            from_agent_name=dto.from_related_agent_name,
            to_agent_id=dto.to_related_agent_id,
            to_agent_name=dto.to_related_agent_name,
            operator_id=dto.operator_id or "",
            operator_name=dto.operator_name or "",
            operation_type=dto.operation_type or "",
        )
        return AssignmentHistoryRead.model_validate(entry)
    except LifecycleError as exc:
        return lifecycle_error_response(request, exc)
    except SQLAlchemyError as exc:
        return internal_error_response(request, exc)


@progress_history_router.get("", response_model=list[ProgressHistoryRead])
def list_progress_history(
    request: Request,
    customer_id: str | None = Query(default=None),
    progress: str | None = Query(default=None),
    start_date: str | None = Query(default=None),
    end_date: str | None = Query(default=None),
    db: Session = Depends(get_db),
    user: Operator | None = Depends(get_current_user),
) -> list[ProgressHistoryRead] | JSONResponse:
    try:
        _require_history_reader(user)
        rows = history_logger.list_progress(
            db,
            customer_id=customer_id,
            progress=progress,
            start=_parse_datetime(start_date),
            end=_parse_datetime(end_date),
        )
        return [ProgressHistoryRead.model_validate(row) for row in rows]
    except LifecycleError as exc:
        return lifecycle_error_response(request, exc)


@progress_history_router.get("/{customer_id}", response_model=list[ProgressHistoryRead])
def get_customer_progress_history(
    request: Request,
    customer_id: str,
    db: Session = Depends(get_db),
    user: Operator | None = Depends(get_current_user),
) -> list[ProgressHistoryRead] | JSONResponse:
    try:
        _require_history_reader(user)
        rows = history_logger.list_progress(db, customer_id=customer_id)
        return [ProgressHistoryRead.model_validate(row) for row in rows]
    except LifecycleError as exc:
        return lifecycle_error_response(request, exc)


@progress_history_router.post("", response_model=ProgressHistoryRead, status_code=status.HTTP_201_CREATED)
def add_progress_history(
    request: Request,
    dto: ProgressHistoryCreate,
    db: Session = Depends(get_db),
    user: Operator | None = Depends(get_current_user),
) -> ProgressHistoryRead | JSONResponse:
    try:
        operator = require_operator(user)
        if not operator.role.can_change_progress():
            raise ForbiddenError("operator may not write progress history")
        entry = history_logger.record_progress(
            db,
            customer_id=dto.customer_id or "",
            customer_name=dto.customer_name or "",
            from_progress=dto.from_progress or "",
            to_progress=dto.to_progress or "",
            operator_id=dto.operator_id or "",
            operator_name=dto.operator_name or "",
            remark=dto.remark,
        )
        return ProgressHistoryRead.model_validate(entry)
    except LifecycleError as exc:
        return lifecycle_error_response(request, exc)
    except SQLAlchemyError as exc:
        return internal_error_response(request, exc)


def _require_config_admin(user: Operator | None) -> Operator:
    operator = require_operator(user)
    if not operator.role.can_manage_config():
        raise ForbiddenError("operator may not manage system configs")
    return operator


@system_configs_router.get("", response_model=list[SystemConfigRead])
def list_system_configs(
    request: Request,
    config_type: str | None = Query(default=None),
    is_enabled: bool | None = Query(default=None),
    db: Session = Depends(get_db),
    user: Operator | None = Depends(get_current_user),
) -> list[SystemConfigRead] | JSONResponse:
    try:
        _require_config_admin(user)
        configs = system_config_service.list_configs(db, config_type=config_type, is_enabled=is_enabled)
        return [SystemConfigRead.model_validate(config) for config in configs]
    except LifecycleError as exc:
        return lifecycle_error_response(request, exc)


@system_configs_router.get("/type/{config_type}", response_model=list[SystemConfigRead])
def list_system_configs_by_type(
    request: Request,
    config_type: str,
    db: Session = Depends(get_db),
    user: Operator | None = Depends(get_current_user),
) -> list[SystemConfigRead] | JSONResponse:
    try:
        _require_config_admin(user)
        configs = system_config_service.list_configs(db, config_type=config_type)
        return [SystemConfigRead.model_validate(config) for config in configs]
    except LifecycleError as exc:
        return lifecycle_error_response(request, exc)


@system_configs_router.get("/{config_id}", response_model=SystemConfigRead)
def get_system_config(
    request: Request,
    config_id: str,
    db: Session = Depends(get_db),
    user: Operator | None = Depends(get_current_user),
) -> SystemConfigRead | JSONResponse:
    try:
        _require_config_admin(user)
        return SystemConfigRead.model_validate(system_config_service.get(db, config_id))
    except LifecycleError as exc:
        return lifecycle_error_response(request, exc)


@system_configs_router.post("", response_model=SystemConfigRead, status_code=status.HTTP_201_CREATED)
def create_system_config(
    request: Request,
    dto: SystemConfigCreate,
    db: Session = Depends(get_db),
    user: Operator | None = Depends(get_current_user),
) -> SystemConfigRead | JSONResponse:
    try:
        operator = _require_config_admin(user)
        config = system_config_service.create(
            db,
            operator,
            config_type=dto.config_type,
            config_key=dto.config_key,
            config_value=dto.config_value,
            description=dto.description,
            is_enabled=dto.is_enabled,
        )
        return SystemConfigRead.model_validate(config)
    except LifecycleError as exc:
        return lifecycle_error_response(request, exc)
    except SQLAlchemyError as exc:
        db.rollback()
        return internal_error_response(request, exc)


@system_configs_router.patch("/{config_id}", response_model=SystemConfigRead)
def update_system_config(
    request: Request,
    config_id: str,
    dto: SystemConfigUpdate,
    db: Session = Depends(get_db),
    user: Operator | None = Depends(get_current_user),
) -> SystemConfigRead | JSONResponse:
    try:
        operator = _require_config_admin(user)
        config = system_config_service.update(
            db,
            operator,
            config_id,
            config_value=dto.config_value,
            description=dto.description,
            is_enabled=dto.is_enabled,
        )
        return SystemConfigRead.model_validate(config)
    except LifecycleError as exc:
        return lifecycle_error_response(request, exc)
    except SQLAlchemyError as exc:
        db.rollback()
        return internal_error_response(request, exc)


@system_configs_router.patch("/{config_id}/toggle", response_model=SystemConfigRead)
def toggle_system_config(
    request: Request,
    config_id: str,
    db: Session = Depends(get_db),
    user: Operator | None = Depends(get_current_user),
) -> SystemConfigRead | JSONResponse:
    try:
        operator = _require_config_admin(user)
        return SystemConfigRead.model_validate(system_config_service.toggle(db, operator, config_id))
    except LifecycleError as exc:
        return lifecycle_error_response(request, exc)


@system_configs_router.delete("/{config_id}", status_code=status.HTTP_204_NO_CONTENT, response_model=None)
def delete_system_config(
    request: Request,
    config_id: str,
    db: Session = Depends(get_db),
    user: Operator | None = Depends(get_current_user),
) -> None | JSONResponse:
    try:
        _require_config_admin(user)
        system_config_service.delete(db, config_id)
        return None
    except LifecycleError as exc:
        return lifecycle_error_response(request, exc)


@auto_transfer_router.post("/run", response_model=AutoTransferRunResponse)
def run_auto_transfer(
    request: Request,
    db: Session = Depends(get_db),
    user: Operator | None = Depends(get_current_user),
) -> AutoTransferRunResponse | JSONResponse:
    try:
        operator = require_operator(user)
        if not operator.is_super_admin:
            raise ForbiddenError("operator may not trigger auto transfer")
    except LifecycleError as exc:
        return lifecycle_error_response(request, exc)
    summary = AutoTransferJob().run(db)
    return AutoTransferRunResponse(**summary.to_dict())
