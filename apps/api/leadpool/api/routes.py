from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import Response

from leadpool.core.config import get_settings
from leadpool.lifecycle.api import (
    assignments_router,
    auto_transfer_router,
    change_customers_router,
    customers_router,
    get_current_user,
    progress_history_router,
    public_pool_router,
    system_configs_router,
)
from leadpool.lifecycle.roles import Operator
from leadpool.metrics import generate_metrics_payload, metrics_content_type

router = APIRouter()
router.include_router(change_customers_router)
router.include_router(customers_router)
router.include_router(public_pool_router)
router.include_router(assignments_router)
router.include_router(progress_history_router)
router.include_router(system_configs_router)
router.include_router(auto_transfer_router)


@router.get("/health", tags=["system"])
def health() -> dict[str, str]:
    settings = get_settings()
    return {
        "status": "ok",
        "service": settings.app_name,
        "environment": settings.app_env,
    }


@router.get("/me", tags=["auth"])
def me(user: Operator | None = Depends(get_current_user)) -> dict[str, str]:
    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="authentication required")
    return {
        "id": user.id,
        "name": user.name,
        "role": user.role.value,
    }


@router.get("/metrics", tags=["system"])
def metrics(user: Operator | None = Depends(get_current_user)) -> Response:
    settings = get_settings()
    if not settings.metrics_enabled:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="not found")
    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="authentication required")
    if not user.is_super_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="metrics are restricted to super admins")
    return Response(content=generate_metrics_payload(), media_type=metrics_content_type())
