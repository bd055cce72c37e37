from __future__ import annotations

from typing import Any


class LifecycleError(Exception):
    """Base error for customer lifecycle operations.

    Carries the HTTP-style status and a stable machine code so that routers and
    the auto-transfer job can react without parsing messages.
    """

    status_code = 500
    code = "customer_lifecycle_error"

    def __init__(self, message: str, *, details: Any = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details


class ValidationError(LifecycleError):
    status_code = 400
    code = "validation_error"


class HistoryValidationError(ValidationError):
    code = "history_validation_error"

    def __init__(self, sink: str, missing: list[str]) -> None:
        self.sink = sink
        self.missing = sorted(missing)
        super().__init__(f"missing required fields: {', '.join(self.missing)}", details={"missing": self.missing})


class UnauthenticatedError(LifecycleError):
    status_code = 401
    code = "unauthenticated"


class ForbiddenError(LifecycleError):
    status_code = 403
    code = "forbidden"


class NotFoundError(LifecycleError):
    status_code = 404
    code = "not_found"


class InfrastructureError(LifecycleError):
    status_code = 500
    code = "internal_error"
