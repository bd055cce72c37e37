from __future__ import annotations

import re

from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest
from starlette.requests import Request


http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "path", "status"],
)

http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "path"],
)

customer_ownership_changes_total = Counter(
    "customer_ownership_changes_total",
    "Customer ownership changes by operation type",
    ["operation_type"],
)

customer_progress_changes_total = Counter(
    "customer_progress_changes_total",
    "Customer progress transitions by target progress",
    ["to_progress"],
)

customer_history_write_failures_total = Counter(
    "customer_history_write_failures_total",
    "Audit history writes that failed after the primary mutation committed",
    ["sink"],
)

customer_post_commit_hook_failures_total = Counter(
    "customer_post_commit_hook_failures_total",
    "Best-effort post-commit steps that failed",
    ["hook"],
)

auto_transfer_runs_total = Counter(
    "auto_transfer_runs_total",
    "Auto-transfer scheduler runs by status",
    ["status"],
)

auto_transfer_customers_total = Counter(
    "auto_transfer_customers_total",
    "Customers examined by the auto-transfer run by outcome",
    ["outcome"],
)

job_duration_seconds = Histogram(
    "leadpool_job_duration_seconds",
    "Background job duration in seconds",
    ["job_type"],
)


_UUID_RE = re.compile(
    r"\b[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[1-5][0-9a-fA-F]{3}-[89abAB][0-9a-fA-F]{3}-[0-9a-fA-F]{12}\b"
)
_INT_RE = re.compile(r"/\d+\b")
_PATH_PARAM_RE = re.compile(r"\{[^{}]+\}")


def _normalize_route_template(path: str) -> str:
    return _PATH_PARAM_RE.sub("{id}", path)


def _sanitize_path(path: str) -> str:
    without_uuids = _UUID_RE.sub("{id}", path)
    return _INT_RE.sub("/{id}", without_uuids)


def resolve_http_path_label(request: Request) -> str:
    route = request.scope.get("route")
    if route is not None:
        path_format = getattr(route, "path_format", None)
        if isinstance(path_format, str) and path_format:
            return _normalize_route_template(path_format)
        route_path = getattr(route, "path", None)
        if isinstance(route_path, str) and route_path:
            return _normalize_route_template(route_path)
    return _sanitize_path(request.url.path)


def observe_http_request(method: str, path: str, status: int, duration: float) -> None:
    status_str = str(status)
    http_requests_total.labels(method=method, path=path, status=status_str).inc()
    http_request_duration_seconds.labels(method=method, path=path).observe(duration)


def observe_ownership_change(operation_type: str) -> None:
    customer_ownership_changes_total.labels(operation_type=operation_type).inc()


def observe_progress_change(to_progress: str) -> None:
    customer_progress_changes_total.labels(to_progress=to_progress).inc()


def observe_history_write_failure(sink: str) -> None:
    customer_history_write_failures_total.labels(sink=sink).inc()


def observe_hook_failure(hook: str) -> None:
    customer_post_commit_hook_failures_total.labels(hook=hook).inc()


def observe_auto_transfer_run(status: str, duration: float) -> None:
    auto_transfer_runs_total.labels(status=status).inc()
    job_duration_seconds.labels(job_type="AUTO_TRANSFER").observe(duration)


def observe_auto_transfer_customer(outcome: str) -> None:
    auto_transfer_customers_total.labels(outcome=outcome).inc()


def generate_metrics_payload() -> bytes:
    return generate_latest()


def metrics_content_type() -> str:
    return CONTENT_TYPE_LATEST
