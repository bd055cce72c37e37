from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor

from leadpool.api.routes import router as api_router
from leadpool.core.config import get_settings
from leadpool.core.database import Base, create_session_factory
from leadpool.core.events import InternalEvent, event_bus
from leadpool.lifecycle import models  # noqa: F401
from leadpool.lifecycle.auto_transfer import AutoTransferScheduler
from leadpool.logging import configure_logging
from leadpool.middleware.correlation_id import CorrelationIdMiddleware
from leadpool.middleware.request_logging import RequestLoggingMiddleware
from leadpool.otel import server_request_hook, setup_otel


configure_logging()
logger = logging.getLogger("leadpool.app")
_subscriptions_registered = False


def _on_system_started(event: InternalEvent) -> None:
    logger.info("system_event", extra={"event_name": event.name})


def _on_customer_event(event: InternalEvent) -> None:
    payload = event.payload.get("payload") if isinstance(event.payload, dict) else None
    customer_id = payload.get("customer_id") if isinstance(payload, dict) else None
    logger.info("customer_event", extra={"event_name": event.name, "customer_id": customer_id})


def _register_subscriptions() -> None:
    global _subscriptions_registered
    if _subscriptions_registered:
        return
    event_bus.subscribe("system.started", _on_system_started)
    event_bus.subscribe_prefix("customer.", _on_customer_event)
    _subscriptions_registered = True


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    _register_subscriptions()
    if settings.create_tables_on_startup:
        Base.metadata.create_all(bind=app.state.session_factory.kw["bind"])

    scheduler: AutoTransferScheduler | None = None
    if settings.auto_transfer_enabled and settings.auto_transfer_backend.lower() == "thread":
        scheduler = AutoTransferScheduler.from_settings(app.state.session_factory, settings)
        scheduler.start()
    app.state.auto_transfer_scheduler = scheduler

    event_bus.publish("system.started", {"service": "api"})
    try:
        yield
    finally:
        if scheduler is not None:
            scheduler.stop()


def create_app() -> FastAPI:
    settings = get_settings()
    application = FastAPI(title=settings.app_name, version=settings.service_version, lifespan=lifespan)
    application.state.session_factory = create_session_factory(settings.database_url)
    application.add_middleware(RequestLoggingMiddleware)
    application.add_middleware(CorrelationIdMiddleware)
    application.include_router(api_router)

    setup_otel(settings)

    if not getattr(application, "_is_instrumented_by_opentelemetry", False):
        FastAPIInstrumentor().instrument_app(application, server_request_hook=server_request_hook)
    return application


app = create_app()
