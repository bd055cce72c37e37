from __future__ import annotations

from typing import Any

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter, SimpleSpanProcessor
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter

from leadpool.context import CORRELATION_HEADER
from leadpool.core.config import Settings


SERVICE_NAME = "leadpool-api"

_provider: TracerProvider | None = None
_exporters_attached = False


def tracer_provider(service_version: str = "0.1.0") -> TracerProvider:
    """Install the process-wide provider once; later calls reuse it."""
    global _provider
    if _provider is None:
        resource = Resource.create({"service.name": SERVICE_NAME, "service.version": service_version})
        _provider = TracerProvider(resource=resource)
        trace.set_tracer_provider(_provider)
    return _provider


def setup_otel(settings: Settings) -> TracerProvider | None:
    global _exporters_attached
    if not settings.otel_enabled:
        return None

    provider = tracer_provider(settings.service_version)
    if _exporters_attached:
        return provider

    if settings.otel_exporter_endpoint:
        provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=settings.otel_exporter_endpoint)))
    if settings.otel_console_exporter:
        provider.add_span_processor(SimpleSpanProcessor(ConsoleSpanExporter()))
    _exporters_attached = True
    return provider


def setup_inmemory_otel() -> InMemorySpanExporter:
    exporter = InMemorySpanExporter()
    tracer_provider().add_span_processor(SimpleSpanProcessor(exporter))
    return exporter


def server_request_hook(span: Any, scope: dict[str, Any]) -> None:
    if span is None or not span.is_recording():
        return
    for name, value in scope.get("headers", []):
        if name.decode("latin-1").lower() == CORRELATION_HEADER:
            span.set_attribute("correlation_id", value.decode("utf-8", "replace"))
            return
