from __future__ import annotations

from typing import Any

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import (
    BatchSpanProcessor,
    ConsoleSpanExporter,
    SimpleSpanProcessor,
)
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter

from invoicing.core.config import Settings

SERVICE_NAME = "invoicing"

_configured = False
_provider: TracerProvider | None = None


def _get_or_create_provider(version: str = "0.1.0") -> TracerProvider:
    global _provider

    if _provider is None:
        _provider = TracerProvider(resource=Resource.create({"service.name": SERVICE_NAME, "service.version": version}))
        trace.set_tracer_provider(_provider)
    return _provider


def setup_otel(settings: Settings) -> TracerProvider | None:
    """Install the tracer provider and the exporters named in settings. Safe to call more than once."""
    global _configured

    if not settings.otel_enabled:
        return None

    provider = _get_or_create_provider(settings.app_version)
    if _configured:
        return provider

    if settings.otel_exporter_otlp_endpoint:
        provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=settings.otel_exporter_otlp_endpoint)))
    if settings.otel_console_exporter:
        provider.add_span_processor(SimpleSpanProcessor(ConsoleSpanExporter()))

    _configured = True
    return provider


def setup_inmemory_otel() -> InMemorySpanExporter:
    exporter = InMemorySpanExporter()
    _get_or_create_provider().add_span_processor(SimpleSpanProcessor(exporter))
    return exporter


_SPAN_HEADERS = {b"x-correlation-id": "correlation_id", b"x-actor-id": "actor_id"}


def get_fastapi_server_request_hook():
    def server_request_hook(span, scope: dict[str, Any]) -> None:  # type: ignore[no-untyped-def]
        if span is None or not span.is_recording():
            return
        headers = dict(scope.get("headers", []))
        for header, attribute in _SPAN_HEADERS.items():
            raw = headers.get(header)
            if raw:
                span.set_attribute(attribute, raw.decode("utf-8"))

    return server_request_hook
