from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor

from invoicing.api.routes import router as api_router
from invoicing.core.config import get_settings
from invoicing.core.events import InternalEvent, event_bus
from invoicing.logging import configure_logging
from invoicing.middleware.correlation_id import CorrelationIdMiddleware
from invoicing.middleware.request_logging import RequestLoggingMiddleware
from invoicing.otel import get_fastapi_server_request_hook, setup_otel


configure_logging()
logger = logging.getLogger("invoicing.lifecycle")
_subscriptions_registered = False

_domain_event_types = [
    "invoice.created",
    "invoice.submitted",
    "invoice.approved",
    "invoice.rejected",
    "invoice.cancelled",
    "invoice.payment_recorded",
    "coupon.usage_committed",
]


def _on_system_started(event: InternalEvent) -> None:
    logger.info("system_event", extra={"event_name": event.name, "event_payload": event.payload})


def _on_domain_event(event: InternalEvent) -> None:
    payload = event.payload.get("payload") if isinstance(event.payload, dict) else None
    invoice_id = payload.get("invoice_id") if isinstance(payload, dict) else None
    logger.debug("domain_event", extra={"event_name": event.name, "invoice_id": invoice_id})


@asynccontextmanager
async def lifespan(app: FastAPI):
    global _subscriptions_registered
    if not _subscriptions_registered:
        event_bus.subscribe("system.started", _on_system_started)
        for event_name in _domain_event_types:
            event_bus.subscribe(event_name, _on_domain_event)
        _subscriptions_registered = True
    event_bus.publish("system.started", {"service": "invoicing"})
    yield


settings = get_settings()

app = FastAPI(title=settings.app_name, version=settings.app_version, lifespan=lifespan)
app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(CorrelationIdMiddleware)
app.include_router(api_router)

setup_otel(settings)

if not getattr(app, "_is_instrumented_by_opentelemetry", False):
    FastAPIInstrumentor().instrument_app(app, server_request_hook=get_fastapi_server_request_hook())
