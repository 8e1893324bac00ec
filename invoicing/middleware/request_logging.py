from __future__ import annotations

import logging
import time
from typing import Any

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from invoicing.metrics import observe_http_request, resolve_http_path_label


logger = logging.getLogger("invoicing.request")


def _invoice_id(request: Request) -> str | None:
    # Routing fills path_params on the shared scope once the request has been dispatched.
    if not request.url.path.startswith("/billing/invoices/"):
        return None
    value = request.scope.get("path_params", {}).get("invoice_id")
    return str(value) if value is not None else None


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Access log plus HTTP metrics. Client errors log at WARNING so rejected billing calls stand out."""

    async def dispatch(self, request: Request, call_next):  # type: ignore[no-untyped-def]
        path = resolve_http_path_label(request)
        fields: dict[str, Any] = {"method": request.method, "path": path}

        started = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception:
            elapsed = time.perf_counter() - started
            observe_http_request(method=request.method, path=path, status=500, duration=elapsed)
            logger.error(
                "http.error",
                exc_info=True,
                extra={**fields, "status_code": 500, "duration_ms": round(elapsed * 1000, 2), "invoice_id": _invoice_id(request)},
            )
            raise

        elapsed = time.perf_counter() - started
        observe_http_request(method=request.method, path=path, status=response.status_code, duration=elapsed)
        level = logging.WARNING if 400 <= response.status_code < 500 else logging.INFO
        logger.log(
            level,
            "http.request",
            extra={
                **fields,
                "status_code": response.status_code,
                "duration_ms": round(elapsed * 1000, 2),
                "invoice_id": _invoice_id(request),
            },
        )
        return response
