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

invoices_built_total = Counter(
    "invoices_built_total",
    "Total invoices built, by whether a coupon was applied",
    ["with_coupon"],
)

invoice_transitions_total = Counter(
    "invoice_transitions_total",
    "Total invoice lifecycle transitions",
    ["from_status", "to_status"],
)

payments_recorded_total = Counter(
    "payments_recorded_total",
    "Total payments recorded by mode",
    ["mode"],
)

payment_amount_total = Counter(
    "payment_amount_total",
    "Sum of recorded payment amounts by mode",
    ["mode"],
)

coupon_rejections_total = Counter(
    "coupon_rejections_total",
    "Total coupon rejections by reason",
    ["reason"],
)

coupon_usages_committed_total = Counter(
    "coupon_usages_committed_total",
    "Total coupon usages committed at approval",
)

concurrency_conflicts_total = Counter(
    "concurrency_conflicts_total",
    "Total optimistic concurrency conflicts by operation",
    ["operation"],
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


def observe_invoice_built(with_coupon: bool) -> None:
    invoices_built_total.labels(with_coupon="true" if with_coupon else "false").inc()


def observe_invoice_transition(from_status: str, to_status: str) -> None:
    invoice_transitions_total.labels(from_status=from_status, to_status=to_status).inc()


def observe_payment_recorded(mode: str, amount: float) -> None:
    payments_recorded_total.labels(mode=mode).inc()
    if amount > 0:
        payment_amount_total.labels(mode=mode).inc(amount)


def observe_coupon_rejection(reason: str) -> None:
    coupon_rejections_total.labels(reason=reason).inc()


def observe_coupon_usage_committed() -> None:
    coupon_usages_committed_total.inc()


def observe_concurrency_conflict(operation: str) -> None:
    concurrency_conflicts_total.labels(operation=operation).inc()


def generate_metrics_payload() -> bytes:
    return generate_latest()


def metrics_content_type() -> str:
    return CONTENT_TYPE_LATEST
