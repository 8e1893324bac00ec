from __future__ import annotations

import logging
from collections.abc import Generator

import pytest
from fastapi.testclient import TestClient
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

import invoicing.models  # noqa: F401
from invoicing.core.config import get_settings
from invoicing.core.database import Base, get_db
from invoicing.main import app
from invoicing.otel import setup_inmemory_otel


@pytest.fixture()
def db_session() -> Generator[Session, None, None]:
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(autouse=True)
def configure_env(monkeypatch: pytest.MonkeyPatch) -> Generator[None, None, None]:
    monkeypatch.setenv("METRICS_ENABLED", "true")
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture()
def span_exporter() -> InMemorySpanExporter:
    exporter = setup_inmemory_otel()
    exporter.clear()
    return exporter


@pytest.fixture()
def client(db_session: Session) -> Generator[TestClient, None, None]:
    def override_get_db() -> Generator[Session, None, None]:
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def _approved_invoice(client: TestClient, headers: dict[str, str] | None = None) -> dict:
    invoice = client.post(
        "/billing/invoices",
        json={"customer_id": "cust-1", "items": [{"kind": "service", "name": "Massage", "quantity": 1, "unit_price": "1180"}]},
        headers=headers,
    ).json()
    client.post(f"/billing/invoices/{invoice['id']}/submit", headers=headers)
    approved = client.post(f"/billing/invoices/{invoice['id']}/approve", headers=headers)
    assert approved.status_code == 200
    return approved.json()


def test_correlation_id_is_echoed_or_generated(client: TestClient) -> None:
    echoed = client.get("/health", headers={"X-Correlation-Id": "corr-42"})
    assert echoed.status_code == 200
    assert echoed.headers["x-correlation-id"] == "corr-42"

    generated = client.get("/health")
    assert generated.headers["x-correlation-id"]
    assert generated.json()["status"] == "ok"


def test_request_logs_carry_correlation_id(client: TestClient, caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.INFO)

    response = client.get("/billing/invoices/00000000-0000-4000-8000-000000000000", headers={"X-Correlation-Id": "log-1"})
    assert response.status_code == 404

    records = [r for r in caplog.records if r.name == "invoicing.request" and r.getMessage() == "http.request"]
    assert any(
        getattr(record, "correlation_id", None) == "log-1"
        and getattr(record, "path", None) == "/billing/invoices/{id}"
        and getattr(record, "status_code", None) == 404
        and getattr(record, "invoice_id", None) == "00000000-0000-4000-8000-000000000000"
        and record.levelno == logging.WARNING
        for record in records
    )


def test_domain_logs_carry_invoice_context(client: TestClient, caplog: pytest.LogCaptureFixture) -> None:
    caplog.set_level(logging.INFO)

    invoice = _approved_invoice(client, headers={"X-Correlation-Id": "log-2", "X-Actor-Id": "manager-1"})

    records = [r for r in caplog.records if r.name == "invoicing.billing" and r.getMessage() == "invoice.approved"]
    assert any(
        getattr(record, "invoice_id", None) == invoice["id"]
        and getattr(record, "correlation_id", None) == "log-2"
        and getattr(record, "actor_id", None) == "manager-1"
        for record in records
    )


def test_metrics_endpoint_exposes_billing_counters(client: TestClient) -> None:
    invoice = _approved_invoice(client)
    client.post(f"/billing/invoices/{invoice['id']}/payments", json={"amount": "100", "mode": "cash"})
    client.post("/coupons/validate", json={"code": "NOPE", "customer_id": "cust-1", "purchase_amount": "10"})

    metrics = client.get("/metrics")
    assert metrics.status_code == 200
    body = metrics.text
    assert "http_requests_total" in body
    assert "invoices_built_total" in body
    assert 'invoice_transitions_total{from_status="pending_approval",to_status="approved"}' in body
    assert 'payments_recorded_total{mode="cash"}' in body
    assert 'coupon_rejections_total{reason="CouponNotFound"}' in body
    assert 'path="/billing/invoices/{id}/approve"' in body


def test_metrics_endpoint_is_hidden_when_disabled(client: TestClient, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("METRICS_ENABLED", "false")
    get_settings.cache_clear()
    assert client.get("/metrics").status_code == 404


def test_service_spans_are_recorded(client: TestClient, span_exporter: InMemorySpanExporter) -> None:
    invoice = _approved_invoice(client, headers={"X-Correlation-Id": "otel-1", "X-Actor-Id": "manager-9"})

    spans = span_exporter.get_finished_spans()
    names = {span.name for span in spans}
    assert {"billing.build_invoice", "billing.submit_for_approval", "billing.approve_invoice"} <= names
    assert any(
        span.name == "billing.approve_invoice" and span.attributes.get("invoice_id") == invoice["id"] for span in spans
    )
    assert any(span.attributes.get("correlation_id") == "otel-1" for span in spans)
    assert any(span.attributes.get("actor_id") == "manager-9" for span in spans)
