from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from invoicing.api.errors import to_http_exception
from invoicing.business.billing.schemas import (
    CancelRequest,
    InvoiceBuildRequest,
    InvoiceRead,
    InvoiceStatus,
    RejectRequest,
    TransitionRequest,
)
from invoicing.business.billing.service import billing_service
from invoicing.business.errors import BillingError
from invoicing.context import get_actor_id
from invoicing.core.database import get_db


router = APIRouter(prefix="/billing", tags=["billing"])


@router.post("/invoices", response_model=InvoiceRead, status_code=status.HTTP_201_CREATED)
def build_invoice(payload: InvoiceBuildRequest, db: Session = Depends(get_db)) -> InvoiceRead:
    if payload.created_by is None:
        payload = payload.model_copy(update={"created_by": get_actor_id()})
    try:
        return billing_service.build_invoice(db, payload)
    except BillingError as exc:
        raise to_http_exception(exc) from exc


@router.get("/invoices", response_model=list[InvoiceRead])
def list_invoices(
    customer_id: str | None = Query(default=None),
    invoice_status: InvoiceStatus | None = Query(default=None, alias="status"),
    db: Session = Depends(get_db),
) -> list[InvoiceRead]:
    return billing_service.list_invoices(db, customer_id=customer_id, status=invoice_status)


@router.get("/invoices/{invoice_id}", response_model=InvoiceRead)
def get_invoice(invoice_id: uuid.UUID, db: Session = Depends(get_db)) -> InvoiceRead:
    try:
        return billing_service.get_invoice(db, invoice_id)
    except BillingError as exc:
        raise to_http_exception(exc) from exc


@router.post("/invoices/{invoice_id}/submit", response_model=InvoiceRead)
def submit_invoice(
    invoice_id: uuid.UUID,
    payload: TransitionRequest | None = None,
    db: Session = Depends(get_db),
) -> InvoiceRead:
    payload = payload or TransitionRequest()
    try:
        return billing_service.submit_for_approval(
            db,
            invoice_id,
            actor_id=payload.actor_id or get_actor_id(),
            expected_row_version=payload.row_version,
        )
    except BillingError as exc:
        raise to_http_exception(exc) from exc


@router.post("/invoices/{invoice_id}/approve", response_model=InvoiceRead)
def approve_invoice(
    invoice_id: uuid.UUID,
    payload: TransitionRequest | None = None,
    db: Session = Depends(get_db),
) -> InvoiceRead:
    payload = payload or TransitionRequest()
    try:
        return billing_service.approve_invoice(
            db,
            invoice_id,
            actor_id=payload.actor_id or get_actor_id(),
            expected_row_version=payload.row_version,
        )
    except BillingError as exc:
        raise to_http_exception(exc) from exc


@router.post("/invoices/{invoice_id}/reject", response_model=InvoiceRead)
def reject_invoice(invoice_id: uuid.UUID, payload: RejectRequest, db: Session = Depends(get_db)) -> InvoiceRead:
    try:
        return billing_service.reject_invoice(
            db,
            invoice_id,
            payload.reason,
            actor_id=payload.actor_id or get_actor_id(),
            expected_row_version=payload.row_version,
        )
    except BillingError as exc:
        raise to_http_exception(exc) from exc


@router.post("/invoices/{invoice_id}/cancel", response_model=InvoiceRead)
def cancel_invoice(
    invoice_id: uuid.UUID,
    payload: CancelRequest | None = None,
    db: Session = Depends(get_db),
) -> InvoiceRead:
    payload = payload or CancelRequest()
    try:
        return billing_service.cancel_invoice(
            db,
            invoice_id,
            reason=payload.reason,
            expected_row_version=payload.row_version,
        )
    except BillingError as exc:
        raise to_http_exception(exc) from exc
