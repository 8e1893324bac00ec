from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from invoicing.api.errors import to_http_exception
from invoicing.business.billing.schemas import InvoiceRead
from invoicing.business.errors import BillingError
from invoicing.business.payments.schemas import PaymentCreate, PaymentRead
from invoicing.business.payments.service import payments_service
from invoicing.context import get_actor_id
from invoicing.core.database import get_db


router = APIRouter(prefix="/billing", tags=["payments"])


@router.post("/invoices/{invoice_id}/payments", response_model=InvoiceRead, status_code=status.HTTP_201_CREATED)
def record_payment(invoice_id: uuid.UUID, payload: PaymentCreate, db: Session = Depends(get_db)) -> InvoiceRead:
    if payload.recorded_by is None:
        payload = payload.model_copy(update={"recorded_by": get_actor_id()})
    try:
        return payments_service.record_payment(db, invoice_id, payload)
    except BillingError as exc:
        raise to_http_exception(exc) from exc


@router.get("/invoices/{invoice_id}/payments", response_model=list[PaymentRead])
def list_payments(invoice_id: uuid.UUID, db: Session = Depends(get_db)) -> list[PaymentRead]:
    try:
        return payments_service.list_payments(db, invoice_id)
    except BillingError as exc:
        raise to_http_exception(exc) from exc
