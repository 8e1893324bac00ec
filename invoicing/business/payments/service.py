from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable

from opentelemetry import trace
from sqlalchemy.orm import Session

from invoicing import events
from invoicing.business.billing import lifecycle
from invoicing.business.billing.repository import InvoiceRepository, write_transaction
from invoicing.business.billing.schemas import InvoiceRead
from invoicing.business.errors import ConcurrentModificationError
from invoicing.business.payments.ledger import LedgerState, PaymentEntry, record_payment
from invoicing.business.payments.models import InvoicePayment
from invoicing.business.payments.schemas import PaymentCreate, PaymentRead
from invoicing.metrics import observe_invoice_transition, observe_payment_recorded

logger = logging.getLogger("invoicing.payments")
tracer = trace.get_tracer("invoicing.payments")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(slots=True)
class PaymentsService:
    invoice_repository: InvoiceRepository = InvoiceRepository()
    now: Callable[[], datetime] = utcnow

    def record_payment(self, session: Session, invoice_id: uuid.UUID, payload: PaymentCreate) -> InvoiceRead:
        """Append a payment to an approved invoice and recompute its balance."""
        with tracer.start_as_current_span("payments.record_payment") as span, write_transaction(
            session, "invoice.record_payment", invoice_id
        ):
            span.set_attribute("invoice_id", str(invoice_id))
            span.set_attribute("payment_mode", payload.mode)
            invoice = self.invoice_repository.get(session, invoice_id, with_children=True)
            if payload.row_version is not None and invoice.row_version != payload.row_version:
                raise ConcurrentModificationError("invoice", invoice_id)
            from_status = invoice.status
            lifecycle.ensure_payable(from_status)

            state = LedgerState(
                status=invoice.status,
                total_amount=invoice.total_amount,
                paid_amount=invoice.paid_amount,
                due_amount=invoice.due_amount,
                payments=tuple(
                    PaymentEntry(
                        amount=payment.amount,
                        mode=payment.mode,
                        external_reference=payment.external_reference,
                        recorded_at=payment.recorded_at,
                    )
                    for payment in invoice.payments
                ),
            )
            outcome = record_payment(state, payload.amount, payload.mode, payload.external_reference, self.now())

            self.invoice_repository.compare_and_swap(
                session,
                invoice,
                {
                    "paid_amount": outcome.state.paid_amount,
                    "due_amount": outcome.state.due_amount,
                    "status": outcome.state.status,
                },
            )
            payment = InvoicePayment(
                invoice_id=invoice.id,
                sequence=len(outcome.state.payments),
                amount=outcome.payment.amount,
                mode=outcome.payment.mode,
                external_reference=outcome.payment.external_reference,
                notes=payload.notes,
                recorded_by=payload.recorded_by,
                recorded_at=outcome.payment.recorded_at,
            )
            session.add(payment)
            session.commit()

        to_status = outcome.state.status
        observe_payment_recorded(payment.mode, float(payment.amount))
        if to_status != from_status:
            observe_invoice_transition(from_status, to_status)
        logger.info(
            "invoice.payment_recorded",
            extra={
                "invoice_id": str(invoice_id),
                "amount": str(payment.amount),
                "mode": payment.mode,
                "from_status": from_status,
                "to_status": to_status,
            },
        )
        events.publish(
            {
                "event_type": "invoice.payment_recorded",
                "actor_id": payload.recorded_by,
                "payload": {
                    "invoice_id": str(invoice_id),
                    "payment_id": str(payment.id),
                    "amount": str(payment.amount),
                    "mode": payment.mode,
                    "paid_amount": str(outcome.state.paid_amount),
                    "due_amount": str(outcome.state.due_amount),
                    "status": to_status,
                },
            }
        )
        return InvoiceRead.model_validate(self.invoice_repository.get(session, invoice_id, with_children=True))

    def list_payments(self, session: Session, invoice_id: uuid.UUID) -> list[PaymentRead]:
        invoice = self.invoice_repository.get(session, invoice_id, with_children=True)
        return [PaymentRead.model_validate(payment) for payment in invoice.payments]


payments_service = PaymentsService()
