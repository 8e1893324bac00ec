from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable

from opentelemetry import trace
from sqlalchemy import Select, select
from sqlalchemy.orm import Session, selectinload

from invoicing import events
from invoicing.business.billing import lifecycle
from invoicing.business.billing.builder import InvoiceBuilder, InvoiceDraft, LineItemSpec
from invoicing.business.billing.models import Invoice, InvoiceLine
from invoicing.business.billing.repository import InvoiceRepository, InvoiceSequenceRepository, write_transaction
from invoicing.business.billing.schemas import InvoiceBuildRequest, InvoiceRead, LineItemCreate
from invoicing.business.catalog.service import CatalogService
from invoicing.business.coupons.models import Coupon
from invoicing.business.coupons.repository import CouponRepository
from invoicing.business.coupons.service import CouponService
from invoicing.business.errors import ConcurrentModificationError, InvalidCouponError, InvalidLineItemError
from invoicing.core.config import get_settings
from invoicing.metrics import (
    observe_coupon_rejection,
    observe_coupon_usage_committed,
    observe_invoice_built,
    observe_invoice_transition,
)

logger = logging.getLogger("invoicing.billing")
tracer = trace.get_tracer("invoicing.billing")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(slots=True)
class BillingService:
    invoice_repository: InvoiceRepository = InvoiceRepository()
    sequence_repository: InvoiceSequenceRepository = InvoiceSequenceRepository()
    coupon_repository: CouponRepository = CouponRepository()
    builder: InvoiceBuilder = field(default_factory=InvoiceBuilder)
    coupons: CouponService = field(default_factory=CouponService)
    catalog: CatalogService = field(default_factory=CatalogService)
    now: Callable[[], datetime] = utcnow

    def build_invoice(self, session: Session, request: InvoiceBuildRequest) -> InvoiceRead:
        settings = get_settings()
        with tracer.start_as_current_span("billing.build_invoice") as span, write_transaction(session, "invoice.build"):
            span.set_attribute("customer_id", request.customer_id)
            span.set_attribute("item_count", len(request.items))
            now = self.now()

            items = [self._resolve_item(session, index, item) for index, item in enumerate(request.items)]
            coupon: Coupon | None = None
            if request.coupon_code:
                coupon = self.coupon_repository.get_by_code(session, request.coupon_code, with_usages=True)
            try:
                draft = self.builder.build(
                    items,
                    coupon,
                    request.customer_id,
                    now,
                    tax_rate_percent=settings.default_tax_rate_percent,
                    coupon_code=request.coupon_code,
                )
            except InvalidCouponError as exc:
                observe_coupon_rejection(exc.reason)
                raise

            invoice_number = self.sequence_repository.next_number(session, settings.invoice_number_prefix, now.year)
            invoice = self._to_invoice(draft, request, invoice_number, now)
            session.add(invoice)
            session.commit()
            span.set_attribute("invoice_id", str(invoice.id))

        observe_invoice_built(draft.coupon_code is not None)
        logger.info(
            "invoice.created",
            extra={
                "invoice_id": str(invoice.id),
                "invoice_number": invoice.invoice_number,
                "customer_id": invoice.customer_id,
                "amount": str(invoice.total_amount),
                "coupon_code": invoice.applied_coupon_code,
            },
        )
        events.publish(
            {
                "event_type": "invoice.created",
                "payload": {
                    "invoice_id": str(invoice.id),
                    "invoice_number": invoice.invoice_number,
                    "customer_id": invoice.customer_id,
                    "total_amount": str(invoice.total_amount),
                    "service_visit_id": invoice.service_visit_id,
                    "order_id": invoice.order_id,
                    "coupon_code": invoice.applied_coupon_code,
                },
            }
        )
        return self.get_invoice(session, invoice.id)

    def submit_for_approval(
        self,
        session: Session,
        invoice_id: uuid.UUID,
        actor_id: str | None = None,
        expected_row_version: int | None = None,
    ) -> InvoiceRead:
        with tracer.start_as_current_span("billing.submit_for_approval") as span, write_transaction(
            session, "invoice.submit", invoice_id
        ):
            span.set_attribute("invoice_id", str(invoice_id))
            invoice = self._load_for_write(session, invoice_id, expected_row_version)
            from_status = invoice.status
            to_status = lifecycle.submit(from_status)
            self.invoice_repository.compare_and_swap(session, invoice, {"status": to_status, "submitted_at": self.now()})
            session.commit()

        return self._after_transition(session, invoice_id, "invoice.submitted", from_status, to_status, actor_id)

    def approve_invoice(
        self,
        session: Session,
        invoice_id: uuid.UUID,
        actor_id: str | None = None,
        expected_row_version: int | None = None,
    ) -> InvoiceRead:
        """Approve a pending invoice and consume its coupon, if any, in the same transaction."""
        with tracer.start_as_current_span("billing.approve_invoice") as span, write_transaction(
            session, "invoice.approve", invoice_id
        ):
            span.set_attribute("invoice_id", str(invoice_id))
            invoice = self._load_for_write(session, invoice_id, expected_row_version)
            from_status = invoice.status
            to_status = lifecycle.approve(from_status)
            now = self.now()
            self.invoice_repository.compare_and_swap(
                session,
                invoice,
                {"status": to_status, "approved_by": actor_id, "approved_at": now},
            )

            usage = None
            if invoice.applied_coupon_code:
                usage = self.coupons.commit_usage(
                    session,
                    invoice.applied_coupon_code,
                    invoice_id=invoice.id,
                    customer_id=invoice.customer_id,
                    discount_applied=invoice.discount_amount,
                    used_at=now,
                )
            session.commit()

        if usage is not None:
            observe_coupon_usage_committed()
            events.publish(
                {
                    "event_type": "coupon.usage_committed",
                    "payload": {
                        "coupon_code": invoice.applied_coupon_code,
                        "invoice_id": str(invoice.id),
                        "customer_id": invoice.customer_id,
                        "discount_applied": str(usage.discount_applied),
                    },
                }
            )
        return self._after_transition(session, invoice_id, "invoice.approved", from_status, to_status, actor_id)

    def reject_invoice(
        self,
        session: Session,
        invoice_id: uuid.UUID,
        reason: str,
        actor_id: str | None = None,
        expected_row_version: int | None = None,
    ) -> InvoiceRead:
        with tracer.start_as_current_span("billing.reject_invoice") as span, write_transaction(
            session, "invoice.reject", invoice_id
        ):
            span.set_attribute("invoice_id", str(invoice_id))
            invoice = self._load_for_write(session, invoice_id, expected_row_version)
            from_status = invoice.status
            to_status = lifecycle.reject(from_status)
            self.invoice_repository.compare_and_swap(
                session,
                invoice,
                {
                    "status": to_status,
                    "rejected_by": actor_id,
                    "rejected_at": self.now(),
                    "rejection_reason": reason,
                },
            )
            session.commit()

        return self._after_transition(
            session, invoice_id, "invoice.rejected", from_status, to_status, actor_id, reason=reason
        )

    def cancel_invoice(
        self,
        session: Session,
        invoice_id: uuid.UUID,
        reason: str | None = None,
        expected_row_version: int | None = None,
    ) -> InvoiceRead:
        with tracer.start_as_current_span("billing.cancel_invoice") as span, write_transaction(
            session, "invoice.cancel", invoice_id
        ):
            span.set_attribute("invoice_id", str(invoice_id))
            invoice = self._load_for_write(session, invoice_id, expected_row_version)
            from_status = invoice.status
            has_payments = invoice.paid_amount > 0 or self.invoice_repository.count_payments(session, invoice.id) > 0
            to_status = lifecycle.cancel(from_status, has_payments)
            self.invoice_repository.compare_and_swap(
                session,
                invoice,
                {"status": to_status, "cancelled_at": self.now(), "cancellation_reason": reason},
            )
            session.commit()

        return self._after_transition(session, invoice_id, "invoice.cancelled", from_status, to_status, None, reason=reason)

    def get_invoice(self, session: Session, invoice_id: uuid.UUID) -> InvoiceRead:
        return InvoiceRead.model_validate(self.invoice_repository.get(session, invoice_id, with_children=True))

    def list_invoices(
        self,
        session: Session,
        *,
        customer_id: str | None = None,
        status: str | None = None,
    ) -> list[InvoiceRead]:
        stmt: Select[tuple[Invoice]] = select(Invoice).options(
            selectinload(Invoice.lines), selectinload(Invoice.payments)
        )
        if customer_id is not None:
            stmt = stmt.where(Invoice.customer_id == customer_id)
        if status is not None:
            stmt = stmt.where(Invoice.status == status)
        rows = session.scalars(stmt.order_by(Invoice.created_at.desc(), Invoice.invoice_number.desc())).all()
        return [InvoiceRead.model_validate(row) for row in rows]

    def _load_for_write(self, session: Session, invoice_id: uuid.UUID, expected_row_version: int | None) -> Invoice:
        invoice = self.invoice_repository.get(session, invoice_id)
        if expected_row_version is not None and invoice.row_version != expected_row_version:
            raise ConcurrentModificationError("invoice", invoice_id)
        return invoice

    def _resolve_item(self, session: Session, index: int, item: LineItemCreate) -> LineItemSpec:
        if item.kind != "product":
            return LineItemSpec(
                kind=item.kind,
                name=item.name or "",
                quantity=item.quantity,
                unit_price=item.unit_price,
                includes_tax=True if item.includes_tax is None else item.includes_tax,
                reference_id=item.reference_id,
                description=item.description,
            )

        if item.reference_id is None:
            raise InvalidLineItemError(index, "product items require reference_id")
        product = self.catalog.resolve_product(session, item.reference_id)
        if product is None:
            raise InvalidLineItemError(index, f"product {item.reference_id} is not an active catalog product")
        return LineItemSpec(
            kind=item.kind,
            name=item.name or product.name,
            quantity=item.quantity,
            unit_price=item.unit_price if item.unit_price is not None else product.selling_price,
            includes_tax=product.includes_tax if item.includes_tax is None else item.includes_tax,
            reference_id=product.id,
            description=item.description if item.description is not None else product.description,
        )

    def _to_invoice(self, draft: InvoiceDraft, request: InvoiceBuildRequest, invoice_number: str, now: datetime) -> Invoice:
        settings = get_settings()
        issue_date = now.date()
        invoice = Invoice(
            invoice_number=invoice_number,
            customer_id=draft.customer_id,
            customer_details=request.customer_details,
            service_visit_id=request.service_visit_id,
            order_id=request.order_id,
            currency=settings.currency,
            status=draft.status,
            tax_rate=draft.tax_rate,
            subtotal=draft.subtotal,
            discount_amount=draft.discount_amount,
            tax_amount=draft.tax_amount,
            total_amount=draft.total_amount,
            paid_amount=draft.paid_amount,
            due_amount=draft.due_amount,
            applied_coupon_code=draft.coupon_code,
            notes=request.notes,
            terms=request.terms if request.terms is not None else settings.default_invoice_terms,
            issue_date=issue_date,
            due_date=issue_date + timedelta(days=settings.invoice_due_days),
            created_by=request.created_by,
            created_at=now,
            updated_at=now,
        )
        invoice.lines = [
            InvoiceLine(
                position=line.position,
                kind=line.kind,
                reference_id=line.reference_id,
                name=line.name,
                description=line.description,
                quantity=line.quantity,
                unit_price=line.unit_price,
                includes_tax=line.includes_tax,
                line_total=line.line_total,
                tax_amount=line.tax_amount,
            )
            for line in draft.lines
        ]
        return invoice

    def _after_transition(
        self,
        session: Session,
        invoice_id: uuid.UUID,
        event_type: str,
        from_status: str,
        to_status: str,
        actor_id: str | None,
        reason: str | None = None,
    ) -> InvoiceRead:
        observe_invoice_transition(from_status, to_status)
        logger.info(
            event_type,
            extra={"invoice_id": str(invoice_id), "from_status": from_status, "to_status": to_status, "reason": reason},
        )
        payload: dict[str, object] = {
            "invoice_id": str(invoice_id),
            "from_status": from_status,
            "to_status": to_status,
        }
        if reason is not None:
            payload["reason"] = reason
        events.publish({"event_type": event_type, "actor_id": actor_id, "payload": payload})
        return self.get_invoice(session, invoice_id)


billing_service = BillingService()
