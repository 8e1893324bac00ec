from __future__ import annotations

import logging
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from sqlalchemy import and_, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from invoicing.business.billing.models import Invoice, InvoiceSequence, utcnow
from invoicing.business.errors import BillingError, ConcurrentModificationError, InvoiceNotFoundError
from invoicing.business.payments.models import InvoicePayment
from invoicing.metrics import observe_concurrency_conflict

logger = logging.getLogger("invoicing.billing")


class InvoiceRepository:
    def get(self, session: Session, invoice_id: uuid.UUID, *, with_children: bool = False) -> Invoice:
        stmt = select(Invoice).where(Invoice.id == invoice_id).execution_options(populate_existing=True)
        if with_children:
            stmt = stmt.options(selectinload(Invoice.lines), selectinload(Invoice.payments))
        invoice = session.scalar(stmt)
        if invoice is None:
            raise InvoiceNotFoundError(invoice_id)
        return invoice

    def count_payments(self, session: Session, invoice_id: uuid.UUID) -> int:
        return int(session.scalar(select(func.count(InvoicePayment.id)).where(InvoicePayment.invoice_id == invoice_id)) or 0)

    def compare_and_swap(self, session: Session, invoice: Invoice, changes: dict[str, Any]) -> None:
        """Apply ``changes`` only if the row still carries the version that was read."""
        result = session.execute(
            update(Invoice)
            .where(and_(Invoice.id == invoice.id, Invoice.row_version == invoice.row_version))
            .values(**changes, updated_at=utcnow(), row_version=Invoice.row_version + 1)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise ConcurrentModificationError("invoice", invoice.id)


class InvoiceSequenceRepository:
    def next_number(self, session: Session, prefix: str, year: int) -> str:
        """Allocate the next number in the ``<prefix>/<year>`` series.

        The increment happens in the database so two writers never observe the
        same value. Numbers consumed by a rolled back transaction are released
        along with it.
        """
        series = f"{prefix}/{year}"
        result = session.execute(
            update(InvoiceSequence)
            .where(InvoiceSequence.name == series)
            .values(last_value=InvoiceSequence.last_value + 1)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 1:
            value = session.scalar(select(InvoiceSequence.last_value).where(InvoiceSequence.name == series))
        else:
            session.add(InvoiceSequence(name=series, last_value=1))
            try:
                session.flush()
            except IntegrityError:
                raise ConcurrentModificationError("invoice_sequence", series)
            value = 1
        return f"{series}/{int(value):04d}"


@contextmanager
def write_transaction(session: Session, operation: str, invoice_id: uuid.UUID | None = None) -> Iterator[None]:
    """Roll the session back on any domain failure and re-raise it unchanged."""
    try:
        yield
    except ConcurrentModificationError as exc:
        session.rollback()
        observe_concurrency_conflict(operation)
        logger.warning(
            f"{operation}.conflict",
            extra={"invoice_id": str(invoice_id) if invoice_id else None, "error": exc.code},
        )
        raise
    except BillingError as exc:
        session.rollback()
        logger.warning(
            f"{operation}.rejected",
            extra={"invoice_id": str(invoice_id) if invoice_id else None, "error": exc.code, "reason": exc.message},
        )
        raise
    except Exception:
        session.rollback()
        raise
