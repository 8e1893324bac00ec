"""Invoice state transition rules.

Each function takes the current status and returns the next one, or raises the
matching ``InvalidTransitionError``. Persistence and compare-and-swap live in
``invoicing.business.billing.service``.
"""

from __future__ import annotations

from invoicing.business.errors import (
    AlreadySubmittedError,
    CannotCancelSettledInvoiceError,
    InvoiceNotCancellableError,
    InvoiceNotPayableError,
    NotPendingError,
)

DRAFT = "draft"
PENDING_APPROVAL = "pending_approval"
APPROVED = "approved"
PARTIALLY_PAID = "partially_paid"
PAID = "paid"
CANCELLED = "cancelled"
REJECTED = "rejected"

CANCELLABLE_STATUSES = frozenset({DRAFT, PENDING_APPROVAL, APPROVED})
SETTLEMENT_STATUSES = frozenset({PARTIALLY_PAID, PAID})
PAYABLE_STATUSES = frozenset({APPROVED, PARTIALLY_PAID})


def submit(status: str) -> str:
    if status != DRAFT:
        raise AlreadySubmittedError(status)
    return PENDING_APPROVAL


def approve(status: str) -> str:
    if status != PENDING_APPROVAL:
        raise NotPendingError(status)
    return APPROVED


def reject(status: str) -> str:
    if status != PENDING_APPROVAL:
        raise NotPendingError(status)
    return REJECTED


def cancel(status: str, has_payments: bool) -> str:
    if has_payments or status in SETTLEMENT_STATUSES:
        raise CannotCancelSettledInvoiceError(status)
    if status not in CANCELLABLE_STATUSES:
        raise InvoiceNotCancellableError(status)
    return CANCELLED


def ensure_payable(status: str) -> None:
    if status not in PAYABLE_STATUSES:
        raise InvoiceNotPayableError(status)
