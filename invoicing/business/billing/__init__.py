from invoicing.business.billing.api import router
from invoicing.business.billing.builder import DraftLine, InvoiceBuilder, InvoiceDraft, LineItemSpec, invoice_builder
from invoicing.business.billing.models import Invoice, InvoiceLine, InvoiceSequence
from invoicing.business.billing.schemas import (
    CancelRequest,
    InvoiceBuildRequest,
    InvoiceLineRead,
    InvoiceRead,
    LineItemCreate,
    RejectRequest,
    TransitionRequest,
)
from invoicing.business.billing.service import BillingService, billing_service

__all__ = [
    "router",
    "Invoice",
    "InvoiceLine",
    "InvoiceSequence",
    "InvoiceBuilder",
    "InvoiceDraft",
    "DraftLine",
    "LineItemSpec",
    "invoice_builder",
    "LineItemCreate",
    "InvoiceBuildRequest",
    "InvoiceRead",
    "InvoiceLineRead",
    "TransitionRequest",
    "RejectRequest",
    "CancelRequest",
    "BillingService",
    "billing_service",
]
