# Router and service are imported from their modules directly; both depend on
# invoicing.business.billing, which itself imports the schemas below.
from invoicing.business.payments.models import InvoicePayment
from invoicing.business.payments.schemas import PaymentCreate, PaymentMode, PaymentRead
from invoicing.business.payments.ledger import LedgerState, PaymentEntry, PaymentOutcome, derive_payment_status, record_payment

__all__ = [
    "InvoicePayment",
    "PaymentCreate",
    "PaymentMode",
    "PaymentRead",
    "LedgerState",
    "PaymentEntry",
    "PaymentOutcome",
    "derive_payment_status",
    "record_payment",
]
