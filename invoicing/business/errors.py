from __future__ import annotations

from decimal import Decimal


class BillingError(Exception):
    """Base class for every failure the invoicing engine reports to its callers."""

    code = "BillingError"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.code
        super().__init__(self.message)

    def to_dict(self) -> dict[str, str]:
        return {"code": self.code, "message": self.message}


class BillingValidationError(BillingError):
    """Caller or input fault. Never retried internally."""


class EmptyInvoiceError(BillingValidationError):
    code = "EmptyInvoice"

    def __init__(self) -> None:
        super().__init__("invoice requires at least one line item")


class InvalidLineItemError(BillingValidationError):
    code = "InvalidLineItem"

    def __init__(self, index: int, reason: str) -> None:
        self.index = index
        self.reason = reason
        super().__init__(f"line item {index}: {reason}")


class InvalidPaymentAmountError(BillingValidationError):
    code = "InvalidPaymentAmount"

    def __init__(self, amount: Decimal) -> None:
        self.amount = amount
        super().__init__(f"payment amount must be a positive currency amount, got {amount}")


class OverpaymentError(BillingValidationError):
    code = "Overpayment"

    def __init__(self, amount: Decimal, due_amount: Decimal) -> None:
        self.amount = amount
        self.due_amount = due_amount
        super().__init__(f"payment of {amount} exceeds amount due {due_amount}")


class InvalidCouponError(BillingValidationError):
    code = "InvalidCoupon"

    def __init__(self, reason: str, coupon_code: str | None = None) -> None:
        self.reason = reason
        self.coupon_code = coupon_code
        label = f"coupon {coupon_code}" if coupon_code else "coupon"
        super().__init__(f"{label} rejected: {reason}")

    def to_dict(self) -> dict[str, str]:
        return {"code": self.code, "message": self.message, "reason": self.reason}


class InvalidTransitionError(BillingError):
    """An invoice state transition was attempted from a state that does not allow it."""

    def __init__(self, current_status: str, message: str) -> None:
        self.current_status = current_status
        super().__init__(message)


class AlreadySubmittedError(InvalidTransitionError):
    code = "AlreadySubmitted"

    def __init__(self, current_status: str) -> None:
        super().__init__(current_status, f"invoice must be draft to submit, is {current_status}")


class NotPendingError(InvalidTransitionError):
    code = "NotPending"

    def __init__(self, current_status: str) -> None:
        super().__init__(current_status, f"invoice must be pending_approval, is {current_status}")


class CannotCancelSettledInvoiceError(InvalidTransitionError):
    code = "CannotCancelSettledInvoice"

    def __init__(self, current_status: str) -> None:
        super().__init__(current_status, "invoice has recorded payments and cannot be cancelled")


class InvoiceNotCancellableError(InvalidTransitionError):
    code = "InvoiceNotCancellable"

    def __init__(self, current_status: str) -> None:
        super().__init__(current_status, f"invoice in status {current_status} cannot be cancelled")


class InvoiceNotPayableError(InvalidTransitionError):
    code = "InvoiceNotPayable"

    def __init__(self, current_status: str) -> None:
        super().__init__(current_status, f"invoice in status {current_status} does not accept payments")


class ConcurrentModificationError(BillingError):
    """An optimistic compare-and-swap lost to another writer. The caller may re-read and retry."""

    code = "ConcurrentModification"

    def __init__(self, resource: str, resource_id: object) -> None:
        self.resource = resource
        self.resource_id = resource_id
        super().__init__(f"{resource} {resource_id} was modified concurrently")


class NotFoundError(BillingError):
    def __init__(self, resource: str, key: object) -> None:
        self.resource = resource
        self.key = key
        super().__init__(f"{resource} {key} not found")


class InvoiceNotFoundError(NotFoundError):
    code = "InvoiceNotFound"

    def __init__(self, invoice_id: object) -> None:
        super().__init__("invoice", invoice_id)


class ProductNotFoundError(NotFoundError):
    code = "ProductNotFound"

    def __init__(self, product_id: object) -> None:
        super().__init__("product", product_id)


class DuplicateCouponError(BillingError):
    code = "DuplicateCoupon"

    def __init__(self, coupon_code: str) -> None:
        self.coupon_code = coupon_code
        super().__init__(f"coupon {coupon_code} already exists")


class DuplicateProductError(BillingError):
    code = "DuplicateProduct"

    def __init__(self, sku: str) -> None:
        self.sku = sku
        super().__init__(f"product with sku {sku} already exists")
