from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from invoicing.business.payments.schemas import PaymentRead


InvoiceStatus = Literal["draft", "pending_approval", "approved", "partially_paid", "paid", "cancelled", "rejected"]
LineItemKind = Literal["product", "service"]
MAX_LINE_QUANTITY = 1_000_000


class LineItemCreate(BaseModel):
    """A billable unit as submitted by a caller.

    Derived amounts (line total, tax) are not accepted; they are always
    recomputed from quantity, unit price and the tax flag.
    """

    model_config = ConfigDict(extra="ignore")

    kind: LineItemKind
    reference_id: UUID | None = None
    name: str | None = None
    description: str | None = None
    quantity: int = Field(le=MAX_LINE_QUANTITY)
    unit_price: Decimal | None = Field(default=None, max_digits=18)
    includes_tax: bool | None = None


class InvoiceBuildRequest(BaseModel):
    customer_id: str = Field(min_length=1, max_length=128)
    customer_details: dict[str, Any] | None = None
    service_visit_id: str | None = Field(default=None, max_length=64)
    order_id: str | None = Field(default=None, max_length=64)
    items: list[LineItemCreate] = Field(default_factory=list)
    coupon_code: str | None = Field(default=None, max_length=64)
    notes: str | None = None
    terms: str | None = None
    created_by: str | None = None

    @field_validator("coupon_code")
    @classmethod
    def normalize_coupon_code(cls, value: str | None) -> str | None:
        if value is None:
            return None
        code = value.strip().upper()
        return code or None


class TransitionRequest(BaseModel):
    actor_id: str | None = None
    row_version: int | None = None


class RejectRequest(BaseModel):
    reason: str = Field(min_length=1)
    actor_id: str | None = None
    row_version: int | None = None


class CancelRequest(BaseModel):
    reason: str | None = None
    row_version: int | None = None


class InvoiceLineRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    position: int
    kind: LineItemKind
    reference_id: UUID | None
    name: str
    description: str | None
    quantity: int
    unit_price: Decimal
    includes_tax: bool
    line_total: Decimal
    tax_amount: Decimal


class InvoiceRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    invoice_number: str
    customer_id: str
    customer_details: dict[str, Any] | None
    service_visit_id: str | None
    order_id: str | None
    currency: str
    status: InvoiceStatus
    tax_rate: Decimal
    subtotal: Decimal
    discount_amount: Decimal
    tax_amount: Decimal
    total_amount: Decimal
    paid_amount: Decimal
    due_amount: Decimal
    applied_coupon_code: str | None
    notes: str | None
    terms: str | None
    issue_date: date
    due_date: date | None
    created_by: str | None
    submitted_at: datetime | None
    approved_by: str | None
    approved_at: datetime | None
    rejected_by: str | None
    rejected_at: datetime | None
    rejection_reason: str | None
    cancelled_at: datetime | None
    cancellation_reason: str | None
    row_version: int
    created_at: datetime
    updated_at: datetime
    lines: list[InvoiceLineRead] = Field(default_factory=list)
    payments: list[PaymentRead] = Field(default_factory=list)
