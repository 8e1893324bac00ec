from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Sequence

from invoicing.business.billing.lifecycle import DRAFT
from invoicing.business.coupons.validator import COUPON_NOT_FOUND, CouponValidator
from invoicing.business.errors import EmptyInvoiceError, InvalidCouponError, InvalidLineItemError
from invoicing.business.money import (
    ZERO,
    extract_inclusive_tax,
    is_minor_unit_safe,
    is_storable_amount,
    round_money,
    to_decimal,
)

LINE_KINDS = ("product", "service")
_APPLICABLE_KIND = {"products": "product", "services": "service"}


@dataclass(frozen=True, slots=True)
class LineItemSpec:
    """A line item with catalog references already resolved."""

    kind: str
    name: str
    quantity: int
    unit_price: Decimal | None
    includes_tax: bool = True
    reference_id: uuid.UUID | None = None
    description: str | None = None


@dataclass(frozen=True, slots=True)
class DraftLine:
    position: int
    kind: str
    reference_id: uuid.UUID | None
    name: str
    description: str | None
    quantity: int
    unit_price: Decimal
    includes_tax: bool
    line_total: Decimal
    tax_amount: Decimal


@dataclass(frozen=True, slots=True)
class InvoiceDraft:
    customer_id: str
    lines: tuple[DraftLine, ...]
    tax_rate: Decimal
    subtotal: Decimal
    discount_amount: Decimal
    tax_amount: Decimal
    total_amount: Decimal
    paid_amount: Decimal
    due_amount: Decimal
    status: str = DRAFT
    coupon_code: str | None = None


def _line_error(item: LineItemSpec) -> str | None:
    if item.kind not in LINE_KINDS:
        return "kind must be product or service"
    if item.kind == "product" and item.reference_id is None:
        return "product items require reference_id"
    if not item.name or not item.name.strip():
        return "name is required"
    if isinstance(item.quantity, bool) or not isinstance(item.quantity, int) or item.quantity <= 0:
        return "quantity must be a positive integer"
    if item.unit_price is None:
        return "unit_price is required"
    if not isinstance(item.unit_price, (Decimal, int)) or isinstance(item.unit_price, bool):
        return "unit_price must be a decimal amount"
    price = to_decimal(item.unit_price)
    if not price.is_finite() or price <= ZERO:
        return "unit_price must be greater than zero"
    if not is_storable_amount(price):
        return "unit_price exceeds the maximum amount"
    if not is_minor_unit_safe(price):
        return "unit_price must have at most two decimal places"
    return None


@dataclass(slots=True)
class InvoiceBuilder:
    validator: CouponValidator = field(default_factory=CouponValidator)

    def build(
        self,
        items: Sequence[LineItemSpec],
        coupon: Any | None,
        customer_id: str,
        now: datetime,
        tax_rate_percent: Decimal = Decimal("18"),
        coupon_code: str | None = None,
    ) -> InvoiceDraft:
        """Compute an invoice snapshot from line items and an optional coupon.

        The result depends only on the arguments. Line taxes are rounded
        individually while the invoice tax is the rounded sum of the unrounded
        line taxes, so the two may differ by a cent.
        """
        if not items:
            raise EmptyInvoiceError()

        rate = to_decimal(tax_rate_percent)
        lines: list[DraftLine] = []
        exact_tax = ZERO
        exact_subtotal = ZERO
        for index, item in enumerate(items):
            reason = _line_error(item)
            if reason is not None:
                raise InvalidLineItemError(index, reason)

            unit_price = to_decimal(item.unit_price)
            line_total = Decimal(item.quantity) * unit_price
            if not is_storable_amount(exact_subtotal + line_total):
                raise InvalidLineItemError(index, "invoice total exceeds the maximum amount")
            exact_subtotal += line_total
            line_tax = extract_inclusive_tax(line_total, rate) if item.includes_tax else ZERO
            exact_tax += line_tax
            lines.append(
                DraftLine(
                    position=index,
                    kind=item.kind,
                    reference_id=item.reference_id,
                    name=item.name.strip(),
                    description=item.description,
                    quantity=item.quantity,
                    unit_price=unit_price,
                    includes_tax=item.includes_tax,
                    line_total=round_money(line_total),
                    tax_amount=round_money(line_tax),
                )
            )

        subtotal = sum((line.line_total for line in lines), ZERO)

        discount = ZERO
        applied_code: str | None = None
        requested_code = coupon_code or (coupon.code if coupon is not None else None)
        if requested_code:
            if coupon is None:
                raise InvalidCouponError(COUPON_NOT_FOUND, requested_code.strip().upper())
            eligible = self._eligible_amount(coupon, lines)
            result = self.validator.validate(coupon, customer_id, subtotal, now, eligible_amount=eligible)
            if not result.valid:
                raise InvalidCouponError(result.reason or "unknown", coupon.code)
            discount = round_money(result.discount_amount)
            applied_code = coupon.code

        total = subtotal - discount
        return InvoiceDraft(
            customer_id=customer_id,
            lines=tuple(lines),
            tax_rate=rate,
            subtotal=subtotal,
            discount_amount=discount,
            tax_amount=round_money(exact_tax),
            total_amount=total,
            paid_amount=ZERO,
            due_amount=total,
            status=DRAFT,
            coupon_code=applied_code,
        )

    def _eligible_amount(self, coupon: Any, lines: list[DraftLine]) -> Decimal:
        kind = _APPLICABLE_KIND.get(coupon.applicable_on)
        if kind is None:
            return sum((line.line_total for line in lines), ZERO)
        return sum((line.line_total for line in lines if line.kind == kind), ZERO)


invoice_builder = InvoiceBuilder()
