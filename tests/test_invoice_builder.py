from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from types import SimpleNamespace
from typing import Any

import pytest

from invoicing.business.billing.builder import InvoiceBuilder, LineItemSpec
from invoicing.business.errors import EmptyInvoiceError, InvalidCouponError, InvalidLineItemError

NOW = datetime(2026, 3, 15, 12, 0, tzinfo=timezone.utc)
builder = InvoiceBuilder()


def _service(unit_price: str = "500", quantity: int = 2, includes_tax: bool = True, name: str = "Haircut") -> LineItemSpec:
    return LineItemSpec(kind="service", name=name, quantity=quantity, unit_price=Decimal(unit_price), includes_tax=includes_tax)


def _product(unit_price: str = "250", quantity: int = 1) -> LineItemSpec:
    return LineItemSpec(
        kind="product",
        name="Shampoo",
        quantity=quantity,
        unit_price=Decimal(unit_price),
        reference_id=uuid.uuid4(),
    )


def _coupon(**overrides: Any) -> SimpleNamespace:
    values: dict[str, Any] = {
        "code": "FLAT100",
        "is_active": True,
        "valid_from": NOW - timedelta(days=1),
        "valid_until": NOW + timedelta(days=1),
        "max_total_uses": 0,
        "used_count": 0,
        "max_uses_per_customer": 1,
        "usages": [],
        "min_purchase_amount": Decimal("0"),
        "discount_kind": "fixed",
        "discount_value": Decimal("100"),
        "max_discount_amount": None,
        "applicable_on": "all",
    }
    values.update(overrides)
    return SimpleNamespace(**values)


def test_inclusive_tax_scenario_with_fixed_coupon() -> None:
    draft = builder.build([_service()], _coupon(), "cust-1", NOW, tax_rate_percent=Decimal("18"))

    line = draft.lines[0]
    assert line.line_total == Decimal("1000.00")
    assert line.tax_amount == Decimal("152.54")
    assert draft.subtotal == Decimal("1000.00")
    assert draft.tax_amount == Decimal("152.54")
    assert draft.discount_amount == Decimal("100.00")
    assert draft.total_amount == Decimal("900.00")
    assert draft.paid_amount == Decimal("0")
    assert draft.due_amount == Decimal("900.00")
    assert draft.status == "draft"
    assert draft.coupon_code == "FLAT100"


def test_totals_are_consistent_and_order_is_preserved() -> None:
    items = [_service(name="Cut"), _product("199.99", 3), _service("75.50", 1, includes_tax=False, name="Wash")]
    draft = builder.build(items, None, "cust-1", NOW)

    assert [line.position for line in draft.lines] == [0, 1, 2]
    assert [line.name for line in draft.lines] == ["Cut", "Shampoo", "Wash"]
    assert draft.subtotal == sum(line.line_total for line in draft.lines)
    assert draft.total_amount == draft.subtotal - draft.discount_amount
    assert draft.lines[2].tax_amount == Decimal("0")


def test_invoice_tax_is_rounded_sum_of_unrounded_line_taxes() -> None:
    items = [_service("0.10", 1, name="A"), _service("0.10", 1, name="B")]
    draft = builder.build(items, None, "cust-1", NOW)
    # 0.10 * 18 / 118 = 0.01525...
    assert [line.tax_amount for line in draft.lines] == [Decimal("0.02"), Decimal("0.02")]
    assert draft.tax_amount == Decimal("0.03")


def test_building_twice_is_deterministic() -> None:
    items = [_service(), _product()]
    first = builder.build(items, _coupon(), "cust-1", NOW)
    second = builder.build(items, _coupon(), "cust-1", NOW)
    assert first == second


def test_empty_invoice_rejected() -> None:
    with pytest.raises(EmptyInvoiceError):
        builder.build([], None, "cust-1", NOW)


@pytest.mark.parametrize(
    ("item", "fragment"),
    [
        (LineItemSpec(kind="service", name="X", quantity=0, unit_price=Decimal("10")), "quantity"),
        (LineItemSpec(kind="service", name="X", quantity=-1, unit_price=Decimal("10")), "quantity"),
        (LineItemSpec(kind="service", name="X", quantity=1, unit_price=Decimal("0")), "greater than zero"),
        (LineItemSpec(kind="service", name="X", quantity=1, unit_price=Decimal("-3")), "greater than zero"),
        (LineItemSpec(kind="service", name="X", quantity=1, unit_price=Decimal("9.999")), "two decimal places"),
        (LineItemSpec(kind="service", name="X", quantity=1, unit_price=None), "unit_price is required"),
        (LineItemSpec(kind="service", name="  ", quantity=1, unit_price=Decimal("10")), "name"),
        (LineItemSpec(kind="product", name="X", quantity=1, unit_price=Decimal("10")), "reference_id"),
        (LineItemSpec(kind="bundle", name="X", quantity=1, unit_price=Decimal("10")), "kind"),
    ],
)
def test_invalid_line_items_report_index(item: LineItemSpec, fragment: str) -> None:
    with pytest.raises(InvalidLineItemError) as exc_info:
        builder.build([_service(), item], None, "cust-1", NOW)
    assert exc_info.value.index == 1
    assert fragment in exc_info.value.reason


def test_unit_price_beyond_storable_amount_is_rejected() -> None:
    with pytest.raises(InvalidLineItemError) as exc_info:
        builder.build([_service(unit_price="1E+30")], None, "cust-1", NOW)
    assert exc_info.value.index == 0
    assert "exceeds the maximum amount" in exc_info.value.reason


def test_invoice_total_beyond_storable_amount_is_rejected() -> None:
    largest = "9999999999999999.99"
    with pytest.raises(InvalidLineItemError) as exc_info:
        builder.build([_service(unit_price=largest, quantity=1), _service(unit_price="1", quantity=1)], None, "cust-1", NOW)
    assert exc_info.value.index == 1
    assert "invoice total exceeds" in exc_info.value.reason

    with pytest.raises(InvalidLineItemError) as exc_info:
        builder.build([_service(unit_price=largest, quantity=2)], None, "cust-1", NOW)
    assert exc_info.value.index == 0


def test_unknown_coupon_code() -> None:
    with pytest.raises(InvalidCouponError) as exc_info:
        builder.build([_service()], None, "cust-1", NOW, coupon_code="nope")
    assert exc_info.value.reason == "CouponNotFound"
    assert exc_info.value.coupon_code == "NOPE"


def test_rejected_coupon_surfaces_reason() -> None:
    with pytest.raises(InvalidCouponError) as exc_info:
        builder.build([_service()], _coupon(min_purchase_amount=Decimal("5000")), "cust-1", NOW)
    assert exc_info.value.reason == "BelowMinimumPurchase"


def test_discount_never_exceeds_subtotal() -> None:
    draft = builder.build([_service("40", 1)], _coupon(discount_value=Decimal("100")), "cust-1", NOW)
    assert draft.discount_amount == Decimal("40.00")
    assert draft.total_amount == Decimal("0.00")
    assert draft.due_amount == Decimal("0.00")


def test_product_only_coupon_discounts_product_lines() -> None:
    coupon = _coupon(discount_kind="percentage", discount_value=Decimal("10"), applicable_on="products")
    draft = builder.build([_service("500", 1), _product("250", 2)], coupon, "cust-1", NOW)
    assert draft.subtotal == Decimal("1000.00")
    assert draft.discount_amount == Decimal("50.00")

    with pytest.raises(InvalidCouponError) as exc_info:
        builder.build([_service("500", 1)], coupon, "cust-1", NOW)
    assert exc_info.value.reason == "CouponNotApplicable"
