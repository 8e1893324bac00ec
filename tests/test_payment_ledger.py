from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from invoicing.business.errors import InvalidPaymentAmountError, OverpaymentError
from invoicing.business.payments.ledger import LedgerState, derive_payment_status, record_payment

NOW = datetime(2026, 3, 15, 12, 0, tzinfo=timezone.utc)


def _state(total: str = "900", paid: str = "0") -> LedgerState:
    total_amount = Decimal(total)
    paid_amount = Decimal(paid)
    return LedgerState(
        status=derive_payment_status(total_amount, paid_amount),
        total_amount=total_amount,
        paid_amount=paid_amount,
        due_amount=total_amount - paid_amount,
    )


def test_partial_then_full_payment() -> None:
    first = record_payment(_state(), Decimal("400"), "cash", None, NOW)
    assert first.state.paid_amount == Decimal("400")
    assert first.state.due_amount == Decimal("500")
    assert first.state.status == "partially_paid"
    assert len(first.state.payments) == 1

    second = record_payment(first.state, Decimal("500"), "card", "TXN-1", NOW)
    assert second.state.paid_amount == Decimal("900")
    assert second.state.due_amount == Decimal("0")
    assert second.state.status == "paid"
    assert [payment.mode for payment in second.state.payments] == ["cash", "card"]
    assert second.payment.external_reference == "TXN-1"


def test_recording_does_not_mutate_input_state() -> None:
    state = _state()
    record_payment(state, Decimal("100"), "cash", None, NOW)
    assert state.paid_amount == Decimal("0")
    assert state.payments == ()


def test_overpayment_is_rejected() -> None:
    with pytest.raises(OverpaymentError) as exc_info:
        record_payment(_state(), Decimal("901"), "cash", None, NOW)
    assert exc_info.value.due_amount == Decimal("900")


@pytest.mark.parametrize("amount", [Decimal("0"), Decimal("-5"), Decimal("10.001"), Decimal("NaN"), Decimal("1E+30"), Decimal("1E-30")])
def test_invalid_amounts(amount: Decimal) -> None:
    with pytest.raises(InvalidPaymentAmountError):
        record_payment(_state(), amount, "cash", None, NOW)


def test_derive_payment_status() -> None:
    assert derive_payment_status(Decimal("900"), Decimal("0")) == "approved"
    assert derive_payment_status(Decimal("900"), Decimal("0.01")) == "partially_paid"
    assert derive_payment_status(Decimal("900"), Decimal("900")) == "paid"
