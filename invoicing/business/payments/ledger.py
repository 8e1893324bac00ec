"""Pure payment bookkeeping for a single invoice."""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from decimal import Decimal

from invoicing.business.billing.lifecycle import APPROVED, PAID, PARTIALLY_PAID
from invoicing.business.errors import InvalidPaymentAmountError, OverpaymentError
from invoicing.business.money import ZERO, is_minor_unit_safe, is_storable_amount, to_decimal


@dataclass(frozen=True, slots=True)
class PaymentEntry:
    amount: Decimal
    mode: str
    external_reference: str | None
    recorded_at: datetime


@dataclass(frozen=True, slots=True)
class LedgerState:
    status: str
    total_amount: Decimal
    paid_amount: Decimal
    due_amount: Decimal
    payments: tuple[PaymentEntry, ...] = ()


@dataclass(frozen=True, slots=True)
class PaymentOutcome:
    state: LedgerState
    payment: PaymentEntry


def derive_payment_status(total_amount: Decimal, paid_amount: Decimal) -> str:
    if paid_amount <= ZERO:
        return APPROVED
    if max(ZERO, total_amount - paid_amount) == ZERO:
        return PAID
    return PARTIALLY_PAID


def record_payment(
    state: LedgerState,
    amount: Decimal,
    mode: str,
    reference: str | None,
    now: datetime,
) -> PaymentOutcome:
    value = to_decimal(amount)
    if not is_storable_amount(value) or value <= ZERO or not is_minor_unit_safe(value):
        raise InvalidPaymentAmountError(value)
    if value > state.due_amount:
        raise OverpaymentError(value, state.due_amount)

    entry = PaymentEntry(amount=value, mode=mode, external_reference=reference, recorded_at=now)
    payments = state.payments + (entry,)
    paid = sum((payment.amount for payment in payments), ZERO)
    new_state = replace(
        state,
        payments=payments,
        paid_amount=paid,
        due_amount=max(ZERO, state.total_amount - paid),
        status=derive_payment_status(state.total_amount, paid),
    )
    return PaymentOutcome(state=new_state, payment=entry)
