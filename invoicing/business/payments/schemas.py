from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator


PaymentMode = Literal["cash", "card", "bank_transfer", "digital_wallet", "cheque"]

# Labels used by point-of-sale front ends, folded onto the canonical modes.
PAYMENT_MODE_ALIASES: dict[str, str] = {
    "upi": "digital_wallet",
    "wallet": "digital_wallet",
    "net_banking": "bank_transfer",
    "netbanking": "bank_transfer",
    "neft": "bank_transfer",
    "credit_card": "card",
    "debit_card": "card",
}


class PaymentCreate(BaseModel):
    amount: Decimal = Field(max_digits=18)
    mode: PaymentMode
    external_reference: str | None = Field(default=None, max_length=128)
    notes: str | None = None
    recorded_by: str | None = None
    row_version: int | None = None

    @field_validator("mode", mode="before")
    @classmethod
    def normalize_mode(cls, value: object) -> object:
        if isinstance(value, str):
            key = value.strip().lower().replace(" ", "_").replace("-", "_")
            return PAYMENT_MODE_ALIASES.get(key, key)
        return value


class PaymentRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    invoice_id: UUID
    sequence: int
    amount: Decimal
    mode: PaymentMode
    external_reference: str | None
    notes: str | None
    recorded_by: str | None
    recorded_at: datetime
