from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

DiscountKind = Literal["percentage", "fixed"]
ApplicableOn = Literal["all", "products", "services"]


class CouponCreate(BaseModel):
    code: str = Field(min_length=1, max_length=64)
    description: str | None = None
    discount_kind: DiscountKind
    discount_value: Decimal = Field(gt=0, decimal_places=2)
    valid_from: datetime
    valid_until: datetime
    max_total_uses: int = Field(default=0, ge=0)
    max_uses_per_customer: int = Field(default=1, ge=0)
    min_purchase_amount: Decimal = Field(default=Decimal("0"), ge=0, decimal_places=2)
    max_discount_amount: Decimal | None = Field(default=None, gt=0, decimal_places=2)
    applicable_on: ApplicableOn = "all"
    is_active: bool = True
    created_by: str | None = None

    @field_validator("code")
    @classmethod
    def normalize_code(cls, value: str) -> str:
        code = value.strip().upper()
        if not code:
            raise ValueError("code cannot be blank")
        return code

    @model_validator(mode="after")
    def check_policy(self) -> CouponCreate:
        if self.valid_from > self.valid_until:
            raise ValueError("valid_from must not be after valid_until")
        if self.discount_kind == "percentage" and self.discount_value > Decimal("100"):
            raise ValueError("percentage discount cannot exceed 100")
        if self.discount_kind == "fixed" and self.max_discount_amount is not None:
            raise ValueError("max_discount_amount applies to percentage coupons only")
        return self


class CouponRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    code: str
    description: str | None
    discount_kind: DiscountKind
    discount_value: Decimal
    valid_from: datetime
    valid_until: datetime
    max_total_uses: int
    max_uses_per_customer: int
    min_purchase_amount: Decimal
    max_discount_amount: Decimal | None
    applicable_on: ApplicableOn
    is_active: bool
    used_count: int
    row_version: int
    created_by: str | None
    created_at: datetime
    updated_at: datetime


class CouponUsageRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    coupon_id: uuid.UUID
    invoice_id: uuid.UUID
    customer_id: str
    used_at: datetime
    discount_applied: Decimal


class CouponValidationRequest(BaseModel):
    code: str = Field(min_length=1, max_length=64)
    customer_id: str = Field(min_length=1, max_length=128)
    purchase_amount: Decimal = Field(ge=0, max_digits=18, decimal_places=2)


class CouponValidationRead(BaseModel):
    code: str
    valid: bool
    discount_amount: Decimal
    reason: str | None = None
