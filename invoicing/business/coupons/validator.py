"""Side-effect free coupon eligibility checks.

The validator reads a coupon (ORM row or any object exposing the same
attributes) and decides whether it can be applied to a purchase. It never
touches usage history; consuming a coupon is ``CouponService.commit_usage``.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any

from invoicing.business.money import ZERO, apply_fixed_discount, apply_percentage_discount, to_decimal

COUPON_INACTIVE = "CouponInactive"
COUPON_NOT_YET_VALID = "CouponNotYetValid"
COUPON_EXPIRED = "CouponExpired"
GLOBAL_LIMIT_REACHED = "GlobalLimitReached"
PER_CUSTOMER_LIMIT_REACHED = "PerCustomerLimitReached"
BELOW_MINIMUM_PURCHASE = "BelowMinimumPurchase"
COUPON_NOT_APPLICABLE = "CouponNotApplicable"
COUPON_NOT_FOUND = "CouponNotFound"


@dataclass(frozen=True, slots=True)
class CouponValidation:
    valid: bool
    discount_amount: Decimal = ZERO
    reason: str | None = None


def as_utc(value: datetime) -> datetime:
    # sqlite hands back naive datetimes for timezone-aware columns
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def global_limit_reached(coupon: Any) -> bool:
    return coupon.max_total_uses > 0 and coupon.used_count >= coupon.max_total_uses


def customer_usage_count(coupon: Any, customer_id: str) -> int:
    return sum(1 for usage in coupon.usages if usage.customer_id == customer_id)


def compute_discount(coupon: Any, amount: Decimal) -> Decimal:
    if coupon.discount_kind == "percentage":
        return apply_percentage_discount(amount, coupon.discount_value, coupon.max_discount_amount)
    return apply_fixed_discount(amount, coupon.discount_value)


@dataclass(slots=True)
class CouponValidator:
    def validate(
        self,
        coupon: Any,
        customer_id: str,
        purchase_amount: Decimal,
        now: datetime,
        eligible_amount: Decimal | None = None,
    ) -> CouponValidation:
        """Run the eligibility checks in order, stopping at the first failure.

        ``eligible_amount`` is the part of the purchase the coupon may discount
        (items matching ``applicable_on``). It defaults to ``purchase_amount``.
        """
        purchase = to_decimal(purchase_amount)
        base = purchase if eligible_amount is None else to_decimal(eligible_amount)
        instant = as_utc(now)

        if not coupon.is_active:
            return CouponValidation(valid=False, reason=COUPON_INACTIVE)
        if instant < as_utc(coupon.valid_from):
            return CouponValidation(valid=False, reason=COUPON_NOT_YET_VALID)
        if instant > as_utc(coupon.valid_until):
            return CouponValidation(valid=False, reason=COUPON_EXPIRED)
        if global_limit_reached(coupon):
            return CouponValidation(valid=False, reason=GLOBAL_LIMIT_REACHED)
        if coupon.max_uses_per_customer > 0 and customer_usage_count(coupon, customer_id) >= coupon.max_uses_per_customer:
            return CouponValidation(valid=False, reason=PER_CUSTOMER_LIMIT_REACHED)
        if purchase < to_decimal(coupon.min_purchase_amount):
            return CouponValidation(valid=False, reason=BELOW_MINIMUM_PURCHASE)
        if coupon.applicable_on != "all" and base <= ZERO:
            return CouponValidation(valid=False, reason=COUPON_NOT_APPLICABLE)

        return CouponValidation(valid=True, discount_amount=compute_discount(coupon, base))


coupon_validator = CouponValidator()
