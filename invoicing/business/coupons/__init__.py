from invoicing.business.coupons.api import router
from invoicing.business.coupons.models import Coupon, CouponUsage
from invoicing.business.coupons.schemas import (
    CouponCreate,
    CouponRead,
    CouponUsageRead,
    CouponValidationRead,
    CouponValidationRequest,
)
from invoicing.business.coupons.service import CouponService, coupon_service
from invoicing.business.coupons.validator import CouponValidation, CouponValidator, coupon_validator

__all__ = [
    "router",
    "Coupon",
    "CouponUsage",
    "CouponCreate",
    "CouponRead",
    "CouponUsageRead",
    "CouponValidationRequest",
    "CouponValidationRead",
    "CouponService",
    "coupon_service",
    "CouponValidation",
    "CouponValidator",
    "coupon_validator",
]
