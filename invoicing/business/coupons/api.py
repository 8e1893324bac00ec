from __future__ import annotations

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from invoicing.api.errors import to_http_exception
from invoicing.business.coupons.schemas import (
    CouponCreate,
    CouponRead,
    CouponUsageRead,
    CouponValidationRead,
    CouponValidationRequest,
)
from invoicing.business.coupons.service import coupon_service
from invoicing.business.errors import BillingError
from invoicing.context import get_actor_id
from invoicing.core.database import get_db


router = APIRouter(prefix="/coupons", tags=["coupons"])


@router.post("", response_model=CouponRead, status_code=status.HTTP_201_CREATED)
def create_coupon(payload: CouponCreate, db: Session = Depends(get_db)) -> CouponRead:
    if payload.created_by is None:
        payload = payload.model_copy(update={"created_by": get_actor_id()})
    try:
        return coupon_service.create_coupon(db, payload)
    except BillingError as exc:
        raise to_http_exception(exc) from exc


@router.get("", response_model=list[CouponRead])
def list_coupons(
    include_inactive: bool = Query(default=False),
    db: Session = Depends(get_db),
) -> list[CouponRead]:
    return coupon_service.list_coupons(db, include_inactive=include_inactive)


@router.post("/validate", response_model=CouponValidationRead)
def validate_coupon(payload: CouponValidationRequest, db: Session = Depends(get_db)) -> CouponValidationRead:
    return coupon_service.validate_coupon(db, payload.code, payload.customer_id, payload.purchase_amount)


@router.get("/{code}", response_model=CouponRead)
def get_coupon(code: str, db: Session = Depends(get_db)) -> CouponRead:
    try:
        return coupon_service.get_coupon(db, code)
    except BillingError as exc:
        raise to_http_exception(exc) from exc


@router.get("/{code}/usages", response_model=list[CouponUsageRead])
def list_coupon_usages(code: str, db: Session = Depends(get_db)) -> list[CouponUsageRead]:
    try:
        return coupon_service.list_usages(db, code)
    except BillingError as exc:
        raise to_http_exception(exc) from exc


@router.post("/{code}/deactivate", response_model=CouponRead)
def deactivate_coupon(code: str, db: Session = Depends(get_db)) -> CouponRead:
    try:
        return coupon_service.deactivate_coupon(db, code)
    except BillingError as exc:
        raise to_http_exception(exc) from exc
