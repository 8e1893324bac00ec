from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Callable

from opentelemetry import trace
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from invoicing.business.coupons.models import Coupon, CouponUsage
from invoicing.business.coupons.repository import CouponRepository
from invoicing.business.coupons.schemas import CouponCreate, CouponRead, CouponUsageRead, CouponValidationRead
from invoicing.business.coupons.validator import (
    COUPON_INACTIVE,
    COUPON_NOT_FOUND,
    GLOBAL_LIMIT_REACHED,
    PER_CUSTOMER_LIMIT_REACHED,
    CouponValidator,
    global_limit_reached,
)
from invoicing.business.errors import ConcurrentModificationError, DuplicateCouponError, InvalidCouponError, NotFoundError
from invoicing.business.money import ZERO, round_money
from invoicing.metrics import observe_coupon_rejection

logger = logging.getLogger("invoicing.coupons")
tracer = trace.get_tracer("invoicing.coupons")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(slots=True)
class CouponService:
    coupon_repository: CouponRepository = CouponRepository()
    validator: CouponValidator = field(default_factory=CouponValidator)
    now: Callable[[], datetime] = utcnow

    def create_coupon(self, session: Session, dto: CouponCreate) -> CouponRead:
        coupon = Coupon(**dto.model_dump(mode="python"))
        session.add(coupon)
        try:
            session.commit()
        except IntegrityError:
            session.rollback()
            raise DuplicateCouponError(dto.code)
        session.refresh(coupon)
        logger.info("coupon.created", extra={"coupon_code": coupon.code})
        return CouponRead.model_validate(coupon)

    def get_coupon(self, session: Session, code: str) -> CouponRead:
        coupon = self.coupon_repository.get_by_code(session, code)
        if coupon is None:
            raise NotFoundError("coupon", code.strip().upper())
        return CouponRead.model_validate(coupon)

    def list_coupons(self, session: Session, *, include_inactive: bool = False) -> list[CouponRead]:
        stmt = select(Coupon)
        if not include_inactive:
            stmt = stmt.where(Coupon.is_active.is_(True))
        rows = session.scalars(stmt.order_by(Coupon.code.asc())).all()
        return [CouponRead.model_validate(row) for row in rows]

    def list_usages(self, session: Session, code: str) -> list[CouponUsageRead]:
        coupon = self.coupon_repository.get_by_code(session, code, with_usages=True)
        if coupon is None:
            raise NotFoundError("coupon", code.strip().upper())
        return [CouponUsageRead.model_validate(usage) for usage in coupon.usages]

    def deactivate_coupon(self, session: Session, code: str) -> CouponRead:
        coupon = self.coupon_repository.get_by_code(session, code)
        if coupon is None:
            raise NotFoundError("coupon", code.strip().upper())
        coupon.is_active = False
        coupon.row_version = coupon.row_version + 1
        session.add(coupon)
        session.commit()
        session.refresh(coupon)
        logger.info("coupon.deactivated", extra={"coupon_code": coupon.code})
        return CouponRead.model_validate(coupon)

    def validate_coupon(
        self,
        session: Session,
        code: str,
        customer_id: str,
        purchase_amount: Decimal,
    ) -> CouponValidationRead:
        """Preview a coupon for a purchase. Takes no locks and never records usage."""
        normalized = code.strip().upper()
        coupon = self.coupon_repository.get_by_code(session, normalized, with_usages=True)
        if coupon is None:
            observe_coupon_rejection(COUPON_NOT_FOUND)
            return CouponValidationRead(code=normalized, valid=False, discount_amount=ZERO, reason=COUPON_NOT_FOUND)

        result = self.validator.validate(coupon, customer_id, purchase_amount, self.now())
        if not result.valid:
            observe_coupon_rejection(result.reason or "unknown")
        return CouponValidationRead(
            code=normalized,
            valid=result.valid,
            discount_amount=round_money(result.discount_amount),
            reason=result.reason,
        )

    def commit_usage(
        self,
        session: Session,
        coupon_code: str,
        *,
        invoice_id: uuid.UUID,
        customer_id: str,
        discount_applied: Decimal,
        used_at: datetime | None = None,
    ) -> CouponUsage:
        """Consume one use of a coupon inside the caller's transaction.

        The caller owns the transaction: nothing is committed here and any
        raised error leaves it to the caller to roll back.
        """
        with tracer.start_as_current_span("coupons.commit_usage") as span:
            span.set_attribute("coupon_code", coupon_code)
            span.set_attribute("invoice_id", str(invoice_id))

            coupon = self.coupon_repository.get_by_code(session, coupon_code, refresh=True)
            if coupon is None:
                raise self._reject(COUPON_NOT_FOUND, coupon_code)
            seen_row_version = coupon.row_version

            if not coupon.is_active:
                raise self._reject(COUPON_INACTIVE, coupon.code)
            if global_limit_reached(coupon):
                raise self._reject(GLOBAL_LIMIT_REACHED, coupon.code)
            if coupon.max_uses_per_customer > 0:
                used_by_customer = self.coupon_repository.count_customer_usage(session, coupon.id, customer_id)
                if used_by_customer >= coupon.max_uses_per_customer:
                    raise self._reject(PER_CUSTOMER_LIMIT_REACHED, coupon.code)

            if not self.coupon_repository.increment_usage(session, coupon.id, seen_row_version):
                current = self.coupon_repository.get(session, coupon.id, refresh=True)
                if current is not None and global_limit_reached(current):
                    raise self._reject(GLOBAL_LIMIT_REACHED, coupon.code)
                raise ConcurrentModificationError("coupon", coupon.code)

            usage = CouponUsage(
                coupon_id=coupon.id,
                invoice_id=invoice_id,
                customer_id=customer_id,
                used_at=used_at or self.now(),
                discount_applied=round_money(discount_applied),
            )
            session.add(usage)
            session.flush()
        return usage

    def _reject(self, reason: str, coupon_code: str) -> InvalidCouponError:
        observe_coupon_rejection(reason)
        logger.warning("coupon.rejected", extra={"coupon_code": coupon_code, "reason": reason})
        return InvalidCouponError(reason, coupon_code)


coupon_service = CouponService()
