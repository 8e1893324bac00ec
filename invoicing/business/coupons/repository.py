from __future__ import annotations

import uuid

from sqlalchemy import and_, func, or_, select, update
from sqlalchemy.orm import Session, selectinload

from invoicing.business.coupons.models import Coupon, CouponUsage


class CouponRepository:
    def get(self, session: Session, coupon_id: uuid.UUID, *, refresh: bool = False) -> Coupon | None:
        stmt = select(Coupon).where(Coupon.id == coupon_id)
        if refresh:
            stmt = stmt.execution_options(populate_existing=True)
        return session.scalar(stmt)

    def get_by_code(
        self, session: Session, code: str, *, with_usages: bool = False, refresh: bool = False
    ) -> Coupon | None:
        stmt = select(Coupon).where(Coupon.code == code.strip().upper())
        if refresh:
            stmt = stmt.execution_options(populate_existing=True)
        if with_usages:
            stmt = stmt.options(selectinload(Coupon.usages))
        return session.scalar(stmt)

    def count_customer_usage(self, session: Session, coupon_id: uuid.UUID, customer_id: str) -> int:
        return int(
            session.scalar(
                select(func.count(CouponUsage.id)).where(
                    and_(CouponUsage.coupon_id == coupon_id, CouponUsage.customer_id == customer_id)
                )
            )
            or 0
        )

    def increment_usage(self, session: Session, coupon_id: uuid.UUID, seen_row_version: int) -> bool:
        """Consume one slot if the coupon is unchanged since it was read and still under its cap."""
        result = session.execute(
            update(Coupon)
            .where(
                and_(
                    Coupon.id == coupon_id,
                    Coupon.row_version == seen_row_version,
                    or_(Coupon.max_total_uses == 0, Coupon.used_count < Coupon.max_total_uses),
                )
            )
            .values(used_count=Coupon.used_count + 1, row_version=Coupon.row_version + 1)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1
