from __future__ import annotations

import uuid
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, Numeric, String, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from invoicing.core.database import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Coupon(Base):
    __tablename__ = "coupon"

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    code: Mapped[str] = mapped_column(String(64), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    discount_kind: Mapped[str] = mapped_column(String(16), nullable=False)
    discount_value: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    valid_from: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    valid_until: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    max_total_uses: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    max_uses_per_customer: Mapped[int] = mapped_column(Integer, nullable=False, default=1, server_default="1")
    min_purchase_amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False, default=Decimal("0"), server_default="0")
    max_discount_amount: Mapped[Decimal | None] = mapped_column(Numeric(18, 2), nullable=True)
    applicable_on: Mapped[str] = mapped_column(String(16), nullable=False, default="all", server_default="all")
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default="true")
    used_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    row_version: Mapped[int] = mapped_column(Integer, nullable=False, default=1, server_default="1")
    created_by: Mapped[str | None] = mapped_column(String(128), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    usages: Mapped[list[CouponUsage]] = relationship(
        "invoicing.business.coupons.models.CouponUsage",
        back_populates="coupon",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="CouponUsage.used_at",
    )

    __table_args__ = (
        UniqueConstraint("code", name="uq_coupon_code"),
        Index("ix_coupon_active_window", "is_active", "valid_from", "valid_until"),
    )


class CouponUsage(Base):
    __tablename__ = "coupon_usage"

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    coupon_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("coupon.id", ondelete="CASCADE"),
        nullable=False,
    )
    invoice_id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), nullable=False)
    customer_id: Mapped[str] = mapped_column(String(128), nullable=False)
    used_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    discount_applied: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)

    coupon: Mapped[Coupon] = relationship("invoicing.business.coupons.models.Coupon", back_populates="usages")

    __table_args__ = (
        UniqueConstraint("coupon_id", "invoice_id", name="uq_coupon_usage_invoice"),
        Index("ix_coupon_usage_customer", "coupon_id", "customer_id"),
    )
