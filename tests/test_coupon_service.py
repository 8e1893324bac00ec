from __future__ import annotations

import uuid
from collections.abc import Generator
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from pydantic import ValidationError
from sqlalchemy import create_engine, func, select, update
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

import invoicing.models  # noqa: F401
from invoicing.business.coupons.models import Coupon, CouponUsage
from invoicing.business.coupons.repository import CouponRepository
from invoicing.business.coupons.schemas import CouponCreate, CouponValidationRequest
from invoicing.business.coupons.service import CouponService
from invoicing.business.errors import ConcurrentModificationError, DuplicateCouponError, InvalidCouponError
from invoicing.core.database import Base

NOW = datetime(2026, 3, 15, 12, 0, tzinfo=timezone.utc)


@pytest.fixture()
def db_session() -> Generator[Session, None, None]:
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def service() -> CouponService:
    return CouponService(now=lambda: NOW)


def _coupon_payload(**overrides: object) -> CouponCreate:
    values: dict[str, object] = {
        "code": "welcome10",
        "discount_kind": "percentage",
        "discount_value": Decimal("10"),
        "valid_from": NOW - timedelta(days=1),
        "valid_until": NOW + timedelta(days=30),
        "max_total_uses": 0,
        "max_uses_per_customer": 1,
    }
    values.update(overrides)
    return CouponCreate(**values)


def test_create_coupon_stores_upper_case_code(db_session: Session, service: CouponService) -> None:
    coupon = service.create_coupon(db_session, _coupon_payload(description="New customers"))
    assert coupon.code == "WELCOME10"
    assert coupon.used_count == 0
    assert coupon.row_version == 1
    assert service.get_coupon(db_session, "Welcome10").id == coupon.id

    with pytest.raises(DuplicateCouponError):
        service.create_coupon(db_session, _coupon_payload(code="WELCOME10"))


def test_coupon_policy_is_validated_at_the_boundary() -> None:
    with pytest.raises(ValidationError):
        _coupon_payload(discount_value=Decimal("120"))
    with pytest.raises(ValidationError):
        _coupon_payload(valid_from=NOW, valid_until=NOW - timedelta(days=1))
    with pytest.raises(ValidationError):
        _coupon_payload(discount_kind="fixed", discount_value=Decimal("100"), max_discount_amount=Decimal("50"))
    with pytest.raises(ValidationError):
        _coupon_payload(discount_value=Decimal("0"))


def test_validate_coupon_previews_without_consuming(db_session: Session, service: CouponService) -> None:
    service.create_coupon(db_session, _coupon_payload(max_total_uses=1, max_discount_amount=Decimal("75")))

    for _ in range(3):
        result = service.validate_coupon(db_session, "welcome10", "cust-1", Decimal("999.99"))
        assert result.valid
        assert result.discount_amount == Decimal("75.00")

    coupon = db_session.scalar(select(Coupon).where(Coupon.code == "WELCOME10"))
    assert coupon is not None
    assert coupon.used_count == 0


def test_validate_unknown_coupon(db_session: Session, service: CouponService) -> None:
    result = service.validate_coupon(db_session, "ghost", "cust-1", Decimal("100"))
    assert not result.valid
    assert result.reason == "CouponNotFound"
    assert result.code == "GHOST"


def test_validate_rounds_percentage_discount(db_session: Session, service: CouponService) -> None:
    service.create_coupon(db_session, _coupon_payload(code="ODD", discount_value=Decimal("12.5")))
    result = service.validate_coupon(db_session, "odd", "cust-1", Decimal("10.01"))
    assert result.discount_amount == Decimal("1.25")


def test_validate_coupon_with_huge_purchase_amount(db_session: Session, service: CouponService) -> None:
    service.create_coupon(db_session, _coupon_payload())
    result = service.validate_coupon(db_session, "welcome10", "cust-1", Decimal("1E+30"))
    assert result.valid
    assert result.discount_amount == Decimal("1E+29")

    with pytest.raises(ValidationError):
        CouponValidationRequest(code="WELCOME10", customer_id="cust-1", purchase_amount="1E+30")


def test_commit_usage_records_history_and_counts(db_session: Session, service: CouponService) -> None:
    service.create_coupon(db_session, _coupon_payload(max_total_uses=5, max_uses_per_customer=1))
    invoice_id = uuid.uuid4()

    usage = service.commit_usage(
        db_session,
        "WELCOME10",
        invoice_id=invoice_id,
        customer_id="cust-1",
        discount_applied=Decimal("50"),
    )
    db_session.commit()

    assert usage.invoice_id == invoice_id
    coupon = service.get_coupon(db_session, "WELCOME10")
    assert coupon.used_count == 1
    assert coupon.row_version == 2
    usages = service.list_usages(db_session, "WELCOME10")
    assert [(row.customer_id, row.discount_applied) for row in usages] == [("cust-1", Decimal("50.00"))]

    with pytest.raises(InvalidCouponError) as exc_info:
        service.commit_usage(
            db_session,
            "WELCOME10",
            invoice_id=uuid.uuid4(),
            customer_id="cust-1",
            discount_applied=Decimal("50"),
        )
    assert exc_info.value.reason == "PerCustomerLimitReached"
    db_session.rollback()


def test_commit_usage_enforces_global_limit(db_session: Session, service: CouponService) -> None:
    service.create_coupon(db_session, _coupon_payload(max_total_uses=1, max_uses_per_customer=0))
    service.commit_usage(db_session, "WELCOME10", invoice_id=uuid.uuid4(), customer_id="a", discount_applied=Decimal("1"))
    db_session.commit()

    with pytest.raises(InvalidCouponError) as exc_info:
        service.commit_usage(db_session, "WELCOME10", invoice_id=uuid.uuid4(), customer_id="b", discount_applied=Decimal("1"))
    assert exc_info.value.reason == "GlobalLimitReached"
    db_session.rollback()

    assert db_session.scalar(select(func.count(CouponUsage.id))) == 1


def test_commit_usage_refuses_deactivated_coupon(db_session: Session, service: CouponService) -> None:
    service.create_coupon(db_session, _coupon_payload())
    service.deactivate_coupon(db_session, "welcome10")

    with pytest.raises(InvalidCouponError) as exc_info:
        service.commit_usage(db_session, "WELCOME10", invoice_id=uuid.uuid4(), customer_id="a", discount_applied=Decimal("1"))
    assert exc_info.value.reason == "CouponInactive"
    db_session.rollback()


def test_increment_usage_fails_on_stale_row_version(db_session: Session, service: CouponService) -> None:
    created = service.create_coupon(db_session, _coupon_payload(max_total_uses=0))
    repository = CouponRepository()

    assert repository.increment_usage(db_session, created.id, seen_row_version=1)
    assert not repository.increment_usage(db_session, created.id, seen_row_version=1)
    db_session.commit()

    coupon = repository.get(db_session, created.id, refresh=True)
    assert coupon is not None
    assert coupon.used_count == 1
    assert coupon.row_version == 2


class _RacingCouponRepository(CouponRepository):
    """Lets another writer touch the coupon between the read and the conditional update."""

    def increment_usage(self, session: Session, coupon_id: uuid.UUID, seen_row_version: int) -> bool:
        session.execute(
            update(Coupon)
            .where(Coupon.id == coupon_id)
            .values(row_version=Coupon.row_version + 1)
            .execution_options(synchronize_session=False)
        )
        return super().increment_usage(session, coupon_id, seen_row_version)


def test_commit_usage_reports_concurrent_modification(db_session: Session) -> None:
    service = CouponService(coupon_repository=_RacingCouponRepository(), now=lambda: NOW)
    service.create_coupon(db_session, _coupon_payload(max_total_uses=10))

    with pytest.raises(ConcurrentModificationError):
        service.commit_usage(db_session, "WELCOME10", invoice_id=uuid.uuid4(), customer_id="a", discount_applied=Decimal("1"))
    db_session.rollback()

    assert service.get_coupon(db_session, "WELCOME10").used_count == 0
