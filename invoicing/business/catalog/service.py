from __future__ import annotations

import uuid
from dataclasses import dataclass

from sqlalchemy import Select, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from invoicing.business.catalog.models import CatalogProduct
from invoicing.business.catalog.schemas import CatalogProductCreate, CatalogProductRead, CatalogProductUpdate
from invoicing.business.errors import DuplicateProductError, ProductNotFoundError


@dataclass(slots=True)
class CatalogService:
    def create_product(self, session: Session, dto: CatalogProductCreate) -> CatalogProductRead:
        payload = dto.model_dump(mode="python")
        payload["sku"] = payload["sku"].strip().upper()
        payload["name"] = payload["name"].strip()

        product = CatalogProduct(**payload)
        session.add(product)
        try:
            session.commit()
        except IntegrityError:
            session.rollback()
            raise DuplicateProductError(payload["sku"])
        session.refresh(product)
        return CatalogProductRead.model_validate(product)

    def update_product(self, session: Session, product_id: uuid.UUID, dto: CatalogProductUpdate) -> CatalogProductRead:
        product = session.get(CatalogProduct, product_id)
        if product is None:
            raise ProductNotFoundError(product_id)

        for key, value in dto.model_dump(mode="python", exclude_unset=True).items():
            if value is None and key != "description":
                continue
            setattr(product, key, value)
        session.add(product)
        session.commit()
        session.refresh(product)
        return CatalogProductRead.model_validate(product)

    def get_product(self, session: Session, product_id: uuid.UUID) -> CatalogProductRead:
        product = session.get(CatalogProduct, product_id)
        if product is None:
            raise ProductNotFoundError(product_id)
        return CatalogProductRead.model_validate(product)

    def list_products(self, session: Session, *, include_inactive: bool = False) -> list[CatalogProductRead]:
        stmt: Select[tuple[CatalogProduct]] = select(CatalogProduct)
        if not include_inactive:
            stmt = stmt.where(CatalogProduct.is_active.is_(True))
        rows = session.scalars(stmt.order_by(CatalogProduct.sku.asc())).all()
        return [CatalogProductRead.model_validate(row) for row in rows]

    def resolve_product(self, session: Session, product_id: uuid.UUID) -> CatalogProduct | None:
        """Current catalog entry for a product reference, or None when unknown or inactive."""
        product = session.get(CatalogProduct, product_id)
        if product is None or not product.is_active:
            return None
        return product


catalog_service = CatalogService()
