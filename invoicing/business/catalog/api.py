from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from invoicing.api.errors import to_http_exception
from invoicing.business.catalog.schemas import CatalogProductCreate, CatalogProductRead, CatalogProductUpdate
from invoicing.business.catalog.service import catalog_service
from invoicing.business.errors import BillingError
from invoicing.core.database import get_db


router = APIRouter(prefix="/catalog", tags=["catalog"])


@router.post("/products", response_model=CatalogProductRead, status_code=status.HTTP_201_CREATED)
def create_product(payload: CatalogProductCreate, db: Session = Depends(get_db)) -> CatalogProductRead:
    try:
        return catalog_service.create_product(db, payload)
    except BillingError as exc:
        raise to_http_exception(exc) from exc


@router.get("/products", response_model=list[CatalogProductRead])
def list_products(
    include_inactive: bool = Query(default=False),
    db: Session = Depends(get_db),
) -> list[CatalogProductRead]:
    return catalog_service.list_products(db, include_inactive=include_inactive)


@router.get("/products/{product_id}", response_model=CatalogProductRead)
def get_product(product_id: uuid.UUID, db: Session = Depends(get_db)) -> CatalogProductRead:
    try:
        return catalog_service.get_product(db, product_id)
    except BillingError as exc:
        raise to_http_exception(exc) from exc


@router.patch("/products/{product_id}", response_model=CatalogProductRead)
def update_product(
    product_id: uuid.UUID,
    payload: CatalogProductUpdate,
    db: Session = Depends(get_db),
) -> CatalogProductRead:
    try:
        return catalog_service.update_product(db, product_id, payload)
    except BillingError as exc:
        raise to_http_exception(exc) from exc
