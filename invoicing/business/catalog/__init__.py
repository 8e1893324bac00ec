from invoicing.business.catalog.api import router
from invoicing.business.catalog.models import CatalogProduct
from invoicing.business.catalog.schemas import CatalogProductCreate, CatalogProductRead, CatalogProductUpdate
from invoicing.business.catalog.service import CatalogService, catalog_service

__all__ = [
    "router",
    "CatalogProduct",
    "CatalogProductCreate",
    "CatalogProductRead",
    "CatalogProductUpdate",
    "CatalogService",
    "catalog_service",
]
