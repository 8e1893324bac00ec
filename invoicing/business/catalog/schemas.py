from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class CatalogProductCreate(BaseModel):
    sku: str = Field(min_length=1)
    name: str = Field(min_length=1)
    description: str | None = None
    category: str | None = None
    brand: str | None = None
    mrp: Decimal | None = Field(default=None, ge=Decimal("0"), decimal_places=2)
    selling_price: Decimal = Field(gt=Decimal("0"), decimal_places=2)
    includes_tax: bool = True
    is_active: bool = True


class CatalogProductUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1)
    description: str | None = None
    selling_price: Decimal | None = Field(default=None, gt=Decimal("0"), decimal_places=2)
    includes_tax: bool | None = None
    is_active: bool | None = None


class CatalogProductRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    sku: str
    name: str
    description: str | None
    category: str | None
    brand: str | None
    mrp: Decimal | None
    selling_price: Decimal
    includes_tax: bool
    is_active: bool
    created_at: datetime
    updated_at: datetime
