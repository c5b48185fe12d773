"""Models for catalog listings."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator


class Product(BaseModel):
    """A product listed on the marketplace by a seller."""

    id: str
    name: str
    description: str
    price: float = Field(..., ge=0)
    category: str
    image_url: str
    image_hint: Optional[str] = None
    keywords: List[str] = Field(default_factory=list)
    seller_id: str
    created_at: datetime
    updated_at: Optional[datetime] = None


class ProductCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)
    description: str = Field(..., min_length=1, max_length=2000)
    price: float = Field(..., ge=0)
    category: str = Field(..., min_length=1, max_length=60)
    image_url: Optional[str] = Field(
        default=None,
        description="Image URL or data URI.  A placeholder is generated when omitted.",
    )
    image_hint: Optional[str] = None


class ProductUpdate(BaseModel):
    """Partial update.  Omitted fields are left alone; only the image fields may be cleared with null."""

    name: Optional[str] = Field(default=None, min_length=1, max_length=120)
    description: Optional[str] = Field(default=None, min_length=1, max_length=2000)
    price: Optional[float] = Field(default=None, ge=0)
    category: Optional[str] = Field(default=None, min_length=1, max_length=60)
    image_url: Optional[str] = None
    image_hint: Optional[str] = None

    @field_validator("name", "description", "price", "category")
    def reject_null(cls, value, info):
        if value is None:
            raise ValueError(f"{info.field_name} cannot be null")
        return value


class ProductFilter(BaseModel):
    """Catalog browsing criteria.

    ``search_query`` matches name, description and keywords
    case-insensitively; ``categories`` keeps products in any of the listed
    categories; the price bounds are inclusive.
    """

    search_query: str = ""
    categories: List[str] = Field(default_factory=list)
    min_price: Optional[float] = Field(default=None, ge=0)
    max_price: Optional[float] = Field(default=None, ge=0)

    @model_validator(mode="after")
    def _check_price_range(self) -> "ProductFilter":
        if (
            self.min_price is not None
            and self.max_price is not None
            and self.min_price > self.max_price
        ):
            raise ValueError("min_price must not exceed max_price")
        return self
