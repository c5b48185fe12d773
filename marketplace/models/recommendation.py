"""Schemas exchanged with the recommendation model."""

from typing import List

from pydantic import BaseModel, Field

from .product import Product


class RecommendedProduct(BaseModel):
    """The product fields the model sees and echoes back."""

    name: str = Field(..., description="Exact product name from the catalog.")
    description: str = Field(..., description="Product description from the catalog.")
    price: float = Field(..., description="Exact product price from the catalog.")
    category: str = Field(..., description="Exact product category from the catalog.")


class RecommendProductsInput(BaseModel):
    search_query: str = Field(..., description="The user search query.")
    products: List[RecommendedProduct] = Field(
        ..., description="List of available products to recommend from."
    )
    product_categories: List[str] = Field(
        default_factory=list, description="List of available product categories."
    )


class RecommendProductsOutput(BaseModel):
    """Recommended products based on the search query."""

    products: List[RecommendedProduct] = Field(default_factory=list)


class RecommendationRequest(BaseModel):
    search_query: str = Field(..., max_length=200)


class RecommendationResponse(BaseModel):
    search_query: str
    products: List[Product]
