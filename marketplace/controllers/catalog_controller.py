"""Controllers for browsing, listing and recommending products."""

from fastapi import APIRouter, Depends, Query, status
from fastapi.exceptions import RequestValidationError
from loguru import logger
from pydantic import BaseModel, ValidationError

from ..models.auth import AuthUser
from ..models.product import Product, ProductCreate, ProductFilter, ProductUpdate
from ..models.recommendation import RecommendationRequest, RecommendationResponse
from ..services.catalog_service import (
    CatalogService,
    available_categories,
    get_catalog_service,
    max_price as price_ceiling,
)
from ..services.recommendation_service import RecommendationService, get_recommendation_service
from .dependencies import get_current_user

router = APIRouter(prefix="/products", tags=["Catalog"])


class CatalogFacets(BaseModel):
    categories: list[str]
    max_price: float


def product_filter(
    q: str = Query(default="", max_length=200),
    category: list[str] = Query(default=[]),
    min_price: float | None = Query(default=None, ge=0),
    max_price: float | None = Query(default=None, ge=0),
) -> ProductFilter:
    """Build catalog criteria from query parameters, reporting bad ranges as 422."""
    try:
        return ProductFilter(
            search_query=q, categories=category, min_price=min_price, max_price=max_price
        )
    except ValidationError as exc:
        raise RequestValidationError(
            [
                {"type": error["type"], "loc": ("query", *error["loc"]), "msg": error["msg"]}
                for error in exc.errors()
            ]
        ) from exc


@router.get("", response_model=list[Product])
async def list_products_endpoint(
    filters: ProductFilter = Depends(product_filter),
    catalog: CatalogService = Depends(get_catalog_service),
) -> list[Product]:
    """List products newest first, filtered by search text, category and price."""
    return await catalog.list_products(filters)


@router.get("/facets", response_model=CatalogFacets)
async def catalog_facets_endpoint(
    catalog: CatalogService = Depends(get_catalog_service),
) -> CatalogFacets:
    """Categories and the price ceiling used to build catalog filters."""
    products = await catalog.list_products()
    return CatalogFacets(categories=available_categories(products), max_price=price_ceiling(products))


@router.post("/recommendations", response_model=RecommendationResponse)
async def recommendations_endpoint(
    request: RecommendationRequest,
    catalog: CatalogService = Depends(get_catalog_service),
    recommender: RecommendationService = Depends(get_recommendation_service),
) -> RecommendationResponse:
    products = await catalog.list_products()
    recommended = await recommender.recommend(request.search_query, products)
    return RecommendationResponse(search_query=request.search_query, products=recommended)


@router.post("", response_model=Product, status_code=status.HTTP_201_CREATED)
async def create_product_endpoint(
    request: ProductCreate,
    user: AuthUser = Depends(get_current_user),
    catalog: CatalogService = Depends(get_catalog_service),
) -> Product:
    logger.info("User {} listing product {!r}", user.uid, request.name)
    return await catalog.create_product(user, request)


@router.get("/{product_id}", response_model=Product)
async def get_product_endpoint(
    product_id: str,
    catalog: CatalogService = Depends(get_catalog_service),
) -> Product:
    return await catalog.get_product(product_id)


@router.patch("/{product_id}", response_model=Product)
async def update_product_endpoint(
    product_id: str,
    request: ProductUpdate,
    user: AuthUser = Depends(get_current_user),
    catalog: CatalogService = Depends(get_catalog_service),
) -> Product:
    return await catalog.update_product(user, product_id, request)


@router.delete("/{product_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_product_endpoint(
    product_id: str,
    user: AuthUser = Depends(get_current_user),
    catalog: CatalogService = Depends(get_catalog_service),
) -> None:
    await catalog.delete_product(user, product_id)
    return None
