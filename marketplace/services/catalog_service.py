"""Product catalog backed by the ``products`` collection.

Besides CRUD for listings, this module holds the pure browsing helpers the
catalog page uses: text search, category and price filtering, and the
derived category list and price ceiling.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Iterable

from loguru import logger

from ..models.auth import AuthUser
from ..models.conversation import ProductContext
from ..models.product import Product, ProductCreate, ProductFilter, ProductUpdate
from ..store.base import SERVER_TIMESTAMP, DocumentSnapshot, FieldFilter, OrderBy
from ..utils.error_handler import NotProductOwner, ProductNotFound
from ..utils.helpers import derive_keywords, placeholder_image_url
from .base import StoreBackedService

PRODUCTS = "products"
NEWEST_FIRST = [OrderBy("created_at", descending=True)]


def _to_product(snapshot: DocumentSnapshot) -> Product:
    return Product.model_validate(snapshot.to_dict())


class CatalogService(StoreBackedService):
    """Create, read, update and delete marketplace listings."""

    async def create_product(self, seller: AuthUser, data: ProductCreate) -> Product:
        document = {
            **data.model_dump(),
            "image_url": data.image_url or placeholder_image_url(data.name),
            "keywords": derive_keywords(data.name, data.category),
            "seller_id": seller.uid,
            "created_at": SERVER_TIMESTAMP,
            "updated_at": SERVER_TIMESTAMP,
        }
        product_id = await self._call(self.store.create(PRODUCTS, document))
        logger.info("Seller {} listed product {} ({})", seller.uid, product_id, data.name)
        return await self.get_product(product_id)

    async def get_product(self, product_id: str) -> Product:
        snapshot = await self._call(self.store.get(PRODUCTS, product_id))
        if snapshot is None:
            raise ProductNotFound(f"Product {product_id} not found")
        return _to_product(snapshot)

    async def update_product(self, seller: AuthUser, product_id: str, data: ProductUpdate) -> Product:
        product = await self._owned_product(seller, product_id)
        fields = data.model_dump(exclude_unset=True)
        if "name" in fields or "category" in fields:
            fields["keywords"] = derive_keywords(
                fields.get("name", product.name), fields.get("category", product.category)
            )
        if fields.get("image_url") is None and "image_url" in fields:
            fields["image_url"] = placeholder_image_url(fields.get("name", product.name))
        fields["updated_at"] = SERVER_TIMESTAMP
        await self._call(self.store.update(PRODUCTS, product_id, fields))
        logger.info("Product {} updated: {}", product_id, sorted(fields))
        return await self.get_product(product_id)

    async def delete_product(self, seller: AuthUser, product_id: str) -> None:
        await self._owned_product(seller, product_id)
        await self._call(self.store.delete(PRODUCTS, product_id))
        logger.info("Product {} deleted by {}", product_id, seller.uid)

    async def list_products(self, filters: ProductFilter | None = None) -> list[Product]:
        """Return every listing, newest first, optionally filtered."""
        snapshots = await self._call(self.store.query(PRODUCTS, order_by=NEWEST_FIRST))
        products = [_to_product(snapshot) for snapshot in snapshots]
        if filters is None:
            return products
        return filter_products(products, filters)

    async def list_seller_products(self, seller_id: str) -> list[Product]:
        snapshots = await self._call(
            self.store.query(
                PRODUCTS,
                filters=[FieldFilter("seller_id", "==", seller_id)],
                order_by=NEWEST_FIRST,
            )
        )
        return [_to_product(snapshot) for snapshot in snapshots]

    async def _owned_product(self, seller: AuthUser, product_id: str) -> Product:
        product = await self.get_product(product_id)
        if product.seller_id != seller.uid:
            raise NotProductOwner(f"Product {product_id} belongs to another seller")
        return product


def filter_products(products: Iterable[Product], filters: ProductFilter) -> list[Product]:
    """Apply search, category and price criteria, preserving input order."""
    query = filters.search_query.strip().lower()
    categories = set(filters.categories)
    result = []
    for product in products:
        if query and not (
            query in product.name.lower()
            or query in product.description.lower()
            or any(query in keyword.lower() for keyword in product.keywords)
        ):
            continue
        if categories and product.category not in categories:
            continue
        if filters.min_price is not None and product.price < filters.min_price:
            continue
        if filters.max_price is not None and product.price > filters.max_price:
            continue
        result.append(product)
    return result


def available_categories(products: Iterable[Product]) -> list[str]:
    return sorted({product.category for product in products})


def max_price(products: Iterable[Product]) -> float:
    return max((product.price for product in products), default=0.0)


def build_product_context(product: Product) -> ProductContext:
    """Snapshot of a listing stored on conversations opened about it."""
    return ProductContext(
        product_id=product.id,
        product_name=product.name,
        product_image_url=product.image_url,
        seller_id=product.seller_id,
    )


@lru_cache()
def get_catalog_service() -> CatalogService:
    return CatalogService()
