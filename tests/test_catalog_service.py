from __future__ import annotations

import asyncio

import pytest

from conftest import make_user
from marketplace.models.product import ProductCreate, ProductFilter, ProductUpdate
from marketplace.services.catalog_service import (
    CatalogService,
    available_categories,
    build_product_context,
    filter_products,
    max_price,
)
from marketplace.utils.error_handler import NotProductOwner, ProductNotFound
from marketplace.utils.helpers import derive_keywords, placeholder_image_url


@pytest.fixture
def catalog(store, app_config) -> CatalogService:
    return CatalogService(store=store, app_config=app_config)


def _listing(name: str, category: str, price: float, description: str = "Good condition") -> ProductCreate:
    return ProductCreate(name=name, description=description, price=price, category=category)


def _seed(catalog: CatalogService):
    async def scenario():
        seller = make_user("seller")
        await catalog.create_product(seller, _listing("Road Bike", "Sports", 450.0))
        await catalog.create_product(seller, _listing("Desk Lamp", "Home", 25.0, "Warm light"))
        await catalog.create_product(make_user("other"), _listing("Tennis Racket", "Sports", 80.0))
        return await catalog.list_products()

    return asyncio.run(scenario())


def test_create_product_fills_derived_fields(catalog: CatalogService) -> None:
    product = asyncio.run(catalog.create_product(make_user("seller"), _listing("Blue Road Bike", "Sports", 300)))
    assert product.seller_id == "seller"
    assert product.image_url == placeholder_image_url("Blue Road Bike")
    assert product.keywords == ["blue", "road", "bike", "sports"]
    assert product.created_at is not None


def test_list_products_is_newest_first(catalog: CatalogService) -> None:
    products = _seed(catalog)
    assert [product.name for product in products] == ["Tennis Racket", "Desk Lamp", "Road Bike"]


def test_filters_combine_search_category_and_price(catalog: CatalogService) -> None:
    products = _seed(catalog)

    by_text = filter_products(products, ProductFilter(search_query="LIGHT"))
    assert [product.name for product in by_text] == ["Desk Lamp"]

    by_keyword = filter_products(products, ProductFilter(search_query="sports"))
    assert {product.name for product in by_keyword} == {"Road Bike", "Tennis Racket"}

    by_price = filter_products(
        products, ProductFilter(categories=["Sports"], min_price=50, max_price=100)
    )
    assert [product.name for product in by_price] == ["Tennis Racket"]


def test_filter_rejects_inverted_price_range() -> None:
    with pytest.raises(ValueError):
        ProductFilter(min_price=10, max_price=5)


def test_catalog_facets(catalog: CatalogService) -> None:
    products = _seed(catalog)
    assert available_categories(products) == ["Home", "Sports"]
    assert max_price(products) == 450.0
    assert max_price([]) == 0.0


def test_seller_listing_and_ownership(catalog: CatalogService) -> None:
    _seed(catalog)

    async def scenario():
        mine = await catalog.list_seller_products("seller")
        with pytest.raises(NotProductOwner):
            await catalog.update_product(make_user("other"), mine[0].id, ProductUpdate(price=1))
        updated = await catalog.update_product(
            make_user("seller"), mine[0].id, ProductUpdate(name="Reading Lamp")
        )
        await catalog.delete_product(make_user("seller"), mine[1].id)
        with pytest.raises(ProductNotFound):
            await catalog.get_product(mine[1].id)
        return mine, updated

    mine, updated = asyncio.run(scenario())
    assert [product.name for product in mine] == ["Desk Lamp", "Road Bike"]
    assert updated.keywords == ["reading", "lamp", "home"]
    assert updated.updated_at >= updated.created_at


def test_product_context_snapshot(catalog: CatalogService) -> None:
    product = asyncio.run(catalog.create_product(make_user("seller"), _listing("Kettle", "Home", 15)))
    context = build_product_context(product)
    assert context.product_id == product.id
    assert context.product_name == "Kettle"
    assert context.seller_id == "seller"
    assert context.product_image_url == product.image_url


def test_keywords_are_deduplicated() -> None:
    assert derive_keywords("Home Home Decor", "home") == ["home", "decor"]


@pytest.mark.parametrize("field", ["name", "description", "price", "category"])
def test_product_update_rejects_explicit_null(field: str) -> None:
    with pytest.raises(ValueError, match=f"{field} cannot be null"):
        ProductUpdate(**{field: None})


def test_product_update_allows_clearing_images() -> None:
    update = ProductUpdate(image_url=None, image_hint=None)
    assert update.model_dump(exclude_unset=True) == {"image_url": None, "image_hint": None}
