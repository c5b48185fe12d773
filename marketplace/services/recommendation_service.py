"""Service wrapping the hosted recommendation model.

Uses LangChain's ChatOpenAI with structured output so the model's answer is
validated against :class:`RecommendProductsOutput`.  The model only sees
``name/description/price/category``; its picks are mapped back to full
catalog products by matching all of name, category and price.  The result
is a best-effort ranking, not an authoritative filter.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Sequence

from loguru import logger
from langchain_core.runnables import Runnable
from langchain_openai import ChatOpenAI

from ..chains import RecommendationChainManager
from ..config.llm_config import LlmConfig, get_llm_config
from ..models.product import Product
from ..models.recommendation import (
    RecommendedProduct,
    RecommendProductsInput,
    RecommendProductsOutput,
)
from ..utils.error_handler import CollaboratorUnavailable, MarketplaceError
from .catalog_service import available_categories

COLLABORATOR = "recommendation"


class RecommendationService:
    """Recommends catalog products for a free-text search query."""

    def __init__(
        self,
        llm_config: LlmConfig | None = None,
        structured_llm: Runnable | None = None,
    ) -> None:
        self.llm_config = llm_config or get_llm_config()
        self.chain_manager = RecommendationChainManager()
        self._structured_llm = structured_llm
        if self._structured_llm is None and self.llm_config.is_configured:
            self._structured_llm = self._build_structured_llm()

    def _build_structured_llm(self) -> Runnable:
        llm_kwargs: dict[str, object] = {
            "api_key": self.llm_config.api_key,
            "model": self.llm_config.model,
            "temperature": self.llm_config.temperature,
            "timeout": self.llm_config.timeout,
        }
        if self.llm_config.base_url:
            llm_kwargs["base_url"] = self.llm_config.base_url
        if self.llm_config.max_tokens:
            llm_kwargs["max_tokens"] = self.llm_config.max_tokens
        return ChatOpenAI(**llm_kwargs).with_structured_output(RecommendProductsOutput)

    async def recommend(
        self,
        search_query: str,
        products: Sequence[Product],
        categories: Sequence[str] | None = None,
    ) -> list[Product]:
        """Return the catalog products the model judges relevant to ``search_query``.

        A blank query or an empty catalog short-circuits to an empty list
        without calling the model.

        Raises
        ------
        CollaboratorUnavailable
            If the model is not configured or the request fails.
        """
        query = search_query.strip()
        if not query or not products:
            return []
        if self._structured_llm is None:
            raise CollaboratorUnavailable(COLLABORATOR, "unconfigured", "LLM_API_KEY is not set")

        recommendation_input = RecommendProductsInput(
            search_query=query,
            products=[
                RecommendedProduct(
                    name=product.name,
                    description=product.description,
                    price=product.price,
                    category=product.category,
                )
                for product in products
            ],
            product_categories=list(categories) if categories is not None else available_categories(products),
        )
        try:
            output = await self.chain_manager.recommend(self._structured_llm, recommendation_input)
        except MarketplaceError:
            raise
        except Exception as exc:
            logger.exception("Recommendation request failed")
            raise CollaboratorUnavailable(COLLABORATOR, detail=str(exc) or type(exc).__name__) from exc

        recommended = match_recommendations(output.products, products)
        logger.info("Recommended {} products for query {!r}", len(recommended), query[:80])
        return recommended


def match_recommendations(
    recommended: Sequence[RecommendedProduct],
    products: Sequence[Product],
) -> list[Product]:
    """Map model picks to catalog products, dropping unknown items and duplicates."""
    result: list[Product] = []
    seen: set[str] = set()
    for item in recommended:
        match = next(
            (
                product
                for product in products
                if product.name == item.name
                and product.category == item.category
                and product.price == item.price
            ),
            None,
        )
        if match is None:
            logger.debug("Dropping recommendation with no catalog match: {!r}", item.name)
            continue
        if match.id in seen:
            continue
        seen.add(match.id)
        result.append(match)
    return result


@lru_cache()
def get_recommendation_service() -> RecommendationService:
    return RecommendationService()
