"""LangChain pipeline for product recommendations."""

from __future__ import annotations

from typing import Any

from loguru import logger
from langchain_core.prompts import ChatPromptTemplate
from langchain_core.runnables import Runnable

from ..models.recommendation import RecommendProductsInput, RecommendProductsOutput
from ..prompts import RECOMMENDATION_HUMAN_PROMPT, RECOMMENDATION_SYSTEM_PROMPT


class RecommendationChainManager:
    """Builds the prompt and runs it through a structured-output model.

    ``structured_llm`` is any runnable that turns the rendered prompt into a
    :class:`RecommendProductsOutput` (or a dict of the same shape); in
    production it is ``ChatOpenAI(...).with_structured_output(...)``.
    """

    def __init__(self, system_prompt: str | None = None) -> None:
        self._system_prompt = system_prompt or RECOMMENDATION_SYSTEM_PROMPT
        self._prompt_template = ChatPromptTemplate.from_messages(
            [
                ("system", "{system_prompt}"),
                ("human", RECOMMENDATION_HUMAN_PROMPT),
            ]
        )

    @property
    def prompt_template(self) -> ChatPromptTemplate:
        return self._prompt_template

    def build_variables(self, recommendation_input: RecommendProductsInput) -> dict[str, Any]:
        product_lines = "\n".join(
            f"- Name: {product.name}, Description: {product.description}, "
            f"Price: {product.price}, Category: {product.category}"
            for product in recommendation_input.products
        )
        return {
            "system_prompt": self._system_prompt,
            "search_query": recommendation_input.search_query,
            "product_lines": product_lines or "<none>",
            "product_categories": ", ".join(recommendation_input.product_categories) or "<none>",
        }

    async def recommend(
        self,
        structured_llm: Runnable,
        recommendation_input: RecommendProductsInput,
    ) -> RecommendProductsOutput:
        """Run the prompt and validate the model's answer against the output schema."""
        chain = self._prompt_template | structured_llm
        result = await chain.ainvoke(self.build_variables(recommendation_input))
        output = RecommendProductsOutput.model_validate(
            result.model_dump() if isinstance(result, RecommendProductsOutput) else result
        )
        logger.debug(
            "Model recommended {} of {} products for query {!r}",
            len(output.products),
            len(recommendation_input.products),
            recommendation_input.search_query[:80],
        )
        return output
