"""LangChain pipelines."""

from .recommendation_chain import RecommendationChainManager  # noqa: F401
