"""Prompt templates used by the LangChain pipelines."""

from .recommendation import RECOMMENDATION_HUMAN_PROMPT, RECOMMENDATION_SYSTEM_PROMPT  # noqa: F401
