"""General helper functions used across the application."""

from __future__ import annotations

from urllib.parse import quote

PLACEHOLDER_IMAGE_BASE = "https://placehold.co/300x200.png"


def derive_keywords(name: str, category: str) -> list[str]:
    """Lower-cased words of the product name followed by those of its category."""
    words = name.lower().split() + category.lower().split()
    seen: set[str] = set()
    keywords = []
    for word in words:
        if word not in seen:
            seen.add(word)
            keywords.append(word)
    return keywords


def placeholder_image_url(name: str) -> str:
    return f"{PLACEHOLDER_IMAGE_BASE}?text={quote(name, safe='')}"

