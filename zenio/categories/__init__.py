"""Category matching package."""

from zenio.categories.resolver import (
    CategoryResolution,
    CategoryResolver,
    category_not_found_message,
    normalize_text,
)

__all__ = [
    "CategoryResolution",
    "CategoryResolver",
    "category_not_found_message",
    "normalize_text",
]
