"""
Category Resolver

Matches the category label the assistant extracted from the user's words
against the known catalogue.

DESIGN DECISION: A category that cannot be matched is not an error.
The resolver answers with the names the user could have meant and the
caller relays them conversationally ("¿Podrías elegir una de estas?").

Matching rules:
- Labels are compared after Unicode decomposition, dropping accents and
  case folding, so "Super Mercado" matches "súper mercado".
- A leading icon is ignored, so "🚗 Transporte" matches "Transporte".
- Only exact normalized matches count. No fuzzy guessing.
- A caller-supplied candidate that carries an id is trusted as is.
  Name-only candidates are re-resolved against the store.
"""

import re
import unicodedata
from typing import Optional

import structlog
from pydantic import BaseModel, Field

from zenio.models.conversation import CategoryRef
from zenio.models.records import Category, EntityModule, TransactionType
from zenio.services.storage.interface import RecordStorageInterface


logger = structlog.get_logger(__name__)

# Emoji, variation selectors and punctuation before the first letter
_LEADING_SYMBOLS = re.compile(r"^\W+")


def normalize_text(text: Optional[str]) -> str:
    """Accent-, case- and whitespace-insensitive form of a label."""
    if not text:
        return ""
    decomposed = unicodedata.normalize("NFD", text)
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    stripped = _LEADING_SYMBOLS.sub("", stripped)
    return " ".join(stripped.casefold().split())


class CategoryResolution(BaseModel):
    """Either a matched category or the names to suggest instead."""

    requested: str
    category: Optional[Category] = None
    suggestions: list[str] = Field(default_factory=list)

    @property
    def found(self) -> bool:
        return self.category is not None


_MODULE_LABELS = {
    EntityModule.TRANSACTIONS: "transacciones",
    EntityModule.BUDGETS: "presupuestos",
    EntityModule.GOALS: "metas",
}


def category_not_found_message(
    requested: str,
    suggestions: list[str],
    module: EntityModule,
) -> str:
    """Conversational reply for an unmatched category."""
    bullet_list = "\n".join(f"• {name}" for name in suggestions) or "• (sin categorías disponibles)"
    return (
        "🤔 **Categoría no encontrada**\n\n"
        f'No encontré la categoría "{requested}" en tu lista de categorías.\n\n'
        f"**Categorías disponibles para {_MODULE_LABELS[module]}:**\n"
        f"{bullet_list}\n\n"
        "¿Podrías elegir una de estas categorías o especificar una nueva?"
    )


class CategoryResolver:
    """
    Resolves category labels against caller candidates and the store.

    `category_type=None` means any type (goals may use either).
    """

    def __init__(self, storage: RecordStorageInterface):
        self._storage = storage

    @staticmethod
    def _type_matches(candidate_type: Optional[TransactionType], wanted: Optional[TransactionType]) -> bool:
        return wanted is None or candidate_type is None or candidate_type == wanted

    async def resolve(
        self,
        label: Optional[str],
        category_type: Optional[TransactionType] = None,
        candidates: Optional[list[CategoryRef]] = None,
    ) -> CategoryResolution:
        requested = (label or "").strip()
        key = normalize_text(requested)

        if candidates:
            typed = [c for c in candidates if self._type_matches(c.type, category_type)]
            match = next((c for c in typed if normalize_text(c.name) == key), None) if key else None

            if match is not None:
                if match.id:
                    return CategoryResolution(
                        requested=requested,
                        category=Category(
                            id=match.id,
                            name=match.name,
                            type=match.type or category_type or TransactionType.EXPENSE,
                            icon=match.icon,
                        ),
                    )
                stored = await self.find_in_store(match.name, category_type)
                if stored is not None:
                    return CategoryResolution(requested=requested, category=stored)
                logger.warning(
                    "category_candidate_not_in_store",
                    requested=requested,
                    candidate=match.name,
                )

            suggestions = [c.name for c in typed]
            if not suggestions:
                suggestions = await self._store_names(category_type)
            return CategoryResolution(requested=requested, suggestions=suggestions)

        stored = await self.find_in_store(requested, category_type) if key else None
        if stored is not None:
            return CategoryResolution(requested=requested, category=stored)

        return CategoryResolution(
            requested=requested,
            suggestions=await self._store_names(category_type),
        )

    async def find_in_store(
        self,
        label: str,
        category_type: Optional[TransactionType] = None,
    ) -> Optional[Category]:
        """
        Indexed lookup first, then a normalized scan of the catalogue
        for labels that differ only in accents or spacing.
        """
        found = await self._storage.get_category_by_name(label, category_type)
        if found is not None:
            return found

        key = normalize_text(label)
        for category in await self._storage.list_categories(category_type):
            if normalize_text(category.name) == key:
                return category
        return None

    async def _store_names(self, category_type: Optional[TransactionType]) -> list[str]:
        return [c.name for c in await self._storage.list_categories(category_type)]
