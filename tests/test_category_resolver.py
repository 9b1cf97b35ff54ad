"""
Tests for category matching against caller candidates and the store.
"""

import pytest

from zenio.categories import CategoryResolver, category_not_found_message, normalize_text
from zenio.models.conversation import CategoryRef
from zenio.models.records import Category, EntityModule, TransactionType


class TestNormalizeText:

    def test_accents_case_and_spaces(self):
        assert normalize_text("  Súper   MERCADO ") == "super mercado"
        assert normalize_text("Educación") == normalize_text("educacion")

    def test_leading_icon_is_ignored(self):
        assert normalize_text("🚗 Transporte") == "transporte"
        assert normalize_text("🍽️ Comida y restaurantes") == "comida y restaurantes"
        assert normalize_text("Otros gastos 📦") == "otros gastos 📦"

    def test_empty(self):
        assert normalize_text(None) == ""
        assert normalize_text("") == ""


class TestResolveFromStore:
    """No candidates: the stored catalogue decides."""

    @pytest.mark.asyncio
    async def test_exact_name(self, records):
        resolution = await CategoryResolver(records).resolve("Transporte", TransactionType.EXPENSE)
        assert resolution.found
        assert resolution.category.name == "Transporte"

    @pytest.mark.asyncio
    async def test_accent_insensitive(self, records):
        """'educacion' finds 'Educación' through the normalized scan."""
        resolution = await CategoryResolver(records).resolve("educacion", TransactionType.EXPENSE)
        assert resolution.found
        assert resolution.category.name == "Educación"

    @pytest.mark.asyncio
    async def test_icon_label(self, records):
        """The '🚗 Transporte' label shown to the assistant resolves to the plain name."""
        resolution = await CategoryResolver(records).resolve("🚗 Transporte", TransactionType.EXPENSE)
        assert resolution.found
        assert resolution.category.name == "Transporte"

    @pytest.mark.asyncio
    async def test_type_is_respected(self, records):
        """'Salario' is an income category and is not offered for expenses."""
        resolution = await CategoryResolver(records).resolve("Salario", TransactionType.EXPENSE)
        assert not resolution.found
        assert "Salario" not in resolution.suggestions
        assert "Transporte" in resolution.suggestions

    @pytest.mark.asyncio
    async def test_unknown_suggests_catalogue(self, records):
        resolution = await CategoryResolver(records).resolve("Viajes", TransactionType.INCOME)
        assert resolution.requested == "Viajes"
        assert resolution.category is None
        assert set(resolution.suggestions) == {"Salario", "Freelance", "Inversiones", "Otros ingresos"}

    @pytest.mark.asyncio
    async def test_no_fuzzy_matching(self, records):
        resolution = await CategoryResolver(records).resolve("Transport", TransactionType.EXPENSE)
        assert not resolution.found

    @pytest.mark.asyncio
    async def test_any_type(self, records):
        resolution = await CategoryResolver(records).resolve("salario", None)
        assert resolution.found
        assert resolution.category.type == TransactionType.INCOME

    @pytest.mark.asyncio
    async def test_blank_label(self, records):
        resolution = await CategoryResolver(records).resolve("  ", TransactionType.EXPENSE)
        assert not resolution.found
        assert resolution.suggestions


class TestResolveFromCandidates:
    """Caller-supplied candidates narrow the match."""

    @pytest.mark.asyncio
    async def test_candidate_with_id_is_trusted(self, records):
        candidates = [CategoryRef(id="cat-77", name="Mascotas", type=TransactionType.EXPENSE)]
        resolution = await CategoryResolver(records).resolve("mascotas", TransactionType.EXPENSE, candidates)
        assert resolution.found
        assert resolution.category.id == "cat-77"

    @pytest.mark.asyncio
    async def test_icon_label_matches_candidate(self, records):
        candidates = [CategoryRef(id="cat-9", name="Salud", type=TransactionType.EXPENSE, icon="🏥")]
        resolution = await CategoryResolver(records).resolve(candidates[0].label, TransactionType.EXPENSE, candidates)
        assert resolution.category.id == "cat-9"

    @pytest.mark.asyncio
    async def test_name_only_candidate_is_looked_up(self, records):
        stored = await records.get_category_by_name("Transporte")
        candidates = [CategoryRef(name="Transporte")]
        resolution = await CategoryResolver(records).resolve("transporte", TransactionType.EXPENSE, candidates)
        assert resolution.category.id == stored.id

    @pytest.mark.asyncio
    async def test_non_matching_candidates_become_suggestions(self, records):
        candidates = [CategoryRef(name="Transporte"), CategoryRef(name="Salud")]
        resolution = await CategoryResolver(records).resolve("Viajes", TransactionType.EXPENSE, candidates)
        assert not resolution.found
        assert resolution.suggestions == ["Transporte", "Salud"]

    @pytest.mark.asyncio
    async def test_candidate_missing_from_store_is_not_found(self, records):
        candidates = [CategoryRef(name="Mascotas")]
        resolution = await CategoryResolver(records).resolve("Mascotas", TransactionType.EXPENSE, candidates)
        assert not resolution.found
        assert resolution.suggestions == ["Mascotas"]

    @pytest.mark.asyncio
    async def test_candidates_of_other_type_fall_back_to_store(self, records):
        candidates = [CategoryRef(name="Salario", type=TransactionType.INCOME)]
        resolution = await CategoryResolver(records).resolve("Viajes", TransactionType.EXPENSE, candidates)
        assert "Transporte" in resolution.suggestions


class TestNotFoundMessage:

    def test_lists_suggestions(self):
        message = category_not_found_message("Viajes", ["Transporte", "Salud"], EntityModule.BUDGETS)
        assert '"Viajes"' in message
        assert "• Transporte\n• Salud" in message
        assert "presupuestos" in message

    def test_empty_suggestions(self):
        message = category_not_found_message("Viajes", [], EntityModule.GOALS)
        assert "sin categorías disponibles" in message


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
