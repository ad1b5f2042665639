"""Tests for slug helpers and the category alias table."""

import json
from pathlib import Path

import pytest

from catalog_sync.sync.aliases import CategoryAliases
from catalog_sync.sync.slugs import make_slug, normalize_text, unique_slug


class TestSlugs:
    """Tests for text normalization and slug generation."""

    def test_normalize_text(self) -> None:
        assert normalize_text("  IP   Cameras ") == "ip cameras"
        assert normalize_text(None) == ""

    def test_make_slug(self) -> None:
        assert make_slug("IP Cameras") == "ip-cameras"
        assert make_slug("") == ""

    def test_make_slug_transliterates(self) -> None:
        slug = make_slug("Камери")
        assert slug
        assert slug.isascii()

    @pytest.mark.asyncio
    async def test_unique_slug_appends_suffix(self) -> None:
        taken = {"cameras", "cameras-2"}

        async def is_taken(slug: str) -> bool:
            return slug in taken

        assert await unique_slug("cameras", is_taken) == "cameras-3"
        assert await unique_slug("lenses", is_taken) == "lenses"

    @pytest.mark.asyncio
    async def test_unique_slug_fallback(self) -> None:
        async def is_taken(slug: str) -> bool:
            return False

        assert await unique_slug("", is_taken) == "category"


class TestCategoryAliases:
    """Tests for the manual alias table."""

    def test_resolve_is_case_insensitive(self) -> None:
        aliases = CategoryAliases({"IP Камери": "ip-cameras"})
        assert aliases.resolve("ip  камери") == "ip-cameras"
        assert aliases.resolve("Other") is None
        assert len(aliases) == 1

    def test_from_missing_file(self, tmp_path) -> None:
        assert len(CategoryAliases.from_file(tmp_path / "missing.json")) == 0
        assert len(CategoryAliases.from_file(None)) == 0

    def test_from_file(self, tmp_path) -> None:
        path = tmp_path / "aliases.json"
        path.write_text(json.dumps({"DVR": "recorders"}), encoding="utf-8")
        assert CategoryAliases.from_file(path).resolve("dvr") == "recorders"

    def test_from_file_rejects_non_object(self, tmp_path) -> None:
        path = tmp_path / "aliases.json"
        path.write_text("[1, 2]", encoding="utf-8")
        with pytest.raises(ValueError):
            CategoryAliases.from_file(path)

    def test_shipped_alias_file_loads(self) -> None:
        path = Path(__file__).resolve().parents[2] / "config" / "category_aliases.json"
        assert len(CategoryAliases.from_file(path)) > 0
