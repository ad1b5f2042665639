"""Tests for parameter reconciliation."""

import pytest
import pytest_asyncio

from catalog_sync.clients.records import ParameterRecord, ScrapedProduct
from catalog_sync.domain.entities import Category, ParameterOption
from catalog_sync.sync.lookup import IdentityResolver
from catalog_sync.sync.parameters import (
    DEFAULT_PARAMETER_ORDER,
    ParameterReconciler,
    collect_parameter_values,
    extract_parameters,
    parameter_names,
    parameter_order,
)


def en(text: str) -> list[dict[str, str]]:
    return [{"language_code": "en", "text": text}]


def parameter_record(external_id: int, name: str, options: list[tuple[int, str]]) -> ParameterRecord:
    return ParameterRecord.from_api_response(
        {
            "id": external_id,
            "name": en(name),
            "options": [{"id": oid, "name": en(text), "order": i} for i, (oid, text) in enumerate(options)],
        }
    )


@pytest_asyncio.fixture
async def categories(store) -> tuple[Category, Category]:
    first = await store.save_category(Category(slug="cameras", names={"en": "Cameras"}, external_id=1))
    second = await store.save_category(Category(slug="lenses", names={"en": "Lenses"}, external_id=2))
    return first, second


class TestScrapedParameterHelpers:
    """Tests for parameter inference helpers."""

    def test_known_and_generic_names(self) -> None:
        assert parameter_names("cvjat") == {"bg": "Цвят", "en": "Color"}
        assert parameter_names("frame_rate") == {"bg": "Frame rate", "en": "Frame rate"}

    def test_order(self) -> None:
        assert parameter_order("model") == 1
        assert parameter_order("unknown") == DEFAULT_PARAMETER_ORDER

    def test_extract_prefers_prop_fields(self) -> None:
        item = ScrapedProduct.from_api_response(
            {"sku": "A", "name": "A", "prop_color": "Black", "cvjat": "Бял"}
        )
        assert extract_parameters(item) == {"color": "Black"}

    def test_extract_falls_back_to_bare_keys(self) -> None:
        item = ScrapedProduct.from_api_response({"sku": "A", "name": "A", "cvjat": "Бял"})
        assert extract_parameters(item) == {"cvjat": "Бял"}

    def test_collect_distinct_values(self) -> None:
        items = [
            ScrapedProduct.from_api_response({"sku": str(i), "name": "x", "prop_color": color})
            for i, color in enumerate(["Black", "black ", "White", "Black"])
        ]
        assert collect_parameter_values(items) == {"color": ["Black", "White"]}


class TestStructuredParameters:
    """Tests for structured parameter reconciliation."""

    @pytest.mark.asyncio
    async def test_creates_parameters_and_options(self, store) -> None:
        category = await store.save_category(Category(slug="c", names={"en": "C"}, external_id=1))
        reconciler = ParameterReconciler(store)

        stats = await reconciler.sync_structured_category(
            category,
            [parameter_record(7, "Resolution", [(70, "2MP"), (71, "4MP")])],
            await IdentityResolver.create(store),
        )

        assert stats.created == 3
        parameter = await store.find_parameter(7, category.id)
        assert parameter.name == "Resolution"
        options = await store.list_options(parameter.id)
        assert [o.name for o in options] == ["2MP", "4MP"]

    @pytest.mark.asyncio
    async def test_same_external_id_in_two_categories(self, store, categories) -> None:
        """Parameter identity is (external id, category), option identity is (external id, parameter)."""
        first, second = categories
        reconciler = ParameterReconciler(store)
        records = [parameter_record(7, "Color", [(70, "Black")])]

        await reconciler.sync_structured_category(first, records, await IdentityResolver.create(store))
        await reconciler.sync_structured_category(second, records, await IdentityResolver.create(store))

        assert len(store.parameters) == 2
        assert len(store.options) == 2

    @pytest.mark.asyncio
    async def test_rerun_updates_in_place(self, store) -> None:
        category = await store.save_category(Category(slug="c", names={"en": "C"}, external_id=1))
        reconciler = ParameterReconciler(store)
        await reconciler.sync_structured_category(
            category, [parameter_record(7, "Colour", [(70, "Black")])], await IdentityResolver.create(store)
        )

        stats = await reconciler.sync_structured_category(
            category, [parameter_record(7, "Color", [(70, "Black")])], await IdentityResolver.create(store)
        )

        assert stats.created == 0
        assert stats.updated == 2
        assert (await store.find_parameter(7, category.id)).name == "Color"


class TestScrapedParameters:
    """Tests for inferred parameters."""

    @pytest.mark.asyncio
    async def test_repeated_value_creates_one_parameter_and_one_option(self, store) -> None:
        category = await store.save_category(Category(slug="c", names={"en": "C"}, parent_id=None))
        items = [
            ScrapedProduct.from_api_response({"sku": f"S{i}", "name": "x", "prop_color": "Black"})
            for i in range(50)
        ]

        await ParameterReconciler(store).sync_scraped_category(category, collect_parameter_values(items))

        assert len(store.parameters) == 1
        parameter = next(iter(store.parameters.values()))
        assert parameter.scraped_key == "color"
        assert len(store.options) == 1
        assert next(iter(store.options.values())).names["en"] == "Black"

    @pytest.mark.asyncio
    async def test_ensure_option_matches_case_insensitively(self, store) -> None:
        category = await store.save_category(Category(slug="c", names={"en": "C"}))
        reconciler = ParameterReconciler(store)
        parameter, created = await reconciler.ensure_parameter(category.id, "color")
        await store.save_option(ParameterOption(parameter_id=parameter.id, names={"bg": "Черен", "en": "Black"}))

        option, created = await reconciler.ensure_option(parameter, "BLACK")

        assert created is False
        assert option.names["en"] == "Black"

    @pytest.mark.asyncio
    async def test_new_options_are_appended(self, store) -> None:
        category = await store.save_category(Category(slug="c", names={"en": "C"}))
        reconciler = ParameterReconciler(store)
        parameter, _ = await reconciler.ensure_parameter(category.id, "color")

        first, _ = await reconciler.ensure_option(parameter, "Black")
        second, _ = await reconciler.ensure_option(parameter, "White")

        assert (first.order, second.order) == (0, 1)

    @pytest.mark.asyncio
    async def test_ensure_parameter_is_scoped_per_category(self, store, categories) -> None:
        first, second = categories
        reconciler = ParameterReconciler(store)

        a, created_a = await reconciler.ensure_parameter(first.id, "color")
        b, created_b = await reconciler.ensure_parameter(second.id, "color")
        again, created_again = await reconciler.ensure_parameter(first.id, "color")

        assert created_a and created_b and not created_again
        assert a.id != b.id
        assert again.id == a.id
