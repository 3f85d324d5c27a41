"""
Tests for FilterState helpers, the registry and the continent rollup.

Run with: pytest tests/test_filters.py -v
"""
from core.continents import get_continent_for_country, get_country_codes_for_continents
from core.filters import (
    ComparisonState,
    build_filter_summary,
    count_active_filters,
    empty_filters,
    exclude_categories,
    filters_equal,
    has_active_filters,
    normalize_filters,
    overlay_filters,
    toggle_filter_value,
)
from core.registry import (
    FILTER_DEFINITIONS,
    QUESTION_TO_FILTER,
    SEGMENT_PRESETS,
    get_all_filter_categories,
    get_preset,
    get_question_metadata,
    is_multi_select_filter,
)

CATEGORY_ORDER = [
    "continent",
    "experience",
    "purpose",
    "orgSize",
    "industry",
    "influence",
    "programming",
    "complexity",
    "production",
    "instances",
    "useCases",
    "environment",
    "emailDomain",
]


class TestRegistry:
    def test_category_order_is_stable(self):
        assert get_all_filter_categories() == CATEGORY_ORDER

    def test_question_lookup_is_reversible(self):
        for key, category in FILTER_DEFINITIONS.items():
            assert QUESTION_TO_FILTER[category.question_id] == key

    def test_only_continent_is_special(self):
        special = [k for k, c in FILTER_DEFINITIONS.items() if c.is_special_filter]
        assert special == ["continent"]

    def test_multi_select_filter_questions(self):
        assert is_multi_select_filter("VPeNQ6")
        assert is_multi_select_filter("476OJ5")
        assert not is_multi_select_filter("2AWoaM")

    def test_question_metadata(self):
        metadata = get_question_metadata()
        assert metadata["ElR6d2"] == "Experience Level"
        assert len(metadata) == 13

    def test_presets_only_name_known_categories(self):
        assert len(SEGMENT_PRESETS) == 4
        for preset in SEGMENT_PRESETS.values():
            assert set(preset.filters) <= set(FILTER_DEFINITIONS)

    def test_unknown_preset(self):
        assert get_preset("nope") is None


class TestFilterState:
    def test_empty_state_has_every_category(self):
        assert list(empty_filters()) == CATEGORY_ORDER
        assert not has_active_filters(empty_filters())

    def test_normalize_drops_unknown_keys_and_duplicates(self):
        filters = normalize_filters({"industry": ["Food", "Food", None, ""], "colour": ["blue"]})
        assert filters["industry"] == ["Food"]
        assert "colour" not in filters
        assert list(filters) == CATEGORY_ORDER

    def test_normalize_accepts_single_string(self):
        assert normalize_filters({"industry": "Food"})["industry"] == ["Food"]

    def test_toggle_on_and_off(self):
        start = empty_filters()
        checked = toggle_filter_value(start, "industry", "Food", True)
        assert checked["industry"] == ["Food"]
        assert start["industry"] == []
        again = toggle_filter_value(checked, "industry", "Food", True)
        assert again["industry"] == ["Food"]
        assert toggle_filter_value(checked, "industry", "Food", False)["industry"] == []

    def test_toggle_unknown_category_is_noop(self):
        start = empty_filters()
        assert toggle_filter_value(start, "colour", "blue", True) is start

    def test_overlay_resets_other_categories(self):
        preset = get_preset("hobby-segment")
        filters = overlay_filters(preset.filters)
        assert filters["purpose"] == [
            "Hobbyist/Personal projects (home automation, learning, experiments)"
        ]
        assert count_active_filters(filters) == 1

    def test_exclude_categories(self):
        filters = normalize_filters({"experience": ['["1 to 2 years"]'], "industry": ["Food"]})
        trimmed = exclude_categories(filters, "experience")
        assert "experience" not in trimmed
        assert trimmed["industry"] == ["Food"]

    def test_equality_ignores_value_order(self):
        a = normalize_filters({"industry": ["Food", "Automotive"]})
        b = normalize_filters({"industry": ["Automotive", "Food"]})
        assert filters_equal(a, b)
        assert not filters_equal(a, empty_filters())
        assert filters_equal(None, None)

    def test_summary(self):
        assert build_filter_summary(empty_filters()) == "No active filters"
        filters = normalize_filters({"industry": ["Food", "Automotive"], "continent": ["Europe"]})
        assert build_filter_summary(filters) == "Active filters: Continent (1), Industry (2)"


class TestComparisonState:
    def test_defaults(self):
        state = ComparisonState()
        assert not state.comparison_mode
        assert state.active_column == "A"
        assert not state.column_b_mounted

    def test_with_column_replaces_one_side(self):
        state = ComparisonState(comparison_mode=True)
        updated = state.with_column("B", normalize_filters({"industry": ["Food"]}))
        assert updated.column_filters("B")["industry"] == ["Food"]
        assert updated.column_filters("A") == empty_filters()
        assert state.filters_b == empty_filters()


class TestContinents:
    def test_codes_are_unioned(self):
        codes = get_country_codes_for_continents(["Oceania", "Oceania", "North America"])
        assert "36" in codes
        assert "840" in codes
        assert len(codes) == len(set(codes))

    def test_reverse_lookup(self):
        assert get_continent_for_country(276) == "Europe"
        assert get_continent_for_country(" 840 ") == "North America"
        assert get_continent_for_country("0") is None
