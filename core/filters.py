from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import Dict, Iterable, List, Literal, Mapping, Optional

from core.registry import FILTER_DEFINITIONS, get_filter_label

logger = logging.getLogger(__name__)

FilterState = Dict[str, List[str]]
Column = Literal["A", "B"]


def empty_filters() -> FilterState:
    return {key: [] for key in FILTER_DEFINITIONS}


def _as_str_list(values: Optional[Iterable[object]]) -> List[str]:
    if not values:
        return []
    if isinstance(values, str):
        values = [values]
    out: List[str] = []
    for v in values:
        if v is None:
            continue
        s = str(v)
        if s and s not in out:
            out.append(s)
    return out


def normalize_filters(raw: Optional[Mapping[str, object]]) -> FilterState:
    """Full FilterState from an arbitrary mapping; unknown categories are dropped."""
    filters = empty_filters()
    for key, values in (raw or {}).items():
        if key not in filters:
            logger.debug("Ignoring unknown filter category %r", key)
            continue
        filters[key] = _as_str_list(values)  # type: ignore[arg-type]
    return filters


def toggle_filter_value(filters: FilterState, category: str, value: str, checked: bool) -> FilterState:
    """Next FilterState after a single checkbox toggle. The input is not mutated."""
    if category not in filters:
        logger.warning("Filter category %r not found in filter state", category)
        return filters
    current = filters[category]
    if checked:
        updated = current if value in current else [*current, value]
    else:
        updated = [v for v in current if v != value]
    return {**filters, category: updated}


def overlay_filters(partial: Mapping[str, Iterable[object]]) -> FilterState:
    """Empty state with only the named categories populated (preset application)."""
    filters = empty_filters()
    for key, values in partial.items():
        if key in filters:
            filters[key] = _as_str_list(values)
    return filters


def exclude_categories(filters: Mapping[str, List[str]], *keys: str) -> FilterState:
    return {k: list(v) for k, v in filters.items() if k not in keys}


def count_active_filters(filters: Optional[Mapping[str, List[str]]]) -> int:
    return sum(len(v) for v in (filters or {}).values() if isinstance(v, list))


def has_active_filters(filters: Optional[Mapping[str, List[str]]]) -> bool:
    return any(v for v in (filters or {}).values())


def filters_equal(a: Optional[Mapping[str, List[str]]], b: Optional[Mapping[str, List[str]]]) -> bool:
    if a is None or b is None:
        return a is b
    if set(a) != set(b):
        return False
    return all(sorted(a[k] or []) == sorted(b[k] or []) for k in a)


def build_filter_summary(filters: Mapping[str, List[str]]) -> str:
    active = [f"{get_filter_label(k)} ({len(v)})" for k, v in filters.items() if v]
    return f"Active filters: {', '.join(active)}" if active else "No active filters"


@dataclass(frozen=True)
class ComparisonState:
    comparison_mode: bool = False
    filters_a: FilterState = field(default_factory=empty_filters)
    filters_b: FilterState = field(default_factory=empty_filters)
    active_column: Column = "A"
    column_b_mounted: bool = False

    def column_filters(self, column: Column) -> FilterState:
        return self.filters_a if column == "A" else self.filters_b

    def with_column(self, column: Column, filters: FilterState) -> "ComparisonState":
        if column == "A":
            return replace(self, filters_a=filters)
        return replace(self, filters_b=filters)
