"""Dashboard controller: filter state, comparison mode, fetch sequencing, URL sync.

Every mutation computes the next filter state synchronously and only then
starts fetching. Refreshes carry a sequence number; a response that resolves
after a newer refresh has started is discarded.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, replace
from typing import Any, Callable, Dict, List, Optional

from core.compiler import ALL_SEGMENT
from core.config import Settings, settings as default_settings
from core.engine import EngineError, EngineInitError, QueryResult, SurveyEngine
from core.filters import (
    Column,
    ComparisonState,
    FilterState,
    empty_filters,
    overlay_filters,
    toggle_filter_value,
)
from core.ordering import (
    ORDINAL_QUESTIONS,
    BaselineOrder,
    apply_baseline_order,
    baseline_from_dashboard,
    baseline_from_rows,
    baseline_from_themes,
    sort_by_ordinal_order,
)
from core.registry import get_preset
from core.urlstate import DebouncedURLWriter, ParsedURLState, URLRestorer

logger = logging.getLogger(__name__)

BASELINE_QUANTITATIVE_QUESTIONS = (
    "VPeNQ6", "2AWoaM", "rO4YaX", "476OJ5", "ZO7ede", "kGozGZ",
    "erJzEk", "089kZ6", "8LBr6x", "Dp8ax5", "Ma4BjA", "NXjP0j",
)
BASELINE_QUALITATIVE_QUESTIONS = (
    "gqlzqJ", "476O9O", "6KlPdY", "ElR6ZN", "JlPolX", "OX26KK", "P9xrbb", "RoNAMl",
    "XoaQoz", "a4LqQX", "joRj6E", "oRPZqP", "oRPqY1", "xDqAMo", "xDqzdv", "y4Q14d",
)

CHART_KINDS = ("quantitative", "qualitative", "matrix")


def default_section_counts() -> Dict[str, Dict[str, int]]:
    return {"section1": {"filtered": 466, "total": 466}, "section2": {"filtered": 432, "total": 432}}


@dataclass(frozen=True)
class ScrollMemento:
    position: float = 0.0
    focused_chart_id: Optional[str] = None


class DashboardController:
    def __init__(
        self,
        engine: SurveyEngine,
        settings: Optional[Settings] = None,
        on_url_change: Optional[Callable[[str], None]] = None,
        segment: str = ALL_SEGMENT,
    ) -> None:
        settings = settings or default_settings
        self.engine = engine
        self.segment = segment
        self.filters: FilterState = empty_filters()
        self.comparison = ComparisonState()
        self.active_preset: Optional[str] = None
        self.section_id: Optional[str] = None

        self.initial_loading = True
        self.filter_loading = False
        self.error: Optional[str] = None

        self.filtered_count = 0
        self.column_counts: Dict[str, int] = {"A": 0, "B": 0}
        self.dashboard: Optional[QueryResult] = None
        self.section_counts = default_section_counts()
        self.baseline_orders: BaselineOrder = {}
        self.filter_options: Dict[str, Dict[str, Any]] = {}
        self.segments: List[Dict[str, Any]] = []

        self.viewport = ScrollMemento()
        self.saved_scroll: Optional[ScrollMemento] = None

        self.fragment = ""
        self._on_url_change = on_url_change
        self._sequence = 0
        self._column_sequence = {"A": 0, "B": 0}
        self.url_writer = DebouncedURLWriter(self._write_url, delay=settings.url_debounce_seconds)
        self.restorer = URLRestorer(self._restore)

    # loading

    async def load(self, fragment: Optional[str] = None) -> None:
        """Initialize the engine, capture baselines, fetch the unfiltered view, then restore the URL."""
        try:
            await self.engine.initialize()
            await self._capture_baselines()
            self.filter_options = self.engine.get_filter_options()
            self.segments = self.engine.get_segments()
            await self._refresh(self.filters)
        except EngineInitError as exc:
            self.error = str(exc)
            return
        except Exception as exc:
            logger.exception("Initial dashboard load failed")
            self.error = str(exc)
            return
        finally:
            self.initial_loading = False

        if fragment:
            await self.restore_from_url(fragment)

    async def _capture_baselines(self) -> None:
        if self.baseline_orders:
            return
        quantitative = [q for q in BASELINE_QUANTITATIVE_QUESTIONS if q not in ORDINAL_QUESTIONS]
        quant_results = await asyncio.gather(*(self.engine.get_quantitative_data(q) for q in quantitative))
        qual_results = await asyncio.gather(
            *(self.engine.get_qualitative_data(q) for q in BASELINE_QUALITATIVE_QUESTIONS)
        )
        orders: BaselineOrder = {}
        for question_id, result in zip(quantitative, quant_results):
            if result.ok and result.data:
                orders[question_id] = baseline_from_rows(result.data)
        for question_id, result in zip(BASELINE_QUALITATIVE_QUESTIONS, qual_results):
            if result.ok and result.data:
                orders[question_id] = baseline_from_themes(result.data)

        dashboard = await self.engine.get_dashboard_data(empty_filters(), self.segment)
        if dashboard.ok and dashboard.data:
            orders.update(baseline_from_dashboard(dashboard.data))
        self.baseline_orders = orders
        logger.debug("Captured baseline orders for %d charts", len(orders))

    # fetching

    async def _refresh(self, filters: FilterState) -> bool:
        self._sequence += 1
        sequence = self._sequence
        self.filter_loading = True
        try:
            count, dashboard, sections = await asyncio.gather(
                self.engine.get_filtered_count(filters),
                self.engine.get_dashboard_data(filters, self.segment),
                self.engine.get_section_counts(filters),
            )
        except EngineError:
            logger.exception("Dashboard refresh failed")
            if sequence == self._sequence:
                self.filter_loading = False
            return False

        if sequence != self._sequence:
            logger.debug("Discarding stale refresh %d (latest is %d)", sequence, self._sequence)
            return False
        self.filtered_count = count
        self.dashboard = dashboard
        self.section_counts = sections
        self.filter_loading = False
        return True

    async def _refresh_column(self, column: Column) -> bool:
        self._column_sequence[column] += 1
        sequence = self._column_sequence[column]
        try:
            count = await self.engine.get_filtered_count(self.comparison.column_filters(column))
        except EngineError:
            logger.exception("Column %s count failed", column)
            return False
        if sequence != self._column_sequence[column]:
            return False
        self.column_counts[column] = count
        return True

    @property
    def current_filters(self) -> FilterState:
        if not self.comparison.comparison_mode:
            return self.filters
        return self.comparison.column_filters(self.comparison.active_column)

    # scroll memento

    def set_viewport(self, position: float, focused_chart_id: Optional[str] = None) -> None:
        self.viewport = ScrollMemento(position, focused_chart_id)

    def _save_scroll(self) -> None:
        self.saved_scroll = self.viewport

    def take_scroll_memento(self) -> Optional[ScrollMemento]:
        memento, self.saved_scroll = self.saved_scroll, None
        return memento

    # URL sync

    def _write_url(self, fragment: str) -> None:
        self.fragment = fragment
        self.restorer.last_serialized = fragment
        if self._on_url_change is not None:
            self._on_url_change(fragment)

    def _request_url_update(self) -> None:
        comparison = self.comparison if self.comparison.comparison_mode else None
        self.url_writer.request(self.filters, self.section_id, comparison)

    def set_section(self, section_id: Optional[str]) -> None:
        self.section_id = section_id or None
        self._request_url_update()

    async def restore_from_url(self, fragment: Optional[str]) -> bool:
        return await self.restorer.options_loaded(fragment, self.filter_options)

    async def on_hash_change(self, fragment: Optional[str]) -> bool:
        return await self.restorer.hash_changed(fragment, self.filter_options)

    async def _restore(self, parsed: ParsedURLState) -> None:
        logger.debug("Restoring state from URL: %s", self.restorer.last_serialized)
        self.section_id = parsed.section_id
        self.url_writer.cancel()
        self.url_writer.last_serialized = self.restorer.last_serialized
        self.fragment = self.restorer.last_serialized
        self.active_preset = None
        if parsed.comparison_mode:
            self.comparison = parsed.comparison_state()
            await asyncio.gather(self._refresh_column("A"), self._refresh_column("B"))
            return
        self.filters = parsed.filters
        self.comparison = replace(self.comparison, comparison_mode=False)
        await self._refresh(parsed.filters)

    # mutations

    async def _apply_single(self, filters: FilterState, preset: Optional[str] = None) -> bool:
        self._save_scroll()
        self.filters = filters
        self.active_preset = preset
        self._request_url_update()
        return await self._refresh(filters)

    async def _apply_column(self, filters: FilterState) -> bool:
        column = self.comparison.active_column
        self.comparison = self.comparison.with_column(column, filters)
        self._request_url_update()
        return await self._refresh_column(column)

    async def toggle_filter(self, category: str, value: str, checked: bool) -> bool:
        current = self.current_filters
        if category not in current:
            logger.warning("Filter category %r not found in filter state", category)
            return False
        updated = toggle_filter_value(current, category, value, checked)
        if self.comparison.comparison_mode:
            return await self._apply_column(updated)
        return await self._apply_single(updated)

    async def clear_filters(self) -> bool:
        if self.comparison.comparison_mode:
            return await self._apply_column(empty_filters())
        return await self._apply_single(empty_filters())

    async def apply_preset(self, key: str) -> bool:
        preset = get_preset(key)
        if preset is None:
            logger.warning("Unknown segment preset %r", key)
            return False
        filters = overlay_filters(preset.filters)
        if self.comparison.comparison_mode:
            return await self._apply_column(filters)
        return await self._apply_single(filters, preset=key)

    async def toggle_comparison_mode(self) -> None:
        if not self.comparison.comparison_mode:
            self.comparison = ComparisonState(
                comparison_mode=True,
                filters_a=self.filters,
                filters_b=empty_filters(),
                active_column="A",
                column_b_mounted=True,
            )
            self._request_url_update()
            await asyncio.gather(self._refresh_column("A"), self._refresh_column("B"))
            return

        adopted = self.comparison.filters_a
        self.comparison = replace(self.comparison, comparison_mode=False)
        await self._apply_single(adopted)

    def set_active_column(self, column: Column) -> None:
        if column not in ("A", "B"):
            raise ValueError(f"Unknown comparison column: {column!r}")
        self.comparison = replace(self.comparison, active_column=column)

    # chart data

    def _chart_filters(self, column: Optional[Column]) -> FilterState:
        if self.comparison.comparison_mode and column is not None:
            return self.comparison.column_filters(column)
        return self.filters

    async def chart_data(self, kind: str, question_id: str, column: Optional[Column] = None) -> QueryResult:
        """Breakdown rows for one chart, ordered against the captured baseline."""
        if kind not in CHART_KINDS:
            raise ValueError(f"Unknown chart kind: {kind!r}")
        filters = self._chart_filters(column)
        baseline = self.baseline_orders.get(question_id)

        try:
            if kind == "quantitative":
                result = await self.engine.get_quantitative_data(question_id, filters)
            elif kind == "qualitative":
                result = await self.engine.get_qualitative_data(question_id, filters)
            else:
                return await self.engine.get_matrix_data(question_id, filters)
        except EngineError as exc:
            logger.error("Chart data for %s unavailable: %s", question_id, exc)
            return QueryResult(error=str(exc))

        if kind == "quantitative":
            if result.ok and question_id in ORDINAL_QUESTIONS:
                result.data = sort_by_ordinal_order(result.data, question_id, key="answer_text")
            elif result.ok and baseline:
                result.data = apply_baseline_order(result.data, baseline)
        elif result.ok and baseline:
            result.data = apply_baseline_order(result.data, baseline, key="theme_name")
        return result
