"""Filter state <-> URL fragment codec.

Fragment shapes::

    #<section-id>?<category>=<slug>[,<slug>...]&...
    #<section-id>?compare=true&a_<category>=...&b_<category>=...

Slugs are lossy; decoding reverse-matches them against the live option
lists (falling back to the static registry) and drops anything unmatched.
"""

from __future__ import annotations

import asyncio
import enum
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, List, Mapping, Optional, Tuple
from urllib.parse import parse_qsl

from core.filters import ComparisonState, FilterState, empty_filters, has_active_filters
from core.registry import FILTER_DEFINITIONS, get_filter_options

logger = logging.getLogger(__name__)

COMPARISON_FLAG = "compare"
COLUMN_PREFIXES = {"A": "a_", "B": "b_"}

FilterOptions = Mapping[str, Mapping[str, Any]]

_NON_ALNUM_RE = re.compile(r"[^a-z0-9]+")


def _slug(text: str) -> str:
    return _NON_ALNUM_RE.sub("-", text.lower()).strip("-")


def slugify_value(value: Optional[str]) -> str:
    """'["Less than 6 months"]' -> 'less-than-6-months'."""
    if not value:
        return ""
    if value.startswith('["') and value.endswith('"]'):
        value = value[2:-2]
    return _slug(value)


def generate_section_id(text: Optional[str]) -> str:
    if not text:
        return ""
    return f"section-{_slug(text)}"


def _option_values(category: str, filter_options: Optional[FilterOptions]) -> List[str]:
    live = ((filter_options or {}).get(category) or {}).get("options")
    if isinstance(live, (list, tuple)) and live:
        values = []
        for option in live:
            value = option if isinstance(option, str) else (option or {}).get("value")
            if value:
                values.append(value)
        return values
    return [o.value for o in get_filter_options(category)]


def match_slug_to_value(slug: str, category: str, filter_options: Optional[FilterOptions] = None) -> Optional[str]:
    for value in _option_values(category, filter_options):
        if slugify_value(value) == slug:
            return value
    return None


def _column_for_param(param: str) -> Tuple[str, Optional[str]]:
    for column, prefix in COLUMN_PREFIXES.items():
        if param.startswith(prefix):
            return param[len(prefix):], column
    return param, None


def _serialize_params(filters: Optional[Mapping[str, List[str]]], prefix: str = "") -> List[str]:
    params = []
    for category, values in (filters or {}).items():
        slugs = [s for s in (slugify_value(v) for v in values or []) if s]
        if slugs:
            params.append(f"{prefix}{category}={','.join(slugs)}")
    return params


def serialize_filters_to_url(
    filters: Optional[Mapping[str, List[str]]],
    section_id: Optional[str] = None,
    comparison: Optional[ComparisonState] = None,
) -> str:
    """Fragment for the given state, or ``""`` when there is nothing to record.

    In comparison mode ``filters`` is ignored and both columns are written
    with their ``a_``/``b_`` prefixes.
    """
    if comparison is not None and comparison.comparison_mode:
        params = [f"{COMPARISON_FLAG}=true"]
        params += _serialize_params(comparison.filters_a, COLUMN_PREFIXES["A"])
        params += _serialize_params(comparison.filters_b, COLUMN_PREFIXES["B"])
    else:
        params = _serialize_params(filters)

    query = f"?{'&'.join(params)}" if params else ""
    section = section_id or ""
    if not section and not query:
        return ""
    return f"#{section}{query}"


@dataclass
class ParsedURLState:
    section_id: Optional[str] = None
    filters: FilterState = field(default_factory=empty_filters)
    comparison_mode: bool = False
    filters_a: FilterState = field(default_factory=empty_filters)
    filters_b: FilterState = field(default_factory=empty_filters)

    @property
    def has_state(self) -> bool:
        if self.comparison_mode:
            return True
        return has_active_filters(self.filters)

    def comparison_state(self) -> ComparisonState:
        return ComparisonState(
            comparison_mode=self.comparison_mode,
            filters_a=self.filters_a,
            filters_b=self.filters_b,
            column_b_mounted=self.comparison_mode,
        )


def parse_filters_from_url(fragment: Optional[str], filter_options: Optional[FilterOptions] = None) -> ParsedURLState:
    if not fragment or fragment == "#":
        return ParsedURLState()

    content = fragment[1:] if fragment.startswith("#") else fragment
    section_part, _, query_part = content.partition("?")
    state = ParsedURLState(section_id=section_part or None)
    if not query_part:
        return state

    params = parse_qsl(query_part, keep_blank_values=True)
    state.comparison_mode = any(k == COMPARISON_FLAG and v == "true" for k, v in params)

    for param, slug_string in params:
        if param == COMPARISON_FLAG:
            continue
        category, column = _column_for_param(param)
        if category not in FILTER_DEFINITIONS:
            logger.debug("Unknown filter category in URL: %r", category)
            continue

        slugs = [s for s in slug_string.split(",") if s]
        values = [v for v in (match_slug_to_value(s, category, filter_options) for s in slugs) if v]
        if not values:
            if slugs:
                logger.debug("URL filter values for %r matched no options: %s", category, slugs)
            continue

        if state.comparison_mode and column == "A":
            state.filters_a[category] = values
        elif state.comparison_mode and column == "B":
            state.filters_b[category] = values
        elif not state.comparison_mode and column is None:
            state.filters[category] = values

    return state


def next_serialized_url(
    previous: str,
    filters: Optional[Mapping[str, List[str]]],
    section_id: Optional[str] = None,
    comparison: Optional[ComparisonState] = None,
) -> Optional[str]:
    """New fragment to write, or ``None`` when it equals ``previous``."""
    serialized = serialize_filters_to_url(filters, section_id, comparison)
    return None if serialized == previous else serialized


class RestoreState(str, enum.Enum):
    IDLE = "idle"
    PARSING = "parsing"
    RESTORING = "restoring"


RestoreCallback = Callable[[ParsedURLState], Awaitable[None]]


class URLRestorer:
    """Restores filter state from the fragment once live options are known.

    ``hash_changed`` re-enters parsing only from IDLE, so the side effects of
    an in-flight restoration cannot trigger another one.
    """

    def __init__(self, on_restore: RestoreCallback) -> None:
        self._on_restore = on_restore
        self.state = RestoreState.IDLE
        self.initialized = False
        self.last_serialized = ""

    @property
    def is_restoring(self) -> bool:
        return self.state is not RestoreState.IDLE

    async def options_loaded(self, fragment: Optional[str], filter_options: Optional[FilterOptions]) -> bool:
        if self.initialized or self.is_restoring or not filter_options:
            return False
        self.initialized = True
        return await self._parse_and_restore(fragment, filter_options, require_state=True)

    async def hash_changed(self, fragment: Optional[str], filter_options: Optional[FilterOptions]) -> bool:
        if self.is_restoring:
            logger.debug("Ignoring hash change during restoration")
            return False
        serialized = fragment or ""
        if serialized == self.last_serialized:
            return False
        return await self._parse_and_restore(fragment, filter_options, require_state=False)

    async def _parse_and_restore(
        self,
        fragment: Optional[str],
        filter_options: Optional[FilterOptions],
        require_state: bool,
    ) -> bool:
        self.state = RestoreState.PARSING
        parsed = parse_filters_from_url(fragment, filter_options)
        if require_state and not parsed.has_state:
            self.state = RestoreState.IDLE
            return False

        self.state = RestoreState.RESTORING
        self.last_serialized = serialize_filters_to_url(
            parsed.filters, parsed.section_id, parsed.comparison_state()
        )
        try:
            await self._on_restore(parsed)
        finally:
            self.state = RestoreState.IDLE
        return True


class DebouncedURLWriter:
    """Coalesces URL writes; only the last request within ``delay`` seconds is written."""

    def __init__(self, write: Callable[[str], None], delay: float = 0.15, initial: str = "") -> None:
        self._write = write
        self.delay = delay
        self.last_serialized = initial
        self._pending: Optional[asyncio.TimerHandle] = None

    def request(
        self,
        filters: Optional[Mapping[str, List[str]]],
        section_id: Optional[str] = None,
        comparison: Optional[ComparisonState] = None,
    ) -> None:
        self.cancel()
        loop = asyncio.get_running_loop()
        self._pending = loop.call_later(self.delay, self._flush, filters, section_id, comparison)

    def _flush(
        self,
        filters: Optional[Mapping[str, List[str]]],
        section_id: Optional[str],
        comparison: Optional[ComparisonState],
    ) -> None:
        self._pending = None
        serialized = next_serialized_url(self.last_serialized, filters, section_id, comparison)
        if serialized is None:
            return
        self.last_serialized = serialized
        self._write(serialized)

    @property
    def pending(self) -> bool:
        return self._pending is not None

    def cancel(self) -> None:
        if self._pending is not None:
            self._pending.cancel()
            self._pending = None
