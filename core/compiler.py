"""FilterState -> SQL WHERE clause compiler."""

from __future__ import annotations

import logging
from typing import List, Mapping, Optional

from core.continents import get_country_codes_for_continents
from core.predicates import (
    OUTER_ALIAS,
    build_exists_clause,
    build_numeric_exists_clause,
    is_valid_question_id,
    validate_sql_clause,
)
from core.registry import FILTER_DEFINITIONS, SEGMENT_DEFINITIONS, SegmentCriterion, is_multi_select_filter

logger = logging.getLogger(__name__)

NEUTRAL_CLAUSE = "1=1"
DEFAULT_SCHEMA_PREFIX = "survey."
ALL_SEGMENT = "all"


def is_trivial_clause(clause: Optional[str]) -> bool:
    return not clause or not clause.strip() or clause.strip() == NEUTRAL_CLAUSE


def _category_predicate(key: str, values: List[str], schema_prefix: str) -> str:
    category = FILTER_DEFINITIONS[key]
    if category.is_special_filter:
        codes = get_country_codes_for_continents(values)
        if not codes:
            return ""
        return build_numeric_exists_clause(category.question_id, codes, schema_prefix)
    return build_exists_clause(
        category.question_id,
        values,
        is_multi_select=is_multi_select_filter(category.question_id),
        schema_prefix=schema_prefix,
    )


def compile_where_clause(
    filters: Optional[Mapping[str, List[str]]],
    schema_prefix: str = DEFAULT_SCHEMA_PREFIX,
) -> str:
    """Conjunction of one EXISTS predicate per active category.

    Categories are visited in registry order. Returns ``NEUTRAL_CLAUSE`` when
    nothing is active and ``""`` when the joined clause fails validation;
    callers treat both as "no filters".
    """
    filters = filters or {}
    conditions: List[str] = []
    for key in FILTER_DEFINITIONS:
        values = [v for v in (filters.get(key) or []) if v is not None and v != ""]
        if not values:
            continue
        predicate = _category_predicate(key, values, schema_prefix).strip()
        if predicate:
            conditions.append(predicate)

    if not conditions:
        return NEUTRAL_CLAUSE

    clause = " AND ".join(conditions)
    validation = validate_sql_clause(clause)
    if not validation.is_valid:
        logger.error("Generated SQL failed security validation: %s", "; ".join(validation.issues))
        logger.debug("Rejected clause: %s", clause)
        return ""

    logger.debug("Compiled WHERE clause: %s", clause[:300])
    return clause


def _criterion_predicate(criterion: SegmentCriterion, schema_prefix: str) -> str:
    if not is_valid_question_id(criterion.question_id) or not criterion.patterns:
        return ""
    quoted = [p.replace("'", "''") for p in criterion.patterns]
    if criterion.exact:
        ors = " OR ".join(f"answer_text = '{p}'" for p in quoted)
    else:
        ors = " OR ".join(f"answer_text LIKE '%{p}%'" for p in quoted)
    table = f"{schema_prefix}responses" if schema_prefix else "responses"
    return (
        f"EXISTS (SELECT 1 FROM {table} "
        f"WHERE respondent_id = {OUTER_ALIAS}.respondent_id "
        f"AND question_id = '{criterion.question_id}' "
        f"AND ({ors}))"
    )


def compile_segment_clause(segment_key: str, schema_prefix: str = DEFAULT_SCHEMA_PREFIX) -> str:
    """Predicate restricting respondents to a named segment; ``NEUTRAL_CLAUSE`` for ``all``."""
    if segment_key == ALL_SEGMENT:
        return NEUTRAL_CLAUSE
    segment = SEGMENT_DEFINITIONS.get(segment_key)
    if segment is None:
        raise KeyError(f"Invalid segment: {segment_key}. Valid segments: {', '.join(SEGMENT_DEFINITIONS)}")
    parts = [p for p in (_criterion_predicate(c, schema_prefix) for c in segment.criteria) if p]
    return " AND ".join(parts) if parts else NEUTRAL_CLAUSE


def combine_clauses(*clauses: Optional[str]) -> str:
    parts = [c.strip() for c in clauses if not is_trivial_clause(c)]
    return " AND ".join(parts) if parts else NEUTRAL_CLAUSE
