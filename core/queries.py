"""SQL templates and the schema-prefix / placeholder rewriter.

Templates reference bare table names (``responses``, ``qualitative_themes``)
and carry a ``{{WHERE_CLAUSE}}`` placeholder wherever the compiled filter
predicate belongs. When the dataset is attached under a schema, bare table
references are qualified while CTE names are left alone.
"""

from __future__ import annotations

import logging
import re
from typing import FrozenSet, Optional

from core.compiler import is_trivial_clause

logger = logging.getLogger(__name__)

WHERE_PLACEHOLDER = "{{WHERE_CLAUSE}}"
DEFAULT_SCHEMA = "survey"

HELPER_FUNCTIONS = ("analyze_learning_resources", "analyze_segment_learning_resources")

_IDENT = r"[A-Za-z_][A-Za-z0-9_]*"
_WITH_CTE_RE = re.compile(rf"\bWITH\s+({_IDENT})\s+AS\b", re.IGNORECASE)
_NEXT_CTE_RE = re.compile(rf",\s*({_IDENT})\s+AS\s*\(", re.IGNORECASE)
# A reference already followed by "." is qualified and must not be prefixed again.
_TABLE_REF_RE = re.compile(rf"\b(FROM|JOIN|INTO|UPDATE)\s+({_IDENT})\b(?!\s*\.)", re.IGNORECASE)


def strip_line_comments(sql: str) -> str:
    lines = [line for line in sql.split("\n") if not line.strip().startswith("--")]
    return "\n".join(lines).strip()


def find_cte_names(sql: str) -> FrozenSet[str]:
    names = {m.group(1).lower() for m in _WITH_CTE_RE.finditer(sql)}
    names.update(m.group(1).lower() for m in _NEXT_CTE_RE.finditer(sql))
    return frozenset(names)


def apply_schema_prefix(sql: str, cte_names: FrozenSet[str], schema: str = DEFAULT_SCHEMA) -> str:
    def _table(match: "re.Match[str]") -> str:
        keyword, name = match.group(1), match.group(2)
        if name.lower() in cte_names or name.lower() == schema.lower():
            return match.group(0)
        return f"{keyword} {schema}.{name}"

    sql = _TABLE_REF_RE.sub(_table, sql)
    for fn in HELPER_FUNCTIONS:
        sql = re.sub(rf"(?<![.\w]){fn}\s*\(", f"{schema}.{fn}(", sql, flags=re.IGNORECASE)
    return collapse_double_prefix(sql, schema)


def json_array_items(column: str) -> str:
    """SQL expression turning a JSON-array answer into a VARCHAR list."""
    return f"from_json({column}, '[\"VARCHAR\"]')"


def collapse_double_prefix(sql: str, schema: str = DEFAULT_SCHEMA) -> str:
    pattern = re.compile(rf"\b(?:{re.escape(schema)}\.){{2,}}")
    return pattern.sub(f"{schema}.", sql)


def substitute_where_clause(sql: str, where_clause: Optional[str]) -> str:
    replacement = "" if is_trivial_clause(where_clause) else f"AND {where_clause}"
    return sql.replace(WHERE_PLACEHOLDER, replacement)


class QueryTemplate:
    """A comment-free SQL template with its CTE names discovered up front."""

    def __init__(self, sql: str, name: str = "") -> None:
        self.name = name
        self.sql = strip_line_comments(sql)
        self.cte_names = find_cte_names(self.sql)

    def render(
        self,
        where_clause: Optional[str] = None,
        needs_schema_prefix: bool = False,
        schema: str = DEFAULT_SCHEMA,
    ) -> str:
        sql = self.sql
        if needs_schema_prefix:
            sql = apply_schema_prefix(sql, self.cte_names, schema)
        sql = collapse_double_prefix(sql, schema)
        sql = substitute_where_clause(sql, where_clause)
        logger.debug("Prepared query %s: %s", self.name or "<anonymous>", sql[:500])
        return sql

    def __repr__(self) -> str:
        return f"QueryTemplate(name={self.name!r}, ctes={sorted(self.cte_names)!r})"


def prepare_query(
    template: "str | QueryTemplate",
    where_clause: Optional[str],
    needs_schema_prefix: bool,
    schema: str = DEFAULT_SCHEMA,
) -> str:
    """Executable SQL: comments stripped, tables qualified, placeholder substituted."""
    if not isinstance(template, QueryTemplate):
        template = QueryTemplate(template)
    return template.render(where_clause, needs_schema_prefix, schema)


LEARNING_RESOURCES = (
    "Official Website & Node-RED documentation",
    "Node-RED Flow library",
    "YouTube",
    "Community forum (Discourse)",
    "Stack Overflow",
    "AI assistance (ChatGPT/etc)",
    "GitHub",
    "Node-RED academy",
    "Node-RED Cookbook",
    "Reddit",
    "Discord",
    "Slack",
    "Facebook Group",
    "Blog posts and articles",
    "Home Assistant Forum",
    "Colleague or mentor guidance",
    "Books or formal courses",
)

LEARNING_RESOURCES_QUESTION_ID = "NXjPAO"
RESOURCE_RATING_QUESTION_IDS = ("GpGAdp", "GpGVZZ", "GpGZaj", "GpGbqo")

_resource_values = ",\n        ".join("('{}')".format(r.replace("'", "''")) for r in LEARNING_RESOURCES)
_rating_ids = ", ".join(f"'{q}'" for q in RESOURCE_RATING_QUESTION_IDS)
_answer_items = json_array_items("r.answer_text")

DASHBOARD_QUERY = QueryTemplate(
    f"""-- Learning resources dashboard: reach, rating and opportunity per resource
-- Every resource is listed, including those nobody selected.
WITH respondent_count AS (
    SELECT COUNT(DISTINCT r.respondent_id) AS total
    FROM responses r
    WHERE r.question_id = '{LEARNING_RESOURCES_QUESTION_ID}'
    {WHERE_PLACEHOLDER}
),
all_resources AS (
    SELECT channel FROM (VALUES
        {_resource_values}
    ) AS t(channel)
),
individual_resources AS (
    SELECT respondent_id, trim(item, '"') AS channel
    FROM (
        SELECT r.respondent_id, unnest({_answer_items}) AS item
        FROM responses r
        WHERE r.question_id = '{LEARNING_RESOURCES_QUESTION_ID}'
        AND r.answer_text != '[]'
        AND json_valid(r.answer_text)
        {WHERE_PLACEHOLDER}
    ) AS unnested
),
resource_counts AS (
    SELECT
        channel,
        COUNT(DISTINCT respondent_id) AS selected_count,
        ROUND(100.0 * COUNT(DISTINCT respondent_id) / NULLIF((SELECT total FROM respondent_count), 0), 2) AS reach_pct
    FROM individual_resources
    WHERE channel IS NOT NULL AND channel != ''
    GROUP BY channel
),
respondent_ratings AS (
    SELECT
        x.respondent_id,
        arg_min(TRY_CAST(x.answer_text AS INTEGER), list_position([{_rating_ids}], x.question_id)) AS rating
    FROM responses x
    WHERE x.question_id IN ({_rating_ids})
    GROUP BY x.respondent_id
),
resource_ratings AS (
    SELECT ir.respondent_id, ir.channel, rr.rating
    FROM individual_resources ir
    LEFT JOIN respondent_ratings rr ON ir.respondent_id = rr.respondent_id
),
resource_stats AS (
    SELECT
        rc.channel,
        rc.selected_count,
        rc.reach_pct,
        COUNT(rr.rating) AS follow_up_answered,
        ROUND(AVG(rr.rating::DOUBLE), 2) AS avg_rating,
        ROUND(100.0 * SUM(CASE WHEN rr.rating >= 5 THEN 1 ELSE 0 END) / NULLIF(COUNT(rr.rating), 0), 1) AS quality_pct,
        ROUND(100.0 * SUM(CASE WHEN rr.rating >= 6 THEN 1 ELSE 0 END) / NULLIF(COUNT(rr.rating), 0), 1) AS top_ratings_pct
    FROM resource_counts rc
    LEFT JOIN resource_ratings rr ON rc.channel = rr.channel
    GROUP BY rc.channel, rc.selected_count, rc.reach_pct
)
SELECT
    ar.channel AS "Resource",
    CAST(COALESCE(rs.selected_count, 0) AS INTEGER) AS selected_count,
    CAST((SELECT total FROM respondent_count) AS INTEGER) AS total_respondents,
    CAST(CAST(ROUND(COALESCE(rs.reach_pct, 0), 0) AS INTEGER) AS VARCHAR) || '%' AS "Reach %",
    CAST(COALESCE(rs.selected_count, 0) AS VARCHAR) || '/' || CAST((SELECT total FROM respondent_count) AS VARCHAR) AS "Users",
    COALESCE(CAST(CAST(ROUND(rs.avg_rating, 0) AS INTEGER) AS VARCHAR) || '/7', '-') AS "Rating",
    COALESCE(CAST(CAST(ROUND(rs.quality_pct, 0) AS INTEGER) AS VARCHAR) || '%', '-') AS "Quality %",
    COALESCE(CAST(CAST(ROUND(rs.top_ratings_pct, 0) AS INTEGER) AS VARCHAR) || '%', '-') AS "Top Ratings",
    CASE
        WHEN rs.quality_pct IS NOT NULL
        THEN CAST(CAST(ROUND((100 - rs.quality_pct) * rs.reach_pct / 100, 0) AS INTEGER) AS VARCHAR) || '%'
        ELSE '-'
    END AS "Quality Gap Opp",
    CASE
        WHEN rs.quality_pct IS NOT NULL
        THEN CAST(CAST(ROUND((100 - rs.reach_pct) * rs.quality_pct / 100, 0) AS INTEGER) AS VARCHAR) || '%'
        ELSE '-'
    END AS "Reach Gap Opp"
FROM all_resources ar
LEFT JOIN resource_stats rs ON ar.channel = rs.channel
ORDER BY COALESCE(rs.selected_count, 0) DESC, ar.channel
""",
    name="dashboard",
)
