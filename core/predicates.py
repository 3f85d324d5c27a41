"""SQL escaping and EXISTS-predicate building for filter values.

Every predicate emitted here is a single-line boolean fragment that matches
respondents by a sub-select against ``responses``. Values are only ever
embedded as string literals.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Iterable, List, Optional

logger = logging.getLogger(__name__)

QUESTION_ID_RE = re.compile(r"^[A-Za-z0-9]+$")
_COUNTRY_CODE_RE = re.compile(r"^[0-9]+$")

OUTER_ALIAS = "r"

_DANGEROUS_PATTERNS = [
    re.compile(r"';.*--"),
    re.compile(r"'\s*;\s*OR\s+", re.IGNORECASE),
    re.compile(r"'\s*;\s*AND\s+", re.IGNORECASE),
    re.compile(r"'\s*;\s*UNION\s+", re.IGNORECASE),
    re.compile(r"'\s*;\s*DROP\s+", re.IGNORECASE),
    re.compile(r"'\s*;\s*DELETE\s+", re.IGNORECASE),
    re.compile(r"'\s*;\s*INSERT\s+", re.IGNORECASE),
    re.compile(r"'\s*;\s*UPDATE\s+", re.IGNORECASE),
]


@dataclass(frozen=True)
class ClauseValidation:
    is_valid: bool
    issues: List[str] = field(default_factory=list)


def strip_storage_wrapper(value: object) -> str:
    """Remove the ``["X"]`` (single-select) or ``"X"`` (unnested) wrapper."""
    text = value if isinstance(value, str) else str(value)
    if text.startswith('["') and text.endswith('"]') and len(text) >= 4:
        return text[2:-2]
    if text.startswith('"') and text.endswith('"') and len(text) >= 2:
        return text[1:-1]
    return text


def _escape_literal(text: str) -> str:
    text = text.replace("'", "''")
    return text.replace("%", "\\%").replace("_", "\\_")


def escape_like_value(value: object) -> str:
    """Strip the storage wrapper, double single quotes, escape LIKE wildcards."""
    return _escape_literal(strip_storage_wrapper(value))


def _like_condition(value: object, column: str) -> str:
    clean = strip_storage_wrapper(value)
    if "%" not in clean and "_" not in clean:
        return f"{column} LIKE '%\"{_escape_literal(clean)}\"%'"
    # Wildcards need an explicit escape character; double existing backslashes first.
    escaped = _escape_literal(clean.replace("\\", "\\\\"))
    return f"{column} LIKE '%\"{escaped}\"%' ESCAPE '\\'"


def build_like_or_condition(values: Optional[Iterable[object]], column: str = "answer_text") -> str:
    conditions = [_like_condition(v, column) for v in (values or [])]
    return " OR ".join(conditions)


def _exists(question_id: str, or_conditions: str, schema_prefix: str) -> str:
    table = f"{schema_prefix}responses" if schema_prefix else "responses"
    return (
        f"EXISTS (SELECT 1 FROM {table} "
        f"WHERE respondent_id = {OUTER_ALIAS}.respondent_id "
        f"AND question_id = '{question_id}' "
        f"AND ({or_conditions}))"
    )


def is_valid_question_id(question_id: object) -> bool:
    return isinstance(question_id, str) and bool(QUESTION_ID_RE.match(question_id))


def build_exists_clause(
    question_id: str,
    values: Optional[Iterable[object]],
    is_multi_select: bool = False,
    schema_prefix: str = "",
) -> str:
    """EXISTS predicate matching respondents whose answer contains any of ``values``.

    Returns an empty string (no constraint) for an empty value list or a
    question id outside ``[A-Za-z0-9]+``.
    """
    values = [v for v in (values or []) if v is not None and v != ""]
    if not values:
        return ""
    if not is_valid_question_id(question_id):
        logger.error("Invalid question id format: %r", question_id)
        return ""

    column = "answer_text::varchar" if is_multi_select else "answer_text"
    or_conditions = build_like_or_condition(values, column)
    if not or_conditions:
        return ""
    return _exists(question_id, or_conditions, schema_prefix)


def build_numeric_exists_clause(
    question_id: str,
    codes: Optional[Iterable[object]],
    schema_prefix: str = "",
) -> str:
    """EXISTS predicate for questions that store plain numeric codes."""
    if not is_valid_question_id(question_id):
        logger.error("Invalid question id format: %r", question_id)
        return ""
    clean = [str(c).strip() for c in (codes or []) if c is not None]
    clean = [c for c in clean if _COUNTRY_CODE_RE.match(c)]
    if not clean:
        return ""
    or_conditions = " OR ".join(f"answer_text::varchar = '{c}'" for c in clean)
    return _exists(question_id, or_conditions, schema_prefix)


def validate_sql_clause(sql: str) -> ClauseValidation:
    issues: List[str] = []

    if any(p.search(sql) for p in _DANGEROUS_PATTERNS):
        issues.append("Contains potentially dangerous SQL injection pattern")

    open_parens = sql.count("(")
    close_parens = sql.count(")")
    if open_parens != close_parens:
        issues.append(f"Unmatched parentheses ({open_parens} open, {close_parens} close)")

    if "()" in sql:
        issues.append("Contains empty conditions")

    if "AND AND" in sql:
        issues.append("Contains double AND clauses")

    return ClauseValidation(is_valid=not issues, issues=issues)
