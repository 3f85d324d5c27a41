"""DuckDB-backed query service for the survey dataset.

The dataset file is attached read-only under a schema (``survey`` by
default) inside an in-memory connection. The connection is only ever touched
from one dedicated worker thread; coroutines hand work to it through
``run_in_executor``.
"""

from __future__ import annotations

import asyncio
import enum
import logging
import re
from concurrent.futures import ThreadPoolExecutor
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

import duckdb
import pandas as pd

from core.compiler import (
    ALL_SEGMENT,
    NEUTRAL_CLAUSE,
    combine_clauses,
    compile_segment_clause,
    compile_where_clause,
    is_trivial_clause,
)
from core.config import Settings, settings as default_settings
from core.filters import exclude_categories
from core.ordering import sort_filter_options_logically
from core.predicates import is_valid_question_id
from core.queries import DASHBOARD_QUERY, WHERE_PLACEHOLDER as WHERE, json_array_items, prepare_query
from core.registry import (
    COUNTRY_QUESTION_ID,
    EXPERIENCE_QUESTION_ID,
    FILTER_DEFINITIONS,
    MULTI_SELECT_OPTION_QUESTIONS,
    MULTI_SELECT_QUESTIONS,
    NUMERIC_QUESTIONS,
    QUESTION_TO_FILTER,
    SEGMENT_DEFINITIONS,
)

logger = logging.getLogger(__name__)

MAX_SAFE_INTEGER = 2**53 - 1

# Fixed totals reported alongside the per-section filtered counts.
SECTION_QUESTIONS = {
    "section1": ("NXjPAO", 466),
    "section2": ("VZBmQy", 432),
}

MATRIX_SUB_QUESTIONS = (
    "0f096ad2-1241-4657-98ac-1c721f958999",
    "31f69859-8ab9-4202-8d56-143007730ee1",
    "0be2d6bd-10ce-4387-ab24-9bbb64ce6b09",
    "91356092-cf0a-4bb5-b467-2c84645328aa",
)
DEVICE_ALIASES = {"Smartphone": "Phone"}

_SCHEMA_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class EngineState(str, enum.Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"
    FAILED = "failed"


class EngineError(Exception):
    pass


class EngineInitError(EngineError):
    """The dataset could not be attached; the engine stays unusable."""


class EngineNotReadyError(EngineError):
    pass


@dataclass
class QueryResult:
    data: List[Dict[str, Any]] = field(default_factory=list)
    error: Optional[str] = None
    query: Optional[str] = None
    meta: Dict[str, Any] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def narrow_value(value: Any) -> Any:
    """Plain JSON-safe value: wide ints beyond 2**53-1 become strings, Decimals floats."""
    if isinstance(value, bool) or value is None:
        return value
    if isinstance(value, int):
        if abs(value) > MAX_SAFE_INTEGER:
            logger.warning("Integer %s exceeds safe precision; returning it as a string", value)
            return str(value)
        return value
    if isinstance(value, Decimal):
        return float(value)
    if isinstance(value, (list, tuple)):
        return [narrow_value(v) for v in value]
    if isinstance(value, dict):
        return {k: narrow_value(v) for k, v in value.items()}
    return value


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def clean_answer_text(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    return re.sub(r'[\[\]"]', "", value)


def question_type(question_id: str) -> str:
    if question_id in MULTI_SELECT_QUESTIONS:
        return "multi-select"
    if question_id in NUMERIC_QUESTIONS:
        return "numeric"
    return "single-select"


class SurveyEngine:
    def __init__(self, settings: Optional[Settings] = None) -> None:
        self.settings = settings or default_settings
        if not _SCHEMA_RE.match(self.settings.schema):
            raise ValueError(f"Invalid schema name: {self.settings.schema!r}")
        self.state = EngineState.UNINITIALIZED
        self.init_error: Optional[BaseException] = None
        self.needs_schema_prefix = False
        self.filter_options: Dict[str, Dict[str, Any]] = {}
        self.segments: List[Dict[str, Any]] = []
        self._conn: Optional[duckdb.DuckDBPyConnection] = None
        self._executor = self._new_executor()
        self._init_task: Optional[asyncio.Future] = None

    # lifecycle

    @property
    def ready(self) -> bool:
        return self.state is EngineState.READY

    @property
    def schema(self) -> str:
        return self.settings.schema

    @property
    def schema_prefix(self) -> str:
        return f"{self.schema}." if self.needs_schema_prefix else ""

    async def initialize(self) -> None:
        """Attach the dataset once; concurrent callers await the same attempt."""
        if self.state is EngineState.READY:
            return
        if self.state is EngineState.FAILED:
            raise EngineInitError(f"Survey engine failed to initialize: {self.init_error}")
        if self._init_task is None:
            self._init_task = asyncio.ensure_future(self._do_initialize())
        await asyncio.shield(self._init_task)

    async def _do_initialize(self) -> None:
        self.state = EngineState.INITIALIZING
        try:
            await self._run(self._open)
            self.filter_options = await self._run(self._load_filter_options)
            self.segments = await self._run(self._load_segments)
        except Exception as exc:
            logger.exception("Survey engine initialization failed")
            self.state = EngineState.FAILED
            self.init_error = exc
            await self._run(self._close_connection)
            raise EngineInitError(str(exc)) from exc
        self.state = EngineState.READY
        logger.info(
            "Survey engine ready: %d filter categories, %d segments",
            len(self.filter_options),
            len(self.segments),
        )

    def _open(self) -> None:
        path = self.settings.db_path
        if not path.exists():
            raise FileNotFoundError(f"Survey database not found: {path}")
        self._conn = duckdb.connect(":memory:")
        escaped = str(path).replace("'", "''")
        self._conn.execute(f"ATTACH '{escaped}' AS {self.schema} (READ_ONLY)")
        total = self._conn.execute(f"SELECT COUNT(*) FROM {self.schema}.responses").fetchone()
        self.needs_schema_prefix = True
        logger.info("Attached %s as %s (%s responses)", path, self.schema, total[0] if total else 0)

    def _close_connection(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    async def close(self) -> None:
        await self._run(self._close_connection)
        self._executor.shutdown(wait=False)
        self._executor = self._new_executor()
        self.state = EngineState.UNINITIALIZED
        self.init_error = None
        self._init_task = None

    @staticmethod
    def _new_executor() -> ThreadPoolExecutor:
        return ThreadPoolExecutor(max_workers=1, thread_name_prefix="survey-duckdb")

    async def _run(self, fn: Callable[..., Any], *args: Any) -> Any:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._executor, fn, *args)

    def _require_ready(self) -> None:
        if self.state is not EngineState.READY:
            raise EngineNotReadyError(f"Survey engine is {self.state.value}")

    # query helpers (worker thread)

    def _query(self, sql: str) -> List[Dict[str, Any]]:
        if self._conn is None:
            raise EngineNotReadyError("No open connection")
        cursor = self._conn.execute(sql)
        columns = [d[0] for d in cursor.description]
        return [{c: narrow_value(v) for c, v in zip(columns, row)} for row in cursor.fetchall()]

    def _scalar(self, sql: str, default: Any = 0) -> Any:
        rows = self._query(sql)
        if not rows:
            return default
        value = next(iter(rows[0].values()))
        return default if value is None else value

    def _where(self, filters: Optional[Mapping[str, List[str]]], *exclude: str) -> str:
        if not filters:
            return NEUTRAL_CLAUSE
        if exclude:
            filters = exclude_categories(filters, *exclude)
        return compile_where_clause(filters, schema_prefix=self.schema_prefix)

    def _prepare(self, template: str, where_clause: str) -> str:
        return prepare_query(template, where_clause, self.needs_schema_prefix, self.schema)

    # initialization loads

    def _option_rows(self, question_id: str) -> List[Dict[str, Any]]:
        items = json_array_items("answer_text")
        if question_id in MULTI_SELECT_OPTION_QUESTIONS:
            sql = f"""
                WITH expanded AS (
                    SELECT respondent_id, unnest({items}) AS option_value
                    FROM responses
                    WHERE question_id = '{question_id}'
                    AND answer_text IS NOT NULL
                    AND answer_text != '[]'
                    AND answer_text LIKE '[%'
                    AND json_valid(answer_text)
                )
                SELECT trim(option_value, '"') AS answer_text,
                       CAST(COUNT(DISTINCT respondent_id) AS INTEGER) AS count
                FROM expanded
                WHERE option_value IS NOT NULL
                GROUP BY option_value
                ORDER BY count DESC, answer_text
            """
        else:
            sql = f"""
                SELECT answer_text::varchar AS answer_text, CAST(COUNT(*) AS INTEGER) AS count
                FROM responses
                WHERE question_id = '{question_id}'
                AND answer_text IS NOT NULL
                AND answer_text::varchar != ''
                AND answer_text::varchar != '[]'
                AND answer_text::varchar NOT LIKE '%null%'
                GROUP BY answer_text
                ORDER BY count DESC, answer_text
            """
        return self._query(self._prepare(sql, NEUTRAL_CLAUSE))

    def _load_filter_options(self) -> Dict[str, Dict[str, Any]]:
        options: Dict[str, Dict[str, Any]] = {}
        for key, category in FILTER_DEFINITIONS.items():
            entry: Dict[str, Any] = {
                "questionId": category.question_id,
                "name": category.name,
                "isMultiSelect": category.is_multi_select,
                "options": [],
            }
            if category.is_special_filter:
                entry["options"] = [{"value": o.value, "label": o.label} for o in category.options]
                options[key] = entry
                continue
            try:
                rows = self._option_rows(category.question_id)
            except duckdb.Error:
                logger.exception("Failed to load options for %s (%s)", category.question_id, category.name)
                options[key] = entry
                continue
            loaded = [
                {"value": r["answer_text"], "count": r["count"], "label": clean_answer_text(r["answer_text"])}
                for r in rows
                if r.get("answer_text")
            ]
            entry["options"] = sort_filter_options_logically(category.question_id, loaded)
            logger.debug("Loaded %d options for %s", len(loaded), category.question_id)
            options[key] = entry
        return options

    def _count_respondents(self, clause: str) -> int:
        sql = f"SELECT CAST(COUNT(DISTINCT r.respondent_id) AS INTEGER) AS count FROM responses r WHERE 1=1 {WHERE}"
        return int(self._scalar(self._prepare(sql, clause)))

    def _load_segments(self) -> List[Dict[str, Any]]:
        segments = [{"id": ALL_SEGMENT, "name": "All Respondents", "count": self._count_respondents(NEUTRAL_CLAUSE)}]
        for key, segment in SEGMENT_DEFINITIONS.items():
            try:
                count = self._count_respondents(compile_segment_clause(key, self.schema_prefix))
            except duckdb.Error:
                logger.exception("Failed to count segment %s", key)
                count = 0
            segments.append({"id": key, "name": segment.name, "count": count})
        return segments

    # read operations

    def get_filter_options(self) -> Dict[str, Dict[str, Any]]:
        return self.filter_options

    def get_segments(self) -> List[Dict[str, Any]]:
        return self.segments

    async def get_filtered_count(self, filters: Optional[Mapping[str, List[str]]]) -> int:
        self._require_ready()
        clause = self._where(filters)
        try:
            return await self._run(self._count_respondents, clause)
        except duckdb.Error:
            logger.exception("Filtered count failed")
            return 0

    async def get_dashboard_data(
        self,
        filters: Optional[Mapping[str, List[str]]] = None,
        segment: str = ALL_SEGMENT,
    ) -> QueryResult:
        self._require_ready()
        try:
            segment_clause = compile_segment_clause(segment, self.schema_prefix)
        except KeyError:
            logger.error("Invalid segment %r; falling back to all respondents", segment)
            segment, segment_clause = ALL_SEGMENT, NEUTRAL_CLAUSE

        clause = combine_clauses(self._where(filters), segment_clause)
        sql = DASHBOARD_QUERY.render(clause, self.needs_schema_prefix, self.schema)
        meta = {"segment": segment, "lastUpdated": _now()}
        try:
            rows = await self._run(self._query, sql)
        except Exception as exc:
            logger.exception("Dashboard query failed")
            return QueryResult(error=str(exc), meta=meta)
        return QueryResult(data=rows, query=sql, meta=meta)

    def _section_counts(self, clause: str) -> Dict[str, Dict[str, int]]:
        counts = {}
        for section, (question_id, total) in SECTION_QUESTIONS.items():
            sql = f"""
                SELECT CAST(COUNT(DISTINCT r.respondent_id) AS INTEGER) AS count
                FROM responses r
                WHERE r.question_id = '{question_id}'
                AND r.answer_text IS NOT NULL
                AND trim(r.answer_text) != ''
                {WHERE}
            """
            counts[section] = {"filtered": int(self._scalar(self._prepare(sql, clause))), "total": total}
        return counts

    async def get_section_counts(self, filters: Optional[Mapping[str, List[str]]]) -> Dict[str, Dict[str, int]]:
        self._require_ready()
        clause = self._where(filters)
        try:
            return await self._run(self._section_counts, clause)
        except duckdb.Error:
            logger.exception("Section counts failed")
            return {s: {"filtered": total, "total": total} for s, (_, total) in SECTION_QUESTIONS.items()}

    def _respondent_counts(self, question_id: str, clause: str) -> Dict[str, int]:
        sql = f"""
            SELECT CAST(COUNT(DISTINCT r.respondent_id) AS INTEGER) AS count
            FROM responses r
            WHERE r.question_id = '{question_id}'
            AND r.answer_text IS NOT NULL
            AND trim(r.answer_text) != ''
            AND r.answer_text != '[]'
            AND r.answer_text != 'null'
            {WHERE}
        """
        total = int(self._scalar(self._prepare(sql, NEUTRAL_CLAUSE)))
        filtered = total if is_trivial_clause(clause) else int(self._scalar(self._prepare(sql, clause)))
        return {"total_respondents": total, "filtered_respondents": filtered}

    async def get_total_respondents_for_question(
        self,
        question_id: str,
        filters: Optional[Mapping[str, List[str]]] = None,
    ) -> Dict[str, int]:
        self._require_ready()
        if not is_valid_question_id(question_id):
            logger.error("Invalid question id format: %r", question_id)
            return {"total_respondents": 0, "filtered_respondents": 0}
        clause = self._where(filters)
        try:
            return await self._run(self._respondent_counts, question_id, clause)
        except duckdb.Error:
            logger.exception("Respondent counts failed for %s", question_id)
            return {"total_respondents": 0, "filtered_respondents": 0}

    def _quantitative(self, question_id: str, clause: str) -> Dict[str, Any]:
        kind = question_type(question_id)
        items = json_array_items("r.answer_text")
        if kind == "multi-select":
            sql = f"""
                WITH filtered_respondents AS (
                    SELECT DISTINCT r.respondent_id
                    FROM responses r
                    WHERE 1=1 {WHERE}
                ),
                expanded_responses AS (
                    SELECT r.respondent_id, unnest({items}) AS option_value
                    FROM responses r
                    JOIN filtered_respondents fr ON r.respondent_id = fr.respondent_id
                    WHERE r.question_id = '{question_id}'
                    AND r.answer_text IS NOT NULL
                    AND r.answer_text != '[]'
                    AND r.answer_text LIKE '[%'
                    AND json_valid(r.answer_text)
                ),
                total_count AS (
                    SELECT COUNT(DISTINCT respondent_id) AS total FROM expanded_responses
                )
                SELECT
                    option_value AS answer_text,
                    CAST(COUNT(DISTINCT respondent_id) AS INTEGER) AS count,
                    ROUND(COUNT(DISTINCT respondent_id) * 100.0 / NULLIF((SELECT total FROM total_count), 0), 1) AS percentage
                FROM expanded_responses
                WHERE option_value IS NOT NULL
                GROUP BY option_value
                ORDER BY count DESC, answer_text
            """
        else:
            order = "TRY_CAST(r.answer_text AS INTEGER)" if kind == "numeric" else "count DESC, answer_text"
            sql = f"""
                WITH total_count AS (
                    SELECT COUNT(DISTINCT r.respondent_id) AS total
                    FROM responses r
                    WHERE r.question_id = '{question_id}'
                    AND r.answer_text IS NOT NULL
                    AND trim(r.answer_text) != ''
                    AND r.answer_text != '[]'
                    {WHERE}
                )
                SELECT
                    r.answer_text::varchar AS answer_text,
                    CAST(COUNT(DISTINCT r.respondent_id) AS INTEGER) AS count,
                    ROUND(COUNT(DISTINCT r.respondent_id) * 100.0 / NULLIF((SELECT total FROM total_count), 0), 1) AS percentage
                FROM responses r
                WHERE r.question_id = '{question_id}'
                AND r.answer_text IS NOT NULL
                AND trim(r.answer_text) != ''
                AND r.answer_text != '[]'
                {WHERE}
                GROUP BY r.answer_text
                ORDER BY {order}
            """
        sql = self._prepare(sql, clause)
        rows = self._query(sql)
        if kind != "multi-select" and question_id != COUNTRY_QUESTION_ID:
            for row in rows:
                row["answer_text"] = clean_answer_text(row["answer_text"])
        return {"rows": rows, "sql": sql, "counts": self._respondent_counts(question_id, clause), "type": kind}

    async def get_quantitative_data(
        self,
        question_id: str,
        filters: Optional[Mapping[str, List[str]]] = None,
    ) -> QueryResult:
        """Answer distribution for one question under the given filters.

        The experience chart ignores the experience filter so it always shows
        every level.
        """
        self._require_ready()
        if not is_valid_question_id(question_id):
            return QueryResult(error=f"Invalid question id: {question_id!r}")
        exclude = [QUESTION_TO_FILTER[EXPERIENCE_QUESTION_ID]] if question_id == EXPERIENCE_QUESTION_ID else []
        clause = self._where(filters, *exclude)
        try:
            out = await self._run(self._quantitative, question_id, clause)
        except Exception as exc:
            logger.exception("Quantitative query failed for %s", question_id)
            return QueryResult(error=str(exc), meta={"total_respondents": 0, "filtered_respondents": 0})
        return QueryResult(data=out["rows"], query=out["sql"], meta={**out["counts"], "question_type": out["type"]})

    def _qualitative(self, question_id: str, clause: str) -> Dict[str, Any]:
        sql = f"""
            WITH filtered_respondents AS (
                SELECT DISTINCT r.respondent_id
                FROM responses r
                WHERE 1=1 {WHERE}
            ),
            theme_respondents AS (
                SELECT qt.theme_name, qt.description, qt.representative_quotes,
                       unnest(qt.respondent_ids) AS respondent_id
                FROM qualitative_themes qt
                WHERE qt.question_id = '{question_id}'
            ),
            theme_counts AS (
                SELECT tr.theme_name, tr.description, tr.representative_quotes,
                       CAST(COUNT(DISTINCT tr.respondent_id) AS INTEGER) AS count
                FROM theme_respondents tr
                JOIN filtered_respondents fr ON tr.respondent_id = fr.respondent_id
                GROUP BY tr.theme_name, tr.description, tr.representative_quotes
            ),
            total_filtered AS (
                SELECT CAST(COUNT(DISTINCT tr.respondent_id) AS INTEGER) AS total
                FROM theme_respondents tr
                JOIN filtered_respondents fr ON tr.respondent_id = fr.respondent_id
            )
            SELECT
                tc.theme_name,
                tc.count,
                ROUND(tc.count * 100.0 / NULLIF(tf.total, 0), 1) AS percentage,
                tc.description,
                tc.representative_quotes,
                tf.total AS total_respondents
            FROM theme_counts tc
            CROSS JOIN total_filtered tf
            ORDER BY tc.count DESC, tc.theme_name
        """
        sql = self._prepare(sql, clause)
        rows = self._query(sql)
        total = rows[0]["total_respondents"] if rows else 0
        for row in rows:
            row.pop("total_respondents", None)
        return {"rows": rows, "sql": sql, "filtered": total}

    async def get_qualitative_data(
        self,
        question_id: str,
        filters: Optional[Mapping[str, List[str]]] = None,
    ) -> QueryResult:
        self._require_ready()
        if not is_valid_question_id(question_id):
            return QueryResult(error=f"Invalid question id: {question_id!r}")
        clause = self._where(filters)
        try:
            out = await self._run(self._qualitative, question_id, clause)
        except Exception as exc:
            logger.exception("Qualitative query failed for %s", question_id)
            return QueryResult(error=str(exc), meta={"respondent_count": {"filtered": 0}})
        return QueryResult(data=out["rows"], query=out["sql"], meta={"respondent_count": {"filtered": out["filtered"]}})

    def _matrix(self, question_id: str, clause: str, sub_questions: Sequence[str]) -> Dict[str, Any]:
        base = f"""
            SELECT r.respondent_id, r.answer_text
            FROM responses r
            WHERE r.question_id = '{question_id}'
            AND r.answer_text IS NOT NULL
            AND trim(r.answer_text) != ''
            AND json_valid(r.answer_text)
            {WHERE}
        """
        parts = []
        for sub in sub_questions:
            pointer = f"json_extract(fr.answer_text, '/{sub}')"
            parts.append(
                f"""
                SELECT fr.respondent_id, '{sub}' AS sub_question_id,
                       unnest({json_array_items(pointer)}) AS device
                FROM filtered_responses fr
                WHERE json_type({pointer}) = 'ARRAY'
                """
            )
        expanded = " UNION ALL ".join(parts)
        sql = f"""
            WITH filtered_responses AS ({base})
            SELECT respondent_id, sub_question_id, device
            FROM ({expanded}) AS expanded
            WHERE device IS NOT NULL
        """
        sql = self._prepare(sql, clause)
        total_sql = self._prepare(
            f"SELECT CAST(COUNT(DISTINCT respondent_id) AS INTEGER) AS total FROM ({base}) AS answered", clause
        )
        total = int(self._scalar(total_sql))
        frame = pd.DataFrame(self._query(sql), columns=["respondent_id", "sub_question_id", "device"])
        return {"data": reshape_matrix(frame, total), "sql": sql, "total": total}

    async def get_matrix_data(
        self,
        question_id: str,
        filters: Optional[Mapping[str, List[str]]] = None,
        sub_questions: Sequence[str] = MATRIX_SUB_QUESTIONS,
    ) -> QueryResult:
        self._require_ready()
        if not is_valid_question_id(question_id):
            return QueryResult(error=f"Invalid question id: {question_id!r}")
        safe_subs = [s for s in sub_questions if re.fullmatch(r"[A-Za-z0-9-]+", s)]
        clause = self._where(filters)
        try:
            out = await self._run(self._matrix, question_id, clause, safe_subs)
        except Exception as exc:
            logger.exception("Matrix query failed for %s", question_id)
            return QueryResult(error=str(exc))
        return QueryResult(data=out["data"], query=out["sql"], meta={"total_respondents": out["total"]})


def reshape_matrix(frame: pd.DataFrame, total_respondents: int) -> List[Dict[str, Any]]:
    """Long (respondent, sub-question, device) rows -> one record per sub-question."""
    if frame.empty:
        return []
    frame = frame.copy()
    frame["device"] = frame["device"].replace(DEVICE_ALIASES)
    counts = frame.groupby(["sub_question_id", "device"]).size().reset_index(name="count")
    counts["percentage"] = (
        (counts["count"] * 100.0 / total_respondents).round(1) if total_respondents else 0.0
    )

    records: List[Dict[str, Any]] = []
    for sub_question_id, group in counts.groupby("sub_question_id", sort=True):
        record: Dict[str, Any] = {"sub_question_id": sub_question_id, "total_respondents": total_respondents}
        for row in group.to_dict("records"):
            record[row["device"]] = {"count": int(row["count"]), "percentage": float(row["percentage"])}
        records.append(record)
    return records
