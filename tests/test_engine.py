"""
Tests for the DuckDB survey engine against a small on-disk survey database.

Run with: pytest tests/test_engine.py -v
"""
import asyncio
from decimal import Decimal

import pandas as pd
import pytest

from core.config import Settings
from core.engine import (
    MAX_SAFE_INTEGER,
    MATRIX_SUB_QUESTIONS,
    EngineInitError,
    EngineNotReadyError,
    EngineState,
    SurveyEngine,
    clean_answer_text,
    narrow_value,
    question_type,
    reshape_matrix,
)
from core.queries import LEARNING_RESOURCES

MATRIX_QUESTION_ID = "MtrX01"
ORG_500 = {"orgSize": ['["500+ people"]']}


class TestLifecycle:
    async def test_initialize_attaches_dataset(self, engine):
        assert engine.ready
        assert engine.needs_schema_prefix
        assert engine.schema_prefix == "survey."

    async def test_concurrent_initialize_shares_one_attempt(self, survey_settings):
        engine = SurveyEngine(survey_settings)
        opened = []
        original_open = engine._open

        def counting_open():
            opened.append(1)
            original_open()

        engine._open = counting_open
        try:
            await asyncio.gather(engine.initialize(), engine.initialize(), engine.initialize())
            assert opened == [1]
            assert engine.state is EngineState.READY
        finally:
            await engine.close()

    async def test_missing_database_is_fatal(self, tmp_path):
        engine = SurveyEngine(Settings(db_path=tmp_path / "missing.duckdb"))
        with pytest.raises(EngineInitError):
            await engine.initialize()
        assert engine.state is EngineState.FAILED
        with pytest.raises(EngineInitError):
            await engine.initialize()
        await engine.close()

    async def test_reinitialize_after_close(self, survey_settings):
        engine = SurveyEngine(survey_settings)
        await engine.initialize()
        await engine.close()
        assert engine.state is EngineState.UNINITIALIZED
        await engine.initialize()
        try:
            assert engine.ready
            assert await engine.get_filtered_count({}) == 6
        finally:
            await engine.close()

    async def test_queries_before_initialize_are_rejected(self, survey_settings):
        engine = SurveyEngine(survey_settings)
        with pytest.raises(EngineNotReadyError):
            await engine.get_filtered_count({})
        await engine.close()

    def test_schema_name_is_validated(self, survey_db):
        with pytest.raises(ValueError):
            SurveyEngine(Settings(db_path=survey_db, schema="survey; DROP"))


class TestMetadata:
    async def test_filter_options_are_loaded_in_logical_order(self, engine):
        options = engine.get_filter_options()
        assert list(options)[0] == "continent"
        experience = options["experience"]
        assert experience["questionId"] == "ElR6d2"
        assert [o["label"] for o in experience["options"]] == [
            "Less than 6 months",
            "2 to 5 years",
            "More than 5 years (I'm a veteran!)",
        ]
        assert experience["options"][1] == {"value": '["2 to 5 years"]', "count": 2, "label": "2 to 5 years"}

    async def test_multi_select_flag_is_exposed(self, engine):
        options = engine.get_filter_options()
        assert options["purpose"]["isMultiSelect"]
        assert options["environment"]["isMultiSelect"]
        assert not options["industry"]["isMultiSelect"]

    async def test_array_options_are_unnested(self, engine):
        industry = engine.get_filter_options()["industry"]["options"]
        assert [(o["value"], o["count"]) for o in industry] == [("Automotive", 2), ("Food", 1), ("Healthcare", 1)]

    async def test_continent_options_come_from_registry(self, engine):
        continent = engine.get_filter_options()["continent"]["options"]
        assert {"value": "Europe", "label": "Europe"} in continent

    async def test_segments(self, engine):
        segments = engine.get_segments()
        assert segments[0] == {"id": "all", "name": "All Respondents", "count": 6}
        assert len(segments) == 7
        smb = next(s for s in segments if s["id"] == "smb_leaders")
        assert smb["count"] == 0


class TestCounts:
    async def test_unfiltered_count(self, engine):
        assert await engine.get_filtered_count({}) == 6

    async def test_single_category(self, engine):
        assert await engine.get_filtered_count(ORG_500) == 2

    async def test_categories_are_intersected(self, engine):
        assert await engine.get_filtered_count({"continent": ["Europe"]}) == 2
        assert await engine.get_filtered_count({"continent": ["Europe"], **ORG_500}) == 0

    async def test_multi_select_membership(self, engine):
        assert await engine.get_filtered_count({"purpose": ["Other"]}) == 1
        assert await engine.get_filtered_count({"industry": ["Automotive"]}) == 2

    async def test_rejected_clause_counts_everyone(self, engine):
        assert await engine.get_filtered_count({"industry": ["x'; DROP TABLE responses"]}) == 6

    async def test_quoted_value_stays_a_literal(self, engine):
        assert await engine.get_filtered_count({"industry": ["' OR 1=1 --"]}) == 0

    async def test_section_counts(self, engine):
        assert await engine.get_section_counts({}) == {
            "section1": {"filtered": 4, "total": 466},
            "section2": {"filtered": 2, "total": 432},
        }
        filtered = await engine.get_section_counts(ORG_500)
        assert filtered["section1"]["filtered"] == 2
        assert filtered["section2"]["filtered"] == 1

    async def test_respondents_for_question(self, engine):
        counts = await engine.get_total_respondents_for_question("VPeNQ6", ORG_500)
        assert counts == {"total_respondents": 3, "filtered_respondents": 2}
        invalid = await engine.get_total_respondents_for_question("bad id")
        assert invalid == {"total_respondents": 0, "filtered_respondents": 0}


class TestDashboard:
    async def test_every_resource_is_listed(self, engine):
        result = await engine.get_dashboard_data()
        assert result.ok
        assert len(result.data) == len(LEARNING_RESOURCES)
        assert result.meta["segment"] == "all"
        assert "lastUpdated" in result.meta

    async def test_resource_metrics(self, engine):
        result = await engine.get_dashboard_data({})
        github = result.data[0]
        assert github["Resource"] == "GitHub"
        assert github["selected_count"] == 3
        assert github["total_respondents"] == 4
        assert github["Reach %"] == "75%"
        assert github["Users"] == "3/4"
        assert github["Rating"] == "6/7"
        assert github["Quality %"] == "67%"
        assert github["Top Ratings"] == "67%"
        assert github["Quality Gap Opp"] == "25%"
        assert github["Reach Gap Opp"] == "17%"
        assert [r["Resource"] for r in result.data[1:3]] == ["Reddit", "YouTube"]

    async def test_unselected_resources_have_placeholders(self, engine):
        result = await engine.get_dashboard_data({})
        slack = next(r for r in result.data if r["Resource"] == "Slack")
        assert slack["selected_count"] == 0
        assert slack["Reach %"] == "0%"
        assert slack["Users"] == "0/4"
        assert slack["Rating"] == "-"
        assert slack["Quality Gap Opp"] == "-"

    async def test_filters_apply(self, engine):
        result = await engine.get_dashboard_data(ORG_500)
        github = result.data[0]
        assert github["Resource"] == "GitHub"
        assert github["Users"] == "2/2"

    async def test_unknown_segment_falls_back_to_all(self, engine):
        result = await engine.get_dashboard_data({}, segment="nobody")
        assert result.ok
        assert result.meta["segment"] == "all"
        assert result.data[0]["total_respondents"] == 4

    async def test_segment_restricts_respondents(self, engine):
        result = await engine.get_dashboard_data({}, segment="smb_leaders")
        assert result.meta["segment"] == "smb_leaders"
        assert all(r["selected_count"] == 0 for r in result.data)
        assert result.data[0]["total_respondents"] == 0


class TestQuantitative:
    async def test_single_select_distribution(self, engine):
        result = await engine.get_quantitative_data("ElR6d2")
        assert result.ok
        assert [(r["answer_text"], r["count"]) for r in result.data] == [
            ("2 to 5 years", 2),
            ("Less than 6 months", 1),
            ("More than 5 years (I'm a veteran!)", 1),
        ]
        assert result.data[0]["percentage"] == pytest.approx(50.0)
        assert result.meta == {"total_respondents": 4, "filtered_respondents": 4, "question_type": "single-select"}

    async def test_experience_chart_ignores_experience_filter(self, engine):
        filters = {"experience": ['["Less than 6 months"]'], **ORG_500}
        result = await engine.get_quantitative_data("ElR6d2", filters)
        assert [(r["answer_text"], r["count"]) for r in result.data] == [("2 to 5 years", 2)]
        assert result.data[0]["percentage"] == pytest.approx(100.0)
        assert result.meta["filtered_respondents"] == 2

    async def test_multi_select_is_unnested(self, engine):
        result = await engine.get_quantitative_data("VPeNQ6")
        assert result.meta["question_type"] == "multi-select"
        texts = [r["answer_text"] for r in result.data]
        assert texts[0] == "Professional developer (work projects, client solutions)"
        assert result.data[0]["count"] == 2
        assert result.data[0]["percentage"] == pytest.approx(66.7)
        assert "Other" in texts

    async def test_multi_select_under_filter(self, engine):
        result = await engine.get_quantitative_data("VPeNQ6", ORG_500)
        by_text = {r["answer_text"]: r for r in result.data}
        assert by_text["Other"]["percentage"] == pytest.approx(50.0)
        assert result.meta["filtered_respondents"] == 2
        assert result.meta["total_respondents"] == 3

    async def test_numeric_answers_sort_numerically(self, engine):
        result = await engine.get_quantitative_data("qGrzG5")
        assert [r["answer_text"] for r in result.data] == ["2", "10"]
        assert result.meta["question_type"] == "numeric"

    async def test_invalid_question_id(self, engine):
        result = await engine.get_quantitative_data("x' OR 1=1")
        assert not result.ok
        assert result.data == []


class TestQualitative:
    async def test_themes_with_percentages(self, engine):
        result = await engine.get_qualitative_data("gqlzqJ")
        assert result.ok
        assert [(r["theme_name"], r["count"]) for r in result.data] == [("Documentation", 3), ("Editor UX", 1)]
        assert result.data[0]["percentage"] == pytest.approx(100.0)
        assert result.data[1]["percentage"] == pytest.approx(33.3)
        assert result.data[0]["description"] == "Better documentation"
        assert result.meta == {"respondent_count": {"filtered": 3}}

    async def test_themes_under_filter(self, engine):
        result = await engine.get_qualitative_data("gqlzqJ", ORG_500)
        assert [r["count"] for r in result.data] == [2, 1]
        assert result.data[1]["percentage"] == pytest.approx(50.0)
        assert result.meta["respondent_count"]["filtered"] == 2

    async def test_unknown_question_is_empty(self, engine):
        result = await engine.get_qualitative_data("zzzzzz")
        assert result.ok
        assert result.data == []
        assert result.meta["respondent_count"]["filtered"] == 0


class TestMatrix:
    async def test_device_breakdown(self, engine):
        result = await engine.get_matrix_data(MATRIX_QUESTION_ID)
        assert result.ok
        assert result.meta["total_respondents"] == 2
        first, second = result.data
        assert first["sub_question_id"] == MATRIX_SUB_QUESTIONS[0]
        assert first["Phone"] == {"count": 1, "percentage": 50.0}
        assert first["Laptop"] == {"count": 2, "percentage": 100.0}
        assert second["sub_question_id"] == MATRIX_SUB_QUESTIONS[1]
        assert second["Laptop"] == {"count": 1, "percentage": 50.0}

    async def test_filters_apply(self, engine):
        result = await engine.get_matrix_data(MATRIX_QUESTION_ID, ORG_500)
        assert result.meta["total_respondents"] == 1
        assert result.data == [
            {
                "sub_question_id": MATRIX_SUB_QUESTIONS[0],
                "total_respondents": 1,
                "Laptop": {"count": 1, "percentage": 100.0},
            }
        ]

    async def test_unexpected_failure_becomes_error_result(self, engine, monkeypatch):
        def failing_reshape(frame, total):
            raise ValueError("reshape failed")

        monkeypatch.setattr("core.engine.reshape_matrix", failing_reshape)
        result = await engine.get_matrix_data(MATRIX_QUESTION_ID)
        assert not result.ok
        assert result.error == "reshape failed"
        assert result.data == []


class TestHelpers:
    def test_narrow_value(self):
        assert narrow_value(42) == 42
        assert narrow_value(MAX_SAFE_INTEGER + 1) == str(MAX_SAFE_INTEGER + 1)
        assert narrow_value(Decimal("12.5")) == 12.5
        assert narrow_value(True) is True
        assert narrow_value([1, Decimal("2.5")]) == [1, 2.5]

    def test_clean_answer_text(self):
        assert clean_answer_text('["1-10 people"]') == "1-10 people"
        assert clean_answer_text(None) is None

    def test_question_type(self):
        assert question_type("VPeNQ6") == "multi-select"
        assert question_type("qGrzG5") == "numeric"
        assert question_type("ElR6d2") == "single-select"

    def test_reshape_matrix_empty(self):
        frame = pd.DataFrame(columns=["respondent_id", "sub_question_id", "device"])
        assert reshape_matrix(frame, 0) == []
