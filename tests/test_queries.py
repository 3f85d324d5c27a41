"""
Tests for SQL template preparation: comments, CTE discovery, schema prefixing
and WHERE placeholder substitution.

Run with: pytest tests/test_queries.py -v
"""
from core.queries import (
    DASHBOARD_QUERY,
    LEARNING_RESOURCES,
    WHERE_PLACEHOLDER,
    QueryTemplate,
    apply_schema_prefix,
    collapse_double_prefix,
    find_cte_names,
    prepare_query,
    strip_line_comments,
    substitute_where_clause,
)

TEMPLATE = """-- resource counts
WITH base AS (
    SELECT respondent_id FROM responses r WHERE question_id = 'NXjPAO' {{WHERE_CLAUSE}}
),
themes AS (
    SELECT * FROM qualitative_themes
)
SELECT COUNT(*) FROM base JOIN themes ON true
"""


class TestTemplateParsing:
    def test_line_comments_are_removed(self):
        sql = strip_line_comments("-- one\nSELECT 1\n  -- two\nFROM x")
        assert sql == "SELECT 1\nFROM x"

    def test_cte_names_are_found(self):
        assert find_cte_names(TEMPLATE) == frozenset({"base", "themes"})

    def test_template_records_ctes(self):
        template = QueryTemplate(TEMPLATE, name="test")
        assert template.cte_names == frozenset({"base", "themes"})
        assert "--" not in template.sql


class TestSchemaPrefix:
    def test_tables_are_prefixed_and_ctes_are_not(self):
        sql = apply_schema_prefix(TEMPLATE, find_cte_names(TEMPLATE))
        assert "FROM survey.responses r" in sql
        assert "FROM survey.qualitative_themes" in sql
        assert "FROM base JOIN themes" in sql

    def test_already_qualified_reference_is_left_alone(self):
        sql = apply_schema_prefix("SELECT * FROM survey.responses", frozenset())
        assert sql == "SELECT * FROM survey.responses"

    def test_other_schema_reference_is_left_alone(self):
        sql = apply_schema_prefix("SELECT * FROM main.responses", frozenset())
        assert sql == "SELECT * FROM main.responses"

    def test_helper_functions_are_prefixed(self):
        sql = apply_schema_prefix("SELECT * FROM analyze_learning_resources('x')", frozenset())
        assert "survey.analyze_learning_resources(" in sql
        assert "survey.survey." not in sql

    def test_double_prefix_is_collapsed(self):
        assert collapse_double_prefix("FROM survey.survey.responses") == "FROM survey.responses"

    def test_custom_schema(self):
        sql = apply_schema_prefix("SELECT * FROM responses", frozenset(), schema="archive")
        assert sql == "SELECT * FROM archive.responses"


class TestWhereSubstitution:
    def test_trivial_clause_removes_placeholder(self):
        sql = substitute_where_clause("WHERE x = 1 {{WHERE_CLAUSE}}", "1=1")
        assert sql.strip() == "WHERE x = 1"

    def test_empty_clause_removes_placeholder(self):
        assert WHERE_PLACEHOLDER not in substitute_where_clause("a {{WHERE_CLAUSE}} b", "")

    def test_clause_is_prefixed_with_and(self):
        sql = substitute_where_clause("WHERE x = 1 {{WHERE_CLAUSE}}", "y = 2")
        assert sql == "WHERE x = 1 AND y = 2"

    def test_every_placeholder_is_replaced(self):
        sql = substitute_where_clause("{{WHERE_CLAUSE}} | {{WHERE_CLAUSE}}", "z")
        assert sql == "AND z | AND z"


class TestPrepareQuery:
    def test_prefix_then_substitute(self):
        clause = "EXISTS (SELECT 1 FROM survey.responses WHERE respondent_id = r.respondent_id)"
        sql = prepare_query(TEMPLATE, clause, needs_schema_prefix=True)
        assert "FROM survey.responses r WHERE question_id = 'NXjPAO' AND EXISTS" in sql
        assert "survey.survey." not in sql

    def test_without_prefix_tables_stay_bare(self):
        sql = prepare_query(TEMPLATE, None, needs_schema_prefix=False)
        assert "FROM responses r" in sql
        assert WHERE_PLACEHOLDER not in sql


class TestDashboardQuery:
    def test_placeholders_in_counts_and_selection(self):
        assert DASHBOARD_QUERY.sql.count(WHERE_PLACEHOLDER) == 2

    def test_every_resource_is_listed(self):
        for resource in LEARNING_RESOURCES:
            assert resource.replace("'", "''") in DASHBOARD_QUERY.sql

    def test_rendered_for_attached_schema(self):
        sql = DASHBOARD_QUERY.render("1=1", needs_schema_prefix=True)
        assert "FROM survey.responses r" in sql
        assert "FROM survey.resource_counts" not in sql
        assert "FROM individual_resources" in sql
        assert WHERE_PLACEHOLDER not in sql
