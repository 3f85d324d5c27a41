import json

import duckdb
import pytest

from core.config import Settings
from core.engine import MATRIX_SUB_QUESTIONS, SurveyEngine

MATRIX_QUESTION_ID = "MtrX01"

RESPONSES = [
    # experience
    (1, "ElR6d2", '["Less than 6 months"]'),
    (2, "ElR6d2", '["2 to 5 years"]'),
    (3, "ElR6d2", '["2 to 5 years"]'),
    (4, "ElR6d2", '["More than 5 years (I\'m a veteran!)"]'),
    # organization size
    (1, "joRz61", '["1-10 people"]'),
    (2, "joRz61", '["500+ people"]'),
    (3, "joRz61", '["500+ people"]'),
    (4, "joRz61", '["11-50 people"]'),
    # industry (stored as an array)
    (1, "2AWoaM", '["Automotive"]'),
    (2, "2AWoaM", '["Food","Automotive"]'),
    (3, "2AWoaM", '["Healthcare"]'),
    # country codes
    (1, "GpGjoO", "276"),
    (2, "GpGjoO", "840"),
    (3, "GpGjoO", "36"),
    (4, "GpGjoO", "276"),
    # primary purpose (multi-select)
    (1, "VPeNQ6", '["Hobbyist/Personal projects (home automation, learning, experiments)"]'),
    (2, "VPeNQ6", '["Professional developer (work projects, client solutions)","Other"]'),
    (3, "VPeNQ6", '["Professional developer (work projects, client solutions)"]'),
    # learning resources and their follow-up rating
    (1, "NXjPAO", '["YouTube","GitHub"]'),
    (2, "NXjPAO", '["GitHub"]'),
    (3, "NXjPAO", '["Reddit","GitHub"]'),
    (4, "NXjPAO", "[]"),
    (1, "GpGAdp", "6"),
    (2, "GpGAdp", "4"),
    (3, "GpGAdp", "7"),
    # second section question
    (1, "VZBmQy", "Better docs"),
    (2, "VZBmQy", "More nodes"),
    (3, "VZBmQy", "  "),
    # production usage and decision influence
    (2, "ZO7eJB", '["Yes, extensively in production systems"]'),
    (3, "ZO7eJB", '["Yes, in some production systems"]'),
    (2, "P9xr1x", '["I make the final decision"]'),
    # numeric answers
    (1, "qGrzG5", "10"),
    (2, "qGrzG5", "2"),
    (3, "qGrzG5", "2"),
    # device matrix
    (
        1,
        MATRIX_QUESTION_ID,
        json.dumps({MATRIX_SUB_QUESTIONS[0]: ["Smartphone", "Laptop"], MATRIX_SUB_QUESTIONS[1]: ["Laptop"]}),
    ),
    (2, MATRIX_QUESTION_ID, json.dumps({MATRIX_SUB_QUESTIONS[0]: ["Laptop"]})),
    # respondents known only by email domain
    (5, "2AWolV", '["Work Email"]'),
    (6, "2AWolV", '["Personal Email"]'),
]

THEMES = [
    ("gqlzqJ", "Documentation", "Better documentation", '["More examples please"]', [1, 2, 3]),
    ("gqlzqJ", "Editor UX", "Editor usability", '["Dark mode"]', [2]),
]


def build_survey_db(path):
    conn = duckdb.connect(str(path))
    try:
        conn.execute("CREATE TABLE responses (respondent_id INTEGER, question_id VARCHAR, answer_text VARCHAR)")
        conn.executemany("INSERT INTO responses VALUES (?, ?, ?)", RESPONSES)
        conn.execute(
            "CREATE TABLE qualitative_themes ("
            "question_id VARCHAR, theme_name VARCHAR, description VARCHAR, "
            "representative_quotes VARCHAR, respondent_ids INTEGER[])"
        )
        conn.executemany("INSERT INTO qualitative_themes VALUES (?, ?, ?, ?, ?)", THEMES)
    finally:
        conn.close()
    return path


@pytest.fixture
def survey_db(tmp_path):
    return build_survey_db(tmp_path / "survey.duckdb")


@pytest.fixture
def survey_settings(survey_db):
    return Settings(db_path=survey_db, url_debounce_seconds=0.01)


@pytest.fixture
async def engine(survey_settings):
    engine = SurveyEngine(survey_settings)
    await engine.initialize()
    yield engine
    await engine.close()
