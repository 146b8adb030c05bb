from datetime import datetime, timezone

import pytest

from medexam.catalog import add_question, create_test, create_user
from medexam.db import init_db


@pytest.fixture
def tmp_db(tmp_path):
    """Provide a temporary SQLite database path for tests."""
    db_path = str(tmp_path / "test_medexam.db")
    return db_path


@pytest.fixture
def now():
    """A fixed point in time, mid-day UTC."""
    return datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def two_question_test(tmp_db):
    """Q1 worth 1 point with A correct; Q2 worth 2 points with B and C correct."""
    init_db(tmp_db)
    test_id = create_test(tmp_db, "Two Questions", category="General", is_published=True, passing_score=70)
    q1 = add_question(tmp_db, test_id, "Q1", [("A", True), ("B", False), ("C", False)], points=1)
    q2 = add_question(tmp_db, test_id, "Q2", [("A", False), ("B", True), ("C", True)], points=2)
    return test_id, q1, q2


@pytest.fixture
def free_user(tmp_db):
    init_db(tmp_db)
    return create_user(tmp_db, "Free Student")


@pytest.fixture
def premium_user(tmp_db):
    init_db(tmp_db)
    return create_user(tmp_db, "Premium Student", subscription_tier="premium")


@pytest.fixture
def option_ids(tmp_db):
    """Look up option ids of a question by their text, e.g. option_ids(q2, "B", "C")."""
    from medexam.db import get_connection

    def lookup(question_id, *texts):
        conn = get_connection(tmp_db)
        rows = conn.execute(
            "SELECT id, text FROM options WHERE question_id = ?", (question_id,)
        ).fetchall()
        conn.close()
        by_text = {r["text"]: r["id"] for r in rows}
        return [by_text[t] for t in texts]

    return lookup
