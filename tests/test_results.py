import json
from datetime import timedelta

import pytest

from medexam.models import Option, Question, Session, Test
from medexam.results import assemble, export_result, get_result, result_summary
from medexam.scoring import score
from medexam.sessions import record_answer, start_session, submit_session


def _session(now, submitted_after=timedelta(minutes=2, seconds=30.7)):
    test = Test(id=3, title="T", is_published=True, questions=(
        Question(id=1, text="Q1", points=1, options=(Option(11, "A", True), Option(12, "B"))),
    ))
    return Session(
        id="s1", user_id=9, test=test, mode="exam", started_at=now,
        answers={1: frozenset({11})}, submitted_at=now + submitted_after,
    )


def test_assemble_copies_session_metadata(now):
    session = _session(now)
    result = assemble(session, score(session.test, session.answers))
    assert result.session_id == "s1"
    assert result.user_id == 9
    assert result.test_id == 3
    assert result.mode == "exam"
    assert result.time_spent == 150  # whole seconds, fraction dropped
    assert result.score_percentage == 100
    assert result.passed is True
    assert result.over_time_limit is False


def test_assemble_requires_submitted_session(now):
    session = _session(now)
    session.submitted_at = None
    with pytest.raises(ValueError):
        assemble(session, score(session.test, session.answers))


def test_result_is_frozen(now):
    session = _session(now)
    result = assemble(session, score(session.test, session.answers))
    with pytest.raises(AttributeError):
        result.score_percentage = 0


def test_get_result_missing(tmp_db, free_user):
    assert get_result(tmp_db, "nope") is None


def test_result_not_rescored_after_question_edit(tmp_db, free_user, two_question_test, option_ids, now):
    from medexam.db import get_connection

    test_id, q1, q2 = two_question_test
    session = start_session(tmp_db, free_user.id, test_id, "exam", now)
    record_answer(tmp_db, session.id, q1, option_ids(q1, "A"))
    result = submit_session(tmp_db, session.id, now + timedelta(minutes=1))
    # Flip the correct option after the fact
    conn = get_connection(tmp_db)
    conn.execute("UPDATE options SET is_correct = 1 - is_correct WHERE question_id = ?", (q1,))
    conn.commit()
    conn.close()
    stored = get_result(tmp_db, session.id)
    assert stored == result
    assert stored.outcomes[0].is_correct is True


def test_result_summary(now):
    session = _session(now)
    summary = result_summary(assemble(session, score(session.test, session.answers)))
    assert summary["total_questions"] == 1
    assert summary["points"] == "1/1"
    assert summary["passed"] is True


def test_export_result_is_json(now):
    session = _session(now)
    data = json.loads(export_result(assemble(session, score(session.test, session.answers))))
    assert data["session_id"] == "s1"
    assert data["outcomes"][0]["selected_option_ids"] == [11]
    assert data["started_at"].startswith("2026-03-10T12:00:00")
