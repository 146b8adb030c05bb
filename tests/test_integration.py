# tests/test_integration.py
"""End-to-end test of the core workflow."""
from datetime import timedelta

from medexam import errors
from medexam.access import can_access
from medexam.catalog import get_test, get_user, list_tests, list_users
from medexam.db import init_db
from medexam.quota import get_remaining
from medexam.results import get_result
from medexam.seed import seed_all
from medexam.sessions import list_user_sessions, record_answer, start_session, submit_session


def _answer_key(test):
    return {q.id: [o.id for o in q.options if o.is_correct] for q in test.questions}


def test_full_exam_workflow(tmp_db, now):
    init_db(tmp_db)
    seed_all(tmp_db)
    free, premium, _ = list_users(tmp_db)
    cardio_row, pharma_row = list_tests(tmp_db)
    cardio = get_test(tmp_db, cardio_row["id"])
    pharma = get_test(tmp_db, pharma_row["id"])

    # Access
    assert can_access(free, cardio)
    assert not can_access(free, pharma)
    assert start_session(tmp_db, free.id, pharma.id, "exam", now).kind == errors.ACCESS_DENIED

    # Exam attempt with every answer right
    session = start_session(tmp_db, free.id, cardio.id, "exam", now)
    for question_id, option_ids in _answer_key(cardio).items():
        record_answer(tmp_db, session.id, question_id, option_ids, now + timedelta(minutes=1))
    result = submit_session(tmp_db, session.id, now + timedelta(minutes=4))
    assert result.score_percentage == 100
    assert result.passed
    assert result.time_spent == 240

    # Free user is out of exam attempts for today but not training ones
    assert get_remaining(tmp_db, free, "exam", now).can_start is False
    assert start_session(tmp_db, free.id, cardio.id, "exam", now).kind == errors.QUOTA_EXHAUSTED
    assert get_remaining(tmp_db, free, "training", now).can_start is True

    # Premium user takes the premium test, missing one multi-select question
    session = start_session(tmp_db, premium.id, pharma.id, "exam", now)
    key = _answer_key(pharma)
    first, second = [q.id for q in pharma.questions]
    record_answer(tmp_db, session.id, first, key[first][:1])
    record_answer(tmp_db, session.id, second, key[second])
    result = submit_session(tmp_db, session.id, now + timedelta(minutes=10))
    assert result.correct_answers == 1
    assert result.total_points_earned == 1
    assert result.total_possible_points == 3
    assert result.score_percentage == 33
    assert not result.passed

    # History and stored result
    history = list_user_sessions(tmp_db, premium.id)
    assert len(history) == 1
    assert get_result(tmp_db, history[0]["id"]) == result
    assert get_user(tmp_db, premium.id).subscription_tier == "premium"
