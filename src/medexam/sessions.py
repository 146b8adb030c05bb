"""Test-taking sessions: start, answer, submit.

A session moves NotStarted -> InProgress -> Submitted. Starting is gated by
the access policy and the daily quota; submitting scores the answers and
freezes a Result. Submitted sessions never change again.
"""
import json
import logging
import sqlite3
import uuid
from dataclasses import asdict
from datetime import datetime, timedelta

from medexam import errors
from medexam.access import can_access, is_premium
from medexam.catalog import get_test, get_user
from medexam.clock import day_key, ensure_utc, from_iso, to_iso, utc_now
from medexam.db import get_connection
from medexam.errors import Failure
from medexam.models import MODE_TRAINING, MODES, Option, Question, Result, Session, Test
from medexam.quota import LIMIT_KEYS, increment_attempt
from medexam.results import assemble, save_result
from medexam.scoring import score
from medexam.settings import get_int_setting

log = logging.getLogger(__name__)


def _now(now: datetime | None) -> datetime:
    return ensure_utc(now) if now is not None else utc_now()


def snapshot_test(test: Test) -> str:
    return json.dumps(asdict(test))


def load_snapshot(data: str) -> Test:
    raw = json.loads(data)
    questions = tuple(
        Question(
            id=q["id"],
            text=q["text"],
            points=q["points"],
            explanation=q["explanation"],
            options=tuple(Option(**o) for o in q["options"]),
        )
        for q in raw.pop("questions")
    )
    return Test(questions=questions, **raw)


def _load_session(conn: sqlite3.Connection, session_id: str) -> Session | None:
    row = conn.execute("SELECT * FROM sessions WHERE id = ?", (session_id,)).fetchone()
    if not row:
        return None
    answer_rows = conn.execute(
        "SELECT question_id, option_ids FROM session_answers WHERE session_id = ?", (session_id,)
    ).fetchall()
    mark_rows = conn.execute(
        "SELECT question_id FROM session_marks WHERE session_id = ?", (session_id,)
    ).fetchall()
    return Session(
        id=row["id"],
        user_id=row["user_id"],
        test=load_snapshot(row["test_snapshot"]),
        mode=row["mode"],
        started_at=from_iso(row["started_at"]),
        submitted_at=from_iso(row["submitted_at"]),
        answers={a["question_id"]: frozenset(json.loads(a["option_ids"])) for a in answer_rows},
        marked={m["question_id"] for m in mark_rows},
    )


def get_session(db_path: str, session_id: str) -> Session | None:
    conn = get_connection(db_path)
    session = _load_session(conn, session_id)
    conn.close()
    return session


def start_session(
    db_path: str, user_id: int, test_id: int, mode: str, now: datetime | None = None
) -> Session | Failure:
    """Open a session if the user may take the test and has quota left today.

    User and test are reloaded on every call so a tier change or unpublish
    takes effect immediately. The attempt is counted in the same transaction
    that creates the session.
    """
    if mode not in MODES:
        raise ValueError(f"Unknown mode: {mode!r}")
    now = _now(now)
    user = get_user(db_path, user_id)
    test = get_test(db_path, test_id)
    if user is None or test is None or not can_access(user, test):
        log.info("Access denied: user %s, test %s", user_id, test_id)
        return Failure(errors.ACCESS_DENIED, f"test {test_id}")
    if not test.questions or test.total_points <= 0:
        log.error("Test %s has no scorable questions", test_id)
        return Failure(errors.EMPTY_TEST, f"test {test_id}")

    limit = None if is_premium(user) else get_int_setting(db_path, LIMIT_KEYS[mode])
    session = Session(id=uuid.uuid4().hex, user_id=user.id, test=test, mode=mode, started_at=now)
    conn = get_connection(db_path)
    try:
        if not increment_attempt(conn, user.id, mode, day_key(now), limit):
            conn.rollback()
            log.info("Daily %s limit reached for user %s", mode, user.id)
            return Failure(errors.QUOTA_EXHAUSTED, mode)
        conn.execute(
            """INSERT INTO sessions (id, user_id, test_id, mode, started_at, test_snapshot)
            VALUES (?, ?, ?, ?, ?, ?)""",
            (session.id, user.id, test.id, mode, to_iso(now), snapshot_test(test)),
        )
        conn.commit()
    finally:
        conn.close()
    log.info("Started %s session %s for user %s on test %s", mode, session.id, user.id, test.id)
    return session


def _anomaly(kind: str, detail: str) -> Failure:
    log.warning("Rejected stale or malformed call (%s): %s", kind, detail)
    return Failure(kind, detail)


def _load_open_question(conn: sqlite3.Connection, session_id: str, question_id: int):
    """Load an in-progress session and one of its questions, or the Failure that applies."""
    session = _load_session(conn, session_id)
    if session is None:
        return _anomaly(errors.SESSION_NOT_FOUND, session_id), None
    if session.is_submitted:
        return _anomaly(errors.SESSION_CLOSED, session_id), None
    question = session.test.get_question(question_id)
    if question is None:
        return _anomaly(errors.INVALID_QUESTION, f"question {question_id} not in session {session_id}"), None
    return session, question


def record_answer(
    db_path: str,
    session_id: str,
    question_id: int,
    selected_option_ids,
    now: datetime | None = None,
) -> Session | Failure:
    """Replace the selection for one question. Last write wins."""
    selected = frozenset(selected_option_ids)
    conn = get_connection(db_path)
    try:
        conn.execute("BEGIN IMMEDIATE")
        session, question = _load_open_question(conn, session_id, question_id)
        if isinstance(session, Failure):
            conn.rollback()
            return session
        if not selected <= question.option_ids:
            conn.rollback()
            return _anomaly(errors.INVALID_QUESTION, f"unknown options {sorted(selected - question.option_ids)}")
        conn.execute(
            """INSERT INTO session_answers (session_id, question_id, option_ids, answered_at)
            VALUES (?, ?, ?, ?)
            ON CONFLICT(session_id, question_id) DO UPDATE SET option_ids = excluded.option_ids,
            answered_at = excluded.answered_at""",
            (session_id, question_id, json.dumps(sorted(selected)), to_iso(_now(now))),
        )
        conn.commit()
    finally:
        conn.close()
    session.answers[question_id] = selected
    return session


def toggle_mark_for_review(db_path: str, session_id: str, question_id: int) -> Session | Failure:
    """Flag a question to come back to, or clear the flag. Marks never affect scoring."""
    conn = get_connection(db_path)
    try:
        conn.execute("BEGIN IMMEDIATE")
        session, _ = _load_open_question(conn, session_id, question_id)
        if isinstance(session, Failure):
            conn.rollback()
            return session
        if question_id in session.marked:
            conn.execute(
                "DELETE FROM session_marks WHERE session_id = ? AND question_id = ?", (session_id, question_id)
            )
            session.marked.discard(question_id)
        else:
            conn.execute(
                "INSERT INTO session_marks (session_id, question_id) VALUES (?, ?)", (session_id, question_id)
            )
            session.marked.add(question_id)
        conn.commit()
    finally:
        conn.close()
    return session


def submit_session(db_path: str, session_id: str, now: datetime | None = None) -> Result | Failure:
    """Close the session, score it and store the Result.

    The time limit is advisory: late submissions are accepted and flagged
    ``over_time_limit``. A second submit returns SESSION_CLOSED and leaves
    the stored Result alone.
    """
    now = _now(now)
    conn = get_connection(db_path)
    try:
        conn.execute("BEGIN IMMEDIATE")
        session = _load_session(conn, session_id)
        if session is None:
            conn.rollback()
            return _anomaly(errors.SESSION_NOT_FOUND, session_id)
        cur = conn.execute(
            "UPDATE sessions SET submitted_at = ? WHERE id = ? AND submitted_at IS NULL",
            (to_iso(now), session_id),
        )
        if cur.rowcount == 0:
            conn.rollback()
            return _anomaly(errors.SESSION_CLOSED, session_id)
        session.submitted_at = now
        over_limit = is_over_time_limit(session, now)
        if over_limit:
            log.warning(
                "Session %s submitted after its %s minute limit", session_id, session.test.time_limit
            )
        result = assemble(session, score(session.test, session.answers), over_time_limit=over_limit)
        save_result(conn, result)
        conn.commit()
    finally:
        conn.close()
    log.info(
        "Submitted session %s: %s%% (%s)",
        session_id, result.score_percentage, "passed" if result.passed else "failed",
    )
    return result


def is_over_time_limit(session: Session, now: datetime) -> bool:
    if session.test.time_limit is None:
        return False
    return now - session.started_at > timedelta(minutes=session.test.time_limit)


def time_remaining(session: Session, now: datetime | None = None) -> int | None:
    """Seconds left on the advisory clock, or None when the test is untimed."""
    if session.test.time_limit is None:
        return None
    deadline = session.started_at + timedelta(minutes=session.test.time_limit)
    return max(0, int((deadline - _now(now)).total_seconds()))


def check_answer(session: Session, question_id: int) -> bool | None:
    """Immediate feedback for training mode.

    Returns whether the recorded selection is correct, or None in exam mode,
    for unanswered questions and for questions outside the test.
    """
    if session.mode != MODE_TRAINING:
        return None
    question = session.test.get_question(question_id)
    if question is None or question_id not in session.answers:
        return None
    return session.answers[question_id] == question.correct_option_ids


def get_progress(session: Session) -> dict:
    answered = [q.id for q in session.test.questions if session.answers.get(q.id)]
    return {
        "answered": len(answered),
        "total": len(session.test.questions),
        "unanswered": [q.id for q in session.test.questions if q.id not in answered],
        "marked": [q.id for q in session.test.questions if q.id in session.marked],
    }


def list_user_sessions(
    db_path: str,
    user_id: int,
    test_id: int | None = None,
    limit: int = 20,
    completed_only: bool = True,
) -> list[dict]:
    """Session history for a user, newest first, with scores where available."""
    query = """SELECT s.id, s.test_id, s.mode, s.started_at, s.submitted_at, t.title,
        r.score_percentage, r.passed, r.time_spent
        FROM sessions s
        JOIN tests t ON s.test_id = t.id
        LEFT JOIN results r ON r.session_id = s.id
        WHERE s.user_id = ?"""
    params: list = [user_id]
    if completed_only:
        query += " AND s.submitted_at IS NOT NULL"
    if test_id is not None:
        query += " AND s.test_id = ?"
        params.append(test_id)
    query += " ORDER BY s.started_at DESC LIMIT ?"
    params.append(limit)
    conn = get_connection(db_path)
    rows = conn.execute(query, params).fetchall()
    conn.close()
    return [dict(r) for r in rows]


def delete_session(db_path: str, session_id: str, user_id: int) -> bool:
    """Delete a user's own session with its answers and result."""
    conn = get_connection(db_path)
    cur = conn.execute("DELETE FROM sessions WHERE id = ? AND user_id = ?", (session_id, user_id))
    conn.commit()
    conn.close()
    return cur.rowcount > 0


def purge_abandoned_sessions(db_path: str, older_than_hours: int | None = None, now: datetime | None = None) -> int:
    """Delete never-submitted sessions started more than ``older_than_hours`` ago.

    Attempts already counted against the daily quota are not refunded.
    """
    if older_than_hours is None:
        older_than_hours = get_int_setting(db_path, "abandoned_session_hours")
    cutoff = _now(now) - timedelta(hours=older_than_hours)
    conn = get_connection(db_path)
    cur = conn.execute(
        "DELETE FROM sessions WHERE submitted_at IS NULL AND started_at < ?", (to_iso(cutoff),)
    )
    conn.commit()
    conn.close()
    if cur.rowcount:
        log.info("Purged %d abandoned sessions", cur.rowcount)
    return cur.rowcount
