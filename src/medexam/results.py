"""Freezing scored sessions into durable result records."""
import json
import sqlite3
from dataclasses import asdict

from medexam.clock import from_iso, to_iso
from medexam.db import get_connection
from medexam.models import QuestionOutcome, Result, ScoreOutcome, Session


def assemble(session: Session, outcome: ScoreOutcome, over_time_limit: bool = False) -> Result:
    """Combine a submitted session with its score. Pure; the session must be submitted."""
    if session.submitted_at is None:
        raise ValueError("Cannot assemble a result for a session that was not submitted")
    elapsed = session.submitted_at - session.started_at
    return Result(
        session_id=session.id,
        user_id=session.user_id,
        test_id=session.test_id,
        mode=session.mode,
        outcomes=outcome.outcomes,
        correct_answers=outcome.correct_answers,
        incorrect_answers=outcome.incorrect_answers,
        total_points_earned=outcome.total_points_earned,
        total_possible_points=outcome.total_possible_points,
        score_percentage=outcome.score_percentage,
        passed=outcome.passed,
        time_spent=max(0, int(elapsed.total_seconds())),
        started_at=session.started_at,
        submitted_at=session.submitted_at,
        over_time_limit=over_time_limit,
    )


def save_result(conn: sqlite3.Connection, result: Result) -> None:
    """Insert ``result``; the caller owns the transaction. A second save for a session fails."""
    conn.execute(
        """INSERT INTO results
        (session_id, user_id, test_id, mode, correct_answers, incorrect_answers,
         total_points_earned, total_possible_points, score_percentage, passed,
         time_spent, over_time_limit, started_at, submitted_at)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
        (
            result.session_id, result.user_id, result.test_id, result.mode,
            result.correct_answers, result.incorrect_answers,
            result.total_points_earned, result.total_possible_points,
            result.score_percentage, int(result.passed), result.time_spent,
            int(result.over_time_limit), to_iso(result.started_at), to_iso(result.submitted_at),
        ),
    )
    for position, item in enumerate(result.outcomes, 1):
        conn.execute(
            """INSERT INTO result_items
            (session_id, position, question_id, selected_option_ids, correct_option_ids,
             is_correct, points_earned, points_possible)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                result.session_id, position, item.question_id,
                json.dumps(list(item.selected_option_ids)), json.dumps(list(item.correct_option_ids)),
                int(item.is_correct), item.points_earned, item.points_possible,
            ),
        )


def get_result(db_path: str, session_id: str) -> Result | None:
    """The result exactly as frozen at submission. Never rescored."""
    conn = get_connection(db_path)
    row = conn.execute("SELECT * FROM results WHERE session_id = ?", (session_id,)).fetchone()
    if not row:
        conn.close()
        return None
    items = conn.execute(
        "SELECT * FROM result_items WHERE session_id = ? ORDER BY position", (session_id,)
    ).fetchall()
    conn.close()
    outcomes = tuple(
        QuestionOutcome(
            question_id=i["question_id"],
            selected_option_ids=tuple(json.loads(i["selected_option_ids"])),
            correct_option_ids=tuple(json.loads(i["correct_option_ids"])),
            is_correct=bool(i["is_correct"]),
            points_earned=i["points_earned"],
            points_possible=i["points_possible"],
        )
        for i in items
    )
    return Result(
        session_id=row["session_id"],
        user_id=row["user_id"],
        test_id=row["test_id"],
        mode=row["mode"],
        outcomes=outcomes,
        correct_answers=row["correct_answers"],
        incorrect_answers=row["incorrect_answers"],
        total_points_earned=row["total_points_earned"],
        total_possible_points=row["total_possible_points"],
        score_percentage=row["score_percentage"],
        passed=bool(row["passed"]),
        time_spent=row["time_spent"],
        started_at=from_iso(row["started_at"]),
        submitted_at=from_iso(row["submitted_at"]),
        over_time_limit=bool(row["over_time_limit"]),
    )


def result_summary(result: Result) -> dict:
    total = result.correct_answers + result.incorrect_answers
    return {
        "session_id": result.session_id,
        "mode": result.mode,
        "total_questions": total,
        "correct_answers": result.correct_answers,
        "incorrect_answers": result.incorrect_answers,
        "points": f"{result.total_points_earned}/{result.total_possible_points}",
        "score_percentage": result.score_percentage,
        "passed": result.passed,
        "time_spent": result.time_spent,
        "over_time_limit": result.over_time_limit,
    }


def export_result(result: Result) -> str:
    """JSON export of a result, timestamps as ISO strings."""
    data = asdict(result)
    data["started_at"] = to_iso(result.started_at)
    data["submitted_at"] = to_iso(result.submitted_at)
    return json.dumps(data, indent=2)
