"""Users, tests, questions and options in the store."""
import sqlite3

from medexam.db import get_connection
from medexam.models import PREMIUM_TIERS, ROLES, TIER_FREE, Option, Question, Test, User

TIERS = (TIER_FREE,) + PREMIUM_TIERS
TEST_FIELDS = ("title", "category", "is_published", "is_premium", "passing_score", "time_limit")


def _user_from_row(row) -> User:
    return User(id=row["id"], name=row["name"], role=row["role"], subscription_tier=row["subscription_tier"])


def create_user(db_path: str, name: str, role: str = "user", subscription_tier: str = TIER_FREE) -> User:
    if role not in ROLES:
        raise ValueError(f"Unknown role: {role!r}")
    if subscription_tier not in TIERS:
        raise ValueError(f"Unknown subscription tier: {subscription_tier!r}")
    conn = get_connection(db_path)
    cur = conn.execute(
        "INSERT INTO users (name, role, subscription_tier) VALUES (?, ?, ?)",
        (name, role, subscription_tier),
    )
    conn.commit()
    user_id = cur.lastrowid
    conn.close()
    return User(id=user_id, name=name, role=role, subscription_tier=subscription_tier)


def get_user(db_path: str, user_id: int) -> User | None:
    conn = get_connection(db_path)
    row = conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
    conn.close()
    return _user_from_row(row) if row else None


def list_users(db_path: str) -> list[User]:
    conn = get_connection(db_path)
    rows = conn.execute("SELECT * FROM users ORDER BY id").fetchall()
    conn.close()
    return [_user_from_row(r) for r in rows]


def set_subscription_tier(db_path: str, user_id: int, tier: str) -> None:
    """Apply the tier reported by billing. Billing itself lives elsewhere."""
    if tier not in TIERS:
        raise ValueError(f"Unknown subscription tier: {tier!r}")
    conn = get_connection(db_path)
    conn.execute("UPDATE users SET subscription_tier = ? WHERE id = ?", (tier, user_id))
    conn.commit()
    conn.close()


def check_test_settings(passing_score: int | None = None, time_limit: int | None = None) -> None:
    """Raise ValueError for a pass mark outside 0..100 or a non-positive time limit."""
    if passing_score is not None and not 0 <= passing_score <= 100:
        raise ValueError("passing_score must be between 0 and 100")
    if time_limit is not None and time_limit <= 0:
        raise ValueError("time_limit must be a positive number of minutes")


def insert_test(
    conn: sqlite3.Connection,
    title: str,
    category: str | None = None,
    is_published: bool = False,
    is_premium: bool = False,
    passing_score: int = 70,
    time_limit: int | None = None,
) -> int:
    """Insert a test row; the caller owns the transaction."""
    check_test_settings(passing_score, time_limit)
    cur = conn.execute(
        """INSERT INTO tests (title, category, is_published, is_premium, passing_score, time_limit)
        VALUES (?, ?, ?, ?, ?, ?)""",
        (title, category, int(is_published), int(is_premium), passing_score, time_limit),
    )
    return cur.lastrowid


def create_test(db_path: str, title: str, **settings) -> int:
    conn = get_connection(db_path)
    try:
        test_id = insert_test(conn, title, **settings)
        conn.commit()
    finally:
        conn.close()
    return test_id


def update_test(db_path: str, test_id: int, **fields) -> None:
    """Edit test metadata. In-flight sessions keep the snapshot they started with."""
    unknown = set(fields) - set(TEST_FIELDS)
    if unknown:
        raise ValueError(f"Unknown test fields: {sorted(unknown)}")
    if not fields:
        return
    check_test_settings(fields.get("passing_score"), fields.get("time_limit"))
    columns = ", ".join(f"{name} = ?" for name in fields)
    values = [int(v) if isinstance(v, bool) else v for v in fields.values()]
    conn = get_connection(db_path)
    conn.execute(f"UPDATE tests SET {columns} WHERE id = ?", (*values, test_id))
    conn.commit()
    conn.close()


def publish_test(db_path: str, test_id: int) -> None:
    update_test(db_path, test_id, is_published=True)


def unpublish_test(db_path: str, test_id: int) -> None:
    update_test(db_path, test_id, is_published=False)


def validate_question(options: list[tuple[str, bool]], points: int) -> None:
    """Raise ValueError unless the question has 2+ options, one correct, positive points."""
    if points <= 0:
        raise ValueError("Question points must be a positive integer")
    if len(options) < 2:
        raise ValueError("A question needs at least two options")
    if not any(is_correct for _, is_correct in options):
        raise ValueError("A question needs at least one correct option")


def insert_question(
    conn: sqlite3.Connection,
    test_id: int,
    text: str,
    options: list[tuple[str, bool]],
    points: int = 1,
    explanation: str = "",
) -> int:
    """Append a question to ``test_id``; the caller owns the transaction."""
    validate_question(options, points)
    position = conn.execute(
        "SELECT COALESCE(MAX(position), 0) + 1 FROM questions WHERE test_id = ?", (test_id,)
    ).fetchone()[0]
    cur = conn.execute(
        "INSERT INTO questions (test_id, position, text, points, explanation) VALUES (?, ?, ?, ?, ?)",
        (test_id, position, text, points, explanation),
    )
    question_id = cur.lastrowid
    for i, (option_text, is_correct) in enumerate(options, 1):
        conn.execute(
            "INSERT INTO options (question_id, position, text, is_correct) VALUES (?, ?, ?, ?)",
            (question_id, i, option_text, int(is_correct)),
        )
    return question_id


def add_question(
    db_path: str,
    test_id: int,
    text: str,
    options: list[tuple[str, bool]],
    points: int = 1,
    explanation: str = "",
) -> int:
    """Append a question with ``options`` given as (text, is_correct) pairs."""
    conn = get_connection(db_path)
    try:
        question_id = insert_question(conn, test_id, text, options, points, explanation)
        conn.commit()
    finally:
        conn.close()
    return question_id


def delete_question(db_path: str, question_id: int) -> None:
    conn = get_connection(db_path)
    conn.execute("DELETE FROM questions WHERE id = ?", (question_id,))
    conn.commit()
    conn.close()


def get_test(db_path: str, test_id: int) -> Test | None:
    """Load a test with its questions and options in display order."""
    conn = get_connection(db_path)
    row = conn.execute("SELECT * FROM tests WHERE id = ?", (test_id,)).fetchone()
    if not row:
        conn.close()
        return None
    question_rows = conn.execute(
        "SELECT * FROM questions WHERE test_id = ? ORDER BY position, id", (test_id,)
    ).fetchall()
    questions = []
    for q in question_rows:
        option_rows = conn.execute(
            "SELECT * FROM options WHERE question_id = ? ORDER BY position, id", (q["id"],)
        ).fetchall()
        questions.append(Question(
            id=q["id"],
            text=q["text"],
            points=q["points"],
            explanation=q["explanation"] or "",
            options=tuple(Option(id=o["id"], text=o["text"], is_correct=bool(o["is_correct"])) for o in option_rows),
        ))
    conn.close()
    return Test(
        id=row["id"],
        title=row["title"],
        category=row["category"],
        is_published=bool(row["is_published"]),
        is_premium=bool(row["is_premium"]),
        passing_score=row["passing_score"],
        time_limit=row["time_limit"],
        questions=tuple(questions),
    )


def list_tests(db_path: str, category: str | None = None, published_only: bool = True) -> list[dict]:
    """Test headers with question counts, for listing pages."""
    query = """SELECT t.*, COUNT(q.id) as question_count
        FROM tests t LEFT JOIN questions q ON q.test_id = t.id"""
    clauses, params = [], []
    if published_only:
        clauses.append("t.is_published = 1")
    if category is not None:
        clauses.append("t.category = ?")
        params.append(category)
    if clauses:
        query += " WHERE " + " AND ".join(clauses)
    query += " GROUP BY t.id ORDER BY t.id"
    conn = get_connection(db_path)
    rows = conn.execute(query, params).fetchall()
    conn.close()
    return [dict(r) for r in rows]
