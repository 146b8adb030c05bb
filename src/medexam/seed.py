"""Seed the database with demo users and tests."""
import json
from pathlib import Path

from medexam.catalog import add_question, create_test, create_user
from medexam.db import get_connection

CONTENT_DIR = Path(__file__).parent / "content"


def is_seeded(db_path: str) -> bool:
    """Check whether the database already holds any tests."""
    conn = get_connection(db_path)
    count = conn.execute("SELECT COUNT(*) FROM tests").fetchone()[0]
    conn.close()
    return count > 0


def _load_content() -> dict:
    return json.loads((CONTENT_DIR / "demo_tests.json").read_text())


def seed_users(db_path: str) -> None:
    for user in _load_content()["users"]:
        create_user(db_path, user["name"], role=user["role"], subscription_tier=user["subscription_tier"])


def seed_tests(db_path: str) -> None:
    """Insert the demo tests with their questions, in file order."""
    for test in _load_content()["tests"]:
        test_id = create_test(
            db_path,
            test["title"],
            category=test["category"],
            is_published=test["is_published"],
            is_premium=test["is_premium"],
            passing_score=test["passing_score"],
            time_limit=test["time_limit"],
        )
        for q in test["questions"]:
            add_question(
                db_path,
                test_id,
                q["text"],
                [(o["text"], o["is_correct"]) for o in q["options"]],
                points=q["points"],
                explanation=q["explanation"],
            )


def seed_all(db_path: str) -> None:
    """Run all seed functions in order."""
    if is_seeded(db_path):
        return
    seed_users(db_path)
    seed_tests(db_path)
