from medexam.catalog import get_test, list_tests, list_users
from medexam.db import init_db, get_connection
from medexam.seed import is_seeded, seed_all, seed_tests, seed_users


def test_seed_users(tmp_db):
    init_db(tmp_db)
    seed_users(tmp_db)
    users = list_users(tmp_db)
    assert len(users) == 3
    assert {u.subscription_tier for u in users} == {"free", "premium"}


def test_seed_tests(tmp_db):
    init_db(tmp_db)
    seed_tests(tmp_db)
    published = list_tests(tmp_db)
    assert [t["title"] for t in published] == ["Cardiology Basics", "Pharmacology Advanced"]
    cardio = get_test(tmp_db, published[0]["id"])
    assert len(cardio.questions) == 3
    assert cardio.total_points == 4


def test_seeded_questions_are_valid(tmp_db):
    init_db(tmp_db)
    seed_tests(tmp_db)
    for row in list_tests(tmp_db, published_only=False):
        for q in get_test(tmp_db, row["id"]).questions:
            assert len(q.options) >= 2
            assert q.correct_option_ids


def test_seed_all_is_idempotent(tmp_db):
    init_db(tmp_db)
    assert not is_seeded(tmp_db)
    seed_all(tmp_db)
    seed_all(tmp_db)
    assert is_seeded(tmp_db)
    conn = get_connection(tmp_db)
    assert conn.execute("SELECT COUNT(*) FROM tests").fetchone()[0] == 3
    assert conn.execute("SELECT COUNT(*) FROM users").fetchone()[0] == 3
    conn.close()
