"""Daily per-mode attempt quotas for non-premium users."""
import logging
import sqlite3
from datetime import datetime

from medexam.access import is_premium
from medexam.clock import day_key
from medexam.db import get_connection
from medexam.models import MODES, Remaining, User
from medexam.settings import get_int_setting, set_setting

log = logging.getLogger(__name__)

LIMIT_KEYS = {
    "training": "training_daily_limit",
    "exam": "exam_daily_limit",
}


def _check_mode(mode: str) -> None:
    if mode not in MODES:
        raise ValueError(f"Unknown mode: {mode!r}")


def get_limits(db_path: str) -> dict:
    """Configured daily limits for free users, keyed by mode."""
    return {mode: get_int_setting(db_path, key) for mode, key in LIMIT_KEYS.items()}


def set_limit(db_path: str, mode: str, limit: int) -> None:
    _check_mode(mode)
    if limit < 0:
        raise ValueError("Daily limit cannot be negative")
    set_setting(db_path, LIMIT_KEYS[mode], str(limit))


def get_used(conn: sqlite3.Connection, user_id: int, mode: str, day: str) -> int:
    row = conn.execute(
        "SELECT count FROM attempt_records WHERE user_id = ? AND mode = ? AND day = ?",
        (user_id, mode, day),
    ).fetchone()
    return row["count"] if row else 0


def get_remaining(db_path: str, user: User, mode: str, now: datetime | None = None) -> Remaining:
    _check_mode(mode)
    conn = get_connection(db_path)
    used = get_used(conn, user.id, mode, day_key(now))
    conn.close()
    if is_premium(user):
        return Remaining(used=used, limit=None, can_start=True)
    limit = get_int_setting(db_path, LIMIT_KEYS[mode])
    return Remaining(used=used, limit=limit, can_start=used < limit)


def increment_attempt(
    conn: sqlite3.Connection, user_id: int, mode: str, day: str, limit: int | None
) -> bool:
    """Increment the (user, mode, day) counter in one statement, capped at ``limit``.

    The check and the increment happen inside a single upsert, so two
    concurrent starts at the last free slot cannot both succeed. Returns
    whether a row was written. The caller owns the transaction.
    """
    if limit is None:
        cur = conn.execute(
            """INSERT INTO attempt_records (user_id, mode, day, count) VALUES (?, ?, ?, 1)
            ON CONFLICT(user_id, mode, day) DO UPDATE SET count = count + 1""",
            (user_id, mode, day),
        )
        return cur.rowcount > 0
    if limit <= 0:
        return False
    cur = conn.execute(
        """INSERT INTO attempt_records (user_id, mode, day, count) VALUES (?, ?, ?, 1)
        ON CONFLICT(user_id, mode, day) DO UPDATE SET count = count + 1
        WHERE attempt_records.count < ?""",
        (user_id, mode, day, limit),
    )
    return cur.rowcount > 0


def record_attempt(db_path: str, user: User, mode: str, now: datetime | None = None) -> bool:
    """Count one started attempt if the user still has quota today.

    Returns False without touching the counter once the quota is spent.
    Premium usage is still counted, just never capped.
    """
    _check_mode(mode)
    limit = None if is_premium(user) else get_int_setting(db_path, LIMIT_KEYS[mode])
    conn = get_connection(db_path)
    try:
        recorded = increment_attempt(conn, user.id, mode, day_key(now), limit)
        conn.commit()
    finally:
        conn.close()
    if not recorded:
        log.info("Daily %s limit reached for user %s", mode, user.id)
    return recorded
