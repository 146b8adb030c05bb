"""Key/value settings stored alongside the data."""
from medexam.db import get_connection

DEFAULTS = {
    "training_daily_limit": "3",
    "exam_daily_limit": "1",
    "abandoned_session_hours": "48",
}


def get_setting(db_path: str, key: str, default: str = None) -> str | None:
    conn = get_connection(db_path)
    row = conn.execute("SELECT value FROM settings WHERE key = ?", (key,)).fetchone()
    conn.close()
    if row:
        return row["value"]
    return default if default is not None else DEFAULTS.get(key)


def set_setting(db_path: str, key: str, value: str) -> None:
    conn = get_connection(db_path)
    conn.execute(
        "INSERT INTO settings (key, value) VALUES (?, ?) ON CONFLICT(key) DO UPDATE SET value=?",
        (key, value, value),
    )
    conn.commit()
    conn.close()


def get_int_setting(db_path: str, key: str) -> int:
    return int(get_setting(db_path, key))
