"""Typed failure results returned by engine operations.

Expected refusals (no access, quota used up, closed session, ...) are returned
as ``Failure`` values rather than raised. Only persistence problems propagate
as exceptions (``sqlite3.Error``) to the top-level handler.
"""
from dataclasses import dataclass

ACCESS_DENIED = "access_denied"
QUOTA_EXHAUSTED = "quota_exhausted"
EMPTY_TEST = "empty_test"
INVALID_QUESTION = "invalid_question"
SESSION_CLOSED = "session_closed"
SESSION_NOT_FOUND = "session_not_found"

GENERIC_MESSAGE = "Unable to start or continue this test. Please try again."

USER_MESSAGES = {
    ACCESS_DENIED: "This test is not available to you. Upgrade to premium to unlock premium tests.",
    QUOTA_EXHAUSTED: "You've reached today's attempt limit for this mode. Try again tomorrow or upgrade to premium for unlimited attempts.",
}


@dataclass(frozen=True)
class Failure:
    kind: str
    detail: str = ""

    def __bool__(self) -> bool:
        return False


def user_message(failure: Failure) -> str:
    """Message safe to show a test-taker for the given failure."""
    return USER_MESSAGES.get(failure.kind, GENERIC_MESSAGE)
