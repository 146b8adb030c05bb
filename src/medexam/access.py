"""Who may take which test."""
from medexam.models import PREMIUM_TIERS, Test, User


def is_premium(user: User) -> bool:
    """Trial subscribers get the same entitlements as premium ones."""
    return user.subscription_tier in PREMIUM_TIERS


def can_access(user: User, test: Test) -> bool:
    """A test is takeable when published and, if premium-gated, the user is premium.

    Roles grant no bypass here; test management is a separate surface.
    Call this on every access attempt with freshly loaded rows, since the
    subscription tier can change at any time.
    """
    if not test.is_published:
        return False
    return not test.is_premium or is_premium(user)
