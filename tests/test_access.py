import pytest

from medexam.access import can_access, is_premium
from medexam.models import Test, User

FREE = User(id=1, name="Free", subscription_tier="free")
PREMIUM = User(id=2, name="Premium", subscription_tier="premium")
TRIAL = User(id=3, name="Trial", subscription_tier="trial")
ADMIN = User(id=4, name="Admin", role="admin", subscription_tier="free")


@pytest.mark.parametrize("user", [FREE, PREMIUM, TRIAL, ADMIN])
def test_published_free_test_open_to_everyone(user):
    test = Test(id=1, title="Open", is_published=True, is_premium=False)
    assert can_access(user, test) is True


def test_premium_test_requires_premium_tier():
    test = Test(id=1, title="Gated", is_published=True, is_premium=True)
    assert can_access(FREE, test) is False
    assert can_access(PREMIUM, test) is True


def test_trial_counts_as_premium():
    test = Test(id=1, title="Gated", is_published=True, is_premium=True)
    assert is_premium(TRIAL)
    assert can_access(TRIAL, test) is True


@pytest.mark.parametrize("user", [FREE, PREMIUM, ADMIN])
def test_unpublished_test_closed_to_everyone(user):
    test = Test(id=1, title="Draft", is_published=False)
    assert can_access(user, test) is False


def test_roles_do_not_bypass_premium_gate():
    test = Test(id=1, title="Gated", is_published=True, is_premium=True)
    doctor = User(id=5, name="Doc", role="doctor")
    assert can_access(ADMIN, test) is False
    assert can_access(doctor, test) is False
