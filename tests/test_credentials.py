from datetime import timedelta

import pytest

from auth.credentials import CredentialResult, unlock_user, verify_credentials
from core.config import settings
from core.errors import NotFoundError
from core.timeutil import utcnow
from conftest import PASSWORD


def test_correct_password_succeeds_and_resets_counter(db, create_user):
    user = create_user()
    user.failed_login_count = 3
    db.commit()

    check = verify_credentials(db, "alice", PASSWORD)

    assert check.result is CredentialResult.SUCCESS
    assert check.user.id == user.id
    assert check.user.failed_login_count == 0
    assert check.user.last_login is not None


def test_wrong_password_counts_failure(db, create_user):
    create_user()

    check = verify_credentials(db, "alice", "nope")

    assert check.result is CredentialResult.WRONG_PASSWORD
    assert check.user.failed_login_count == 1
    assert check.user.lockout_until is None


def test_unknown_user(db):
    assert verify_credentials(db, "ghost", PASSWORD).result is CredentialResult.USER_NOT_FOUND


def test_inactive_user(db, create_user):
    create_user(is_active=False)
    assert verify_credentials(db, "alice", PASSWORD).result is CredentialResult.INACTIVE


def test_lockout_after_threshold_even_with_correct_password(db, create_user):
    create_user()
    now = utcnow()

    for _ in range(settings.max_failed_login_attempts):
        assert verify_credentials(db, "alice", "wrong", now=now).result is CredentialResult.WRONG_PASSWORD

    check = verify_credentials(db, "alice", PASSWORD, now=now + timedelta(seconds=1))
    assert check.result is CredentialResult.LOCKED
    assert check.locked_until == now + timedelta(minutes=settings.lockout_minutes)


def test_lockout_expires_after_window(db, create_user):
    create_user()
    now = utcnow()
    for _ in range(settings.max_failed_login_attempts):
        verify_credentials(db, "alice", "wrong", now=now)

    later = now + timedelta(minutes=settings.lockout_minutes, seconds=1)
    check = verify_credentials(db, "alice", PASSWORD, now=later)

    assert check.result is CredentialResult.SUCCESS
    assert check.user.lockout_until is None
    assert check.user.failed_login_count == 0


def test_unlock_clears_lockout(db, create_user):
    create_user()
    for _ in range(settings.max_failed_login_attempts):
        verify_credentials(db, "alice", "wrong")
    db.commit()

    user = unlock_user(db, "alice")
    db.commit()

    assert user.failed_login_count == 0
    assert user.lockout_until is None
    assert verify_credentials(db, "alice", PASSWORD).result is CredentialResult.SUCCESS


def test_unlock_unknown_user(db):
    with pytest.raises(NotFoundError):
        unlock_user(db, "ghost")


def test_correct_password_keeps_failures_when_two_factor_is_on(db, create_user):
    user = create_user()
    user.two_factor_enabled = True
    user.failed_login_count = 3
    db.commit()

    check = verify_credentials(db, "alice", PASSWORD)

    assert check.result is CredentialResult.SUCCESS
    assert check.user.failed_login_count == 3
