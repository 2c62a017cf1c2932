import base64
import time

import pyotp
import pytest

from auth import two_factor
from auth.two_factor import TwoFactorState
from core.errors import InvalidCodeError, ValidationError


def _wrong_code(secret: str) -> str:
    return f"{(int(pyotp.TOTP(secret).now()) + 1) % 1_000_000:06d}"


def test_setup_stores_encrypted_pending_secret(db, create_user):
    user = create_user()

    setup = two_factor.setup_secret(db, user)

    assert two_factor.state(user) is TwoFactorState.PENDING_CONFIRMATION
    assert user.two_factor_enabled is False
    assert setup.secret not in user.two_factor_secret
    assert setup.provisioning_uri.startswith("otpauth://totp/")
    assert "alice" in setup.provisioning_uri
    assert base64.b64decode(setup.qr_code).startswith(b"\x89PNG")


def test_enable_requires_valid_code(db, create_user):
    user = create_user()
    setup = two_factor.setup_secret(db, user)

    with pytest.raises(InvalidCodeError):
        two_factor.enable(db, user, _wrong_code(setup.secret))
    assert two_factor.state(user) is TwoFactorState.PENDING_CONFIRMATION

    two_factor.enable(db, user, pyotp.TOTP(setup.secret).now())
    assert two_factor.state(user) is TwoFactorState.ACTIVE


def test_enable_without_setup_fails(db, create_user):
    user = create_user()
    with pytest.raises(InvalidCodeError):
        two_factor.enable(db, user, "123456")


def test_verify_tolerates_one_step_either_side(db, create_user):
    user = create_user()
    secret = two_factor.setup_secret(db, user).secret
    totp = pyotp.TOTP(secret)

    now = time.time()
    assert two_factor.verify_code(user, totp.at(now - 30))
    assert two_factor.verify_code(user, totp.at(now + 30))
    # Ten minutes away is outside the window
    stale = totp.at(now - 600)
    if stale not in {totp.at(now - 30), totp.at(now), totp.at(now + 30)}:
        assert not two_factor.verify_code(user, stale)


@pytest.mark.parametrize("code", [None, "", "12345", "1234567", "abcdef"])
def test_malformed_codes_are_rejected(db, create_user, code):
    user = create_user()
    two_factor.setup_secret(db, user)
    assert two_factor.verify_code(user, code) is False


def test_code_with_spaces_is_accepted(db, create_user):
    user = create_user()
    code = pyotp.TOTP(two_factor.setup_secret(db, user).secret).now()
    assert two_factor.verify_code(user, f"{code[:3]} {code[3:]}")


def test_disable_returns_to_unset(db, create_user):
    user = create_user()
    secret = two_factor.setup_secret(db, user).secret
    two_factor.enable(db, user, pyotp.TOTP(secret).now())

    two_factor.disable(db, user, pyotp.TOTP(secret).now())

    assert two_factor.state(user) is TwoFactorState.UNSET
    assert user.two_factor_secret is None


def test_disable_when_not_active_fails(db, create_user):
    user = create_user()
    secret = two_factor.setup_secret(db, user).secret
    with pytest.raises(InvalidCodeError):
        two_factor.disable(db, user, pyotp.TOTP(secret).now())


def test_setup_refused_while_active(db, create_user):
    user = create_user()
    secret = two_factor.setup_secret(db, user).secret
    two_factor.enable(db, user, pyotp.TOTP(secret).now())

    with pytest.raises(ValidationError):
        two_factor.setup_secret(db, user)
