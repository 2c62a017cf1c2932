# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261017v1
# ---------------------------------------------------------------------------
"""
TOTP two-factor verifier (RFC 6238 – Google Authenticator, Authy, Aegis).

6-digit codes, 30-second step, one step of tolerance either side.

Secret lifecycle
----------------
UNSET ──setup──▶ PENDING_CONFIRMATION ──enable(code)──▶ ACTIVE
  ▲                                                       │
  └───────────────────────disable(code)───────────────────┘

The secret is stored AES-GCM encrypted (``core.security.encrypt_value``).
"""

import base64
import enum
import io
from dataclasses import dataclass

import pyotp
import qrcode
from sqlalchemy.orm import Session

from core.config import settings
from core.errors import InvalidCodeError, ValidationError
from core.logger import logger
from core.security import decrypt_value, encrypt_value
from models.user import User


class TwoFactorState(str, enum.Enum):
    UNSET = "unset"
    PENDING_CONFIRMATION = "pending_confirmation"
    ACTIVE = "active"


@dataclass
class TwoFactorSetup:
    secret: str
    provisioning_uri: str
    qr_code: str  # base64 PNG of provisioning_uri


def state(user: User) -> TwoFactorState:
    if not user.two_factor_secret:
        return TwoFactorState.UNSET
    if user.two_factor_enabled:
        return TwoFactorState.ACTIVE
    return TwoFactorState.PENDING_CONFIRMATION


def _qr_code_base64(uri: str) -> str:
    qr = qrcode.QRCode(
        version=1,
        error_correction=qrcode.constants.ERROR_CORRECT_L,
        box_size=10,
        border=4,
    )
    qr.add_data(uri)
    qr.make(fit=True)
    img = qr.make_image(fill_color="black", back_color="white")

    buffer = io.BytesIO()
    img.save(buffer, format="PNG")
    return base64.b64encode(buffer.getvalue()).decode("ascii")


def setup_secret(db: Session, user: User) -> TwoFactorSetup:
    """
    Generate and store a fresh secret awaiting confirmation.  Calling it again
    before ``enable`` replaces the pending secret.
    """
    if state(user) is TwoFactorState.ACTIVE:
        raise ValidationError("Two-factor authentication is already enabled")

    secret = pyotp.random_base32()
    user.two_factor_secret, user.two_factor_secret_iv = encrypt_value(secret)
    user.two_factor_enabled = False

    uri = pyotp.TOTP(secret).provisioning_uri(
        name=user.username, issuer_name=settings.two_factor_issuer
    )
    return TwoFactorSetup(secret=secret, provisioning_uri=uri, qr_code=_qr_code_base64(uri))


def _secret_for(user: User) -> str | None:
    if not user.two_factor_secret or not user.two_factor_secret_iv:
        return None
    try:
        return decrypt_value(user.two_factor_secret, user.two_factor_secret_iv)
    except ValueError:
        logger.error("Two-factor secret for '%s' failed to decrypt", user.username)
        return None


def verify_code(user: User, code: str | None) -> bool:
    """True iff *code* is the current (±1 step) TOTP for the user's secret."""
    if not code:
        return False
    code = code.strip().replace(" ", "")
    if len(code) != 6 or not code.isdigit():
        return False

    secret = _secret_for(user)
    if secret is None:
        return False
    return pyotp.TOTP(secret).verify(code, valid_window=1)


def enable(db: Session, user: User, code: str) -> None:
    if state(user) is not TwoFactorState.PENDING_CONFIRMATION or not verify_code(user, code):
        raise InvalidCodeError()
    user.two_factor_enabled = True


def disable(db: Session, user: User, code: str) -> None:
    if state(user) is not TwoFactorState.ACTIVE or not verify_code(user, code):
        raise InvalidCodeError()
    user.two_factor_enabled = False
    user.two_factor_secret = None
    user.two_factor_secret_iv = None
