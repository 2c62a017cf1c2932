# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261017v1
# ---------------------------------------------------------------------------
"""
Central security module.  Crypto primitives and auth guards live here.
No other module should touch raw crypto directly.

Responsibilities
----------------
1. Password hashing / verification          (passlib pbkdf2_sha256)
2. Two-factor secret encryption at rest     (AES-256-GCM)
3. FastAPI dependency guards                (get_current_user, require_admin)
4. Request metadata helpers                 (client IP, user agent)

Access-token encoding itself lives in ``core.tokens``.
"""

import base64
import secrets

from passlib.hash import pbkdf2_sha256 as _pbkdf2  # pure Python, no binary deps
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer

from core.config import settings
from core.errors import ConfigurationError
from core.tokens import validate_access_token
from database import get_db

# ---------------------------------------------------------------------------
# 1.  pbkdf2_sha256 – password hashing
# ---------------------------------------------------------------------------


def hash_password(plain: str) -> tuple[str, str]:
    """
    Hash a plaintext password with PBKDF2-SHA256.

    Returns
    -------
    password_hash : str   Full passlib hash string  e.g. "$pbkdf2-sha256$..."
    salt          : str   Placeholder kept for DB schema compat; the real salt
                          is embedded inside the hash string.
    """
    password_hash = _pbkdf2.using(rounds=settings.password_hash_rounds).hash(plain)
    return password_hash, "pbkdf2-embedded"


def verify_password(plain: str, stored_hash: str) -> bool:
    """Constant-time check of *plain* against a :func:`hash_password` hash."""
    try:
        return _pbkdf2.verify(plain, stored_hash)
    except ValueError:
        # Corrupt or foreign hash string in the row
        return False


# Verified against when the username does not exist, so that unknown and
# known usernames cost the same.
_DUMMY_HASH = None


def burn_password_check(plain: str) -> None:
    global _DUMMY_HASH
    if _DUMMY_HASH is None:
        _DUMMY_HASH = hash_password(secrets.token_urlsafe(16))[0]
    _pbkdf2.verify(plain, _DUMMY_HASH)


# ---------------------------------------------------------------------------
# 2.  AES-256-GCM – two-factor secrets at rest
# ---------------------------------------------------------------------------


def _get_master_key() -> bytes:
    """
    Decode MASTER_ENCRYPTION_KEY.  Called at use-time (not import-time) so the
    key is never cached at module load.  Must be exactly 32 bytes.
    """
    if not settings.master_encryption_key:
        raise ConfigurationError("MASTER_ENCRYPTION_KEY is not configured")
    key = base64.b64decode(settings.master_encryption_key)
    if len(key) != 32:
        raise ConfigurationError("MASTER_ENCRYPTION_KEY must decode to exactly 32 bytes")
    return key


def encrypt_value(plaintext: str) -> tuple[str, str]:
    """
    Encrypt *plaintext* with AES-256-GCM under a fresh 96-bit nonce.

    Returns
    -------
    encrypted_b64 : str   base64( ciphertext || 16-byte GCM tag )
    iv_b64        : str   base64( 12-byte nonce )
    """
    iv = secrets.token_bytes(12)
    ct_and_tag = AESGCM(_get_master_key()).encrypt(iv, plaintext.encode("utf-8"), None)
    return (
        base64.b64encode(ct_and_tag).decode("ascii"),
        base64.b64encode(iv).decode("ascii"),
    )


def decrypt_value(encrypted_b64: str, iv_b64: str) -> str:
    """
    Decrypt a value produced by :func:`encrypt_value`.

    Raises ``ValueError`` if the GCM tag does not match (tampered data or a
    rotated key).
    """
    iv = base64.b64decode(iv_b64)
    ct_and_tag = base64.b64decode(encrypted_b64)
    try:
        plaintext_bytes = AESGCM(_get_master_key()).decrypt(iv, ct_and_tag, None)
    except Exception as exc:
        raise ValueError("Decryption failed: data may be tampered") from exc
    return plaintext_bytes.decode("utf-8")


# ---------------------------------------------------------------------------
# 3.  FastAPI dependency guards
# ---------------------------------------------------------------------------

# tokenUrl is only used by the generated OpenAPI docs.
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login")

_UNAUTHORIZED = HTTPException(
    status_code=status.HTTP_401_UNAUTHORIZED,
    detail="Invalid or expired token",
    headers={"WWW-Authenticate": "Bearer"},
)


def get_current_user(
    token: str = Depends(oauth2_scheme),
    db=Depends(get_db),
):
    """
    Dependency: validate the bearer token, load the User row, verify the
    account is active.  Returns the User ORM instance.
    """
    claims, ok = validate_access_token(token)
    if not ok:
        raise _UNAUTHORIZED

    # Lazy import to avoid circular dependency at module load time
    from models.user import User  # noqa: E402

    try:
        user_id = int(claims["sub"])
    except ValueError:
        raise _UNAUTHORIZED

    user = db.query(User).filter(User.id == user_id).first()
    if not user or not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found or inactive",
        )
    return user


def require_admin(current_user=Depends(get_current_user)):
    """Dependency: :func:`get_current_user` plus ``role == 'Admin'``."""
    if current_user.role != "Admin":
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required",
        )
    return current_user


# ---------------------------------------------------------------------------
# 4.  Request metadata
# ---------------------------------------------------------------------------


def get_client_ip(request: Request) -> str:
    """
    Client IP: first X-Forwarded-For hop when behind a proxy, otherwise the
    socket peer.
    """
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    if request.client:
        return request.client.host
    return "unknown"


def get_user_agent(request: Request) -> str:
    return request.headers.get("User-Agent", "")[:512]
