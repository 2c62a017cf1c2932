# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261017v1
# ---------------------------------------------------------------------------
"""
Access-token codec (PyJWT / HS256).

Access tokens are stateless: nothing here touches the database and a token
stays valid until ``exp`` even if the user logs out.  Revocation is handled
on the refresh-token side only.

Claim schema (fixed at issue time, never guessed at read time)
--------------------------------------------------------------
sub    user id (string)
name   username
email  e-mail address
role   Admin | Staff | Viewer
jti    random uuid4
iat / nbf / exp, iss, aud
"""

import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt as _jwt        # PyJWT

from core.config import settings
from core.errors import ConfigurationError

_ALGORITHM = "HS256"
_REQUIRED_CLAIMS = ["sub", "jti", "iat", "exp"]


def issue_access_token(user, now: Optional[datetime] = None) -> tuple[str, datetime]:
    """
    Sign a new access token for *user*.

    Returns the encoded token and its expiry (aware UTC).  Raises
    ``ConfigurationError`` when SECRET_KEY is not configured.
    """
    if not settings.secret_key:
        raise ConfigurationError("SECRET_KEY is not configured")

    issued_at = (now or datetime.now(timezone.utc)).replace(microsecond=0)
    if issued_at.tzinfo is None:
        issued_at = issued_at.replace(tzinfo=timezone.utc)
    expires_at = issued_at + timedelta(minutes=settings.access_token_expire_minutes)

    claims = {
        "sub": str(user.id),
        "name": user.username,
        "email": user.email,
        "role": user.role,
        "jti": str(uuid.uuid4()),
        "iat": issued_at,
        "nbf": issued_at,
        "exp": expires_at,
        "iss": settings.jwt_issuer,
        "aud": settings.jwt_audience,
    }
    token = _jwt.encode(
        claims,
        settings.secret_key,
        algorithm=_ALGORITHM,
        headers={"kid": settings.jwt_key_id},
    )
    return token, expires_at


def validate_access_token(token: Optional[str]) -> tuple[Optional[dict], bool]:
    """
    Verify signature, issuer, audience and lifetime (no clock skew).

    Returns ``(claims, True)`` for a good token and ``(None, False)`` for
    anything else.  Never raises on bad input.
    """
    if not token or not settings.secret_key:
        return None, False
    try:
        claims = _jwt.decode(
            token,
            settings.secret_key,
            algorithms=[_ALGORITHM],
            audience=settings.jwt_audience,
            issuer=settings.jwt_issuer,
            leeway=0,
            options={"require": _REQUIRED_CLAIMS},
        )
    except _jwt.PyJWTError:
        return None, False
    return claims, True
