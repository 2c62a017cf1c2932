# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261017v1
# ---------------------------------------------------------------------------
"""
Pydantic request / response models for the auth endpoints.

The wire format is camelCase (``accessToken``, ``requiresTwoFactor`` …);
requests also accept the snake_case field names.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# -- Requests --------------------------------------------------------------


class RegisterRequest(_CamelModel):
    username: str
    email: str
    password: str


class LoginRequest(_CamelModel):
    username: str
    password: str


class VerifyTwoFactorRequest(_CamelModel):
    username: str
    code: str
    remember_me: bool = False


class TwoFactorCodeRequest(_CamelModel):
    code: str


class ChangePasswordRequest(_CamelModel):
    old_password: str
    new_password: str


# -- Responses -------------------------------------------------------------


class UserInfoResponse(_CamelModel):
    id: int
    username: str
    email: str
    role: str
    is_active: bool
    two_factor_enabled: bool
    last_login: Optional[datetime] = None

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class TokenResponse(_CamelModel):
    """Access token only; the refresh token travels in the cookie."""

    access_token: str
    token_type: str = "bearer"
    expires_at: datetime
    user: UserInfoResponse


class TwoFactorChallengeResponse(_CamelModel):
    requires_two_factor: bool = True
    username: str


class TwoFactorSetupResponse(_CamelModel):
    secret: str
    provisioning_uri: str
    qr_code: str  # base64 PNG


class MessageResponse(_CamelModel):
    message: str


class AuthLogRow(_CamelModel):
    id: int
    event: str
    outcome: str
    detail: Optional[str] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    created_at: datetime

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)
