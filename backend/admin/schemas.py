# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261017v1
# ---------------------------------------------------------------------------
"""Pydantic request / response models for the admin endpoints."""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


# -- Requests --------------------------------------------------------------


class ChangeRoleRequest(BaseModel):
    role: str  # "Admin", "Staff" or "Viewer"


# -- Responses -------------------------------------------------------------


class UserRow(BaseModel):
    id: int
    username: str
    email: str
    role: str
    is_active: bool
    two_factor_enabled: bool
    failed_login_count: int
    lockout_until: Optional[datetime] = None
    last_login: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class UserListResponse(BaseModel):
    users: List[UserRow]


# -- Auth log responses ----------------------------------------------------


class AuthLogAdminRow(BaseModel):
    id: int
    user_id: Optional[int] = None
    username: Optional[str] = None
    event: str
    outcome: str
    detail: Optional[str] = None
    ip_address: Optional[str] = None
    created_at: datetime

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class AuthLogListResponse(BaseModel):
    logs: List[AuthLogAdminRow]
