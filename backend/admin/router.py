# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261017v1
# ---------------------------------------------------------------------------
"""
Admin endpoints – user lifecycle and the authentication audit trail.

Every endpoint in this router is guarded by ``require_admin``.  A request
that carries a valid token but a Staff or Viewer role receives 403 before
any business logic runs.

Users are never deleted: deactivation is the soft delete, and it also
revokes every refresh token the user holds.
"""

import io
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from fastapi.responses import StreamingResponse
from openpyxl import Workbook
from openpyxl.styles import Font, PatternFill, Alignment, Border, Side
from sqlalchemy.orm import Session

from auth import refresh_tokens
from auth.service import record_event
from core.logger import logger
from core.security import get_client_ip, get_user_agent, require_admin
from core.timeutil import as_naive_utc
from database import get_db
from models.auth_log import AuthLog
from models.user import ROLES, User
from admin.schemas import (
    AuthLogAdminRow,
    AuthLogListResponse,
    ChangeRoleRequest,
    UserRow,
    UserListResponse,
)

router = APIRouter(prefix="/admin", tags=["admin"])


def _load_user(db: Session, user_id: int) -> User:
    target = db.query(User).filter(User.id == user_id).first()
    if not target:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return target


# ---------------------------------------------------------------------------
# GET /admin/users  – list all users
# ---------------------------------------------------------------------------


@router.get("/users", response_model=UserListResponse)
def list_users(
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """Return every user row (the schema leaves out password and 2FA secret)."""
    users = db.query(User).order_by(User.id).all()
    return UserListResponse(users=[UserRow.model_validate(u) for u in users])


# ---------------------------------------------------------------------------
# PUT /admin/users/{id}/deactivate  – soft-delete a user account
# ---------------------------------------------------------------------------


@router.put("/users/{user_id}/deactivate")
def deactivate_user(
    user_id: int,
    request: Request,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """
    Set ``is_active = False`` and revoke the user's refresh tokens.  Access
    tokens already issued are rejected by ``get_current_user``.

    Guard: an admin cannot deactivate their own account.
    """
    if user_id == admin.id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Cannot deactivate yourself",
        )

    target = _load_user(db, user_id)
    target.is_active = False
    revoked = refresh_tokens.revoke_all_for_user(db, target.id)
    record_event(db, "deactivate", "success", user=target, ip=get_client_ip(request),
                 user_agent=get_user_agent(request),
                 detail=f"by {admin.username}; revoked {revoked} refresh token(s)")
    db.commit()
    logger.info("Admin '%s' deactivated '%s'", admin.username, target.username)

    return {"detail": "User deactivated"}


# ---------------------------------------------------------------------------
# PUT /admin/users/{id}/activate  – re-activate a user account
# ---------------------------------------------------------------------------


@router.put("/users/{user_id}/activate")
def activate_user(
    user_id: int,
    request: Request,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """Set ``is_active = True`` so the user can log in again."""
    target = _load_user(db, user_id)
    target.is_active = True
    record_event(db, "activate", "success", user=target, ip=get_client_ip(request),
                 user_agent=get_user_agent(request), detail=f"by {admin.username}")
    db.commit()

    return {"detail": "User activated"}


# ---------------------------------------------------------------------------
# PUT /admin/users/{id}/change-role  – promote or demote a user
# ---------------------------------------------------------------------------


@router.put("/users/{user_id}/change-role")
def change_role(
    user_id: int,
    body: ChangeRoleRequest,
    request: Request,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """
    Change the role of an existing user.  Guards:
    * Role value must be Admin, Staff or Viewer.
    * An admin cannot change their own role (prevents accidental self-lockout).

    The new role shows up in the next access token (login or refresh).
    """
    if body.role not in ROLES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid role. Must be one of: " + ", ".join(ROLES),
        )

    if user_id == admin.id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Cannot change your own role",
        )

    target = _load_user(db, user_id)
    target.role = body.role
    record_event(db, "change_role", "success", user=target, ip=get_client_ip(request),
                 user_agent=get_user_agent(request),
                 detail=f"by {admin.username}; new_role={body.role}")
    db.commit()

    return {"detail": "Role updated"}


# ---------------------------------------------------------------------------
# GET /admin/auth-logs  – audit trail with optional filters
# ---------------------------------------------------------------------------


def _filtered_logs(db, usernames, outcome, since, until):
    q = db.query(AuthLog)
    if usernames:
        q = q.filter(AuthLog.username.in_(usernames))
    if outcome:
        q = q.filter(AuthLog.outcome == outcome)
    if since:
        q = q.filter(AuthLog.created_at >= as_naive_utc(since))
    if until:
        q = q.filter(AuthLog.created_at <= as_naive_utc(until))
    return q.order_by(AuthLog.created_at.desc(), AuthLog.id.desc())


@router.get("/auth-logs", response_model=AuthLogListResponse)
def list_auth_logs(
    usernames: list[str] | None = Query(None, description="Filter by exact username(s), repeated param"),
    outcome: str | None = Query(None, pattern="^(success|failure|locked)$"),
    since: datetime | None = Query(None, description="ISO-8601 start of time window (UTC)"),
    until: datetime | None = Query(None, description="ISO-8601 end of time window (UTC)"),
    limit: int = Query(200, ge=1, le=1000),
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """Return auth log rows newest-first."""
    rows = _filtered_logs(db, usernames, outcome, since, until).limit(limit).all()
    return AuthLogListResponse(logs=[AuthLogAdminRow.model_validate(r) for r in rows])


# ---------------------------------------------------------------------------
# GET /admin/auth-logs/export  – download auth logs as Excel
# ---------------------------------------------------------------------------

_HEADER_FONT  = Font(name="Calibri", size=11, bold=True, color="FFFFFF")
_HEADER_FILL  = PatternFill(start_color="2E7D32", end_color="2E7D32", fill_type="solid")
_HEADER_ALIGN = Alignment(horizontal="center", vertical="center")
_THIN_BORDER  = Border(
    left=Side(style="thin", color="CCCCCC"),
    right=Side(style="thin", color="CCCCCC"),
    top=Side(style="thin", color="CCCCCC"),
    bottom=Side(style="thin", color="CCCCCC"),
)

_EXPORT_HEADERS = ["ID", "Time (UTC)", "User", "Event", "Outcome", "IP", "Details"]
_EXPORT_COL_MIN = [8, 20, 24, 16, 10, 16, 50]


@router.get("/auth-logs/export")
def export_auth_logs(
    usernames: list[str] | None = Query(None),
    outcome: str | None = Query(None, pattern="^(success|failure|locked)$"),
    since: datetime | None = Query(None),
    until: datetime | None = Query(None),
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """Export the (filtered) auth log as an Excel workbook."""
    rows = _filtered_logs(db, usernames, outcome, since, until).all()

    wb = Workbook()
    ws = wb.active
    ws.title = "Auth Logs"

    ws.append(_EXPORT_HEADERS)
    for cell in ws[1]:
        cell.font = _HEADER_FONT
        cell.fill = _HEADER_FILL
        cell.alignment = _HEADER_ALIGN
        cell.border = _THIN_BORDER

    for row in rows:
        ws.append([
            row.id,
            row.created_at.strftime("%Y-%m-%d %H:%M:%S") if row.created_at else "",
            row.username or "",
            row.event,
            row.outcome,
            row.ip_address or "",
            row.detail or "",
        ])
        row_idx = ws.max_row
        for col_idx in range(1, len(_EXPORT_HEADERS) + 1):
            ws.cell(row=row_idx, column=col_idx).border = _THIN_BORDER

    for col_idx, min_w in enumerate(_EXPORT_COL_MIN, start=1):
        ws.column_dimensions[chr(64 + col_idx)].width = min_w

    buf = io.BytesIO()
    wb.save(buf)
    buf.seek(0)
    wb.close()

    return StreamingResponse(
        buf,
        media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        headers={"Content-Disposition": 'attachment; filename="auth-logs.xlsx"'},
    )
