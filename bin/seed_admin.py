# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20261017v1
# ---------------------------------------------------------------------------
"""
Bootstrap script – creates the first Admin user.

Run once after the initial migration:
    python bin/seed_admin.py

Reads FIRST_ADMIN_USERNAME, FIRST_ADMIN_EMAIL and FIRST_ADMIN_PASSWORD from
etc/app.conf.  After the row is inserted those values are no longer used by
the application.
"""

import os
import sys

# bin/seed_admin.py  →  ../backend  must be importable
_PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
_BACKEND_DIR  = os.path.join(_PROJECT_ROOT, "backend")
if _BACKEND_DIR not in sys.path:
    sys.path.insert(0, _BACKEND_DIR)

from core.config import settings                     # noqa: E402
from core.logger import logger                       # noqa: E402
from core.security import hash_password              # noqa: E402
from auth.service import record_event, validate_password_policy  # noqa: E402
from database import SessionLocal                    # noqa: E402
from models.user import User                         # noqa: E402


def seed() -> int:
    if not settings.first_admin_email or not settings.first_admin_password:
        logger.warning("FIRST_ADMIN_EMAIL or FIRST_ADMIN_PASSWORD not set in etc/app.conf, nothing to do")
        return 0

    err = validate_password_policy(settings.first_admin_password)
    if err:
        logger.error("FIRST_ADMIN_PASSWORD rejected: %s", err)
        return 1

    db = SessionLocal()
    try:
        existing = (
            db.query(User)
            .filter(
                (User.username == settings.first_admin_username)
                | (User.email == settings.first_admin_email)
            )
            .first()
        )
        if existing:
            logger.info("Admin '%s' already exists, skipping", existing.username)
            return 0

        password_hash, salt = hash_password(settings.first_admin_password)
        admin = User(
            username=settings.first_admin_username,
            email=settings.first_admin_email.lower(),
            password_hash=password_hash,
            salt=salt,
            role="Admin",
            is_active=True,
            two_factor_enabled=False,
            failed_login_count=0,
        )
        db.add(admin)
        db.flush()
        record_event(db, "register", "success", user=admin, detail="seeded admin")
        db.commit()
        logger.info("Admin '%s' created", admin.username)
        return 0
    finally:
        db.close()


if __name__ == "__main__":
    sys.exit(seed())
