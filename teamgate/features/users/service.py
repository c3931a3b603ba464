"""
User domain service.
- get_or_create_user(user_id)
- get_user(user_id)
- set_superuser(user_id, flag)
"""

from datetime import datetime, timezone
from typing import Optional
from sqlalchemy import select, insert, update
from sqlalchemy.orm import Session

from teamgate.core.database import get_db_session, users as app_users
from teamgate.core.errors import NotFoundError
from teamgate.models.user import User


def normalize_display_name(user_id: str, display_name: Optional[str]) -> str:
    return User.normalized_display_name(user_id, display_name)


def normalize_email(email: Optional[str]) -> Optional[str]:
    return email.strip().lower() if email and email.strip() else None


def _row_to_user(row) -> User:
    return User(
        user_id=row.user_id,
        email=row.email,
        display_name=row.display_name or normalize_display_name(row.user_id, None),
        is_superuser=bool(row.is_superuser),
        current_team_id=row.current_team_id,
        created_at=row.created_at,
    )


def load_user(session: Session, user_id: str) -> Optional[User]:
    row = session.execute(select(app_users).where(app_users.c.user_id == user_id)).first()
    return _row_to_user(row) if row else None


def get_user(user_id: str) -> Optional[User]:
    with get_db_session() as session:
        return load_user(session, user_id)


def get_user_by_email(email: str) -> Optional[User]:
    with get_db_session() as session:
        row = session.execute(
            select(app_users).where(app_users.c.email == normalize_email(email))
        ).first()
        return _row_to_user(row) if row else None


def get_or_create_user(
    user_id: str,
    email: Optional[str] = None,
    display_name: Optional[str] = None,
    is_superuser: bool = False,
) -> User:
    existing = get_user(user_id)
    if existing:
        return existing

    now = datetime.now(timezone.utc)
    display = normalize_display_name(user_id, display_name)
    with get_db_session() as session:
        session.execute(
            insert(app_users).values(
                user_id=user_id,
                email=normalize_email(email),
                display_name=display,
                is_superuser=is_superuser,
                current_team_id=None,
                created_at=now,
            )
        )

    return User(
        user_id=user_id,
        email=normalize_email(email),
        display_name=display,
        is_superuser=is_superuser,
        created_at=now,
    )


def set_superuser(user_id: str, is_superuser: bool = True) -> User:
    with get_db_session() as session:
        result = session.execute(
            update(app_users)
            .where(app_users.c.user_id == user_id)
            .values(is_superuser=is_superuser)
        )
        if result.rowcount == 0:
            raise NotFoundError(f"User {user_id} not found")
        return load_user(session, user_id)
