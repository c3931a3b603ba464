"""
teamgate/features/activity/service.py

Durable, team-scoped audit trail.

Every mutating service writes its entry with ``record_activity`` inside its
own transaction, so an entry exists exactly when the change committed.
Owner notifications (features/notifications) are the live feed; this table
is what a team admin searches later.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import select, insert, or_
from sqlalchemy.orm import Session

from teamgate.core.database import get_db_session, activity_logs, users as app_users
from teamgate.core.errors import ValidationError
from teamgate.features.teams.persistence import as_utc
from teamgate.models.activity import ActivityEntry


MAX_PAGE_SIZE = 100


def record_activity(
    session: Session,
    team_id: int,
    action: str,
    description: Optional[str] = None,
    properties: Optional[Dict[str, Any]] = None,
    *,
    actor_id: Optional[str] = None,
) -> None:
    session.execute(
        insert(activity_logs).values(
            team_id=team_id,
            user_id=actor_id,
            action=action,
            description=description,
            properties=dict(properties or {}),
            created_at=datetime.now(timezone.utc),
        )
    )


def _row_to_entry(row) -> ActivityEntry:
    return ActivityEntry(
        id=row.id,
        team_id=row.team_id,
        user_id=row.user_id,
        user_display_name=row.display_name,
        action=row.action,
        description=row.description,
        properties=row.properties or {},
        created_at=as_utc(row.created_at),
    )


def list_activity(
    team_id: int,
    search: Optional[str] = None,
    limit: int = 20,
    offset: int = 0,
) -> List[ActivityEntry]:
    """
    Activity of one team, newest first.

    ``search`` matches action, description or the actor's display name
    (case-insensitive substring).

    Raises:
        ValidationError: limit outside 1..MAX_PAGE_SIZE or negative offset
    """
    if not 1 <= limit <= MAX_PAGE_SIZE:
        raise ValidationError(f"limit must be between 1 and {MAX_PAGE_SIZE}")
    if offset < 0:
        raise ValidationError("offset must not be negative")

    query = (
        select(activity_logs, app_users.c.display_name)
        .select_from(activity_logs.outerjoin(app_users, app_users.c.user_id == activity_logs.c.user_id))
        .where(activity_logs.c.team_id == team_id)
    )
    term = (search or "").strip()
    if term:
        pattern = f"%{term}%"
        query = query.where(
            or_(
                activity_logs.c.action.ilike(pattern),
                activity_logs.c.description.ilike(pattern),
                app_users.c.display_name.ilike(pattern),
            )
        )
    query = query.order_by(activity_logs.c.created_at.desc(), activity_logs.c.id.desc()).limit(limit).offset(offset)

    with get_db_session() as session:
        return [_row_to_entry(row) for row in session.execute(query).all()]
