"""
teamgate/features/teams/persistence.py

Row access for teams shared by the role, membership and invitation services.
Every helper runs inside the caller's session so it joins the caller's
transaction.
"""

from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import select, func
from sqlalchemy.orm import Session

from teamgate.core.database import teams, team_members, invitations
from teamgate.core.errors import NotFoundError
from teamgate.models.team import Team


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite hands back naive datetimes; treat them as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def row_to_team(row) -> Team:
    return Team(
        id=row.id,
        name=row.name,
        owner_user_id=row.owner_user_id,
        plan_slug=row.plan_slug,
        subscription_expires_at=as_utc(row.subscription_expires_at),
        created_at=as_utc(row.created_at),
    )


def find_team(session: Session, team_id: Optional[int]) -> Optional[Team]:
    if team_id is None:
        return None
    row = session.execute(select(teams).where(teams.c.id == team_id)).first()
    return row_to_team(row) if row else None


def load_team(session: Session, team_id: int) -> Team:
    team = find_team(session, team_id)
    if not team:
        raise NotFoundError(f"Team {team_id} not found")
    return team


def team_ids_on_plan(session: Session, plan_slug: str) -> List[int]:
    rows = session.execute(
        select(teams.c.id).where(teams.c.plan_slug == plan_slug).order_by(teams.c.id)
    ).all()
    return [row.id for row in rows]


def owned_team_count(session: Session, user_id: str) -> int:
    return session.execute(
        select(func.count()).select_from(teams).where(teams.c.owner_user_id == user_id)
    ).scalar_one()


def primary_team(session: Session, user_id: str) -> Optional[Team]:
    """The first team a user created; its plan bounds how many more they may own."""
    row = session.execute(
        select(teams)
        .where(teams.c.owner_user_id == user_id)
        .order_by(teams.c.id)
        .limit(1)
    ).first()
    return row_to_team(row) if row else None


def member_count(session: Session, team_id: int) -> int:
    return session.execute(
        select(func.count()).select_from(team_members).where(team_members.c.team_id == team_id)
    ).scalar_one()


def pending_invite_count(session: Session, team_id: int, now: Optional[datetime] = None) -> int:
    """Unexpired invitations; each one holds a seat."""
    now = now or datetime.now(timezone.utc)
    rows = session.execute(
        select(invitations.c.expires_at).where(invitations.c.team_id == team_id)
    ).all()
    return sum(1 for row in rows if as_utc(row.expires_at) > now)


def seats_in_use(session: Session, team_id: int, now: Optional[datetime] = None) -> int:
    return member_count(session, team_id) + pending_invite_count(session, team_id, now)
