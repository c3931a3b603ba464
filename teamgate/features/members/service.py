"""
teamgate/features/members/service.py

Membership ledger: which users belong to which team, with which role.

Seats: every membership and every unexpired invitation holds one unit of
the plan's member_limit (see teams.persistence.seats_in_use).
"""

import logging
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import select, insert, update, delete
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from teamgate.core.config import settings
from teamgate.core.database import get_db_session, is_unique_violation, team_members, users as app_users
from teamgate.core.errors import (
    NotFoundError,
    NotAMemberError,
    PermissionError,
    AlreadyMemberError,
    SeatLimitError,
    ValidationError,
)
from teamgate.features.activity.service import record_activity
from teamgate.features.notifications.service import notify_owner
from teamgate.features.plans.service import load_plan
from teamgate.features.roles.service import find_role
from teamgate.features.teams import persistence
from teamgate.models.membership import Membership
from teamgate.models.plan import Plan
from teamgate.models.team import Team


logger = logging.getLogger(__name__)

UNLIMITED = -1


def _row_to_membership(row) -> Membership:
    return Membership(
        team_id=row.team_id,
        user_id=row.user_id,
        role_name=row.role_name,
        token_limit=row.token_limit,
        joined_at=persistence.as_utc(row.joined_at),
    )


def normalize_token_limit(limit: Optional[int]) -> Optional[int]:
    """-1 and None both mean unlimited; stored as NULL."""
    if limit is None or limit == UNLIMITED:
        return None
    if limit < 0:
        raise ValidationError("Token limit must be -1 (unlimited) or a non-negative number")
    return limit


# Session-level helpers

def find_membership(session: Session, team_id: int, user_id: str) -> Optional[Membership]:
    row = session.execute(
        select(team_members)
        .where(team_members.c.team_id == team_id)
        .where(team_members.c.user_id == user_id)
    ).first()
    return _row_to_membership(row) if row else None


def holds_admin(session: Session, team: Team, user_id: str) -> bool:
    """Owner or member with the admin role (superuser is checked by callers)."""
    if team.owner_user_id == user_id:
        return True
    membership = find_membership(session, team.id, user_id)
    return bool(membership and membership.role_name == settings.ADMIN_ROLE_NAME)


def insert_membership(
    session: Session,
    team_id: int,
    user_id: str,
    role_name: Optional[str] = None,
    token_limit: Optional[int] = None,
) -> Membership:
    """Insert a membership row; the (user_id, team_id) constraint rejects duplicates."""
    session.execute(
        insert(team_members).values(
            team_id=team_id,
            user_id=user_id,
            role_name=role_name,
            token_limit=normalize_token_limit(token_limit),
            joined_at=datetime.now(timezone.utc),
        )
    )
    return find_membership(session, team_id, user_id)


def clear_default_team(session: Session, user_id: str, team_id: int) -> None:
    session.execute(
        update(app_users)
        .where(app_users.c.user_id == user_id)
        .where(app_users.c.current_team_id == team_id)
        .values(current_team_id=None)
    )


def set_default_if_unset(session: Session, user_id: str, team_id: int) -> None:
    session.execute(
        update(app_users)
        .where(app_users.c.user_id == user_id)
        .where(app_users.c.current_team_id.is_(None))
        .values(current_team_id=team_id)
    )


# Public API

def get_membership(team_id: int, user_id: str) -> Optional[Membership]:
    with get_db_session() as session:
        return find_membership(session, team_id, user_id)


def list_members(team_id: int) -> List[Membership]:
    with get_db_session() as session:
        persistence.load_team(session, team_id)
        rows = session.execute(
            select(team_members)
            .where(team_members.c.team_id == team_id)
            .order_by(team_members.c.joined_at, team_members.c.id)
        ).all()
        return [_row_to_membership(row) for row in rows]


def member_count(team_id: int) -> int:
    with get_db_session() as session:
        return persistence.member_count(session, team_id)


def add_member(
    team_id: int,
    user_id: str,
    role_name: Optional[str] = None,
    token_limit: Optional[int] = None,
    *,
    actor_id: Optional[str] = None,
) -> Membership:
    """
    Add a user to a team directly (no invitation).

    Raises:
        NotFoundError: Team, user or role missing
        SeatLimitError: Members plus pending invitations already fill the plan
        AlreadyMemberError: User is already in the team
    """
    try:
        with get_db_session() as session:
            team = persistence.load_team(session, team_id)
            if not session.execute(
                select(app_users.c.user_id).where(app_users.c.user_id == user_id)
            ).first():
                raise NotFoundError(f"User {user_id} not found")
            if role_name is not None and not find_role(session, team_id, role_name):
                raise NotFoundError(f"Role '{role_name}' does not exist in team {team_id}")
            if find_membership(session, team_id, user_id):
                raise AlreadyMemberError(f"User {user_id} is already a member of team {team_id}")

            plan = load_plan(session, team.plan_slug)
            if persistence.seats_in_use(session, team_id) >= plan.member_limit:
                raise SeatLimitError(
                    f"Team {team_id} has used all {plan.member_limit} seats of plan '{plan.slug}'"
                )

            membership = insert_membership(session, team_id, user_id, role_name, token_limit)
            set_default_if_unset(session, user_id, team_id)
            details = {"member_id": user_id, "role": role_name}
            record_activity(session, team_id, "member.added", f"Added {user_id} to the team", details, actor_id=actor_id)
    except IntegrityError as exc:
        if not is_unique_violation(exc):
            raise
        raise AlreadyMemberError(f"User {user_id} is already a member of team {team_id}")

    notify_owner(team, "member.added", details, actor_id=actor_id)
    return membership


def remove_member(team_id: int, user_id: str, *, actor_id: Optional[str] = None) -> None:
    """
    Remove a member from a team.

    Raises:
        PermissionError: The user owns the team
        NotAMemberError: User is not in the team
    """
    with get_db_session() as session:
        team = persistence.load_team(session, team_id)
        if team.owner_user_id == user_id:
            raise PermissionError("The team owner cannot be removed")

        result = session.execute(
            delete(team_members)
            .where(team_members.c.team_id == team_id)
            .where(team_members.c.user_id == user_id)
        )
        if result.rowcount == 0:
            raise NotAMemberError(f"User {user_id} is not a member of team {team_id}")
        clear_default_team(session, user_id, team_id)
        record_activity(
            session, team_id, "member.removed", f"Removed {user_id} from the team", {"member_id": user_id}, actor_id=actor_id
        )

    notify_owner(team, "member.removed", {"member_id": user_id}, actor_id=actor_id)


def set_token_limit(
    team_id: int,
    user_id: str,
    limit: Optional[int],
    *,
    actor_id: Optional[str] = None,
) -> Membership:
    """Set a member's token quota; None or -1 clears it."""
    stored = normalize_token_limit(limit)
    with get_db_session() as session:
        team = persistence.load_team(session, team_id)
        result = session.execute(
            update(team_members)
            .where(team_members.c.team_id == team_id)
            .where(team_members.c.user_id == user_id)
            .values(token_limit=stored)
        )
        if result.rowcount == 0:
            raise NotAMemberError(f"User {user_id} is not a member of team {team_id}")
        membership = find_membership(session, team_id, user_id)
        details = {"member_id": user_id, "token_limit": stored}
        record_activity(
            session, team_id, "member.token_limit_changed", f"Changed token limit of {user_id}", details, actor_id=actor_id
        )

    notify_owner(team, "member.token_limit_changed", details, actor_id=actor_id)
    return membership


def effective_token_limit(membership: Membership, plan: Plan) -> int:
    """Member quota bounded by the plan's max_tokens."""
    if membership.token_limit is None:
        return plan.max_tokens
    return min(membership.token_limit, plan.max_tokens)
