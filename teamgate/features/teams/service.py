"""
teamgate/features/teams/service.py

Team registry, role bootstrap and plan sync.

Handles:
- Team creation (workspace-count bound from the owner's primary plan)
- Bootstrap of the default roles; admin starts with the full plan ceiling
- Sync: re-clip the admin role to the current ceiling (other roles keep
  their stored grants; the resolver intersects them at decision time)
- Plan changes, subscription expiry and team deletion
- Default team ("current workspace") per user
"""

import logging
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import select, insert, update, delete

from teamgate.core.config import settings
from teamgate.core.database import get_db_session, teams, team_members, users as app_users
from teamgate.core.errors import NotFoundError, NotAMemberError, ValidationError, WorkspaceLimitError
from teamgate.core.logging import log_event
from teamgate.features.activity.service import record_activity
from teamgate.features.members.service import find_membership, insert_membership, set_default_if_unset
from teamgate.features.notifications.service import notify_owner
from teamgate.features.plans.service import find_plan, default_plan, load_plan, plan_ceiling
from teamgate.features.roles.service import find_role, insert_role, set_role_grants
from teamgate.features.teams import persistence
from teamgate.features.users.service import get_or_create_user, load_user
from teamgate.models.plan import SyncReport
from teamgate.models.role import Role
from teamgate.models.team import Team, WorkspaceSummary
from teamgate.models.user import User


logger = logging.getLogger(__name__)


# Session-level helpers

def bootstrap(session, team: Team) -> List[str]:
    """
    Create the default roles of a new team.

    The admin role receives the team's full effective ceiling; the others
    start empty. Roles that already exist are left alone.

    Returns:
        Names of the roles created
    """
    ceiling = plan_ceiling(session, load_plan(session, team.plan_slug))
    created = []
    for name in settings.default_roles():
        if find_role(session, team.id, name):
            continue
        grants = ceiling if name == settings.ADMIN_ROLE_NAME else frozenset()
        insert_role(session, team.id, name, grants, label=name.capitalize())
        created.append(name)
    return created


def _sync_admin(session, team: Team) -> Role:
    ceiling = plan_ceiling(session, load_plan(session, team.plan_slug))
    admin = find_role(session, team.id, settings.ADMIN_ROLE_NAME)
    if admin is None:
        logger.warning(
            "[teams] admin role missing during sync, recreating",
            extra={"team_id": team.id},
        )
        insert_role(session, team.id, settings.ADMIN_ROLE_NAME, ceiling, label="Admin")
    elif admin.granted_permissions != ceiling:
        set_role_grants(session, admin.id, ceiling)
    return find_role(session, team.id, settings.ADMIN_ROLE_NAME)


def _assignable_plan(session, slug: str):
    plan = find_plan(session, slug)
    if not plan:
        raise ValidationError(f"Plan '{slug}' does not exist")
    if not plan.active:
        raise ValidationError(f"Plan '{slug}' is not active")
    return plan


# Public API

def get_team(team_id: int) -> Team:
    with get_db_session() as session:
        return persistence.load_team(session, team_id)


def create_team(
    owner_id: str,
    name: str,
    plan_slug: Optional[str] = None,
) -> Team:
    """
    Create a team owned by ``owner_id``.

    Plan selection: explicit ``plan_slug``, else the plan of the owner's
    primary (first owned) team, else the default plan.

    Raises:
        NotFoundError: Owner unknown
        ValidationError: Explicit plan unknown or inactive, or blank name
        WorkspaceLimitError: Owner already owns max_workspaces teams
    """
    team_name = (name or "").strip()
    if not team_name:
        raise ValidationError("Team name is required")

    with get_db_session() as session:
        if not load_user(session, owner_id):
            raise NotFoundError(f"User {owner_id} not found")

        primary = persistence.primary_team(session, owner_id)
        if primary:
            bound = load_plan(session, primary.plan_slug).max_workspaces
            owned = persistence.owned_team_count(session, owner_id)
            if owned >= bound:
                raise WorkspaceLimitError(
                    f"Your plan allows {bound} workspace(s); you already own {owned}"
                )

        if plan_slug:
            plan = _assignable_plan(session, plan_slug)
        elif primary:
            plan = load_plan(session, primary.plan_slug)
        else:
            plan = default_plan(session)

        result = session.execute(
            insert(teams).values(
                name=team_name,
                owner_user_id=owner_id,
                plan_slug=plan.slug,
                created_at=datetime.now(timezone.utc),
            )
        )
        team = persistence.load_team(session, result.inserted_primary_key[0])

        bootstrap(session, team)
        insert_membership(session, team.id, owner_id, settings.ADMIN_ROLE_NAME)
        set_default_if_unset(session, owner_id, team.id)
        record_activity(
            session, team.id, "team.created", f"Created workspace '{team.name}'", {"plan_slug": team.plan_slug}, actor_id=owner_id
        )

    log_event("info", "team.created", user_id=owner_id, team_id=team.id, extra={"plan_slug": team.plan_slug})
    return team


def sign_up(
    user_id: str,
    email: Optional[str] = None,
    display_name: Optional[str] = None,
    team_name: Optional[str] = None,
) -> Team:
    """Register a user together with their personal team."""
    user = get_or_create_user(user_id, email=email, display_name=display_name)
    return create_team(user.user_id, team_name or f"{user.display_name}'s Team")


def sync_to_plan(team_id: int, *, actor_id: Optional[str] = None) -> Role:
    """Re-set the admin role's grants to the team's current ceiling. Idempotent."""
    with get_db_session() as session:
        team = persistence.load_team(session, team_id)
        admin = _sync_admin(session, team)
        details = {"plan_slug": team.plan_slug, "permissions": sorted(admin.granted_permissions)}
        record_activity(session, team_id, "team.roles_synced", "Synced the admin role to the plan", details, actor_id=actor_id)

    notify_owner(team, "team.roles_synced", details, actor_id=actor_id)
    return admin


def sync_plan_teams(plan_slug: str) -> SyncReport:
    """
    Sync every team on a plan, one transaction per team.

    A failing team is logged and reported; the rest still sync.
    """
    with get_db_session() as session:
        team_ids = persistence.team_ids_on_plan(session, plan_slug)

    synced, failed = [], []
    for team_id in team_ids:
        try:
            sync_to_plan(team_id)
            synced.append(team_id)
        except Exception as exc:
            logger.warning(
                "[teams] plan sync failed for team",
                extra={"team_id": team_id, "plan_slug": plan_slug, "error": str(exc)},
            )
            failed.append(team_id)

    log_event(
        "info",
        "plan.teams_synced",
        event_type="plan_sync",
        extra={"plan_slug": plan_slug, "synced": len(synced), "failed": len(failed)},
    )
    return SyncReport(plan_slug=plan_slug, synced=synced, failed=failed)


def change_plan(
    team_id: int,
    plan_slug: str,
    subscription_expires_at: Optional[datetime] = None,
    *,
    actor_id: Optional[str] = None,
) -> Team:
    """
    Move a team to another plan and sync its admin role in the same transaction.

    Raises:
        ValidationError: Plan unknown or inactive
    """
    with get_db_session() as session:
        persistence.load_team(session, team_id)
        plan = _assignable_plan(session, plan_slug)
        session.execute(
            update(teams)
            .where(teams.c.id == team_id)
            .values(plan_slug=plan.slug, subscription_expires_at=subscription_expires_at)
        )
        team = persistence.load_team(session, team_id)
        _sync_admin(session, team)
        record_activity(
            session, team_id, "team.plan_changed", f"Moved to plan '{plan.slug}'", {"plan_slug": plan.slug}, actor_id=actor_id
        )

    notify_owner(team, "team.plan_changed", {"plan_slug": plan.slug}, actor_id=actor_id)
    return team


def expire_subscriptions(now: Optional[datetime] = None) -> SyncReport:
    """
    Downgrade teams whose subscription has lapsed to the default plan.

    One transaction per team; the resolver itself never looks at expiry.
    """
    now = now or datetime.now(timezone.utc)
    with get_db_session() as session:
        rows = session.execute(
            select(teams.c.id, teams.c.subscription_expires_at)
            .where(teams.c.subscription_expires_at.isnot(None))
            .order_by(teams.c.id)
        ).all()
        fallback_slug = default_plan(session).slug
    due = [row.id for row in rows if persistence.as_utc(row.subscription_expires_at) <= now]

    downgraded, failed = [], []
    for team_id in due:
        try:
            with get_db_session() as session:
                session.execute(
                    update(teams)
                    .where(teams.c.id == team_id)
                    .values(plan_slug=fallback_slug, subscription_expires_at=None)
                )
                team = persistence.load_team(session, team_id)
                _sync_admin(session, team)
                record_activity(
                    session, team_id, "team.subscription_expired", "Subscription lapsed, moved to the default plan",
                    {"plan_slug": fallback_slug},
                )
            notify_owner(team, "team.subscription_expired", {"plan_slug": fallback_slug})
            downgraded.append(team_id)
        except Exception as exc:
            logger.warning(
                "[teams] subscription expiry failed for team",
                extra={"team_id": team_id, "error": str(exc)},
            )
            failed.append(team_id)

    return SyncReport(plan_slug=fallback_slug, synced=downgraded, failed=failed)


def delete_team(team_id: int, *, actor_id: Optional[str] = None) -> None:
    """Delete a team with its roles, grants, memberships and invitations."""
    with get_db_session() as session:
        team = persistence.load_team(session, team_id)
        session.execute(
            update(app_users)
            .where(app_users.c.current_team_id == team_id)
            .values(current_team_id=None)
        )
        # roles, role_permissions, team_members and invitations cascade
        session.execute(delete(teams).where(teams.c.id == team_id))

    log_event("info", "team.deleted", user_id=actor_id, team_id=team.id)


def list_user_teams(user_id: str) -> WorkspaceSummary:
    """Teams the user belongs to plus the workspace bound of their primary plan."""
    with get_db_session() as session:
        user = load_user(session, user_id)
        if not user:
            raise NotFoundError(f"User {user_id} not found")

        rows = session.execute(
            select(teams)
            .join(team_members, team_members.c.team_id == teams.c.id)
            .where(team_members.c.user_id == user_id)
            .order_by(teams.c.id)
        ).all()
        primary = persistence.primary_team(session, user_id)
        bound_plan = load_plan(session, primary.plan_slug) if primary else default_plan(session)

        return WorkspaceSummary(
            teams=[persistence.row_to_team(row) for row in rows],
            current_team_id=user.current_team_id,
            owned_count=persistence.owned_team_count(session, user_id),
            max_workspaces=bound_plan.max_workspaces,
        )


def set_default_team(user_id: str, team_id: int) -> User:
    """
    Switch the user's current workspace.

    Raises:
        NotFoundError: User or team missing
        NotAMemberError: User is neither a member nor a superuser
    """
    with get_db_session() as session:
        user = load_user(session, user_id)
        if not user:
            raise NotFoundError(f"User {user_id} not found")
        persistence.load_team(session, team_id)
        if not user.is_superuser and not find_membership(session, team_id, user_id):
            raise NotAMemberError(f"User {user_id} is not a member of team {team_id}")

        session.execute(
            update(app_users)
            .where(app_users.c.user_id == user_id)
            .values(current_team_id=team_id)
        )
        return load_user(session, user_id)
