"""
teamgate/features/roles/service.py

Team-scoped role directory.

Roles are keyed by (team_id, name). Stored grants are the role's configured
intent: they are checked against the catalog when saved but are NOT clipped
to the plan ceiling here. Clipping happens when a decision is made
(authz.resolver) and, for the admin role only, on explicit or plan-driven
sync (teams.service.sync_to_plan). Lowering a plan therefore never destroys
a custom role's configuration.
"""

import logging
from typing import Iterable, List, Optional, FrozenSet

from sqlalchemy import select, insert, update, delete
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from teamgate.core.config import settings
from teamgate.core.database import get_db_session, is_unique_violation, roles, role_permissions, team_members, invitations, permissions
from teamgate.core.errors import NotFoundError, NotAMemberError, ProtectedRoleError, ValidationError
from teamgate.features.activity.service import record_activity
from teamgate.features.catalog.service import unknown_permission_names
from teamgate.features.notifications.service import notify_owner
from teamgate.features.plans.service import load_plan, plan_ceiling
from teamgate.features.teams.persistence import load_team
from teamgate.models.membership import Membership
from teamgate.models.permission import Permission
from teamgate.models.role import Role, RolesOverview


logger = logging.getLogger(__name__)

MAX_ROLE_NAME_LENGTH = 50


def _clean_name(name: str) -> str:
    cleaned = (name or "").strip()
    if not cleaned:
        raise ValidationError("Role name is required")
    if len(cleaned) > MAX_ROLE_NAME_LENGTH:
        raise ValidationError(f"Role name must be at most {MAX_ROLE_NAME_LENGTH} characters")
    return cleaned


def is_protected(role_name: str) -> bool:
    return role_name == settings.ADMIN_ROLE_NAME


# Session-level helpers

def _grants_for_role_id(session: Session, role_id: int) -> FrozenSet[str]:
    rows = session.execute(
        select(role_permissions.c.permission_name).where(role_permissions.c.role_id == role_id)
    ).all()
    return frozenset(row.permission_name for row in rows)


def _row_to_role(session: Session, row) -> Role:
    return Role(
        id=row.id,
        team_id=row.team_id,
        name=row.name,
        label=row.label,
        guard=row.guard,
        granted_permissions=_grants_for_role_id(session, row.id),
    )


def load_role(session: Session, role_id: int) -> Role:
    row = session.execute(select(roles).where(roles.c.id == role_id)).first()
    if not row:
        raise NotFoundError(f"Role {role_id} not found")
    return _row_to_role(session, row)


def find_role(session: Session, team_id: int, name: str) -> Optional[Role]:
    row = session.execute(
        select(roles).where(roles.c.team_id == team_id).where(roles.c.name == name)
    ).first()
    return _row_to_role(session, row) if row else None


def role_grants(session: Session, team_id: int, role_name: Optional[str]) -> FrozenSet[str]:
    """Stored grants of the role ``role_name`` in ``team_id`` (empty when missing)."""
    if not role_name:
        return frozenset()
    rows = session.execute(
        select(role_permissions.c.permission_name)
        .join(roles, roles.c.id == role_permissions.c.role_id)
        .where(roles.c.team_id == team_id)
        .where(roles.c.name == role_name)
    ).all()
    return frozenset(row.permission_name for row in rows)


def checked_permissions(session: Session, requested: Iterable[str]) -> FrozenSet[str]:
    """requested ∩ catalog; names missing from the catalog are rejected."""
    names = frozenset(p.strip() for p in requested if p and p.strip())
    unknown = unknown_permission_names(session, names)
    if unknown:
        raise ValidationError(f"Unknown permissions: {', '.join(unknown)}")
    return names


def set_role_grants(session: Session, role_id: int, names: Iterable[str]) -> None:
    session.execute(delete(role_permissions).where(role_permissions.c.role_id == role_id))
    for name in sorted(set(names)):
        session.execute(insert(role_permissions).values(role_id=role_id, permission_name=name))


def insert_role(
    session: Session,
    team_id: int,
    name: str,
    grants: Iterable[str] = (),
    label: Optional[str] = None,
) -> int:
    result = session.execute(
        insert(roles).values(team_id=team_id, name=name, label=label, guard="web")
    )
    role_id = result.inserted_primary_key[0]
    set_role_grants(session, role_id, grants)
    return role_id


# Public API

def list_roles(team_id: int) -> List[Role]:
    """Roles of a team with their stored grants."""
    with get_db_session() as session:
        rows = session.execute(
            select(roles).where(roles.c.team_id == team_id).order_by(roles.c.id)
        ).all()
        return [_row_to_role(session, row) for row in rows]


def get_role(role_id: int) -> Role:
    with get_db_session() as session:
        return load_role(session, role_id)


def roles_overview(team_id: int) -> RolesOverview:
    """
    Roles with grants clipped to the team's current plan ceiling, plus the
    permissions that ceiling makes available. This is what a role picker
    (role templates) should offer.
    """
    with get_db_session() as session:
        team = load_team(session, team_id)
        plan = load_plan(session, team.plan_slug)
        ceiling = plan_ceiling(session, plan)

        rows = session.execute(
            select(roles).where(roles.c.team_id == team_id).order_by(roles.c.id)
        ).all()
        clipped = []
        for row in rows:
            role = _row_to_role(session, row)
            clipped.append(role.model_copy(update={"granted_permissions": role.granted_permissions & ceiling}))

        perm_rows = session.execute(
            select(permissions)
            .where(permissions.c.name.in_(sorted(ceiling)))
            .order_by(permissions.c.module, permissions.c.name)
        ).all() if ceiling else []
        available = [
            Permission(id=r.id, name=r.name, label=r.label, module=r.module, active=bool(r.active))
            for r in perm_rows
        ]

    return RolesOverview(
        team_id=team_id,
        plan_slug=plan.slug,
        roles=clipped,
        available_permissions=available,
    )


def create_role(
    team_id: int,
    name: str,
    permissions: Iterable[str] = (),
    label: Optional[str] = None,
    *,
    actor_id: Optional[str] = None,
) -> Role:
    """
    Create a role in a team.

    Raises:
        NotFoundError: Team missing
        ValidationError: Bad name, duplicate (team_id, name), or unknown
            permission names
    """
    role_name = _clean_name(name)
    try:
        with get_db_session() as session:
            team = load_team(session, team_id)
            grants = checked_permissions(session, permissions)
            role_id = insert_role(session, team_id, role_name, grants, label)
            created = load_role(session, role_id)
            details = {"role": created.name, "permissions": sorted(created.granted_permissions)}
            record_activity(session, team_id, "role.created", f"Created role '{created.name}'", details, actor_id=actor_id)
    except IntegrityError as exc:
        if not is_unique_violation(exc):
            raise
        raise ValidationError(f"Role '{role_name}' already exists in this team")

    notify_owner(team, "role.created", details, actor_id=actor_id)
    return created


def update_role(
    role_id: int,
    name: Optional[str] = None,
    label: Optional[str] = None,
    permissions: Optional[Iterable[str]] = None,
    *,
    actor_id: Optional[str] = None,
) -> Role:
    """
    Rename, relabel and/or replace the grants of a role.

    Renaming carries every membership and pending invitation that refers to
    the old name along in the same transaction.

    Raises:
        ProtectedRoleError: Renaming the admin role
        ValidationError: Duplicate name or unknown permissions
    """
    try:
        with get_db_session() as session:
            role = load_role(session, role_id)
            team = load_team(session, role.team_id)

            values = {}
            if name is not None:
                new_name = _clean_name(name)
                if new_name != role.name:
                    if is_protected(role.name):
                        raise ProtectedRoleError("The workspace admin role cannot be renamed")
                    values["name"] = new_name
            if label is not None:
                values["label"] = label

            if values:
                session.execute(update(roles).where(roles.c.id == role_id).values(**values))
            if "name" in values:
                session.execute(
                    update(team_members)
                    .where(team_members.c.team_id == role.team_id)
                    .where(team_members.c.role_name == role.name)
                    .values(role_name=values["name"])
                )
                session.execute(
                    update(invitations)
                    .where(invitations.c.team_id == role.team_id)
                    .where(invitations.c.role_name == role.name)
                    .values(role_name=values["name"])
                )
            if permissions is not None:
                set_role_grants(session, role_id, checked_permissions(session, permissions))

            updated = load_role(session, role_id)
            details = {"role": updated.name, "permissions": sorted(updated.granted_permissions)}
            if "name" in values:
                details["previous_name"] = role.name
            record_activity(session, role.team_id, "role.updated", f"Updated role '{updated.name}'", details, actor_id=actor_id)
    except IntegrityError as exc:
        if not is_unique_violation(exc):
            raise
        raise ValidationError(f"Role '{name}' already exists in this team")

    notify_owner(team, "role.updated", details, actor_id=actor_id)
    return updated


def delete_role(role_id: int, *, actor_id: Optional[str] = None) -> None:
    """
    Delete a role. Members holding it are left without a role.

    Raises:
        ProtectedRoleError: The admin role
    """
    with get_db_session() as session:
        role = load_role(session, role_id)
        if is_protected(role.name):
            raise ProtectedRoleError("Cannot delete the workspace admin role")
        team = load_team(session, role.team_id)

        session.execute(
            update(team_members)
            .where(team_members.c.team_id == role.team_id)
            .where(team_members.c.role_name == role.name)
            .values(role_name=None)
        )
        session.execute(delete(role_permissions).where(role_permissions.c.role_id == role_id))
        session.execute(delete(roles).where(roles.c.id == role_id))
        record_activity(session, role.team_id, "role.deleted", f"Deleted role '{role.name}'", {"role": role.name}, actor_id=actor_id)

    notify_owner(team, "role.deleted", {"role": role.name}, actor_id=actor_id)


def assign_to_member(
    team_id: int,
    user_id: str,
    role_name: str,
    *,
    actor_id: Optional[str] = None,
) -> Membership:
    """
    Give a member a role of their team.

    Raises:
        NotFoundError: No role with that name in the team
        NotAMemberError: User is not a member of the team
    """
    with get_db_session() as session:
        team = load_team(session, team_id)
        if not find_role(session, team_id, role_name):
            raise NotFoundError(f"Role '{role_name}' does not exist in team {team_id}")

        result = session.execute(
            update(team_members)
            .where(team_members.c.team_id == team_id)
            .where(team_members.c.user_id == user_id)
            .values(role_name=role_name)
        )
        if result.rowcount == 0:
            raise NotAMemberError(f"User {user_id} is not a member of team {team_id}")

        row = session.execute(
            select(team_members)
            .where(team_members.c.team_id == team_id)
            .where(team_members.c.user_id == user_id)
        ).first()
        membership = Membership(
            team_id=row.team_id,
            user_id=row.user_id,
            role_name=row.role_name,
            token_limit=row.token_limit,
            joined_at=row.joined_at,
        )
        details = {"member_id": user_id, "role": role_name}
        record_activity(
            session, team_id, "member.role_changed", f"Assigned role '{role_name}' to {user_id}", details, actor_id=actor_id
        )

    notify_owner(team, "member.role_changed", details, actor_id=actor_id)
    return membership
