"""
teamgate/features/catalog/service.py

Global permission catalog.

Handles:
- Catalog seeding
- Create / relabel / toggle / delete of permissions
- Active-name lookups used by the plan ceiling and the role directory

A permission's ``name`` is the key every role grant and plan feature list
refers to, so it is never renamed. Disabling (``active=False``) takes a
permission out of every effective-permission computation immediately, while
leaving stored grants untouched.
"""

import logging
import re
from typing import Iterable, List, Optional, Set

from sqlalchemy import select, insert, update, delete
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from teamgate.core.database import get_db_session, is_unique_violation, permissions, plans, role_permissions
from teamgate.core.config import settings
from teamgate.core.errors import ConflictError, NotFoundError, ValidationError
from teamgate.models.permission import Permission


logger = logging.getLogger(__name__)

# (name, label, module)
DEFAULT_PERMISSIONS = [
    ("facebook_basic", "Facebook Basic Report", "facebook"),
    ("facebook_advanced", "Facebook Advanced Report", "facebook"),
    ("tiktok_basic", "TikTok Basic Report", "tiktok"),
    ("tiktok_advanced", "TikTok Advanced Report", "tiktok"),
    ("share_public_link", "Share Public Link", "reports"),
    ("view_all_team_reports", "View All Team Reports", "reports"),
    ("manage_users", "Manage Users", "team"),
    ("manage_roles", "Manage Roles", "team"),
    ("manage_tokens", "Manage Tokens", "team"),
]

_NAME_RE = re.compile(r"^[a-z0-9][a-z0-9_.-]*$")


def slugify_permission_name(label: str) -> str:
    """'Generate TikTok Report' -> 'generate_tiktok_report'."""
    slug = re.sub(r"[^a-z0-9]+", "_", label.strip().lower()).strip("_")
    return slug


def _row_to_permission(row) -> Permission:
    return Permission(
        id=row.id,
        name=row.name,
        label=row.label,
        module=row.module,
        active=bool(row.active),
    )


# Session-level helpers (shared with plans, roles and the resolver)

def active_permission_names(session: Session) -> Set[str]:
    rows = session.execute(
        select(permissions.c.name).where(permissions.c.active == True)
    ).all()
    return {row.name for row in rows}


def catalog_names(session: Session) -> Set[str]:
    rows = session.execute(select(permissions.c.name)).all()
    return {row.name for row in rows}


def unknown_permission_names(session: Session, names: Iterable[str]) -> List[str]:
    """Names that are not in the catalog (active or not)."""
    known = catalog_names(session)
    return sorted({n for n in names if n not in known})


def _fetch(session: Session, permission_id: int):
    row = session.execute(
        select(permissions).where(permissions.c.id == permission_id)
    ).first()
    if not row:
        raise NotFoundError(f"Permission {permission_id} not found")
    return row


# Public API

def list_permissions(active_only: bool = False) -> List[Permission]:
    """List the catalog ordered by module, then name."""
    with get_db_session() as session:
        query = select(permissions).order_by(permissions.c.module, permissions.c.name)
        if active_only:
            query = query.where(permissions.c.active == True)
        return [_row_to_permission(row) for row in session.execute(query).all()]


def get_permission(permission_id: int) -> Permission:
    with get_db_session() as session:
        return _row_to_permission(_fetch(session, permission_id))


def create_permission(label: str, module: str, name: Optional[str] = None) -> Permission:
    """
    Add a permission to the catalog.

    Args:
        label: Human label
        module: Grouping shown in admin screens
        name: Stable key; defaults to a slug of ``label``

    Raises:
        ValidationError: Empty/invalid name, name collides with the plan
            wildcard, or name already exists
    """
    perm_name = (name or slugify_permission_name(label)).strip()
    if not perm_name or not _NAME_RE.match(perm_name):
        raise ValidationError(f"Invalid permission name: {perm_name!r}")
    if perm_name == settings.PLAN_WILDCARD_FEATURE:
        raise ValidationError(f"'{perm_name}' is reserved for the plan wildcard")

    try:
        with get_db_session() as session:
            result = session.execute(
                insert(permissions).values(
                    name=perm_name,
                    label=label.strip(),
                    module=module.strip(),
                    active=True,
                )
            )
            permission_id = result.inserted_primary_key[0]
            row = _fetch(session, permission_id)
            created = _row_to_permission(row)
    except IntegrityError as exc:
        if not is_unique_violation(exc):
            raise
        raise ValidationError(f"Permission '{perm_name}' already exists")

    logger.info("[catalog] permission created", extra={"permission": perm_name})
    return created


def rename_permission(permission_id: int, label: str, module: str) -> Permission:
    """Update label and module. The name is never changed."""
    with get_db_session() as session:
        _fetch(session, permission_id)
        session.execute(
            update(permissions)
            .where(permissions.c.id == permission_id)
            .values(label=label.strip(), module=module.strip())
        )
        return _row_to_permission(_fetch(session, permission_id))


def toggle_permission(permission_id: int) -> Permission:
    """Flip the active flag."""
    with get_db_session() as session:
        row = _fetch(session, permission_id)
        session.execute(
            update(permissions)
            .where(permissions.c.id == permission_id)
            .values(active=not bool(row.active))
        )
        toggled = _row_to_permission(_fetch(session, permission_id))

    logger.info(
        "[catalog] permission toggled",
        extra={"permission": toggled.name, "active": toggled.active},
    )
    return toggled


def delete_permission(permission_id: int) -> None:
    """
    Remove a permission that nothing references.

    Raises:
        NotFoundError: Unknown id
        ConflictError: Still granted by a role or listed in a plan's features
    """
    with get_db_session() as session:
        row = _fetch(session, permission_id)

        in_role = session.execute(
            select(role_permissions.c.role_id)
            .where(role_permissions.c.permission_name == row.name)
            .limit(1)
        ).first()
        if in_role:
            raise ConflictError(f"Permission '{row.name}' is granted by at least one role")

        for plan_row in session.execute(select(plans.c.slug, plans.c.features)).all():
            if row.name in (plan_row.features or []):
                raise ConflictError(f"Permission '{row.name}' is part of plan '{plan_row.slug}'")

        session.execute(delete(permissions).where(permissions.c.id == permission_id))

    logger.info("[catalog] permission deleted", extra={"permission": row.name})


def seed_permissions() -> None:
    """
    Seed the default catalog (idempotent).

    Existing permissions are left as they are, including their active flag.
    """
    with get_db_session() as session:
        existing = catalog_names(session)
        for name, label, module in DEFAULT_PERMISSIONS:
            if name in existing:
                continue
            session.execute(
                insert(permissions).values(name=name, label=label, module=module, active=True)
            )
