"""
teamgate/features/plans/service.py

Plan catalog and plan ceiling.

Handles:
- Plan seeding (free, pro, enterprise)
- Plan resolution with fallback to the default plan (never fails)
- Effective ceiling: plan features ∩ active catalog, with the single
  wildcard sentinel expanding to the whole active catalog
- Plan edits; a feature change re-clips the admin role of every team on
  the plan (see teams.service.sync_plan_teams)
"""

import logging
from typing import Iterable, List, Optional, Tuple, FrozenSet

from sqlalchemy import select, insert, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from teamgate.core.config import settings
from teamgate.core.database import get_db_session, is_unique_violation, read_only_session, plans
from teamgate.core.errors import NotFoundError, ValidationError
from teamgate.features.catalog.service import active_permission_names, unknown_permission_names
from teamgate.models.plan import Plan, CreatePlanRequest, UpdatePlanRequest, SyncReport


logger = logging.getLogger(__name__)

# Default plan configurations
DEFAULT_PLANS = {
    "free": {
        "name": "Free Starter",
        "member_limit": 1,  # Only the owner
        "max_tokens": 10,
        "max_workspaces": 1,
        "features": ["facebook_basic"],
    },
    "pro": {
        "name": "Pro Business",
        "member_limit": 5,
        "max_tokens": 1000,
        "max_workspaces": 3,
        "features": ["facebook_basic", "facebook_advanced", "tiktok_basic"],
    },
    "enterprise": {
        "name": "Enterprise",
        "member_limit": 20,
        "max_tokens": 10000,
        "max_workspaces": 10,
        "features": ["all"],
    },
}

# Used only when neither the requested nor the default plan exists
FALLBACK_PLAN = Plan(
    slug="free",
    name="Free",
    member_limit=1,
    max_tokens=0,
    max_workspaces=1,
    features=frozenset(),
    active=True,
    is_default=True,
)


def _row_to_plan(row) -> Plan:
    return Plan(
        slug=row.slug,
        name=row.name,
        member_limit=row.member_limit,
        max_tokens=row.max_tokens,
        max_workspaces=row.max_workspaces,
        features=frozenset(row.features or []),
        active=bool(row.active),
        is_default=bool(row.is_default),
    )


# Session-level helpers

def find_plan(session: Session, slug: Optional[str]) -> Optional[Plan]:
    if not slug:
        return None
    row = session.execute(select(plans).where(plans.c.slug == slug)).first()
    return _row_to_plan(row) if row else None


def default_plan(session: Session) -> Plan:
    plan = find_plan(session, settings.DEFAULT_PLAN_SLUG)
    if plan:
        return plan
    row = session.execute(select(plans).where(plans.c.is_default == True)).first()
    if row:
        return _row_to_plan(row)
    logger.warning(
        "[plans] default plan missing, using built-in fallback",
        extra={"plan_slug": settings.DEFAULT_PLAN_SLUG},
    )
    return FALLBACK_PLAN


def load_plan(session: Session, slug: Optional[str]) -> Plan:
    """Resolve a (possibly dangling) plan reference."""
    return find_plan(session, slug) or default_plan(session)


def plan_ceiling(session: Session, plan: Plan) -> FrozenSet[str]:
    active = active_permission_names(session)
    if settings.PLAN_WILDCARD_FEATURE in plan.features:
        return frozenset(active)
    return frozenset(plan.features & active)


def _validate_features(session: Session, features: Iterable[str]) -> List[str]:
    cleaned = sorted({f.strip() for f in features if f and f.strip()})
    unknown = [
        name for name in unknown_permission_names(session, cleaned)
        if name != settings.PLAN_WILDCARD_FEATURE
    ]
    if unknown:
        raise ValidationError(f"Unknown permissions in plan features: {', '.join(unknown)}")
    return cleaned


# Public API

def seed_plans() -> None:
    """
    Seed default plans into database (idempotent).

    Features that are not in the catalog are skipped, so seed the catalog
    first. Safe to call multiple times.
    """
    from teamgate.features.catalog.service import catalog_names

    with get_db_session() as session:
        known = catalog_names(session)
        for slug, config in DEFAULT_PLANS.items():
            existing = session.execute(
                select(plans.c.slug).where(plans.c.slug == slug)
            ).first()
            if existing:
                continue

            features = [
                f for f in config["features"]
                if f in known or f == settings.PLAN_WILDCARD_FEATURE
            ]
            session.execute(
                insert(plans).values(
                    slug=slug,
                    name=config["name"],
                    member_limit=config["member_limit"],
                    max_tokens=config["max_tokens"],
                    max_workspaces=config["max_workspaces"],
                    features=features,
                    active=True,
                    is_default=(slug == settings.DEFAULT_PLAN_SLUG),
                )
            )


def list_plans(active_only: bool = False) -> List[Plan]:
    with get_db_session() as session:
        query = select(plans).order_by(plans.c.member_limit, plans.c.slug)
        if active_only:
            query = query.where(plans.c.active == True)
        return [_row_to_plan(row) for row in session.execute(query).all()]


def get_plan(slug: str) -> Optional[Plan]:
    """Get plan by slug (no fallback)."""
    with get_db_session() as session:
        return find_plan(session, slug)


def resolve_plan(slug: Optional[str]) -> Plan:
    """Plan for ``slug``, else the default plan. Never raises."""
    with read_only_session() as session:
        return load_plan(session, slug)


def effective_ceiling(plan: Plan) -> FrozenSet[str]:
    """Permission names a team on ``plan`` may ever effectively hold."""
    with read_only_session() as session:
        return plan_ceiling(session, plan)


def create_plan(request: CreatePlanRequest) -> Plan:
    """
    Create a plan.

    Raises:
        ValidationError: Unknown feature names or duplicate slug
    """
    try:
        with get_db_session() as session:
            features = _validate_features(session, request.features)
            session.execute(
                insert(plans).values(
                    slug=request.slug,
                    name=request.name,
                    member_limit=request.member_limit,
                    max_tokens=request.max_tokens,
                    max_workspaces=request.max_workspaces,
                    features=features,
                    active=request.active,
                    is_default=False,
                )
            )
            created = find_plan(session, request.slug)
    except IntegrityError as exc:
        if not is_unique_violation(exc):
            raise
        raise ValidationError(f"Plan '{request.slug}' already exists")

    logger.info("[plans] plan created", extra={"plan_slug": request.slug})
    return created


def update_plan(slug: str, request: UpdatePlanRequest) -> Tuple[Plan, Optional[SyncReport]]:
    """
    Edit a plan.

    When the feature list changes, every team on the plan gets its admin role
    re-synced after the plan edit commits, one transaction per team.

    Returns:
        (plan, sync_report): sync_report is None when features were untouched
    """
    with get_db_session() as session:
        current = find_plan(session, slug)
        if not current:
            raise NotFoundError(f"Plan {slug} not found")

        values = {}
        for field in ("name", "member_limit", "max_tokens", "max_workspaces"):
            value = getattr(request, field)
            if value is not None:
                values[field] = value
        if request.active is not None:
            if not request.active and current.is_default:
                raise ValidationError("The default plan cannot be deactivated")
            values["active"] = request.active

        features_changed = False
        if request.features is not None:
            features = _validate_features(session, request.features)
            features_changed = frozenset(features) != current.features
            values["features"] = features

        if values:
            session.execute(update(plans).where(plans.c.slug == slug).values(**values))
        updated = find_plan(session, slug)

    report = None
    if features_changed:
        from teamgate.features.teams.service import sync_plan_teams
        report = sync_plan_teams(slug)

    return updated, report


def update_plan_features(slug: str, features: List[str]) -> SyncReport:
    """Replace a plan's feature set and re-sync every team on it."""
    _, report = update_plan(slug, UpdatePlanRequest(features=features))
    return report or SyncReport(plan_slug=slug)


def set_plan_active(slug: str, active: bool) -> Plan:
    plan, _ = update_plan(slug, UpdatePlanRequest(active=active))
    return plan
