"""
teamgate/features/authz/resolver.py

Authorization resolver: may this user perform this action in this team?

    effective = role grants ∩ plan ceiling ∩ active catalog

Evaluation order (first match wins):
1. superuser -> allow
2. no team context -> allow only team-independent actions
3. no membership -> deny
4. permission outside the plan ceiling -> deny (plan restricted)
5. permission outside the member's role grants -> deny (insufficient role)

The resolver never writes and never raises for a denial; callers that need
an exception use ``require``.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, FrozenSet, Optional, Type
import logging

from fastapi import Depends

from teamgate.core.auth import get_current_user, get_team_context
from teamgate.core.config import settings
from teamgate.core.database import read_only_session
from teamgate.core.errors import (
    AppError,
    NoTeamContextError,
    NotAMemberError,
    PlanRestrictedError,
    InsufficientRoleError,
)
from teamgate.core.logging import log_event
from teamgate.features.members.service import find_membership, holds_admin
from teamgate.features.plans.service import load_plan, plan_ceiling
from teamgate.features.roles.service import role_grants
from teamgate.features.teams.persistence import find_team
from teamgate.models.user import User


logger = logging.getLogger(__name__)


class DecisionReason(str, Enum):
    ALLOWED = "allowed"
    SUPERUSER = "superuser"
    TEAM_INDEPENDENT = "team_independent"
    NO_TEAM_CONTEXT = "no_team_context"
    NOT_A_MEMBER = "not_a_member"
    PLAN_RESTRICTED = "plan_restricted"
    INSUFFICIENT_ROLE = "insufficient_role"


@dataclass(frozen=True)
class Decision:
    allowed: bool
    reason: DecisionReason
    permission: str
    team_id: Optional[int]

    def __bool__(self) -> bool:
        return self.allowed


_DENIAL_ERRORS: Dict[DecisionReason, Type[AppError]] = {
    DecisionReason.NO_TEAM_CONTEXT: NoTeamContextError,
    DecisionReason.NOT_A_MEMBER: NotAMemberError,
    DecisionReason.PLAN_RESTRICTED: PlanRestrictedError,
    DecisionReason.INSUFFICIENT_ROLE: InsufficientRoleError,
}

_DENIAL_MESSAGES = {
    DecisionReason.NO_TEAM_CONTEXT: "Select a workspace first",
    DecisionReason.NOT_A_MEMBER: "You are not a member of this workspace",
    DecisionReason.PLAN_RESTRICTED: "Your workspace plan does not include this feature. Please upgrade.",
    DecisionReason.INSUFFICIENT_ROLE: "Your role does not allow this action",
}


def resolve_team_id(user: User, team_id: Optional[int]) -> Optional[int]:
    """Explicit team context wins over the user's stored default team."""
    return team_id if team_id is not None else user.current_team_id


def _evaluate(session, user: User, team_id: Optional[int], permission: str) -> Decision:
    if user.is_superuser:
        return Decision(True, DecisionReason.SUPERUSER, permission, team_id)

    if team_id is None:
        if permission in settings.team_independent_permissions():
            return Decision(True, DecisionReason.TEAM_INDEPENDENT, permission, None)
        return Decision(False, DecisionReason.NO_TEAM_CONTEXT, permission, None)

    team = find_team(session, team_id)
    membership = find_membership(session, team_id, user.user_id) if team else None
    if membership is None:
        return Decision(False, DecisionReason.NOT_A_MEMBER, permission, team_id)

    ceiling = plan_ceiling(session, load_plan(session, team.plan_slug))
    if permission not in ceiling:
        return Decision(False, DecisionReason.PLAN_RESTRICTED, permission, team_id)

    grants = role_grants(session, team_id, membership.role_name)
    if permission in grants & ceiling:
        return Decision(True, DecisionReason.ALLOWED, permission, team_id)
    return Decision(False, DecisionReason.INSUFFICIENT_ROLE, permission, team_id)


def can(user: User, team_id: Optional[int], permission: str) -> Decision:
    """Decide whether ``user`` may use ``permission`` in ``team_id`` (or their default team)."""
    target = resolve_team_id(user, team_id)
    with read_only_session() as session:
        decision = _evaluate(session, user, target, permission)

    if not decision.allowed:
        log_event(
            "info",
            "authz.denied",
            user_id=user.user_id,
            team_id=decision.team_id,
            event_type="authz",
            extra={"permission": permission, "reason": decision.reason.value},
        )
    return decision


def current_effective_permissions(user: User, team_id: Optional[int] = None) -> FrozenSet[str]:
    """Every permission name ``can`` would allow for this user and team."""
    target = resolve_team_id(user, team_id)
    with read_only_session() as session:
        if user.is_superuser:
            from teamgate.features.catalog.service import active_permission_names
            return frozenset(active_permission_names(session)) | settings.team_independent_permissions()

        if target is None:
            return settings.team_independent_permissions()

        team = find_team(session, target)
        membership = find_membership(session, target, user.user_id) if team else None
        if membership is None:
            return frozenset()

        ceiling = plan_ceiling(session, load_plan(session, team.plan_slug))
        return frozenset(role_grants(session, target, membership.role_name) & ceiling)


def require(user: User, team_id: Optional[int], permission: str) -> Decision:
    """Like ``can`` but raises the matching AppError on denial."""
    decision = can(user, team_id, permission)
    if not decision.allowed:
        error_cls = _DENIAL_ERRORS[decision.reason]
        raise error_cls(_DENIAL_MESSAGES[decision.reason])
    return decision


def is_team_admin(user: User, team_id: Optional[int]) -> bool:
    """Owner, admin-role member, or superuser."""
    if user.is_superuser:
        return True
    target = resolve_team_id(user, team_id)
    if target is None:
        return False
    with read_only_session() as session:
        team = find_team(session, target)
        return bool(team and holds_admin(session, team, user.user_id))


def require_permission(permission: str):
    """
    FastAPI dependency factory.

    Usage:
        @router.get("/reports", dependencies=[Depends(require_permission("facebook_basic"))])
    """

    def dependency(
        user: User = Depends(get_current_user),
        team_id: Optional[int] = Depends(get_team_context),
    ) -> Decision:
        return require(user, team_id, permission)

    return dependency
