"""
Shared route helpers: resolving the team a request acts in and gating team
management endpoints.
"""

from typing import Optional

from fastapi import Depends

from teamgate.core.auth import get_current_user, get_team_context
from teamgate.core.errors import NoTeamContextError, PermissionError
from teamgate.features.authz.resolver import is_team_admin, resolve_team_id
from teamgate.models.user import User


def current_team_id(
    user: User = Depends(get_current_user),
    team_id: Optional[int] = Depends(get_team_context),
) -> int:
    """X-Team-Id, else the user's default team; 403 when neither is set."""
    target = resolve_team_id(user, team_id)
    if target is None:
        raise NoTeamContextError("Select a workspace first")
    return target


def team_admin_team_id(
    user: User = Depends(get_current_user),
    team_id: int = Depends(current_team_id),
) -> int:
    """Current team, provided the user owns it, is its admin, or is a superuser."""
    if not is_team_admin(user, team_id):
        raise PermissionError("Only the team owner or an admin can manage this workspace")
    return team_id
