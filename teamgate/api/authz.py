"""
teamgate/api/authz.py
Authorization queries for the signed-in user.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query

from teamgate.core.auth import get_current_user, get_team_context
from teamgate.features.authz.resolver import can, current_effective_permissions, resolve_team_id
from teamgate.models.user import User

router = APIRouter()


@router.get("/v1/me/permissions")
def my_permissions(
    user: User = Depends(get_current_user),
    team_id: Optional[int] = Depends(get_team_context),
):
    """Effective permissions in X-Team-Id (or the default team)."""
    target = resolve_team_id(user, team_id)
    names = current_effective_permissions(user, target)
    return {
        "success": True,
        "data": {
            "user_id": user.user_id,
            "team_id": target,
            "is_superuser": user.is_superuser,
            "permissions": sorted(names),
        },
    }


@router.get("/v1/authz/check")
def check_permission(
    permission: str = Query(..., min_length=1),
    user: User = Depends(get_current_user),
    team_id: Optional[int] = Depends(get_team_context),
):
    """Always 200; ``allowed`` and ``reason`` carry the decision."""
    decision = can(user, team_id, permission)
    return {
        "success": True,
        "data": {
            "allowed": decision.allowed,
            "reason": decision.reason.value,
            "permission": decision.permission,
            "team_id": decision.team_id,
        },
    }
