"""
teamgate/api/teams.py
Workspace routes: list, create, switch, plan changes and member management.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query

from teamgate.api.deps import current_team_id, team_admin_team_id
from teamgate.core.auth import get_current_user, require_superuser
from teamgate.core.errors import NotAMemberError, PermissionError
from teamgate.features.activity.service import list_activity
from teamgate.features.members.service import get_membership, list_members, remove_member, set_token_limit
from teamgate.features.roles.service import assign_to_member
from teamgate.features.teams.service import (
    list_user_teams,
    create_team as service_create_team,
    set_default_team,
    get_team,
    sync_to_plan,
    change_plan,
    delete_team as service_delete_team,
)
from teamgate.models.membership import AssignRoleRequest, TokenLimitRequest
from teamgate.models.team import CreateTeamRequest, SwitchTeamRequest, ChangePlanRequest
from teamgate.models.user import User

router = APIRouter()


@router.get("/v1/teams")
def list_teams(user: User = Depends(get_current_user)):
    """Teams the caller belongs to, their current team and workspace bound."""
    summary = list_user_teams(user.user_id)
    return {"success": True, "data": summary.model_dump(mode="json")}


@router.post("/v1/teams")
def create_team(request: CreateTeamRequest, user: User = Depends(get_current_user)):
    """
    Create a workspace owned by the caller.

    Returns 403 workspace_limit when the caller's primary plan is exhausted.
    """
    team = service_create_team(user.user_id, request.name, request.plan_slug)
    return {"success": True, "data": team.model_dump(mode="json")}


@router.post("/v1/teams/switch")
def switch_team(request: SwitchTeamRequest, user: User = Depends(get_current_user)):
    updated = set_default_team(user.user_id, request.team_id)
    return {"success": True, "data": {"current_team_id": updated.current_team_id}}


@router.get("/v1/teams/current")
def current_team(team_id: int = Depends(current_team_id), user: User = Depends(get_current_user)):
    """Current team with its members. Non-members get 403 not_a_member."""
    team = get_team(team_id)
    if not user.is_superuser and not get_membership(team_id, user.user_id):
        raise NotAMemberError("You are not a member of this workspace")

    members = list_members(team_id)
    return {
        "success": True,
        "data": {
            "team": team.model_dump(mode="json"),
            "members": [m.model_dump(mode="json") for m in members],
        },
    }


@router.get("/v1/teams/current/activity")
def current_team_activity(
    search: Optional[str] = Query(None),
    limit: int = Query(20),
    offset: int = Query(0),
    team_id: int = Depends(team_admin_team_id),
):
    """Audit trail of the current team, newest first. Owner, admins and superusers only."""
    entries = list_activity(team_id, search=search, limit=limit, offset=offset)
    return {"success": True, "data": [e.model_dump(mode="json") for e in entries]}


@router.post("/v1/teams/current/sync")
def sync_current_team(team_id: int = Depends(team_admin_team_id), user: User = Depends(get_current_user)):
    """Re-clip the admin role to the current plan."""
    admin = sync_to_plan(team_id, actor_id=user.user_id)
    return {"success": True, "data": admin.model_dump(mode="json")}


@router.put("/v1/teams/{team_id}/plan")
def put_team_plan(team_id: int, request: ChangePlanRequest, user: User = Depends(require_superuser)):
    team = change_plan(
        team_id,
        request.plan_slug,
        request.subscription_expires_at,
        actor_id=user.user_id,
    )
    return {"success": True, "data": team.model_dump(mode="json")}


@router.delete("/v1/teams/{team_id}")
def delete_team(team_id: int, user: User = Depends(get_current_user)):
    """Owner or superuser only."""
    team = get_team(team_id)
    if team.owner_user_id != user.user_id and not user.is_superuser:
        raise PermissionError("Only the team owner can delete a workspace")
    service_delete_team(team_id, actor_id=user.user_id)
    return {"success": True, "data": {"deleted": team_id}}


@router.delete("/v1/teams/current/members/{member_id}")
def delete_member(member_id: str, team_id: int = Depends(team_admin_team_id), user: User = Depends(get_current_user)):
    remove_member(team_id, member_id, actor_id=user.user_id)
    return {"success": True, "data": {"removed": member_id}}


@router.put("/v1/teams/current/members/{member_id}/role")
def put_member_role(
    member_id: str,
    request: AssignRoleRequest,
    team_id: int = Depends(team_admin_team_id),
    user: User = Depends(get_current_user),
):
    membership = assign_to_member(team_id, member_id, request.role_name, actor_id=user.user_id)
    return {"success": True, "data": membership.model_dump(mode="json")}


@router.put("/v1/teams/current/members/{member_id}/token-limit")
def put_member_token_limit(
    member_id: str,
    request: TokenLimitRequest,
    team_id: int = Depends(team_admin_team_id),
    user: User = Depends(get_current_user),
):
    membership = set_token_limit(team_id, member_id, request.limit, actor_id=user.user_id)
    return {"success": True, "data": membership.model_dump(mode="json")}
