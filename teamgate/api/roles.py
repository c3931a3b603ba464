"""
teamgate/api/roles.py
Role management for the current team (owner/admin only).
"""

from fastapi import APIRouter, Depends

from teamgate.api.deps import team_admin_team_id
from teamgate.core.auth import get_current_user
from teamgate.core.errors import NotFoundError
from teamgate.features.roles.service import (
    roles_overview,
    get_role,
    create_role as service_create_role,
    update_role as service_update_role,
    delete_role as service_delete_role,
)
from teamgate.models.role import CreateRoleRequest, UpdateRoleRequest
from teamgate.models.user import User

router = APIRouter()


def _role_in_team(role_id: int, team_id: int):
    role = get_role(role_id)
    if role.team_id != team_id:
        # Roles of other teams are invisible
        raise NotFoundError(f"Role {role_id} not found")
    return role


@router.get("/v1/roles")
def list_roles(team_id: int = Depends(team_admin_team_id)):
    """Roles clipped to the plan ceiling plus the permissions the plan offers."""
    overview = roles_overview(team_id)
    return {"success": True, "data": overview.model_dump(mode="json")}


@router.post("/v1/roles")
def create_role(
    request: CreateRoleRequest,
    team_id: int = Depends(team_admin_team_id),
    user: User = Depends(get_current_user),
):
    role = service_create_role(
        team_id,
        request.name,
        request.permissions,
        request.label,
        actor_id=user.user_id,
    )
    return {"success": True, "data": role.model_dump(mode="json")}


@router.patch("/v1/roles/{role_id}")
def update_role(
    role_id: int,
    request: UpdateRoleRequest,
    team_id: int = Depends(team_admin_team_id),
    user: User = Depends(get_current_user),
):
    _role_in_team(role_id, team_id)
    role = service_update_role(
        role_id,
        name=request.name,
        label=request.label,
        permissions=request.permissions,
        actor_id=user.user_id,
    )
    return {"success": True, "data": role.model_dump(mode="json")}


@router.delete("/v1/roles/{role_id}")
def delete_role(
    role_id: int,
    team_id: int = Depends(team_admin_team_id),
    user: User = Depends(get_current_user),
):
    _role_in_team(role_id, team_id)
    service_delete_role(role_id, actor_id=user.user_id)
    return {"success": True, "data": {"deleted": role_id}}
