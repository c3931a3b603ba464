"""
teamgate/api/invitations.py
FastAPI routes for team invitations.
"""

from datetime import timedelta
from urllib.parse import urlencode

from fastapi import APIRouter, Depends

from teamgate.api.deps import team_admin_team_id
from teamgate.core.auth import get_current_user
from teamgate.features.invitations.service import (
    issue,
    redeem,
    revoke,
    list_invitations as service_list_invitations,
    to_summary,
)
from teamgate.models.invitation import (
    IssueInvitationRequest,
    IssueInvitationResponse,
    RedeemInvitationRequest,
)
from teamgate.models.user import User

router = APIRouter()


@router.get("/v1/invitations")
def list_invitations(team_id: int = Depends(team_admin_team_id)):
    """Invitations of the current team (no token hash exposed)."""
    summaries = service_list_invitations(team_id)
    return {"success": True, "data": [s.model_dump(mode="json") for s in summaries]}


@router.post("/v1/invitations")
def create_invitation(
    request: IssueInvitationRequest,
    team_id: int = Depends(team_admin_team_id),
    user: User = Depends(get_current_user),
):
    """
    Invite an email address into the current team.

    Request body:
        email: string
        role_name: role of the current team
        expires_in_hours?: int (default INVITE_TTL_DAYS days)

    Returns:
        IssueInvitationResponse; the raw token is only ever returned here
    """
    ttl = timedelta(hours=request.expires_in_hours) if request.expires_in_hours else None
    invitation, token = issue(team_id, request.email, request.role_name, user.user_id, ttl)

    response = IssueInvitationResponse(
        invitation=to_summary(invitation),
        token=token,
        accept_url=f"/invitations/accept?{urlencode({'token': token})}",
    )
    return {"success": True, "data": response.model_dump(mode="json")}


@router.delete("/v1/invitations/{invitation_id}")
def delete_invitation(invitation_id: int, user: User = Depends(get_current_user)):
    revoke(invitation_id, user)
    return {"success": True, "data": {"revoked": invitation_id}}


@router.post("/v1/invitations/redeem")
def redeem_invitation(request: RedeemInvitationRequest, user: User = Depends(get_current_user)):
    """Accept an invitation as the signed-in user; the invite email must match."""
    membership = redeem(request.token, user)
    return {"success": True, "data": membership.model_dump(mode="json")}
