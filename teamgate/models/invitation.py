"""
teamgate/models/invitation.py
Team invitation models: time-boxed, single-use tokens that become memberships.
"""

from pydantic import BaseModel, Field, ConfigDict
from datetime import datetime
from enum import Enum
from typing import Optional


class InvitationStatus(str, Enum):
    """Stored invitations are pending until they expire; redemption deletes them."""

    PENDING = "pending"
    EXPIRED = "expired"


class Invitation(BaseModel):
    """Invitation to join a team"""

    model_config = ConfigDict(frozen=True)

    id: int
    email: str
    team_id: int
    role_name: str
    invited_by: str
    created_at: datetime
    expires_at: datetime
    token_hash: Optional[str] = Field(
        default=None, description="Hashed token (never returned to client)"
    )
    token_hint: Optional[str] = Field(
        default=None, description="Last 6 chars of token for UI display"
    )


class InvitationSummary(BaseModel):
    """Safe invitation summary (no token hash)"""

    model_config = ConfigDict(frozen=True)

    id: int
    email: str
    team_id: int
    role_name: str
    invited_by: str
    status: InvitationStatus
    created_at: datetime
    expires_at: datetime
    token_hint: Optional[str] = None


class IssueInvitationRequest(BaseModel):
    email: str = Field(min_length=3, max_length=320, pattern=r"^[^@\s]+@[^@\s]+$")
    role_name: str = Field(min_length=1, max_length=50)
    expires_in_hours: Optional[int] = Field(default=None, ge=1, le=720)


class RedeemInvitationRequest(BaseModel):
    token: str = Field(min_length=1, description="Token received at issue time")


class IssueInvitationResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    invitation: InvitationSummary
    token: str = Field(description="Raw token, only returned once")
    accept_url: str
