"""
teamgate/models/team.py

Team (tenant) models.
"""

from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field


class Team(BaseModel):
    """A tenant. ``plan_slug`` is a weak reference to a plan."""
    model_config = ConfigDict(frozen=True)

    id: int
    name: str
    owner_user_id: str
    plan_slug: str
    subscription_expires_at: Optional[datetime] = None
    created_at: Optional[datetime] = None


class WorkspaceSummary(BaseModel):
    """Teams a user belongs to plus the workspace-count bound of their primary plan."""
    model_config = ConfigDict(frozen=True)

    teams: List[Team]
    current_team_id: Optional[int] = None
    owned_count: int = 0
    max_workspaces: int = 1


class CreateTeamRequest(BaseModel):
    name: str = Field(min_length=1, max_length=50)
    plan_slug: Optional[str] = None


class SwitchTeamRequest(BaseModel):
    team_id: int


class ChangePlanRequest(BaseModel):
    plan_slug: str
    subscription_expires_at: Optional[datetime] = None
