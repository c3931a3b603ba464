from datetime import datetime
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field


class Membership(BaseModel):
    """
    A user's seat in a team.

    Constraint: one membership per (user_id, team_id). ``token_limit`` of
    None means unlimited, bounded only by the plan's ``max_tokens``.
    """
    model_config = ConfigDict(frozen=True)

    team_id: int
    user_id: str
    role_name: Optional[str] = None
    token_limit: Optional[int] = None
    joined_at: Optional[datetime] = None


class AssignRoleRequest(BaseModel):
    role_name: str = Field(min_length=1, max_length=50)


class TokenLimitRequest(BaseModel):
    limit: Optional[int] = Field(default=None, ge=-1, description="-1 or null for unlimited")
