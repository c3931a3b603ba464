"""
teamgate/models/role.py

Team-scoped role models.

Roles are identified by (team_id, name). ``granted_permissions`` is the
stored ("desired") grant set; it is clipped to the team's plan ceiling only
when a decision is made, never when it is saved.
"""

from typing import FrozenSet, List, Optional
from pydantic import BaseModel, ConfigDict, Field

from teamgate.models.permission import Permission


class Role(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    team_id: int
    name: str
    label: Optional[str] = None
    guard: str = "web"
    granted_permissions: FrozenSet[str] = frozenset()


class RolesOverview(BaseModel):
    """Roles of a team with grants clipped to the current plan ceiling.

    Doubles as the set of role templates offered when configuring a member.
    """
    model_config = ConfigDict(frozen=True)

    team_id: int
    plan_slug: str
    roles: List[Role]
    available_permissions: List[Permission]


class CreateRoleRequest(BaseModel):
    name: str = Field(min_length=1, max_length=50)
    label: Optional[str] = Field(default=None, max_length=100)
    permissions: List[str] = Field(default_factory=list)


class UpdateRoleRequest(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=50)
    label: Optional[str] = Field(default=None, max_length=100)
    permissions: Optional[List[str]] = None
