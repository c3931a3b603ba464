"""
teamgate/models/plan.py

Subscription plan models.

A plan declares the permission ceiling for every team subscribed to it
(``features``) plus numeric quotas. ``features`` may contain the single
wildcard sentinel (``"all"`` by default) meaning "the whole active catalog".

Plans do NOT include:
- Pricing (billing is handled elsewhere)
- Payment methods
"""

from typing import FrozenSet, List, Optional
from pydantic import BaseModel, ConfigDict, Field


class Plan(BaseModel):
    model_config = ConfigDict(frozen=True)

    slug: str
    name: str
    member_limit: int = 1
    max_tokens: int = 0
    max_workspaces: int = 1
    features: FrozenSet[str] = frozenset()
    active: bool = True
    is_default: bool = False


class CreatePlanRequest(BaseModel):
    slug: str = Field(min_length=1, max_length=50, pattern=r"^[a-z0-9_-]+$")
    name: str = Field(min_length=1, max_length=200)
    member_limit: int = Field(default=1, ge=1)
    max_tokens: int = Field(default=0, ge=0)
    max_workspaces: int = Field(default=1, ge=1)
    features: List[str] = Field(default_factory=list)
    active: bool = True


class UpdatePlanRequest(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    member_limit: Optional[int] = Field(default=None, ge=1)
    max_tokens: Optional[int] = Field(default=None, ge=0)
    max_workspaces: Optional[int] = Field(default=None, ge=1)
    features: Optional[List[str]] = None
    active: Optional[bool] = None


class SyncReport(BaseModel):
    """Outcome of re-clipping admin roles for every team on a plan."""
    model_config = ConfigDict(frozen=True)

    plan_slug: str
    synced: List[int] = Field(default_factory=list)
    failed: List[int] = Field(default_factory=list)
