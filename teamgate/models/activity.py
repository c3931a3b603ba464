"""
teamgate/models/activity.py

Team activity log entries.
"""

from datetime import datetime
from typing import Any, Dict, Optional
from pydantic import BaseModel, ConfigDict, Field


class ActivityEntry(BaseModel):
    """One audited change inside a team. ``user_id`` is the actor, if any."""
    model_config = ConfigDict(frozen=True)

    id: int
    team_id: int
    user_id: Optional[str] = None
    user_display_name: Optional[str] = None
    action: str
    description: Optional[str] = None
    properties: Dict[str, Any] = Field(default_factory=dict)
    created_at: Optional[datetime] = None
