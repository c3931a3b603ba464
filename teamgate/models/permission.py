"""
teamgate/models/permission.py

Permission catalog models.

A permission is a named capability (e.g. "facebook_advanced"). The name is
what roles and plans reference, so it never changes after creation; only the
label and module grouping are editable.
"""

from typing import Optional
from pydantic import BaseModel, ConfigDict, Field


class Permission(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    name: str
    label: str
    module: str
    active: bool = True


class CreatePermissionRequest(BaseModel):
    label: str = Field(min_length=1, max_length=255)
    module: str = Field(min_length=1, max_length=100)
    name: Optional[str] = Field(default=None, max_length=100, description="Defaults to a slug of label")


class UpdatePermissionRequest(BaseModel):
    label: str = Field(min_length=1, max_length=255)
    module: str = Field(min_length=1, max_length=100)
