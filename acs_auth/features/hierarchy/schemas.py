"""
Pydantic schemas for hierarchy entities.
"""
from datetime import datetime
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator

from acs_auth.features.hierarchy.models import EntityKind
from acs_auth.features.hierarchy.path import SEPARATOR


class EntityCreate(BaseModel):
    """Create a union, conference, church, team or service."""
    name: str = Field(..., min_length=1, max_length=255)
    parent_id: Optional[str] = Field(None, description="Required for every kind except union")
    team_type: Optional[str] = Field(None, max_length=50, description="Teams only, defaults to 'acs'")

    @field_validator("parent_id")
    @classmethod
    def parent_id_format(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and SEPARATOR in v:
            raise ValueError(f"Entity IDs must not contain {SEPARATOR!r}")
        return v


class EntityResponse(BaseModel):
    id: str
    kind: EntityKind
    name: str
    parent_id: Optional[str] = None
    hierarchy_path: str
    hierarchy_level: int
    is_active: bool
    team_type: Optional[str] = None
    deleted_at: Optional[datetime] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class DeleteCheckResponse(BaseModel):
    allowed: bool
    blocking_level: Optional[EntityKind] = None
    count: int = 0
    message: Optional[str] = None
