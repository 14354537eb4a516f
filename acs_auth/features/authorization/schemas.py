"""
Pydantic schemas for authorization checks.
"""
from typing import List, Optional
from pydantic import BaseModel, Field, field_validator

from acs_auth.features.hierarchy.models import EntityKind
from acs_auth.features.permissions import grammar


class AuthorizationCheckRequest(BaseModel):
    """Ask whether the current user may exercise a permission on an entity."""
    permission: str = Field(..., description="Required permission, e.g. 'users.create'")
    kind: EntityKind = Field(..., description="Kind of the target entity")
    entity_id: str = Field(..., min_length=1, description="Target entity ID")
    owner_id: Optional[str] = Field(None, description="Owner of the target record, for self scope")

    @field_validator("permission")
    @classmethod
    def permission_format(cls, v: str) -> str:
        if not grammar.is_valid(v):
            raise ValueError(f"Invalid permission format: {v}")
        return v


class AuthorizationCheckResponse(BaseModel):
    allowed: bool
    reason: Optional[str] = None
    required: str
    scope: Optional[grammar.Scope] = None
    granted: List[str] = []


class AccessibleEntitiesResponse(BaseModel):
    """Entity IDs the current user may read at one level."""
    level: EntityKind
    resource: str
    ids: List[str]
