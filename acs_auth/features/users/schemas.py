"""
Pydantic schemas for user-related requests and responses.
"""
from datetime import datetime
from pydantic import BaseModel, EmailStr, Field

from acs_auth.features.hierarchy.models import EntityKind


class UserBase(BaseModel):
    """Base user schema with common fields."""
    email: EmailStr
    name: str = Field(..., min_length=1, max_length=255)


class UserCreate(UserBase):
    """Schema for creating a new user."""


class RoleSummary(BaseModel):
    id: str
    name: str
    display_name: str
    level: str

    model_config = {"from_attributes": True}


class AssignmentCreate(BaseModel):
    """Grant a role on one entity."""
    level: EntityKind = Field(..., description="union, conference, church or team")
    entity_id: str = Field(..., min_length=1)
    role_id: str = Field(..., min_length=1)


class AssignmentResponse(BaseModel):
    id: str
    level: str
    entity_id: str
    role: RoleSummary
    granted_at: datetime
    granted_by_id: str | None = None

    model_config = {"from_attributes": True}


class TeamMembershipCreate(BaseModel):
    team_id: str = Field(..., min_length=1)


class TeamMembershipResponse(BaseModel):
    team_id: str
    joined_at: datetime
    invited_by_id: str | None = None

    model_config = {"from_attributes": True}


class DeriveAssignmentsRequest(BaseModel):
    """Level to role name map; defaults to church level with church_team_member."""
    roles_by_level: dict[EntityKind, str] | None = None


class UserResponse(UserBase):
    """Schema for user responses."""
    id: str
    is_active: bool
    is_super_admin: bool
    assignments: list[AssignmentResponse] = []
    team_memberships: list[TeamMembershipResponse] = []
    highest_level: EntityKind | None = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class UserPublic(BaseModel):
    """Public user information (limited fields)."""
    id: str
    name: str

    model_config = {"from_attributes": True}
