"""
Pydantic schemas for role management.

Request and response models for roles, the permission registry, system
role seeding and audit logs.
"""
from datetime import datetime
from typing import Dict, Any, List, Optional
from pydantic import BaseModel, Field, ConfigDict, field_validator

from acs_auth.features.hierarchy.models import EntityKind


# ============================================================================
# Role Schemas
# ============================================================================

class RoleBase(BaseModel):
    """Base role schema."""
    name: str = Field(..., min_length=1, max_length=50, description="Unique role name")
    display_name: str = Field(..., min_length=1, max_length=100)
    level: EntityKind = Field(..., description="union, conference or church")
    permissions: List[str] = Field(default_factory=list, description="Permission strings, e.g. 'users.read:subordinate'")
    description: Optional[str] = Field(None, max_length=1000, description="Role description")


class RoleCreate(RoleBase):
    """Schema for creating a new role. Permissions are validated by the catalog."""

    @field_validator('name')
    @classmethod
    def name_alphanumeric_underscore(cls, v: str) -> str:
        """Validate role name format."""
        if not v.replace('_', '').isalnum():
            raise ValueError('Role name must contain only alphanumeric characters and underscores')
        return v.lower()


class RoleUpdate(BaseModel):
    """Schema for updating a role. System roles accept display_name and description only."""
    name: Optional[str] = Field(None, min_length=1, max_length=50)
    display_name: Optional[str] = Field(None, min_length=1, max_length=100)
    level: Optional[EntityKind] = None
    permissions: Optional[List[str]] = None
    description: Optional[str] = Field(None, max_length=1000)
    is_active: Optional[bool] = None


class RoleResponse(BaseModel):
    """Schema for role response."""
    id: str
    name: str
    display_name: str
    level: str
    permissions: List[str]
    description: Optional[str]
    is_system: bool
    is_active: bool
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


# ============================================================================
# Permission Registry Schemas
# ============================================================================

class PermissionCategoryResponse(BaseModel):
    id: str
    name: str
    display_name: str
    description: Optional[str]
    icon: Optional[str]
    display_order: int
    is_system: bool

    model_config = ConfigDict(from_attributes=True)


class PermissionCreate(BaseModel):
    """Schema for registering a custom permission key."""
    key: str = Field(..., min_length=3, max_length=100, description="resource.action, without a scope")
    label: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=1000)
    category_id: str
    allowed_scopes: List[str] = Field(default_factory=list, description="Scopes the key may be granted with")


class PermissionResponse(BaseModel):
    id: str
    key: str
    label: str
    description: Optional[str]
    allowed_scopes: List[str]
    is_system: bool

    model_config = ConfigDict(from_attributes=True)


class PermissionGroup(BaseModel):
    """One category with its registered permissions."""
    category: PermissionCategoryResponse
    permissions: List[PermissionResponse]


class SeedResultResponse(BaseModel):
    """Outcome of re-asserting the system roles."""
    created: List[str]
    updated: List[str]
    unchanged: List[str]


# ============================================================================
# Audit Log Schemas
# ============================================================================

class AuditLogResponse(BaseModel):
    """Schema for audit log response."""
    id: str
    user_id: Optional[str]
    action: str
    resource_type: str
    resource_id: Optional[str]
    allowed: Optional[bool]
    details: Optional[Dict[str, Any]]
    ip_address: Optional[str]
    user_agent: Optional[str]
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class AuditLogListResponse(BaseModel):
    """Schema for paginated audit log list."""
    items: List[AuditLogResponse]
    total: int
    page: int
    page_size: int
    pages: int
