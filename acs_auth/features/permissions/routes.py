"""
Role management API routes.

Provides endpoints for listing and maintaining roles, browsing and extending
the permission registry, re-seeding the system roles and reading the audit
log.
"""
from typing import Annotated, List, Optional
from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from acs_auth.core.database.engine import get_db
from acs_auth.features.authorization.dependencies import require_permission
from acs_auth.features.permissions.catalog import RoleCatalog
from acs_auth.features.hierarchy.models import EntityKind
from acs_auth.features.permissions.dependencies import (
    create_audit_log,
    get_permission_registry,
    get_role_catalog,
)
from acs_auth.features.permissions.models import AuditLog
from acs_auth.features.permissions.registry import PermissionRegistry
from acs_auth.features.permissions.schemas import (
    AuditLogListResponse,
    AuditLogResponse,
    PermissionCategoryResponse,
    PermissionCreate,
    PermissionGroup,
    PermissionResponse,
    RoleCreate,
    RoleResponse,
    RoleUpdate,
    SeedResultResponse,
)
from acs_auth.features.users.dependencies import get_current_super_admin
from acs_auth.features.users.models import User
from acs_auth.utils import get_logger


log = get_logger(__name__)
router = APIRouter()


# ============================================================================
# Role Routes
# ============================================================================

@router.get("/roles", response_model=List[RoleResponse])
async def list_roles(
    catalog: Annotated[RoleCatalog, Depends(get_role_catalog)],
    current_user: Annotated[User, Depends(require_permission("roles.read"))],
    level: Optional[str] = None,
    include_inactive: bool = False,
    skip: int = 0,
    limit: int = 100,
):
    """List roles, optionally restricted to one level."""
    if level:
        return await catalog.find_by_level(level, include_inactive=include_inactive)
    return await catalog.list_roles(skip=skip, limit=limit, include_inactive=include_inactive)


@router.get("/roles/{role_id}", response_model=RoleResponse)
async def get_role(
    role_id: str,
    catalog: Annotated[RoleCatalog, Depends(get_role_catalog)],
    current_user: Annotated[User, Depends(require_permission("roles.read"))],
):
    """Get a specific role by ID."""
    return await catalog.get_or_404(role_id)


@router.post("/roles", response_model=RoleResponse, status_code=status.HTTP_201_CREATED)
async def create_role(
    role: RoleCreate,
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
    catalog: Annotated[RoleCatalog, Depends(get_role_catalog)],
    current_user: Annotated[User, Depends(require_permission("system.configure"))],
):
    """Create a custom role."""
    db_role = await catalog.create_role(
        name=role.name,
        display_name=role.display_name,
        level=role.level,
        permissions=role.permissions,
        description=role.description,
    )
    await create_audit_log(
        db,
        user_id=current_user.id,
        action="create",
        resource_type="role",
        resource_id=db_role.id,
        details=role.model_dump(mode="json"),
        request=request,
    )
    return db_role


@router.patch("/roles/{role_id}", response_model=RoleResponse)
async def update_role(
    role_id: str,
    role_update: RoleUpdate,
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
    catalog: Annotated[RoleCatalog, Depends(get_role_catalog)],
    current_user: Annotated[User, Depends(require_permission("system.configure"))],
):
    """Update a role. System roles only accept display_name and description."""
    db_role = await catalog.get_or_404(role_id)
    update_data = role_update.model_dump(exclude_unset=True, mode="json")
    await catalog.update_role(db_role, **update_data)

    await create_audit_log(
        db,
        user_id=current_user.id,
        action="update",
        resource_type="role",
        resource_id=role_id,
        details=update_data,
        request=request,
    )
    return db_role


@router.delete("/roles/{role_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_role(
    role_id: str,
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
    catalog: Annotated[RoleCatalog, Depends(get_role_catalog)],
    current_user: Annotated[User, Depends(require_permission("system.configure"))],
):
    """Delete a custom role that is no longer assigned."""
    db_role = await catalog.get_or_404(role_id)
    role_name = db_role.name
    await catalog.delete_role(db_role)

    await create_audit_log(
        db,
        user_id=current_user.id,
        action="delete",
        resource_type="role",
        resource_id=role_id,
        details={"name": role_name},
        request=request,
    )


@router.post("/roles/seed", response_model=SeedResultResponse)
async def seed_system_roles(
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
    catalog: Annotated[RoleCatalog, Depends(get_role_catalog)],
    current_user: Annotated[User, Depends(get_current_super_admin)],
):
    """Re-assert the built-in roles (super admin only)."""
    outcome = await catalog.create_system_roles()
    if outcome.changed:
        await create_audit_log(
            db,
            user_id=current_user.id,
            action="seed",
            resource_type="role",
            details={"created": outcome.created, "updated": outcome.updated},
            request=request,
        )
    return SeedResultResponse(created=outcome.created, updated=outcome.updated, unchanged=outcome.unchanged)


# ============================================================================
# Permission Registry Routes
# ============================================================================

@router.get("/permissions", response_model=List[PermissionGroup])
async def list_permissions(
    registry: Annotated[PermissionRegistry, Depends(get_permission_registry)],
    current_user: Annotated[User, Depends(require_permission("roles.read"))],
):
    """All registered permissions, grouped by category."""
    return [
        {"category": category, "permissions": permissions}
        for category, permissions in await registry.grouped()
    ]


@router.get("/permissions/categories", response_model=List[PermissionCategoryResponse])
async def list_permission_categories(
    registry: Annotated[PermissionRegistry, Depends(get_permission_registry)],
    current_user: Annotated[User, Depends(require_permission("roles.read"))],
):
    return await registry.list_categories()


@router.get("/permissions/available-for-role", response_model=List[PermissionGroup])
async def list_permissions_for_role(
    role_level: EntityKind,
    registry: Annotated[PermissionRegistry, Depends(get_permission_registry)],
    current_user: Annotated[User, Depends(require_permission("roles.read"))],
):
    """Permissions a role of role_level may be built from."""
    return [
        {"category": category, "permissions": permissions}
        for category, permissions in await registry.grouped(role_level=role_level)
    ]


@router.post("/permissions", response_model=PermissionResponse, status_code=status.HTTP_201_CREATED)
async def create_permission(
    permission: PermissionCreate,
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
    registry: Annotated[PermissionRegistry, Depends(get_permission_registry)],
    current_user: Annotated[User, Depends(require_permission("system.configure"))],
):
    """Register a custom permission key."""
    definition = await registry.create_permission(
        key=permission.key,
        label=permission.label,
        category_id=permission.category_id,
        allowed_scopes=permission.allowed_scopes,
        description=permission.description,
        created_by_id=current_user.id,
    )
    await create_audit_log(
        db,
        user_id=current_user.id,
        action="create",
        resource_type="permission",
        resource_id=definition.id,
        details=permission.model_dump(mode="json"),
        request=request,
    )
    return definition


@router.delete("/permissions/{permission_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_permission(
    permission_id: str,
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
    registry: Annotated[PermissionRegistry, Depends(get_permission_registry)],
    current_user: Annotated[User, Depends(require_permission("system.configure"))],
):
    """Delete a custom permission. Built-in permissions are protected."""
    definition = await registry.get_or_404(permission_id)
    key = definition.key
    await registry.delete_permission(definition)

    await create_audit_log(
        db,
        user_id=current_user.id,
        action="delete",
        resource_type="permission",
        resource_id=permission_id,
        details={"key": key},
        request=request,
    )


# ============================================================================
# Audit Log Routes
# ============================================================================

@router.get("/audit-logs", response_model=AuditLogListResponse)
async def list_audit_logs(
    db: Annotated[AsyncSession, Depends(get_db)],
    current_user: Annotated[User, Depends(get_current_super_admin)],
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=500),
    user_id: Optional[str] = None,
    action: Optional[str] = None,
    resource_type: Optional[str] = None,
):
    """List audit log entries, newest first (super admin only)."""
    stmt = select(AuditLog)
    if user_id:
        stmt = stmt.where(AuditLog.user_id == user_id)
    if action:
        stmt = stmt.where(AuditLog.action == action)
    if resource_type:
        stmt = stmt.where(AuditLog.resource_type == resource_type)

    count_result = await db.execute(select(func.count()).select_from(stmt.subquery()))
    total = count_result.scalar_one()

    result = await db.execute(
        stmt.order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    items = result.scalars().all()

    return AuditLogListResponse(
        items=[AuditLogResponse.model_validate(item) for item in items],
        total=total,
        page=page,
        page_size=page_size,
        pages=(total + page_size - 1) // page_size,
    )
