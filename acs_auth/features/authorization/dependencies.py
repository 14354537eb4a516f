"""
Authorization dependencies for route protection.

The engine objects are built per request around the request's session:

    HierarchyRepository -> AssignmentIndex -> AuthorizationResolver

Usage:
    @router.delete("/{kind}/{entity_id}")
    async def delete_entity(
        user: User = Depends(require_permission(entity_action("delete"), get_entity_target)),
        entity = Depends(get_active_entity),
    ):
        ...
"""
from typing import Annotated, Any, Callable
from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from acs_auth.core.database.engine import get_db
from acs_auth.features.authorization.resolver import AuthorizationResolver, Decision, Target
from acs_auth.features.hierarchy.models import EntityKind
from acs_auth.features.hierarchy.repository import HierarchyRepository
from acs_auth.features.permissions.catalog import RoleCatalog
from acs_auth.features.permissions.dependencies import create_audit_log, get_role_catalog
from acs_auth.features.users.assignments import AssignmentIndex
from acs_auth.features.users.dependencies import get_current_user
from acs_auth.features.users.models import User
from acs_auth.utils import get_logger


log = get_logger(__name__)


# ============================================================================
# Engine objects
# ============================================================================

def get_hierarchy_repository(db: Annotated[AsyncSession, Depends(get_db)]) -> HierarchyRepository:
    return HierarchyRepository(db)


def get_assignment_index(
    db: Annotated[AsyncSession, Depends(get_db)],
    hierarchy: Annotated[HierarchyRepository, Depends(get_hierarchy_repository)],
    roles: Annotated[RoleCatalog, Depends(get_role_catalog)],
) -> AssignmentIndex:
    return AssignmentIndex(db, hierarchy=hierarchy, roles=roles)


def get_resolver(index: Annotated[AssignmentIndex, Depends(get_assignment_index)]) -> AuthorizationResolver:
    return AuthorizationResolver(index)


async def get_active_entity(
    kind: EntityKind,
    entity_id: str,
    hierarchy: Annotated[HierarchyRepository, Depends(get_hierarchy_repository)],
):
    """Load the active entity named by {kind}/{entity_id} path parameters."""
    return await hierarchy.get_or_404(kind, entity_id)


async def get_entity_target(entity: Annotated[Any, Depends(get_active_entity)]) -> Target:
    return Target.for_entity(entity)


def entity_action(action: str) -> Callable[[Target], str]:
    """Permission "{resource}.{action}" for whatever kind of entity the target is."""
    def permission_for(target: Target) -> str:
        return f"{target.kind.resource}.{action}"
    return permission_for


# ============================================================================
# Enforcement
# ============================================================================

async def enforce(
    db: AsyncSession,
    decision: Decision,
    user: User,
    resource_id: str | None = None,
    resource_type: str = "authorization",
    request: Request | None = None,
) -> None:
    """
    Raise 403 for a denied decision after auditing it.

    Raises:
        HTTPException: 403 with the required and granted permissions
    """
    if decision:
        return
    await create_audit_log(
        db,
        user_id=user.id,
        action="deny",
        resource_type=resource_type,
        resource_id=resource_id,
        allowed=False,
        details=decision.as_detail(),
        request=request,
    )
    raise HTTPException(
        status_code=status.HTTP_403_FORBIDDEN,
        detail=decision.as_detail(),
    )


def require_permission(permission: str | Callable[[Target], str], target_dependency: Callable | None = None):
    """
    FastAPI dependency to require a permission.

    With a target_dependency the permission is evaluated against the
    resolved Target, scopes included, and may be a callable deriving the
    permission from the target (see entity_action). Without one only
    possession of the permission is checked (for resources outside the
    hierarchy such as roles).

    Returns:
        Dependency function that returns the current user if allowed

    Raises:
        HTTPException: 403 if the user lacks the permission
    """
    if target_dependency is None:
        async def permission_dependency(
            request: Request,
            db: Annotated[AsyncSession, Depends(get_db)],
            current_user: Annotated[User, Depends(get_current_user)],
            resolver: Annotated[AuthorizationResolver, Depends(get_resolver)],
        ) -> User:
            decision = resolver.holds_permission(current_user, permission)
            await enforce(db, decision, current_user, request=request)
            return current_user

        return permission_dependency

    async def target_permission_dependency(
        request: Request,
        db: Annotated[AsyncSession, Depends(get_db)],
        current_user: Annotated[User, Depends(get_current_user)],
        resolver: Annotated[AuthorizationResolver, Depends(get_resolver)],
        target: Annotated[Target, Depends(target_dependency)],
    ) -> User:
        required = permission(target) if callable(permission) else permission
        decision = await resolver.authorize(current_user, required, target)
        await enforce(
            db,
            decision,
            current_user,
            resource_id=target.id,
            resource_type=target.kind.value,
            request=request,
        )
        return current_user

    return target_permission_dependency
