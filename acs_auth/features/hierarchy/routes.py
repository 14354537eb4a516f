"""
Hierarchy API routes.

Entities are created beneath a parent the caller may create in, read and
listed through the caller's scopes, and soft-deleted leaf first.
"""
from typing import Annotated, Any, List
from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from acs_auth.core.database.engine import get_db
from acs_auth.features.authorization.dependencies import (
    enforce,
    entity_action,
    get_active_entity,
    get_entity_target,
    get_hierarchy_repository,
    get_resolver,
    require_permission,
)
from acs_auth.features.authorization.resolver import AuthorizationResolver, Target
from acs_auth.features.hierarchy.dependencies import get_integrity_guard
from acs_auth.features.hierarchy.integrity import IntegrityGuard
from acs_auth.features.hierarchy.models import EntityKind
from acs_auth.features.hierarchy.repository import HierarchyRepository
from acs_auth.features.hierarchy.schemas import DeleteCheckResponse, EntityCreate, EntityResponse
from acs_auth.features.permissions.dependencies import create_audit_log
from acs_auth.features.users.dependencies import get_current_user
from acs_auth.features.users.models import User
from acs_auth.utils import get_logger


log = get_logger(__name__)
router = APIRouter()


@router.post("/{kind}", response_model=EntityResponse, status_code=status.HTTP_201_CREATED)
async def create_entity(
    kind: EntityKind,
    entity: EntityCreate,
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
    user: Annotated[User, Depends(get_current_user)],
    resolver: Annotated[AuthorizationResolver, Depends(get_resolver)],
    hierarchy: Annotated[HierarchyRepository, Depends(get_hierarchy_repository)],
):
    """
    Create an entity beneath parent_id.

    Unions have no parent and can only be created by a super admin; every
    other kind needs "{resource}.create" covering the parent.
    """
    if kind.parent is None:
        if not user.is_super_admin:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Super admin privileges required",
            )
    elif entity.parent_id is not None:
        parent = await hierarchy.get_or_404(kind.parent, entity.parent_id)
        decision = await resolver.authorize(user, f"{kind.resource}.create", Target.for_entity(parent))
        await enforce(db, decision, user, resource_id=parent.id, resource_type=kind.parent.value, request=request)

    fields = {}
    if kind is EntityKind.TEAM and entity.team_type:
        fields["team_type"] = entity.team_type
    created = await hierarchy.create(kind, entity.name, parent_id=entity.parent_id, **fields)

    await create_audit_log(
        db,
        user_id=user.id,
        action="create",
        resource_type=kind.value,
        resource_id=created.id,
        details={"name": created.name, "hierarchy_path": created.hierarchy_path},
        request=request,
    )
    return created


@router.get("/{kind}", response_model=List[EntityResponse])
async def list_entities(
    kind: EntityKind,
    user: Annotated[User, Depends(get_current_user)],
    resolver: Annotated[AuthorizationResolver, Depends(get_resolver)],
    hierarchy: Annotated[HierarchyRepository, Depends(get_hierarchy_repository)],
    skip: int = 0,
    limit: int = 100,
):
    """List the active entities of kind the current user may read."""
    ids = await resolver.accessible_entity_ids(user, kind)
    return await hierarchy.list_active(kind, ids=ids, skip=skip, limit=limit)


@router.get("/{kind}/{entity_id}", response_model=EntityResponse)
async def get_entity(
    entity: Annotated[Any, Depends(get_active_entity)],
    user: Annotated[User, Depends(require_permission(entity_action("read"), get_entity_target))],
):
    return entity


@router.get("/{kind}/{entity_id}/subtree/{level}", response_model=List[EntityResponse])
async def get_subtree(
    level: EntityKind,
    entity: Annotated[Any, Depends(get_active_entity)],
    user: Annotated[User, Depends(require_permission(entity_action("read"), get_entity_target))],
    resolver: Annotated[AuthorizationResolver, Depends(get_resolver)],
    hierarchy: Annotated[HierarchyRepository, Depends(get_hierarchy_repository)],
    skip: int = 0,
    limit: int = 100,
):
    """
    List active entities of level beneath an entity the user may read,
    narrowed to those the user may read themselves.
    """
    in_subtree = set(await hierarchy.active_ids_in_subtree(level, entity.path))
    readable = in_subtree.intersection(await resolver.accessible_entity_ids(user, level))
    return await hierarchy.list_active(level, ids=readable, skip=skip, limit=limit)


@router.get("/{kind}/{entity_id}/can-delete", response_model=DeleteCheckResponse)
async def can_delete_entity(
    entity: Annotated[Any, Depends(get_active_entity)],
    user: Annotated[User, Depends(require_permission(entity_action("read"), get_entity_target))],
    guard: Annotated[IntegrityGuard, Depends(get_integrity_guard)],
):
    """Report whether the entity could be deleted now, and what blocks it."""
    check = await guard.can_delete(entity)
    return DeleteCheckResponse(
        allowed=check.allowed,
        blocking_level=check.blocking_kind,
        count=check.count,
        message=check.message,
    )


@router.delete("/{kind}/{entity_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_entity(
    kind: EntityKind,
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
    entity: Annotated[Any, Depends(get_active_entity)],
    user: Annotated[User, Depends(require_permission(entity_action("delete"), get_entity_target))],
    guard: Annotated[IntegrityGuard, Depends(get_integrity_guard)],
):
    """Soft delete an entity whose subtree is already inactive."""
    await guard.soft_delete(entity, deleted_by_id=user.id)

    await create_audit_log(
        db,
        user_id=user.id,
        action="delete",
        resource_type=kind.value,
        resource_id=entity.id,
        details={"hierarchy_path": entity.hierarchy_path},
        request=request,
    )
