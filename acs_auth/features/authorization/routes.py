"""
Authorization API routes.

Lets callers ask for a decision on a concrete entity and fetch the entity
IDs they may see at a level, e.g. to scope list queries.
"""
from typing import Annotated, Optional
from fastapi import APIRouter, Depends, Query

from acs_auth.features.authorization.dependencies import get_hierarchy_repository, get_resolver
from acs_auth.features.authorization.resolver import AuthorizationResolver, Target
from acs_auth.features.authorization.schemas import (
    AccessibleEntitiesResponse,
    AuthorizationCheckRequest,
    AuthorizationCheckResponse,
)
from acs_auth.features.hierarchy.models import EntityKind
from acs_auth.features.hierarchy.repository import HierarchyRepository
from acs_auth.features.users.dependencies import get_current_user
from acs_auth.features.users.models import User


router = APIRouter()


@router.post("/check", response_model=AuthorizationCheckResponse)
async def check_authorization(
    check: AuthorizationCheckRequest,
    user: Annotated[User, Depends(get_current_user)],
    resolver: Annotated[AuthorizationResolver, Depends(get_resolver)],
    hierarchy: Annotated[HierarchyRepository, Depends(get_hierarchy_repository)],
):
    """Evaluate a permission for the current user against one entity."""
    entity = await hierarchy.get_or_404(check.kind, check.entity_id)
    decision = await resolver.authorize(user, check.permission, Target.for_entity(entity, owner_id=check.owner_id))
    return AuthorizationCheckResponse(
        allowed=decision.allowed,
        reason=decision.reason,
        required=decision.required,
        scope=decision.scope,
        granted=decision.granted,
    )


@router.get("/accessible/{level}", response_model=AccessibleEntitiesResponse)
async def accessible_entities(
    level: EntityKind,
    user: Annotated[User, Depends(get_current_user)],
    resolver: Annotated[AuthorizationResolver, Depends(get_resolver)],
    resource: Optional[str] = Query(None, pattern=r"^[a-z_]+$"),
):
    """List active entity IDs at level the current user may read."""
    ids = await resolver.accessible_entity_ids(user, level, resource=resource)
    return AccessibleEntitiesResponse(level=level, resource=resource or level.resource, ids=ids)
