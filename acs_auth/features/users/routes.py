"""
User feature routes: profiles, role assignments and team memberships.
"""
from typing import Annotated
from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from acs_auth.core.database.engine import get_db
from acs_auth.features.authorization.dependencies import (
    enforce,
    get_assignment_index,
    get_hierarchy_repository,
    get_resolver,
    require_permission,
)
from acs_auth.features.authorization.resolver import AuthorizationResolver, Decision, Target
from acs_auth.features.hierarchy.models import EntityKind
from acs_auth.features.hierarchy.repository import HierarchyRepository
from acs_auth.features.permissions.catalog import RoleCatalog
from acs_auth.features.permissions.dependencies import create_audit_log, get_role_catalog
from acs_auth.features.users.assignments import AssignmentIndex
from acs_auth.features.users.dependencies import get_current_user, get_current_super_admin
from acs_auth.features.users.models import User
from acs_auth.features.users.schemas import (
    AssignmentCreate,
    AssignmentResponse,
    DeriveAssignmentsRequest,
    TeamMembershipCreate,
    TeamMembershipResponse,
    UserCreate,
    UserPublic,
    UserResponse,
)
from acs_auth.utils import get_logger


log = get_logger(__name__)
router = APIRouter(tags=["users"])


def user_response(user: User, index: AssignmentIndex) -> UserResponse:
    response = UserResponse.model_validate(user)
    return response.model_copy(update={"highest_level": index.highest_level(user)})


async def get_principal_or_404(user_id: str, index: AssignmentIndex) -> User:
    principal = await index.load_principal(user_id)
    if principal is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="User not found"
        )
    return principal


async def authorize_on_entity(
    db: AsyncSession,
    resolver: AuthorizationResolver,
    hierarchy: HierarchyRepository,
    user: User,
    permission: str,
    kind: EntityKind,
    entity_id: str,
    request: Request,
) -> None:
    """Load an active entity and enforce permission on it."""
    entity = await hierarchy.get_or_404(kind, entity_id)
    decision = await resolver.authorize(user, permission, Target.for_entity(entity))
    await enforce(db, decision, user, resource_id=entity_id, resource_type=kind.value, request=request)


# ============================================================================
# Profiles
# ============================================================================

@router.get("/me", response_model=UserResponse)
async def get_current_user_profile(
    user: Annotated[User, Depends(get_current_user)],
    index: Annotated[AssignmentIndex, Depends(get_assignment_index)],
):
    """Get current authenticated user's profile with assignments."""
    return user_response(user, index)


@router.post("/", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
async def create_user(
    user_create: UserCreate,
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
    index: Annotated[AssignmentIndex, Depends(get_assignment_index)],
    current_user: Annotated[User, Depends(require_permission("users.create"))],
):
    """Register a user. Access comes from assignments granted afterwards."""
    existing = await db.execute(select(User).where(User.email == user_create.email))
    if existing.scalar_one_or_none() is not None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="User with this email already exists"
        )

    user = User(email=user_create.email, name=user_create.name, assignments=[], team_memberships=[])
    db.add(user)
    await db.flush()

    await create_audit_log(
        db,
        user_id=current_user.id,
        action="create",
        resource_type="user",
        resource_id=user.id,
        details={"email": user.email},
        request=request,
    )
    return user_response(user, index)


@router.get("/{user_id}", response_model=UserPublic)
async def get_user_by_id(
    user_id: str,
    index: Annotated[AssignmentIndex, Depends(get_assignment_index)],
    current_user: Annotated[User, Depends(get_current_user)],
):
    """Get public user profile by ID."""
    return await get_principal_or_404(user_id, index)


# ============================================================================
# Assignments
# ============================================================================

@router.get("/{user_id}/assignments", response_model=list[AssignmentResponse])
async def list_assignments(
    user_id: str,
    index: Annotated[AssignmentIndex, Depends(get_assignment_index)],
    current_user: Annotated[User, Depends(get_current_user)],
    resolver: Annotated[AuthorizationResolver, Depends(get_resolver)],
    db: Annotated[AsyncSession, Depends(get_db)],
    request: Request,
):
    """List a user's assignments. Users may always read their own."""
    if user_id != current_user.id:
        await enforce(db, resolver.holds_permission(current_user, "users.read"), current_user, request=request)
    principal = await get_principal_or_404(user_id, index)
    return principal.assignments


@router.post("/{user_id}/assignments", response_model=AssignmentResponse, status_code=status.HTTP_201_CREATED)
async def grant_assignment(
    user_id: str,
    grant: AssignmentCreate,
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
    index: Annotated[AssignmentIndex, Depends(get_assignment_index)],
    resolver: Annotated[AuthorizationResolver, Depends(get_resolver)],
    hierarchy: Annotated[HierarchyRepository, Depends(get_hierarchy_repository)],
    catalog: Annotated[RoleCatalog, Depends(get_role_catalog)],
    current_user: Annotated[User, Depends(get_current_user)],
):
    """
    Grant a role on an entity.

    The granter needs users.assign_role covering the entity and may not hand
    out a role more senior or more widely scoped than their own grants.
    """
    await authorize_on_entity(
        db, resolver, hierarchy, current_user, "users.assign_role", grant.level, grant.entity_id, request
    )

    role = await catalog.get_or_404(grant.role_id)
    if not index.can_delegate(current_user, role):
        decision = Decision.deny(f"delegate:{role.name}", index.granted_permissions(current_user),
                                 reason="role exceeds granter's own grants")
        await enforce(db, decision, current_user, resource_id=role.id, resource_type="role", request=request)

    principal = await get_principal_or_404(user_id, index)
    assignment = await index.grant(principal, grant.level, grant.entity_id, role, granted_by_id=current_user.id)

    await create_audit_log(
        db,
        user_id=current_user.id,
        action="grant",
        resource_type="assignment",
        resource_id=assignment.id,
        details={"user_id": user_id, "level": grant.level.value, "entity_id": grant.entity_id, "role": role.name},
        request=request,
    )
    return assignment


@router.delete("/{user_id}/assignments/{assignment_id}", status_code=status.HTTP_204_NO_CONTENT)
async def revoke_assignment(
    user_id: str,
    assignment_id: str,
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
    index: Annotated[AssignmentIndex, Depends(get_assignment_index)],
    resolver: Annotated[AuthorizationResolver, Depends(get_resolver)],
    hierarchy: Annotated[HierarchyRepository, Depends(get_hierarchy_repository)],
    current_user: Annotated[User, Depends(get_current_user)],
):
    """Revoke one assignment. Requires users.assign_role covering its entity."""
    principal = await get_principal_or_404(user_id, index)
    existing = next((a for a in principal.assignments if a.id == assignment_id), None)
    if existing is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Assignment not found"
        )

    await authorize_on_entity(
        db, resolver, hierarchy, current_user, "users.assign_role", existing.kind, existing.entity_id, request
    )
    revoked = await index.revoke(principal, assignment_id)

    await create_audit_log(
        db,
        user_id=current_user.id,
        action="revoke",
        resource_type="assignment",
        resource_id=assignment_id,
        details={"user_id": user_id, "level": revoked.level, "entity_id": revoked.entity_id, "role_id": revoked.role_id},
        request=request,
    )


@router.post("/{user_id}/assignments/derive", response_model=list[AssignmentResponse])
async def derive_assignments(
    user_id: str,
    derive: DeriveAssignmentsRequest,
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
    index: Annotated[AssignmentIndex, Depends(get_assignment_index)],
    current_user: Annotated[User, Depends(get_current_super_admin)],
):
    """Derive ancestor assignments from team memberships (super admin only)."""
    principal = await get_principal_or_404(user_id, index)
    created = await index.derive_assignments_from_teams(
        principal, roles_by_kind=derive.roles_by_level, granted_by_id=current_user.id
    )
    if created:
        await create_audit_log(
            db,
            user_id=current_user.id,
            action="derive",
            resource_type="assignment",
            details={"user_id": user_id, "assignment_ids": [a.id for a in created]},
            request=request,
        )
    return created


# ============================================================================
# Team memberships
# ============================================================================

@router.post("/{user_id}/teams", response_model=TeamMembershipResponse, status_code=status.HTTP_201_CREATED)
async def add_team_membership(
    user_id: str,
    membership: TeamMembershipCreate,
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
    index: Annotated[AssignmentIndex, Depends(get_assignment_index)],
    resolver: Annotated[AuthorizationResolver, Depends(get_resolver)],
    hierarchy: Annotated[HierarchyRepository, Depends(get_hierarchy_repository)],
    current_user: Annotated[User, Depends(get_current_user)],
):
    """Add a user to a team. Requires users.update covering the team."""
    await authorize_on_entity(
        db, resolver, hierarchy, current_user, "users.update", EntityKind.TEAM, membership.team_id, request
    )
    principal = await get_principal_or_404(user_id, index)
    created = await index.add_team_membership(principal, membership.team_id, invited_by_id=current_user.id)

    await create_audit_log(
        db,
        user_id=current_user.id,
        action="join",
        resource_type="team",
        resource_id=membership.team_id,
        details={"user_id": user_id},
        request=request,
    )
    return created


@router.delete("/{user_id}/teams/{team_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_team_membership(
    user_id: str,
    team_id: str,
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
    index: Annotated[AssignmentIndex, Depends(get_assignment_index)],
    resolver: Annotated[AuthorizationResolver, Depends(get_resolver)],
    hierarchy: Annotated[HierarchyRepository, Depends(get_hierarchy_repository)],
    current_user: Annotated[User, Depends(get_current_user)],
):
    """Remove a user from a team. Requires users.update covering the team."""
    await authorize_on_entity(
        db, resolver, hierarchy, current_user, "users.update", EntityKind.TEAM, team_id, request
    )
    principal = await get_principal_or_404(user_id, index)
    await index.remove_team_membership(principal, team_id)

    await create_audit_log(
        db,
        user_id=current_user.id,
        action="leave",
        resource_type="team",
        resource_id=team_id,
        details={"user_id": user_id},
        request=request,
    )
