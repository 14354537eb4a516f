"""
Per-principal assignment index.

Answers which assignments cover a given level, which entities a principal
may see at a level, and how senior the principal is. Also owns grant and
revoke, which are serialized per principal through the users.version column.
"""
from collections import defaultdict
from collections.abc import Iterable
from datetime import datetime, timezone
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from acs_auth.core.exceptions import (
    ConcurrentModificationError,
    NotFoundError,
    ValidationError,
)
from acs_auth.features.hierarchy.models import ASSIGNMENT_KINDS, EntityKind
from acs_auth.features.hierarchy.path import is_valid_path
from acs_auth.features.hierarchy.repository import HierarchyRepository
from acs_auth.features.permissions import grammar
from acs_auth.features.permissions.catalog import RoleCatalog
from acs_auth.features.permissions.grammar import Scope
from acs_auth.features.permissions.models import Role
from acs_auth.features.users.models import Assignment, TeamMembership, User
from acs_auth.utils import get_logger


log = get_logger(__name__)

# Roles used when deriving church-level assignments from team memberships
DEFAULT_DERIVED_ROLES: dict[EntityKind, str] = {EntityKind.CHURCH: "church_team_member"}


def role_kind(role: Role) -> EntityKind:
    return EntityKind(role.level)


def role_fits_level(role: Role, kind: EntityKind) -> bool:
    """Team assignments use church-level roles; other levels need an exact match."""
    if kind is EntityKind.TEAM:
        return role_kind(role) is EntityKind.CHURCH
    return role_kind(role) is kind


def delegated_breadth(permission: grammar.Permission) -> int:
    # Public reads only expose published records
    if permission.effective_scope is Scope.PUBLIC and permission.action == "read":
        return Scope.SUBORDINATE.breadth
    return permission.effective_scope.breadth


class AssignmentIndex:
    def __init__(
        self,
        db: AsyncSession,
        hierarchy: HierarchyRepository | None = None,
        roles: RoleCatalog | None = None,
    ):
        self.db = db
        self.hierarchy = hierarchy or HierarchyRepository(db)
        self.roles = roles or RoleCatalog(db)

    async def load_principal(self, user_id: str) -> User | None:
        """Fetch a principal with assignments, roles and memberships loaded."""
        result = await self.db.execute(select(User).where(User.id == user_id))
        return result.scalar_one_or_none()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def assignments_at_or_above(self, principal: User, target_kind: EntityKind) -> list[Assignment]:
        """
        Assignments whose role sits at or above target_kind.

        A union-level grant cascades to every level beneath it.
        """
        return [
            assignment for assignment in principal.assignments
            if assignment.role is not None
            and assignment.role.is_active
            and role_kind(assignment.role).level <= target_kind.level
        ]

    def highest_level(self, principal: User) -> EntityKind | None:
        """Most senior level among the principal's assignments."""
        kinds = [assignment.kind for assignment in principal.assignments]
        if not kinds:
            return None
        return min(kinds, key=lambda kind: kind.level)

    def granted_permissions(self, principal: User) -> list[str]:
        """Every permission string granted through active roles, in assignment order."""
        granted: dict[str, None] = {}
        for assignment in principal.assignments:
            if assignment.role is not None and assignment.role.is_active:
                granted.update(dict.fromkeys(assignment.role.permissions or []))
        return list(granted)

    async def entity_paths(self, assignments: Iterable[Assignment]) -> dict[str, str | None]:
        """
        Map assignment entity IDs to their stored paths.

        Missing or inactive entities are left out, so path-based scopes never
        reach them. An entity with a malformed path maps to None, a
        consistency fault the caller must fail closed on.
        """
        ids_by_kind: dict[EntityKind, set[str]] = defaultdict(set)
        for assignment in assignments:
            ids_by_kind[assignment.kind].add(assignment.entity_id)

        paths: dict[str, str | None] = {}
        for kind, ids in ids_by_kind.items():
            found = await self.hierarchy.paths_for(kind, ids)
            for entity_id in ids:
                stored = found.get(entity_id)
                if stored is None:
                    log.warning(f"Assigned {kind.value} {entity_id} is missing or inactive")
                elif not is_valid_path(stored):
                    log.error(f"Assigned {kind.value} {entity_id} has malformed hierarchy path {stored!r}")
                    paths[entity_id] = None
                else:
                    paths[entity_id] = stored
        return paths

    def team_churches(self, principal: User) -> dict[str, str]:
        """Map each active team the principal belongs to onto its church."""
        return {
            membership.team_id: membership.team.parent_id
            for membership in principal.team_memberships
            if membership.team is not None and membership.team.is_active
        }

    def teams_for_assignment(self, principal: User, assignment: Assignment) -> set[str]:
        """Teams reachable through a team scope granted by this assignment."""
        teams = self.team_churches(principal)
        if assignment.kind is EntityKind.TEAM:
            return {assignment.entity_id} & teams.keys()
        if assignment.kind is EntityKind.CHURCH:
            return {team_id for team_id, church_id in teams.items() if church_id == assignment.entity_id}
        return set()

    async def accessible_entity_ids(
        self,
        principal: User,
        kind: EntityKind,
        resource: str | None = None,
    ) -> list[str]:
        """
        Active entity IDs of kind the principal may read.

        The read permission checked is "{resource}.read", where resource
        defaults to the one governing kind.
        """
        if principal.is_super_admin:
            return await self.hierarchy.active_ids(kind)

        required = f"{resource or kind.resource}.read"
        candidates = self.assignments_at_or_above(principal, kind)
        paths = await self.entity_paths(candidates)
        if None in paths.values():
            log.error(f"Listing {kind.value} entities for user {principal.id} denied: corrupt assigned entity")
            return []
        accessible: dict[str, None] = {}

        for assignment in candidates:
            scopes = grammar.granted_scopes(assignment.role.permissions or [], required)
            if Scope.ALL in scopes or Scope.PUBLIC in scopes:
                return await self.hierarchy.active_ids(kind)

            if Scope.SUBORDINATE in scopes:
                root = paths.get(assignment.entity_id)
                if root is not None:
                    accessible.update(dict.fromkeys(await self.hierarchy.active_ids_in_subtree(kind, root)))
            elif (Scope.OWN in scopes or Scope.ASSIGNED in scopes) and assignment.kind is kind:
                if assignment.entity_id in paths:
                    accessible[assignment.entity_id] = None

            if Scope.ACS in scopes or Scope.ACS_TEAM in scopes:
                for team_id in self.teams_for_assignment(principal, assignment):
                    if kind is EntityKind.TEAM:
                        accessible[team_id] = None
                    elif kind is EntityKind.SERVICE:
                        team = await self.hierarchy.get(EntityKind.TEAM, team_id)
                        if team is not None:
                            accessible.update(dict.fromkeys(
                                await self.hierarchy.active_ids_in_subtree(kind, team.path)
                            ))

        return list(accessible)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def can_delegate(self, granter: User, role: Role) -> bool:
        """
        Whether granter may hand role out.

        Super admins may delegate anything. Anyone else must sit at or above
        the role's level and hold every permission of the role at least as
        widely as the role grants it. Roles carrying the global wildcard or
        an all scope are reserved to super admins.
        """
        if granter.is_super_admin:
            return True
        highest = self.highest_level(granter)
        if highest is None or highest.level > role_kind(role).level:
            return False

        held = self.granted_permissions(granter)
        for entry in role.permissions or []:
            try:
                permission = grammar.Permission.parse(entry)
            except ValidationError:
                return False
            if permission.is_global or permission.effective_scope is Scope.ALL:
                return False
            held_scopes = grammar.granted_scopes(held, f"{permission.resource}.{permission.action}")
            if not held_scopes or max(scope.breadth for scope in held_scopes) < delegated_breadth(permission):
                log.debug(f"User {granter.id} cannot delegate {role.name}: {entry} exceeds their own grants")
                return False
        return True

    async def grant(
        self,
        principal: User,
        kind: EntityKind,
        entity_id: str,
        role: Role,
        granted_by_id: str | None = None,
    ) -> Assignment:
        """
        Assign role to principal on entity. Re-granting the same (entity, role)
        replaces the earlier grant.

        Raises:
            ValidationError: level not assignable or role bound to another level
            NotFoundError: entity missing or inactive
            ConcurrentModificationError: principal changed concurrently
        """
        if kind not in ASSIGNMENT_KINDS:
            raise ValidationError(f"Cannot assign roles at {kind.value} level")
        if not role.is_active:
            raise ValidationError(f"Role {role.name} is inactive")
        if not role_fits_level(role, kind):
            raise ValidationError(f"Role {role.name} is a {role.level} role and cannot be assigned at {kind.value} level")
        await self.hierarchy.get_or_404(kind, entity_id)

        for existing in list(principal.assignments):
            if existing.kind is kind and existing.entity_id == entity_id and existing.role_id == role.id:
                principal.assignments.remove(existing)
        # Flush the removal before inserting, the unique constraint sees both rows otherwise
        await self._save(principal)

        assignment = Assignment(
            level=kind.value,
            entity_id=entity_id,
            role=role,
            role_id=role.id,
            granted_at=datetime.now(timezone.utc),
            granted_by_id=granted_by_id,
        )
        principal.assignments.append(assignment)
        await self._save(principal)

        log.info(f"Granted {role.name} on {kind.value} {entity_id} to user {principal.id} (by {granted_by_id})")
        return assignment

    async def revoke(self, principal: User, assignment_id: str) -> Assignment:
        """Remove one assignment by ID."""
        for assignment in principal.assignments:
            if assignment.id == assignment_id:
                principal.assignments.remove(assignment)
                await self._save(principal)
                log.info(
                    f"Revoked {assignment.role.name} on {assignment.level} {assignment.entity_id} "
                    f"from user {principal.id}"
                )
                return assignment
        raise NotFoundError("Assignment")

    async def revoke_at(
        self,
        principal: User,
        kind: EntityKind,
        entity_id: str,
        role_id: str | None = None,
    ) -> int:
        """Remove every assignment on entity, optionally only for one role."""
        removed = [
            assignment for assignment in principal.assignments
            if assignment.kind is kind
            and assignment.entity_id == entity_id
            and (role_id is None or assignment.role_id == role_id)
        ]
        if not removed:
            raise NotFoundError("Assignment")
        for assignment in removed:
            principal.assignments.remove(assignment)
        await self._save(principal)
        log.info(f"Revoked {len(removed)} assignment(s) on {kind.value} {entity_id} from user {principal.id}")
        return len(removed)

    async def add_team_membership(
        self,
        principal: User,
        team_id: str,
        invited_by_id: str | None = None,
    ) -> TeamMembership:
        team = await self.hierarchy.get_or_404(EntityKind.TEAM, team_id)
        for membership in principal.team_memberships:
            if membership.team_id == team_id:
                return membership

        membership = TeamMembership(
            team_id=team.id,
            team=team,
            joined_at=datetime.now(timezone.utc),
            invited_by_id=invited_by_id,
        )
        principal.team_memberships.append(membership)
        await self._save(principal)
        log.info(f"Added user {principal.id} to team {team_id}")
        return membership

    async def remove_team_membership(self, principal: User, team_id: str) -> None:
        for membership in principal.team_memberships:
            if membership.team_id == team_id:
                principal.team_memberships.remove(membership)
                await self._save(principal)
                log.info(f"Removed user {principal.id} from team {team_id}")
                return
        raise NotFoundError("Team membership")

    async def derive_assignments_from_teams(
        self,
        principal: User,
        roles_by_kind: dict[EntityKind, str] | None = None,
        granted_by_id: str | None = None,
    ) -> list[Assignment]:
        """
        Derive church, conference and union assignments from team memberships.

        Only levels present in roles_by_kind are derived, each with the named
        role. Levels the principal already holds an assignment on are skipped.
        """
        roles_by_kind = roles_by_kind or DEFAULT_DERIVED_ROLES
        roles: dict[EntityKind, Role] = {}
        for kind, role_name in roles_by_kind.items():
            role = await self.roles.find_by_name(role_name)
            if role is None:
                raise NotFoundError(f"Role {role_name}")
            roles[kind] = role

        held = {(assignment.kind, assignment.entity_id) for assignment in principal.assignments}
        created: list[Assignment] = []

        for membership in list(principal.team_memberships):
            team = membership.team
            if team is None or not team.is_active:
                continue
            for kind in (EntityKind.CHURCH, EntityKind.CONFERENCE, EntityKind.UNION):
                segment = team.path.segments[kind.level]
                if kind not in roles or (kind, segment) in held:
                    continue
                held.add((kind, segment))
                created.append(await self.grant(principal, kind, segment, roles[kind], granted_by_id))

        log.info(f"Derived {len(created)} assignment(s) for user {principal.id} from team memberships")
        return created

    async def _save(self, principal: User) -> None:
        # principal is expired once a failed flush rolls the session back
        user_id = principal.id
        principal.assignments_changed_at = datetime.now(timezone.utc)
        try:
            await self.db.flush()
        except StaleDataError as e:
            raise ConcurrentModificationError(
                f"Assignments of user {user_id} were modified concurrently, please retry"
            ) from e
