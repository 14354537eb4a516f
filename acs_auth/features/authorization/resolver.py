"""
Authorization decisions.

AuthorizationResolver.authorize() is the one place that decides whether a
principal may perform an action on a concrete target. It never raises for a
denial: the outcome is a Decision the caller audits and turns into a
response.
"""
from dataclasses import dataclass, field
from typing import Any

from acs_auth.features.hierarchy import path as hierarchy_path
from acs_auth.features.hierarchy.models import EntityKind, HierarchyLevel
from acs_auth.features.permissions import grammar
from acs_auth.features.permissions.grammar import Scope
from acs_auth.features.users.assignments import AssignmentIndex
from acs_auth.features.users.models import Assignment, User
from acs_auth.utils import get_logger


log = get_logger(__name__)

INSUFFICIENT_PERMISSIONS = "insufficient permissions"
INVALID_TARGET = "target has no valid hierarchy path"
INVALID_ASSIGNMENT = "assigned entity has no valid hierarchy path"


@dataclass(frozen=True)
class Target:
    """
    The entity an action is aimed at.

    team_id is the team the entity belongs to (for team and service targets)
    and owner_id the principal that owns the record, if any.
    """
    id: str
    kind: EntityKind
    path: str | None
    team_id: str | None = None
    owner_id: str | None = None

    @property
    def level(self) -> HierarchyLevel:
        return self.kind.level

    @classmethod
    def for_entity(cls, entity, owner_id: str | None = None) -> "Target":
        team_id = None
        if entity.kind is EntityKind.TEAM:
            team_id = entity.id
        elif entity.kind is EntityKind.SERVICE:
            team_id = entity.parent_id
        return cls(
            id=entity.id,
            kind=entity.kind,
            path=entity.hierarchy_path,
            team_id=team_id,
            owner_id=owner_id,
        )


@dataclass
class Decision:
    allowed: bool
    required: str
    reason: str | None = None
    scope: Scope | None = None
    assignment_id: str | None = None
    granted: list[str] = field(default_factory=list)

    @classmethod
    def allow(cls, required: str, reason: str, scope: Scope | None = None, assignment_id: str | None = None):
        return cls(allowed=True, required=required, reason=reason, scope=scope, assignment_id=assignment_id)

    @classmethod
    def deny(cls, required: str, granted: list[str], reason: str = INSUFFICIENT_PERMISSIONS):
        return cls(allowed=False, required=required, reason=reason, granted=granted)

    def as_detail(self) -> dict[str, Any]:
        """Body used for HTTP 403 responses and audit details."""
        return {
            "message": self.reason,
            "required": self.required,
            "granted": self.granted,
        }

    def __bool__(self) -> bool:
        return self.allowed


class AuthorizationResolver:
    def __init__(self, index: AssignmentIndex):
        self.index = index

    async def authorize(self, principal: User, required: str, target: Target) -> Decision:
        """
        Decide whether principal may exercise required on target.

        Every assignment at or above the target's level is tried. The first
        granted scope that admits the target allows; otherwise the decision
        is a denial carrying the principal's granted permissions. A target
        without a valid hierarchy path is denied outright, whatever the scope.
        """
        if principal.is_super_admin:
            return Decision.allow(required, "super_admin", scope=Scope.ALL)

        if not hierarchy_path.is_valid_path(target.path):
            log.error(
                f"Target {target.kind.value} {target.id} has malformed hierarchy path {target.path!r}; "
                f"denying {required} for user {principal.id}"
            )
            return Decision.deny(required, self.index.granted_permissions(principal), reason=INVALID_TARGET)

        candidates = [
            assignment for assignment in self.index.assignments_at_or_above(principal, target.kind)
            if grammar.matches(assignment.role.permissions or [], required)
        ]

        paths = await self.index.entity_paths(candidates) if candidates else {}
        if None in paths.values():
            log.error(f"Denying {required} on {target.kind.value} {target.id} for user {principal.id}: corrupt assigned entity")
            return Decision.deny(required, self.index.granted_permissions(principal), reason=INVALID_ASSIGNMENT)

        for assignment in candidates:
            for scope in grammar.granted_scopes(assignment.role.permissions or [], required):
                if self._scope_admits(principal, assignment, scope, target, paths):
                    log.debug(
                        f"Allow {required} on {target.kind.value} {target.id} for user {principal.id} "
                        f"via {assignment.role.name}:{scope.value}"
                    )
                    return Decision.allow(
                        required,
                        f"{assignment.role.name} grants {scope.value} scope",
                        scope=scope,
                        assignment_id=assignment.id,
                    )

        log.debug(f"Deny {required} on {target.kind.value} {target.id} for user {principal.id}")
        return Decision.deny(required, self.index.granted_permissions(principal))

    async def authorize_any(self, principal: User, permissions: list[str], target: Target) -> Decision:
        """Allow if any one of permissions is granted on target."""
        for required in permissions:
            decision = await self.authorize(principal, required, target)
            if decision:
                return decision
        return Decision.deny(" | ".join(permissions), self.index.granted_permissions(principal))

    def holds_permission(self, principal: User, required: str) -> Decision:
        """
        Check a permission that is not tied to a hierarchy entity, such as
        roles.read. Scope is not evaluated.
        """
        if principal.is_super_admin:
            return Decision.allow(required, "super_admin", scope=Scope.ALL)
        granted = self.index.granted_permissions(principal)
        if grammar.matches(granted, required):
            return Decision.allow(required, "permission held")
        return Decision.deny(required, granted)

    async def accessible_entity_ids(self, principal: User, kind: EntityKind, resource: str | None = None) -> list[str]:
        return await self.index.accessible_entity_ids(principal, kind, resource=resource)

    def _scope_admits(
        self,
        principal: User,
        assignment: Assignment,
        scope: Scope,
        target: Target,
        paths: dict[str, str],
    ) -> bool:
        if scope in (Scope.ALL, Scope.PUBLIC):
            return True

        if scope is Scope.SELF:
            return target.owner_id is not None and target.owner_id == principal.id

        if scope.is_team_scope:
            return target.team_id is not None and target.team_id in self.index.teams_for_assignment(principal, assignment)

        # own, assigned and subordinate need the assigned entity to be live
        assigned_path = paths.get(assignment.entity_id)
        if assigned_path is None:
            return False

        if scope in (Scope.OWN, Scope.ASSIGNED):
            return assignment.entity_id == target.id

        if scope is Scope.SUBORDINATE:
            return hierarchy_path.is_ancestor_of(assigned_path, target.path)

        return False
