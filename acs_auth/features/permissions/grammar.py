"""
Permission string grammar.

A permission string is ``resource.action`` optionally followed by ``:scope``.
``resource.*`` grants every action on a resource and the bare ``*`` grants
everything. Examples::

    users.create:subordinate
    services.read:acs
    roles.read
    stories.*
    *

Matching ignores scope. Deciding whether a concrete target lies inside a
granted scope is the resolver's job.
"""
import enum
import re
from dataclasses import dataclass
from typing import Iterable

from acs_auth.core.exceptions import ValidationError


GLOBAL_WILDCARDS = frozenset({"*", "all"})
ACTION_WILDCARD = "*"


class Scope(str, enum.Enum):
    """Breadth of entities a granted permission applies to."""
    SELF = "self"
    OWN = "own"
    ASSIGNED = "assigned"
    SUBORDINATE = "subordinate"
    ALL = "all"
    ACS_TEAM = "acs_team"
    ACS = "acs"
    PUBLIC = "public"

    @property
    def is_team_scope(self) -> bool:
        return self in (Scope.ACS, Scope.ACS_TEAM)

    @property
    def breadth(self) -> int:
        """Rank for comparing scopes when delegating; wider is larger."""
        return SCOPE_BREADTH[self]


# Scope used when a permission string carries no suffix
DEFAULT_SCOPE = Scope.OWN

SCOPE_BREADTH = {
    Scope.SELF: 0,
    Scope.OWN: 1,
    Scope.ASSIGNED: 1,
    Scope.ACS: 1,
    Scope.ACS_TEAM: 1,
    Scope.SUBORDINATE: 2,
    Scope.PUBLIC: 3,
    Scope.ALL: 3,
}

_SCOPES = "|".join(scope.value for scope in Scope)
PERMISSION_PATTERN = re.compile(
    rf"^(?P<resource>[a-z_]+)\.(?P<action>[a-z_]+|\*)(?::(?P<scope>{_SCOPES}))?$"
)


@dataclass(frozen=True)
class Permission:
    """A parsed permission string."""
    resource: str
    action: str
    scope: Scope | None = None
    is_global: bool = False

    @classmethod
    def parse(cls, value: str) -> "Permission":
        """Parse a permission string, raising ValidationError when malformed."""
        if value in GLOBAL_WILDCARDS:
            return cls(resource=ACTION_WILDCARD, action=ACTION_WILDCARD, scope=Scope.ALL, is_global=True)
        match = PERMISSION_PATTERN.match(value or "")
        if match is None:
            raise ValidationError(f"Invalid permission format: {value}", errors=[value])
        scope = match.group("scope")
        return cls(
            resource=match.group("resource"),
            action=match.group("action"),
            scope=Scope(scope) if scope else None,
        )

    @property
    def effective_scope(self) -> Scope:
        return self.scope or DEFAULT_SCOPE

    def covers(self, resource: str, action: str) -> bool:
        """True if this grant applies to (resource, action), ignoring scope."""
        if self.is_global:
            return True
        if self.resource != resource:
            return False
        return self.action == ACTION_WILDCARD or self.action == action

    def __str__(self) -> str:
        if self.is_global:
            return "*"
        text = f"{self.resource}.{self.action}"
        return f"{text}:{self.scope.value}" if self.scope else text


def split_required(required: str) -> tuple[str, str]:
    """Split a required permission into (resource, action) on the first dot."""
    resource, _, action = required.partition(".")
    return resource, action.split(":", 1)[0]


def is_valid(value: str) -> bool:
    if value == "*":
        return True
    return PERMISSION_PATTERN.match(value or "") is not None


def invalid_permissions(values: Iterable[str]) -> list[str]:
    """Return every entry of values that does not match the grammar."""
    return [value for value in values if not is_valid(value)]


def validate_permissions(values: Iterable[str]) -> list[str]:
    """
    Validate a permission list and return it de-duplicated in original order.

    Raises:
        ValidationError: naming all malformed entries
    """
    values = list(values)
    invalid = invalid_permissions(values)
    if invalid:
        raise ValidationError(
            f"Invalid permission format: {', '.join(invalid)}",
            errors=invalid,
        )
    return list(dict.fromkeys(values))


def matches(granted: Iterable[str], required: str) -> bool:
    """
    Check whether a grant list satisfies a required permission.

    The scope of granted entries is ignored: ``users.create:subordinate``
    satisfies ``users.create``.
    """
    granted = list(granted)
    if any(entry in GLOBAL_WILDCARDS for entry in granted):
        return True
    if required in granted:
        return True

    resource, action = split_required(required)
    if f"{resource}.{ACTION_WILDCARD}" in granted:
        return True

    for entry in granted:
        if ":" not in entry:
            continue
        entry_permission, _, _scope = entry.partition(":")
        entry_resource, entry_action = split_required(entry_permission)
        if entry_resource == resource and entry_action in (action, ACTION_WILDCARD):
            return True
    return False


def granted_scopes(granted: Iterable[str], required: str) -> list[Scope]:
    """
    Return the scope of every granted entry that covers required.

    Global wildcards yield Scope.ALL, unscoped entries yield the default
    scope. Malformed entries are skipped; they never widen access.
    """
    resource, action = split_required(required)
    scopes: dict[Scope, None] = {}
    for entry in granted:
        try:
            permission = Permission.parse(entry)
        except ValidationError:
            continue
        if permission.covers(resource, action):
            scopes[permission.effective_scope] = None
    return list(scopes)
