"""
Materialized ancestry paths.

A path is the ``/``-joined list of ancestor IDs down to and including the
entity's own ID, e.g. ``unionID/conferenceID/churchID``. Subtree questions
are answered by prefix tests on the separator boundary, so ``A/B`` is an
ancestor of ``A/B/C`` but not of ``A/BC``.
"""
from dataclasses import dataclass

from acs_auth.core.exceptions import ValidationError


SEPARATOR = "/"

# Written before an entity's own ID is known, replaced once after insert
PENDING_PATH = "__pending__"


def validate_segment(entity_id: str) -> str:
    if not entity_id:
        raise ValidationError("Entity ID is required to build a hierarchy path")
    if SEPARATOR in entity_id:
        raise ValidationError(
            f"Entity ID {entity_id!r} must not contain {SEPARATOR!r}",
            errors=[entity_id],
        )
    return entity_id


@dataclass(frozen=True)
class HierarchyPath:
    """Validated materialized path."""
    value: str

    def __post_init__(self):
        if not self.value or self.value == PENDING_PATH:
            raise ValidationError("Hierarchy path is empty or still pending")
        if any(segment == "" for segment in self.value.split(SEPARATOR)):
            raise ValidationError(
                f"Hierarchy path {self.value!r} contains an empty segment",
                errors=[self.value],
            )

    @classmethod
    def root_of(cls, entity_id: str) -> "HierarchyPath":
        return cls(validate_segment(entity_id))

    def child(self, entity_id: str) -> "HierarchyPath":
        return HierarchyPath(f"{self.value}{SEPARATOR}{validate_segment(entity_id)}")

    @property
    def segments(self) -> tuple[str, ...]:
        return tuple(self.value.split(SEPARATOR))

    @property
    def depth(self) -> int:
        """Ordinal depth; a union path has depth 0."""
        return len(self.segments) - 1

    @property
    def entity_id(self) -> str:
        return self.segments[-1]

    @property
    def root(self) -> str:
        return self.segments[0]

    @property
    def parent(self) -> "HierarchyPath | None":
        if self.depth == 0:
            return None
        return HierarchyPath(SEPARATOR.join(self.segments[:-1]))

    @property
    def descendant_prefix(self) -> str:
        """Prefix shared by every strict descendant."""
        return self.value + SEPARATOR

    def is_ancestor_of(self, other: "HierarchyPath | str") -> bool:
        """True if other is this path or lies beneath it."""
        return is_ancestor_of(self.value, str(other))

    def __str__(self) -> str:
        return self.value


def build(parent_path: "HierarchyPath | str | None", own_id: str) -> str:
    """Build the path of an entity from its parent's path and its own ID."""
    if parent_path is None or parent_path == "":
        return str(HierarchyPath.root_of(own_id))
    if not isinstance(parent_path, HierarchyPath):
        parent_path = HierarchyPath(parent_path)
    return str(parent_path.child(own_id))


def is_ancestor_of(candidate_path: str | None, target_path: str | None) -> bool:
    """
    Self counts as its own ancestor so that exact-entity checks pass.
    Missing or pending paths are never ancestors of anything.
    """
    if not candidate_path or not target_path:
        return False
    if PENDING_PATH in (candidate_path, target_path):
        return False
    return target_path == candidate_path or target_path.startswith(candidate_path + SEPARATOR)


def is_valid_path(value: str | None) -> bool:
    try:
        HierarchyPath(value or "")
    except ValidationError:
        return False
    return True
