"""
Hierarchy-related dependency injection functions.
"""
from typing import Annotated
from fastapi import Depends

from acs_auth.features.authorization.dependencies import get_hierarchy_repository
from acs_auth.features.hierarchy.integrity import IntegrityGuard
from acs_auth.features.hierarchy.repository import HierarchyRepository


def get_integrity_guard(
    hierarchy: Annotated[HierarchyRepository, Depends(get_hierarchy_repository)]
) -> IntegrityGuard:
    return IntegrityGuard(hierarchy)
