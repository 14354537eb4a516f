"""Pytest configuration and fixtures for acs_auth tests."""

import pytest
import pytest_asyncio
from types import SimpleNamespace
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from acs_auth.core.database.engine import init_db
from acs_auth.features.authorization.resolver import AuthorizationResolver
from acs_auth.features.hierarchy.integrity import IntegrityGuard
from acs_auth.features.hierarchy.models import EntityKind
from acs_auth.features.hierarchy.repository import HierarchyRepository
from acs_auth.features.permissions.catalog import RoleCatalog
from acs_auth.features.users.assignments import AssignmentIndex
from acs_auth.features.users.models import User


@pytest_asyncio.fixture
async def engine():
    """In-memory SQLite database shared by every session of one test."""
    test_engine = create_async_engine("sqlite+aiosqlite://", poolclass=StaticPool)
    await init_db(bind=test_engine)
    yield test_engine
    await test_engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest_asyncio.fixture
async def session(session_factory):
    async with session_factory() as db:
        yield db


@pytest_asyncio.fixture
async def catalog(session):
    """Role catalog with the system roles seeded."""
    role_catalog = RoleCatalog(session)
    await role_catalog.create_system_roles()
    await session.commit()
    return role_catalog


@pytest.fixture
def registry(catalog):
    """Permission registry seeded along with the system roles."""
    return catalog.registry


@pytest_asyncio.fixture
async def roles(catalog):
    """System roles by name."""
    return {role.name: role for role in await catalog.list_roles()}


@pytest.fixture
def hierarchy(session):
    return HierarchyRepository(session)


@pytest.fixture
def index(session, hierarchy, catalog):
    return AssignmentIndex(session, hierarchy=hierarchy, roles=catalog)


@pytest.fixture
def resolver(index):
    return AuthorizationResolver(index)


@pytest.fixture
def guard(hierarchy):
    return IntegrityGuard(hierarchy)


@pytest_asyncio.fixture
async def tree(session, hierarchy):
    """
    U1
    ├── C1
    │   └── Ch1
    │       ├── T1 (acs)
    │       │   └── S1
    │       └── T1b (acs)
    └── C2
        └── Ch2
            └── T2 (acs)
    """
    u1 = await hierarchy.create(EntityKind.UNION, "North Union")
    c1 = await hierarchy.create(EntityKind.CONFERENCE, "East Conference", parent_id=u1.id)
    c2 = await hierarchy.create(EntityKind.CONFERENCE, "West Conference", parent_id=u1.id)
    ch1 = await hierarchy.create(EntityKind.CHURCH, "Central Church", parent_id=c1.id)
    ch2 = await hierarchy.create(EntityKind.CHURCH, "Harbor Church", parent_id=c2.id)
    t1 = await hierarchy.create(EntityKind.TEAM, "Central ACS", parent_id=ch1.id)
    t1b = await hierarchy.create(EntityKind.TEAM, "Central Youth ACS", parent_id=ch1.id)
    t2 = await hierarchy.create(EntityKind.TEAM, "Harbor ACS", parent_id=ch2.id)
    s1 = await hierarchy.create(EntityKind.SERVICE, "Food Bank", parent_id=t1.id)
    await session.commit()
    return SimpleNamespace(u1=u1, c1=c1, c2=c2, ch1=ch1, ch2=ch2, t1=t1, t1b=t1b, t2=t2, s1=s1)


@pytest.fixture
def make_user(session):
    """Factory for users with empty, already-loaded collections."""
    counter = {"n": 0}

    async def _make(name: str = "member", **fields) -> User:
        counter["n"] += 1
        user = User(
            email=f"{name}{counter['n']}@example.org",
            name=name,
            assignments=[],
            team_memberships=[],
            **fields,
        )
        session.add(user)
        await session.flush()
        return user

    return _make
