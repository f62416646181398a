"""
Shared test configuration and fixtures.

Provides sample roles and permissions, a call-recording mock backend for
facade tests, and real in-memory and SQLite backends.
"""

from unittest.mock import MagicMock

import pytest

from bowlise import Bowlise, BowliseConfig
from bowlise.backends import AccessControlBackend, InMemoryBackend, SQLiteBackend, SQLiteConfig
from bowlise.types import Permission, Role

READ = Permission(handle="doc.read", name="Read", target_type="document")
WRITE = Permission(handle="doc.write", name="Write", target_type="document")
SUPER_ADMIN = Permission(
    handle="bowlise-super-admin",
    name="super admin",
    description="super admin role",
    target_type="subject",
)

VIEWER = Role(handle="viewer", name="Viewer", permissions=(READ,))
EDITOR = Role(handle="editor", name="Editor", permissions=(READ, WRITE))
ADMIN = Role(
    handle="admin",
    name="Admin",
    description="Admin role",
    permissions=(SUPER_ADMIN,),
)

ALL_ROLES = [ADMIN, EDITOR, VIEWER]


def make_mock_backend() -> MagicMock:
    """
    Mock backend spec'd on the contract.

    Every contract coroutine becomes an AsyncMock, so tests can set
    return values and assert how often the facade reached the backend.
    """
    return MagicMock(spec=AccessControlBackend)


@pytest.fixture
def mock_backend() -> MagicMock:
    return make_mock_backend()


@pytest.fixture
def facade(mock_backend) -> Bowlise:
    """Facade over the mock backend with default settings."""
    return Bowlise(mock_backend)


@pytest.fixture
def memory_backend() -> InMemoryBackend:
    """In-memory backend seeded with the sample roles."""
    return InMemoryBackend(roles=ALL_ROLES)


@pytest.fixture
async def sqlite_backend():
    """
    Fixture providing initialized SQLite backend seeded with the sample roles.

    Uses real SQLite (in-memory) for accurate testing.
    """
    backend = await SQLiteBackend.create(SQLiteConfig(db_path=":memory:"))
    for role in ALL_ROLES:
        await backend.upsert_role(role)
    yield backend
    await backend.close()


@pytest.fixture(params=["memory", "sqlite"])
async def any_backend(request, memory_backend):
    """Each reference backend in turn."""
    if request.param == "memory":
        yield memory_backend
        return

    backend = await SQLiteBackend.create(SQLiteConfig(db_path=":memory:"))
    for role in ALL_ROLES:
        await backend.upsert_role(role)
    yield backend
    await backend.close()


@pytest.fixture
async def live_facade(any_backend):
    """Facade over a real backend; the backend is closed by its own fixture."""
    facade = Bowlise(any_backend, BowliseConfig(close_backend=False))
    yield facade
    await facade.close()
