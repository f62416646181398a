"""
Bowlise

In-memory caching facade for access-control backends.

Answers "does subject S have role/permission P on target T" while keeping
calls to the underlying store to a minimum.

Provides:
- A cache facade that is a drop-in replacement for any backend
- Partial-result bulk caching, including per-target errors
- Reference backends (in-memory, SQLite)

Usage:

    >>> from bowlise import Bowlise, SubjectHasRoleParams
    >>> from bowlise.backends import SQLiteBackend, SQLiteConfig
    >>> backend = SQLiteBackend(SQLiteConfig(db_path="access.db"))
    >>> async with Bowlise(backend) as access:
    ...     allowed = await access.subject_has_role(
    ...         SubjectHasRoleParams(subject_id="user-1", target_id="doc-9", role_handle="editor")
    ...     )

Configuration:

    # From environment variables (BOWLISE_BACKEND, BOWLISE_SQLITE_PATH, ...)
    access = await Bowlise.create()

    # From a YAML settings file
    access = await Bowlise.create(BowliseConfig.from_file("settings.yaml"))
"""

# Backend abstraction
from .backends import AccessControlBackend, InMemoryBackend, SQLiteBackend, SQLiteConfig

# Cache
from .cache import SubjectTargetCache
from .config import BowliseConfig

# Exceptions
from .exceptions import (
    AccessControlExistsError,
    AccessControlNotFoundError,
    BackendConnectionError,
    BackendIOError,
    BowliseError,
    BulkResultMissingError,
    RoleNotFoundError,
    ValidationError,
)
from .facade import Bowlise

# Logging
from .logging_utils import configure_structured_logging, get_bowlise_logger

# Types
from .types import (
    AccessControl,
    BulkCheckResult,
    BulkPermissionResult,
    BulkRoleResult,
    BulkSubjectHasPermissionParams,
    BulkSubjectHasRoleParams,
    BulkSubjectTargetParams,
    CreateAccessControlParams,
    DeleteAccessControlParams,
    Permission,
    Role,
    SubjectHasPermissionParams,
    SubjectHasRoleParams,
    SubjectTargetParams,
    TargetType,
    UpdateAccessControlParams,
)

__all__ = [
    # Facade
    "Bowlise",
    "BowliseConfig",
    "SubjectTargetCache",
    # Backends
    "AccessControlBackend",
    "InMemoryBackend",
    "SQLiteBackend",
    "SQLiteConfig",
    # Types
    "AccessControl",
    "Permission",
    "Role",
    "TargetType",
    "SubjectTargetParams",
    "SubjectHasRoleParams",
    "SubjectHasPermissionParams",
    "BulkSubjectTargetParams",
    "BulkSubjectHasRoleParams",
    "BulkSubjectHasPermissionParams",
    "CreateAccessControlParams",
    "UpdateAccessControlParams",
    "DeleteAccessControlParams",
    "BulkRoleResult",
    "BulkPermissionResult",
    "BulkCheckResult",
    # Exceptions
    "BowliseError",
    "ValidationError",
    "AccessControlNotFoundError",
    "AccessControlExistsError",
    "RoleNotFoundError",
    "BulkResultMissingError",
    "BackendConnectionError",
    "BackendIOError",
    # Logging
    "configure_structured_logging",
    "get_bowlise_logger",
]

__version__ = "0.1.0"
