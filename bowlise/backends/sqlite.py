"""
SQLite access-control backend.

Stores roles, permissions and access control records in a single SQLite
database through aiosqlite. Ideal for embedded applications and testing.
"""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import AsyncIterator, Iterable
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import aiosqlite

from ..exceptions import (
    AccessControlExistsError,
    AccessControlNotFoundError,
    BackendConnectionError,
    BackendIOError,
    RoleNotFoundError,
    ValidationError,
)
from ..types import (
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
    UpdateAccessControlParams,
)
from .base import AccessControlBackend, validate_ids

logger = logging.getLogger(__name__)


# =============================================================================
# Column Definitions
# =============================================================================

ACCESS_CONTROL_READ_COLUMNS = (
    "subject_id",
    "target_id",
    "target_type",
    "role_handle",
    "created_at",
    "updated_at",
    "is_deleted",
    "deleted_at",
)

_SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS permissions (
    handle TEXT NOT NULL PRIMARY KEY,
    name TEXT,
    description TEXT,
    enabled INTEGER NOT NULL DEFAULT 1,
    target_type TEXT NOT NULL DEFAULT ''
);

CREATE TABLE IF NOT EXISTS roles (
    handle TEXT NOT NULL PRIMARY KEY,
    name TEXT,
    description TEXT,
    enabled INTEGER NOT NULL DEFAULT 1
);

CREATE TABLE IF NOT EXISTS role_permissions (
    role_handle TEXT NOT NULL REFERENCES roles (handle) ON DELETE CASCADE,
    permission_handle TEXT NOT NULL REFERENCES permissions (handle) ON DELETE CASCADE,
    position INTEGER NOT NULL DEFAULT 0,
    PRIMARY KEY (role_handle, permission_handle)
);

CREATE TABLE IF NOT EXISTS access_controls (
    subject_id TEXT NOT NULL,
    target_id TEXT NOT NULL,
    target_type TEXT NOT NULL DEFAULT '',
    role_handle TEXT NOT NULL REFERENCES roles (handle),
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    is_deleted INTEGER NOT NULL DEFAULT 0,
    deleted_at TEXT,
    PRIMARY KEY (subject_id, target_id)
);

CREATE INDEX IF NOT EXISTS idx_access_controls_role ON access_controls (role_handle);
"""


_UPSERT_PERMISSION_SQL = """
INSERT INTO permissions (handle, name, description, enabled, target_type)
VALUES (?, ?, ?, ?, ?)
ON CONFLICT (handle) DO UPDATE SET
    name = excluded.name,
    description = excluded.description,
    enabled = excluded.enabled,
    target_type = excluded.target_type
"""


def _placeholders(count: int) -> str:
    return ", ".join("?" for _ in range(count))


@dataclass
class SQLiteConfig:
    """Configuration for SQLite storage."""

    db_path: str | Path = ":memory:"

    @classmethod
    def from_env(cls) -> SQLiteConfig:
        """Create config from environment variables."""
        return cls(db_path=os.environ.get("BOWLISE_SQLITE_PATH", ":memory:"))


class SQLiteBackend(AccessControlBackend):
    """
    SQLite access-control backend.

    Features:
    - Single file database (or in-memory)
    - Role permissions kept in declaration order
    - Soft-deleted records stay in the table and are ignored by lookups
    """

    def __init__(self, config: SQLiteConfig):
        """
        Initialize SQLite backend.

        Args:
            config: SQLite configuration
        """
        self.config = config
        self.conn: aiosqlite.Connection | None = None
        self._initialized = False
        # One write transaction at a time on the shared connection
        self._write_lock = asyncio.Lock()

    @classmethod
    async def create(cls, config: SQLiteConfig | None = None) -> SQLiteBackend:
        """Create and initialize SQLite backend."""
        if config is None:
            config = SQLiteConfig.from_env()

        backend = cls(config)
        await backend.initialize()
        return backend

    async def initialize(self) -> None:
        """Initialize SQLite connection and schema."""
        if self._initialized:
            return

        try:
            self.conn = await aiosqlite.connect(str(self.config.db_path))
            self.conn.row_factory = aiosqlite.Row
            await self.conn.execute("PRAGMA foreign_keys = ON")
            await self.conn.executescript(_SCHEMA_SQL)
            await self.conn.commit()
        except aiosqlite.Error as e:
            raise BackendConnectionError(str(self.config.db_path), e) from e

        self._initialized = True
        logger.info(f"SQLite backend initialized: {self.config.db_path}")

    async def close(self) -> None:
        """Close SQLite connection."""
        if self.conn:
            await self.conn.close()
            self.conn = None

        self._initialized = False

    # =========================================================================
    # Query Helpers
    # =========================================================================

    def _require_conn(self) -> aiosqlite.Connection:
        if self.conn is None:
            raise BackendConnectionError(str(self.config.db_path))
        return self.conn

    async def _fetchall(self, operation: str, sql: str, params: Iterable[Any] = ()) -> list[Any]:
        conn = self._require_conn()
        try:
            async with conn.execute(sql, tuple(params)) as cursor:
                return list(await cursor.fetchall())
        except aiosqlite.Error as e:
            raise BackendIOError(operation, e) from e

    @asynccontextmanager
    async def _transaction(self, operation: str) -> AsyncIterator[aiosqlite.Connection]:
        """Run the enclosed statements as one transaction; any failure rolls all back."""
        conn = self._require_conn()
        async with self._write_lock:
            try:
                await conn.execute("BEGIN TRANSACTION")
                yield conn
                await conn.commit()
            except aiosqlite.Error as e:
                await conn.rollback()
                raise BackendIOError(operation, e) from e
            except Exception:
                await conn.rollback()
                raise

    async def _execute(self, operation: str, sql: str, params: Iterable[Any] = ()) -> int:
        """Execute one write statement in its own transaction; return the affected row count."""
        async with self._transaction(operation) as conn:
            cursor = await conn.execute(sql, tuple(params))
        return cursor.rowcount

    @staticmethod
    def _row_to_permission(row: Any) -> Permission:
        return Permission(
            handle=row["handle"],
            target_type=row["target_type"],
            enabled=bool(row["enabled"]),
            name=row["name"],
            description=row["description"],
        )

    @staticmethod
    def _row_to_access_control(row: Any) -> AccessControl:
        return AccessControl.from_dict({key: row[key] for key in ACCESS_CONTROL_READ_COLUMNS})

    async def _load_roles(self, handles: list[str] | None = None) -> dict[str, Role]:
        """Load roles with their permissions, optionally limited to some handles."""
        if handles is not None and not handles:
            return {}

        role_filter = ""
        permission_filter = ""
        args: list[str] = []
        if handles is not None:
            marks = _placeholders(len(handles))
            role_filter = f"WHERE handle IN ({marks})"
            permission_filter = f"WHERE rp.role_handle IN ({marks})"
            args = list(handles)

        role_rows = await self._fetchall(
            "load_roles",
            f"SELECT handle, name, description, enabled FROM roles {role_filter} ORDER BY handle",
            args,
        )
        permission_rows = await self._fetchall(
            "load_role_permissions",
            f"""
            SELECT rp.role_handle, p.handle, p.name, p.description, p.enabled, p.target_type
            FROM role_permissions rp
            INNER JOIN permissions p ON p.handle = rp.permission_handle
            {permission_filter}
            ORDER BY rp.role_handle, rp.position
            """,
            args,
        )

        permissions_by_role: dict[str, list[Permission]] = {}
        for row in permission_rows:
            permissions_by_role.setdefault(row["role_handle"], []).append(
                self._row_to_permission(row)
            )

        return {
            row["handle"]: Role(
                handle=row["handle"],
                enabled=bool(row["enabled"]),
                name=row["name"],
                description=row["description"],
                permissions=tuple(permissions_by_role.get(row["handle"], [])),
            )
            for row in role_rows
        }

    async def _get_record(self, subject_id: str, target_id: str) -> AccessControl | None:
        rows = await self._fetchall(
            "get_access_control",
            f"SELECT {', '.join(ACCESS_CONTROL_READ_COLUMNS)} FROM access_controls "
            "WHERE subject_id = ? AND target_id = ?",
            (subject_id, target_id),
        )
        return self._row_to_access_control(rows[0]) if rows else None

    async def _require_role(self, role_handle: str) -> None:
        rows = await self._fetchall(
            "get_role", "SELECT 1 FROM roles WHERE handle = ?", (role_handle,)
        )
        if not rows:
            raise RoleNotFoundError(role_handle)

    # =========================================================================
    # Catalogue Management
    # =========================================================================

    @staticmethod
    def _permission_values(permission: Permission) -> tuple[Any, ...]:
        return (
            permission.handle,
            permission.name,
            permission.description,
            int(permission.enabled),
            permission.target_type,
        )

    async def upsert_permission(self, permission: Permission) -> None:
        """Insert or replace a permission."""
        await self._execute(
            "upsert_permission", _UPSERT_PERMISSION_SQL, self._permission_values(permission)
        )

    async def upsert_role(self, role: Role) -> None:
        """Insert or replace a role together with its ordered permissions, atomically."""
        async with self._transaction("upsert_role") as conn:
            for permission in role.permissions:
                await conn.execute(_UPSERT_PERMISSION_SQL, self._permission_values(permission))

            await conn.execute(
                """
                INSERT INTO roles (handle, name, description, enabled)
                VALUES (?, ?, ?, ?)
                ON CONFLICT (handle) DO UPDATE SET
                    name = excluded.name,
                    description = excluded.description,
                    enabled = excluded.enabled
                """,
                (role.handle, role.name, role.description, int(role.enabled)),
            )
            await conn.execute("DELETE FROM role_permissions WHERE role_handle = ?", (role.handle,))
            for position, permission in enumerate(role.permissions):
                await conn.execute(
                    "INSERT INTO role_permissions (role_handle, permission_handle, position) "
                    "VALUES (?, ?, ?)",
                    (role.handle, permission.handle, position),
                )

    async def list_all_roles(self) -> list[Role]:
        return list((await self._load_roles()).values())

    async def list_all_permissions(self) -> list[Permission]:
        rows = await self._fetchall(
            "list_all_permissions",
            "SELECT handle, name, description, enabled, target_type FROM permissions "
            "ORDER BY handle",
        )
        return [self._row_to_permission(row) for row in rows]

    # =========================================================================
    # Access Control Records
    # =========================================================================

    async def create_access_control(self, params: CreateAccessControlParams) -> AccessControl:
        validate_ids(params.subject_id, params.target_id)

        existing = await self._get_record(params.subject_id, params.target_id)
        if existing is not None and not existing.is_deleted:
            raise AccessControlExistsError(params.subject_id, params.target_id)
        await self._require_role(params.role_handle)

        now = datetime.now(UTC)
        record = AccessControl(
            subject_id=params.subject_id,
            target_id=params.target_id,
            target_type=params.target_type,
            role_handle=params.role_handle,
            created_at=now,
            updated_at=now,
        )
        async with self._transaction("create_access_control") as conn:
            if existing is not None:
                # Soft-deleted row still holds the primary key
                await conn.execute(
                    "DELETE FROM access_controls WHERE subject_id = ? AND target_id = ?",
                    (params.subject_id, params.target_id),
                )
            await conn.execute(
                """
                INSERT INTO access_controls
                    (subject_id, target_id, target_type, role_handle, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    record.subject_id,
                    record.target_id,
                    record.target_type,
                    record.role_handle,
                    record.created_at.isoformat(),
                    record.updated_at.isoformat(),
                ),
            )
        return record

    async def update_access_control(self, params: UpdateAccessControlParams) -> AccessControl:
        validate_ids(params.subject_id, params.target_id)
        await self._require_role(params.role_handle)

        updated = await self._execute(
            "update_access_control",
            """
            UPDATE access_controls SET role_handle = ?, updated_at = ?
            WHERE subject_id = ? AND target_id = ? AND is_deleted = 0
            """,
            (
                params.role_handle,
                datetime.now(UTC).isoformat(),
                params.subject_id,
                params.target_id,
            ),
        )
        if updated == 0:
            raise AccessControlNotFoundError(params.subject_id, params.target_id)

        record = await self._get_record(params.subject_id, params.target_id)
        if record is None:
            raise AccessControlNotFoundError(params.subject_id, params.target_id)
        return record

    async def delete_access_control(self, params: DeleteAccessControlParams) -> bool:
        validate_ids(params.subject_id, params.target_id)

        if params.soft_delete:
            now = datetime.now(UTC).isoformat()
            deleted = await self._execute(
                "soft_delete_access_control",
                """
                UPDATE access_controls SET is_deleted = 1, deleted_at = ?, updated_at = ?
                WHERE subject_id = ? AND target_id = ? AND is_deleted = 0
                """,
                (now, now, params.subject_id, params.target_id),
            )
        else:
            deleted = await self._execute(
                "delete_access_control",
                "DELETE FROM access_controls "
                "WHERE subject_id = ? AND target_id = ? AND is_deleted = 0",
                (params.subject_id, params.target_id),
            )
        return deleted > 0

    # =========================================================================
    # Lookups
    # =========================================================================

    async def _roles_by_target(self, subject_id: str, target_ids: list[str]) -> BulkRoleResult:
        """Active roles per target, with an entry (possibly empty) for every target."""
        result: BulkRoleResult = {target_id: [] for target_id in target_ids}
        if not target_ids:
            return result

        rows = await self._fetchall(
            "list_roles_for_subject",
            f"""
            SELECT target_id, role_handle FROM access_controls
            WHERE subject_id = ? AND is_deleted = 0
              AND target_id IN ({_placeholders(len(target_ids))})
            """,
            [subject_id, *target_ids],
        )
        roles = await self._load_roles(sorted({row["role_handle"] for row in rows}))

        for row in rows:
            role = roles.get(row["role_handle"])
            if role is None:
                result[row["target_id"]] = RoleNotFoundError(row["role_handle"])
            else:
                result[row["target_id"]].append(role)
        return result

    async def list_roles_for_subject(self, params: SubjectTargetParams) -> list[Role]:
        validate_ids(params.subject_id, params.target_id)
        roles = (await self._roles_by_target(params.subject_id, [params.target_id]))[
            params.target_id
        ]
        if isinstance(roles, Exception):
            raise roles
        return roles

    async def list_permissions_for_subject(self, params: SubjectTargetParams) -> list[Permission]:
        roles = await self.list_roles_for_subject(params)
        return [permission for role in roles for permission in role.permissions]

    async def subject_has_role(self, params: SubjectHasRoleParams) -> bool:
        validate_ids(params.subject_id, params.target_id)
        rows = await self._fetchall(
            "subject_has_role",
            """
            SELECT 1 FROM access_controls
            WHERE subject_id = ? AND target_id = ? AND role_handle = ? AND is_deleted = 0
            """,
            (params.subject_id, params.target_id, params.role_handle),
        )
        return bool(rows)

    async def subject_has_permission(self, params: SubjectHasPermissionParams) -> bool:
        validate_ids(params.subject_id, params.target_id)
        rows = await self._fetchall(
            "subject_has_permission",
            """
            SELECT 1 FROM access_controls ac
            INNER JOIN role_permissions rp ON rp.role_handle = ac.role_handle
            WHERE ac.subject_id = ? AND ac.target_id = ? AND ac.is_deleted = 0
              AND rp.permission_handle = ?
            """,
            (params.subject_id, params.target_id, params.permission_handle),
        )
        return bool(rows)

    def _split_valid(
        self, subject_id: str, target_ids: list[str]
    ) -> tuple[list[str], dict[str, Exception]]:
        """Separate targets that pass id validation from those that do not."""
        valid: list[str] = []
        errors: dict[str, Exception] = {}
        for target_id in dict.fromkeys(target_ids):
            try:
                validate_ids(subject_id, target_id)
                valid.append(target_id)
            except ValidationError as e:
                errors[target_id] = e
        return valid, errors

    async def bulk_list_roles_for_subject(self, params: BulkSubjectTargetParams) -> BulkRoleResult:
        valid, errors = self._split_valid(params.subject_id, params.target_ids)
        result = await self._roles_by_target(params.subject_id, valid)
        result.update(errors)
        return result

    async def bulk_list_permissions_for_subject(
        self, params: BulkSubjectTargetParams
    ) -> BulkPermissionResult:
        roles = await self.bulk_list_roles_for_subject(params)
        return {
            target_id: (
                value
                if isinstance(value, Exception)
                else [permission for role in value for permission in role.permissions]
            )
            for target_id, value in roles.items()
        }

    async def bulk_subject_has_role(self, params: BulkSubjectHasRoleParams) -> BulkCheckResult:
        roles = await self.bulk_list_roles_for_subject(params)
        return {
            target_id: (
                value
                if isinstance(value, Exception)
                else any(role.handle == params.role_handle for role in value)
            )
            for target_id, value in roles.items()
        }

    async def bulk_subject_has_permission(
        self, params: BulkSubjectHasPermissionParams
    ) -> BulkCheckResult:
        roles = await self.bulk_list_roles_for_subject(params)
        return {
            target_id: (
                value
                if isinstance(value, Exception)
                else any(role.has_permission(params.permission_handle) for role in value)
            )
            for target_id, value in roles.items()
        }
