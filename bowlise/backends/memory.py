"""
In-memory access-control backend.

Dict-backed implementation of the backend contract. Useful for tests,
local development, and as a reference for adapter authors.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import UTC, datetime

from ..exceptions import (
    AccessControlExistsError,
    AccessControlNotFoundError,
    BowliseError,
    RoleNotFoundError,
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


class InMemoryBackend(AccessControlBackend):
    """
    In-memory backend.

    Holds at most one access control per (subject, target) pair. Soft-deleted
    records are kept but ignored by every lookup.
    """

    def __init__(
        self, roles: list[Role] | None = None, permissions: list[Permission] | None = None
    ):
        self._roles: dict[str, Role] = {}
        self._permissions: dict[str, Permission] = {}
        self._access_controls: dict[tuple[str, str], AccessControl] = {}

        for permission in permissions or []:
            self.add_permission(permission)
        for role in roles or []:
            self.add_role(role)

    def add_role(self, role: Role) -> None:
        """Register a role and any of its permissions not yet known."""
        self._roles[role.handle] = role
        for permission in role.permissions:
            self._permissions.setdefault(permission.handle, permission)

    def add_permission(self, permission: Permission) -> None:
        self._permissions[permission.handle] = permission

    def _active(self, subject_id: str, target_id: str) -> AccessControl | None:
        record = self._access_controls.get((subject_id, target_id))
        if record is None or record.is_deleted:
            return None
        return record

    def _role(self, role_handle: str) -> Role:
        role = self._roles.get(role_handle)
        if role is None:
            raise RoleNotFoundError(role_handle)
        return role

    # =========================================================================
    # Catalogue Operations
    # =========================================================================

    async def list_all_roles(self) -> list[Role]:
        return list(self._roles.values())

    async def list_all_permissions(self) -> list[Permission]:
        return list(self._permissions.values())

    # =========================================================================
    # Access Control Records
    # =========================================================================

    async def create_access_control(self, params: CreateAccessControlParams) -> AccessControl:
        validate_ids(params.subject_id, params.target_id)
        if self._active(params.subject_id, params.target_id) is not None:
            raise AccessControlExistsError(params.subject_id, params.target_id)
        self._role(params.role_handle)

        now = datetime.now(UTC)
        record = AccessControl(
            subject_id=params.subject_id,
            target_id=params.target_id,
            target_type=params.target_type,
            role_handle=params.role_handle,
            created_at=now,
            updated_at=now,
        )
        self._access_controls[record.key] = record
        logger.debug(f"Created access control {record.key} with role {record.role_handle}")
        return replace(record)

    async def update_access_control(self, params: UpdateAccessControlParams) -> AccessControl:
        validate_ids(params.subject_id, params.target_id)
        record = self._active(params.subject_id, params.target_id)
        if record is None:
            raise AccessControlNotFoundError(params.subject_id, params.target_id)
        self._role(params.role_handle)

        updated = replace(record, role_handle=params.role_handle, updated_at=datetime.now(UTC))
        self._access_controls[updated.key] = updated
        return replace(updated)

    async def delete_access_control(self, params: DeleteAccessControlParams) -> bool:
        validate_ids(params.subject_id, params.target_id)
        record = self._active(params.subject_id, params.target_id)
        if record is None:
            return False

        if params.soft_delete:
            now = datetime.now(UTC)
            record.is_deleted = True
            record.deleted_at = now
            record.updated_at = now
        else:
            del self._access_controls[record.key]
        return True

    # =========================================================================
    # Single-Target Lookups
    # =========================================================================

    async def list_roles_for_subject(self, params: SubjectTargetParams) -> list[Role]:
        validate_ids(params.subject_id, params.target_id)
        record = self._active(params.subject_id, params.target_id)
        if record is None:
            return []
        return [self._role(record.role_handle)]

    async def list_permissions_for_subject(self, params: SubjectTargetParams) -> list[Permission]:
        roles = await self.list_roles_for_subject(params)
        return [permission for role in roles for permission in role.permissions]

    async def subject_has_role(self, params: SubjectHasRoleParams) -> bool:
        roles = await self.list_roles_for_subject(params)
        return any(role.handle == params.role_handle for role in roles)

    async def subject_has_permission(self, params: SubjectHasPermissionParams) -> bool:
        roles = await self.list_roles_for_subject(params)
        return any(role.has_permission(params.permission_handle) for role in roles)

    # =========================================================================
    # Bulk Lookups
    # =========================================================================

    async def bulk_list_roles_for_subject(self, params: BulkSubjectTargetParams) -> BulkRoleResult:
        result: BulkRoleResult = {}
        for target_id in params.target_ids:
            try:
                result[target_id] = await self.list_roles_for_subject(
                    SubjectTargetParams(params.subject_id, target_id)
                )
            except BowliseError as e:
                result[target_id] = e
        return result

    async def bulk_list_permissions_for_subject(
        self, params: BulkSubjectTargetParams
    ) -> BulkPermissionResult:
        result: BulkPermissionResult = {}
        for target_id in params.target_ids:
            try:
                result[target_id] = await self.list_permissions_for_subject(
                    SubjectTargetParams(params.subject_id, target_id)
                )
            except BowliseError as e:
                result[target_id] = e
        return result

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
