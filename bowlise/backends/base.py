"""
Abstract base class for access-control backends.

Every storage engine (in-memory, SQLite, or an external adapter) implements
this interface. The cache facade implements it too, so any caller written
against a backend can be pointed at the facade unchanged.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from ..exceptions import ValidationError
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


def validate_ids(subject_id: str, target_id: str) -> None:
    """Reject empty subject or target ids."""
    if not subject_id:
        raise ValidationError("subject_id", "must not be empty")
    if not target_id:
        raise ValidationError("target_id", "must not be empty")


class AccessControlBackend(ABC):
    """
    Abstract base for all access-control backends.

    Implementations must support:
    - Listing the global role and permission catalogues
    - Creating, updating and deleting access control records
    - Role/permission lookups for one subject on one or many targets

    Bulk operations report per-target failures as exception values inside
    the result mapping instead of raising, so one bad target does not fail
    the whole call.
    """

    async def initialize(self) -> None:
        """Initialize the backend (connections, schema). No-op by default."""

    async def close(self) -> None:
        """Close connections and cleanup resources. No-op by default."""

    async def __aenter__(self) -> AccessControlBackend:
        """Async context manager entry."""
        await self.initialize()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Async context manager exit."""
        await self.close()

    # =========================================================================
    # Catalogue Operations
    # =========================================================================

    @abstractmethod
    async def list_all_roles(self) -> list[Role]:
        """List every role known to the backend."""

    @abstractmethod
    async def list_all_permissions(self) -> list[Permission]:
        """List every permission known to the backend."""

    # =========================================================================
    # Access Control Records
    # =========================================================================

    @abstractmethod
    async def create_access_control(self, params: CreateAccessControlParams) -> AccessControl:
        """
        Create a new access control record.

        Args:
            params: Subject, target, target type and role to assign

        Returns:
            The created record
        """

    @abstractmethod
    async def update_access_control(self, params: UpdateAccessControlParams) -> AccessControl:
        """
        Assign a different role on an existing access control record.

        Returns:
            The updated record
        """

    @abstractmethod
    async def delete_access_control(self, params: DeleteAccessControlParams) -> bool:
        """
        Delete an access control record (soft or hard).

        Returns:
            True if a record was deleted
        """

    # =========================================================================
    # Single-Target Lookups
    # =========================================================================

    @abstractmethod
    async def list_roles_for_subject(self, params: SubjectTargetParams) -> list[Role]:
        """List roles the subject holds on the target."""

    @abstractmethod
    async def list_permissions_for_subject(self, params: SubjectTargetParams) -> list[Permission]:
        """List permissions the subject holds on the target."""

    @abstractmethod
    async def subject_has_role(self, params: SubjectHasRoleParams) -> bool:
        """Check whether the subject holds the role on the target."""

    @abstractmethod
    async def subject_has_permission(self, params: SubjectHasPermissionParams) -> bool:
        """Check whether the subject holds the permission on the target."""

    # =========================================================================
    # Bulk Lookups
    # =========================================================================

    @abstractmethod
    async def bulk_list_roles_for_subject(self, params: BulkSubjectTargetParams) -> BulkRoleResult:
        """
        List roles for one subject across several targets.

        Returns:
            Mapping of target id to roles, or to the exception for that target
        """

    @abstractmethod
    async def bulk_list_permissions_for_subject(
        self, params: BulkSubjectTargetParams
    ) -> BulkPermissionResult:
        """
        List permissions for one subject across several targets.

        Returns:
            Mapping of target id to permissions, or to the exception for that target
        """

    @abstractmethod
    async def bulk_subject_has_role(self, params: BulkSubjectHasRoleParams) -> BulkCheckResult:
        """
        Check one role for one subject across several targets.

        Returns:
            Mapping of target id to bool, or to the exception for that target
        """

    @abstractmethod
    async def bulk_subject_has_permission(
        self, params: BulkSubjectHasPermissionParams
    ) -> BulkCheckResult:
        """
        Check one permission for one subject across several targets.

        Returns:
            Mapping of target id to bool, or to the exception for that target
        """
