"""
Core data types for access control.

Roles, permissions and access control records as returned by backends,
plus the parameter objects every backend operation accepts.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any

# A target type is a free-form tag, e.g. "project" or "document".
TargetType = str


def _parse_datetime(value: Any) -> datetime | None:
    if value is None or value == "":
        return None
    return datetime.fromisoformat(value) if isinstance(value, str) else value


# =============================================================================
# Entities
# =============================================================================


@dataclass(frozen=True)
class Permission:
    """A specific action that can be performed on a kind of target."""

    handle: str
    target_type: TargetType
    enabled: bool = True
    name: str | None = None
    description: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "handle": self.handle,
            "name": self.name,
            "description": self.description,
            "enabled": self.enabled,
            "target_type": self.target_type,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Permission:
        """Create from dictionary."""
        return cls(
            handle=data["handle"],
            target_type=data.get("target_type", ""),
            enabled=bool(data.get("enabled", True)),
            name=data.get("name"),
            description=data.get("description"),
        )


@dataclass(frozen=True)
class Role:
    """A named set of permissions that can be assigned to a subject."""

    handle: str
    enabled: bool = True
    name: str | None = None
    description: str | None = None
    permissions: tuple[Permission, ...] = ()

    def has_permission(self, permission_handle: str) -> bool:
        return any(p.handle == permission_handle for p in self.permissions)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "handle": self.handle,
            "name": self.name,
            "description": self.description,
            "enabled": self.enabled,
            "permissions": [p.to_dict() for p in self.permissions],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Role:
        """Create from dictionary."""
        return cls(
            handle=data["handle"],
            enabled=bool(data.get("enabled", True)),
            name=data.get("name"),
            description=data.get("description"),
            permissions=tuple(Permission.from_dict(p) for p in data.get("permissions", [])),
        )


@dataclass
class AccessControl:
    """Relationship record: a subject holds a role on a target."""

    subject_id: str
    target_id: str
    target_type: TargetType
    role_handle: str
    created_at: datetime
    updated_at: datetime
    is_deleted: bool = False
    deleted_at: datetime | None = None

    @property
    def key(self) -> tuple[str, str]:
        """Composite (subject_id, target_id) key."""
        return (self.subject_id, self.target_id)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "subject_id": self.subject_id,
            "target_id": self.target_id,
            "target_type": self.target_type,
            "role_handle": self.role_handle,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
            "is_deleted": self.is_deleted,
            "deleted_at": self.deleted_at.isoformat() if self.deleted_at else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AccessControl:
        """Create from dictionary."""
        return cls(
            subject_id=data["subject_id"],
            target_id=data["target_id"],
            target_type=data.get("target_type", ""),
            role_handle=data["role_handle"],
            created_at=_parse_datetime(data["created_at"]),
            updated_at=_parse_datetime(data["updated_at"]),
            is_deleted=bool(data.get("is_deleted", False)),
            deleted_at=_parse_datetime(data.get("deleted_at")),
        )


# =============================================================================
# Operation Parameters
# =============================================================================


@dataclass(frozen=True)
class SubjectTargetParams:
    """Identifies a subject and a single target."""

    subject_id: str
    target_id: str


@dataclass(frozen=True)
class SubjectHasRoleParams(SubjectTargetParams):
    role_handle: str


@dataclass(frozen=True)
class SubjectHasPermissionParams(SubjectTargetParams):
    permission_handle: str


@dataclass(frozen=True)
class BulkSubjectTargetParams:
    """Identifies a subject and several targets."""

    subject_id: str
    target_ids: list[str]


@dataclass(frozen=True)
class BulkSubjectHasRoleParams(BulkSubjectTargetParams):
    role_handle: str


@dataclass(frozen=True)
class BulkSubjectHasPermissionParams(BulkSubjectTargetParams):
    permission_handle: str


@dataclass(frozen=True)
class CreateAccessControlParams:
    subject_id: str
    target_id: str
    target_type: TargetType
    role_handle: str


@dataclass(frozen=True)
class UpdateAccessControlParams:
    subject_id: str
    target_id: str
    role_handle: str


@dataclass(frozen=True)
class DeleteAccessControlParams:
    subject_id: str
    target_id: str
    soft_delete: bool = False


# =============================================================================
# Bulk Results
# =============================================================================

# Maps each target id to its list, or to the exception raised for that target.
BulkRoleResult = dict[str, list[Role] | Exception]
BulkPermissionResult = dict[str, list[Permission] | Exception]

# Maps each target id to a membership answer, or to the exception for that target.
BulkCheckResult = dict[str, bool | Exception]
