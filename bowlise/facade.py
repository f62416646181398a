"""
Caching facade over an access-control backend.

``Bowlise`` implements the backend contract itself, so it can replace any
backend without changes to calling code. Every list-shaped answer is fetched
from the backend at most once per facade lifetime unless a write on the same
(subject, target) pair invalidates it.

A lookup that is still waiting on the backend when a write invalidates its
pair returns the backend's answer to its own caller but does not cache it.

Known limitations:
- The global role and permission lists are cached forever. Changes made in
  the backend after the first load are not seen until ``clear()`` or a new
  facade.
- Concurrent misses on the same key are not coalesced; each reaches the
  backend.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from .backends.base import AccessControlBackend
from .cache import SubjectTargetCache
from .config import BowliseConfig
from .exceptions import BulkResultMissingError
from .logging_utils import get_bowlise_logger
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
    UpdateAccessControlParams,
)

logger = get_bowlise_logger("facade")

E = TypeVar("E", Role, Permission)


def _unwrap(value: list[E] | Exception) -> list[E]:
    """Return a copy of a cached list, or raise the cached exception."""
    if isinstance(value, Exception):
        # Drop frames from earlier raises of the same cached instance
        raise value.with_traceback(None)
    return list(value)


def _context(cache: SubjectTargetCache, subject_id: str, target_id: str | None = None) -> dict:
    """Structured log fields for a cache event."""
    context = {"cache": cache.name, "subject_id": subject_id}
    if target_id is not None:
        context["target_id"] = target_id
    return context


class Bowlise(AccessControlBackend):
    """
    Access-control cache facade.

    Caches are plain dicts owned by the instance: global role and permission
    catalogues keyed by handle, access control records, and role/permission
    lists per (subject, target) pair. Nothing expires; entries go away only
    through writes, ``invalidate()``, ``clear()`` or ``close()``.
    """

    def __init__(self, backend: AccessControlBackend, config: BowliseConfig | None = None):
        """
        Initialize the facade.

        Args:
            backend: Backend every cache miss is delegated to
            config: Facade settings (defaults apply when omitted)
        """
        self.backend = backend
        self.config = config or BowliseConfig()

        self.roles: dict[str, Role] = {}
        self.permissions: dict[str, Permission] = {}
        self._roles_loaded = False
        self._permissions_loaded = False

        self.access_controls: SubjectTargetCache[AccessControl] = SubjectTargetCache(
            "access_controls"
        )
        self.subject_roles: SubjectTargetCache[list[Role] | Exception] = SubjectTargetCache(
            "subject_roles"
        )
        self.subject_permissions: SubjectTargetCache[list[Permission] | Exception] = (
            SubjectTargetCache("subject_permissions")
        )

    @classmethod
    async def create(
        cls,
        config: BowliseConfig | None = None,
        backend: AccessControlBackend | None = None,
    ) -> Bowlise:
        """Create a facade, building the backend from config when not given, and initialize it."""
        if config is None:
            config = BowliseConfig.from_env()
        if backend is None:
            backend = config.create_backend()

        facade = cls(backend, config)
        await facade.initialize()
        return facade

    async def initialize(self) -> None:
        await self.backend.initialize()

    async def close(self) -> None:
        """Drop every cached entry and close the backend if configured to."""
        self.clear()
        if self.config.close_backend:
            await self.backend.close()

    # =========================================================================
    # Cache Management
    # =========================================================================

    def invalidate(self, subject_id: str, target_id: str) -> None:
        """Drop every cached entry for a (subject, target) pair."""
        self.access_controls.invalidate(subject_id, target_id)
        self.subject_roles.invalidate(subject_id, target_id)
        self.subject_permissions.invalidate(subject_id, target_id)
        logger.debug(
            "Invalidated cached entries",
            extra={"cache": "all", "subject_id": subject_id, "target_id": target_id},
        )

    def clear(self) -> None:
        """Drop all cached entries, including the global catalogues."""
        self.roles.clear()
        self.permissions.clear()
        self._roles_loaded = False
        self._permissions_loaded = False
        self.access_controls.clear()
        self.subject_roles.clear()
        self.subject_permissions.clear()

    def cache_stats(self) -> dict[str, dict]:
        """Entry counts for every cache."""
        return {
            "roles": {"size": len(self.roles), "loaded": self._roles_loaded},
            "permissions": {"size": len(self.permissions), "loaded": self._permissions_loaded},
            "access_controls": self.access_controls.stats(),
            "subject_roles": self.subject_roles.stats(),
            "subject_permissions": self.subject_permissions.stats(),
        }

    # =========================================================================
    # Catalogue Operations
    # =========================================================================

    async def list_all_roles(self) -> list[Role]:
        if self._roles_loaded:
            return list(self.roles.values())

        roles = await self.backend.list_all_roles()
        for role in roles:
            self.roles[role.handle] = role
        self._roles_loaded = True
        logger.debug(f"Loaded {len(roles)} roles", extra={"cache": "roles"})

        return list(self.roles.values())

    async def list_all_permissions(self) -> list[Permission]:
        if self._permissions_loaded:
            return list(self.permissions.values())

        permissions = await self.backend.list_all_permissions()
        for permission in permissions:
            self.permissions[permission.handle] = permission
        self._permissions_loaded = True
        logger.debug(f"Loaded {len(permissions)} permissions", extra={"cache": "permissions"})

        return list(self.permissions.values())

    # =========================================================================
    # Access Control Records
    # =========================================================================

    async def create_access_control(self, params: CreateAccessControlParams) -> AccessControl:
        """
        Create an access control, or return the one this facade already cached.

        The first create for a (subject, target) pair wins within a facade's
        lifetime; later creates for the same pair never reach the backend.
        """
        context = _context(self.access_controls, params.subject_id, params.target_id)
        cached = self.access_controls.get(params.subject_id, params.target_id)
        if cached is not None:
            logger.debug("Access control already cached", extra=context)
            return cached

        generation = self.access_controls.generation(params.subject_id, params.target_id)
        access_control = await self.backend.create_access_control(params)

        # A write on the pair while the create was in flight wins over this record
        current = self.access_controls.generation(params.subject_id, params.target_id)
        self.invalidate(params.subject_id, params.target_id)
        if current == generation:
            self.access_controls.put(params.subject_id, params.target_id, access_control)
        return access_control

    async def update_access_control(self, params: UpdateAccessControlParams) -> AccessControl:
        """
        Update an access control.

        Cached entries for the pair are dropped before the backend call, so a
        failed update leaves a cache miss rather than stale data.
        """
        self.invalidate(params.subject_id, params.target_id)
        generation = self.access_controls.generation(params.subject_id, params.target_id)

        access_control = await self.backend.update_access_control(params)

        self.access_controls.put_if_current(
            params.subject_id, params.target_id, access_control, generation
        )
        return access_control

    async def delete_access_control(self, params: DeleteAccessControlParams) -> bool:
        """Delete an access control; cached entries for the pair are dropped first."""
        self.invalidate(params.subject_id, params.target_id)
        return await self.backend.delete_access_control(params)

    # =========================================================================
    # Single-Target Lookups
    # =========================================================================

    async def _cached_list(
        self,
        cache: SubjectTargetCache,
        fetch: Callable[[SubjectTargetParams], Awaitable[list[Any]]],
        params: SubjectTargetParams,
    ) -> list[Any]:
        """
        Serve a list from cache, or fetch and cache it.

        Results (and errors, when cache_errors is set) are stored only if no
        write invalidated the pair while the backend call was in flight.
        """
        context = _context(cache, params.subject_id, params.target_id)
        cached = cache.get(params.subject_id, params.target_id)
        if cached is not None:
            logger.debug("Cache hit", extra=context)
            return _unwrap(cached)

        logger.debug("Cache miss", extra=context)
        generation = cache.generation(params.subject_id, params.target_id)
        try:
            values = list(await fetch(params))
        except Exception as e:
            if self.config.cache_errors and cache.put_if_current(
                params.subject_id, params.target_id, e, generation
            ):
                logger.warning(f"Caching lookup error: {e}", extra=context)
            raise

        if not cache.put_if_current(params.subject_id, params.target_id, values, generation):
            logger.debug("Pair invalidated during lookup, result not cached", extra=context)
        return list(values)

    async def list_roles_for_subject(self, params: SubjectTargetParams) -> list[Role]:
        return await self._cached_list(
            self.subject_roles, self.backend.list_roles_for_subject, params
        )

    async def list_permissions_for_subject(self, params: SubjectTargetParams) -> list[Permission]:
        return await self._cached_list(
            self.subject_permissions, self.backend.list_permissions_for_subject, params
        )

    async def subject_has_role(self, params: SubjectHasRoleParams) -> bool:
        """Answer from the cached role list when present, else ask the backend (uncached)."""
        cached = self.subject_roles.get(params.subject_id, params.target_id)
        if cached is not None:
            return any(role.handle == params.role_handle for role in _unwrap(cached))

        return await self.backend.subject_has_role(params)

    async def subject_has_permission(self, params: SubjectHasPermissionParams) -> bool:
        """Answer from the cached permission list when present, else ask the backend (uncached)."""
        cached = self.subject_permissions.get(params.subject_id, params.target_id)
        if cached is not None:
            return any(p.handle == params.permission_handle for p in _unwrap(cached))

        return await self.backend.subject_has_permission(params)

    # =========================================================================
    # Bulk Lookups
    # =========================================================================

    async def _collect(
        self,
        cache: SubjectTargetCache,
        fetch: Callable[[BulkSubjectTargetParams], Awaitable[dict[str, Any]]],
        subject_id: str,
        target_ids: list[str],
    ) -> dict[str, Any]:
        """
        Value per target: cached entries plus one backend call for the rest.

        Cached values are read before the backend call, so an invalidation
        while it is in flight cannot leave a hole in the result. Fetched values
        are cached only for pairs that were not invalidated meanwhile.
        """
        values: dict[str, Any] = {}
        for target_id in target_ids:
            cached = cache.get(subject_id, target_id)
            if cached is not None:
                values[target_id] = cached

        missing = cache.missing(subject_id, target_ids)
        if not missing:
            return values

        generations = {target_id: cache.generation(subject_id, target_id) for target_id in missing}
        logger.debug(
            f"Fetching {len(missing)} uncached targets", extra=_context(cache, subject_id)
        )
        result = await fetch(BulkSubjectTargetParams(subject_id=subject_id, target_ids=missing))

        for target_id in missing:
            value = result.get(target_id)
            if value is None:
                value = BulkResultMissingError(subject_id, target_id)
            elif not isinstance(value, Exception):
                value = list(value)
            values[target_id] = value
            cache.put_if_current(subject_id, target_id, value, generations[target_id])
        return values

    async def bulk_list_roles_for_subject(self, params: BulkSubjectTargetParams) -> BulkRoleResult:
        values = await self._collect(
            self.subject_roles,
            self.backend.bulk_list_roles_for_subject,
            params.subject_id,
            params.target_ids,
        )

        result: BulkRoleResult = {}
        for target_id in params.target_ids:
            value = values[target_id]
            result[target_id] = value if isinstance(value, Exception) else list(value)
        return result

    async def bulk_list_permissions_for_subject(
        self, params: BulkSubjectTargetParams
    ) -> BulkPermissionResult:
        values = await self._collect(
            self.subject_permissions,
            self.backend.bulk_list_permissions_for_subject,
            params.subject_id,
            params.target_ids,
        )

        result: BulkPermissionResult = {}
        for target_id in params.target_ids:
            value = values[target_id]
            result[target_id] = value if isinstance(value, Exception) else list(value)
        return result

    async def bulk_subject_has_role(self, params: BulkSubjectHasRoleParams) -> BulkCheckResult:
        values = await self._collect(
            self.subject_roles,
            self.backend.bulk_list_roles_for_subject,
            params.subject_id,
            params.target_ids,
        )

        result: BulkCheckResult = {}
        for target_id in params.target_ids:
            roles = values[target_id]
            if isinstance(roles, Exception):
                result[target_id] = roles
            else:
                result[target_id] = any(role.handle == params.role_handle for role in roles)
        return result

    async def bulk_subject_has_permission(
        self, params: BulkSubjectHasPermissionParams
    ) -> BulkCheckResult:
        values = await self._collect(
            self.subject_permissions,
            self.backend.bulk_list_permissions_for_subject,
            params.subject_id,
            params.target_ids,
        )

        result: BulkCheckResult = {}
        for target_id in params.target_ids:
            permissions = values[target_id]
            if isinstance(permissions, Exception):
                result[target_id] = permissions
            else:
                result[target_id] = any(
                    p.handle == params.permission_handle for p in permissions
                )
        return result
