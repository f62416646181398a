"""
Configuration for the bowlise cache facade.

Configuration can be provided directly, via environment variables, or from a
YAML settings file:

```yaml
bowlise:
  backend: sqlite            # "memory" or "sqlite"
  sqlite_path: ./access.db
  cache_errors: true         # cache failed single-target lookups
  close_backend: true        # close the backend when the facade closes
```

Environment Variables:
    BOWLISE_BACKEND: Backend name (default: memory)
    BOWLISE_SQLITE_PATH: SQLite database path (default: :memory:)
    BOWLISE_CACHE_ERRORS: "true"/"false" (default: true)
    BOWLISE_CLOSE_BACKEND: "true"/"false" (default: true)
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any

import yaml

from .backends.base import AccessControlBackend
from .exceptions import ValidationError

logger = logging.getLogger(__name__)

SUPPORTED_BACKENDS = ("memory", "sqlite")

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


def _parse_bool(name: str, value: Any) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in _TRUE_VALUES:
        return True
    if text in _FALSE_VALUES:
        return False
    raise ValidationError(name, "expected a boolean", str(value))


@dataclass
class BowliseConfig:
    """Settings for a cache facade and the backend it builds.

    Attributes:
        backend: Backend to build when none is supplied ("memory" or "sqlite")
        sqlite_path: Database path for the SQLite backend
        cache_errors: Cache exceptions raised by single-target list lookups.
            Per-target errors from bulk lookups are always cached.
        close_backend: Close the backend when the facade is closed
    """

    backend: str = "memory"
    sqlite_path: str = ":memory:"
    cache_errors: bool = True
    close_backend: bool = True

    def __post_init__(self) -> None:
        if not isinstance(self.backend, str):
            raise ValidationError("backend", "must be a string", str(self.backend))
        self.backend = self.backend.lower()
        if self.backend not in SUPPORTED_BACKENDS:
            raise ValidationError(
                "backend", f"must be one of {', '.join(SUPPORTED_BACKENDS)}", self.backend
            )
        self.cache_errors = _parse_bool("cache_errors", self.cache_errors)
        self.close_backend = _parse_bool("close_backend", self.close_backend)

    @classmethod
    def from_env(cls) -> BowliseConfig:
        """Create config from environment variables."""
        return cls(
            backend=os.environ.get("BOWLISE_BACKEND", "memory"),
            sqlite_path=os.environ.get("BOWLISE_SQLITE_PATH", ":memory:"),
            cache_errors=os.environ.get("BOWLISE_CACHE_ERRORS", "true"),
            close_backend=os.environ.get("BOWLISE_CLOSE_BACKEND", "true"),
        )

    @classmethod
    def from_file(cls, path: str | Path) -> BowliseConfig:
        """Create config from the ``bowlise`` section of a YAML file.

        A missing file or section yields the defaults. Unknown keys are
        ignored with a warning.
        """
        config_path = Path(path)
        if not config_path.exists():
            return cls()

        data = yaml.safe_load(config_path.read_text()) or {}
        if not isinstance(data, dict):
            raise ValidationError(str(config_path), "top level must be a mapping")
        section = data.get("bowlise") or {}
        if not isinstance(section, dict):
            raise ValidationError("bowlise", "section must be a mapping")

        known = {f.name for f in fields(cls)}
        unknown = sorted(set(section) - known)
        if unknown:
            logger.warning(f"Ignoring unknown bowlise settings in {config_path}: {unknown}")

        return cls(**{key: value for key, value in section.items() if key in known})

    def create_backend(self) -> AccessControlBackend:
        """Build the configured backend. The caller initializes it."""
        if self.backend == "sqlite":
            from .backends.sqlite import SQLiteBackend, SQLiteConfig

            return SQLiteBackend(SQLiteConfig(db_path=self.sqlite_path))

        from .backends.memory import InMemoryBackend

        return InMemoryBackend()
