"""Tests for facade configuration."""

import pytest
import yaml

from bowlise.backends import InMemoryBackend, SQLiteBackend
from bowlise.config import BowliseConfig
from bowlise.exceptions import ValidationError


class TestBowliseConfig:
    """Tests for defaults and validation."""

    def test_defaults(self):
        config = BowliseConfig()
        assert config.backend == "memory"
        assert config.sqlite_path == ":memory:"
        assert config.cache_errors is True
        assert config.close_backend is True

    def test_backend_name_normalized(self):
        assert BowliseConfig(backend="SQLite").backend == "sqlite"

    def test_unknown_backend_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            BowliseConfig(backend="postgres")
        assert exc_info.value.field == "backend"

    def test_bad_boolean_rejected(self):
        with pytest.raises(ValidationError):
            BowliseConfig(cache_errors="sometimes")

    def test_create_memory_backend(self):
        assert isinstance(BowliseConfig().create_backend(), InMemoryBackend)

    def test_create_sqlite_backend(self, tmp_path):
        path = str(tmp_path / "access.db")
        backend = BowliseConfig(backend="sqlite", sqlite_path=path).create_backend()

        assert isinstance(backend, SQLiteBackend)
        assert backend.config.db_path == path


class TestConfigFromEnv:
    """Tests for environment variable loading."""

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("BOWLISE_BACKEND", "sqlite")
        monkeypatch.setenv("BOWLISE_SQLITE_PATH", "/tmp/access.db")
        monkeypatch.setenv("BOWLISE_CACHE_ERRORS", "false")
        monkeypatch.setenv("BOWLISE_CLOSE_BACKEND", "0")

        config = BowliseConfig.from_env()

        assert config.backend == "sqlite"
        assert config.sqlite_path == "/tmp/access.db"
        assert config.cache_errors is False
        assert config.close_backend is False

    def test_from_env_defaults(self, monkeypatch):
        for name in (
            "BOWLISE_BACKEND",
            "BOWLISE_SQLITE_PATH",
            "BOWLISE_CACHE_ERRORS",
            "BOWLISE_CLOSE_BACKEND",
        ):
            monkeypatch.delenv(name, raising=False)

        assert BowliseConfig.from_env() == BowliseConfig()


class TestConfigFromFile:
    """Tests for YAML settings files."""

    def test_missing_file_gives_defaults(self, tmp_path):
        assert BowliseConfig.from_file(tmp_path / "nope.yaml") == BowliseConfig()

    def test_reads_bowlise_section(self, tmp_path):
        path = tmp_path / "settings.yaml"
        path.write_text(
            yaml.safe_dump(
                {
                    "bowlise": {
                        "backend": "sqlite",
                        "sqlite_path": "access.db",
                        "cache_errors": False,
                    },
                    "other": {"ignored": True},
                }
            )
        )

        config = BowliseConfig.from_file(path)

        assert config.backend == "sqlite"
        assert config.sqlite_path == "access.db"
        assert config.cache_errors is False
        assert config.close_backend is True

    def test_unknown_keys_ignored(self, tmp_path, caplog):
        path = tmp_path / "settings.yaml"
        path.write_text("bowlise:\n  backend: memory\n  ttl: 30\n")

        config = BowliseConfig.from_file(path)

        assert config == BowliseConfig()
        assert "ttl" in caplog.text

    def test_empty_file(self, tmp_path):
        path = tmp_path / "settings.yaml"
        path.write_text("")
        assert BowliseConfig.from_file(path) == BowliseConfig()

    def test_section_must_be_mapping(self, tmp_path):
        path = tmp_path / "settings.yaml"
        path.write_text("bowlise: [memory]\n")
        with pytest.raises(ValidationError):
            BowliseConfig.from_file(path)

    def test_top_level_must_be_mapping(self, tmp_path):
        path = tmp_path / "settings.yaml"
        path.write_text("- memory\n- sqlite\n")
        with pytest.raises(ValidationError):
            BowliseConfig.from_file(path)

    def test_scalar_top_level_rejected(self, tmp_path):
        path = tmp_path / "settings.yaml"
        path.write_text("memory\n")
        with pytest.raises(ValidationError):
            BowliseConfig.from_file(path)

    def test_non_string_backend_rejected(self, tmp_path):
        path = tmp_path / "settings.yaml"
        path.write_text("bowlise:\n  backend: 3\n")
        with pytest.raises(ValidationError) as exc_info:
            BowliseConfig.from_file(path)
        assert exc_info.value.field == "backend"
