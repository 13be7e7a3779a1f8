"""Tests for runtime config -- env-driven settings."""

from __future__ import annotations

from pathlib import Path

import pydantic
import pytest

from lattice.config import LatticeSettings, get_settings


class TestLatticeSettings:
    def test_defaults(self, monkeypatch: pytest.MonkeyPatch):
        for name in ("LATTICE_MAX_PARALLEL", "LATTICE_LOG_LEVEL", "LATTICE_PROJECT_DIR"):
            monkeypatch.delenv(name, raising=False)
        settings = LatticeSettings(_env_file=None)
        assert settings.project_dir == Path(".")
        assert settings.log_level == "INFO"
        assert settings.max_parallel == 0
        assert settings.max_attempts == 0
        assert settings.allow_interpreted_plugins is True
        assert settings.tmux_binary == "tmux"

    def test_env_overrides(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("LATTICE_PROJECT_DIR", "/work/app")
        monkeypatch.setenv("LATTICE_MAX_PARALLEL", "4")
        monkeypatch.setenv("LATTICE_ALLOW_INTERPRETED_PLUGINS", "false")
        settings = LatticeSettings(_env_file=None)
        assert settings.project_dir == Path("/work/app")
        assert settings.max_parallel == 4
        assert settings.allow_interpreted_plugins is False

    def test_lattice_dir(self):
        assert LatticeSettings(project_dir=Path("/work/app")).lattice_dir == Path("/work/app/.lattice")

    @pytest.mark.parametrize(
        "field, value",
        [
            ("max_parallel", -1),
            ("max_attempts", -1),
            ("poll_interval_seconds", 0),
            ("lock_timeout_seconds", 0),
        ],
    )
    def test_rejects_invalid(self, field: str, value: float):
        with pytest.raises(pydantic.ValidationError):
            LatticeSettings(**{field: value})

    def test_get_settings_cached(self):
        get_settings.cache_clear()
        assert get_settings() is get_settings()
