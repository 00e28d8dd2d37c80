"""Tests for backend.settings and backend.settings_store."""

from __future__ import annotations

import json
from pathlib import Path

import pytest


@pytest.fixture
def cfg_dir(tmp_path: Path, monkeypatch) -> Path:
    d = tmp_path / "cfg"
    d.mkdir()
    monkeypatch.setenv("TRANCHEREADY_CONFIG_DIR", str(d))
    for var in ("APP_ORIGIN", "VERIFY_TTL_MIN", "SIGN_PRIVATE_KEY", "SIGN_PUBLIC_KEY", "SIGN_KEY_ID",
                "MAX_UPLOAD_MB", "NARRATIVE_ENABLED", "OLLAMA_HOST", "NARRATIVE_MODEL", "LOG_LEVEL"):
        monkeypatch.delenv(var, raising=False)
    return d


def test_settings_dataclass_defaults():
    """Settings dataclass should have sensible defaults."""
    from backend.settings import Settings

    s = Settings()
    assert s.app_origin == "http://localhost:10000"
    assert s.verify_ttl_min == 60
    assert s.sign_private_key == ""
    assert s.max_upload_mb == 25
    assert s.narrative_enabled is False


def test_app_metadata():
    """App metadata should be defined."""
    from backend.settings import APP_NAME, APP_VERSION, MANIFEST_SCHEMA

    assert APP_NAME == "TrancheReady"
    assert APP_VERSION
    assert MANIFEST_SCHEMA == "trancheready.manifest.v1"


def test_save_and_load_settings(cfg_dir: Path):
    """Settings should roundtrip through save/load."""
    from backend.settings import Settings
    from backend.settings_store import load_settings, save_settings

    save_settings(Settings(app_origin="https://app.example", verify_ttl_min=15, narrative_enabled=True))
    assert (cfg_dir / "settings.json").exists()

    loaded = load_settings()
    assert loaded.app_origin == "https://app.example"
    assert loaded.verify_ttl_min == 15
    assert loaded.narrative_enabled is True


def test_load_settings_missing_file(cfg_dir: Path):
    """load_settings should return defaults when no config file exists."""
    from backend.settings_store import load_settings

    s = load_settings()
    assert s.verify_ttl_min == 60
    assert s.sign_key_id == "trancheready"


def test_load_settings_corrupt_file(cfg_dir: Path):
    from backend.settings_store import load_settings

    (cfg_dir / "settings.json").write_text("{not json", encoding="utf-8")
    assert load_settings().verify_ttl_min == 60


def test_unknown_keys_ignored(cfg_dir: Path):
    from backend.settings_store import load_settings

    (cfg_dir / "settings.json").write_text(json.dumps({"whatever": 1, "max_upload_mb": 5}), encoding="utf-8")
    s = load_settings()
    assert s.max_upload_mb == 5
    assert not hasattr(s, "whatever")


def test_env_overrides_file(cfg_dir: Path, monkeypatch):
    from backend.settings_store import load_settings

    (cfg_dir / "settings.json").write_text(json.dumps({"verify_ttl_min": 15}), encoding="utf-8")
    monkeypatch.setenv("VERIFY_TTL_MIN", "5")
    monkeypatch.setenv("APP_ORIGIN", "https://verify.example")
    monkeypatch.setenv("NARRATIVE_ENABLED", "yes")
    monkeypatch.setenv("OLLAMA_HOST", "http://gpu:11434")

    s = load_settings()
    assert s.verify_ttl_min == 5
    assert s.app_origin == "https://verify.example"
    assert s.narrative_enabled is True
    assert s.ollama_url == "http://gpu:11434"


def test_invalid_env_value_keeps_default(cfg_dir: Path, monkeypatch):
    from backend.settings_store import load_settings

    monkeypatch.setenv("MAX_UPLOAD_MB", "lots")
    assert load_settings().max_upload_mb == 25
