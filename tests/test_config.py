"""Tests for src.config: YAML loading, env overrides and validation."""

import pytest

from src.config import (
    MediaConfig,
    Settings,
    get_settings,
    reset_settings,
    validate_env,
)
from src.exceptions import ConfigurationError


@pytest.fixture(autouse=True)
def _fresh_settings():
    reset_settings()
    yield
    reset_settings()


def _write(tmp_path, text):
    path = tmp_path / "settings.yaml"
    path.write_text(text, encoding="utf-8")
    return path


# =============================================================================
# Defaults
# =============================================================================


def test_missing_file_gives_defaults(tmp_path):
    settings = Settings.from_yaml(tmp_path / "absent.yaml")
    assert settings.storage.backend == "memory"
    assert settings.media.video_poll_attempts == 30
    assert settings.media.video_poll_interval == 10.0
    assert settings.insight_limit == 5
    assert settings.port == 8080


def test_get_settings_is_cached():
    assert get_settings() is get_settings()


# =============================================================================
# YAML sections
# =============================================================================


def test_nested_sections_are_loaded(tmp_path):
    path = _write(
        tmp_path,
        "insight_limit: 3\n"
        "media:\n  video_poll_attempts: 4\n  voiceover_enabled: true\n"
        "storage:\n  backend: supabase\n  bucket: promo\n",
    )
    settings = Settings.from_yaml(path)
    assert settings.insight_limit == 3
    assert settings.media.video_poll_attempts == 4
    assert settings.media.voiceover_enabled is True
    assert settings.storage.backend == "supabase"
    assert settings.storage.bucket == "promo"


def test_unknown_keys_are_ignored(tmp_path):
    path = _write(tmp_path, "media:\n  nonsense: 1\n  image_size: 1024x1024\n")
    settings = Settings.from_yaml(path)
    assert settings.media.image_size == "1024x1024"
    assert not hasattr(settings.media, "nonsense")


def test_section_must_be_mapping(tmp_path):
    path = _write(tmp_path, "media: [1, 2]\n")
    with pytest.raises(ConfigurationError, match="must be a mapping"):
        Settings.from_yaml(path)


def test_invalid_yaml_raises(tmp_path):
    path = _write(tmp_path, "media: {unclosed\n")
    with pytest.raises(ConfigurationError, match="Failed to parse"):
        Settings.from_yaml(path)


def test_unknown_backend_rejected(tmp_path):
    path = _write(tmp_path, "storage:\n  backend: redis\n")
    with pytest.raises(ConfigurationError, match="storage.backend"):
        Settings.from_yaml(path)


# =============================================================================
# Environment overrides
# =============================================================================


def test_env_overrides_backend_and_poll_budget(tmp_path, monkeypatch):
    monkeypatch.setenv("SESSION_STORE_BACKEND", "supabase")
    monkeypatch.setenv("ASSETS_BUCKET", "env-bucket")
    monkeypatch.setenv("VIDEO_POLL_ATTEMPTS", "5")
    monkeypatch.setenv("VIDEO_POLL_INTERVAL", "0.5")
    monkeypatch.setenv("PORT", "9000")

    settings = Settings.from_yaml(tmp_path / "absent.yaml")

    assert settings.storage.backend == "supabase"
    assert settings.storage.bucket == "env-bucket"
    assert settings.media.video_poll_attempts == 5
    assert settings.media.video_poll_interval == 0.5
    assert settings.port == 9000


def test_bad_poll_env_value_keeps_default(tmp_path, monkeypatch):
    monkeypatch.setenv("VIDEO_POLL_ATTEMPTS", "lots")
    settings = Settings.from_yaml(tmp_path / "absent.yaml")
    assert settings.media.video_poll_attempts == MediaConfig().video_poll_attempts


# =============================================================================
# validate_env()
# =============================================================================


def test_validate_env_strict_raises_when_keys_missing():
    with pytest.raises(ConfigurationError, match="ANTHROPIC_API_KEY"):
        validate_env(strict=True)


def test_validate_env_lenient_reports_status(monkeypatch):
    monkeypatch.setenv("ANTHROPIC_API_KEY", "sk-ant-test")
    status = validate_env(strict=False)
    assert status["ANTHROPIC_API_KEY"] is True
    assert status["PERPLEXITY_API_KEY"] is False
    assert status["GOOGLE_API_KEY"] is False
