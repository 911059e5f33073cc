"""
Centralized configuration loader for the Campaign Orchestrator.

Loads settings from YAML files and environment variables, providing
sensible defaults when configuration files are absent.

Provides:
    - ModelConfig: Text-generation model ids and planning/thinking budgets
    - MediaConfig: Image/video/speech generation settings (poll budget etc.)
    - StorageConfig: Session store and blob store backends
    - Settings: Global application settings loaded from YAML + env vars
    - get_settings(): Singleton accessor for Settings
    - reset_settings(): Drop the cached Settings (tests, config reloads)
    - validate_env(): Startup validation of required environment variables
"""

import logging
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Optional, Type, TypeVar

import yaml
from dotenv import load_dotenv

from src.exceptions import ConfigurationError

# ---------------------------------------------------------------------------
# Load .env file (no-op if file does not exist)
# ---------------------------------------------------------------------------
load_dotenv()

# ---------------------------------------------------------------------------
# Project root directory (parent of src/)
# ---------------------------------------------------------------------------
PROJECT_ROOT = Path(__file__).resolve().parent.parent

logger = logging.getLogger(__name__)

C = TypeVar("C")


# ===========================================================================
# NESTED CONFIG SECTIONS
# ===========================================================================


@dataclass
class ModelConfig:
    """Model identifiers and budgets for the text capabilities."""

    text_model: str = "claude-sonnet-4-5-20250929"
    planning_model: str = "claude-opus-4-5-20251101"
    thinking_budget_tokens: int = 4096
    max_tokens: int = 4096
    grounded_model: str = "sonar-pro"


@dataclass
class MediaConfig:
    """
    Binary-media generation settings.

    ``video_poll_attempts`` and ``video_poll_interval`` bound the long-running
    video operation: after ``attempts * interval`` seconds without a result
    the video node degrades to a text-only asset.
    """

    image_model: str = "gemini-3-pro-image-preview"
    image_size: str = "1536x864"
    image_style: str = "cinematic, high-end, professional"
    video_model: str = "veo-3.1-generate-preview"
    video_aspect_ratio: str = "16:9"
    video_poll_attempts: int = 30
    video_poll_interval: float = 10.0
    voiceover_enabled: bool = False
    speech_model: str = "tts-1"
    speech_voice: str = "alloy"


@dataclass
class StorageConfig:
    """Where sessions and generated binaries live.

    ``backend`` is ``"memory"`` (single process, no persistence) or
    ``"supabase"``; blobs follow the same switch, with ``local_dir`` used by
    the in-process variant.
    """

    backend: str = "memory"
    bucket: str = "campaign-assets"
    local_dir: str = "data"


# ===========================================================================
# SETTINGS
# ===========================================================================


@dataclass
class Settings:
    """
    Global application settings.

    Loaded from ``config/settings.yaml`` when available, falling back to
    sensible defaults. Environment variables override YAML values for
    secrets and deployment-specific configuration.
    """

    # Logging
    log_level: str = "INFO"
    log_dir: str = "logs"
    audit_log_enabled: bool = True

    # Planning
    insight_limit: int = 5
    reasoning_trace_chars: int = 150

    # Nested sections
    models: ModelConfig = field(default_factory=ModelConfig)
    media: MediaConfig = field(default_factory=MediaConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)

    # HTTP server
    host: str = "0.0.0.0"
    port: int = 8080
    cors_origins: List[str] = field(default_factory=lambda: ["*"])

    @classmethod
    def from_yaml(cls, path: Optional[Path] = None) -> "Settings":
        """
        Load settings from a YAML file.

        If the file does not exist, returns an instance with all defaults.
        Environment variables override YAML values for specific keys.

        Args:
            path: Path to the YAML file. Defaults to
                ``<PROJECT_ROOT>/config/settings.yaml``.

        Returns:
            Populated Settings instance.

        Raises:
            ConfigurationError: If the YAML file exists but cannot be parsed,
                or a section is not a mapping.
        """
        path = path or PROJECT_ROOT / "config" / "settings.yaml"

        data: Dict[str, Any] = {}
        if path.exists():
            try:
                with open(path, "r", encoding="utf-8") as fh:
                    data = yaml.safe_load(fh) or {}
            except yaml.YAMLError as exc:
                raise ConfigurationError(
                    f"Failed to parse settings YAML at {path}: {exc}"
                ) from exc

        # -----------------------------------------------------------------
        # Nested sections (unknown keys are ignored with a warning)
        # -----------------------------------------------------------------
        models = _build_section(ModelConfig, data.get("models"), "models")
        media = _build_section(MediaConfig, data.get("media"), "media")
        storage = _build_section(StorageConfig, data.get("storage"), "storage")

        # -----------------------------------------------------------------
        # Environment variable overrides
        # -----------------------------------------------------------------
        env_backend = os.environ.get("SESSION_STORE_BACKEND")
        if env_backend:
            storage.backend = env_backend
        env_bucket = os.environ.get("ASSETS_BUCKET")
        if env_bucket:
            storage.bucket = env_bucket

        poll_env_map = {
            "VIDEO_POLL_ATTEMPTS": ("video_poll_attempts", int),
            "VIDEO_POLL_INTERVAL": ("video_poll_interval", float),
        }
        for env_key, (attr, cast) in poll_env_map.items():
            env_val = os.environ.get(env_key)
            if env_val is not None:
                try:
                    setattr(media, attr, cast(env_val))
                except (ValueError, TypeError):
                    logger.warning(
                        "Invalid value for %s='%s', using default", env_key, env_val
                    )

        if storage.backend not in ("memory", "supabase"):
            raise ConfigurationError(
                f"storage.backend must be 'memory' or 'supabase', got {storage.backend!r}"
            )

        # -----------------------------------------------------------------
        # Assemble the Settings object
        # -----------------------------------------------------------------
        return cls(
            log_level=os.environ.get("LOG_LEVEL", data.get("log_level", "INFO")),
            log_dir=data.get("log_dir", "logs"),
            audit_log_enabled=data.get("audit_log_enabled", True),
            insight_limit=data.get("insight_limit", 5),
            reasoning_trace_chars=data.get("reasoning_trace_chars", 150),
            models=models,
            media=media,
            storage=storage,
            host=data.get("host", "0.0.0.0"),
            port=int(os.environ.get("PORT", data.get("port", 8080))),
            cors_origins=data.get("cors_origins", ["*"]),
        )


def _build_section(section_cls: Type[C], raw: Any, name: str) -> C:
    """Instantiate a nested config dataclass from a YAML mapping."""
    if raw is None:
        return section_cls()
    if not isinstance(raw, dict):
        raise ConfigurationError(f"Settings section '{name}' must be a mapping")
    known = {f.name for f in fields(section_cls)}  # type: ignore[arg-type]
    unknown = set(raw) - known
    if unknown:
        logger.warning("Ignoring unknown keys in '%s': %s", name, sorted(unknown))
    return section_cls(**{k: v for k, v in raw.items() if k in known})


# ===========================================================================
# SINGLETON SETTINGS ACCESSOR
# ===========================================================================

_settings_instance: Optional[Settings] = None


def get_settings() -> Settings:
    """
    Get the global Settings singleton.

    On first call, loads from ``config/settings.yaml`` (or defaults).
    Subsequent calls return the cached instance.

    Returns:
        The global Settings instance.
    """
    global _settings_instance
    if _settings_instance is None:
        _settings_instance = Settings.from_yaml()
    return _settings_instance


def reset_settings() -> None:
    """
    Reset the cached Settings singleton.

    Useful for testing or when configuration files have been updated
    at runtime.
    """
    global _settings_instance
    _settings_instance = None


# ===========================================================================
# ENVIRONMENT VARIABLE VALIDATION
# ===========================================================================

# Required environment variables for the system to function
REQUIRED_ENV_VARS: List[str] = [
    "ANTHROPIC_API_KEY",
    "PERPLEXITY_API_KEY",
]

# Optional but recommended environment variables
OPTIONAL_ENV_VARS: List[str] = [
    "SUPABASE_URL",
    "SUPABASE_SERVICE_KEY",
    "GOOGLE_API_KEY",
    "LAOZHANG_API_KEY",
    "TELEGRAM_BOT_TOKEN",
    "TELEGRAM_CHAT_ID",
]


def validate_env(strict: bool = True) -> Dict[str, bool]:
    """
    Validate that required environment variables are set.

    Args:
        strict: If ``True``, raise ``ConfigurationError`` when any required
            variable is missing. If ``False``, return the status dict
            without raising.

    Returns:
        Dict mapping variable name to presence status (``True`` if set).

    Raises:
        ConfigurationError: If ``strict=True`` and required vars are missing.
    """
    status: Dict[str, bool] = {}
    missing: List[str] = []

    for var in REQUIRED_ENV_VARS:
        present = bool(os.environ.get(var))
        status[var] = present
        if not present:
            missing.append(var)

    for var in OPTIONAL_ENV_VARS:
        status[var] = bool(os.environ.get(var))

    if strict and missing:
        raise ConfigurationError(
            f"Missing required environment variables: {missing}. "
            f"Copy .env.example to .env and fill in the values."
        )

    return status


__all__ = [
    "PROJECT_ROOT",
    "ModelConfig",
    "MediaConfig",
    "StorageConfig",
    "Settings",
    "get_settings",
    "reset_settings",
    "REQUIRED_ENV_VARS",
    "OPTIONAL_ENV_VARS",
    "validate_env",
]
