# === NAVMAP v1 ===
# {
#   "module": "GoReleases.settings",
#   "purpose": "Define the fetch settings model, environment overrides, and YAML loading",
#   "sections": [
#     {"id": "fetchsettings", "name": "FetchSettings", "anchor": "class-fetchsettings", "kind": "class"},
#     {"id": "environmentoverrides", "name": "EnvironmentOverrides", "anchor": "class-environmentoverrides", "kind": "class"},
#     {"id": "get-default-settings", "name": "get_default_settings", "anchor": "function-get-default-settings", "kind": "function"},
#     {"id": "load-settings", "name": "load_settings", "anchor": "function-load-settings", "kind": "function"}
#   ]
# }
# === /NAVMAP ===

"""Configuration models and environment overrides for release fetching.

Settings are resolved in three layers: the defaults declared on
:class:`FetchSettings`, an optional YAML file passed to :func:`load_settings`,
and ``GORELEASES_*`` environment variables read through pydantic-settings.
Later layers win.  The resolved model is frozen so one fetch cannot mutate the
configuration another fetch is using.
"""

from __future__ import annotations

import hashlib
import logging
import threading
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import ConfigError
from .version import __version__

__all__ = [
    "DEFAULT_DOWNLOAD_BASE_URL",
    "DEFAULT_CATALOG_URL",
    "FetchSettings",
    "EnvironmentOverrides",
    "get_env_overrides",
    "get_default_settings",
    "invalidate_default_settings_cache",
    "build_settings",
    "load_settings",
]

DEFAULT_DOWNLOAD_BASE_URL = "https://go.dev/dl/"
DEFAULT_CATALOG_URL = "https://go.dev/dl/?mode=json"

_VALID_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR"}


class FetchSettings(BaseModel):
    """Network, extraction, and logging settings for a release fetch."""

    model_config = ConfigDict(frozen=True, validate_assignment=False, extra="forbid")

    download_base_url: str = Field(
        default=DEFAULT_DOWNLOAD_BASE_URL,
        description="Base URL joined with a file's name to build its download URL",
    )
    catalog_url: str = Field(
        default=DEFAULT_CATALOG_URL,
        description="JSON release catalog listing supported releases",
    )
    extraction_root_name: str = Field(
        default="go",
        description="Name of the single directory the archive unpacks into",
    )
    digest_algorithm: str = Field(
        default="sha256",
        description="hashlib algorithm used for the download digest",
    )
    chunk_size: int = Field(
        default=64 * 1024,
        ge=1024,
        le=16 * 1024 * 1024,
        description="Network read and file copy chunk size in bytes",
    )
    timeout_connect: float = Field(
        default=10.0,
        gt=0.0,
        le=120.0,
        description="Connect timeout in seconds",
    )
    timeout_read: float = Field(
        default=60.0,
        gt=0.0,
        le=600.0,
        description="Read timeout in seconds",
    )
    connect_retries: int = Field(
        default=2,
        ge=0,
        le=10,
        description="Retries when establishing the download connection fails",
    )
    backoff_base: float = Field(
        default=0.5,
        ge=0.0,
        le=30.0,
        description="Exponential backoff start (seconds) between connect retries",
    )
    follow_redirects: bool = Field(
        default=True,
        description="Follow HTTP redirects (the download site redirects to its CDN)",
    )
    user_agent: str = Field(
        default=f"goreleases/{__version__}",
        description="User-Agent header value",
    )
    log_level: str = Field(default="INFO", description="Logging level")
    log_dir: Optional[Path] = Field(
        default=None,
        description="Directory for rotating JSON log files (console only when unset)",
    )

    @field_validator("extraction_root_name")
    @classmethod
    def validate_root_name(cls, v: str) -> str:
        """Reject names that are not a single path component."""
        if not v or v in {".", ".."} or "/" in v or "\\" in v or "\x00" in v:
            raise ValueError(f"extraction_root_name must be a single path component, got {v!r}")
        return v

    @field_validator("digest_algorithm", mode="before")
    @classmethod
    def validate_digest_algorithm(cls, v: str) -> str:
        """Normalise and validate the digest algorithm name."""
        candidate = str(v).strip().lower()
        if candidate not in hashlib.algorithms_available:
            raise ValueError(f"unsupported digest algorithm '{candidate}'")
        return candidate

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_level(cls, v: str) -> str:
        """Normalize and validate logging level."""
        upper = str(v).upper()
        if upper not in _VALID_LOG_LEVELS:
            raise ValueError(f"level must be one of {sorted(_VALID_LOG_LEVELS)}, got '{v}'")
        return upper

    @field_validator("log_dir", mode="before")
    @classmethod
    def normalize_log_dir(cls, v: Any) -> Optional[Path]:
        if v is None or v == "":
            return None
        return Path(v).expanduser()

    def level_int(self) -> int:
        """Convert level string to logging module integer."""
        return getattr(logging, self.log_level)

    def download_url(self, filename: str) -> str:
        """Return the download URL for ``filename``."""
        return self.download_base_url.rstrip("/") + "/" + filename


class EnvironmentOverrides(BaseSettings):
    """Pydantic settings model exposing ``GORELEASES_*`` environment overrides."""

    download_base_url: Optional[str] = None
    catalog_url: Optional[str] = None
    extraction_root_name: Optional[str] = None
    chunk_size: Optional[int] = None
    timeout_connect: Optional[float] = None
    timeout_read: Optional[float] = None
    connect_retries: Optional[int] = None
    log_level: Optional[str] = None
    log_dir: Optional[Path] = None

    model_config = SettingsConfigDict(
        env_prefix="GORELEASES_", case_sensitive=False, extra="ignore"
    )


def get_env_overrides() -> Dict[str, Any]:
    """Return environment-derived overrides, omitting unset variables."""

    return EnvironmentOverrides().model_dump(exclude_none=True)


_DEFAULT_SETTINGS_CACHE: Optional[FetchSettings] = None
_DEFAULT_SETTINGS_LOCK = threading.Lock()


def build_settings(values: Optional[Mapping[str, Any]] = None) -> FetchSettings:
    """Validate ``values`` layered under the environment overrides.

    Raises:
        ConfigError: If the merged values do not validate.
    """

    merged: Dict[str, Any] = dict(values or {})
    env = get_env_overrides()
    if env:
        logging.getLogger("GoReleases.settings").debug(
            "applying environment overrides",
            extra={"stage": "config", "overrides": sorted(env)},
        )
    merged.update(env)
    try:
        return FetchSettings.model_validate(merged)
    except PydanticValidationError as exc:
        raise ConfigError(f"Invalid settings: {exc}") from exc


def get_default_settings(*, refresh: bool = False) -> FetchSettings:
    """Return the process-wide default settings (defaults + environment)."""

    global _DEFAULT_SETTINGS_CACHE  # noqa: PLW0603

    with _DEFAULT_SETTINGS_LOCK:
        if _DEFAULT_SETTINGS_CACHE is None or refresh:
            _DEFAULT_SETTINGS_CACHE = build_settings()
        return _DEFAULT_SETTINGS_CACHE


def invalidate_default_settings_cache() -> None:
    """Invalidate the cached default settings."""

    global _DEFAULT_SETTINGS_CACHE  # noqa: PLW0603

    with _DEFAULT_SETTINGS_LOCK:
        _DEFAULT_SETTINGS_CACHE = None


def load_settings(config_path: Path) -> FetchSettings:
    """Load settings from a YAML mapping at ``config_path``.

    Environment overrides are applied on top of the file contents.

    Raises:
        ConfigError: If the file is missing, is not a YAML mapping, or fails
            validation.
    """

    path = Path(config_path).expanduser()
    if not path.is_file():
        raise ConfigError(f"Settings file not found: {path}")
    try:
        with path.open("r", encoding="utf-8") as handle:
            raw = yaml.safe_load(handle)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Settings file {path} is not valid YAML: {exc}") from exc
    if raw is None:
        raw = {}
    if not isinstance(raw, Mapping):
        raise ConfigError(f"Settings file {path} must contain a mapping")
    return build_settings(raw)
