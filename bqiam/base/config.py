"""
Pydantic configuration model for bqiam.

The configuration is read once from ``~/.bqiam.toml`` (or ``--config``),
validated here, and handed to every component that needs it. Keys in the
TOML file keep their historical PascalCase spelling (``CacheFile``,
``BigqueryProjects``...), the Python side uses snake_case.
"""

from __future__ import annotations

import os
import tomllib
from pathlib import Path
from typing import Any
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    PrivateAttr,
    ValidationError,
    field_validator,
    model_validator,
)

from bqiam.base.exceptions import ConfigError


DEFAULT_CONFIG_PATH = "~/.bqiam.toml"
DEFAULT_CACHE_FILE = "~/.bqiam-cache-file.toml"
DEFAULT_COMPLETION_FILE = "~/.bqiam-completion-file.toml"

# field name -> environment variable consulted when the field is unset
_ENV_FALLBACK: dict[str, str] = {
    "bigquery_projects": "BQIAM_BIGQUERY_PROJECTS",
    "cache_file": "BQIAM_CACHE_FILE",
    "cache_refresh_hour": "BQIAM_CACHE_REFRESH_HOUR",
    "completion_file": "BQIAM_COMPLETION_FILE",
    "credentials_path": "GOOGLE_APPLICATION_CREDENTIALS",
}


def real_path(path: str) -> str:
    """Expand a leading ``~``; leave relative paths untouched."""
    if path.startswith("~"):
        return os.path.expanduser(path)
    return path


class BqiamConfig(BaseModel):
    """Operator configuration.

    Values are resolved in order:
    1. Explicit values (config file or command-line overrides).
    2. ``BQIAM_*`` environment variables (and ``GOOGLE_APPLICATION_CREDENTIALS``).
    3. Defaults below. Without a credentials path the SDK falls back to
       Application Default Credentials.
    """

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    bigquery_projects: list[str] = Field(
        default_factory=list,
        alias="BigqueryProjects",
        description="Project ids the cache crawl is allowed to visit",
    )
    cache_file: str = Field(
        default=DEFAULT_CACHE_FILE,
        alias="CacheFile",
        validate_default=True,
        description="Path of the dataset metadata cache",
    )
    cache_refresh_hour: int = Field(
        default=24,
        ge=0,
        alias="CacheRefreshHour",
        description="Cache age (hours) after which it is considered expired",
    )
    completion_file: str = Field(
        default=DEFAULT_COMPLETION_FILE,
        alias="CompletionFile",
        validate_default=True,
        description="Path of the shell-completion list",
    )
    completion_display_size_limit: int = Field(
        default=100, gt=0, alias="CompletionDisplaySizeLimit"
    )
    crawl_concurrency: int = Field(
        default=8,
        gt=0,
        alias="CrawlConcurrency",
        description="Maximum number of projects crawled at the same time",
    )
    credentials_path: str | None = Field(
        default=None,
        alias="CredentialsPath",
        description="Path to service account JSON key file",
    )
    verbose: bool = Field(default=False, alias="Verbose")

    # Loaded from credentials_path only; never settable from the config file.
    _credentials: Any = PrivateAttr(default=None)

    @property
    def credentials(self) -> Any | None:
        return self._credentials

    @model_validator(mode="before")
    @classmethod
    def resolve_from_env(cls, values: Any) -> Any:
        """Fall back to environment variables for missing settings."""
        if not isinstance(values, dict):
            return values
        values = dict(values)
        for field, env_var in _ENV_FALLBACK.items():
            alias = cls.model_fields[field].alias
            if values.get(field) is None and values.get(alias) is None:
                env_value = os.environ.get(env_var)
                if env_value:
                    values[field] = env_value
        return values

    @field_validator("bigquery_projects", mode="before")
    @classmethod
    def split_projects(cls, value: Any) -> Any:
        if isinstance(value, str):
            return [p.strip() for p in value.split(",") if p.strip()]
        return value

    @field_validator("cache_file", "completion_file", "credentials_path")
    @classmethod
    def expand_home(cls, value: str | None) -> str | None:
        if value is None:
            return None
        return real_path(value)

    @model_validator(mode="after")
    def load_credentials(self) -> BqiamConfig:
        """Load service-account credentials from ``credentials_path`` if given."""
        if self._credentials is None and self.credentials_path:
            path = Path(self.credentials_path)
            if not path.exists():
                raise ValueError(f"Credentials file not found: {self.credentials_path}")
            from google.oauth2 import service_account  # lazy import

            self._credentials = service_account.Credentials.from_service_account_file(
                str(path)
            )
        return self


def _to_alias(key: str) -> str:
    field = BqiamConfig.model_fields.get(key)
    if field is not None and field.alias:
        return field.alias
    return key


def load_config(path: str | None = None, **overrides: Any) -> BqiamConfig:
    """Read and validate the TOML config file.

    Args:
        path: Config file path. Defaults to ``~/.bqiam.toml``.
        **overrides: Field values that win over the file (``None`` is ignored).

    Returns:
        A validated :class:`BqiamConfig`.

    Raises:
        ConfigError: If the file cannot be read, parsed or validated.
    """
    config_path = Path(real_path(path or DEFAULT_CONFIG_PATH))
    try:
        with config_path.open("rb") as f:
            raw: dict[str, Any] = tomllib.load(f)
    except (OSError, tomllib.TOMLDecodeError) as e:
        raise ConfigError(f"Failed to read config file {config_path}: {e}") from e

    values = {_to_alias(k): v for k, v in raw.items()}
    for key, value in overrides.items():
        if value is not None:
            values[_to_alias(key)] = value

    try:
        return BqiamConfig(**values)
    except ValidationError as e:
        raise ConfigError(f"Invalid config file {config_path}: {e}") from e


__all__ = [
    "BqiamConfig",
    "DEFAULT_CONFIG_PATH",
    "load_config",
    "real_path",
]
