from __future__ import annotations

import json
import os
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import yaml
from dotenv import dotenv_values, find_dotenv
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from codebase_flattener.config import DEFAULT_CHUNK_BYTES, DEFAULT_MAX_FILE_BYTES, DEFAULT_OUTPUT, OutputFormat
from codebase_flattener.exceptions import InvalidSettingsError
from codebase_flattener.logging import logger

ENV_FILE = find_dotenv(usecwd=True)
ENV_PREFIX = "CODEBASE_FLATTENER_"

# Keys understood in a config file, mapped to Settings fields.
CONFIG_KEYS: dict[str, str] = {
    "root": "root",
    "out": "output",
    "output": "output",
    "includes": "includes",
    "excludes": "excludes",
    "max_file_bytes": "max_file_bytes",
    "chunk_bytes": "chunk_bytes",
    "follow_symlinks": "follow_symlinks",
    "honor_gitignore": "honor_gitignore",
    "format": "format",
    "log_file": "log_file",
}


def parse_csv(text: str | None) -> list[str]:
    """Split a comma separated list, dropping blank items."""
    return [x.strip() for x in (text or "").split(",") if x.strip()]


def env_default(name: str) -> str:
    """Read a CODEBASE_FLATTENER_* default from the environment or the nearest `.env`.

    Args:
        name (str): variable name without the prefix, e.g. "CONFIG"

    Returns:
        str: the value, or "" when unset
    """
    key = ENV_PREFIX + name
    if key in os.environ:
        return os.environ[key]
    values = dotenv_values(ENV_FILE) if ENV_FILE else {}
    return values.get(key) or ""


def source_date() -> datetime | None:
    """Fixed build timestamp from SOURCE_DATE_EPOCH, if set and valid."""
    raw = os.environ.get("SOURCE_DATE_EPOCH", "").strip()
    if not raw:
        return None
    try:
        return datetime.fromtimestamp(int(raw), tz=UTC)
    except (ValueError, OverflowError, OSError):
        logger.warning("Ignoring invalid SOURCE_DATE_EPOCH", value=raw)
        return None


class Settings(BaseModel):
    """Configuration settings for one flatten run."""

    model_config = ConfigDict(arbitrary_types_allowed=True, extra="ignore")

    root: Path = Field(default_factory=Path.cwd, description="Root directory to flatten.")
    output: Path = Field(default=DEFAULT_OUTPUT, description="Output artifact path.")
    format: OutputFormat = Field(default=OutputFormat.XML, description="Output format (md|xml).")
    includes: list[str] = Field(default_factory=list, description="POSIX globs to include.")
    excludes: list[str] = Field(default_factory=list, description="POSIX globs to exclude.")
    max_file_bytes: int = Field(
        default=DEFAULT_MAX_FILE_BYTES,
        ge=0,
        description="Binary files above are emitted without payload.",
    )
    chunk_bytes: int = Field(
        default=DEFAULT_CHUNK_BYTES,
        description="Text files above are chunked; <= 0 disables chunking.",
    )
    follow_symlinks: bool = Field(default=False, description="Follow symlinks on filesystem walk.")
    honor_gitignore: bool = Field(default=True, description="Use git ls-files inside a git repository.")
    config: Path | None = Field(default=None, description="Optional JSON/YAML config file.")
    log_file: str = Field(default="", description="Log file path.")
    generated_at: datetime | None = Field(
        default=None,
        description="Fixed document timestamp for reproducible output.",
    )

    @field_validator("format", mode="before")
    @classmethod
    def _normalize_format(cls, value: Any) -> Any:  # noqa: ANN401
        return value.strip().lower() if isinstance(value, str) else value

    @field_validator("includes", "excludes", mode="before")
    @classmethod
    def _split_globs(cls, value: Any) -> Any:  # noqa: ANN401
        return parse_csv(value) if isinstance(value, str) else value

    def timestamp(self) -> datetime:
        """Document timestamp: explicit value, then SOURCE_DATE_EPOCH, then now (UTC)."""
        return self.generated_at or source_date() or datetime.now(UTC)


def load_config_file(path: str | Path) -> dict[str, Any]:
    """Load a JSON or YAML config file.

    Unreadable or malformed files are not fatal: a warning is logged and an
    empty mapping returned.

    Args:
        path (str | Path): the config file (".yml"/".yaml" read as YAML, anything else as JSON)

    Returns:
        dict[str, Any]: raw config values keyed as in the file
    """
    p = Path(path)
    try:
        raw = p.read_text(encoding="utf-8")
        data = yaml.safe_load(raw) if p.suffix.lower() in {".yml", ".yaml"} else json.loads(raw)
    except (OSError, ValueError, yaml.YAMLError) as e:
        logger.warning("Failed to parse config", path=str(p), error=str(e))
        return {}
    if not isinstance(data, dict):
        logger.warning("Ignoring config that is not a mapping", path=str(p))
        return {}
    return data


def _invalid_fields(error: ValidationError) -> set[str]:
    return {str(err["loc"][0]) for err in error.errors() if err.get("loc")}


def resolve_settings(cli_values: dict[str, Any], config: dict[str, Any] | None = None) -> Settings:
    """Merge CLI values over config file values over defaults.

    CLI entries set to None are treated as "not given". A config value that
    fails validation is dropped (its default applies) without affecting the
    other config keys; an invalid CLI value is an error.

    Args:
        cli_values (dict[str, Any]): values keyed by Settings field name
        config (dict[str, Any] | None): raw config file values

    Raises:
        InvalidSettingsError: if the CLI values do not validate.

    Returns:
        Settings: the validated settings; relative root/output resolved from the cwd
    """
    from_config: dict[str, Any] = {}
    for key, value in (config or {}).items():
        field = CONFIG_KEYS.get(key)
        if field is None:
            logger.warning("Ignoring unknown config key", key=key)
            continue
        from_config[field] = value
    given = {k: v for k, v in cli_values.items() if v is not None}
    try:
        settings = Settings(**{**from_config, **given})
    except ValidationError as e:
        dropped = _invalid_fields(e) & (from_config.keys() - given.keys())
        for field in sorted(dropped):
            logger.warning("Ignoring invalid config value", key=field, value=repr(from_config[field]))
        kept = {k: v for k, v in from_config.items() if k not in dropped}
        try:
            settings = Settings(**{**kept, **given})
        except ValidationError as e2:
            raise InvalidSettingsError(errors=str(e2)) from e2
    return settings.model_copy(
        update={"root": settings.root.resolve(), "output": settings.output.resolve()},
    )
