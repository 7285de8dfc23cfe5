"""Configuration loader with precedence handling.

Configuration is loaded with the following precedence (highest to lowest):
1. CLI arguments (passed directly to get_config)
2. Environment variables (VNO_*)
3. Config file (~/.vno/config.toml)
4. Default values

Environment variables:
- VNO_CONFIG_PATH: Path to config file (overrides default location)
- VNO_DATA_DIR: Path to VNO data directory (overrides ~/.vno/)
- VNO_DATABASE_PATH: Path to database file
- VNO_AUTH_TOKEN: Shared admin token for the HTTP admin surface
- VNO_<QUEUE>_MAX_ATTEMPTS, VNO_<QUEUE>_PROVIDER_TIMEOUT, VNO_<QUEUE>_CONCURRENCY:
  per-queue job settings (QUEUE is TRANSCRIBE or SUMMARIZE)
"""

from __future__ import annotations

import logging
import os
import threading
import tomllib
from pathlib import Path
from typing import Any

from vno.config.builder import (
    ConfigBuilder,
    ConfigSource,
    source_from_env,
    source_from_file,
)
from vno.config.env import EnvReader
from vno.config.models import VNOConfig

logger = logging.getLogger(__name__)

# Default config location
DEFAULT_CONFIG_DIR = Path.home() / ".vno"
DEFAULT_CONFIG_FILE = DEFAULT_CONFIG_DIR / "config.toml"

# Cache for loaded config files (path -> (parsed dict, mtime))
_config_cache: dict[Path, tuple[dict, float]] = {}
_config_cache_lock = threading.Lock()


class ConfigError(Exception):
    """Raised when the configuration file cannot be read or is invalid."""


def get_default_config_path() -> Path:
    """Get the default config file path.

    Can be overridden by VNO_CONFIG_PATH environment variable.
    """
    env_path = os.environ.get("VNO_CONFIG_PATH")
    if env_path:
        return Path(env_path).expanduser()
    return DEFAULT_CONFIG_FILE


def get_data_dir() -> Path:
    """Get the VNO data directory (~/.vno/ unless VNO_DATA_DIR is set)."""
    env_path = os.environ.get("VNO_DATA_DIR")
    if env_path:
        return Path(env_path).expanduser()
    return DEFAULT_CONFIG_DIR


def load_config_file(path: Path | None = None, *, strict: bool = False) -> dict:
    """Load configuration from TOML file.

    Results are cached with mtime-based invalidation.

    Args:
        path: Path to config file. If None, uses default location.
        strict: If True, raise ConfigError on parse failures.
                If False (default), log and return empty dict on errors.

    Returns:
        Parsed configuration dict. Empty dict if file doesn't exist.

    Raises:
        ConfigError: When strict=True and the file cannot be parsed.
    """
    if path is None:
        path = get_default_config_path()

    try:
        current_mtime = path.stat().st_mtime
    except FileNotFoundError:
        return {}

    with _config_cache_lock:
        cached = _config_cache.get(path)
        if cached is not None and cached[1] == current_mtime:
            return cached[0]

        try:
            with path.open("rb") as f:
                result: dict[str, Any] = tomllib.load(f)
        except (OSError, tomllib.TOMLDecodeError) as e:
            if strict:
                raise ConfigError(f"Cannot load config file {path}: {e}") from e
            logger.warning("Ignoring unreadable config file %s: %s", path, e)
            result = {}

        _config_cache[path] = (result, current_mtime)
        return result


def clear_config_cache() -> None:
    """Clear the config file cache. Primarily useful for testing."""
    with _config_cache_lock:
        _config_cache.clear()


def get_config(
    config_path: Path | None = None,
    # CLI overrides (highest precedence)
    database_path: Path | None = None,
    server_bind: str | None = None,
    server_port: int | None = None,
    auth_token: str | None = None,
    # Optional dependency injection for testing
    env_reader: EnvReader | None = None,
    *,
    strict: bool = False,
) -> VNOConfig:
    """Get VNO configuration with full precedence handling.

    Args:
        config_path: Path to config file (overrides VNO_CONFIG_PATH).
        database_path: CLI override for database path.
        server_bind: CLI override for the admin server bind address.
        server_port: CLI override for the admin server port.
        auth_token: CLI override for the admin token.
        env_reader: Optional EnvReader for testing (uses os.environ if None).
        strict: If True, raise ConfigError on config file problems.

    Returns:
        VNOConfig with merged configuration.

    Raises:
        ConfigError: When the file is unreadable (strict) or holds invalid values.
    """
    reader = env_reader or EnvReader()
    file_config = load_config_file(config_path, strict=strict)

    try:
        file_source = source_from_file(file_config)
    except ValueError as e:
        raise ConfigError(f"Invalid config file: {e}") from e
    env_source = source_from_env(reader)
    cli_source = ConfigSource(
        database_path=database_path,
        server_bind=server_bind,
        server_port=server_port,
        server_auth_token=auth_token,
    )

    builder = ConfigBuilder()
    try:
        builder.apply(file_source, source_name="file")
        builder.apply(env_source, source_name="env")
        builder.apply(cli_source, source_name="cli")
        config = builder.build()
    except (TypeError, ValueError) as e:
        raise ConfigError(str(e)) from e

    if config.data_dir is None:
        config.data_dir = get_data_dir()
    return config


def get_database_path(config: VNOConfig) -> Path:
    """Resolve the database path for a configuration."""
    if config.database_path is not None:
        return config.database_path
    return (config.data_dir or get_data_dir()) / "vno.db"
