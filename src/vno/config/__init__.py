"""Configuration management for Voice Note Orchestrator.

Configuration is loaded with precedence handling:
1. CLI flags (highest priority)
2. Environment variables (VNO_*)
3. Config file (~/.vno/config.toml)
4. Default values (lowest priority)
"""

from vno.config.builder import (
    ConfigBuilder,
    ConfigSource,
    source_from_env,
    source_from_file,
)
from vno.config.env import EnvReader
from vno.config.loader import (
    ConfigError,
    clear_config_cache,
    get_config,
    get_data_dir,
    get_database_path,
    get_default_config_path,
    load_config_file,
)
from vno.config.logging_factory import (
    build_logging_config,
    configure_logging_from_cli,
)
from vno.config.models import (
    LoggingConfig,
    ProviderConfig,
    QueueConfig,
    RetentionConfig,
    ServerConfig,
    VNOConfig,
    WorkerConfig,
)

__all__ = [
    # Models
    "LoggingConfig",
    "ProviderConfig",
    "QueueConfig",
    "RetentionConfig",
    "ServerConfig",
    "VNOConfig",
    "WorkerConfig",
    # Loader
    "ConfigError",
    "clear_config_cache",
    "get_config",
    "get_data_dir",
    "get_database_path",
    "get_default_config_path",
    "load_config_file",
    # Layering
    "EnvReader",
    "ConfigBuilder",
    "ConfigSource",
    "source_from_env",
    "source_from_file",
    "build_logging_config",
    "configure_logging_from_cli",
]
