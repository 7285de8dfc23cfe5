"""Configuration builder with explicit layering.

ConfigBuilder composes VNOConfig from ConfigSources in increasing order of
precedence. Per-queue settings are flattened into ``<queue>_<setting>``
keys so every layer uses the same merge rule.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

from vno.config.env import EnvReader
from vno.config.models import (
    LoggingConfig,
    ProviderConfig,
    QueueConfig,
    RetentionConfig,
    ServerConfig,
    VNOConfig,
    WorkerConfig,
)
from vno.core.datetime_utils import parse_duration
from vno.db.types import QueueName

# Per-queue keys accepted under [queues.<name>] and VNO_<NAME>_<KEY>
QUEUE_KEYS: tuple[str, ...] = tuple(f.name for f in fields(QueueConfig))


@dataclass
class ConfigSource:
    """Configuration values from a single source.

    None values indicate "not specified in this source" and will not
    override values from lower-precedence sources.
    """

    # Database
    database_path: Path | None = None
    data_dir: Path | None = None

    # Retention config
    retention_completed_max_age: float | None = None
    retention_failed_max_age: float | None = None
    retention_keep_completed: int | None = None
    retention_keep_failed: int | None = None
    retention_stale_job_timeout: float | None = None

    # Worker config
    worker_poll_interval: float | None = None
    worker_auto_summarize: bool | None = None
    worker_shutdown_timeout: float | None = None

    # Server config
    server_bind: str | None = None
    server_port: int | None = None
    server_shutdown_timeout: float | None = None
    server_auth_token: str | None = None
    server_maintenance_interval: float | None = None
    server_maintenance_initial_delay: float | None = None

    # Provider config
    provider_transcription: str | None = None
    provider_summarization: str | None = None
    provider_api_key: str | None = None
    provider_base_url: str | None = None
    provider_transcription_model: str | None = None
    provider_summarization_model: str | None = None
    provider_language: str | None = None

    # Logging config
    logging_level: str | None = None
    logging_file: Path | None = None
    logging_format: str | None = None
    logging_include_stderr: bool | None = None
    logging_max_bytes: int | None = None
    logging_backup_count: int | None = None

    # Per-queue overrides: {"transcribe": {"max_attempts": 5}, ...}
    queues: dict[str, dict[str, Any]] = field(default_factory=dict)


class ConfigBuilder:
    """Builds VNOConfig by layering ConfigSources with precedence.

    Later sources override earlier ones (for non-None values).

    Example:
        builder = ConfigBuilder()
        builder.apply(source_from_file(file_config))
        builder.apply(source_from_env(reader))
        builder.apply(cli_source)
        config = builder.build()
    """

    def __init__(self) -> None:
        """Initialize the builder with no values set."""
        self._values: dict[str, Any] = {}
        self._queue_values: dict[str, dict[str, Any]] = {
            q.value: {} for q in QueueName
        }
        self._applied: list[str] = []

    def apply(self, source: ConfigSource, source_name: str = "") -> None:
        """Apply a configuration source, overriding existing values.

        Args:
            source: Configuration source to apply.
            source_name: Label recorded for diagnostics.
        """
        for field_obj in fields(source):
            if field_obj.name == "queues":
                continue
            value = getattr(source, field_obj.name)
            if value is not None:
                self._values[field_obj.name] = value

        for queue_name, overrides in source.queues.items():
            target = self._queue_values.get(queue_name)
            if target is None:
                raise ValueError(
                    f"Unknown queue in configuration: {queue_name!r}"
                )
            for key, value in overrides.items():
                if key not in QUEUE_KEYS:
                    raise ValueError(
                        f"Unknown setting for queue {queue_name}: {key!r}"
                    )
                if value is not None:
                    target[key] = value

        if source_name:
            self._applied.append(source_name)

    @property
    def applied_sources(self) -> list[str]:
        """Names of sources applied so far, lowest precedence first."""
        return list(self._applied)

    def _get(self, key: str, default: Any) -> Any:
        return self._values.get(key, default)

    def _build_queues(self) -> dict[QueueName, QueueConfig]:
        defaults = VNOConfig().queues
        queues: dict[QueueName, QueueConfig] = {}
        for name in QueueName:
            base = defaults[name]
            merged = {key: getattr(base, key) for key in QUEUE_KEYS}
            merged.update(self._queue_values[name.value])
            queues[name] = QueueConfig(**merged)
        return queues

    def build(self) -> VNOConfig:
        """Build the final VNOConfig with defaults for unset values.

        Raises:
            ValueError: If any resolved value fails model validation.
        """
        retention = RetentionConfig(
            completed_max_age=self._get("retention_completed_max_age", 86_400.0),
            failed_max_age=self._get("retention_failed_max_age", 86_400.0),
            keep_completed=self._get("retention_keep_completed", 50),
            keep_failed=self._get("retention_keep_failed", 20),
            stale_job_timeout=self._get("retention_stale_job_timeout", 900.0),
        )

        worker = WorkerConfig(
            poll_interval=self._get("worker_poll_interval", 1.0),
            auto_summarize=self._get("worker_auto_summarize", True),
            shutdown_timeout=self._get("worker_shutdown_timeout", 30.0),
        )

        server = ServerConfig(
            bind=self._get("server_bind", "127.0.0.1"),
            port=self._get("server_port", 8340),
            shutdown_timeout=self._get("server_shutdown_timeout", 30.0),
            auth_token=self._get("server_auth_token", None),
            maintenance_interval=self._get("server_maintenance_interval", 900.0),
            maintenance_initial_delay=self._get(
                "server_maintenance_initial_delay", 60.0
            ),
        )

        providers = ProviderConfig(
            transcription=self._get("provider_transcription", "mock"),
            summarization=self._get("provider_summarization", "mock"),
            api_key=self._get("provider_api_key", None),
            base_url=self._get("provider_base_url", "https://api.openai.com/v1"),
            transcription_model=self._get("provider_transcription_model", "whisper-1"),
            summarization_model=self._get(
                "provider_summarization_model", "gpt-4o-mini"
            ),
            language=self._get("provider_language", None),
        )

        logging_config = LoggingConfig(
            level=self._get("logging_level", "info"),
            file=self._get("logging_file", None),
            format=self._get("logging_format", "text"),
            include_stderr=self._get("logging_include_stderr", False),
            max_bytes=self._get("logging_max_bytes", 10_485_760),
            backup_count=self._get("logging_backup_count", 5),
        )

        return VNOConfig(
            queues=self._build_queues(),
            retention=retention,
            worker=worker,
            server=server,
            providers=providers,
            logging=logging_config,
            database_path=self._get("database_path", None),
            data_dir=self._get("data_dir", None),
        )


def _seconds(value: Any) -> float | None:
    """Accept numbers (seconds) or duration strings like "15m" from TOML."""
    if value is None:
        return None
    if isinstance(value, str):
        return parse_duration(value).total_seconds()
    return float(value)


def _path(value: Any) -> Path | None:
    return Path(value).expanduser() if value else None


def source_from_file(file_config: dict[str, Any]) -> ConfigSource:
    """Create ConfigSource from a parsed TOML config file.

    Args:
        file_config: Parsed configuration dictionary from TOML file.

    Returns:
        ConfigSource with values from the config file.

    Raises:
        ValueError: If a duration string cannot be parsed.
    """
    retention = file_config.get("retention", {})
    worker = file_config.get("worker", {})
    server = file_config.get("server", {})
    providers = file_config.get("providers", {})
    logging_conf = file_config.get("logging", {})
    queues = file_config.get("queues", {})

    queue_overrides: dict[str, dict[str, Any]] = {}
    for name, section in queues.items():
        overrides = dict(section)
        if "provider_timeout" in overrides:
            overrides["provider_timeout"] = _seconds(overrides["provider_timeout"])
        queue_overrides[name] = overrides

    return ConfigSource(
        database_path=_path(file_config.get("database_path")),
        data_dir=_path(file_config.get("data_dir")),
        # Retention
        retention_completed_max_age=_seconds(retention.get("completed_max_age")),
        retention_failed_max_age=_seconds(retention.get("failed_max_age")),
        retention_keep_completed=retention.get("keep_completed"),
        retention_keep_failed=retention.get("keep_failed"),
        retention_stale_job_timeout=_seconds(retention.get("stale_job_timeout")),
        # Worker
        worker_poll_interval=_seconds(worker.get("poll_interval")),
        worker_auto_summarize=worker.get("auto_summarize"),
        worker_shutdown_timeout=_seconds(worker.get("shutdown_timeout")),
        # Server
        server_bind=server.get("bind"),
        server_port=server.get("port"),
        server_shutdown_timeout=_seconds(server.get("shutdown_timeout")),
        server_auth_token=server.get("auth_token"),
        server_maintenance_interval=_seconds(server.get("maintenance_interval")),
        server_maintenance_initial_delay=_seconds(
            server.get("maintenance_initial_delay")
        ),
        # Providers
        provider_transcription=providers.get("transcription"),
        provider_summarization=providers.get("summarization"),
        provider_api_key=providers.get("api_key"),
        provider_base_url=providers.get("base_url"),
        provider_transcription_model=providers.get("transcription_model"),
        provider_summarization_model=providers.get("summarization_model"),
        provider_language=providers.get("language"),
        # Logging
        logging_level=logging_conf.get("level"),
        logging_file=_path(logging_conf.get("file")),
        logging_format=logging_conf.get("format"),
        logging_include_stderr=logging_conf.get("include_stderr"),
        logging_max_bytes=logging_conf.get("max_bytes"),
        logging_backup_count=logging_conf.get("backup_count"),
        queues=queue_overrides,
    )


def _queue_from_env(reader: EnvReader, name: QueueName) -> dict[str, Any]:
    prefix = f"VNO_{name.value.upper()}_"
    return {
        "priority": reader.get_int(prefix + "PRIORITY"),
        "max_attempts": reader.get_int(prefix + "MAX_ATTEMPTS"),
        "backoff_base": reader.get_float(prefix + "BACKOFF_BASE"),
        "backoff_max": reader.get_float(prefix + "BACKOFF_MAX"),
        "provider_timeout": reader.get_seconds(prefix + "PROVIDER_TIMEOUT"),
        "concurrency": reader.get_int(prefix + "CONCURRENCY"),
    }


def source_from_env(reader: EnvReader) -> ConfigSource:
    """Create ConfigSource from environment variables.

    Args:
        reader: EnvReader instance for reading environment variables.

    Returns:
        ConfigSource with values from environment variables.
    """
    return ConfigSource(
        database_path=reader.get_path("VNO_DATABASE_PATH"),
        data_dir=reader.get_path("VNO_DATA_DIR"),
        # Retention
        retention_completed_max_age=reader.get_seconds(
            "VNO_RETENTION_COMPLETED_MAX_AGE"
        ),
        retention_failed_max_age=reader.get_seconds("VNO_RETENTION_FAILED_MAX_AGE"),
        retention_keep_completed=reader.get_int("VNO_RETENTION_KEEP_COMPLETED"),
        retention_keep_failed=reader.get_int("VNO_RETENTION_KEEP_FAILED"),
        retention_stale_job_timeout=reader.get_seconds("VNO_STALE_JOB_TIMEOUT"),
        # Worker
        worker_poll_interval=reader.get_seconds("VNO_WORKER_POLL_INTERVAL"),
        worker_auto_summarize=reader.get_bool("VNO_AUTO_SUMMARIZE"),
        worker_shutdown_timeout=reader.get_seconds("VNO_WORKER_SHUTDOWN_TIMEOUT"),
        # Server
        server_bind=reader.get_str("VNO_SERVER_BIND"),
        server_port=reader.get_int("VNO_SERVER_PORT"),
        server_shutdown_timeout=reader.get_seconds("VNO_SERVER_SHUTDOWN_TIMEOUT"),
        server_auth_token=reader.get_str("VNO_AUTH_TOKEN"),
        server_maintenance_interval=reader.get_seconds("VNO_MAINTENANCE_INTERVAL"),
        server_maintenance_initial_delay=None,
        # Providers
        provider_transcription=reader.get_str("VNO_TRANSCRIPTION_PROVIDER"),
        provider_summarization=reader.get_str("VNO_SUMMARIZATION_PROVIDER"),
        provider_api_key=reader.get_str("VNO_PROVIDER_API_KEY"),
        provider_base_url=reader.get_str("VNO_PROVIDER_BASE_URL"),
        provider_transcription_model=reader.get_str("VNO_TRANSCRIPTION_MODEL"),
        provider_summarization_model=reader.get_str("VNO_SUMMARIZATION_MODEL"),
        provider_language=reader.get_str("VNO_LANGUAGE"),
        # Logging
        logging_level=reader.get_str("VNO_LOG_LEVEL"),
        logging_file=reader.get_path("VNO_LOG_FILE"),
        logging_format=reader.get_str("VNO_LOG_FORMAT"),
        logging_include_stderr=reader.get_bool("VNO_LOG_INCLUDE_STDERR"),
        logging_max_bytes=None,
        logging_backup_count=None,
        queues={q.value: _queue_from_env(reader, q) for q in QueueName},
    )
