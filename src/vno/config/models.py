"""Configuration data models.

This module defines dataclasses for VNO configuration options.
"""

from dataclasses import dataclass, field
from pathlib import Path

from vno.db.types import QueueName


@dataclass
class QueueConfig:
    """Per-queue job processing settings."""

    # Lower values are dequeued first
    priority: int = 10

    # Attempts before a job becomes terminal-failed
    max_attempts: int = 3

    # Exponential backoff between retries (seconds)
    backoff_base: float = 2.0
    backoff_max: float = 300.0
    backoff_multiplier: float = 2.0
    backoff_jitter: float = 0.1

    # Upper bound on a single provider call (seconds)
    provider_timeout: float = 120.0

    # Number of worker threads for this queue
    concurrency: int = 2

    def __post_init__(self) -> None:
        """Validate configuration."""
        if self.max_attempts < 1:
            raise ValueError(
                f"max_attempts must be at least 1, got {self.max_attempts}"
            )
        if self.backoff_base < 0 or self.backoff_max < 0:
            raise ValueError("backoff delays must not be negative")
        if self.backoff_multiplier < 1:
            raise ValueError(
                f"backoff_multiplier must be >= 1, got {self.backoff_multiplier}"
            )
        if not 0 <= self.backoff_jitter < 1:
            raise ValueError(
                f"backoff_jitter must be in [0, 1), got {self.backoff_jitter}"
            )
        if self.provider_timeout <= 0:
            raise ValueError(
                f"provider_timeout must be positive, got {self.provider_timeout}"
            )
        if self.concurrency < 1:
            raise ValueError(f"concurrency must be at least 1, got {self.concurrency}")


def _default_queues() -> dict[QueueName, QueueConfig]:
    return {
        QueueName.TRANSCRIBE: QueueConfig(priority=10, concurrency=2),
        QueueName.SUMMARIZE: QueueConfig(priority=5, concurrency=3),
    }


@dataclass
class RetentionConfig:
    """Retention of finished jobs and recovery of abandoned ones."""

    # Completed/failed jobs older than this are purged (seconds)
    completed_max_age: float = 86_400.0
    failed_max_age: float = 86_400.0

    # Newest finished jobs kept per queue regardless of age
    keep_completed: int = 50
    keep_failed: int = 20

    # Active jobs with no progress for this long are treated as lost (seconds)
    stale_job_timeout: float = 900.0

    def __post_init__(self) -> None:
        """Validate configuration."""
        if self.completed_max_age < 0 or self.failed_max_age < 0:
            raise ValueError("max ages must not be negative")
        if self.keep_completed < 0 or self.keep_failed < 0:
            raise ValueError("keep counts must not be negative")
        if self.stale_job_timeout <= 0:
            raise ValueError(
                f"stale_job_timeout must be positive, got {self.stale_job_timeout}"
            )


@dataclass
class WorkerConfig:
    """Configuration for job worker defaults."""

    # Idle wait between empty polls (seconds)
    poll_interval: float = 1.0

    # Queue a summarize job once transcription succeeds
    auto_summarize: bool = True

    # Seconds to wait for in-flight jobs when stopping
    shutdown_timeout: float = 30.0

    def __post_init__(self) -> None:
        """Validate configuration."""
        if self.poll_interval <= 0:
            raise ValueError(
                f"poll_interval must be positive, got {self.poll_interval}"
            )
        if self.shutdown_timeout <= 0:
            raise ValueError(
                f"shutdown_timeout must be positive, got {self.shutdown_timeout}"
            )


@dataclass
class ProviderConfig:
    """External AI provider selection and credentials."""

    transcription: str = "mock"
    """Transcription provider: "mock" or "openai"."""

    summarization: str = "mock"
    """Summarization provider: "mock" or "openai"."""

    api_key: str | None = None
    base_url: str = "https://api.openai.com/v1"
    transcription_model: str = "whisper-1"
    summarization_model: str = "gpt-4o-mini"
    language: str | None = None

    def __post_init__(self) -> None:
        """Validate configuration."""
        valid = {"mock", "openai"}
        for name in (self.transcription, self.summarization):
            if name not in valid:
                raise ValueError(f"provider must be one of {valid}, got {name}")
        if not self.base_url.startswith(("http://", "https://")):
            raise ValueError("base_url must start with http:// or https://")


@dataclass
class LoggingConfig:
    """Configuration for structured logging."""

    # Log level: debug, info, warning, error
    level: str = "info"

    # Log file path (None = stderr only)
    file: Path | None = None

    # Log format: text or json
    format: str = "text"

    # Also log to stderr when file is set
    include_stderr: bool = False

    # Rotation threshold in bytes (default 10MB)
    max_bytes: int = 10_485_760

    # Number of rotated files to keep
    backup_count: int = 5

    def __post_init__(self) -> None:
        """Validate configuration."""
        valid_levels = {"debug", "info", "warning", "error"}
        if self.level.lower() not in valid_levels:
            raise ValueError(f"level must be one of {valid_levels}, got {self.level}")
        valid_formats = {"text", "json"}
        if self.format.lower() not in valid_formats:
            raise ValueError(
                f"format must be one of {valid_formats}, got {self.format}"
            )


@dataclass
class ServerConfig:
    """Configuration for the admin server (`vno serve`)."""

    bind: str = "127.0.0.1"
    """Network address to bind to. Default localhost."""

    port: int = 8340
    """Port number for the admin HTTP server."""

    shutdown_timeout: float = 30.0
    """Seconds to wait for graceful shutdown before cancelling tasks."""

    auth_token: str | None = None
    """Shared admin token. Required unless the server runs with --insecure."""

    maintenance_interval: float = 900.0
    """Seconds between retention/recovery runs."""

    maintenance_initial_delay: float = 60.0
    """Seconds before the first retention/recovery run."""

    def __post_init__(self) -> None:
        """Validate configuration."""
        if not 1 <= self.port <= 65535:
            raise ValueError(f"port must be 1-65535, got {self.port}")
        if self.shutdown_timeout <= 0:
            raise ValueError(
                f"shutdown_timeout must be positive, got {self.shutdown_timeout}"
            )
        if self.maintenance_interval <= 0:
            raise ValueError(
                "maintenance_interval must be positive, "
                f"got {self.maintenance_interval}"
            )


@dataclass
class VNOConfig:
    """Main configuration container for VNO.

    Aggregates all configuration sections.
    """

    queues: dict[QueueName, QueueConfig] = field(default_factory=_default_queues)
    retention: RetentionConfig = field(default_factory=RetentionConfig)
    worker: WorkerConfig = field(default_factory=WorkerConfig)
    server: ServerConfig = field(default_factory=ServerConfig)
    providers: ProviderConfig = field(default_factory=ProviderConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    # Database path (None = ~/.vno/vno.db)
    database_path: Path | None = None

    # Directory for media files referenced by relative paths
    data_dir: Path | None = None

    def __post_init__(self) -> None:
        """Validate settings that span sections."""
        slowest = max((q.provider_timeout for q in self.queues.values()), default=0.0)
        if self.retention.stale_job_timeout <= slowest:
            # A job still inside its provider call must never look abandoned
            raise ValueError(
                "stale_job_timeout must exceed the longest provider_timeout "
                f"({self.retention.stale_job_timeout:g}s <= {slowest:g}s)"
            )

    def queue(self, name: QueueName) -> QueueConfig:
        """Return settings for one queue."""
        return self.queues[name]
