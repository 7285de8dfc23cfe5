"""Tests for configuration model validation."""

import pytest

from vno.config.logging_factory import build_logging_config
from vno.config.models import (
    LoggingConfig,
    ProviderConfig,
    QueueConfig,
    RetentionConfig,
    ServerConfig,
    VNOConfig,
)
from vno.db.types import QueueName


class TestQueueConfig:
    """Tests for QueueConfig validation."""

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"max_attempts": 0},
            {"backoff_base": -1.0},
            {"backoff_multiplier": 0.5},
            {"backoff_jitter": 1.0},
            {"provider_timeout": 0},
            {"concurrency": 0},
        ],
    )
    def test_rejects_invalid(self, kwargs: dict) -> None:
        with pytest.raises(ValueError):
            QueueConfig(**kwargs)


class TestOtherModels:
    """Validation for the remaining sections."""

    def test_retention_rejects_negative(self) -> None:
        with pytest.raises(ValueError):
            RetentionConfig(keep_failed=-1)

    def test_server_port_range(self) -> None:
        with pytest.raises(ValueError, match="port"):
            ServerConfig(port=70000)

    def test_provider_names(self) -> None:
        with pytest.raises(ValueError, match="provider"):
            ProviderConfig(transcription="acme")

    def test_logging_level(self) -> None:
        with pytest.raises(ValueError, match="level"):
            LoggingConfig(level="loud")


class TestVNOConfig:
    """Cross-section validation."""

    def test_stale_timeout_must_outlast_provider_calls(self) -> None:
        with pytest.raises(ValueError, match="stale_job_timeout"):
            VNOConfig(
                queues={QueueName.TRANSCRIBE: QueueConfig(provider_timeout=600.0)},
                retention=RetentionConfig(stale_job_timeout=600.0),
            )

    def test_defaults_are_consistent(self) -> None:
        config = VNOConfig()
        assert config.retention.stale_job_timeout > max(
            q.provider_timeout for q in config.queues.values()
        )


class TestBuildLoggingConfig:
    """Tests for build_logging_config()."""

    def test_cli_overrides_base(self) -> None:
        base = LoggingConfig(level="info", format="text", backup_count=2)
        merged = build_logging_config(base, level="debug", format="json")
        assert merged.level == "debug"
        assert merged.format == "json"
        assert merged.backup_count == 2

    def test_no_overrides(self) -> None:
        base = LoggingConfig(level="warning")
        assert build_logging_config(base) == base
