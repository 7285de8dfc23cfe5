"""Tests for ConfigBuilder layering."""

import pytest

from vno.config.builder import ConfigBuilder, ConfigSource, source_from_file
from vno.db.types import QueueName


class TestConfigBuilder:
    """Tests for ConfigBuilder."""

    def test_defaults(self) -> None:
        """An empty builder yields the documented defaults."""
        config = ConfigBuilder().build()
        assert config.server.port == 8340
        assert config.queue(QueueName.TRANSCRIBE).priority == 10
        assert config.queue(QueueName.SUMMARIZE).priority == 5
        assert config.queue(QueueName.TRANSCRIBE).max_attempts == 3
        assert config.retention.stale_job_timeout == 900.0

    def test_later_sources_win(self) -> None:
        builder = ConfigBuilder()
        builder.apply(ConfigSource(server_port=9000, server_bind="0.0.0.0"), "file")
        builder.apply(ConfigSource(server_port=9100), "env")
        config = builder.build()
        assert config.server.port == 9100
        assert config.server.bind == "0.0.0.0"
        assert builder.applied_sources == ["file", "env"]

    def test_none_does_not_override(self) -> None:
        builder = ConfigBuilder()
        builder.apply(ConfigSource(queues={"transcribe": {"max_attempts": 5}}))
        builder.apply(ConfigSource(queues={"transcribe": {"max_attempts": None}}))
        assert builder.build().queue(QueueName.TRANSCRIBE).max_attempts == 5

    def test_queue_overrides_are_independent(self) -> None:
        """Overriding one queue leaves the other at its defaults."""
        builder = ConfigBuilder()
        builder.apply(ConfigSource(queues={"summarize": {"concurrency": 7}}))
        config = builder.build()
        assert config.queue(QueueName.SUMMARIZE).concurrency == 7
        assert config.queue(QueueName.TRANSCRIBE).concurrency == 2

    def test_unknown_queue_rejected(self) -> None:
        with pytest.raises(ValueError, match="Unknown queue"):
            ConfigBuilder().apply(ConfigSource(queues={"translate": {}}))

    def test_unknown_queue_setting_rejected(self) -> None:
        with pytest.raises(ValueError, match="Unknown setting"):
            ConfigBuilder().apply(ConfigSource(queues={"transcribe": {"speed": 1}}))

    def test_invalid_value_fails_build(self) -> None:
        builder = ConfigBuilder()
        builder.apply(ConfigSource(queues={"transcribe": {"max_attempts": 0}}))
        with pytest.raises(ValueError, match="max_attempts"):
            builder.build()


class TestSourceFromFile:
    """Tests for source_from_file()."""

    def test_duration_strings(self) -> None:
        """Durations may be written as strings or numbers of seconds."""
        source = source_from_file(
            {
                "retention": {"completed_max_age": "2d", "stale_job_timeout": 60},
                "queues": {"transcribe": {"provider_timeout": "2m"}},
            }
        )
        assert source.retention_completed_max_age == 172_800.0
        assert source.retention_stale_job_timeout == 60.0
        assert source.queues["transcribe"]["provider_timeout"] == 120.0

    def test_bad_duration_raises(self) -> None:
        with pytest.raises(ValueError, match="Invalid duration"):
            source_from_file({"worker": {"poll_interval": "often"}})

    def test_empty_file(self) -> None:
        source = source_from_file({})
        assert source.server_port is None
        assert source.queues == {}
