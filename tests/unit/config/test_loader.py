"""Tests for configuration loading and precedence."""

from pathlib import Path

import pytest

from vno.config.env import EnvReader
from vno.config.loader import (
    ConfigError,
    clear_config_cache,
    get_config,
    get_database_path,
    load_config_file,
)
from vno.config.models import VNOConfig
from vno.db.types import QueueName

CONFIG_TOML = """
database_path = "/srv/vno/notes.db"

[server]
port = 9000
bind = "0.0.0.0"

[queues.transcribe]
max_attempts = 5
provider_timeout = "3m"

[retention]
keep_completed = 10
"""


@pytest.fixture(autouse=True)
def _clear_cache():
    clear_config_cache()
    yield
    clear_config_cache()


@pytest.fixture
def config_file(tmp_path: Path) -> Path:
    path = tmp_path / "config.toml"
    path.write_text(CONFIG_TOML)
    return path


class TestLoadConfigFile:
    """Tests for load_config_file()."""

    def test_missing_file_is_empty(self, tmp_path: Path) -> None:
        assert load_config_file(tmp_path / "absent.toml") == {}

    def test_parses_toml(self, config_file: Path) -> None:
        data = load_config_file(config_file)
        assert data["server"]["port"] == 9000

    def test_invalid_toml_lenient(self, tmp_path: Path) -> None:
        """Broken files are ignored unless strict."""
        path = tmp_path / "bad.toml"
        path.write_text("[server\nport = ")
        assert load_config_file(path) == {}

    def test_invalid_toml_strict(self, tmp_path: Path) -> None:
        path = tmp_path / "bad.toml"
        path.write_text("[server\nport = ")
        with pytest.raises(ConfigError, match="Cannot load config file"):
            load_config_file(path, strict=True)


class TestGetConfig:
    """Tests for get_config() precedence."""

    def test_file_values(self, config_file: Path) -> None:
        config = get_config(config_file, env_reader=EnvReader(env={}))
        assert config.server.port == 9000
        assert config.database_path == Path("/srv/vno/notes.db")
        transcribe = config.queue(QueueName.TRANSCRIBE)
        assert transcribe.max_attempts == 5
        assert transcribe.provider_timeout == 180.0
        assert config.retention.keep_completed == 10
        # Untouched queue keeps its defaults
        assert config.queue(QueueName.SUMMARIZE).max_attempts == 3

    def test_env_overrides_file(self, config_file: Path) -> None:
        env = EnvReader(
            env={
                "VNO_SERVER_PORT": "9100",
                "VNO_TRANSCRIBE_MAX_ATTEMPTS": "7",
                "VNO_STALE_JOB_TIMEOUT": "5m",
                "VNO_LOG_LEVEL": "debug",
            }
        )
        config = get_config(config_file, env_reader=env)
        assert config.server.port == 9100
        assert config.server.bind == "0.0.0.0"
        assert config.queue(QueueName.TRANSCRIBE).max_attempts == 7
        assert config.retention.stale_job_timeout == 300.0
        assert config.logging.level == "debug"

    def test_cli_overrides_env(self, config_file: Path, tmp_path: Path) -> None:
        env = EnvReader(env={"VNO_SERVER_PORT": "9100", "VNO_AUTH_TOKEN": "env"})
        config = get_config(
            config_file,
            database_path=tmp_path / "cli.db",
            server_port=9200,
            auth_token="cli",
            env_reader=env,
        )
        assert config.server.port == 9200
        assert config.server.auth_token == "cli"
        assert config.database_path == tmp_path / "cli.db"

    def test_invalid_env_value_raises_config_error(self, tmp_path: Path) -> None:
        env = EnvReader(env={"VNO_SUMMARIZE_MAX_ATTEMPTS": "0"})
        with pytest.raises(ConfigError, match="max_attempts"):
            get_config(tmp_path / "absent.toml", env_reader=env)

    def test_invalid_duration_in_file(self, tmp_path: Path) -> None:
        path = tmp_path / "config.toml"
        path.write_text('[retention]\nstale_job_timeout = "forever"\n')
        with pytest.raises(ConfigError, match="Invalid config file"):
            get_config(path, env_reader=EnvReader(env={}))

    def test_unknown_queue_in_file(self, tmp_path: Path) -> None:
        path = tmp_path / "config.toml"
        path.write_text("[queues.translate]\nmax_attempts = 2\n")
        with pytest.raises(ConfigError, match="Unknown queue"):
            get_config(path, env_reader=EnvReader(env={}))


class TestGetDatabasePath:
    """Tests for get_database_path()."""

    def test_explicit_path(self, tmp_path: Path) -> None:
        config = VNOConfig(database_path=tmp_path / "x.db")
        assert get_database_path(config) == tmp_path / "x.db"

    def test_defaults_under_data_dir(self, tmp_path: Path) -> None:
        config = VNOConfig(data_dir=tmp_path)
        assert get_database_path(config) == tmp_path / "vno.db"
