"""Tests for the configuration module."""

from pathlib import Path

import pytest

from push_engine.config import (
    ConfigurationError,
    EngineConfig,
    ProviderType,
    load_config,
    parse_config_dict,
)
from push_engine.config.duration import (
    DurationParseError,
    format_seconds,
    parse_duration,
    validate_duration_range,
)
from push_engine.config.environment import DEFAULT_DATABASE_URL, load_environment_config
from push_engine.config.validators import check_for_warnings

# Test fixtures directory
FIXTURES_DIR = Path(__file__).parent / "fixtures"


@pytest.fixture
def mock_env_vars(monkeypatch):
    """Provide the provider credential and clear optional overrides."""
    monkeypatch.setenv("FCM_SERVER_KEY", "test-server-key")
    for name in ("FCM_ENDPOINT", "DATABASE_URL", "LOG_LEVEL", "ENVIRONMENT"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def no_env_vars(monkeypatch):
    for name in ("FCM_SERVER_KEY", "FCM_ENDPOINT", "DATABASE_URL", "LOG_LEVEL", "ENVIRONMENT"):
        monkeypatch.delenv(name, raising=False)


class TestConfigurationLoading:
    """Test configuration loading from YAML files."""

    def test_load_valid_config(self, mock_env_vars):
        """Test loading a fully specified configuration file."""
        config, env = load_config(FIXTURES_DIR / "valid_config.yaml")

        assert config.provider.type == "fcm_legacy"
        assert config.provider.max_batch_size == 500
        assert config.validation.min_length == 10
        assert config.dispatch.worker_count == 3
        assert config.dispatch.deadline_seconds == 120.0
        assert config.retry.jitter == 0.25
        assert config.rate_limit.initial_tokens == 5
        assert config.circuit_breaker.window_seconds == 60.0
        assert config.circuit_breaker.cooldown_seconds == 45.0
        assert config.registry.dry_run is True
        assert config.consumer.spool_dir == "./var/spool"
        assert config.consumer.poll_interval_seconds == 60.0
        assert config.logging.level == "DEBUG"
        assert config.logging.format == "json"

        assert env.fcm_server_key == "test-server-key"
        assert env.database_url == DEFAULT_DATABASE_URL

    def test_load_minimal_config_applies_defaults(self, no_env_vars):
        """Test that a minimal file gets engine defaults."""
        config, env = load_config(FIXTURES_DIR / "minimal_config.yaml")

        assert config.provider.type == ProviderType.DRY_RUN.value
        assert config.dispatch.worker_count == 4
        assert config.dispatch.max_retries == 3
        assert config.dispatch.deadline_seconds is None
        assert config.rate_limit.capacity == 10
        assert config.circuit_breaker.threshold == 5
        assert config.circuit_breaker.window_seconds == 60.0
        assert config.circuit_breaker.cooldown_seconds == 30.0
        assert config.consumer.poll_interval_seconds == 30.0
        assert config.logging.level == "INFO"
        assert env.fcm_server_key is None

    def test_empty_file_means_defaults(self, tmp_path, mock_env_vars):
        """Test that an empty YAML file is accepted."""
        config_file = tmp_path / "config.yaml"
        config_file.write_text("")

        config, _ = load_config(config_file)

        assert config.model_dump() == EngineConfig().model_dump()

    def test_config_file_not_found(self, mock_env_vars):
        """Test error when config file doesn't exist."""
        with pytest.raises(ConfigurationError) as exc_info:
            load_config(Path("nonexistent.yaml"))

        assert "not found" in str(exc_info.value).lower()

    def test_invalid_yaml_syntax(self, tmp_path, mock_env_vars):
        """Test error when YAML syntax is invalid."""
        invalid_yaml = tmp_path / "invalid.yaml"
        invalid_yaml.write_text("provider:\n  type: 'dry_run\n    broken")

        with pytest.raises(ConfigurationError) as exc_info:
            load_config(invalid_yaml)

        assert "parse" in str(exc_info.value).lower()

    def test_missing_server_key_for_fcm(self, no_env_vars):
        """Test that fcm_legacy requires FCM_SERVER_KEY."""
        with pytest.raises(ConfigurationError) as exc_info:
            load_config(FIXTURES_DIR / "valid_config.yaml")

        assert "FCM_SERVER_KEY" in str(exc_info.value)

    def test_dry_run_skips_server_key(self, no_env_vars):
        """Test that dry-run loading does not need the provider credential."""
        config, env = load_config(FIXTURES_DIR / "valid_config.yaml", dry_run=True)

        assert config.provider.type == "fcm_legacy"
        assert env.fcm_server_key is None


class TestConfigurationValidation:
    """Test configuration validation rules."""

    def test_unknown_provider_type(self, mock_env_vars):
        with pytest.raises(ConfigurationError) as exc_info:
            load_config(FIXTURES_DIR / "invalid_bad_provider_type.yaml")

        assert "provider -> type" in str(exc_info.value)

    def test_bad_duration(self, mock_env_vars):
        with pytest.raises(ConfigurationError) as exc_info:
            load_config(FIXTURES_DIR / "invalid_bad_duration.yaml")

        assert "circuit_breaker" in str(exc_info.value)

    def test_base_delay_above_max_delay(self, mock_env_vars):
        with pytest.raises(ConfigurationError) as exc_info:
            load_config(FIXTURES_DIR / "invalid_retry_delays.yaml")

        assert "base_delay" in str(exc_info.value)

    def test_root_must_be_mapping(self):
        with pytest.raises(ConfigurationError):
            parse_config_dict(["provider"])

    @pytest.mark.parametrize(
        "raw",
        [
            {"dispatch": {"worker_count": 0}},
            {"rate_limit": {"capacity": 2, "initial_tokens": 3}},
            {"validation": {"min_length": 50, "max_length": 10}},
            {"consumer": {"spool_dir": "   "}},
            {"logging": {"format": "xml"}},
        ],
    )
    def test_out_of_range_values(self, raw):
        with pytest.raises(ConfigurationError):
            parse_config_dict(raw)

    def test_soft_warnings(self, mock_env_vars):
        """Test that legal but suspicious settings warn instead of failing."""
        with pytest.warns(UserWarning):
            config, _ = load_config(FIXTURES_DIR / "warning_config.yaml")

        messages = check_for_warnings(config)
        assert any("worker_count" in m and "capacity" in m for m in messages)
        assert any("max_retries is 0" in m for m in messages)


class TestEnvironment:
    """Tests for environment variable loading."""

    def test_invalid_log_level(self, mock_env_vars, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "LOUD")

        with pytest.raises(ConfigurationError):
            load_environment_config()

    def test_invalid_endpoint(self, mock_env_vars, monkeypatch):
        monkeypatch.setenv("FCM_ENDPOINT", "ftp://push")

        with pytest.raises(ConfigurationError):
            load_environment_config()

    def test_overrides_read(self, mock_env_vars, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "debug")
        monkeypatch.setenv("DATABASE_URL", "sqlite:///tmp/other.db")
        monkeypatch.setenv("ENVIRONMENT", "staging")

        env = load_environment_config()

        assert env.log_level == "DEBUG"
        assert env.database_url == "sqlite:///tmp/other.db"
        assert env.environment == "staging"

    def test_repr_hides_server_key(self, mock_env_vars):
        assert "test-server-key" not in repr(load_environment_config())


class TestDurationParsing:
    """Tests for duration parsing."""

    @pytest.mark.parametrize(
        "value,seconds",
        [
            ("30s", 30.0),
            ("5m", 300.0),
            ("1h30m", 5400.0),
            ("250ms", 0.25),
            ("2d", 172800.0),
            ("PT45S", 45.0),
            ("PT1M30S", 90.0),
            ("P1D", 86400.0),
            ("45", 45.0),
            (0.5, 0.5),
        ],
    )
    def test_valid_durations(self, value, seconds):
        assert parse_duration(value) == pytest.approx(seconds)

    @pytest.mark.parametrize("value", ["", "abc", "5x", "PT", "-5", 0, True])
    def test_invalid_durations(self, value):
        with pytest.raises(DurationParseError):
            parse_duration(value)

    def test_range_check(self):
        validate_duration_range(30, 1, 60)
        with pytest.raises(DurationParseError):
            validate_duration_range(0.5, 1, 60, label="Cooldown")
        with pytest.raises(DurationParseError):
            validate_duration_range(120, 1, 60)

    def test_format_seconds(self):
        assert format_seconds(90) == "1.5 minutes"
        assert format_seconds(1) == "1 second"
        assert format_seconds(0.25) == "250 milliseconds"
