"""Tests for configuration management."""

import pytest
import yaml

from warden.config import (
    Config,
    ConfigError,
    Environment,
    FeatureFlags,
    get_config_file_path,
    get_environment,
    load_config,
    load_config_from_env,
    load_config_from_file,
    validate_config,
)
from warden.manifest import DEFAULT_WORLD_POLICY, ActionRateLimit, Capability

WARDEN_ENV_VARS = [
    "WARDEN_CONFIG",
    "WARDEN_ENVIRONMENT",
    "WARDEN_DEBUG",
    "WARDEN_FEATURES",
    "WARDEN_LOG_LEVEL",
    "WARDEN_LOG_FORMAT",
    "WARDEN_METRICS_PORT",
    "WARDEN_HABITAT_VERSION",
    "WARDEN_QUARANTINE_THIRD_PARTY",
    "WARDEN_MAX_COMPUTE_BUDGET_MS",
    "WARDEN_SCHEDULING_OVERHEAD_MS",
    "WARDEN_NOISE_SEED",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in WARDEN_ENV_VARS:
        monkeypatch.delenv(name, raising=False)


def _write_yaml(path, data):
    path.write_text(yaml.safe_dump(data))
    return path


class TestFeatureFlags:
    """Test feature flags functionality."""

    def test_default_features(self):
        features = FeatureFlags()

        assert features.structured_logging is True
        assert features.log_truncation is True
        assert features.metrics_export is True
        assert features.tracing is False

    def test_from_env_empty(self):
        """Unset variable keeps the defaults."""
        features = FeatureFlags.from_env("NONEXISTENT_VAR")

        assert features == FeatureFlags()

    def test_from_env_with_features(self, monkeypatch):
        monkeypatch.setenv("TEST_FEATURES", "logging, Tracing")

        features = FeatureFlags.from_env("TEST_FEATURES")

        assert features.structured_logging is True
        assert features.tracing is True
        assert features.log_truncation is False
        assert features.metrics_export is False

    def test_to_dict(self):
        assert FeatureFlags(tracing=True).to_dict() == {
            "structured_logging": True,
            "log_truncation": True,
            "metrics_export": True,
            "tracing": True,
        }


class TestConfig:
    """Test configuration defaults and validation."""

    def test_default_config(self):
        config = Config()

        assert config.environment == "development"
        assert config.debug is False
        assert config.policy == DEFAULT_WORLD_POLICY
        assert config.sandbox.scheduling_overhead_ms == 5.0
        assert config.sandbox.noise_seed is None
        assert config.logging.level == "INFO"
        assert config.metrics.port == 8000

    def test_partial_policy_is_filled_from_defaults(self):
        config = Config(policy={"habitatVersion": "1.4.0", "max_compute_budget_ms": 40})

        assert config.policy.habitat_version == "1.4.0"
        assert config.policy.max_compute_budget_ms == 40
        assert config.policy.max_capabilities == DEFAULT_WORLD_POLICY.max_capabilities

    def test_rejects_malformed_habitat_version(self):
        with pytest.raises(ValueError):
            Config(policy={"habitat_version": "v1"})

    def test_rejects_negative_overhead(self):
        with pytest.raises(ValueError):
            Config(sandbox={"scheduling_overhead_ms": -1})

    def test_features_from_dict(self):
        config = Config(features={"tracing": True})

        assert config.features.tracing is True
        assert config.features.structured_logging is True

    def test_to_document(self):
        document = Config().to_document()

        assert document["policy"]["habitat_version"] == "0.12.0"
        assert document["features"]["log_truncation"] is True
        assert document["sandbox"] == {
            "scheduling_overhead_ms": 5.0,
            "noise_seed": None,
        }
        yaml.safe_dump(document)


class TestValidateConfig:
    """Test consistency checks."""

    def test_default_config_is_valid(self):
        validate_config(Config())

    def test_empty_capability_ceiling(self):
        config = Config()
        config.policy = config.policy.model_copy(update={"max_capabilities": ()})

        with pytest.raises(ConfigError, match="max_capabilities must not be empty"):
            validate_config(config)

    def test_zero_action_cap(self):
        config = Config()
        config.policy = config.policy.model_copy(
            update={"max_action_rate": ActionRateLimit(window_ticks=10, max=0)}
        )

        with pytest.raises(ConfigError, match="max_action_rate.max must be positive"):
            validate_config(config)

    @pytest.mark.parametrize("port", [0, 70000])
    def test_invalid_metrics_port(self, port):
        config = Config()
        config.metrics.port = port

        with pytest.raises(ConfigError, match="metrics.port"):
            validate_config(config)

    def test_production_debug(self):
        config = Config(environment="production", debug=True)

        with pytest.raises(
            ConfigError, match="Debug mode should not be enabled in production"
        ):
            validate_config(config)

    def test_production_debug_logging(self):
        config = Config(environment="production", logging={"level": "DEBUG"})

        with pytest.raises(ConfigError, match="DEBUG logging"):
            validate_config(config)

    def test_production_requires_truncation(self):
        config = Config(environment="production", features={"log_truncation": False})

        with pytest.raises(ConfigError, match="Log truncation"):
            validate_config(config)

    def test_debug_allowed_outside_production(self):
        validate_config(Config(environment="staging", debug=True))


class TestConfigLoading:
    """Test configuration loading from various sources."""

    def test_load_config_from_file(self, tmp_path):
        path = _write_yaml(
            tmp_path / "warden.yaml",
            {
                "environment": "staging",
                "policy": {
                    "maxCapabilities": ["MOVE"],
                    "quarantineThirdParty": False,
                },
                "sandbox": {"noise_seed": 11},
            },
        )

        config = load_config_from_file(path)

        assert config.environment == "staging"
        assert config.policy.max_capabilities == (Capability.MOVE,)
        assert config.policy.quarantine_third_party is False
        assert config.policy.habitat_version == DEFAULT_WORLD_POLICY.habitat_version
        assert config.sandbox.noise_seed == 11

    def test_partial_nested_policy_block_is_filled(self, tmp_path):
        path = _write_yaml(
            tmp_path / "warden.yaml", {"policy": {"maxActionRate": {"max": 3}}}
        )

        config = load_config_from_file(path)

        assert config.policy.max_action_rate.max == 3
        assert (
            config.policy.max_action_rate.window_ticks
            == DEFAULT_WORLD_POLICY.max_action_rate.window_ticks
        )

    def test_load_empty_file(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")

        assert load_config_from_file(path).policy == DEFAULT_WORLD_POLICY

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigError, match="not found"):
            load_config_from_file(tmp_path / "missing.yaml")

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("policy: [unclosed\n")

        with pytest.raises(ConfigError, match="Invalid YAML"):
            load_config_from_file(path)

    def test_non_mapping_file(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n")

        with pytest.raises(ConfigError, match="must contain a mapping"):
            load_config_from_file(path)

    def test_invalid_values(self, tmp_path):
        path = _write_yaml(tmp_path / "warden.yaml", {"environment": "moon"})

        with pytest.raises(ConfigError, match="validation failed"):
            load_config_from_file(path)

    def test_load_config_from_env(self, monkeypatch):
        monkeypatch.setenv("WARDEN_ENVIRONMENT", "Production")
        monkeypatch.setenv("WARDEN_DEBUG", "yes")
        monkeypatch.setenv("WARDEN_LOG_LEVEL", "warning")
        monkeypatch.setenv("WARDEN_METRICS_PORT", "9100")
        monkeypatch.setenv("WARDEN_HABITAT_VERSION", "0.13.2")
        monkeypatch.setenv("WARDEN_QUARANTINE_THIRD_PARTY", "false")
        monkeypatch.setenv("WARDEN_MAX_COMPUTE_BUDGET_MS", "25")
        monkeypatch.setenv("WARDEN_SCHEDULING_OVERHEAD_MS", "2.5")
        monkeypatch.setenv("WARDEN_NOISE_SEED", "42")

        config = load_config_from_env()

        assert config.environment == "production"
        assert config.debug is True
        assert config.logging.level == "WARNING"
        assert config.metrics.port == 9100
        assert config.policy.habitat_version == "0.13.2"
        assert config.policy.quarantine_third_party is False
        assert config.policy.max_compute_budget_ms == 25
        assert config.sandbox.scheduling_overhead_ms == 2.5
        assert config.sandbox.noise_seed == 42

    def test_env_features(self, monkeypatch):
        monkeypatch.setenv("WARDEN_FEATURES", "metrics")

        config = load_config_from_env()

        assert config.features.metrics_export is True
        assert config.features.structured_logging is False

    def test_invalid_env_number(self, monkeypatch):
        monkeypatch.setenv("WARDEN_METRICS_PORT", "eighty")

        with pytest.raises(ConfigError, match="Invalid WARDEN_METRICS_PORT"):
            load_config_from_env()

    def test_env_overrides_single_file_setting(self, tmp_path, monkeypatch):
        """An override replaces one policy key and keeps the rest of the file."""
        path = _write_yaml(
            tmp_path / "warden.yaml",
            {
                "policy": {"max_compute_budget_ms": 50, "habitat_version": "1.0.0"},
                "logging": {"format": "text"},
            },
        )
        monkeypatch.setenv("WARDEN_HABITAT_VERSION", "2.0.0")
        monkeypatch.setenv("WARDEN_LOG_LEVEL", "ERROR")

        config = load_config(path)

        assert config.policy.habitat_version == "2.0.0"
        assert config.policy.max_compute_budget_ms == 50
        assert config.logging.level == "ERROR"
        assert config.logging.format == "text"

    def test_load_config_without_file(self, tmp_path):
        config = load_config(tmp_path / "absent.yaml")

        assert config == Config()


class TestEnvironment:
    """Test environment detection."""

    def test_from_variable(self, monkeypatch):
        monkeypatch.setenv("WARDEN_ENVIRONMENT", "testing")

        assert get_environment() == Environment.TESTING

    def test_from_marker_file(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        (tmp_path / ".env.staging").touch()

        assert get_environment() == Environment.STAGING

    def test_unknown_value_falls_back(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("WARDEN_ENVIRONMENT", "lunar")

        assert get_environment() == Environment.DEVELOPMENT

    def test_config_file_discovery(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        (tmp_path / "config").mkdir()
        (tmp_path / "config" / "production.yaml").write_text("debug: false\n")
        (tmp_path / "warden.yaml").write_text("debug: false\n")

        assert str(get_config_file_path(Environment.PRODUCTION)) == (
            "config/production.yaml"
        )
        assert str(get_config_file_path(Environment.STAGING)) == "warden.yaml"

    def test_no_config_file(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)

        assert get_config_file_path(Environment.DEVELOPMENT) is None

    def test_explicit_config_path(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        (tmp_path / "warden.yaml").write_text("debug: false\n")
        monkeypatch.setenv("WARDEN_CONFIG", "/etc/warden/site.yaml")

        assert str(get_config_file_path()) == "/etc/warden/site.yaml"
