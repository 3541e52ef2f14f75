"""Test configuration for HealthBridge."""

import pytest
import tempfile
from pathlib import Path
from healthbridge.core.config import Config, OverflowPolicy, load_config
from healthbridge.core.errors import ConfigurationError


class TestConfig:
    """Test configuration class."""

    def test_default_config_creation(self):
        """Test creating default configuration."""
        config = Config()

        assert config.queue.max_size == 10000
        assert config.queue.overflow_policy is OverflowPolicy.REJECT
        assert config.normalizer.source == "hl7-ingest"
        assert config.normalizer.default_facility_id is None
        assert config.policy.facility_whitelist == ["FACILITY_001", "FACILITY_002"]
        assert config.policy.required_message_type == "ADT"
        assert config.logging.level == "INFO"

    def test_config_from_yaml(self):
        """Test loading configuration from YAML."""
        yaml_content = """
        queue:
          max_size: 5
          overflow_policy: drop_oldest
        policy:
          facility_whitelist: [FACILITY_009]
        logging:
          level: debug
          json: true
        """

        with tempfile.NamedTemporaryFile(mode='w', suffix='.yaml', delete=False) as f:
            f.write(yaml_content)
            config_path = f.name

        try:
            config = Config.from_yaml(config_path)
            assert config.queue.max_size == 5
            assert config.queue.overflow_policy is OverflowPolicy.DROP_OLDEST
            assert config.policy.facility_whitelist == ["FACILITY_009"]
            assert config.logging.level == "DEBUG"
            assert config.logging.json_output is True
        finally:
            Path(config_path).unlink()

    def test_config_to_yaml(self):
        """Test saving configuration to YAML."""
        config = Config()
        config.normalizer.source = "adt-feed"
        config.queue.max_size = None

        with tempfile.NamedTemporaryFile(mode='w', suffix='.yaml', delete=False) as f:
            output_path = f.name

        try:
            config.to_yaml(output_path)

            # Load back and verify
            loaded_config = Config.from_yaml(output_path)
            assert loaded_config.normalizer.source == "adt-feed"
            assert loaded_config.queue.max_size is None
        finally:
            Path(output_path).unlink()

    def test_missing_file_uses_defaults(self, temp_dir):
        config = Config.from_yaml(str(temp_dir / "absent.yaml"))
        assert config == Config()

    def test_invalid_yaml_is_configuration_error(self, temp_dir):
        config_path = temp_dir / "broken.yaml"
        config_path.write_text("queue: [unclosed")

        with pytest.raises(ConfigurationError):
            Config.from_yaml(str(config_path))

    def test_invalid_values_are_configuration_error(self, temp_dir):
        config_path = temp_dir / "invalid.yaml"
        config_path.write_text("queue:\n  max_size: -3\nlogging:\n  level: LOUD\n")

        with pytest.raises(ConfigurationError):
            Config.from_yaml(str(config_path))

    def test_config_from_env(self, monkeypatch):
        monkeypatch.setenv("HEALTHBRIDGE_QUEUE_MAX_SIZE", "25")
        monkeypatch.setenv("HEALTHBRIDGE_OVERFLOW_POLICY", "drop_oldest")
        monkeypatch.setenv("HEALTHBRIDGE_FACILITY_WHITELIST", "A, B ,C")
        monkeypatch.setenv("HEALTHBRIDGE_LOG_LEVEL", "warning")

        config = Config.from_env()

        assert config.queue.max_size == 25
        assert config.queue.overflow_policy is OverflowPolicy.DROP_OLDEST
        assert config.policy.facility_whitelist == ["A", "B", "C"]
        assert config.logging.level == "WARNING"

    def test_config_from_env_unbounded_queue(self, monkeypatch):
        monkeypatch.setenv("HEALTHBRIDGE_QUEUE_MAX_SIZE", "unbounded")

        assert Config.from_env().queue.max_size is None

    def test_load_config_explicit_missing_path(self, temp_dir):
        with pytest.raises(ConfigurationError):
            load_config(str(temp_dir / "nope.yaml"))
