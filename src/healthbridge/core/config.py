"""Configuration management for HealthBridge."""

import os
import yaml
from enum import Enum
from pathlib import Path
from typing import List, Optional
from pydantic import BaseModel, Field, ValidationError, field_validator
import structlog

from .errors import ConfigurationError

logger = structlog.get_logger()


class OverflowPolicy(str, Enum):
    """What a bounded queue does when it is full."""
    REJECT = "reject"
    DROP_OLDEST = "drop_oldest"


class QueueConfig(BaseModel):
    """Event queue configuration."""
    max_size: Optional[int] = Field(default=10000, ge=1)  # None means unbounded
    overflow_policy: OverflowPolicy = Field(default=OverflowPolicy.REJECT)


class NormalizerConfig(BaseModel):
    """HL7 normalization configuration."""
    source: str = Field(default="hl7-ingest")
    encoding: str = Field(default="utf-8")
    default_facility_id: Optional[str] = None


class PolicyConfig(BaseModel):
    """Policy gate configuration."""
    facility_whitelist: List[str] = Field(default_factory=lambda: ["FACILITY_001", "FACILITY_002"])
    required_message_type: str = Field(default="ADT")


class EvalConfig(BaseModel):
    """Eval harness configuration. Empty paths select the bundled files."""
    tasks_path: Optional[str] = None
    payload_path: Optional[str] = None


class HandoffConfig(BaseModel):
    """Cross-process canonical event handoff."""
    path: str = Field(default="samples/normalized.json")


class LoggingConfig(BaseModel):
    """Logging configuration."""
    level: str = Field(default="INFO")
    json_output: bool = Field(default=False, alias="json")

    model_config = {"populate_by_name": True}

    @field_validator("level")
    @classmethod
    def _known_level(cls, value: str) -> str:
        level = value.upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Unknown log level: {value}")
        return level


class Config(BaseModel):
    """Main configuration class for HealthBridge."""

    queue: QueueConfig = Field(default_factory=QueueConfig)
    normalizer: NormalizerConfig = Field(default_factory=NormalizerConfig)
    policy: PolicyConfig = Field(default_factory=PolicyConfig)
    evals: EvalConfig = Field(default_factory=EvalConfig)
    handoff: HandoffConfig = Field(default_factory=HandoffConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @classmethod
    def from_yaml(cls, config_path: str) -> "Config":
        """Load configuration from YAML file.

        A missing file falls back to defaults. A file that exists but cannot
        be parsed or validated is a startup error.
        """
        config_file = Path(config_path)
        if not config_file.exists():
            logger.warning(f"Config file not found: {config_path}, using defaults")
            return cls()

        try:
            with open(config_file, 'r') as f:
                config_data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            logger.error(f"Error loading config from {config_path}: {e}")
            raise ConfigurationError(f"Cannot read config {config_path}: {e}") from e

        if not isinstance(config_data, dict):
            raise ConfigurationError(f"Config {config_path} must be a mapping")

        try:
            return cls(**config_data)
        except ValidationError as e:
            logger.error(f"Invalid config in {config_path}: {e}")
            raise ConfigurationError(f"Invalid config {config_path}: {e}") from e

    @classmethod
    def from_env(cls) -> "Config":
        """Load configuration from environment variables."""
        config_data = {}

        env_mappings = {
            "HEALTHBRIDGE_QUEUE_MAX_SIZE": ("queue", "max_size"),
            "HEALTHBRIDGE_OVERFLOW_POLICY": ("queue", "overflow_policy"),
            "HEALTHBRIDGE_SOURCE": ("normalizer", "source"),
            "HEALTHBRIDGE_FACILITY_WHITELIST": ("policy", "facility_whitelist"),
            "HEALTHBRIDGE_HANDOFF_PATH": ("handoff", "path"),
            "HEALTHBRIDGE_LOG_LEVEL": ("logging", "level"),
        }

        for env_var, (section, key) in env_mappings.items():
            value = os.getenv(env_var)
            if value:
                if section not in config_data:
                    config_data[section] = {}
                # Convert to appropriate type
                if key == "max_size":
                    value = None if value.lower() in ("none", "unbounded", "0") else value
                elif key == "facility_whitelist":
                    value = [item.strip() for item in value.split(",") if item.strip()]
                config_data[section][key] = value

        try:
            return cls(**config_data)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid configuration in environment: {e}") from e

    def to_yaml(self, output_path: str) -> None:
        """Save configuration to YAML file."""
        config_dict = self.model_dump(mode="json", by_alias=True)
        with open(output_path, 'w') as f:
            yaml.dump(config_dict, f, default_flow_style=False, sort_keys=False)
        logger.info(f"Configuration saved to {output_path}")


def load_config(config_path: Optional[str] = None) -> Config:
    """Load configuration with fallback strategy."""
    if config_path and Path(config_path).exists():
        return Config.from_yaml(config_path)
    if config_path:
        raise ConfigurationError(f"Config file not found: {config_path}")

    # Try default config locations
    default_paths = [
        "config/healthbridge.yaml",
        "healthbridge.yaml",
        "/etc/healthbridge/config.yaml"
    ]

    for path in default_paths:
        if Path(path).exists():
            return Config.from_yaml(path)

    # Fall back to environment variables
    logger.info("No config file found, loading from environment variables")
    return Config.from_env()
