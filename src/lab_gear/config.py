import os
from typing import Any, Dict, Optional

import yaml
from pydantic import BaseModel, Field, field_validator

from lab_gear.errors import ConfigError
from lab_gear.logging import LogLevel, get_logger

logger = get_logger("lab_gear.config")


class LabGearConfig(BaseModel):
    """Settings consumed by the inventory API server."""

    host: str = "0.0.0.0"
    port: int = Field(default=8080, ge=1, le=65535)
    db_path: str = "./lab_gear.db"
    api_token: str = Field(..., description="Shared secret required on every protected request")
    max_body_bytes: int = Field(default=64 * 1024, ge=1)
    log_level: LogLevel = LogLevel.INFO

    @field_validator("api_token")
    @classmethod
    def validate_api_token(cls, v):
        if not v or not v.strip():
            raise ValueError("API_TOKEN environment variable is required")
        return v

    @field_validator("db_path")
    @classmethod
    def validate_db_path(cls, v):
        if not v:
            raise ValueError("db_path must not be empty")
        return v


class ClientConfig(BaseModel):
    """Settings for the remote API client used by the resource controller."""

    endpoint: str
    token: str
    timeout_seconds: float = Field(default=15.0, gt=0)

    @field_validator("endpoint")
    @classmethod
    def strip_trailing_slash(cls, v):
        return v.rstrip("/")


# Environment variable -> (config field, type)
_ENV_MAPPINGS = {
    "API_TOKEN": ("api_token", str),
    "DB_PATH": ("db_path", str),
    "PORT": ("port", int),
    "HOST": ("host", str),
    "MAX_BODY_BYTES": ("max_body_bytes", int),
    "LOG_LEVEL": ("log_level", str),
}


def load_config(config_path: str = "lab_gear.yml") -> LabGearConfig:
    """Load configuration from YAML file with environment variable overrides."""
    config_data: Dict[str, Any] = {}

    try:
        with open(config_path, "r") as f:
            config_data = yaml.safe_load(f) or {}
    except FileNotFoundError:
        # File doesn't exist, use defaults
        pass
    except (OSError, yaml.YAMLError) as e:
        logger.warning(
            f"Failed to load config from {config_path}, using defaults",
            metadata={"error": str(e)},
        )

    _apply_environment(config_data)

    if isinstance(config_data.get("log_level"), str):
        config_data["log_level"] = config_data["log_level"].upper()
    config_data.setdefault("api_token", "")

    return LabGearConfig(**config_data)


def _apply_environment(config_data: Dict[str, Any]) -> None:
    for env_key, (config_field, field_type) in _ENV_MAPPINGS.items():
        env_value = os.getenv(env_key)
        if env_value is None or env_value == "":
            continue
        try:
            config_data[config_field] = field_type(env_value)
        except (ValueError, TypeError) as e:
            logger.warning(
                f"Invalid {field_type.__name__} value for {env_key}: {env_value}",
                metadata={"error": str(e)},
            )


def resolve_client_settings(
    config_endpoint: Optional[str],
    config_token: Optional[str],
    env_endpoint: Optional[str],
    env_token: Optional[str],
) -> tuple[str, str]:
    """Explicit configuration wins over the environment; blank values count as unset."""
    endpoint = (env_endpoint or "").strip()
    token = (env_token or "").strip()

    if config_endpoint and config_endpoint.strip():
        endpoint = config_endpoint.strip()
    if config_token and config_token.strip():
        token = config_token.strip()

    return endpoint, token


def load_client_config(
    endpoint: Optional[str] = None,
    token: Optional[str] = None,
    timeout_seconds: float = 15.0,
) -> ClientConfig:
    """Build client settings from explicit values, falling back to LAB_ENDPOINT / LAB_API_KEY."""
    resolved_endpoint, resolved_token = resolve_client_settings(
        endpoint, token, os.getenv("LAB_ENDPOINT"), os.getenv("LAB_API_KEY")
    )
    if not resolved_endpoint:
        raise ConfigError(
            "endpoint must be set explicitly or via the LAB_ENDPOINT environment variable"
        )
    if not resolved_token:
        raise ConfigError(
            "token must be set explicitly or via the LAB_API_KEY environment variable"
        )
    return ClientConfig(
        endpoint=resolved_endpoint, token=resolved_token, timeout_seconds=timeout_seconds
    )
