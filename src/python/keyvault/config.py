"""Configuration via config.yaml and the 1Password CLI."""

import logging
import os
import subprocess
from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml

from .models import AWSCredentials, ProjectSettings, PulumiConfig

logger = logging.getLogger(__name__)

# Path to config.yaml, relative to the working directory unless overridden
CONFIG_PATH = Path(os.environ.get("KEYVAULT_CONFIG", "config.yaml"))

DEFAULT_PROJECT = "secrets-demo"
DEFAULT_ENVIRONMENT = "dev"
DEFAULT_REGION = "us-east-1"
DEFAULT_KEY_NAME = "secrets-demo-key"
DEFAULT_KEY_DIRECTORY = "~/.ssh"


class ConfigError(Exception):
    """Raised when configuration cannot be loaded or resolved."""

    pass


@lru_cache
def _load_config() -> dict:
    """Load and cache config.yaml.

    A missing file yields an empty config so every setting falls back to
    its default.

    Returns:
        Parsed config dictionary

    Raises:
        ConfigError: If the file exists but is not valid YAML
    """
    if not CONFIG_PATH.exists():
        logger.debug("No config file at %s, using defaults", CONFIG_PATH)
        return {}

    try:
        with open(CONFIG_PATH) as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {CONFIG_PATH}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigError(f"Expected a mapping at the top of {CONFIG_PATH}")
    return data


def _op_read(reference: str) -> str:
    """Execute 'op read' to fetch a secret from 1Password.

    Args:
        reference: 1Password secret reference (e.g., "op://vault/item/field")

    Returns:
        The secret value

    Raises:
        ConfigError: If the op command fails or is not found
    """
    try:
        result = subprocess.run(
            ["op", "read", reference],
            capture_output=True,
            text=True,
            check=True,
        )
        return result.stdout.strip()
    except subprocess.CalledProcessError as e:
        raise ConfigError(
            f"Failed to read 1Password reference '{reference}': {e.stderr}"
        ) from e
    except FileNotFoundError:
        raise ConfigError(
            "1Password CLI (op) not found. Please install it: "
            "https://developer.1password.com/docs/cli/get-started/"
        ) from None


def _resolve_value(value: Any) -> Any:
    """Resolve a value, fetching from 1Password if it's an op:// reference."""
    if isinstance(value, str) and value.startswith("op://"):
        return _op_read(value)
    return value


def _section(config: dict, name: str) -> dict:
    section = config.get(name) or {}
    if not isinstance(section, dict):
        raise ConfigError(f"Config section '{name}' must be a mapping")
    return section


def get_project_settings() -> ProjectSettings:
    """Build project settings from config.yaml.

    Returns:
        ProjectSettings with defaults filled in

    Raises:
        ConfigError: If configuration cannot be resolved
    """
    config = _load_config()
    key = _section(config, "key")
    secret = _section(config, "secret")

    project = _resolve_value(config.get("project", DEFAULT_PROJECT))
    environment = _resolve_value(config.get("environment", DEFAULT_ENVIRONMENT))
    region = _resolve_value(
        config.get("region", os.environ.get("AWS_REGION", DEFAULT_REGION))
    )
    key_name = _resolve_value(key.get("name", DEFAULT_KEY_NAME))
    key_directory = Path(
        _resolve_value(key.get("directory", DEFAULT_KEY_DIRECTORY))
    ).expanduser()

    try:
        recovery_window = int(secret.get("recovery_window_days", 7))
    except (TypeError, ValueError) as e:
        raise ConfigError(f"secret.recovery_window_days must be an integer: {e}") from e
    # Secrets Manager accepts 0 (force delete) or 7-30 days
    if recovery_window != 0 and not 7 <= recovery_window <= 30:
        raise ConfigError(
            f"secret.recovery_window_days must be 0 or between 7 and 30, got {recovery_window}"
        )

    return ProjectSettings(
        project=project,
        environment=environment,
        region=region,
        key_name=key_name,
        key_directory=key_directory,
        key_comment=_resolve_value(key.get("comment", f"{key_name}@secrets-manager")),
        recovery_window_days=recovery_window,
    )


def get_pulumi_config() -> PulumiConfig:
    """Retrieve Pulumi configuration from config.yaml and 1Password.

    Returns:
        PulumiConfig with backend URL, stack name and optional AWS credentials

    Raises:
        ConfigError: If configuration cannot be retrieved
    """
    config = _load_config()
    pulumi_config = _section(config, "pulumi")

    stack = _resolve_value(
        pulumi_config.get("stack", config.get("environment", DEFAULT_ENVIRONMENT))
    )
    backend = _resolve_value(pulumi_config.get("backend"))

    aws = None
    if pulumi_config.get("aws_access_key_id") or pulumi_config.get("aws_secret_access_key"):
        access_key_id = _resolve_value(pulumi_config.get("aws_access_key_id", ""))
        secret_access_key = _resolve_value(pulumi_config.get("aws_secret_access_key", ""))
        if not access_key_id or not secret_access_key:
            raise ConfigError(
                "Both pulumi.aws_access_key_id and pulumi.aws_secret_access_key must be set"
            )
        aws = AWSCredentials(
            access_key_id=access_key_id,
            secret_access_key=secret_access_key,
        )

    return PulumiConfig(stack=stack, backend=backend or None, aws=aws)
