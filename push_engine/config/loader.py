"""Load engine configuration from YAML plus environment variables."""

from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import yaml
from pydantic import ValidationError

from .environment import EnvironmentConfig, load_environment_config
from .exceptions import ConfigurationError
from .models import EngineConfig, ProviderType
from .validators import check_for_warnings, emit_warnings

DEFAULT_CONFIG_LOCATIONS = (
    Path("config.yaml"),
    Path("config") / "config.yaml",
)


def load_config(
    config_path: Optional[Path] = None, dry_run: bool = False
) -> Tuple[EngineConfig, EnvironmentConfig]:
    """Load, validate and return (EngineConfig, EnvironmentConfig).

    The YAML file is looked up in this order: explicit ``config_path``,
    ``./config.yaml``, ``./config/config.yaml``. With ``dry_run`` the
    environment is checked as for the dry-run provider, so no server key
    is required.

    Raises:
        ConfigurationError: If the file is missing, unparsable or invalid, or the
            environment lacks what the configured provider needs
    """
    config_file = find_config_file(config_path)
    engine_config = parse_config_dict(_read_yaml(config_file))

    emit_warnings(check_for_warnings(engine_config))

    provider_type = ProviderType.DRY_RUN.value if dry_run else engine_config.provider.type
    env_config = load_environment_config(provider_type)
    return engine_config, env_config


def parse_config_dict(raw: Dict[str, Any]) -> EngineConfig:
    """Validate an already-parsed mapping into EngineConfig.

    Raises:
        ConfigurationError: On any schema violation
    """
    if not isinstance(raw, dict):
        raise ConfigurationError(
            f"Configuration root must be a mapping, got {type(raw).__name__}",
            suggestions=["Start the file with top-level keys such as 'provider:' or 'dispatch:'"],
        )
    try:
        return EngineConfig.model_validate(raw)
    except ValidationError as e:
        raise ConfigurationError.from_pydantic(
            "Configuration validation failed",
            e.errors(),
            suggestions=[
                "Review config.example.yaml for the expected layout",
                "Durations accept forms like '30s', '5m' or 'PT30S'",
            ],
        ) from e


def find_config_file(config_path: Optional[Path] = None) -> Path:
    """Resolve the configuration file location.

    Raises:
        ConfigurationError: If no candidate exists
    """
    if config_path is not None:
        if not config_path.exists():
            raise ConfigurationError(
                f"Specified configuration file not found: {config_path}",
                suggestions=[f"Ensure {config_path} exists", "Check the --config path"],
            )
        return config_path

    for candidate in DEFAULT_CONFIG_LOCATIONS:
        if candidate.exists():
            return candidate

    raise ConfigurationError(
        "Configuration file not found",
        errors=[f"Tried: {candidate}" for candidate in DEFAULT_CONFIG_LOCATIONS],
        suggestions=[
            "Copy config.example.yaml to config.yaml",
            "Use --config to point at a configuration file",
        ],
    )


def _read_yaml(config_file: Path) -> Dict[str, Any]:
    try:
        with open(config_file, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(
            f"Failed to parse YAML configuration: {e}",
            suggestions=["Check indentation (spaces, not tabs) and quoting"],
        ) from e
    except OSError as e:
        raise ConfigurationError(
            f"Failed to read configuration file: {e}",
            suggestions=[f"Ensure {config_file} is readable"],
        ) from e

    if data is None:
        # An empty file means "all defaults"
        return {}
    return data
