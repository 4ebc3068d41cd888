"""Configuration management for the delivery engine."""

from .duration import DurationParseError, parse_duration
from .environment import EnvironmentConfig, load_environment_config
from .exceptions import ConfigurationError
from .loader import find_config_file, load_config, parse_config_dict
from .models import (
    CircuitBreakerConfig,
    ConsumerConfig,
    DispatchConfig,
    EngineConfig,
    LogFormat,
    LoggingConfig,
    LogLevel,
    ProviderConfig,
    ProviderType,
    RateLimitConfig,
    RegistryConfig,
    RetryConfig,
    ValidationConfig,
)

__all__ = [
    # Loading
    "load_config",
    "parse_config_dict",
    "find_config_file",
    "load_environment_config",
    "parse_duration",
    # Models
    "EngineConfig",
    "ProviderConfig",
    "ValidationConfig",
    "DispatchConfig",
    "RetryConfig",
    "RateLimitConfig",
    "CircuitBreakerConfig",
    "RegistryConfig",
    "ConsumerConfig",
    "LoggingConfig",
    "EnvironmentConfig",
    # Enums
    "ProviderType",
    "LogLevel",
    "LogFormat",
    # Exceptions
    "ConfigurationError",
    "DurationParseError",
]
