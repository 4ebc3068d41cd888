"""Configuration schema for the delivery engine (pydantic models)."""

from enum import Enum
from typing import Optional, Union

from pydantic import BaseModel, Field, field_validator, model_validator

from .duration import DurationParseError, parse_duration, validate_duration_range

DurationSetting = Union[str, int, float]


def _duration_seconds(value: DurationSetting, min_seconds: float, max_seconds: float, label: str) -> float:
    try:
        seconds = parse_duration(value)
        validate_duration_range(seconds, min_seconds, max_seconds, label=label)
    except DurationParseError as e:
        raise ValueError(str(e)) from e
    return seconds


class ProviderType(str, Enum):
    """Supported push delivery providers."""

    FCM_LEGACY = "fcm_legacy"
    DRY_RUN = "dry_run"


class LogLevel(str, Enum):
    """Logging levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class LogFormat(str, Enum):
    """Log output formats."""

    JSON = "json"
    KEY_VALUE = "key-value"


class ProviderConfig(BaseModel):
    """Which provider to deliver through, and its transport settings."""

    type: ProviderType = Field(ProviderType.FCM_LEGACY, description="Provider implementation")
    endpoint: Optional[str] = Field(
        None, description="Override of the provider send URL (FCM_ENDPOINT wins if set)"
    )
    request_timeout: float = Field(10.0, gt=0, le=120, description="HTTP timeout per batch (seconds)")
    max_batch_size: Optional[int] = Field(
        None, ge=1, description="Lower the provider's declared batch ceiling"
    )
    max_payload_bytes: Optional[int] = Field(
        None, ge=64, description="Lower the provider's declared payload ceiling"
    )
    user_agent: str = Field("PushDeliveryEngine/1.0", min_length=1)

    model_config = {"use_enum_values": True, "validate_default": True}


class ValidationConfig(BaseModel):
    """Syntactic checks applied to registration identifiers."""

    min_length: int = Field(8, ge=1, description="Shortest acceptable identifier")
    max_length: int = Field(4096, ge=1, description="Longest acceptable identifier")

    @model_validator(mode="after")
    def check_bounds(self):
        if self.min_length > self.max_length:
            raise ValueError(
                f"min_length ({self.min_length}) cannot exceed max_length ({self.max_length})"
            )
        return self


class DispatchConfig(BaseModel):
    """Defaults for one send() call; callers may override per request."""

    worker_count: int = Field(4, ge=1, le=64, description="Concurrent provider calls")
    max_retries: int = Field(3, ge=0, le=10, description="Retry rounds for transient failures")
    batch_size: Optional[int] = Field(
        None, ge=1, description="Recipients per provider call (default: provider maximum)"
    )
    deadline: Optional[DurationSetting] = Field(
        None, description="Overall time budget per send() call, e.g. '2m'"
    )

    deadline_seconds: Optional[float] = None

    @model_validator(mode="after")
    def compute_deadline(self):
        if self.deadline is not None:
            self.deadline_seconds = _duration_seconds(self.deadline, 1.0, 86400.0, "Deadline")
        return self


class RetryConfig(BaseModel):
    """Exponential backoff between retry rounds."""

    base_delay: float = Field(1.0, ge=0, le=300, description="Delay before the first retry round")
    max_delay: float = Field(30.0, ge=0, le=3600, description="Upper bound on the exponential part")
    jitter: float = Field(0.5, ge=0, le=60, description="Random extra delay in [0, jitter)")

    @model_validator(mode="after")
    def check_delays(self):
        if self.base_delay > self.max_delay:
            raise ValueError(
                f"base_delay ({self.base_delay}) cannot exceed max_delay ({self.max_delay})"
            )
        return self


class RateLimitConfig(BaseModel):
    """Token bucket shared by all dispatch workers."""

    capacity: int = Field(10, ge=1, description="Bucket size (burst)")
    refill_rate: float = Field(10.0, gt=0, description="Tokens added per second")
    initial_tokens: float = Field(0.0, ge=0, description="Tokens available at start-up")

    @model_validator(mode="after")
    def check_initial(self):
        if self.initial_tokens > self.capacity:
            raise ValueError(
                f"initial_tokens ({self.initial_tokens}) cannot exceed capacity ({self.capacity})"
            )
        return self


class CircuitBreakerConfig(BaseModel):
    """Failure isolation for a degraded provider."""

    threshold: int = Field(5, ge=1, le=1000, description="Failures within window that open the circuit")
    window: DurationSetting = Field("60s", description="Sliding window for counting failures")
    cooldown: DurationSetting = Field("30s", description="Time spent open before a probe is allowed")

    window_seconds: Optional[float] = None
    cooldown_seconds: Optional[float] = None

    @model_validator(mode="after")
    def compute_seconds(self):
        self.window_seconds = _duration_seconds(self.window, 0.001, 86400.0, "Breaker window")
        self.cooldown_seconds = _duration_seconds(self.cooldown, 0.001, 86400.0, "Breaker cooldown")
        return self


class RegistryConfig(BaseModel):
    """Reconciliation of stale identifiers against the registration store."""

    enabled: bool = Field(True, description="Apply removals/replacements to the registry")
    dry_run: bool = Field(False, description="Log the reconciliation plan without applying it")


class ConsumerConfig(BaseModel):
    """Spool-directory consumer (daemon mode)."""

    spool_dir: str = Field("./spool", min_length=1, description="Root of inbox/processing/done/failed")
    poll_interval: DurationSetting = Field("30s", description="How often the inbox is drained")

    poll_interval_seconds: Optional[float] = None

    @field_validator("spool_dir")
    @classmethod
    def strip_spool_dir(cls, v: str) -> str:
        stripped = v.strip()
        if not stripped:
            raise ValueError("spool_dir cannot be empty")
        return stripped

    @model_validator(mode="after")
    def compute_seconds(self):
        self.poll_interval_seconds = _duration_seconds(
            self.poll_interval, 1.0, 86400.0, "Poll interval"
        )
        return self


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: LogLevel = Field(LogLevel.INFO, description="Log level")
    format: LogFormat = Field(LogFormat.KEY_VALUE, description="json or key-value")

    model_config = {"use_enum_values": True, "validate_default": True}


class EngineConfig(BaseModel):
    """Root configuration object."""

    provider: ProviderConfig = Field(default_factory=ProviderConfig)
    validation: ValidationConfig = Field(default_factory=ValidationConfig)
    dispatch: DispatchConfig = Field(default_factory=DispatchConfig)
    retry: RetryConfig = Field(default_factory=RetryConfig)
    rate_limit: RateLimitConfig = Field(default_factory=RateLimitConfig)
    circuit_breaker: CircuitBreakerConfig = Field(default_factory=CircuitBreakerConfig)
    registry: RegistryConfig = Field(default_factory=RegistryConfig)
    consumer: ConsumerConfig = Field(default_factory=ConsumerConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
