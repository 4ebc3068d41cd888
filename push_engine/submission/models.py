"""Delivery requests as they arrive from the submission side."""

from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from push_engine.config.duration import DurationParseError, parse_duration
from push_engine.config.models import DurationSetting
from push_engine.delivery.engine import SendOptions
from push_engine.domain.models import NotificationPayload, Recipient


class RequestOptions(BaseModel):
    """Per-request overrides carried inside a submitted request."""

    max_retries: Optional[int] = Field(None, ge=0, le=10)
    worker_count: Optional[int] = Field(None, ge=1, le=64)
    batch_size: Optional[int] = Field(None, ge=1)
    deadline: Optional[DurationSetting] = None

    @field_validator("deadline")
    @classmethod
    def check_deadline(cls, v):
        if v is None:
            return v
        try:
            parse_duration(v)
        except DurationParseError as e:
            raise ValueError(str(e)) from e
        return v

    @property
    def deadline_seconds(self) -> Optional[float]:
        return parse_duration(self.deadline) if self.deadline is not None else None


class DeliveryRequest(BaseModel):
    """One notification to fan out to a set of recipients."""

    request_id: Optional[str] = Field(None, min_length=1, max_length=128)
    recipients: List[Recipient] = Field(..., min_length=1)
    payload: NotificationPayload
    options: RequestOptions = Field(default_factory=RequestOptions)

    @field_validator("recipients", mode="before")
    @classmethod
    def accept_bare_identifiers(cls, v):
        if isinstance(v, list):
            return [{"registration_id": item} if isinstance(item, str) else item for item in v]
        return v

    def to_send_options(self, **overrides) -> SendOptions:
        """SendOptions for DeliveryEngine.send(); keyword overrides win."""
        values = dict(
            max_retries=self.options.max_retries,
            worker_count=self.options.worker_count,
            batch_size=self.options.batch_size,
            deadline=self.options.deadline_seconds,
            request_id=self.request_id,
        )
        values.update(overrides)
        return SendOptions(**values)
