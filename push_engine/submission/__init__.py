"""Request intake: request files, the spool bus and its consumer."""

from .consumer import ConsumerRunResult, SpoolConsumer
from .exceptions import SubmissionError, SubmissionFormatError
from .loader import group_records, load_requests, parse_csv, parse_json
from .models import DeliveryRequest, RequestOptions
from .scheduler import SpoolScheduler
from .spool import SpoolDirectory

__all__ = [
    "DeliveryRequest",
    "RequestOptions",
    "load_requests",
    "parse_json",
    "parse_csv",
    "group_records",
    "SpoolDirectory",
    "SpoolConsumer",
    "ConsumerRunResult",
    "SpoolScheduler",
    "SubmissionError",
    "SubmissionFormatError",
]
