"""Loading delivery requests from JSON or CSV files.

Accepted JSON shapes:

- a single request: ``{"recipients": [...], "payload": {...}, "options": {...}}``
- a list of requests, or ``{"requests": [...]}``
- flat per-token records, as a list or under ``"notifications"``:
  ``{"fcmToken": "...", "title": "...", "message": "...", "data": {...}}``

CSV files hold flat records, one per row, with a header naming the columns
(``registration_id`` or ``fcmToken``, ``title``, ``body`` or ``message``,
``platform``).

Flat records that share the same payload are grouped into one request,
keeping first-appearance order for both requests and recipients.
"""

import csv
import io
import json
from pathlib import Path
from typing import Any, Dict, List, Tuple, Union

from pydantic import ValidationError

from push_engine.logging import get_logger

from .exceptions import SubmissionFormatError
from .models import DeliveryRequest

logger = get_logger(__name__, component="submission")

TOKEN_FIELDS = ("registration_id", "fcmToken", "token")
BODY_FIELDS = ("body", "message")


def load_requests(path: Union[str, Path]) -> List[DeliveryRequest]:
    """Read a request file.

    The format is picked from the extension (``.csv`` is CSV, everything else
    is tried as JSON first and then as CSV).

    Raises:
        SubmissionFormatError: If the file is unreadable or holds no valid request
    """
    path = Path(path)
    try:
        content = path.read_text(encoding="utf-8")
    except OSError as e:
        raise SubmissionFormatError(f"Cannot read file: {e}", source=str(path)) from e
    except UnicodeDecodeError as e:
        raise SubmissionFormatError(f"File is not valid UTF-8: {e}", source=str(path)) from e

    if path.suffix.lower() == ".csv":
        requests = parse_csv(content, source=str(path))
    else:
        try:
            raw = json.loads(content)
        except json.JSONDecodeError:
            requests = parse_csv(content, source=str(path))
        else:
            requests = parse_json(raw, source=str(path))

    logger.info(
        f"Loaded {len(requests)} delivery requests",
        extra={
            "event": "submission.file.loaded",
            "file": str(path),
            "request_count": len(requests),
            "recipient_count": sum(len(r.recipients) for r in requests),
        },
    )
    return requests


def parse_json(raw: Any, source: str = "") -> List[DeliveryRequest]:
    """Build requests from decoded JSON (see module docstring for shapes)."""
    if isinstance(raw, dict):
        if "recipients" in raw:
            entries = [raw]
        elif isinstance(raw.get("requests"), list):
            entries = raw["requests"]
        elif isinstance(raw.get("notifications"), list):
            entries = raw["notifications"]
        else:
            raise SubmissionFormatError(
                "Expected a request, or a 'requests' / 'notifications' array", source=source
            )
    elif isinstance(raw, list):
        entries = raw
    else:
        raise SubmissionFormatError(
            f"Expected JSON object or array, got {type(raw).__name__}", source=source
        )

    if not entries:
        raise SubmissionFormatError("File contains no requests", source=source)
    if not all(isinstance(entry, dict) for entry in entries):
        raise SubmissionFormatError("Every entry must be a JSON object", source=source)

    full = [entry for entry in entries if "recipients" in entry]
    flat = [entry for entry in entries if "recipients" not in entry]

    requests = [_build_request(entry, source, f"request {i + 1}") for i, entry in enumerate(full)]
    requests.extend(group_records(flat, source=source))
    return requests


def parse_csv(content: str, source: str = "") -> List[DeliveryRequest]:
    """Build requests from CSV rows of flat records."""
    reader = csv.DictReader(io.StringIO(content))
    if not reader.fieldnames:
        raise SubmissionFormatError("CSV file has no header row", source=source)

    records = []
    for row in reader:
        record = {
            (key or "").strip(): (value or "").strip()
            for key, value in row.items()
            if key is not None
        }
        if any(record.values()):
            records.append({key: value for key, value in record.items() if value})

    if not records:
        raise SubmissionFormatError("CSV file contains no records", source=source)
    return group_records(records, source=source)


def group_records(records: List[Dict[str, Any]], source: str = "") -> List[DeliveryRequest]:
    """Group flat per-token records with identical payloads into requests."""
    groups: Dict[str, Tuple[Dict[str, Any], List[Dict[str, Any]]]] = {}
    errors = []

    for index, record in enumerate(records):
        token = next((record[field] for field in TOKEN_FIELDS if record.get(field)), None)
        if token is None:
            errors.append(f"record {index + 1}: missing fcmToken / registration_id")
            continue

        payload = _flat_payload(record)
        key = json.dumps(payload, sort_keys=True, default=str)
        recipient = {"registration_id": str(token)}
        if record.get("platform"):
            recipient["platform"] = str(record["platform"])

        if key not in groups:
            groups[key] = (payload, [])
        groups[key][1].append(recipient)

    if errors:
        raise SubmissionFormatError("; ".join(errors[:5]), source=source)

    return [
        _build_request({"recipients": recipients, "payload": payload}, source, f"group {i + 1}")
        for i, (payload, recipients) in enumerate(groups.values())
    ]


def _flat_payload(record: Dict[str, Any]) -> Dict[str, Any]:
    payload: Dict[str, Any] = {}
    if record.get("title"):
        payload["title"] = record["title"]
    body = next((record[field] for field in BODY_FIELDS if record.get(field)), None)
    if body:
        payload["body"] = body
    if record.get("data"):
        data = record["data"]
        if isinstance(data, str):
            try:
                data = json.loads(data)
            except json.JSONDecodeError:
                data = {"value": data}
        payload["data"] = data

    options = {}
    for field in ("priority", "time_to_live", "collapse_key"):
        if record.get(field):
            options[field] = record[field]
    if options:
        payload["options"] = options
    return payload


def _build_request(entry: Dict[str, Any], source: str, label: str) -> DeliveryRequest:
    try:
        return DeliveryRequest.model_validate(entry)
    except ValidationError as e:
        details = "; ".join(
            f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}" for error in e.errors()
        )
        raise SubmissionFormatError(f"{label}: {details}", source=source) from e
