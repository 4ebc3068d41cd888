"""Rendering of delivery reports: plain-text summary and JSON export."""

from typing import Any, Dict, List

from jinja2 import Environment, PackageLoader, StrictUndefined, TemplateError

from push_engine.domain.models import DeliveryReport, RecipientResult
from push_engine.logging import get_logger
from push_engine.logging.config import mask_identifier
from push_engine.utils.timestamps import format_utc

logger = get_logger(__name__, component="reporting")


class SummaryRenderError(Exception):
    """Raised when the summary template cannot be rendered."""

    pass


def result_to_dict(result: RecipientResult) -> Dict[str, Any]:
    entry: Dict[str, Any] = {
        "position": result.position,
        "registration_id": result.registration_id,
        "outcome": result.outcome.value,
        "attempts": result.attempts,
    }
    if result.recipient.platform:
        entry["platform"] = result.recipient.platform
    if result.error_code:
        entry["error_code"] = result.error_code
    if result.canonical_id:
        entry["canonical_id"] = result.canonical_id
    if result.reason:
        entry["reason"] = result.reason
    return entry


def report_to_dict(report: DeliveryReport) -> Dict[str, Any]:
    """JSON-ready form of a report (identifiers are NOT masked)."""
    data: Dict[str, Any] = {
        "request_id": report.request_id,
        "started_at": format_utc(report.started_at),
        "finished_at": format_utc(report.finished_at),
        "elapsed_seconds": round(report.elapsed_seconds, 6),
        "cancelled_call": report.cancelled_call,
        "summary": {
            "total": report.total,
            "delivered": report.delivered,
            "invalid": report.invalid,
            "moved": report.moved,
            "failed_after_retries": report.failed_after_retries,
            "fatal": report.fatal,
            "cancelled": report.cancelled,
            "success_rate": report.success_rate,
            "retry_rounds": report.retry_rounds,
            "retry_attempts": report.retry_attempts,
        },
        "error_counts": report.error_counts,
        "results": [result_to_dict(result) for result in report.results],
    }
    if report.reconciliation is not None:
        data["reconciliation"] = {
            "to_remove": list(report.reconciliation.to_remove),
            "to_replace": [list(pair) for pair in report.reconciliation.to_replace],
            "applied": report.reconciliation.applied,
            "errors": list(report.reconciliation.errors),
        }
    return data


class SummaryRenderer:
    """Renders the human-readable delivery summary from a Jinja2 template.

    Identifiers in the sample failures are masked the same way log records
    mask them.
    """

    def __init__(
        self,
        template_dir: str = "templates",
        template_name: str = "delivery_summary.txt.j2",
        sample_size: int = 10,
    ):
        self.template_name = template_name
        self.sample_size = sample_size
        self.env = Environment(
            loader=PackageLoader("push_engine.reporting", template_dir),
            autoescape=False,
            undefined=StrictUndefined,
            trim_blocks=True,
            lstrip_blocks=True,
            keep_trailing_newline=True,
        )

    def build_context(self, report: DeliveryReport) -> Dict[str, Any]:
        failures: List[Dict[str, Any]] = []
        for result in report.results:
            if result.outcome.is_success:
                continue
            failures.append(
                {
                    "recipient": mask_identifier(result.registration_id),
                    "outcome": result.outcome.value,
                    "detail": result.error_code or result.reason,
                }
            )
            if len(failures) >= self.sample_size:
                break

        return {
            "rule": "=" * 60,
            "report": report,
            "started_at": format_utc(report.started_at),
            "finished_at": format_utc(report.finished_at),
            "error_counts": list(report.error_counts.items()),
            "failures": failures,
            "reconciliation": report.reconciliation,
        }

    def render(self, report: DeliveryReport) -> str:
        """Render the summary.

        Raises:
            SummaryRenderError: If the template is missing or fails to render
        """
        try:
            template = self.env.get_template(self.template_name)
            return template.render(self.build_context(report))
        except TemplateError as e:
            logger.error(
                f"Failed to render delivery summary: {e}",
                extra={"event": "reporting.render.failed", "template": self.template_name},
            )
            raise SummaryRenderError(f"Failed to render delivery summary: {e}") from e


def render_summary(report: DeliveryReport, sample_size: int = 10) -> str:
    """Render a report with the default template."""
    return SummaryRenderer(sample_size=sample_size).render(report)
