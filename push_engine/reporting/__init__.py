"""Delivery report rendering."""

from .summary import SummaryRenderError, SummaryRenderer, render_summary, report_to_dict

__all__ = ["SummaryRenderer", "SummaryRenderError", "render_summary", "report_to_dict"]
