"""Views package."""

from .report_viewer import (
    StatCard,
    ReportTable,
    ReportViewer,
    ReportWindow,
    format_cell,
)

__all__ = [
    "StatCard",
    "ReportTable",
    "ReportViewer",
    "ReportWindow",
    "format_cell",
]
