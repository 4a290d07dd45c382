"""
Delimited-text export of flow reports.
"""

import csv
import logging
import math
from pathlib import Path
from typing import Optional

from services.flow_stats import FlowReport, FLOW_TABLE_COLUMNS, PAIR_TABLE_COLUMNS, SOURCE_TABLE_COLUMNS

logger = logging.getLogger(__name__)


def _format_value(value) -> str:
    if isinstance(value, float):
        if math.isnan(value):
            return "nan"
        return f"{value:.6f}"
    return str(value)


class ReportWriter:
    """
    Writes the flow, pair and source tables of a FlowReport.

    Undefined metrics are written as ``nan`` and the flags column lists the
    reason, so flagged values never look like measured ones.
    """

    FLOW_FILE = "flows.csv"
    PAIR_FILE = "pairs.csv"
    SOURCE_FILE = "sources.csv"

    def __init__(self, delimiter: str = ","):
        self.delimiter = delimiter

    def write_table(self, path: Path, columns: list[str], rows: list[dict]) -> Path:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", newline="", encoding="utf-8") as f:
            writer = csv.writer(f, delimiter=self.delimiter)
            writer.writerow(columns)
            for row in rows:
                writer.writerow([_format_value(row[c]) for c in columns])
        return path

    def write(self, report: FlowReport, output_dir, prefix: Optional[str] = None) -> dict[str, Path]:
        """
        Write all tables into ``output_dir``.

        Returns:
            Mapping of table name ("flows", "pairs", "sources") to file path
        """
        output_dir = Path(output_dir)
        name = (lambda f: f"{prefix}-{f}") if prefix else (lambda f: f)

        written = {
            "flows": self.write_table(output_dir / name(self.FLOW_FILE), FLOW_TABLE_COLUMNS, report.flow_table()),
            "pairs": self.write_table(output_dir / name(self.PAIR_FILE), PAIR_TABLE_COLUMNS, report.pair_table()),
            "sources": self.write_table(output_dir / name(self.SOURCE_FILE), SOURCE_TABLE_COLUMNS, report.source_table()),
        }
        logger.info(f"Wrote flow report to {output_dir}")
        return written

    def format_text(self, report: FlowReport) -> str:
        """Render the flow and source tables as aligned text for the console."""
        lines = []
        for title, columns, rows in (
            ("Flows", FLOW_TABLE_COLUMNS, report.flow_table()),
            ("Sources", SOURCE_TABLE_COLUMNS, report.source_table()),
        ):
            cells = [columns] + [[_format_value(r[c]) for c in columns] for r in rows]
            widths = [max(len(row[i]) for row in cells) for i in range(len(columns))]
            lines.append(title)
            lines.append("-" * len(title))
            for row in cells:
                lines.append("  ".join(value.ljust(width) for value, width in zip(row, widths)).rstrip())
            lines.append("")
        return "\n".join(lines)
