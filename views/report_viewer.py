"""
Flow report viewer.

Shows the aggregated flow report of a run: summary cards, the per-flow
table (flagged cells highlighted), per-pair and per-source totals and the
simulator's console output.
"""

import logging
import math
from typing import Optional

from PyQt6.QtCore import Qt, pyqtSignal
from PyQt6.QtGui import QColor, QAction
from PyQt6.QtWidgets import (
    QWidget, QVBoxLayout, QHBoxLayout, QLabel, QFrame, QGridLayout,
    QTabWidget, QTableWidget, QTableWidgetItem, QHeaderView, QTextEdit,
    QMainWindow, QFileDialog, QMessageBox,
)

from models import SimulationResults
from services.flow_stats import (
    FlowReport, FlowStatsAggregator,
    FLOW_TABLE_COLUMNS, PAIR_TABLE_COLUMNS, SOURCE_TABLE_COLUMNS,
)
from services.results_parser import ResultsParser

logger = logging.getLogger(__name__)

FLAG_COLOR = "#EF4444"

TABLE_STYLE = """
    QTableWidget {
        background: white;
        border: 1px solid #E5E7EB;
        border-radius: 6px;
        gridline-color: #F3F4F6;
    }
    QTableWidget::item {
        padding: 6px;
    }
    QHeaderView::section {
        background: #F9FAFB;
        border: none;
        border-bottom: 1px solid #E5E7EB;
        padding: 6px;
        font-weight: 600;
        color: #374151;
    }
"""

# Flow table cells that go undefined for each flag
_FLAGGED_COLUMNS = {
    "degenerate_flow": ("duration", "bitrate_kbps", "weighted_traffic"),
    "mean_delay_undefined": ("mean_delay",),
    "mean_jitter_undefined": ("mean_jitter",),
}


def format_cell(value) -> str:
    if isinstance(value, float):
        return "nan" if math.isnan(value) else f"{value:.4f}"
    return str(value)


class StatCard(QFrame):
    """A card displaying a single statistic."""

    def __init__(self, title: str, value: str = "0", unit: str = "", parent=None):
        super().__init__(parent)
        self.setStyleSheet("""
            QFrame {
                background: white;
                border: 1px solid #E5E7EB;
                border-radius: 8px;
            }
        """)
        layout = QVBoxLayout(self)
        layout.setContentsMargins(12, 10, 12, 10)
        layout.setSpacing(4)

        title_label = QLabel(title)
        title_label.setStyleSheet("color: #6B7280; font-size: 11px;")
        layout.addWidget(title_label)

        value_layout = QHBoxLayout()
        self._value_label = QLabel(value)
        self._value_label.setStyleSheet("color: #111827; font-size: 22px; font-weight: 600;")
        value_layout.addWidget(self._value_label)
        if unit:
            unit_label = QLabel(unit)
            unit_label.setStyleSheet("color: #9CA3AF; font-size: 12px;")
            unit_label.setAlignment(Qt.AlignmentFlag.AlignBottom)
            value_layout.addWidget(unit_label)
        value_layout.addStretch()
        layout.addLayout(value_layout)

    @property
    def value(self) -> str:
        return self._value_label.text()

    def set_value(self, value: str):
        self._value_label.setText(value)


class ReportTable(QTableWidget):
    """Read-only table bound to a list of column names."""

    def __init__(self, columns: list[str], parent=None):
        super().__init__(parent)
        self._columns = list(columns)
        self.setColumnCount(len(self._columns))
        self.setHorizontalHeaderLabels(self._columns)
        self.setStyleSheet(TABLE_STYLE)
        self.horizontalHeader().setSectionResizeMode(QHeaderView.ResizeMode.ResizeToContents)
        self.verticalHeader().setVisible(False)
        self.setEditTriggers(QTableWidget.EditTrigger.NoEditTriggers)
        self.setSelectionBehavior(QTableWidget.SelectionBehavior.SelectRows)
        self.setAlternatingRowColors(True)

    @property
    def columns(self) -> list[str]:
        return list(self._columns)

    def set_rows(self, rows: list[dict], highlight: Optional[list[set[str]]] = None):
        """Fill the table; ``highlight[i]`` names the columns to mark in row i."""
        self.setRowCount(len(rows))
        for row, values in enumerate(rows):
            marked = highlight[row] if highlight else set()
            for col, name in enumerate(self._columns):
                item = QTableWidgetItem(format_cell(values.get(name, "")))
                if name in marked:
                    item.setForeground(QColor(FLAG_COLOR))
                    item.setToolTip(values.get("flags", ""))
                self.setItem(row, col, item)


class ReportViewer(QWidget):
    """Tabbed view of one FlowReport."""

    reportLoaded = pyqtSignal(object)  # FlowReport

    def __init__(self, parent=None):
        super().__init__(parent)
        self._report: Optional[FlowReport] = None
        self._setup_ui()

    def _setup_ui(self):
        layout = QVBoxLayout(self)
        layout.setContentsMargins(8, 8, 8, 8)
        layout.setSpacing(10)

        grid = QGridLayout()
        grid.setSpacing(10)
        self._flows_card = StatCard("Flows", "0")
        self._sources_card = StatCard("Sources", "0")
        self._flagged_card = StatCard("Flagged Flows", "0")
        self._traffic_card = StatCard("Weighted Traffic", "0", "kbit")
        grid.addWidget(self._flows_card, 0, 0)
        grid.addWidget(self._sources_card, 0, 1)
        grid.addWidget(self._flagged_card, 0, 2)
        grid.addWidget(self._traffic_card, 0, 3)
        layout.addLayout(grid)

        self._tabs = QTabWidget()
        self._flow_table = ReportTable(FLOW_TABLE_COLUMNS)
        self._pair_table = ReportTable(PAIR_TABLE_COLUMNS)
        self._source_table = ReportTable(SOURCE_TABLE_COLUMNS)
        self._console = QTextEdit()
        self._console.setReadOnly(True)
        self._console.setStyleSheet("""
            QTextEdit {
                background: #1F2937;
                color: #F3F4F6;
                font-family: 'Consolas', 'Monaco', 'Courier New', monospace;
                font-size: 12px;
            }
        """)
        self._tabs.addTab(self._flow_table, "Flows")
        self._tabs.addTab(self._pair_table, "Pairs")
        self._tabs.addTab(self._source_table, "Sources")
        self._tabs.addTab(self._console, "Console")
        layout.addWidget(self._tabs)

    @property
    def report(self) -> Optional[FlowReport]:
        return self._report

    @property
    def flow_table(self) -> ReportTable:
        return self._flow_table

    @property
    def source_table(self) -> ReportTable:
        return self._source_table

    @property
    def pair_table(self) -> ReportTable:
        return self._pair_table

    def set_report(self, report: FlowReport):
        self._report = report

        highlight = []
        for metrics in report.flows:
            marked = set()
            for flag in metrics.flags:
                marked.update(_FLAGGED_COLUMNS.get(flag, ()))
            if metrics.flags:
                marked.add("flags")
            highlight.append(marked)

        self._flow_table.set_rows(report.flow_table(), highlight)
        self._pair_table.set_rows(report.pair_table())
        source_rows = report.source_table()
        self._source_table.set_rows(
            source_rows,
            [{"flagged_count"} if row["flagged_count"] else set() for row in source_rows],
        )

        self._flows_card.set_value(str(len(report.flows)))
        self._sources_card.set_value(str(len(report.sources)))
        self._flagged_card.set_value(str(len(report.flagged_flows)))
        total = math.fsum(report.source_totals().values())
        self._traffic_card.set_value(f"{total:.1f}")

        self.reportLoaded.emit(report)

    def set_results(self, results: SimulationResults):
        """Show a finished run: its report (built if missing) and console output."""
        report = results.report
        if report is None:
            report = FlowStatsAggregator().ingest(results.flow_records)
        self.set_report(report)
        self._console.setPlainText(results.console_output or results.error_message)

    def load_flow_monitor(self, path: str) -> FlowReport:
        records = ResultsParser().parse_flow_monitor_xml(path)
        report = FlowStatsAggregator().ingest(records)
        self.set_report(report)
        return report

    def reset(self):
        self._report = None
        for table in (self._flow_table, self._pair_table, self._source_table):
            table.setRowCount(0)
        self._console.clear()
        for card in (self._flows_card, self._sources_card, self._flagged_card, self._traffic_card):
            card.set_value("0")


class ReportWindow(QMainWindow):
    """Standalone window around a ReportViewer with a File > Open action."""

    def __init__(self, parent=None):
        super().__init__(parent)
        self.setWindowTitle("Mixed Wireless - Flow Report")
        self.resize(1100, 650)
        self._viewer = ReportViewer(self)
        self.setCentralWidget(self._viewer)

        open_action = QAction("&Open FlowMonitor XML...", self)
        open_action.setShortcut("Ctrl+O")
        open_action.triggered.connect(self._on_open)
        self.menuBar().addMenu("&File").addAction(open_action)

    @property
    def viewer(self) -> ReportViewer:
        return self._viewer

    def open_file(self, path: str) -> bool:
        try:
            self._viewer.load_flow_monitor(path)
        except (OSError, ValueError) as e:
            logger.error(f"Could not load {path}: {e}")
            QMessageBox.critical(self, "Load Error", str(e))
            return False
        self.setWindowTitle(f"Mixed Wireless - {path}")
        return True

    def _on_open(self):
        path, _ = QFileDialog.getOpenFileName(
            self, "Open FlowMonitor results", "", "FlowMonitor XML (*.xml);;All Files (*)"
        )
        if path:
            self.open_file(path)
