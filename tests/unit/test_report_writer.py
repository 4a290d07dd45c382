"""
Unit tests for CSV report export.
"""

import csv

from models import FlowRecord
from services.flow_stats import aggregate_flows, FLOW_TABLE_COLUMNS, SOURCE_TABLE_COLUMNS
from services.report_writer import ReportWriter


def read_rows(path):
    with open(path, newline="", encoding="utf-8") as f:
        return list(csv.reader(f))


class TestReportWriter:

    def test_writes_three_tables(self, sample_record, temp_dir):
        report = aggregate_flows([sample_record])
        written = ReportWriter().write(report, temp_dir / "report")

        assert set(written) == {"flows", "pairs", "sources"}
        flows = read_rows(written["flows"])
        assert flows[0] == FLOW_TABLE_COLUMNS
        assert flows[1][0] == "192.168.0.1"
        assert flows[1][FLOW_TABLE_COLUMNS.index("duration")] == "18.000000"

        sources = read_rows(written["sources"])
        assert sources[0] == SOURCE_TABLE_COLUMNS
        assert sources[1][2] == "1"

    def test_prefix(self, sample_record, temp_dir):
        written = ReportWriter().write(aggregate_flows([sample_record]), temp_dir, prefix="run1")
        assert written["flows"].name == "run1-flows.csv"

    def test_undefined_metrics_written_as_nan(self, temp_dir):
        record = FlowRecord(source_address="10.0.0.1", destination_address="10.0.1.1",
                            tx_bytes=100, first_tx_time=1.0, last_tx_time=2.0, rx_packets=0)
        written = ReportWriter().write(aggregate_flows([record]), temp_dir)

        row = read_rows(written["flows"])[1]
        assert row[FLOW_TABLE_COLUMNS.index("mean_delay")] == "nan"
        assert "mean_delay_undefined" in row[FLOW_TABLE_COLUMNS.index("flags")]

    def test_custom_delimiter(self, sample_record, temp_dir):
        path = ReportWriter(";").write(aggregate_flows([sample_record]), temp_dir)["pairs"]
        header = path.read_text(encoding="utf-8").splitlines()[0]
        assert header == "source_address;destination_address;weighted_traffic_sum;sample_count"

    def test_format_text(self, sample_record):
        text = ReportWriter().format_text(aggregate_flows([sample_record]))
        assert text.startswith("Flows")
        assert "Sources" in text
        assert "192.168.0.1" in text
