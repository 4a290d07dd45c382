"""
Integration tests for the scenario workflow.

Tests:
- Build a scenario from configuration
- Course-change trace
- Script generation for a built scenario
- FlowMonitor results to CSV report
- Command line subcommands
"""

import csv
import shutil

import pytest

import main
from models import ScenarioConfig, SimulationContext, CapacityExceeded
from services.topology_builder import build_hierarchy, build_scenario, course_change_lines
from services.report_writer import ReportWriter
from tests.conftest import assert_valid_python, CONSOLE_OUTPUT


class TestScenarioBuild:

    def test_classic_layout(self):
        scenario = build_scenario(ScenarioConfig(backbone_nodes=10, infra_nodes=2))
        tree = scenario.tree

        assert len(tree) == 11
        assert tree.context.node_count == 20
        assert tree.root.address_range.cidr == "192.168.0.0/24"
        assert [len(c) for c in tree.clusters[1:]] == [2] * 10
        # each leaf cluster reserves a second subnet after its own
        assert tree.clusters[1].address_range.network == "192.168.1.0"
        assert tree.clusters[2].address_range.network == "192.168.3.0"

    def test_fixed_remote_flow_crosses_tree(self):
        scenario = build_scenario(ScenarioConfig(backbone_nodes=10, infra_nodes=2))
        flow = scenario.flows[0]

        # first leaf node sends to the last leaf node
        assert flow.source.index == 10
        assert flow.destination.index == 19
        assert flow.source_address == "192.168.1.1"
        assert flow.start_time == 1.0
        assert flow.stop_time == 19.0

    def test_multi_level(self):
        tree = build_hierarchy(ScenarioConfig(backbone_nodes=2, levels=[2, 1]))
        assert tree.depth() == 3
        assert len(tree) == 1 + 2 + 4
        assert tree.context.node_count == 2 + 4 + 4

    def test_infra_nodes_one_gives_anchor_only_clusters(self):
        tree = build_hierarchy(ScenarioConfig(backbone_nodes=3, infra_nodes=1))
        assert len(tree) == 4
        assert all(len(c) == 1 for c in tree.clusters[1:])

    def test_short_stop_time_rejected(self):
        with pytest.raises(ValueError, match=">= 10"):
            build_scenario(ScenarioConfig(stop_time=5.0))

    def test_traffic_start_inside_stop_margin_rejected(self):
        config = ScenarioConfig(stop_time=10.0, traffic_start=9.5)
        with pytest.raises(ValueError, match="traffic stop time 9s"):
            build_scenario(config)

    def test_traffic_start_just_before_traffic_stop(self):
        scenario = build_scenario(ScenarioConfig(backbone_nodes=2, stop_time=10.0, traffic_start=8.5))
        assert scenario.flows[0].start_time == 8.5
        assert scenario.flows[0].stop_time == 9.0

    def test_capacity_error_is_located(self):
        config = ScenarioConfig(backbone_nodes=2, levels=[300])
        with pytest.raises(CapacityExceeded) as info:
            build_scenario(config)
        assert info.value.cluster_path == "root/0"
        assert info.value.depth == 1

    def test_same_seed_same_positions(self):
        config = ScenarioConfig(backbone_nodes=3, random_seed=4)
        a = build_hierarchy(config, SimulationContext(4, 0))
        b = build_hierarchy(config, SimulationContext(4, 0))
        for node in a.context.nodes:
            assert a.context.position(node, 7.5) == b.context.position(node, 7.5)

    def test_course_change_lines(self):
        tree = build_hierarchy(ScenarioConfig(backbone_nodes=2, infra_nodes=2))
        lines = course_change_lines(tree, 10.0)

        assert lines[0].startswith("CourseChange /NodeList/0/$ns3::MobilityModel/CourseChange x=")
        assert all(", y=" in line and ", z=" in line for line in lines)
        nodes_seen = {line.split("/")[2] for line in lines}
        assert nodes_seen == {"0", "1", "2", "3"}


class TestResultsWorkflow:

    def test_flowmon_to_csv(self, flowmon_file, temp_dir):
        from services.results_parser import ResultsParser
        from services.flow_stats import FlowStatsAggregator

        records = ResultsParser().parse_flow_monitor_xml(str(flowmon_file))
        report = FlowStatsAggregator().ingest(records)
        written = ReportWriter().write(report, temp_dir / "out")

        with open(written["flows"], newline="", encoding="utf-8") as f:
            rows = list(csv.DictReader(f))
        assert len(rows) == 2
        degenerate = [r for r in rows if "degenerate_flow" in r["flags"]]
        assert len(degenerate) == 1
        assert degenerate[0]["mean_delay"] == "nan"

    def test_collect_results(self, flowmon_file):
        runner = pytest.importorskip("services.simulation_runner")
        results = runner.collect_results(0, "done", str(flowmon_file.parent))

        assert results.success
        assert results.flowmon_path == str(flowmon_file)
        assert len(results.flow_records) == 2
        assert len(results.report.flagged_flows) == 1

    def test_collect_results_console_fallback(self, temp_dir):
        runner = pytest.importorskip("services.simulation_runner")

        results = runner.collect_results(0, CONSOLE_OUTPUT, str(temp_dir))
        assert [r.flow_id for r in results.flow_records] == [1, 2]
        assert results.report.source("192.168.1.2").flagged_count == 1

    def test_collect_results_failure(self, temp_dir):
        runner = pytest.importorskip("services.simulation_runner")
        results = runner.collect_results(1, "boom", str(temp_dir))
        assert not results.success
        assert "exit code 1" in results.error_message
        assert results.report is None


class TestCommandLine:

    @pytest.fixture
    def config_path(self, temp_dir):
        return str(temp_dir / "settings.json")

    def test_plan(self, config_path, capsys):
        code = main.main(["--config", config_path, "plan", "--backbone-nodes", "3", "--course-changes"])
        out = capsys.readouterr().out

        assert code == 0
        assert "4 clusters, 6 nodes" in out
        assert "root/2" in out
        assert "CourseChange /NodeList/" in out

    def test_generate(self, config_path, temp_dir):
        script_path = temp_dir / "scratch" / "mixed_wireless.py"
        code = main.main([
            "--config", config_path, "generate", "--backbone-nodes", "2",
            "-o", str(script_path), "--results-dir", str(temp_dir / "results"),
        ])

        assert code == 0
        assert_valid_python(script_path.read_text(encoding="utf-8"))

    def test_generate_uses_stored_mobility(self, config_path, temp_dir):
        import json
        with open(config_path, "w", encoding="utf-8") as f:
            json.dump({"mobility": {"leaf_kind": "random-waypoint"}}, f)
        script_path = temp_dir / "waypoint.py"

        code = main.main(["--config", config_path, "generate", "--backbone-nodes", "2",
                          "-o", str(script_path)])

        script = script_path.read_text(encoding="utf-8")
        assert code == 0
        assert_valid_python(script)
        assert "'model': 'ns3::RandomWaypointMobilityModel'" in script

    def test_report(self, config_path, flowmon_file, temp_dir, capsys):
        out_dir = temp_dir / "report"
        code = main.main(["--config", config_path, "report", str(flowmon_file), "-o", str(out_dir)])

        assert code == 0
        assert (out_dir / "flows.csv").exists()
        assert (out_dir / "sources.csv").exists()
        assert "192.168.0.1" in capsys.readouterr().out

    def test_report_console_log(self, config_path, temp_dir):
        log = temp_dir / "run.log"
        log.write_text(CONSOLE_OUTPUT, encoding="utf-8")

        assert main.main(["--config", config_path, "report", str(log), "--console"]) == 0
        assert (temp_dir / "pairs.csv").exists()

    def test_report_missing_file(self, config_path, temp_dir):
        assert main.main(["--config", config_path, "report", str(temp_dir / "missing.xml")]) == 1

    def test_invalid_stop_time(self, config_path):
        assert main.main(["--config", config_path, "plan", "--stop-time", "5"]) == 1

    def test_topology_error_exit_code(self, config_path):
        assert main.main(["--config", config_path, "plan", "--levels", "300"]) == 2


class TestReportViewer:

    @pytest.fixture
    def app(self, monkeypatch):
        monkeypatch.setenv("QT_QPA_PLATFORM", "offscreen")
        widgets = pytest.importorskip("PyQt6.QtWidgets")
        return widgets.QApplication.instance() or widgets.QApplication([])

    def test_viewer_highlights_flagged_cells(self, app, flowmon_file):
        from views import ReportViewer
        from views.report_viewer import FLAG_COLOR

        viewer = ReportViewer()
        report = viewer.load_flow_monitor(str(flowmon_file))

        table = viewer.flow_table
        assert table.rowCount() == 2
        columns = table.columns
        flagged_row = next(i for i, m in enumerate(report.flows) if m.is_flagged)
        item = table.item(flagged_row, columns.index("mean_delay"))
        assert item.text() == "nan"
        assert item.foreground().color().name() == FLAG_COLOR.lower()
        assert viewer.source_table.rowCount() == 2
