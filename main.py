#!/usr/bin/env python3
"""
Mixed wireless scenario toolkit - Main Entry Point

Builds hierarchical ad hoc wireless topologies (a mobile backbone with
clusters of nodes moving relative to their backbone router), generates and
runs the matching ns-3 script and aggregates the FlowMonitor results.

Usage:
    python main.py plan --backbone-nodes 10 --infra-nodes 2
    python main.py generate -o scratch/mixed_wireless.py
    python main.py run --ns3-path ~/ns-3-dev
    python main.py report results/flowmon-results.xml -o results/
    python main.py view results/flowmon-results.xml
    python main.py --debug plan     # Enable debug logging
"""

import sys
import logging
import argparse
from pathlib import Path
from typing import Optional

from models import ScenarioConfig, TopologyError, TrafficMode
from services import (
    ReportWriter, ResultsParser, FlowStatsAggregator, NS3ScriptGenerator,
    build_scenario, course_change_lines, SettingsManager,
)

logger = logging.getLogger(__name__)


def setup_logging(debug: bool = False):
    """Configure logging for the application."""
    level = logging.DEBUG if debug else logging.INFO

    formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%H:%M:%S'
    )

    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.addHandler(console_handler)

    logger.info(f"Logging initialized at {'DEBUG' if debug else 'INFO'} level")


def setup_application():
    """Configure the Qt application for the report viewer."""
    from PyQt6.QtCore import Qt
    from PyQt6.QtGui import QFont
    from PyQt6.QtWidgets import QApplication

    QApplication.setHighDpiScaleFactorRoundingPolicy(
        Qt.HighDpiScaleFactorRoundingPolicy.PassThrough
    )

    app = QApplication(sys.argv)
    app.setApplicationName("Mixed Wireless")
    app.setApplicationVersion("0.1.0")
    app.setOrganizationName("mixed-wireless")

    font = QFont("Segoe UI", 10)
    if not font.exactMatch():
        font = QFont("Helvetica Neue", 10)
    app.setFont(font)
    return app


def _levels(value: str) -> list[int]:
    try:
        return [int(part) for part in value.split(",") if part.strip()]
    except ValueError:
        raise argparse.ArgumentTypeError(f"Expected comma separated integers, got {value!r}") from None


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description='Mixed wireless scenario toolkit')
    parser.add_argument('--debug', action='store_true', help='Enable debug logging')
    parser.add_argument('--config', help='Settings file (defaults to the per-user settings.json)')
    sub = parser.add_subparsers(dest='command', required=True)

    scenario = argparse.ArgumentParser(add_help=False)
    scenario.add_argument('--backbone-nodes', type=int, help='Number of backbone routers')
    scenario.add_argument('--infra-nodes', type=int,
                          help='Nodes per infrastructure cluster, backbone router included')
    scenario.add_argument('--levels', type=_levels,
                          help='New nodes per cluster at each level below the backbone, e.g. "2,3"')
    scenario.add_argument('--stop-time', type=float, help='Simulation stop time in seconds (>= 10)')
    scenario.add_argument('--seed', type=int, help='Random seed')
    scenario.add_argument('--run', dest='run_number', type=int, help='Run number')
    scenario.add_argument('--base-address', help='First subnet, e.g. 192.168.0.0')
    scenario.add_argument('--prefix-length', type=int, help='Subnet prefix length')
    scenario.add_argument('--traffic-mode', choices=[m.value for m in TrafficMode])
    scenario.add_argument('--data-rate', help='OnOff data rate, e.g. 100kb/s')
    scenario.add_argument('--course-changes', action='store_true',
                          help='Trace every mobility course change')

    plan = sub.add_parser('plan', parents=[scenario], help='Build the topology and print it')
    plan.set_defaults(handler=cmd_plan)

    generate = sub.add_parser('generate', parents=[scenario], help='Write the ns-3 script')
    generate.add_argument('-o', '--output', help='Script path')
    generate.add_argument('--results-dir', help='Directory the script writes its output to')
    generate.set_defaults(handler=cmd_generate)

    run = sub.add_parser('run', parents=[scenario], help='Generate and run the scenario in ns-3')
    run.add_argument('--ns3-path', help='ns-3 installation (auto-detected if omitted)')
    run.add_argument('--results-dir', help='Directory for traces and reports')
    run.set_defaults(handler=cmd_run)

    report = sub.add_parser('report', help='Aggregate FlowMonitor results into CSV tables')
    report.add_argument('input', help='flowmon-results.xml, or a console log with --console')
    report.add_argument('--console', action='store_true', help='Input is captured console output')
    report.add_argument('-o', '--output-dir', help='Where to write flows/pairs/sources CSV files')
    report.set_defaults(handler=cmd_report)

    view = sub.add_parser('view', help='Open the report viewer')
    view.add_argument('input', nargs='?', help='flowmon-results.xml to open')
    view.set_defaults(handler=cmd_view)

    return parser


def scenario_config(args, settings: SettingsManager) -> ScenarioConfig:
    """Stored defaults overridden by the command line options that were given."""
    config = settings.scenario_config()
    overrides = {
        'backbone_nodes': args.backbone_nodes,
        'infra_nodes': args.infra_nodes,
        'levels': args.levels,
        'stop_time': args.stop_time,
        'random_seed': args.seed,
        'run': args.run_number,
        'base_address': args.base_address,
        'prefix_length': args.prefix_length,
        'traffic_mode': args.traffic_mode,
        'data_rate': args.data_rate,
    }
    for name, value in overrides.items():
        if value is not None:
            setattr(config, name, value)
    if args.course_changes:
        config.use_course_change_callback = True
    return config


def build_from_settings(args, settings: SettingsManager):
    """Scenario for the given options, using the stored mobility defaults."""
    config = scenario_config(args, settings)
    mobility = settings.settings.mobility
    return config, build_scenario(config, backbone_mobility=mobility.backbone_binding(),
                                  leaf_mobility=mobility.leaf_binding())


def cmd_plan(args, settings: SettingsManager) -> int:
    config, scenario = build_from_settings(args, settings)
    tree = scenario.tree

    print(f"{len(tree)} clusters, {tree.context.node_count} nodes, {tree.depth()} levels")
    for cluster in tree.walk():
        indent = "  " * cluster.depth
        nodes = ", ".join(str(n.index) for n in cluster.members)
        print(f"{indent}{cluster.path:<12} {cluster.address_range.cidr:<18} nodes [{nodes}]")

    print(f"\n{len(scenario.flows)} flows ({config.traffic_mode})")
    for flow in scenario.flows:
        print(f"  {flow.source_address} -> {flow.destination_address}:{flow.port} "
              f"{flow.data_rate} {flow.start_time:g}s-{flow.stop_time:g}s")

    if config.use_course_change_callback:
        print()
        for line in course_change_lines(tree, config.stop_time):
            print(line)
    return 0


def cmd_generate(args, settings: SettingsManager) -> int:
    config, scenario = build_from_settings(args, settings)
    results_dir = args.results_dir or str(settings.get_results_dir())
    script = NS3ScriptGenerator().generate(scenario, results_dir)

    output = Path(args.output) if args.output else settings.get_scripts_dir() / "mixed_wireless.py"
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(script, encoding="utf-8")
    logger.info(f"Wrote ns-3 script to {output}")
    print(output)
    return 0


def cmd_run(args, settings: SettingsManager) -> int:
    from PyQt6.QtCore import QCoreApplication
    from services.simulation_runner import NS3SimulationManager

    config, scenario = build_from_settings(args, settings)
    results_dir = Path(args.results_dir) if args.results_dir else settings.get_results_dir()
    results_dir.mkdir(parents=True, exist_ok=True)
    script = NS3ScriptGenerator().generate(scenario, str(results_dir))

    app = QCoreApplication.instance() or QCoreApplication(sys.argv)
    manager = NS3SimulationManager(args.ns3_path or settings.ns3_path)
    outcome = {'code': 1}

    def on_finished(results):
        if results.success and results.report is not None:
            writer = ReportWriter(settings.settings.paths.report_delimiter)
            writer.write(results.report, results_dir)
            print(writer.format_text(results.report))
            outcome['code'] = 0
        else:
            logger.error(results.error_message or "Simulation produced no results")
        app.quit()

    def on_error(message):
        logger.error(message)
        if not manager.is_running:
            app.quit()

    manager.outputReceived.connect(print)
    manager.simulationFinished.connect(on_finished)
    manager.simulationError.connect(on_error)

    if not manager.run_simulation(script, str(results_dir)):
        return 1
    app.exec()
    return outcome['code']


def cmd_report(args, settings: SettingsManager) -> int:
    parser = ResultsParser()
    if args.console:
        records = parser.parse_console_output(Path(args.input).read_text(encoding="utf-8"))
    else:
        records = parser.parse_flow_monitor_xml(args.input)

    report = FlowStatsAggregator().ingest(records)
    writer = ReportWriter(settings.settings.paths.report_delimiter)
    output_dir = Path(args.output_dir) if args.output_dir else Path(args.input).parent
    for name, path in writer.write(report, output_dir).items():
        logger.info(f"Wrote {name} table to {path}")
    print(writer.format_text(report))
    return 0


def cmd_view(args, settings: SettingsManager) -> int:
    from views import ReportWindow

    app = setup_application()
    window = ReportWindow()
    if args.input:
        window.open_file(args.input)
    window.show()
    return app.exec()


def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)
    setup_logging(debug=args.debug)
    settings = SettingsManager(args.config)

    try:
        return args.handler(args, settings)
    except TopologyError as e:
        logger.error(f"Topology construction failed: {e}")
        return 2
    except (ValueError, FileNotFoundError) as e:
        logger.error(str(e))
        return 1


if __name__ == "__main__":
    sys.exit(main())
