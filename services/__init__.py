"""Services package."""

from .flow_stats import (
    FlowMetrics,
    FlowAggregate,
    SourceAggregate,
    PartialAggregate,
    FlowReport,
    FlowStatsAggregator,
    aggregate_flows,
    flow_duration,
    mean_delay,
    mean_jitter,
)
from .results_parser import ResultsParser, parse_time_seconds
from .report_writer import ReportWriter
from .topology_builder import (
    Scenario,
    build_hierarchy,
    plan_traffic,
    build_scenario,
    course_change_lines,
)
from .ns3_generator import NS3ScriptGenerator, generate_ns3_script
from .settings_manager import (
    SettingsManager,
    AppSettings,
    NS3Settings,
    TopologyDefaults,
    MobilityDefaults,
    SimulationDefaults,
    PathSettings,
    get_settings,
    reset_settings_manager,
)

__all__ = [
    # Flow statistics
    "FlowMetrics",
    "FlowAggregate",
    "SourceAggregate",
    "PartialAggregate",
    "FlowReport",
    "FlowStatsAggregator",
    "aggregate_flows",
    "flow_duration",
    "mean_delay",
    "mean_jitter",
    "ResultsParser",
    "parse_time_seconds",
    "ReportWriter",
    # Scenario
    "Scenario",
    "build_hierarchy",
    "plan_traffic",
    "build_scenario",
    "course_change_lines",
    "NS3ScriptGenerator",
    "generate_ns3_script",
    # Settings
    "SettingsManager",
    "AppSettings",
    "NS3Settings",
    "TopologyDefaults",
    "MobilityDefaults",
    "SimulationDefaults",
    "PathSettings",
    "get_settings",
    "reset_settings_manager",
]
