"""
Scenario configuration and raw simulation results.

Describes what a run should build (ScenarioConfig) and what the simulator
hands back afterwards (FlowRecord, SimulationResults).
"""

from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Optional


# ns-3 refuses to produce meaningful flows for shorter runs
MIN_STOP_TIME = 10.0

# traffic stops this long before the run ends
TRAFFIC_STOP_MARGIN = 1.0


class SimulationStatus(Enum):
    """Current state of the simulation."""
    IDLE = auto()
    BUILDING = auto()
    RUNNING = auto()
    COMPLETED = auto()
    ERROR = auto()


@dataclass
class ScenarioConfig:
    """
    Complete scenario configuration.

    ``levels`` lists the cluster sizes below the backbone; the default single
    level reproduces the classic backbone + leaf layout where every backbone
    router owns ``infra_nodes - 1`` leaf nodes.
    """
    backbone_nodes: int = 10
    infra_nodes: int = 2
    levels: list[int] = field(default_factory=list)
    stop_time: float = 20.0
    random_seed: int = 1
    run: int = 0

    # Addressing
    base_address: str = "192.168.0.0"
    prefix_length: int = 24

    # Traffic
    traffic_mode: str = "fixed-remote"
    traffic_start: float = 1.0
    data_rate: str = "100kb/s"
    packet_size: int = 1472
    port: int = 9

    # Output
    use_course_change_callback: bool = False
    enable_ascii_trace: bool = True
    enable_pcap: bool = True
    enable_animation: bool = True
    enable_flow_monitor: bool = True

    @property
    def traffic_stop(self) -> float:
        return self.stop_time - TRAFFIC_STOP_MARGIN

    @property
    def leaf_levels(self) -> list[int]:
        """Member count of every level below the backbone."""
        return list(self.levels) if self.levels else [self.infra_nodes - 1]

    def validate(self):
        """Raise ValueError for configurations the scenario cannot run."""
        if self.stop_time < MIN_STOP_TIME:
            raise ValueError(f"Use a simulation stop time >= {MIN_STOP_TIME:g} seconds")
        if self.backbone_nodes < 1:
            raise ValueError("At least one backbone node is required")
        if self.infra_nodes < 1 and not self.levels:
            raise ValueError("Infra node count includes the backbone router and must be at least 1")
        if any(count < 0 for count in self.levels):
            raise ValueError(f"Level sizes must not be negative: {self.levels}")
        if self.traffic_start >= self.traffic_stop:
            raise ValueError(
                f"Traffic start {self.traffic_start:g}s must be before the traffic stop "
                f"time {self.traffic_stop:g}s ({TRAFFIC_STOP_MARGIN:g}s before the simulation stops)"
            )


@dataclass
class FlowRecord:
    """
    Raw per-flow counters from FlowMonitor.

    Times are in seconds. ``delay_sum`` and ``jitter_sum`` are the summed
    per-packet delay and jitter, also in seconds.
    """
    source_address: str = ""
    destination_address: str = ""
    tx_bytes: int = 0
    rx_bytes: int = 0
    first_tx_time: float = 0.0
    last_tx_time: float = 0.0
    delay_sum: float = 0.0
    jitter_sum: float = 0.0
    rx_packets: int = 0
    lost_packets: int = 0

    # Five-tuple and extra counters
    flow_id: int = 0
    protocol: int = 0  # 6=TCP, 17=UDP
    source_port: int = 0
    destination_port: int = 0
    tx_packets: int = 0

    @property
    def key(self) -> str:
        """Endpoint pair key shared by repeated observations of one flow."""
        return f"{self.source_address}->{self.destination_address}"

    @property
    def protocol_name(self) -> str:
        """Get protocol name."""
        return {6: "TCP", 17: "UDP"}.get(self.protocol, f"Proto-{self.protocol}")


@dataclass
class SimulationResults:
    """Outcome of one simulator run."""
    success: bool = False
    error_message: str = ""
    flow_records: list[FlowRecord] = field(default_factory=list)
    report: Optional[object] = None     # services.flow_stats.FlowReport
    console_output: str = ""
    flowmon_path: str = ""
    trace_file_path: str = ""
    pcap_files: list[str] = field(default_factory=list)

    @property
    def total_tx_bytes(self) -> int:
        return sum(r.tx_bytes for r in self.flow_records)

    @property
    def total_rx_bytes(self) -> int:
        return sum(r.rx_bytes for r in self.flow_records)

    @property
    def total_lost_packets(self) -> int:
        return sum(r.lost_packets for r in self.flow_records)
