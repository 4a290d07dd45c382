"""
Traffic planning.

A TrafficPlan turns a built cluster tree into constant-bit-rate flow
descriptors. It only plans: the simulator installs and runs the flows.
"""

import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Optional

from .cluster import NetworkCluster, NodeHandle, SimulationContext

logger = logging.getLogger(__name__)


class TrafficMode(Enum):
    """How sources are matched with destinations."""
    PAIRED = "paired"                       # backbone anchor -> mirrored sibling cluster
    RANDOM_ALL_TO_ALL = "random-all-to-all" # every node -> one random other node
    FIXED_REMOTE = "fixed-remote"           # one fixed source -> last leaf node


_RATE_UNITS = {
    "bps": 1, "b/s": 1,
    "kbps": 1_000, "kb/s": 1_000,
    "mbps": 1_000_000, "mb/s": 1_000_000,
    "gbps": 1_000_000_000, "gb/s": 1_000_000_000,
}


def parse_data_rate(rate) -> int:
    """
    Convert an ns-3 style data rate ("100kb/s", "5Mbps", 2000) to bits per second.
    """
    if isinstance(rate, (int, float)):
        return int(rate)
    match = re.fullmatch(r"\s*([\d.]+)\s*([A-Za-z/]*)\s*", str(rate))
    if not match:
        raise ValueError(f"Invalid data rate: {rate!r}")
    value, unit = float(match.group(1)), match.group(2).lower() or "bps"
    if unit not in _RATE_UNITS:
        raise ValueError(f"Unknown data rate unit in {rate!r}")
    return int(value * _RATE_UNITS[unit])


@dataclass(frozen=True)
class FlowDescriptor:
    """One planned constant-bit-rate flow."""
    source: NodeHandle
    destination: NodeHandle
    start_time: float
    stop_time: float
    rate_bps: int
    packet_size: int
    port: int = 9
    source_address: str = ""
    destination_address: str = ""

    @property
    def data_rate(self) -> str:
        """Rate in ns-3 DataRate syntax."""
        return f"{self.rate_bps}bps"

    @property
    def duration(self) -> float:
        return self.stop_time - self.start_time


class TrafficPlan:
    """
    Generates flow descriptors between cluster members.

    Args:
        context: Simulation context providing the RNG and node addresses
        start_time: Flow start (seconds)
        stop_time: Flow stop (seconds)
        data_rate: Constant bit rate, bits/s or ns-3 rate string
        packet_size: Payload bytes per packet
        port: Destination port of the sinks
        source_index: Global node index used as the fixed-remote source
            (defaults to the first node of the first leaf cluster)
    """

    def __init__(
        self,
        context: SimulationContext,
        start_time: float = 1.0,
        stop_time: float = 19.0,
        data_rate="100kb/s",
        packet_size: int = 1472,
        port: int = 9,
        source_index: Optional[int] = None,
    ):
        if stop_time <= start_time:
            raise ValueError(f"Flow stop time {stop_time} must be after start time {start_time}")
        if packet_size <= 0:
            raise ValueError(f"Packet size must be positive, got {packet_size}")
        self.context = context
        self.start_time = start_time
        self.stop_time = stop_time
        self.rate_bps = parse_data_rate(data_rate)
        self.packet_size = packet_size
        self.port = port
        self.source_index = source_index

    def generate(self, clusters: Iterable[NetworkCluster], mode) -> list[FlowDescriptor]:
        """
        Plan flows over ``clusters`` (a ClusterTree or a list, root first).
        """
        clusters = list(clusters)
        if not clusters:
            return []
        mode = TrafficMode(mode) if not isinstance(mode, TrafficMode) else mode

        if mode == TrafficMode.RANDOM_ALL_TO_ALL:
            pairs = self._random_all_to_all(clusters)
        elif mode == TrafficMode.PAIRED:
            pairs = self._paired(clusters)
        else:
            pairs = self._fixed_remote(clusters)

        flows = [self._descriptor(src, dst) for src, dst in pairs]
        logger.info(f"Planned {len(flows)} {mode.value} flows")
        return flows

    def _descriptor(self, source: NodeHandle, destination: NodeHandle) -> FlowDescriptor:
        return FlowDescriptor(
            source=source,
            destination=destination,
            start_time=self.start_time,
            stop_time=self.stop_time,
            rate_bps=self.rate_bps,
            packet_size=self.packet_size,
            port=self.port,
            source_address=self.context.primary_address(source),
            destination_address=self.context.primary_address(destination),
        )

    @staticmethod
    def _all_nodes(clusters: list[NetworkCluster]) -> list[NodeHandle]:
        seen = {}
        for cluster in clusters:
            for node in cluster.members:
                seen.setdefault(node.index, node)
        return [seen[i] for i in sorted(seen)]

    def _random_all_to_all(self, clusters) -> list[tuple[NodeHandle, NodeHandle]]:
        nodes = self._all_nodes(clusters)
        if len(nodes) < 2:
            raise ValueError("Random traffic needs at least two nodes")
        rng = self.context.rng
        pairs = []
        for source in nodes:
            destination = rng.choice(nodes)
            while destination == source:
                destination = rng.choice(nodes)
            pairs.append((source, destination))
        return pairs

    def _paired(self, clusters) -> list[tuple[NodeHandle, NodeHandle]]:
        # backbone anchor i talks to the last node of sibling cluster n-1-i
        root = clusters[0]
        siblings = sorted(
            (c for c in clusters if c.parent is root),
            key=lambda c: c.anchor_index,
        )
        if not siblings:
            raise ValueError("Paired traffic needs at least one leaf cluster")

        pairs = []
        for i, anchor in enumerate(root.members):
            mirror = siblings[len(siblings) - 1 - (i % len(siblings))]
            targets = mirror.own_members or (mirror.anchor,)
            destination = targets[-1]
            if destination == anchor:
                continue
            pairs.append((anchor, destination))
        return pairs

    def _fixed_remote(self, clusters) -> list[tuple[NodeHandle, NodeHandle]]:
        root = clusters[0]
        leaves = [c for c in clusters if not c.is_root and c.own_members]

        if self.source_index is not None:
            source = self.context.node(self.source_index)
        elif leaves:
            source = leaves[0].own_members[0]
        elif root.members:
            source = root.members[0]
        else:
            raise ValueError("Fixed-remote traffic needs at least one node")

        destination = leaves[-1].own_members[-1] if leaves else self._all_nodes(clusters)[-1]
        if destination == source:
            raise ValueError(f"Fixed-remote source and destination are the same node ({source})")
        return [(source, destination)]
