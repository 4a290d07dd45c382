"""
Topology and flow-metric errors.

Construction errors derive from TopologyError and abort the whole build.
Metric errors derive from FlowMetricError and are isolated to one record.
"""

from typing import Optional


class TopologyError(Exception):
    """
    Fatal error raised while building the cluster tree.

    Carries the path of the cluster that failed (e.g. "root/3/1") and its
    depth so a failure deep in the hierarchy can be located.
    """

    def __init__(self, message: str, cluster_path: Optional[str] = None, depth: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.cluster_path = cluster_path
        self.depth = depth

    def locate(self, cluster_path: str, depth: int) -> "TopologyError":
        """Attach the failing cluster location unless one is already set."""
        if self.cluster_path is None:
            self.cluster_path = cluster_path
            self.depth = depth
        return self

    def __str__(self) -> str:
        if self.cluster_path is None:
            return self.message
        return f"{self.message} (cluster {self.cluster_path}, level {self.depth})"


class CapacityExceeded(TopologyError):
    """Address pool cannot satisfy the requested host count."""


class UnboundReference(TopologyError):
    """Mobility reference node has no installed trajectory (or was destroyed)."""


class InvalidAnchor(TopologyError):
    """Parent anchor index is out of range."""


class InvalidMemberCount(TopologyError):
    """Cluster requested with a negative member count."""


class FlowMetricError(Exception):
    """A derived flow metric cannot be computed for one record."""

    flag = "invalid"


class DegenerateFlow(FlowMetricError):
    """Flow duration is zero or negative."""

    flag = "degenerate_flow"


class DivideByZeroMetric(FlowMetricError):
    """Too few received packets for a mean delay or jitter."""

    def __init__(self, metric: str):
        super().__init__(f"{metric} undefined: not enough received packets")
        self.metric = metric
        self.flag = f"{metric}_undefined"
