"""
Models package.

This package contains the data models of the scenario toolkit.

Topology:
- Subnet allocation (AddressPool, AddressRange)
- Mobility (MobilityBinding, MobilityKind, NodeMobility)
- Cluster tree (NetworkCluster, ClusterTree, SimulationContext)

Traffic and results:
- Traffic planning (TrafficPlan, FlowDescriptor, TrafficMode)
- Scenario configuration and raw flow counters (ScenarioConfig, FlowRecord)
"""

from .errors import (
    TopologyError,
    CapacityExceeded,
    UnboundReference,
    InvalidAnchor,
    InvalidMemberCount,
    FlowMetricError,
    DegenerateFlow,
    DivideByZeroMetric,
)
from .addressing import (
    AddressRange,
    AddressPool,
)
from .mobility import (
    MobilityKind,
    Vector,
    Rectangle,
    RandomVariable,
    GridPositionAllocator,
    ListPositionAllocator,
    RandomRectanglePositionAllocator,
    Trajectory,
    StaticTrajectory,
    RandomWaypointTrajectory,
    RandomDirectionTrajectory,
    NodeMobility,
    MobilityRegistry,
    MobilityBinding,
)
from .cluster import (
    NodeHandle,
    SimulationContext,
    NetworkCluster,
    ClusterTree,
    default_backbone_mobility,
    default_leaf_mobility,
)
from .simulation import (
    MIN_STOP_TIME,
    TRAFFIC_STOP_MARGIN,
    SimulationStatus,
    ScenarioConfig,
    FlowRecord,
    SimulationResults,
)
from .traffic import (
    TrafficMode,
    FlowDescriptor,
    TrafficPlan,
    parse_data_rate,
)


__all__ = [
    # Errors
    "TopologyError",
    "CapacityExceeded",
    "UnboundReference",
    "InvalidAnchor",
    "InvalidMemberCount",
    "FlowMetricError",
    "DegenerateFlow",
    "DivideByZeroMetric",
    # Addressing
    "AddressRange",
    "AddressPool",
    # Mobility
    "MobilityKind",
    "Vector",
    "Rectangle",
    "RandomVariable",
    "GridPositionAllocator",
    "ListPositionAllocator",
    "RandomRectanglePositionAllocator",
    "Trajectory",
    "StaticTrajectory",
    "RandomWaypointTrajectory",
    "RandomDirectionTrajectory",
    "NodeMobility",
    "MobilityRegistry",
    "MobilityBinding",
    # Clusters
    "NodeHandle",
    "SimulationContext",
    "NetworkCluster",
    "ClusterTree",
    "default_backbone_mobility",
    "default_leaf_mobility",
    # Simulation
    "MIN_STOP_TIME",
    "TRAFFIC_STOP_MARGIN",
    "SimulationStatus",
    "ScenarioConfig",
    "FlowRecord",
    "SimulationResults",
    # Traffic
    "TrafficMode",
    "FlowDescriptor",
    "TrafficPlan",
    "parse_data_rate",
]
