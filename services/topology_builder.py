"""
Scenario driver.

Builds the backbone cluster, then recursively attaches one child cluster per
backbone router (and per node of each deeper level), all sharing the root
address pool. Also plans the scenario traffic and renders course-change
traces.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional

from models import (
    AddressPool, ClusterTree, NetworkCluster, SimulationContext,
    MobilityBinding, ScenarioConfig, TrafficPlan, FlowDescriptor,
    default_backbone_mobility, default_leaf_mobility,
)

logger = logging.getLogger(__name__)


@dataclass
class Scenario:
    """A built topology together with its traffic plan."""
    config: ScenarioConfig
    tree: ClusterTree
    flows: list[FlowDescriptor] = field(default_factory=list)

    @property
    def context(self) -> SimulationContext:
        return self.tree.context


def build_hierarchy(
    config: ScenarioConfig,
    context: Optional[SimulationContext] = None,
    backbone_mobility: Optional[MobilityBinding] = None,
    leaf_mobility: Optional[MobilityBinding] = None,
) -> ClusterTree:
    """
    Build the cluster tree described by ``config``.

    Level 0 is the backbone with ``config.backbone_nodes`` routers. Each
    following entry of ``config.leaf_levels`` gives the number of new nodes in
    every cluster attached below each node of the previous level.
    """
    context = context or SimulationContext(config.random_seed, config.run)
    tree = ClusterTree(
        context=context,
        pool=AddressPool(config.base_address, config.prefix_length),
        root_mobility=backbone_mobility or default_backbone_mobility(),
        child_mobility=leaf_mobility or default_leaf_mobility(),
    )

    root = tree.build(config.backbone_nodes)
    logger.info(f"Backbone: {len(root)} routers in {root.address_range.cidr}")

    frontier: list[tuple[NetworkCluster, int]] = [(root, i) for i in range(len(root.members))]
    for level, member_count in enumerate(config.leaf_levels, start=1):
        next_frontier = []
        for parent, anchor_index in frontier:
            if parent.is_root:
                logger.info(f"Configuring wireless network for backbone node {anchor_index}")
            child = tree.build(member_count, parent=parent, anchor_index=anchor_index)
            next_frontier.extend((child, i) for i in range(len(child.own_members)))
        logger.debug(f"Level {level}: {len(frontier)} clusters of {member_count} nodes")
        frontier = next_frontier

    logger.info(f"Built {len(tree)} clusters with {context.node_count} nodes")
    return tree


def plan_traffic(tree: ClusterTree, config: ScenarioConfig) -> list[FlowDescriptor]:
    """Plan the scenario flows; traffic stops one second before the run ends."""
    plan = TrafficPlan(
        tree.context,
        start_time=config.traffic_start,
        stop_time=config.traffic_stop,
        data_rate=config.data_rate,
        packet_size=config.packet_size,
        port=config.port,
    )
    return plan.generate(tree, config.traffic_mode)


def build_scenario(
    config: ScenarioConfig,
    context: Optional[SimulationContext] = None,
    backbone_mobility: Optional[MobilityBinding] = None,
    leaf_mobility: Optional[MobilityBinding] = None,
) -> Scenario:
    """Validate ``config``, build the tree and plan its traffic."""
    config.validate()
    tree = build_hierarchy(config, context, backbone_mobility, leaf_mobility)
    return Scenario(config=config, tree=tree, flows=plan_traffic(tree, config))


def course_change_lines(tree: ClusterTree, until: float) -> list[str]:
    """
    Course-change trace for every node, in the simulator's trace format.
    """
    events = []
    for node in tree.context.nodes:
        if node not in tree.context.mobility:
            continue
        for t, position in tree.context.mobility.get(node).course_changes(until):
            events.append((t, node.index, position))

    return [
        f"CourseChange /NodeList/{index}/$ns3::MobilityModel/CourseChange "
        f"x={p.x:g}, y={p.y:g}, z={p.z:g}"
        for t, index, p in sorted(events, key=lambda e: (e[0], e[1]))
    ]
