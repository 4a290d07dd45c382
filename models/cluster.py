"""
Hierarchical cluster topology.

A ClusterTree is the arena owning every NetworkCluster of a scenario. Each
cluster holds its members, the address range it was assigned and the
mobility binding installed over it. Children reference their parent weakly
and draw subnets from the parent's (shared) pool.

Simulator-wide state (node registry, RNG, installed mobility) lives in an
explicit SimulationContext passed through construction.
"""

import logging
import random
import weakref
from dataclasses import dataclass
from typing import Iterator, Optional

from .addressing import AddressPool, AddressRange
from .errors import TopologyError, CapacityExceeded, InvalidAnchor, InvalidMemberCount
from .mobility import MobilityBinding, MobilityKind, MobilityRegistry, Vector

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NodeHandle:
    """Opaque node reference; ``index`` matches the simulator's global node list."""
    index: int
    name: str = ""

    def __str__(self) -> str:
        return self.name or f"node{self.index}"


class SimulationContext:
    """
    Explicit replacement for the simulator's global state.

    Holds the global node list, the scenario RNG (seed and run number), the
    installed mobility of every node and the addresses assigned to nodes.
    """

    def __init__(self, seed: int = 1, run: int = 0):
        self.seed = seed
        self.run = run
        self.rng = random.Random(f"{seed}:{run}")
        self.mobility = MobilityRegistry()
        self._nodes: list[NodeHandle] = []
        self._addresses: dict[int, list[str]] = {}
        self._destroyed: set[int] = set()

    @property
    def nodes(self) -> list[NodeHandle]:
        return list(self._nodes)

    @property
    def node_count(self) -> int:
        return len(self._nodes)

    def create_nodes(self, count: int) -> list[NodeHandle]:
        created = [NodeHandle(len(self._nodes) + i) for i in range(count)]
        self._nodes.extend(created)
        return created

    def node(self, index: int) -> NodeHandle:
        if not 0 <= index < len(self._nodes):
            raise IndexError(f"No node with index {index} (have {len(self._nodes)})")
        return self._nodes[index]

    def destroy_node(self, node: NodeHandle):
        """Mark a node destroyed and release its mobility."""
        self._destroyed.add(node.index)
        self.mobility.release(node)

    def is_alive(self, node: NodeHandle) -> bool:
        return node.index not in self._destroyed

    def assign_address(self, node: NodeHandle, address: str):
        self._addresses.setdefault(node.index, []).append(address)

    def addresses(self, node: NodeHandle) -> list[str]:
        return list(self._addresses.get(node.index, []))

    def primary_address(self, node: NodeHandle) -> str:
        """First address assigned to the node (its own cluster's address)."""
        addresses = self._addresses.get(node.index)
        if not addresses:
            raise ValueError(f"Node {node} has no assigned address")
        return addresses[0]

    def node_for_address(self, address: str) -> Optional[NodeHandle]:
        for index, addresses in self._addresses.items():
            if address in addresses:
                return self._nodes[index]
        return None

    def position(self, node: NodeHandle, t: float) -> Vector:
        return self.mobility.position(node, t)


class NetworkCluster:
    """
    A group of nodes sharing one subnet and one mobility binding.

    Members are fixed at construction. For a child cluster the parent's
    anchor node is appended as the last member: it belongs to both clusters
    and acts as their gateway.
    """

    def __init__(
        self,
        context: SimulationContext,
        members: tuple[NodeHandle, ...],
        address_range: AddressRange,
        address_pool: AddressPool,
        mobility: MobilityBinding,
        parent: Optional["NetworkCluster"] = None,
        anchor_index: Optional[int] = None,
        path: str = "root",
    ):
        self.context = context
        self._members = tuple(members)
        self.address_range = address_range
        self.address_pool = address_pool
        self.mobility = mobility
        self._parent = weakref.ref(parent) if parent is not None else None
        self.anchor_index = anchor_index
        self.depth = 0 if parent is None else parent.depth + 1
        self.path = path

    @property
    def members(self) -> tuple[NodeHandle, ...]:
        return self._members

    @property
    def parent(self) -> Optional["NetworkCluster"]:
        return self._parent() if self._parent is not None else None

    @property
    def is_root(self) -> bool:
        return self._parent is None

    @property
    def anchor(self) -> Optional[NodeHandle]:
        """The parent node this cluster attaches through (None for the root)."""
        return self.mobility.reference

    @property
    def gateway(self) -> Optional[NodeHandle]:
        """Anchor for child clusters, first member for the root."""
        if not self.is_root:
            return self.anchor
        return self._members[0] if self._members else None

    @property
    def own_members(self) -> tuple[NodeHandle, ...]:
        """Members created by this cluster (the shared anchor excluded)."""
        if self.is_root:
            return self._members
        return self._members[:-1]

    def address_of(self, node: NodeHandle) -> str:
        """Address the node holds inside this cluster's subnet."""
        for member, address in zip(self._members, self.address_range.hosts):
            if member == node:
                return address
        raise ValueError(f"Node {node} is not a member of cluster {self.path}")

    def __len__(self) -> int:
        return len(self._members)

    def __repr__(self) -> str:
        return f"NetworkCluster(path={self.path!r}, members={len(self._members)}, subnet={self.address_range.cidr})"


def default_backbone_mobility() -> MobilityBinding:
    """Backbone routers: grid placement, random direction over a 1 km square."""
    return MobilityBinding(
        kind=MobilityKind.RANDOM_DIRECTION,
        parameters={
            "PositionAllocator": "grid",
            "MinX": 20.0, "MinY": 20.0,
            "DeltaX": 20.0, "DeltaY": 20.0,
            "GridWidth": 5, "LayoutType": "RowFirst",
            "Bounds": (-500.0, 500.0, -500.0, 500.0),
            "Speed": "ns3::ConstantRandomVariable[Constant=2]",
            "Pause": "ns3::ConstantRandomVariable[Constant=0.2]",
        },
    )


def default_leaf_mobility() -> MobilityBinding:
    """Leaf clusters: stacked along y, random direction in a 20 m square around the anchor."""
    return MobilityBinding(
        kind=MobilityKind.RANDOM_DIRECTION,
        parameters={
            # one column: member j starts at (0, j, 0)
            "PositionAllocator": "grid",
            "MinX": 0.0, "MinY": 0.0,
            "DeltaX": 0.0, "DeltaY": 1.0,
            "GridWidth": 1, "LayoutType": "RowFirst",
            "Bounds": (-10.0, 10.0, -10.0, 10.0),
            "Speed": "ns3::ConstantRandomVariable[Constant=3]",
            "Pause": "ns3::ConstantRandomVariable[Constant=0.4]",
        },
    )


class ClusterTree:
    """
    Arena owning every cluster of one topology.

    The root cluster allocates from the tree's own fresh pool; every
    descendant allocates from that same pool object, so subnets are unique
    across the whole tree.

    Args:
        context: Simulation context (node registry, RNG, mobility)
        pool: Pool for the root cluster; a default 192.168.0.0/24 pool if omitted
        root_mobility: Binding used by the root when ``build`` gets none
        child_mobility: Binding used by children when ``build`` gets none
    """

    def __init__(
        self,
        context: Optional[SimulationContext] = None,
        pool: Optional[AddressPool] = None,
        root_mobility: Optional[MobilityBinding] = None,
        child_mobility: Optional[MobilityBinding] = None,
    ):
        self.context = context or SimulationContext()
        self.pool = pool or AddressPool()
        self.root_mobility = root_mobility or default_backbone_mobility()
        self.child_mobility = child_mobility or default_leaf_mobility()
        self._clusters: list[NetworkCluster] = []

    @property
    def root(self) -> Optional[NetworkCluster]:
        return self._clusters[0] if self._clusters else None

    @property
    def clusters(self) -> list[NetworkCluster]:
        return list(self._clusters)

    def __iter__(self) -> Iterator[NetworkCluster]:
        return iter(self._clusters)

    def __len__(self) -> int:
        return len(self._clusters)

    def children(self, cluster: NetworkCluster) -> list[NetworkCluster]:
        return [c for c in self._clusters if c.parent is cluster]

    def walk(self, cluster: Optional[NetworkCluster] = None) -> Iterator[NetworkCluster]:
        """Depth-first traversal starting at ``cluster`` (the root by default)."""
        start = cluster if cluster is not None else self.root
        if start is None:
            return
        yield start
        for child in self.children(start):
            yield from self.walk(child)

    def depth(self) -> int:
        return max((c.depth for c in self._clusters), default=-1) + 1

    def build(
        self,
        member_count: int,
        parent: Optional[NetworkCluster] = None,
        anchor_index: Optional[int] = None,
        mobility: Optional[MobilityBinding] = None,
    ) -> NetworkCluster:
        """
        Build one cluster and attach it to the tree.

        Args:
            member_count: Number of new nodes (0 yields an empty root or an
                anchor-only child, both with a valid allocation)
            parent: Cluster to attach to; None builds the root
            anchor_index: Index into ``parent.members`` of the gateway node
            mobility: Binding template; the tree defaults are used if omitted

        Raises:
            InvalidAnchor: Anchor index missing or out of range
            InvalidMemberCount: Negative member count
            CapacityExceeded: Pool cannot hold the cluster
            UnboundReference: Anchor node has no installed mobility
        """
        path = self._path_for(parent, anchor_index)
        depth = 0 if parent is None else parent.depth + 1
        try:
            return self._build(member_count, parent, anchor_index, mobility, path)
        except TopologyError as e:
            logger.error(f"Failed to build cluster {path} at level {depth}: {e.message}")
            raise e.locate(path, depth)

    def _build(self, member_count, parent, anchor_index, mobility, path) -> NetworkCluster:
        if member_count < 0:
            raise InvalidMemberCount(f"Member count must not be negative, got {member_count}")

        anchor = None
        if parent is None:
            if self._clusters:
                raise ValueError("Tree already has a root cluster")
            if anchor_index is not None:
                raise InvalidAnchor("Anchor index given for a root cluster")
            pool = self.pool
            template = mobility or self.root_mobility
        else:
            if parent not in self._clusters:
                raise ValueError(f"Parent cluster {parent.path} does not belong to this tree")
            if anchor_index is None or not 0 <= anchor_index < len(parent.members):
                raise InvalidAnchor(
                    f"Anchor index {anchor_index} out of range for parent {parent.path} "
                    f"with {len(parent.members)} members"
                )
            anchor = parent.members[anchor_index]
            pool = parent.address_pool
            template = mobility or self.child_mobility

        host_count = member_count + (1 if anchor is not None else 0)
        if host_count > pool.host_capacity:
            raise CapacityExceeded(
                f"Cluster needs {host_count} hosts but a /{pool.prefix_length} subnet holds {pool.host_capacity}"
            )

        address_range = pool.allocate(host_count)
        if parent is not None:
            pool.new_network()

        members = tuple(self.context.create_nodes(member_count))
        if anchor is not None:
            members += (anchor,)
        for node, address in zip(members, address_range.hosts):
            self.context.assign_address(node, address)

        binding = template.with_reference(anchor)
        cluster = NetworkCluster(
            context=self.context,
            members=members,
            address_range=address_range,
            address_pool=pool,
            mobility=binding,
            parent=parent,
            anchor_index=anchor_index,
            path=path,
        )
        binding.install(cluster)
        self._clusters.append(cluster)

        logger.debug(f"Built cluster {path}: {len(members)} members in {address_range.cidr}")
        return cluster

    def _path_for(self, parent: Optional[NetworkCluster], anchor_index: Optional[int]) -> str:
        if parent is None:
            return "root"
        path = f"{parent.path}/{anchor_index}"
        taken = {c.path for c in self._clusters}
        suffix = 1
        candidate = path
        while candidate in taken:
            suffix += 1
            candidate = f"{path}.{suffix}"
        return candidate
