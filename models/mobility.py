"""
Mobility models and reference (hierarchical) mobility.

A MobilityBinding describes how a cluster's members move: the model kind,
its named options (Speed, Pause, Bounds and position-allocator options) and
an optional reference node. Installing a binding creates one NodeMobility per
member. A referenced NodeMobility reports its local trajectory offset by the
reference node's live position, so offsets compose through any depth.

Option names follow the ns-3 attribute names so the same record can be
rendered into a generated ns-3 script.
"""

import logging
import math
import random
import re
import weakref
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from .errors import UnboundReference

logger = logging.getLogger(__name__)


class MobilityKind(Enum):
    """Supported mobility model kinds."""
    RANDOM_WAYPOINT = "random-waypoint"
    RANDOM_DIRECTION = "random-direction"
    GRID = "grid"
    FIXED_LIST = "fixed-list"

    @property
    def ns3_model(self) -> str:
        """ns-3 mobility model type name."""
        return {
            MobilityKind.RANDOM_WAYPOINT: "ns3::RandomWaypointMobilityModel",
            MobilityKind.RANDOM_DIRECTION: "ns3::RandomDirection2dMobilityModel",
            MobilityKind.GRID: "ns3::ConstantPositionMobilityModel",
            MobilityKind.FIXED_LIST: "ns3::ConstantPositionMobilityModel",
        }[self]

    @property
    def is_static(self) -> bool:
        return self in (MobilityKind.GRID, MobilityKind.FIXED_LIST)


@dataclass(frozen=True)
class Vector:
    """3D position or velocity."""
    x: float = 0.0
    y: float = 0.0
    z: float = 0.0

    def __add__(self, other: "Vector") -> "Vector":
        return Vector(self.x + other.x, self.y + other.y, self.z + other.z)

    def __sub__(self, other: "Vector") -> "Vector":
        return Vector(self.x - other.x, self.y - other.y, self.z - other.z)

    def scaled(self, factor: float) -> "Vector":
        return Vector(self.x * factor, self.y * factor, self.z * factor)

    def distance_to(self, other: "Vector") -> float:
        return math.sqrt((self.x - other.x) ** 2 + (self.y - other.y) ** 2 + (self.z - other.z) ** 2)

    def to_tuple(self) -> tuple[float, float, float]:
        return (self.x, self.y, self.z)


@dataclass(frozen=True)
class Rectangle:
    """Axis-aligned 2D bounds, same field order as ns-3's Rectangle."""
    x_min: float = -500.0
    x_max: float = 500.0
    y_min: float = -500.0
    y_max: float = 500.0

    def __post_init__(self):
        if self.x_min > self.x_max or self.y_min > self.y_max:
            raise ValueError(f"Invalid rectangle bounds: {self}")

    @property
    def is_degenerate(self) -> bool:
        return self.x_min == self.x_max or self.y_min == self.y_max

    def contains(self, position: Vector) -> bool:
        return self.x_min <= position.x <= self.x_max and self.y_min <= position.y <= self.y_max

    def clamp(self, position: Vector) -> Vector:
        return Vector(
            min(max(position.x, self.x_min), self.x_max),
            min(max(position.y, self.y_min), self.y_max),
            position.z,
        )

    def to_ns3(self) -> str:
        return f"{self.x_min:g}|{self.x_max:g}|{self.y_min:g}|{self.y_max:g}"


class RandomVariable:
    """
    Constant or uniform random variable.

    Accepts plain numbers or ns-3 random variable strings such as
    ``ns3::ConstantRandomVariable[Constant=2]`` and
    ``ns3::UniformRandomVariable[Min=0|Max=5]``.
    """

    _PATTERN = re.compile(r"^ns3::(\w+)RandomVariable\[(.*)\]$")

    def __init__(self, minimum: float, maximum: Optional[float] = None):
        self.minimum = float(minimum)
        self.maximum = float(minimum if maximum is None else maximum)
        if self.maximum < self.minimum:
            raise ValueError(f"Random variable max {self.maximum} below min {self.minimum}")

    @property
    def is_constant(self) -> bool:
        return self.minimum == self.maximum

    @classmethod
    def parse(cls, value: Any) -> "RandomVariable":
        if isinstance(value, RandomVariable):
            return value
        if isinstance(value, (int, float)):
            return cls(value)

        text = str(value).strip()
        match = cls._PATTERN.match(text)
        if not match:
            try:
                return cls(float(text))
            except ValueError:
                raise ValueError(f"Unsupported random variable: {value!r}") from None

        name, body = match.group(1), match.group(2)
        attrs = {}
        for part in filter(None, body.split("|")):
            key, _, raw = part.partition("=")
            attrs[key.strip()] = float(raw)

        if name == "Constant":
            return cls(attrs.get("Constant", 0.0))
        if name == "Uniform":
            return cls(attrs.get("Min", 0.0), attrs.get("Max", 1.0))
        raise ValueError(f"Unsupported random variable type: {name}")

    def sample(self, rng: random.Random) -> float:
        if self.is_constant:
            return self.minimum
        return rng.uniform(self.minimum, self.maximum)

    def to_ns3(self) -> str:
        if self.is_constant:
            return f"ns3::ConstantRandomVariable[Constant={self.minimum:g}]"
        return f"ns3::UniformRandomVariable[Min={self.minimum:g}|Max={self.maximum:g}]"

    def __eq__(self, other) -> bool:
        return isinstance(other, RandomVariable) and (self.minimum, self.maximum) == (other.minimum, other.maximum)

    def __repr__(self) -> str:
        return f"RandomVariable({self.to_ns3()!r})"


# ============== Position Allocators ==============

@dataclass
class GridPositionAllocator:
    """Places the i-th node on a grid, like ns3::GridPositionAllocator."""
    min_x: float = 0.0
    min_y: float = 0.0
    delta_x: float = 1.0
    delta_y: float = 1.0
    grid_width: int = 10
    layout: str = "RowFirst"    # or "ColumnFirst"

    def position(self, index: int) -> Vector:
        if self.grid_width <= 0:
            raise ValueError("Grid width must be positive")
        row, col = divmod(index, self.grid_width)
        if self.layout == "ColumnFirst":
            row, col = col, row
        return Vector(self.min_x + col * self.delta_x, self.min_y + row * self.delta_y, 0.0)


@dataclass
class ListPositionAllocator:
    """Hands out positions from a fixed list, wrapping around like ns-3."""
    positions: list[Vector] = field(default_factory=list)

    def position(self, index: int) -> Vector:
        if not self.positions:
            raise ValueError("List position allocator has no positions")
        return self.positions[index % len(self.positions)]


@dataclass
class RandomRectanglePositionAllocator:
    """Uniform random placement inside bounds."""
    bounds: Rectangle = field(default_factory=Rectangle)
    rng: random.Random = field(default_factory=random.Random)

    def position(self, index: int) -> Vector:
        return Vector(
            self.rng.uniform(self.bounds.x_min, self.bounds.x_max),
            self.rng.uniform(self.bounds.y_min, self.bounds.y_max),
            0.0,
        )


# ============== Trajectories ==============

@dataclass(frozen=True)
class Leg:
    """Straight-line motion segment (velocity zero while pausing)."""
    start_time: float
    start: Vector
    velocity: Vector
    duration: float

    @property
    def end_time(self) -> float:
        return self.start_time + self.duration

    def position_at(self, t: float) -> Vector:
        elapsed = min(max(t - self.start_time, 0.0), self.duration)
        return self.start + self.velocity.scaled(elapsed)


class Trajectory:
    """Local (un-referenced) position generator."""

    def position(self, t: float) -> Vector:
        raise NotImplementedError

    def velocity(self, t: float) -> Vector:
        return Vector()

    def course_changes(self, until: float) -> list[float]:
        """Times in [0, until] at which the motion changes."""
        return [0.0]


class StaticTrajectory(Trajectory):
    """Constant position (grid and fixed-list kinds)."""

    def __init__(self, position: Vector):
        self._position = position

    def position(self, t: float) -> Vector:
        return self._position


class LegTrajectory(Trajectory):
    """Piecewise-linear trajectory generated lazily, one leg at a time."""

    # Guards against zero-length legs looping forever
    _MAX_EMPTY_LEGS = 1000

    def __init__(self, start: Vector, bounds: Rectangle, speed: RandomVariable,
                 pause: RandomVariable, rng: random.Random):
        self.bounds = bounds
        self.speed = speed
        self.pause = pause
        self._rng = rng
        self._legs: list[Leg] = []
        self._time = 0.0
        self._position = bounds.clamp(start)

    def position(self, t: float) -> Vector:
        if t < 0:
            raise ValueError(f"Time must not be negative, got {t}")
        leg = self._leg_at(t)
        return leg.position_at(t) if leg else self._position

    def velocity(self, t: float) -> Vector:
        leg = self._leg_at(t)
        return leg.velocity if leg else Vector()

    def course_changes(self, until: float) -> list[float]:
        self._extend_to(until)
        return [0.0] + [leg.start_time for leg in self._legs if 0.0 < leg.start_time <= until]

    def _leg_at(self, t: float) -> Optional[Leg]:
        if not self._extend_to(t):
            return None
        lo, hi = 0, len(self._legs) - 1
        while lo < hi:
            mid = (lo + hi) // 2
            if self._legs[mid].end_time < t:
                lo = mid + 1
            else:
                hi = mid
        return self._legs[lo]

    def _extend_to(self, t: float) -> bool:
        """Generate legs until ``t`` is covered. False when the node never moves."""
        if self.bounds.is_degenerate:
            return False
        empty = 0
        while self._time <= t:
            generated = [leg for leg in self._next_legs(self._time, self._position) if leg.duration > 0]
            if not generated:
                empty += 1
                if empty > self._MAX_EMPTY_LEGS:
                    return False
                continue
            for leg in generated:
                self._legs.append(leg)
                self._time = leg.end_time
                self._position = leg.position_at(leg.end_time)
        return bool(self._legs)

    def _pause_leg(self, start_time: float, position: Vector) -> Leg:
        return Leg(start_time, position, Vector(), self.pause.sample(self._rng))

    def _next_legs(self, start_time: float, position: Vector) -> list[Leg]:
        raise NotImplementedError


class RandomWaypointTrajectory(LegTrajectory):
    """Travel to a uniform random waypoint, pause, repeat."""

    def _next_legs(self, start_time: float, position: Vector) -> list[Leg]:
        waypoint = Vector(
            self._rng.uniform(self.bounds.x_min, self.bounds.x_max),
            self._rng.uniform(self.bounds.y_min, self.bounds.y_max),
            position.z,
        )
        speed = self.speed.sample(self._rng)
        distance = position.distance_to(waypoint)
        if speed <= 0 or distance == 0:
            return [self._pause_leg(start_time, position)]

        travel = distance / speed
        velocity = (waypoint - position).scaled(1.0 / travel)
        move = Leg(start_time, position, velocity, travel)
        return [move, self._pause_leg(move.end_time, waypoint)]


class RandomDirectionTrajectory(LegTrajectory):
    """
    Move in a random direction until the bounds are hit, pause, then pick a
    new direction pointing back inside.
    """

    def _next_legs(self, start_time: float, position: Vector) -> list[Leg]:
        speed = self.speed.sample(self._rng)
        if speed <= 0:
            return [self._pause_leg(start_time, position)]

        angle = self._rng.uniform(0.0, 2 * math.pi)
        vx, vy = speed * math.cos(angle), speed * math.sin(angle)
        # reflect components that point out through a wall the node touches
        if (position.x <= self.bounds.x_min and vx < 0) or (position.x >= self.bounds.x_max and vx > 0):
            vx = -vx
        if (position.y <= self.bounds.y_min and vy < 0) or (position.y >= self.bounds.y_max and vy > 0):
            vy = -vy

        travel = min(self._time_to_wall(position.x, vx, self.bounds.x_min, self.bounds.x_max),
                     self._time_to_wall(position.y, vy, self.bounds.y_min, self.bounds.y_max))
        move = Leg(start_time, position, Vector(vx, vy, 0.0), travel)
        end = self.bounds.clamp(move.position_at(move.end_time))
        return [move, self._pause_leg(move.end_time, end)]

    @staticmethod
    def _time_to_wall(coordinate: float, velocity: float, low: float, high: float) -> float:
        if velocity > 0:
            return (high - coordinate) / velocity
        if velocity < 0:
            return (low - coordinate) / velocity
        return math.inf


# ============== Per-node state ==============

class NodeMobility:
    """
    Installed mobility of one node.

    The reference is held weakly and checked on every evaluation: once the
    reference node's mobility is released (or collected), evaluating this
    node fails with UnboundReference instead of using stale coordinates,
    even if some caller still holds the released object.
    """

    def __init__(self, node: Any, trajectory: Trajectory, reference: Optional["NodeMobility"] = None):
        self.node = node
        self.trajectory = trajectory
        self._reference = weakref.ref(reference) if reference is not None else None
        self.released = False

    @property
    def has_reference(self) -> bool:
        return self._reference is not None

    @property
    def reference(self) -> Optional["NodeMobility"]:
        if self._reference is None:
            return None
        resolved = self._reference()
        if resolved is None or resolved.released:
            raise UnboundReference(f"Reference mobility of node {self.node} was destroyed")
        return resolved

    def local_position(self, t: float) -> Vector:
        return self.trajectory.position(t)

    def position(self, t: float) -> Vector:
        """Absolute position: local offset plus the live reference position."""
        local = self.trajectory.position(t)
        reference = self.reference
        return local if reference is None else local + reference.position(t)

    def velocity(self, t: float) -> Vector:
        local = self.trajectory.velocity(t)
        reference = self.reference
        return local if reference is None else local + reference.velocity(t)

    def course_changes(self, until: float) -> list[tuple[float, Vector]]:
        """(time, absolute position) whenever this node or any reference changes course."""
        times = set(self._change_times(until))
        return [(t, self.position(t)) for t in sorted(times)]

    def _change_times(self, until: float) -> list[float]:
        times = list(self.trajectory.course_changes(until))
        reference = self.reference
        if reference is not None:
            times.extend(reference._change_times(until))
        return times


class MobilityRegistry:
    """Installed NodeMobility objects keyed by node index."""

    def __init__(self):
        self._installed: dict[int, NodeMobility] = {}

    def __contains__(self, node: Any) -> bool:
        return node.index in self._installed

    def __len__(self) -> int:
        return len(self._installed)

    def get(self, node: Any) -> NodeMobility:
        try:
            return self._installed[node.index]
        except KeyError:
            raise UnboundReference(f"Node {node} has no installed mobility") from None

    def bind(self, node: Any, mobility: NodeMobility):
        self._installed[node.index] = mobility

    def release(self, node: Any):
        """Drop a node's mobility; bindings referencing it become invalid."""
        released = self._installed.pop(node.index, None)
        if released is not None:
            released.released = True

    def position(self, node: Any, t: float) -> Vector:
        return self.get(node).position(t)


# ============== Binding ==============

@dataclass
class MobilityBinding:
    """
    How a cluster's members are positioned and moved.

    ``parameters`` is keyed by ns-3 option name: ``Bounds`` (Rectangle),
    ``Speed`` and ``Pause`` (random variables) for the random kinds; grid
    options ``MinX``, ``MinY``, ``DeltaX``, ``DeltaY``, ``GridWidth``,
    ``LayoutType``; ``Positions`` (list of Vector) for fixed lists. The
    random kinds take their initial positions from ``PositionAllocator``
    ("grid", "list" or "random", the default); a fixed list without
    ``Positions`` uses the ``PositionAllocator`` it was given.
    """
    kind: MobilityKind = MobilityKind.RANDOM_DIRECTION
    parameters: dict[str, Any] = field(default_factory=dict)
    reference: Optional[Any] = None     # node handle, not owned

    @property
    def bounds(self) -> Rectangle:
        bounds = self.parameters.get("Bounds", Rectangle())
        if isinstance(bounds, (tuple, list)):
            bounds = Rectangle(*bounds)
        return bounds

    @property
    def speed(self) -> RandomVariable:
        return RandomVariable.parse(self.parameters.get("Speed", 1.0))

    @property
    def pause(self) -> RandomVariable:
        return RandomVariable.parse(self.parameters.get("Pause", 0.0))

    @property
    def allocator_kind(self) -> str:
        if self.kind == MobilityKind.GRID:
            return "grid"
        if self.kind == MobilityKind.FIXED_LIST and "Positions" in self.parameters:
            return "list"
        if self.kind == MobilityKind.FIXED_LIST:
            return self.parameters.get("PositionAllocator", "list")
        return self.parameters.get("PositionAllocator", "random")

    def position_allocator(self, rng: random.Random):
        kind = self.allocator_kind
        if kind == "grid":
            return GridPositionAllocator(
                min_x=float(self.parameters.get("MinX", 0.0)),
                min_y=float(self.parameters.get("MinY", 0.0)),
                delta_x=float(self.parameters.get("DeltaX", 1.0)),
                delta_y=float(self.parameters.get("DeltaY", 1.0)),
                grid_width=int(self.parameters.get("GridWidth", 10)),
                layout=self.parameters.get("LayoutType", "RowFirst"),
            )
        if kind == "list":
            return ListPositionAllocator([
                p if isinstance(p, Vector) else Vector(*p)
                for p in self.parameters.get("Positions", [])
            ])
        if kind == "random":
            return RandomRectanglePositionAllocator(self.bounds, rng)
        raise ValueError(f"Unknown position allocator: {kind}")

    def trajectory(self, start: Vector, rng: random.Random) -> Trajectory:
        if self.kind.is_static:
            return StaticTrajectory(start)
        model = RandomWaypointTrajectory if self.kind == MobilityKind.RANDOM_WAYPOINT else RandomDirectionTrajectory
        return model(start, self.bounds, self.speed, self.pause, rng)

    def with_reference(self, node: Any) -> "MobilityBinding":
        """Copy of this binding positioned relative to ``node``."""
        return MobilityBinding(self.kind, dict(self.parameters), node)

    def install(self, cluster) -> list[NodeMobility]:
        """
        Attach a trajectory to every member of ``cluster``.

        The reference node itself is skipped (a node cannot move relative to
        itself); it keeps the mobility of the cluster that owns it.

        Raises:
            UnboundReference: The reference node has no installed mobility.
        """
        context = cluster.context
        registry: MobilityRegistry = context.mobility
        reference = registry.get(self.reference) if self.reference is not None else None

        targets = [m for m in cluster.members if self.reference is None or m.index != self.reference.index]
        allocator = self.position_allocator(random.Random(context.rng.getrandbits(64)))

        installed = []
        for slot, node in enumerate(targets):
            rng = random.Random(context.rng.getrandbits(64))
            node_mobility = NodeMobility(node, self.trajectory(allocator.position(slot), rng), reference)
            registry.bind(node, node_mobility)
            installed.append(node_mobility)

        logger.debug(
            f"Installed {self.kind.value} mobility on {len(installed)} nodes"
            + (f" relative to node {self.reference.index}" if self.reference is not None else "")
        )
        return installed
