"""
Unit tests for mobility models.

Tests:
- Random variable parsing
- Position allocators
- Trajectories stay inside their bounds
- Reference (hierarchical) composition
"""

import math
import random

import pytest

from models import (
    MobilityKind, Vector, Rectangle, RandomVariable,
    GridPositionAllocator, ListPositionAllocator,
    StaticTrajectory, RandomWaypointTrajectory, RandomDirectionTrajectory,
    NodeMobility, MobilityRegistry, MobilityBinding, NodeHandle,
    UnboundReference,
)


class TestRandomVariable:

    def test_parse_constant(self):
        rv = RandomVariable.parse("ns3::ConstantRandomVariable[Constant=2]")
        assert rv.is_constant
        assert rv.sample(random.Random(1)) == 2.0

    def test_parse_uniform(self):
        rv = RandomVariable.parse("ns3::UniformRandomVariable[Min=1|Max=3]")
        rng = random.Random(5)
        samples = [rv.sample(rng) for _ in range(50)]
        assert all(1.0 <= s <= 3.0 for s in samples)
        assert rv.to_ns3() == "ns3::UniformRandomVariable[Min=1|Max=3]"

    def test_parse_number(self):
        assert RandomVariable.parse(0.4) == RandomVariable(0.4)
        assert RandomVariable.parse("0.4") == RandomVariable(0.4)

    def test_parse_unsupported(self):
        with pytest.raises(ValueError):
            RandomVariable.parse("ns3::ExponentialRandomVariable[Mean=3]")
        with pytest.raises(ValueError):
            RandomVariable.parse("fast")


class TestRectangle:

    def test_invalid_bounds(self):
        with pytest.raises(ValueError):
            Rectangle(10.0, -10.0, 0.0, 1.0)

    def test_clamp_and_contains(self):
        bounds = Rectangle(-10.0, 10.0, -10.0, 10.0)
        assert bounds.contains(Vector(0.0, 10.0))
        assert bounds.clamp(Vector(15.0, -20.0, 1.0)) == Vector(10.0, -10.0, 1.0)
        assert bounds.to_ns3() == "-10|10|-10|10"


class TestAllocators:

    def test_grid_row_first(self):
        grid = GridPositionAllocator(20.0, 20.0, 20.0, 20.0, 5)
        assert grid.position(0) == Vector(20.0, 20.0, 0.0)
        assert grid.position(4) == Vector(100.0, 20.0, 0.0)
        assert grid.position(5) == Vector(20.0, 40.0, 0.0)

    def test_grid_column_first(self):
        grid = GridPositionAllocator(0.0, 0.0, 1.0, 1.0, 3, "ColumnFirst")
        assert grid.position(1) == Vector(0.0, 1.0, 0.0)

    def test_list_wraps(self):
        allocator = ListPositionAllocator([Vector(0, 0), Vector(0, 1)])
        assert allocator.position(2) == Vector(0, 0)

    def test_empty_list(self):
        with pytest.raises(ValueError):
            ListPositionAllocator([]).position(0)


class TestTrajectories:

    @pytest.mark.parametrize("model", [RandomWaypointTrajectory, RandomDirectionTrajectory])
    @pytest.mark.parametrize("seed", [1, 2, 3])
    def test_stays_inside_bounds(self, model, seed):
        bounds = Rectangle(-10.0, 10.0, -10.0, 10.0)
        trajectory = model(Vector(0.0, 0.0), bounds,
                           RandomVariable(3.0), RandomVariable(0.4), random.Random(seed))
        for step in range(0, 200):
            p = trajectory.position(step * 0.1)
            assert bounds.x_min - 1e-9 <= p.x <= bounds.x_max + 1e-9
            assert bounds.y_min - 1e-9 <= p.y <= bounds.y_max + 1e-9

    def test_moves_at_configured_speed(self):
        trajectory = RandomDirectionTrajectory(
            Vector(0.0, 0.0), Rectangle(-500.0, 500.0, -500.0, 500.0),
            RandomVariable(2.0), RandomVariable(0.2), random.Random(9),
        )
        v = trajectory.velocity(0.5)
        assert math.hypot(v.x, v.y) == pytest.approx(2.0)

    def test_start_time_is_start_position(self):
        trajectory = RandomWaypointTrajectory(
            Vector(1.0, 2.0), Rectangle(-10.0, 10.0, -10.0, 10.0),
            RandomVariable(3.0), RandomVariable(0.0), random.Random(4),
        )
        assert trajectory.position(0.0) == Vector(1.0, 2.0)

    def test_degenerate_bounds_never_move(self):
        trajectory = RandomDirectionTrajectory(
            Vector(0.0, 0.0), Rectangle(0.0, 0.0, 0.0, 0.0),
            RandomVariable(3.0), RandomVariable(0.0), random.Random(1),
        )
        assert trajectory.position(50.0) == Vector(0.0, 0.0)

    def test_course_changes_start_at_zero(self):
        trajectory = RandomDirectionTrajectory(
            Vector(0.0, 0.0), Rectangle(-10.0, 10.0, -10.0, 10.0),
            RandomVariable(3.0), RandomVariable(0.4), random.Random(2),
        )
        changes = trajectory.course_changes(20.0)
        assert changes[0] == 0.0
        assert changes == sorted(changes)
        assert len(changes) > 1

    def test_negative_time(self):
        trajectory = RandomWaypointTrajectory(
            Vector(), Rectangle(-1.0, 1.0, -1.0, 1.0),
            RandomVariable(1.0), RandomVariable(0.0), random.Random(1),
        )
        with pytest.raises(ValueError):
            trajectory.position(-1.0)


class TestNodeMobility:

    def _moving(self, seed):
        return RandomDirectionTrajectory(
            Vector(0.0, 0.0), Rectangle(-500.0, 500.0, -500.0, 500.0),
            RandomVariable(2.0), RandomVariable(0.2), random.Random(seed),
        )

    def test_position_adds_reference(self):
        parent = NodeMobility(NodeHandle(0), self._moving(1))
        child = NodeMobility(NodeHandle(1), StaticTrajectory(Vector(0.0, 3.0)), parent)

        for t in (0.0, 4.5, 12.25):
            assert child.position(t) == parent.position(t) + Vector(0.0, 3.0)

    def test_velocity_adds_reference(self):
        parent = NodeMobility(NodeHandle(0), self._moving(2))
        child = NodeMobility(NodeHandle(1), StaticTrajectory(Vector()), parent)
        assert child.velocity(1.0) == parent.velocity(1.0)

    def test_dead_reference_fails(self):
        parent = NodeMobility(NodeHandle(0), StaticTrajectory(Vector(1.0, 1.0)))
        child = NodeMobility(NodeHandle(1), StaticTrajectory(Vector()), parent)
        del parent

        with pytest.raises(UnboundReference):
            child.position(0.0)

    def test_course_changes_include_reference_changes(self):
        parent = NodeMobility(NodeHandle(0), self._moving(3))
        child = NodeMobility(NodeHandle(1), StaticTrajectory(Vector()), parent)
        parent_times = [t for t, _ in parent.course_changes(10.0)]
        child_times = [t for t, _ in child.course_changes(10.0)]
        assert set(parent_times) <= set(child_times)


class TestMobilityRegistry:

    def test_get_missing(self):
        with pytest.raises(UnboundReference):
            MobilityRegistry().get(NodeHandle(3))

    def test_release(self):
        registry = MobilityRegistry()
        node = NodeHandle(0)
        registry.bind(node, NodeMobility(node, StaticTrajectory(Vector(2.0, 0.0))))
        assert node in registry
        assert registry.position(node, 1.0) == Vector(2.0, 0.0)

        registry.release(node)
        assert node not in registry
        assert len(registry) == 0

    def test_release_invalidates_held_mobility(self):
        registry = MobilityRegistry()
        anchor = NodeHandle(0)
        parent = NodeMobility(anchor, StaticTrajectory(Vector(1.0, 1.0)))
        registry.bind(anchor, parent)
        child = NodeMobility(NodeHandle(1), StaticTrajectory(Vector()), parent)

        registry.release(anchor)
        assert parent.released
        with pytest.raises(UnboundReference):
            child.position(0.0)


class TestMobilityBinding:

    def test_allocator_kind(self):
        assert MobilityBinding(MobilityKind.GRID).allocator_kind == "grid"
        assert MobilityBinding(MobilityKind.FIXED_LIST).allocator_kind == "list"
        assert MobilityBinding(MobilityKind.RANDOM_WAYPOINT).allocator_kind == "random"

    def test_bounds_from_tuple(self):
        binding = MobilityBinding(parameters={"Bounds": (-10.0, 10.0, -5.0, 5.0)})
        assert binding.bounds == Rectangle(-10.0, 10.0, -5.0, 5.0)

    def test_with_reference_copies_parameters(self):
        binding = MobilityBinding(parameters={"Speed": 3})
        node = NodeHandle(4)
        copy = binding.with_reference(node)
        copy.parameters["Speed"] = 5

        assert copy.reference == node
        assert binding.reference is None
        assert binding.speed == RandomVariable(3.0)

    def test_static_kind_gives_static_trajectory(self):
        binding = MobilityBinding(MobilityKind.FIXED_LIST, {"Positions": [(1.0, 2.0, 0.0)]})
        trajectory = binding.trajectory(Vector(1.0, 2.0), random.Random(1))
        assert isinstance(trajectory, StaticTrajectory)
        assert binding.position_allocator(random.Random(1)).position(0) == Vector(1.0, 2.0, 0.0)
