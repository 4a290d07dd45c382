"""
Unit tests for settings persistence and scenario defaults.
"""

import json

import pytest

from models import MobilityKind, RandomVariable, Rectangle, ScenarioConfig, Vector
from services.settings_manager import (
    SettingsManager, AppSettings, MobilityDefaults, get_settings, reset_settings_manager,
)
from services.topology_builder import build_scenario


@pytest.fixture
def settings_file(temp_dir):
    return temp_dir / "config" / "settings.json"


class TestSettingsManager:

    def test_defaults_without_file(self, settings_file):
        manager = SettingsManager(str(settings_file))
        config = manager.scenario_config()

        assert not settings_file.exists()
        assert config.backbone_nodes == 10
        assert config.infra_nodes == 2
        assert config.stop_time == 20.0
        assert config.data_rate == "100kb/s"
        assert config.packet_size == 1472

    def test_save_and_reload(self, settings_file):
        manager = SettingsManager(str(settings_file))
        manager.settings.topology.backbone_nodes = 6
        manager.settings.topology.levels = [2, 1]
        manager.settings.simulation.traffic_mode = "paired"
        assert manager.save()

        reloaded = SettingsManager(str(settings_file))
        config = reloaded.scenario_config()
        assert config.backbone_nodes == 6
        assert config.levels == [2, 1]
        assert config.leaf_levels == [2, 1]
        assert config.traffic_mode == "paired"

    def test_ns3_path_setter_saves(self, settings_file):
        manager = SettingsManager(str(settings_file))
        manager.ns3_path = "/opt/ns-3-dev"

        data = json.loads(settings_file.read_text(encoding="utf-8"))
        assert data["ns3"]["path"] == "/opt/ns-3-dev"

    def test_corrupt_file_keeps_defaults(self, settings_file):
        settings_file.parent.mkdir(parents=True)
        settings_file.write_text("{not json", encoding="utf-8")

        manager = SettingsManager(str(settings_file))
        assert manager.load() is False
        assert manager.settings.topology.backbone_nodes == 10

    def test_unknown_keys_ignored(self):
        settings = AppSettings.from_dict({
            "topology": {"backbone_nodes": 3, "colour": "blue"},
            "legacy": {"x": 1},
        })
        assert settings.topology.backbone_nodes == 3

    def test_reset(self, settings_file):
        manager = SettingsManager(str(settings_file))
        manager.settings.simulation.stop_time = 50.0
        manager.reset()
        assert manager.settings.simulation.stop_time == 20.0

    def test_workspace_dirs(self, settings_file, temp_dir):
        manager = SettingsManager(str(settings_file))
        manager.settings.paths.workspace = str(temp_dir / "ws")
        manager.settings.paths.ensure_workspace_dirs()

        assert manager.get_scripts_dir() == temp_dir / "ws" / "scripts"
        assert manager.get_results_dir().is_dir()


class TestMobilityDefaults:

    def test_backbone_binding(self):
        binding = MobilityDefaults().backbone_binding()
        assert binding.kind == MobilityKind.RANDOM_DIRECTION
        assert binding.bounds == Rectangle(-500.0, 500.0, -500.0, 500.0)
        assert binding.speed == RandomVariable(2.0)
        assert binding.pause == RandomVariable(0.2)
        assert binding.allocator_kind == "grid"

    def test_leaf_override(self):
        defaults = MobilityDefaults(leaf_kind="random-waypoint", leaf_speed="5", leaf_bounds=[-20, 20, -20, 20])
        binding = defaults.leaf_binding()
        assert binding.kind == MobilityKind.RANDOM_WAYPOINT
        assert binding.speed == RandomVariable(5.0)
        assert binding.bounds == Rectangle(-20, 20, -20, 20)

    @pytest.mark.parametrize("kind", [k.value for k in MobilityKind])
    def test_every_leaf_kind_builds(self, kind):
        defaults = MobilityDefaults(leaf_kind=kind)
        scenario = build_scenario(
            ScenarioConfig(backbone_nodes=2, infra_nodes=3),
            leaf_mobility=defaults.leaf_binding(),
        )
        child = scenario.tree.clusters[1]
        registry = scenario.context.mobility

        offsets = [registry.get(n).local_position(0.0) for n in child.own_members]
        assert offsets == [Vector(0.0, 0.0, 0.0), Vector(0.0, 1.0, 0.0)]

    @pytest.mark.parametrize("kind", [k.value for k in MobilityKind])
    def test_every_backbone_kind_builds(self, kind):
        defaults = MobilityDefaults(backbone_kind=kind)
        scenario = build_scenario(
            ScenarioConfig(backbone_nodes=3, infra_nodes=2),
            backbone_mobility=defaults.backbone_binding(),
        )
        root = scenario.tree.root
        registry = scenario.context.mobility

        assert registry.get(root.members[1]).local_position(0.0) == Vector(40.0, 20.0, 0.0)

    def test_fixed_list_keeps_explicit_positions(self):
        binding = MobilityDefaults(leaf_kind="fixed-list").leaf_binding()
        binding.parameters["Positions"] = [(1.0, 2.0, 0.0)]
        assert binding.allocator_kind == "list"


def test_global_settings_instance(settings_file):
    reset_settings_manager()
    try:
        first = get_settings(str(settings_file))
        assert get_settings() is first
    finally:
        reset_settings_manager()
