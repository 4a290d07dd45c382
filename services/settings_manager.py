"""
Settings Manager.

Handles scenario defaults and tool settings with JSON file storage.
"""

import json
import logging
import os
import platform
from dataclasses import dataclass, field, asdict
from pathlib import Path
from typing import Optional

from models import (
    ScenarioConfig, MobilityBinding, MobilityKind,
    default_backbone_mobility, default_leaf_mobility,
)

logger = logging.getLogger(__name__)


@dataclass
class NS3Settings:
    """ns-3 related settings."""
    path: str = ""
    auto_detect: bool = True


@dataclass
class TopologyDefaults:
    """Default cluster layout and addressing."""
    backbone_nodes: int = 10
    infra_nodes: int = 2
    levels: list = field(default_factory=list)
    base_address: str = "192.168.0.0"
    prefix_length: int = 24


@dataclass
class MobilityDefaults:
    """Speed / pause / bounds of the backbone and leaf clusters."""
    backbone_kind: str = "random-direction"
    backbone_speed: str = "ns3::ConstantRandomVariable[Constant=2]"
    backbone_pause: str = "ns3::ConstantRandomVariable[Constant=0.2]"
    backbone_bounds: list = field(default_factory=lambda: [-500.0, 500.0, -500.0, 500.0])
    leaf_kind: str = "random-direction"
    leaf_speed: str = "ns3::ConstantRandomVariable[Constant=3]"
    leaf_pause: str = "ns3::ConstantRandomVariable[Constant=0.4]"
    leaf_bounds: list = field(default_factory=lambda: [-10.0, 10.0, -10.0, 10.0])

    def backbone_binding(self) -> MobilityBinding:
        binding = default_backbone_mobility()
        return self._apply(binding, self.backbone_kind, self.backbone_speed,
                           self.backbone_pause, self.backbone_bounds)

    def leaf_binding(self) -> MobilityBinding:
        binding = default_leaf_mobility()
        return self._apply(binding, self.leaf_kind, self.leaf_speed,
                           self.leaf_pause, self.leaf_bounds)

    @staticmethod
    def _apply(binding: MobilityBinding, kind: str, speed: str, pause: str, bounds: list) -> MobilityBinding:
        binding.kind = MobilityKind(kind)
        binding.parameters.update({"Speed": speed, "Pause": pause, "Bounds": tuple(bounds)})
        return binding


@dataclass
class SimulationDefaults:
    """Default run and traffic parameters."""
    stop_time: float = 20.0
    random_seed: int = 1
    traffic_mode: str = "fixed-remote"
    traffic_start: float = 1.0
    data_rate: str = "100kb/s"
    packet_size: int = 1472
    port: int = 9
    use_course_change_callback: bool = False
    enable_flow_monitor: bool = True
    enable_ascii_trace: bool = True
    enable_pcap: bool = True
    enable_animation: bool = True


@dataclass
class PathSettings:
    """Where generated scripts and results are written."""
    workspace: str = ""
    scripts_subdir: str = "scripts"
    results_subdir: str = "results"
    report_delimiter: str = ","

    def get_workspace_root(self) -> Path:
        if self.workspace:
            return Path(self.workspace)
        return self._get_default_workspace()

    def _get_default_workspace(self) -> Path:
        """Get platform-specific default workspace directory."""
        system = platform.system()

        if system == "Windows":
            docs = Path(os.environ.get("USERPROFILE", "~")) / "Documents"
            return docs.expanduser() / "MixedWireless"
        elif system == "Darwin":  # macOS
            return Path.home() / "Documents" / "MixedWireless"
        else:  # Linux and others
            return Path.home() / "mixed-wireless"

    def get_scripts_dir(self) -> Path:
        return self.get_workspace_root() / self.scripts_subdir

    def get_results_dir(self) -> Path:
        return self.get_workspace_root() / self.results_subdir

    def ensure_workspace_dirs(self):
        """Create workspace directories if they don't exist."""
        for d in (self.get_scripts_dir(), self.get_results_dir()):
            d.mkdir(parents=True, exist_ok=True)


@dataclass
class AppSettings:
    """Complete tool settings."""
    ns3: NS3Settings = field(default_factory=NS3Settings)
    topology: TopologyDefaults = field(default_factory=TopologyDefaults)
    mobility: MobilityDefaults = field(default_factory=MobilityDefaults)
    simulation: SimulationDefaults = field(default_factory=SimulationDefaults)
    paths: PathSettings = field(default_factory=PathSettings)

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "ns3": asdict(self.ns3),
            "topology": asdict(self.topology),
            "mobility": asdict(self.mobility),
            "simulation": asdict(self.simulation),
            "paths": asdict(self.paths),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "AppSettings":
        """Create from dictionary; unknown keys are ignored."""
        settings = cls()
        sections = {
            "ns3": NS3Settings,
            "topology": TopologyDefaults,
            "mobility": MobilityDefaults,
            "simulation": SimulationDefaults,
            "paths": PathSettings,
        }
        for name, section_cls in sections.items():
            if name in data:
                known = section_cls.__dataclass_fields__
                values = {k: v for k, v in data[name].items() if k in known}
                setattr(settings, name, section_cls(**values))
        return settings

    def scenario_config(self) -> ScenarioConfig:
        """Scenario built from the stored defaults."""
        return ScenarioConfig(
            backbone_nodes=self.topology.backbone_nodes,
            infra_nodes=self.topology.infra_nodes,
            levels=list(self.topology.levels),
            base_address=self.topology.base_address,
            prefix_length=self.topology.prefix_length,
            stop_time=self.simulation.stop_time,
            random_seed=self.simulation.random_seed,
            traffic_mode=self.simulation.traffic_mode,
            traffic_start=self.simulation.traffic_start,
            data_rate=self.simulation.data_rate,
            packet_size=self.simulation.packet_size,
            port=self.simulation.port,
            use_course_change_callback=self.simulation.use_course_change_callback,
            enable_flow_monitor=self.simulation.enable_flow_monitor,
            enable_ascii_trace=self.simulation.enable_ascii_trace,
            enable_pcap=self.simulation.enable_pcap,
            enable_animation=self.simulation.enable_animation,
        )


class SettingsManager:
    """
    Manages settings with JSON file storage.

    Settings file location:
    - Windows: %APPDATA%/MixedWireless/settings.json
    - Linux: ~/.config/MixedWireless/settings.json
    - macOS: ~/Library/Application Support/MixedWireless/settings.json
    """

    APP_NAME = "MixedWireless"
    SETTINGS_FILE = "settings.json"

    def __init__(self, config_override: Optional[str] = None):
        """
        Initialize settings manager.

        Args:
            config_override: Optional path to override config file location.
                            Useful for testing.
        """
        self._settings = AppSettings()
        self._config_override = config_override
        self._settings_path = self._get_settings_path()
        self.load()

    @property
    def settings(self) -> AppSettings:
        """Get current settings."""
        return self._settings

    @property
    def settings_path(self) -> str:
        """Get the settings file path."""
        return str(self._settings_path)

    @property
    def ns3_path(self) -> str:
        return self._settings.ns3.path

    @ns3_path.setter
    def ns3_path(self, value: str):
        self._settings.ns3.path = value
        self.save()

    def scenario_config(self) -> ScenarioConfig:
        return self._settings.scenario_config()

    def get_scripts_dir(self) -> Path:
        return self._settings.paths.get_scripts_dir()

    def get_results_dir(self) -> Path:
        return self._settings.paths.get_results_dir()

    def _get_settings_path(self) -> Path:
        """Get platform-specific settings directory."""
        if self._config_override:
            return Path(self._config_override)

        system = platform.system()

        if system == "Windows":
            base = os.environ.get("APPDATA", os.path.expanduser("~"))
            config_dir = Path(base) / self.APP_NAME
        elif system == "Darwin":  # macOS
            config_dir = Path.home() / "Library" / "Application Support" / self.APP_NAME
        else:  # Linux and others
            xdg_config = os.environ.get("XDG_CONFIG_HOME", os.path.expanduser("~/.config"))
            config_dir = Path(xdg_config) / self.APP_NAME

        return config_dir / self.SETTINGS_FILE

    def load(self) -> bool:
        """Load settings from file. Returns False and keeps defaults on failure."""
        if not self._settings_path.exists():
            return False

        try:
            with open(self._settings_path, "r", encoding="utf-8") as f:
                data = json.load(f)
            self._settings = AppSettings.from_dict(data)
            return True
        except (OSError, ValueError, TypeError) as e:
            logger.error(f"Error loading settings from {self._settings_path}: {e}")
            return False

    def save(self) -> bool:
        """Save settings to file."""
        try:
            self._settings_path.parent.mkdir(parents=True, exist_ok=True)
            with open(self._settings_path, "w", encoding="utf-8") as f:
                json.dump(self._settings.to_dict(), f, indent=2)
            return True
        except OSError as e:
            logger.error(f"Error saving settings to {self._settings_path}: {e}")
            return False

    def reset(self):
        """Reset settings to defaults."""
        self._settings = AppSettings()
        self.save()


# Global settings instance
_settings_manager: Optional[SettingsManager] = None


def get_settings(config_override: Optional[str] = None) -> SettingsManager:
    """
    Get the global settings manager instance.

    Args:
        config_override: Optional path to override config location.
                        Only used on first call to initialize.
    """
    global _settings_manager
    if _settings_manager is None:
        _settings_manager = SettingsManager(config_override)
    return _settings_manager


def reset_settings_manager():
    """Reset the global settings manager (useful for testing)."""
    global _settings_manager
    _settings_manager = None
