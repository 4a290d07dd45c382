"""
Pytest configuration and shared fixtures for the mixed wireless tests.
"""

import pytest
import tempfile
import shutil
from pathlib import Path
from typing import Generator

# Add parent directory to path for imports
import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

from models import (
    AddressPool, ClusterTree, SimulationContext, ScenarioConfig, FlowRecord,
    MobilityBinding, MobilityKind,
)
from services.ns3_generator import NS3ScriptGenerator
from services.topology_builder import build_scenario


def pytest_addoption(parser):
    parser.addoption(
        "--run-slow", action="store_true", default=False,
        help="Run tests marked slow (ns-3 execution)",
    )


def pytest_collection_modifyitems(config, items):
    if config.getoption("--run-slow"):
        return
    skip_slow = pytest.mark.skip(reason="needs --run-slow")
    for item in items:
        if "slow" in item.keywords:
            item.add_marker(skip_slow)


# ============== Temporary Directory Fixtures ==============

@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files."""
    tmp = tempfile.mkdtemp(prefix="mixed_wireless_test_")
    yield Path(tmp)
    shutil.rmtree(tmp, ignore_errors=True)


# ============== Topology Fixtures ==============

@pytest.fixture
def context() -> SimulationContext:
    return SimulationContext(seed=7, run=1)


@pytest.fixture
def static_binding() -> MobilityBinding:
    """Grid placement without movement; keeps positions easy to predict."""
    return MobilityBinding(
        kind=MobilityKind.GRID,
        parameters={"MinX": 0.0, "MinY": 0.0, "DeltaX": 10.0, "DeltaY": 10.0, "GridWidth": 3},
    )


@pytest.fixture
def tree(context) -> ClusterTree:
    """Empty tree on a fresh 10.0.0.0/24 pool."""
    return ClusterTree(context=context, pool=AddressPool("10.0.0.0", 24))


@pytest.fixture
def small_config() -> ScenarioConfig:
    """Four backbone routers, one leaf node each."""
    return ScenarioConfig(backbone_nodes=4, infra_nodes=2, stop_time=20.0, random_seed=3)


@pytest.fixture
def small_scenario(small_config):
    return build_scenario(small_config)


# ============== Results Fixtures ==============

@pytest.fixture
def sample_record() -> FlowRecord:
    """A 100 kb/s flow active from 1 s to 19 s."""
    return FlowRecord(
        flow_id=1,
        protocol=17,
        source_address="192.168.0.1",
        destination_address="192.168.3.2",
        source_port=49153,
        destination_port=9,
        tx_packets=153,
        rx_packets=150,
        tx_bytes=225216,
        rx_bytes=220800,
        first_tx_time=1.0,
        last_tx_time=19.0,
        delay_sum=1.5,
        jitter_sum=0.298,
        lost_packets=3,
    )


FLOWMON_XML = """<?xml version="1.0" ?>
<FlowMonitor>
  <FlowStats>
    <Flow flowId="1" timeFirstTxPacket="+1000000000.0ns" timeFirstRxPacket="+1001000000.0ns"
          timeLastTxPacket="+19000000000.0ns" timeLastRxPacket="+19001000000.0ns"
          delaySum="+1500000000.0ns" jitterSum="+298000000.0ns" lastDelay="+10000000.0ns"
          txBytes="225216" rxBytes="220800" txPackets="153" rxPackets="150"
          lostPackets="3" timesForwarded="300">
    </Flow>
    <Flow flowId="2" timeFirstTxPacket="+2000000000.0ns" timeFirstRxPacket="+0.0ns"
          timeLastTxPacket="+2000000000.0ns" timeLastRxPacket="+0.0ns"
          delaySum="+0.0ns" jitterSum="+0.0ns" lastDelay="+0.0ns"
          txBytes="1500" rxBytes="0" txPackets="1" rxPackets="0"
          lostPackets="1" timesForwarded="0">
    </Flow>
  </FlowStats>
  <Ipv4FlowClassifier>
    <Flow flowId="1" sourceAddress="192.168.0.1" destinationAddress="192.168.3.2"
          protocol="17" sourcePort="49153" destinationPort="9" />
    <Flow flowId="2" sourceAddress="192.168.0.2" destinationAddress="192.168.3.2"
          protocol="17" sourcePort="49154" destinationPort="9" />
  </Ipv4FlowClassifier>
</FlowMonitor>
"""


@pytest.fixture
def flowmon_file(temp_dir: Path) -> Path:
    path = temp_dir / "flowmon-results.xml"
    path.write_text(FLOWMON_XML, encoding="utf-8")
    return path


CONSOLE_OUTPUT = """
Configuring cluster root (4 nodes)
Starting simulation for 20.0 seconds...

============================================================
SIMULATION RESULTS
============================================================
Flow 1 (UDP)
  192.168.1.1:49153 -> 192.168.7.2:9
  Tx Packets: 153
  Rx Packets: 150
  Tx Bytes:   225216
  Rx Bytes:   220800
  First Tx: 1.000000000 s
  Last Tx:  19.000000000 s
  Delay Sum: 1.500000000 s
  Jitter Sum: 0.298000000 s
  Lost Packets: 3

Flow 2 (TCP)
  192.168.1.2:49154 -> 192.168.7.2:9
  Tx Packets: 0
  Rx Packets: 0
  Tx Bytes:   0
  Rx Bytes:   0
  First Tx: 0.000000000 s
  Last Tx:  0.000000000 s
  Delay Sum: 0.000000000 s
  Jitter Sum: 0.000000000 s
  Lost Packets: 0

Simulation completed successfully.
"""


# ============== Generator Fixtures ==============

@pytest.fixture
def script_generator() -> NS3ScriptGenerator:
    """Create an NS3 script generator."""
    return NS3ScriptGenerator()


# ============== Helper Functions ==============

def assert_valid_python(code: str, filename: str = "test.py"):
    """Assert that code is valid Python syntax."""
    try:
        compile(code, filename, 'exec')
    except SyntaxError as e:
        pytest.fail(f"Invalid Python syntax at line {e.lineno}: {e.msg}\n{code}")


def assert_contains_all(text: str, substrings: list[str]):
    """Assert that text contains all substrings."""
    for s in substrings:
        assert s in text, f"Expected '{s}' in text"
