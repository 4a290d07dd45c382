"""
NS-3 Results Parser.

Parses simulation output (FlowMonitor XML, console flow summaries) into
FlowRecord values. All times are converted to seconds.
"""

import logging
import os
import re
import xml.etree.ElementTree as ET
from typing import List

from models import FlowRecord

logger = logging.getLogger(__name__)


def parse_time_seconds(value: str) -> float:
    """
    Convert an ns-3 time attribute to seconds.

    FlowMonitor writes times like ``+1.234567890e+09ns``; other units
    (s, ms, us) are accepted as well.
    """
    if value is None:
        return 0.0
    text = value.strip().lstrip("+")
    match = re.fullmatch(r"(-?[\d.eE+-]+?)(ns|us|ms|s)?", text)
    if not match:
        raise ValueError(f"Invalid time value: {value!r}")
    number = float(match.group(1))
    unit = match.group(2) or "ns"
    return number * {"ns": 1e-9, "us": 1e-6, "ms": 1e-3, "s": 1.0}[unit]


class ResultsParser:
    """
    Parse ns-3 simulation output files.

    Supports:
    - FlowMonitor XML output
    - Console output printed by generated scenario scripts
    """

    def parse_flow_monitor_xml(self, file_path: str) -> List[FlowRecord]:
        """
        Parse FlowMonitor XML output file.

        Args:
            file_path: Path to flowmon-results.xml

        Returns:
            List of FlowRecord for each flow

        Raises:
            FileNotFoundError: The file does not exist
            ValueError: The file is not valid FlowMonitor XML
        """
        if not os.path.isfile(file_path):
            raise FileNotFoundError(f"FlowMonitor results not found: {file_path}")

        try:
            tree = ET.parse(file_path)
        except ET.ParseError as e:
            logger.error(f"XML parse error in {file_path}: {e}")
            raise ValueError(f"Invalid FlowMonitor XML: {e}") from e

        return self.parse_flow_monitor_root(tree.getroot())

    def parse_flow_monitor_string(self, content: str) -> List[FlowRecord]:
        """Parse FlowMonitor XML held in memory."""
        try:
            root = ET.fromstring(content)
        except ET.ParseError as e:
            raise ValueError(f"Invalid FlowMonitor XML: {e}") from e
        return self.parse_flow_monitor_root(root)

    def parse_flow_monitor_root(self, root: ET.Element) -> List[FlowRecord]:
        flows = []

        flow_stats_elem = root.find("FlowStats")
        if flow_stats_elem is None:
            logger.warning("FlowMonitor output has no FlowStats section")
            return flows

        # Parse IPv4 flow classifier for address info
        classifier_info = {}
        classifier = root.find("Ipv4FlowClassifier")
        if classifier is not None:
            for flow_elem in classifier.findall("Flow"):
                flow_id = int(flow_elem.get("flowId", 0))
                classifier_info[flow_id] = {
                    "source_address": flow_elem.get("sourceAddress", ""),
                    "destination_address": flow_elem.get("destinationAddress", ""),
                    "source_port": int(flow_elem.get("sourcePort", 0)),
                    "destination_port": int(flow_elem.get("destinationPort", 0)),
                    "protocol": int(flow_elem.get("protocol", 0)),
                }

        # Parse each flow's statistics
        for flow_elem in flow_stats_elem.findall("Flow"):
            flow_id = int(flow_elem.get("flowId", 0))
            clf = classifier_info.get(flow_id)
            if clf is None:
                logger.warning(f"Flow {flow_id} has no classifier entry; addresses unknown")
                clf = {}

            flows.append(FlowRecord(
                flow_id=flow_id,
                source_address=clf.get("source_address", ""),
                destination_address=clf.get("destination_address", ""),
                source_port=clf.get("source_port", 0),
                destination_port=clf.get("destination_port", 0),
                protocol=clf.get("protocol", 0),
                tx_packets=int(flow_elem.get("txPackets", 0)),
                rx_packets=int(flow_elem.get("rxPackets", 0)),
                tx_bytes=int(flow_elem.get("txBytes", 0)),
                rx_bytes=int(flow_elem.get("rxBytes", 0)),
                delay_sum=parse_time_seconds(flow_elem.get("delaySum", "+0.0ns")),
                jitter_sum=parse_time_seconds(flow_elem.get("jitterSum", "+0.0ns")),
                lost_packets=int(flow_elem.get("lostPackets", 0)),
                first_tx_time=parse_time_seconds(flow_elem.get("timeFirstTxPacket", "+0.0ns")),
                last_tx_time=parse_time_seconds(flow_elem.get("timeLastTxPacket", "+0.0ns")),
            ))

        logger.debug(f"Parsed {len(flows)} flows from FlowMonitor output")
        return flows

    def parse_console_output(self, output: str) -> List[FlowRecord]:
        """
        Parse flow statistics from console output.

        This is a fallback when XML is not available.
        Parses output like:
            Flow 1 (UDP)
              10.1.1.1:49153 -> 10.1.1.2:9
              Tx Packets: 10
              Rx Packets: 10
              Tx Bytes:   14720
              Rx Bytes:   14720
              First Tx: 1.000000 s
              Last Tx:  18.990000 s
              Delay Sum: 0.012000 s
              Jitter Sum: 0.003000 s
              Lost Packets: 0

        Args:
            output: Console output string

        Returns:
            List of FlowRecord parsed from output
        """
        flows = []

        # Find the SIMULATION RESULTS section
        results_start = output.find("SIMULATION RESULTS")
        if results_start == -1:
            results_start = 0
        results_section = output[results_start:]

        # Split into flow blocks - look for "Flow N" pattern
        flow_pattern = re.compile(r'Flow\s+(\d+)\s*\((\w+)\)')
        matches = list(flow_pattern.finditer(results_section))

        for i, match in enumerate(matches):
            start_pos = match.end()
            end_pos = matches[i + 1].start() if i + 1 < len(matches) else len(results_section)
            block = results_section[start_pos:end_pos]

            protocol_str = match.group(2).upper()
            record = FlowRecord(
                flow_id=int(match.group(1)),
                protocol=17 if protocol_str == "UDP" else 6 if protocol_str == "TCP" else 0,
            )

            addr_match = re.search(r"(\d+\.\d+\.\d+\.\d+):(\d+)\s*->\s*(\d+\.\d+\.\d+\.\d+):(\d+)", block)
            if addr_match:
                record.source_address = addr_match.group(1)
                record.source_port = int(addr_match.group(2))
                record.destination_address = addr_match.group(3)
                record.destination_port = int(addr_match.group(4))

            int_fields = {
                "tx_packets": r"Tx Packets:\s*(\d+)",
                "rx_packets": r"Rx Packets:\s*(\d+)",
                "tx_bytes": r"Tx Bytes:\s*(\d+)",
                "rx_bytes": r"Rx Bytes:\s*(\d+)",
                "lost_packets": r"Lost Packets:\s*(\d+)",
            }
            for attr, pattern in int_fields.items():
                found = re.search(pattern, block)
                if found:
                    setattr(record, attr, int(found.group(1)))

            time_fields = {
                "first_tx_time": r"First Tx:\s*([\d.eE+-]+)\s*s",
                "last_tx_time": r"Last Tx:\s*([\d.eE+-]+)\s*s",
                "delay_sum": r"Delay Sum:\s*([\d.eE+-]+)\s*s",
                "jitter_sum": r"Jitter Sum:\s*([\d.eE+-]+)\s*s",
            }
            for attr, pattern in time_fields.items():
                found = re.search(pattern, block)
                if found:
                    setattr(record, attr, float(found.group(1)))

            flows.append(record)

        return flows
