"""
NS-3 Python script generator.

Generates an ns-3 Python script from a built Scenario: one ad hoc Wi-Fi
network per cluster, OLSR routing, addresses matching the allocated ranges,
hierarchical (reference) mobility, OnOff/PacketSink flows and FlowMonitor
output.
"""

import pprint
from datetime import datetime
from typing import Optional

from models import ClusterTree, NetworkCluster, MobilityBinding, MobilityKind, FlowDescriptor
from services.topology_builder import Scenario


class NS3ScriptGenerator:
    """
    Generates ns-3 Python scripts from a scenario.

    The generated scripts use ns-3's cppyy Python bindings and can be run with:
        ./ns3 run scratch/mixed_wireless.py
    """

    def generate(self, scenario: Scenario, output_dir: str = ".") -> str:
        """
        Generate complete ns-3 Python script.

        Args:
            scenario: Built topology and planned flows
            output_dir: Directory for output files (traces, pcap, FlowMonitor)

        Returns:
            Complete Python script as string
        """
        # Windows paths with backslashes would be read as escape sequences
        output_dir = output_dir.replace('\\', '/')
        config = scenario.config

        sections = [
            self._generate_header(scenario),
            self._generate_imports(config.use_course_change_callback),
            self._generate_data(scenario),
            self._generate_helpers(),
            self._generate_main_function_start(config.random_seed, config.run),
            self._generate_nodes(scenario.tree),
            self._generate_clusters(),
            self._generate_applications(),
            self._generate_tracing(config, output_dir),
            self._generate_simulation_run(config, output_dir),
            self._generate_main_call(),
        ]
        return "\n".join(sections)

    def _generate_header(self, scenario: Scenario) -> str:
        """Generate script header with metadata."""
        tree = scenario.tree
        return f'''#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Mixed wireless scenario
Generated on {datetime.now().strftime("%Y-%m-%d %H:%M:%S")}

Topology:
  - Nodes: {tree.context.node_count}
  - Clusters: {len(tree)} ({tree.depth()} levels)
  - Traffic Flows: {len(scenario.flows)}

Simulation Duration: {scenario.config.stop_time} seconds
"""
'''

    def _generate_imports(self, course_changes: bool) -> str:
        """Generate ns-3 import statements."""
        lines = [
            '',
            '# NS-3 imports (cppyy bindings)',
            'from ns import ns',
            '',
            'import sys',
        ]
        if course_changes:
            lines.extend([
                '',
                'ns.cppyy.cppdef(r"""',
                '#include "ns3/mobility-model.h"',
                '#include <iostream>',
                'using namespace ns3;',
                'void CourseChangeCallback(std::string path, Ptr<const MobilityModel> model) {',
                '    Vector position = model->GetPosition();',
                '    std::cout << "CourseChange " << path << " x=" << position.x',
                '              << ", y=" << position.y << ", z=" << position.z << std::endl;',
                '}',
                '""")',
            ])
        return '\n'.join(lines) + '\n'

    def _generate_data(self, scenario: Scenario) -> str:
        """Embed the built clusters and planned flows as plain data."""
        clusters = [self._cluster_entry(c) for c in scenario.tree]
        flows = [self._flow_entry(f) for f in scenario.flows]
        return "\n".join([
            "# Clusters in build order (parents before children)",
            f"CLUSTERS = {pprint.pformat(clusters, width=100, sort_dicts=False)}",
            "",
            "# Planned constant bit rate flows",
            f"FLOWS = {pprint.pformat(flows, width=100, sort_dicts=False)}",
            "",
        ])

    def _cluster_entry(self, cluster: NetworkCluster) -> dict:
        reference = cluster.mobility.reference
        return {
            "path": cluster.path,
            "members": [n.index for n in cluster.members],
            "mobile": [n.index for n in cluster.members if reference is None or n != reference],
            "network": cluster.address_range.network,
            "mask": cluster.address_range.netmask,
            "reference": reference.index if reference is not None else None,
            "mobility": self._mobility_entry(cluster.mobility),
        }

    def _mobility_entry(self, binding: MobilityBinding) -> dict:
        entry = {"model": binding.kind.ns3_model, "allocator": binding.allocator_kind}
        if not binding.kind.is_static:
            entry.update({
                "bounds": binding.bounds.to_ns3(),
                "speed": binding.speed.to_ns3(),
                "pause": binding.pause.to_ns3(),
            })
        if binding.allocator_kind == "grid":
            p = binding.parameters
            entry["grid"] = {
                "MinX": float(p.get("MinX", 0.0)), "MinY": float(p.get("MinY", 0.0)),
                "DeltaX": float(p.get("DeltaX", 1.0)), "DeltaY": float(p.get("DeltaY", 1.0)),
                "GridWidth": int(p.get("GridWidth", 10)), "LayoutType": p.get("LayoutType", "RowFirst"),
            }
        elif binding.allocator_kind == "list":
            entry["positions"] = [
                tuple(v.to_tuple()) if hasattr(v, "to_tuple") else tuple(v)
                for v in binding.parameters.get("Positions", [])
            ]
        else:
            entry["bounds"] = binding.bounds.to_ns3()
        return entry

    def _flow_entry(self, flow: FlowDescriptor) -> dict:
        return {
            "source": flow.source.index,
            "destination": flow.destination.index,
            "address": flow.destination_address,
            "port": flow.port,
            "start": flow.start_time,
            "stop": flow.stop_time,
            "rate": flow.data_rate,
            "size": flow.packet_size,
        }

    def _generate_helpers(self) -> str:
        """Generate helper functions used by main()."""
        return '''
def make_container(nodes, indices):
    container = ns.NodeContainer()
    for index in indices:
        container.Add(nodes.Get(index))
    return container


def install_adhoc(container):
    """One ad hoc Wi-Fi network on its own channel."""
    wifi = ns.WifiHelper()
    mac = ns.WifiMacHelper()
    mac.SetType("ns3::AdhocWifiMac")
    phy = ns.YansWifiPhyHelper()
    channel = ns.YansWifiChannelHelper.Default()
    phy.SetChannel(channel.Create())
    return phy, wifi.Install(phy, mac, container)


def rectangle_allocator(bounds):
    x_min, x_max, y_min, y_max = bounds.split("|")
    allocator = ns.CreateObject[ns.RandomRectanglePositionAllocator]()
    allocator.SetAttribute("X", ns.StringValue(f"ns3::UniformRandomVariable[Min={x_min}|Max={x_max}]"))
    allocator.SetAttribute("Y", ns.StringValue(f"ns3::UniformRandomVariable[Min={y_min}|Max={y_max}]"))
    return allocator


def set_position_allocator(mobility, placement):
    if placement["allocator"] == "grid":
        grid = placement["grid"]
        mobility.SetPositionAllocator(
            "ns3::GridPositionAllocator",
            "MinX", ns.DoubleValue(grid["MinX"]),
            "MinY", ns.DoubleValue(grid["MinY"]),
            "DeltaX", ns.DoubleValue(grid["DeltaX"]),
            "DeltaY", ns.DoubleValue(grid["DeltaY"]),
            "GridWidth", ns.UintegerValue(grid["GridWidth"]),
            "LayoutType", ns.StringValue(grid["LayoutType"]),
        )
    elif placement["allocator"] == "list":
        allocator = ns.CreateObject[ns.ListPositionAllocator]()
        for x, y, z in placement["positions"]:
            allocator.Add(ns.Vector(x, y, z))
        mobility.SetPositionAllocator(allocator)
    else:
        mobility.SetPositionAllocator(rectangle_allocator(placement["bounds"]))


def install_mobility(nodes, cluster):
    placement = cluster["mobility"]
    mobility = ns.MobilityHelper()
    if cluster["reference"] is not None:
        mobility.PushReferenceMobilityModel(nodes.Get(cluster["reference"]))
    set_position_allocator(mobility, placement)
    if placement["model"] == "ns3::RandomWaypointMobilityModel":
        # waypoints are drawn from the same rectangle
        mobility.SetMobilityModel(placement["model"],
                                  "Speed", ns.StringValue(placement["speed"]),
                                  "Pause", ns.StringValue(placement["pause"]),
                                  "PositionAllocator",
                                  ns.PointerValue(rectangle_allocator(placement["bounds"])))
    elif "speed" in placement:
        mobility.SetMobilityModel(placement["model"],
                                  "Bounds", ns.StringValue(placement["bounds"]),
                                  "Speed", ns.StringValue(placement["speed"]),
                                  "Pause", ns.StringValue(placement["pause"]))
    else:
        mobility.SetMobilityModel(placement["model"])
    mobility.Install(make_container(nodes, cluster["mobile"]))
'''

    def _generate_main_function_start(self, seed: int, run: int) -> str:
        """Generate main function start."""
        return f'''
def main():
    """Run the simulation."""
    ns.RngSeedManager.SetSeed({seed})
    ns.RngSeedManager.SetRun({run})
'''

    def _generate_nodes(self, tree: ClusterTree) -> str:
        """Generate node creation code."""
        lines = [
            "    # ============================================",
            "    # Create Nodes",
            "    # ============================================",
            "    nodes = ns.NodeContainer()",
            f"    nodes.Create({tree.context.node_count})",
            "",
            "    olsr = ns.OlsrHelper()",
            "    internet = ns.InternetStackHelper()",
            "    internet.SetRoutingHelper(olsr)",
            "    internet.Install(nodes)",
            "",
        ]
        return "\n".join(lines)

    def _generate_clusters(self) -> str:
        """Generate per-cluster Wi-Fi, addressing and mobility."""
        return '''    # ============================================
    # Clusters: Wi-Fi, addresses, mobility
    # ============================================
    phys = []
    cluster_devices = []
    for cluster in CLUSTERS:
        print(f"Configuring cluster {cluster['path']} ({len(cluster['members'])} nodes)")
        container = make_container(nodes, cluster["members"])
        phy, devices = install_adhoc(container)
        ipv4 = ns.Ipv4AddressHelper()
        ipv4.SetBase(ns.Ipv4Address(cluster["network"]), ns.Ipv4Mask(cluster["mask"]))
        ipv4.Assign(devices)
        install_mobility(nodes, cluster)
        phys.append(phy)
        cluster_devices.append(devices)
'''

    def _generate_applications(self) -> str:
        """Generate OnOff senders with one PacketSink per destination port."""
        return '''
    # ============================================
    # Applications
    # ============================================
    sinks = {}
    apps = []
    for flow in FLOWS:
        key = (flow["destination"], flow["port"])
        if key not in sinks:
            sink_addr = ns.InetSocketAddress(ns.Ipv4Address.GetAny(), flow["port"])
            sink = ns.PacketSinkHelper("ns3::UdpSocketFactory", sink_addr.ConvertTo())
            sink_apps = sink.Install(nodes.Get(flow["destination"]))
            sink_apps.Start(ns.Seconds(0.0))
            sinks[key] = sink_apps

        remote = ns.InetSocketAddress(ns.Ipv4Address(flow["address"]), flow["port"])
        onoff = ns.OnOffHelper("ns3::UdpSocketFactory", remote.ConvertTo())
        onoff.SetAttribute("DataRate", ns.DataRateValue(ns.DataRate(flow["rate"])))
        onoff.SetAttribute("PacketSize", ns.UintegerValue(flow["size"]))
        onoff.SetAttribute("OnTime", ns.StringValue("ns3::ConstantRandomVariable[Constant=1]"))
        onoff.SetAttribute("OffTime", ns.StringValue("ns3::ConstantRandomVariable[Constant=0]"))
        onoff_apps = onoff.Install(nodes.Get(flow["source"]))
        onoff_apps.Start(ns.Seconds(flow["start"]))
        onoff_apps.Stop(ns.Seconds(flow["stop"]))
        apps.append(onoff_apps)
        print(f"Flow node {flow['source']} -> {flow['address']}:{flow['port']} @ {flow['rate']}")
'''

    def _generate_tracing(self, config, output_dir: str) -> str:
        """Generate tracing/logging code."""
        lines = [
            "    # ============================================",
            "    # Setup Tracing and Monitoring",
            "    # ============================================",
            "",
        ]

        if config.enable_ascii_trace:
            lines.extend([
                "    ascii_trace = ns.AsciiTraceHelper()",
                f"    internet.EnableAsciiIpv4All(ascii_trace.CreateFileStream('{output_dir}/mixed-wireless.tr'))",
                "",
            ])

        if config.enable_pcap:
            lines.extend([
                "    # Backbone capture only",
                f"    phys[0].EnablePcap('{output_dir}/mixed-wireless', cluster_devices[0], False)",
                "",
            ])

        if config.use_course_change_callback:
            lines.extend([
                "    ns.Config.Connect('/NodeList/*/$ns3::MobilityModel/CourseChange',",
                "                      ns.MakeCallback(ns.cppyy.gbl.CourseChangeCallback))",
                "",
            ])

        if config.enable_animation:
            lines.extend([
                f"    anim = ns.AnimationInterface('{output_dir}/mixed-wireless.xml')",
                "",
            ])

        if config.enable_flow_monitor:
            lines.extend([
                "    flow_helper = ns.FlowMonitorHelper()",
                "    flow_monitor = flow_helper.InstallAll()",
                "",
            ])

        return "\n".join(lines)

    def _generate_simulation_run(self, config, output_dir: str) -> str:
        """Generate simulation run and statistics printout."""
        lines = [
            "    # ============================================",
            "    # Run Simulation",
            "    # ============================================",
            f"    ns.Simulator.Stop(ns.Seconds({config.stop_time}))",
            f"    print('Starting simulation for {config.stop_time} seconds...')",
            "    ns.Simulator.Run()",
            "",
        ]

        if config.enable_flow_monitor:
            lines.extend([
                "    print('\\n' + '='*60)",
                "    print('SIMULATION RESULTS')",
                "    print('='*60)",
                "",
                "    flow_monitor.CheckForLostPackets()",
                "    classifier = flow_helper.GetClassifier()",
                "    for flow_id, s in flow_monitor.GetFlowStats():",
                "        t = classifier.FindFlow(flow_id)",
                "        proto = 'UDP' if t.protocol == 17 else 'TCP' if t.protocol == 6 else f'Proto-{t.protocol}'",
                "        print(f'Flow {flow_id} ({proto})')",
                "        print(f'  {t.sourceAddress}:{t.sourcePort} -> {t.destinationAddress}:{t.destinationPort}')",
                "        print(f'  Tx Packets: {s.txPackets}')",
                "        print(f'  Rx Packets: {s.rxPackets}')",
                "        print(f'  Tx Bytes:   {s.txBytes}')",
                "        print(f'  Rx Bytes:   {s.rxBytes}')",
                "        print(f'  First Tx: {s.timeFirstTxPacket.GetSeconds():.9f} s')",
                "        print(f'  Last Tx:  {s.timeLastTxPacket.GetSeconds():.9f} s')",
                "        print(f'  Delay Sum: {s.delaySum.GetSeconds():.9f} s')",
                "        print(f'  Jitter Sum: {s.jitterSum.GetSeconds():.9f} s')",
                "        print(f'  Lost Packets: {s.lostPackets}')",
                "        print()",
                "",
                f"    flow_monitor.SerializeToXmlFile('{output_dir}/flowmon-results.xml', True, True)",
                f"    print('Flow monitor results saved to: {output_dir}/flowmon-results.xml')",
                "",
            ])

        lines.extend([
            "    ns.Simulator.Destroy()",
            "    print('\\nSimulation completed successfully.')",
            "    return 0",
            "",
        ])
        return "\n".join(lines)

    def _generate_main_call(self) -> str:
        """Generate main function call."""
        return '''
if __name__ == '__main__':
    sys.exit(main())
'''


def generate_ns3_script(scenario: Scenario, output_dir: str = ".", path: Optional[str] = None) -> str:
    """
    Convenience function to generate an ns-3 script.

    Args:
        scenario: Built topology and planned flows
        output_dir: Output directory for trace files
        path: Optional file to write the script to

    Returns:
        Generated Python script as string
    """
    script = NS3ScriptGenerator().generate(scenario, output_dir)
    if path:
        with open(path, "w", encoding="utf-8") as f:
            f.write(script)
    return script
