"""
NS-3 Simulation Runner.

Manages ns-3 subprocess execution, output capture and turning the run's
FlowMonitor output into an aggregated flow report.
"""

import glob
import logging
import os
import re
import shutil
from pathlib import Path
from typing import Optional, List

from PyQt6.QtCore import QObject, QProcess, pyqtSignal

from models import SimulationResults
from services.flow_stats import FlowStatsAggregator
from services.results_parser import ResultsParser

logger = logging.getLogger(__name__)

SCRIPT_NAME = "mixed_wireless.py"
FLOWMON_FILE = "flowmon-results.xml"
TRACE_FILE = "mixed-wireless.tr"


class NS3Detector:
    """
    Auto-detect ns-3 installation.

    Searches common locations and validates the installation.
    """

    COMMON_PATHS = [
        "~/ns-3-dev",
        "~/ns-allinone-3.*/ns-3.*",
        "~/ns3",
        "~/workspace/ns-3*",
        "/opt/ns-3*",
        "/usr/local/ns-3*",
        "./ns-3*",
        "../ns-3*",
    ]

    @classmethod
    def find_ns3_path(cls) -> Optional[str]:
        """
        Search for ns-3 installation.

        Returns:
            Path to ns-3 directory, or None if not found.
        """
        for pattern in cls.COMMON_PATHS:
            matches = glob.glob(os.path.expanduser(pattern))
            for match in sorted(matches, reverse=True):  # Prefer newer versions
                if cls.validate_ns3_path(match):
                    return match

        ns3_cmd = shutil.which("ns3")
        if ns3_cmd:
            ns3_dir = os.path.dirname(ns3_cmd)
            if cls.validate_ns3_path(ns3_dir):
                return ns3_dir

        return None

    @classmethod
    def validate_ns3_path(cls, path: str) -> bool:
        """True if ``path`` holds an ns-3 tree with the ns3 (or legacy waf) driver."""
        if not path or not os.path.isdir(path):
            return False
        return (
            os.path.isfile(os.path.join(path, "ns3"))
            or os.path.isfile(os.path.join(path, "waf"))
        )

    @classmethod
    def get_ns3_version(cls, ns3_path: str) -> Optional[str]:
        """
        Get ns-3 version string.

        Reads the VERSION file, falling back to the directory name.
        """
        version_file = os.path.join(ns3_path, "VERSION")
        if os.path.isfile(version_file):
            try:
                with open(version_file, "r") as f:
                    return f.read().strip()
            except OSError as e:
                logger.warning(f"Could not read {version_file}: {e}")

        dirname = os.path.basename(os.path.normpath(ns3_path))
        if "ns-3" in dirname or "ns3" in dirname:
            parts = dirname.replace("ns-3", "").replace("ns3", "").strip("-._")
            if parts:
                return parts

        return None

    @classmethod
    def check_python_bindings(cls, ns3_path: str) -> bool:
        """Check if ns-3 was built with Python bindings."""
        for sub in (("build", "bindings", "python"), ("build", "lib", "python")):
            if os.path.isdir(os.path.join(ns3_path, *sub)):
                return True
        return False


def collect_results(exit_code: int, output: str, output_dir: str) -> SimulationResults:
    """
    Build SimulationResults for a finished run.

    Flow records come from the FlowMonitor XML when the run wrote one, and
    from the printed per-flow summary otherwise. The records are aggregated
    into a FlowReport.
    """
    results = SimulationResults(console_output=output)

    if exit_code != 0:
        results.error_message = f"Simulation failed with exit code {exit_code}"
        logger.error(results.error_message)
        return results

    results.success = True
    parser = ResultsParser()
    flowmon_path = os.path.join(output_dir, FLOWMON_FILE)
    if os.path.isfile(flowmon_path):
        results.flowmon_path = flowmon_path
        try:
            results.flow_records = parser.parse_flow_monitor_xml(flowmon_path)
        except ValueError as e:
            logger.warning(f"Falling back to console output: {e}")
            results.flow_records = parser.parse_console_output(output)
    else:
        results.flow_records = parser.parse_console_output(output)

    results.report = FlowStatsAggregator().ingest(results.flow_records)
    results.pcap_files = sorted(glob.glob(os.path.join(output_dir, "*.pcap")))

    trace_path = os.path.join(output_dir, TRACE_FILE)
    if os.path.isfile(trace_path):
        results.trace_file_path = trace_path

    logger.info(f"Collected {len(results.flow_records)} flow records from {output_dir}")
    return results


class SimulationRunner(QObject):
    """
    Runs ns-3 simulation as subprocess.

    Uses QProcess for non-blocking execution with signal-based output.
    """

    # Signals
    started = pyqtSignal()
    finished = pyqtSignal(int, str)  # exit_code, output
    error = pyqtSignal(str)
    output_line = pyqtSignal(str)
    progress = pyqtSignal(int)  # percentage (0-100)

    _TIME_PATTERN = re.compile(r"time[:\s]+(\d+\.?\d*)\s*/\s*(\d+\.?\d*)", re.IGNORECASE)
    _PERCENT_PATTERN = re.compile(r"(\d+)%")

    def __init__(self, ns3_path: str = "", parent: Optional[QObject] = None):
        super().__init__(parent)
        self._ns3_path = ns3_path
        self._process: Optional[QProcess] = None
        self._output_buffer: List[str] = []
        self._script_path: Optional[str] = None
        self._output_dir: Optional[str] = None

    @property
    def ns3_path(self) -> str:
        return self._ns3_path

    @ns3_path.setter
    def ns3_path(self, value: str):
        self._ns3_path = value

    @property
    def script_path(self) -> Optional[str]:
        return self._script_path

    @property
    def is_running(self) -> bool:
        return self._process is not None and self._process.state() == QProcess.ProcessState.Running

    def run_script(self, script_content: str, output_dir: str) -> bool:
        """
        Copy the script into ns-3's scratch directory and run it.

        Args:
            script_content: The Python script content
            output_dir: Directory for output files

        Returns:
            True if started successfully
        """
        if self.is_running:
            self.error.emit("Simulation already running")
            return False

        if not NS3Detector.validate_ns3_path(self._ns3_path):
            self.error.emit(f"Invalid ns-3 path: {self._ns3_path}")
            return False

        os.makedirs(output_dir, exist_ok=True)
        self._output_dir = output_dir

        scratch_dir = os.path.join(self._ns3_path, "scratch")
        os.makedirs(scratch_dir, exist_ok=True)
        self._script_path = os.path.join(scratch_dir, SCRIPT_NAME)
        try:
            with open(self._script_path, "w", encoding="utf-8") as f:
                f.write(script_content)
        except OSError as e:
            self.error.emit(f"Failed to write script: {e}")
            return False

        self._output_buffer = []

        self._process = QProcess(self)
        self._process.setWorkingDirectory(self._ns3_path)
        self._process.readyReadStandardOutput.connect(self._on_stdout)
        self._process.readyReadStandardError.connect(self._on_stderr)
        self._process.finished.connect(self._on_finished)
        self._process.errorOccurred.connect(self._on_error)

        program, args = self._command()

        env = QProcess.systemEnvironment()
        lib_path = os.path.join(self._ns3_path, "build", "lib")
        env.append(f"LD_LIBRARY_PATH={lib_path}:{os.environ.get('LD_LIBRARY_PATH', '')}")
        env.append(f"PYTHONPATH={self._ns3_path}/build/bindings/python:{os.environ.get('PYTHONPATH', '')}")
        self._process.setEnvironment(env)

        logger.info(f"Starting {program} {' '.join(args)} in {self._ns3_path}")
        self._process.start(program, args)

        if self._process.waitForStarted(5000):
            self.started.emit()
            return True
        self.error.emit("Failed to start ns-3 process")
        return False

    def _command(self) -> tuple[str, list[str]]:
        ns3_script = os.path.join(self._ns3_path, "ns3")
        if os.path.isfile(ns3_script):
            return ns3_script, ["run", f"scratch/{SCRIPT_NAME}"]
        # Older ns-3 uses waf
        return os.path.join(self._ns3_path, "waf"), ["--pyrun", f"scratch/{SCRIPT_NAME}"]

    def stop(self):
        """Stop the running simulation."""
        if self._process and self.is_running:
            self._process.terminate()
            if not self._process.waitForFinished(3000):
                self._process.kill()

    def _on_stdout(self):
        if self._process:
            data = self._process.readAllStandardOutput().data().decode("utf-8", errors="replace")
            for line in data.splitlines():
                self._output_buffer.append(line)
                self.output_line.emit(line)
                self._parse_progress(line)

    def _on_stderr(self):
        if self._process:
            data = self._process.readAllStandardError().data().decode("utf-8", errors="replace")
            for line in data.splitlines():
                self._output_buffer.append(f"[stderr] {line}")
                self.output_line.emit(f"[stderr] {line}")

    def _on_finished(self, exit_code: int, exit_status: QProcess.ExitStatus):
        output = "\n".join(self._output_buffer)
        logger.info(f"ns-3 process finished with exit code {exit_code}")
        self.finished.emit(exit_code, output)
        self._process = None

    def _on_error(self, error: QProcess.ProcessError):
        error_messages = {
            QProcess.ProcessError.FailedToStart: "Failed to start process",
            QProcess.ProcessError.Crashed: "Process crashed",
            QProcess.ProcessError.Timedout: "Process timed out",
            QProcess.ProcessError.WriteError: "Write error",
            QProcess.ProcessError.ReadError: "Read error",
            QProcess.ProcessError.UnknownError: "Unknown error",
        }
        message = error_messages.get(error, f"Process error: {error}")
        logger.error(message)
        self.error.emit(message)

    def _parse_progress(self, line: str):
        """Emit progress for "time: x / y" or "NN%" lines."""
        match = self._TIME_PATTERN.search(line)
        if match:
            current, total = float(match.group(1)), float(match.group(2))
            if total > 0:
                self.progress.emit(int(current / total * 100))
                return

        match = self._PERCENT_PATTERN.search(line)
        if match:
            self.progress.emit(int(match.group(1)))


class NS3SimulationManager(QObject):
    """
    High-level manager for ns-3 simulations.

    Coordinates running a generated script and collecting its results.
    """

    # Signals
    simulationStarted = pyqtSignal()
    simulationFinished = pyqtSignal(object)  # SimulationResults
    simulationError = pyqtSignal(str)
    outputReceived = pyqtSignal(str)
    progressUpdated = pyqtSignal(int)

    def __init__(self, ns3_path: str = "", parent: Optional[QObject] = None):
        super().__init__(parent)
        self._ns3_path = ns3_path or NS3Detector.find_ns3_path() or ""
        self._runner: Optional[SimulationRunner] = None
        self._output_dir = ""

    @property
    def ns3_path(self) -> str:
        return self._ns3_path

    @ns3_path.setter
    def ns3_path(self, value: str):
        self._ns3_path = value

    @property
    def ns3_available(self) -> bool:
        return NS3Detector.validate_ns3_path(self._ns3_path)

    @property
    def ns3_version(self) -> Optional[str]:
        if self._ns3_path:
            return NS3Detector.get_ns3_version(self._ns3_path)
        return None

    @property
    def is_running(self) -> bool:
        return self._runner is not None and self._runner.is_running

    def run_simulation(self, script_content: str, output_dir: str) -> bool:
        """
        Run a simulation with generated script.

        Returns:
            True if started successfully
        """
        if not self.ns3_available:
            self.simulationError.emit("ns-3 not found. Please configure the path in settings.")
            return False

        self._output_dir = str(Path(output_dir))

        self._runner = SimulationRunner(self._ns3_path, self)
        self._runner.started.connect(self.simulationStarted)
        self._runner.finished.connect(self._on_finished)
        self._runner.error.connect(self.simulationError)
        self._runner.output_line.connect(self.outputReceived)
        self._runner.progress.connect(self.progressUpdated)

        return self._runner.run_script(script_content, output_dir)

    def stop_simulation(self):
        if self._runner:
            self._runner.stop()

    def _on_finished(self, exit_code: int, output: str):
        self.simulationFinished.emit(collect_results(exit_code, output, self._output_dir))
