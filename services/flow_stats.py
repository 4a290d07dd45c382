"""
Flow statistics aggregation.

Turns raw FlowMonitor counters into per-flow metrics plus per-pair and
per-source traffic summaries. Per-record problems (zero duration, too few
received packets) are reported as flagged values on that record and never
abort the batch.

Aggregation is a fold with an associative merge: records can be split into
partitions, folded independently and merged in any order. Weighted traffic
sums use ``math.fsum`` over the collected contributions so totals do not
depend on record order.
"""

import logging
import math
from dataclasses import dataclass, field
from typing import Iterable, Sequence

from models.errors import FlowMetricError, DegenerateFlow, DivideByZeroMetric
from models.simulation import FlowRecord

logger = logging.getLogger(__name__)


# ============== Per-record metrics ==============

def flow_duration(record: FlowRecord) -> float:
    """Active transmit window of a flow in seconds."""
    duration = record.last_tx_time - record.first_tx_time
    if duration <= 0 or record.last_tx_time <= 0:
        raise DegenerateFlow(
            f"Flow {record.key} has non-positive duration "
            f"({record.first_tx_time} -> {record.last_tx_time})"
        )
    return duration


def mean_delay(record: FlowRecord) -> float:
    if record.rx_packets <= 0:
        raise DivideByZeroMetric("mean_delay")
    return record.delay_sum / record.rx_packets


def mean_jitter(record: FlowRecord) -> float:
    if record.rx_packets <= 1:
        raise DivideByZeroMetric("mean_jitter")
    return record.jitter_sum / (record.rx_packets - 1)


@dataclass(frozen=True)
class FlowMetrics:
    """
    Derived metrics of one flow.

    Undefined means and degenerate windows are NaN / zero respectively, and
    always come with an entry in ``flags``.
    """
    record: FlowRecord
    duration: float = 0.0
    bitrate_kbps: float = 0.0
    observed_window_fraction: float = 0.0
    weighted_traffic: float = 0.0
    mean_delay: float = math.nan
    mean_jitter: float = math.nan
    flags: tuple[str, ...] = ()

    @property
    def source_address(self) -> str:
        return self.record.source_address

    @property
    def destination_address(self) -> str:
        return self.record.destination_address

    @property
    def is_flagged(self) -> bool:
        return bool(self.flags)

    @property
    def is_degenerate(self) -> bool:
        return DegenerateFlow.flag in self.flags

    @classmethod
    def from_record(cls, record: FlowRecord) -> "FlowMetrics":
        flags = []
        duration = bitrate = fraction = weighted = 0.0
        try:
            duration = flow_duration(record)
            bitrate = (record.tx_bytes * 8) / duration / 1000
            fraction = duration / record.last_tx_time
            weighted = bitrate * fraction
        except DegenerateFlow as e:
            flags.append(e.flag)
            duration = 0.0

        delay = jitter = math.nan
        try:
            delay = mean_delay(record)
        except DivideByZeroMetric as e:
            flags.append(e.flag)
        try:
            jitter = mean_jitter(record)
        except DivideByZeroMetric as e:
            flags.append(e.flag)

        return cls(
            record=record,
            duration=duration,
            bitrate_kbps=bitrate,
            observed_window_fraction=fraction,
            weighted_traffic=weighted,
            mean_delay=delay,
            mean_jitter=jitter,
            flags=tuple(flags),
        )


def _order_key(metrics: FlowMetrics):
    r = metrics.record
    return (r.source_address, r.destination_address, r.flow_id, r.first_tx_time,
            r.last_tx_time, r.tx_bytes, r.rx_bytes, r.rx_packets)


# ============== Aggregates ==============

@dataclass
class FlowAggregate:
    """Weighted traffic of every observation sharing one endpoint pair."""
    source_address: str
    destination_address: str
    contributions: list[float] = field(default_factory=list)

    @property
    def key(self) -> str:
        return f"{self.source_address}->{self.destination_address}"

    @property
    def weighted_traffic_sum(self) -> float:
        return math.fsum(self.contributions)

    @property
    def sample_count(self) -> int:
        return len(self.contributions)

    def merged(self, other: "FlowAggregate") -> "FlowAggregate":
        return FlowAggregate(self.source_address, self.destination_address,
                             self.contributions + other.contributions)


@dataclass
class SourceAggregate:
    """Weighted traffic summed over every flow leaving one source address."""
    source_address: str
    contributions: list[float] = field(default_factory=list)
    flagged_count: int = 0

    @property
    def weighted_traffic_sum(self) -> float:
        return math.fsum(self.contributions)

    @property
    def flow_count(self) -> int:
        return len(self.contributions)

    def merged(self, other: "SourceAggregate") -> "SourceAggregate":
        return SourceAggregate(self.source_address,
                               self.contributions + other.contributions,
                               self.flagged_count + other.flagged_count)


@dataclass
class PartialAggregate:
    """Result of folding one partition of records."""
    flows: list[FlowMetrics] = field(default_factory=list)
    pairs: dict[tuple[str, str], FlowAggregate] = field(default_factory=dict)
    sources: dict[str, SourceAggregate] = field(default_factory=dict)

    def add(self, metrics: FlowMetrics):
        src, dst = metrics.source_address, metrics.destination_address
        self.flows.append(metrics)

        pair = self.pairs.setdefault((src, dst), FlowAggregate(src, dst))
        pair.contributions.append(metrics.weighted_traffic)

        source = self.sources.setdefault(src, SourceAggregate(src))
        source.contributions.append(metrics.weighted_traffic)
        if metrics.is_flagged:
            source.flagged_count += 1

    def merged(self, other: "PartialAggregate") -> "PartialAggregate":
        result = PartialAggregate(flows=self.flows + other.flows)
        for key in self.pairs.keys() | other.pairs.keys():
            left, right = self.pairs.get(key), other.pairs.get(key)
            result.pairs[key] = left.merged(right) if left and right else FlowAggregate(
                key[0], key[1], list((left or right).contributions))
        for key in self.sources.keys() | other.sources.keys():
            left, right = self.sources.get(key), other.sources.get(key)
            if left and right:
                result.sources[key] = left.merged(right)
            else:
                single = left or right
                result.sources[key] = SourceAggregate(key, list(single.contributions), single.flagged_count)
        return result


# ============== Report ==============

FLOW_TABLE_COLUMNS = [
    "source_address", "destination_address", "tx_bytes", "rx_bytes",
    "first_tx_time", "last_tx_time", "duration", "mean_delay", "mean_jitter",
    "lost_packets", "bitrate_kbps", "weighted_traffic", "flags",
]

PAIR_TABLE_COLUMNS = ["source_address", "destination_address", "weighted_traffic_sum", "sample_count"]

SOURCE_TABLE_COLUMNS = ["source_address", "weighted_traffic_sum", "flow_count", "flagged_count"]


@dataclass
class FlowReport:
    """Terminal aggregation result: flow, pair and source tables."""
    flows: list[FlowMetrics] = field(default_factory=list)
    pairs: list[FlowAggregate] = field(default_factory=list)
    sources: list[SourceAggregate] = field(default_factory=list)

    @classmethod
    def from_partial(cls, partial: PartialAggregate) -> "FlowReport":
        return cls(
            flows=sorted(partial.flows, key=_order_key),
            pairs=[partial.pairs[k] for k in sorted(partial.pairs)],
            sources=[partial.sources[k] for k in sorted(partial.sources)],
        )

    @property
    def flagged_flows(self) -> list[FlowMetrics]:
        return [f for f in self.flows if f.is_flagged]

    def source(self, address: str) -> SourceAggregate:
        for aggregate in self.sources:
            if aggregate.source_address == address:
                return aggregate
        raise KeyError(address)

    def source_totals(self) -> dict[str, float]:
        return {s.source_address: s.weighted_traffic_sum for s in self.sources}

    def flow_table(self) -> list[dict]:
        rows = []
        for metrics in self.flows:
            r = metrics.record
            rows.append({
                "source_address": r.source_address,
                "destination_address": r.destination_address,
                "tx_bytes": r.tx_bytes,
                "rx_bytes": r.rx_bytes,
                "first_tx_time": r.first_tx_time,
                "last_tx_time": r.last_tx_time,
                "duration": metrics.duration,
                "mean_delay": metrics.mean_delay,
                "mean_jitter": metrics.mean_jitter,
                "lost_packets": r.lost_packets,
                "bitrate_kbps": metrics.bitrate_kbps,
                "weighted_traffic": metrics.weighted_traffic,
                "flags": ";".join(metrics.flags),
            })
        return rows

    def pair_table(self) -> list[dict]:
        return [{
            "source_address": p.source_address,
            "destination_address": p.destination_address,
            "weighted_traffic_sum": p.weighted_traffic_sum,
            "sample_count": p.sample_count,
        } for p in self.pairs]

    def source_table(self) -> list[dict]:
        return [{
            "source_address": s.source_address,
            "weighted_traffic_sum": s.weighted_traffic_sum,
            "flow_count": s.flow_count,
            "flagged_count": s.flagged_count,
        } for s in self.sources]


class FlowStatsAggregator:
    """
    Consumes FlowRecords and produces a FlowReport.

    ``ingest`` is a pure fold over its input. For partitioned processing,
    call ``fold`` per partition and ``merge`` the partial results.
    """

    def fold(self, records: Iterable[FlowRecord]) -> PartialAggregate:
        partial = PartialAggregate()
        for record in records:
            metrics = FlowMetrics.from_record(record)
            if metrics.is_flagged:
                logger.warning(f"Flow {record.key} (id {record.flow_id}) flagged: {', '.join(metrics.flags)}")
            partial.add(metrics)
        return partial

    @staticmethod
    def merge(partials: Iterable[PartialAggregate]) -> PartialAggregate:
        result = PartialAggregate()
        for partial in partials:
            result = result.merged(partial)
        return result

    def ingest(self, records: Sequence[FlowRecord]) -> FlowReport:
        report = FlowReport.from_partial(self.fold(records))
        logger.info(
            f"Aggregated {len(report.flows)} flows from {len(report.sources)} sources "
            f"({len(report.flagged_flows)} flagged)"
        )
        return report

    def ingest_partitioned(self, records: Sequence[FlowRecord], partitions: int) -> FlowReport:
        """Fold ``partitions`` interleaved slices separately, then merge."""
        if partitions < 1:
            raise ValueError(f"Partition count must be positive, got {partitions}")
        parts = [self.fold(records[i::partitions]) for i in range(partitions)]
        return FlowReport.from_partial(self.merge(parts))


def aggregate_flows(records: Sequence[FlowRecord]) -> FlowReport:
    """Convenience wrapper around FlowStatsAggregator.ingest."""
    return FlowStatsAggregator().ingest(records)
