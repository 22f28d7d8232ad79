"""
Merge per-worker snapshots into one exposition registry.

Samples are matched on sample name and label set. Counters, histograms and
summaries add up across workers; gauges use the merge rule carried by their
family (``sum`` unless the metric was registered with another aggregator).
"""
import logging
import math
from typing import Dict, Iterable, List, Tuple

from prometheus_client import CollectorRegistry, generate_latest
from prometheus_client.core import Metric
from prometheus_client.registry import Collector

from models.metric import GaugeAggregator, MetricSnapshot

logger = logging.getLogger(__name__)

SUMMED_TYPES = ("counter", "histogram", "summary", "gaugehistogram")

SampleKey = Tuple[str, Tuple[Tuple[str, str], ...]]


def _value(raw) -> float:
    # NaN travels as null in JSON
    return math.nan if raw is None else float(raw)


def _combine(values: List[float], rule: GaugeAggregator) -> float:
    if rule == GaugeAggregator.MIN:
        return min(values)
    if rule == GaugeAggregator.MAX:
        return max(values)
    if rule == GaugeAggregator.AVERAGE:
        return sum(values) / len(values)
    if rule == GaugeAggregator.FIRST:
        return values[0]
    return sum(values)


def _rule_for(family: dict, sample_name: str) -> GaugeAggregator:
    family_type = family["type"]
    if family_type in SUMMED_TYPES:
        if sample_name == family["name"] + "_created":
            return GaugeAggregator.MIN
        return GaugeAggregator.SUM
    if family_type == "gauge":
        return GaugeAggregator(family.get("aggregator") or GaugeAggregator.SUM)
    return GaugeAggregator.FIRST


class SnapshotCollector(Collector):
    """Exposes already merged families through a ``CollectorRegistry``."""

    def __init__(self, families: List[dict]):
        self._families = families

    def collect(self):
        for family in self._families:
            metric = Metric(
                family["name"], family["help"], family["type"], unit=family.get("unit", "")
            )
            for sample in family["samples"]:
                metric.add_sample(sample["name"], sample["labels"], sample["value"])
            yield metric


def merge_snapshots(snapshots: Iterable[MetricSnapshot]) -> List[dict]:
    families: Dict[str, dict] = {}
    values: Dict[str, Dict[SampleKey, Tuple[dict, List[float]]]] = {}

    for snapshot in snapshots:
        for family in snapshot:
            name = family["name"]
            merged = families.get(name)
            if merged is None:
                merged = {
                    "name": name,
                    "help": family["help"],
                    "type": family["type"],
                    "unit": family.get("unit", ""),
                    "aggregator": family.get("aggregator", GaugeAggregator.SUM),
                }
                families[name] = merged
                values[name] = {}
            elif merged["type"] != family["type"]:
                logger.warning(
                    "Skipping metric family with conflicting type",
                    extra={
                        "metric_name": name,
                        "expected_type": merged["type"],
                        "received_type": family["type"],
                    },
                )
                continue

            for sample in family.get("samples", []):
                labels = sample.get("labels") or {}
                key = (sample["name"], tuple(sorted(labels.items())))
                # first seen label order is kept for the exposition
                values[name].setdefault(key, (dict(labels), []))[1].append(
                    _value(sample.get("value"))
                )

    result = []
    for name, family in families.items():
        if family["type"] == "gauge" and family["aggregator"] == GaugeAggregator.OMIT:
            continue
        family["samples"] = [
            {
                "name": sample_name,
                "labels": labels,
                "value": _combine(sample_values, _rule_for(family, sample_name)),
            }
            for (sample_name, _), (labels, sample_values) in values[name].items()
        ]
        result.append(family)
    return result


def aggregate(snapshots: Iterable[MetricSnapshot]) -> CollectorRegistry:
    registry = CollectorRegistry(auto_describe=False)
    registry.register(SnapshotCollector(merge_snapshots(snapshots)))
    return registry


def render(snapshots: Iterable[MetricSnapshot]) -> bytes:
    return generate_latest(aggregate(snapshots))
