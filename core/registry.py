"""
Per-process metric registry.

Wraps a prometheus_client ``CollectorRegistry`` and keeps a name lookup table of
the metrics registered through it, so the request instrumentation and the
cluster collection protocol can reach them without module level globals.
"""
import logging
from typing import Dict, List, Optional, Union

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    GCCollector,
    Histogram,
    PlatformCollector,
    ProcessCollector,
    Summary,
    generate_latest,
)
from prometheus_client.registry import Collector

from config.consts import (
    HTTP_REQUEST_COUNTER_METRIC,
    HTTP_REQUEST_DURATION_BUCKETS,
    HTTP_REQUEST_DURATION_METRIC,
    HTTP_REQUEST_LABELS,
)
from core.errors import UnknownMetricKindError
from models.metric import (
    GaugeAggregator,
    MetricDefinition,
    MetricFamilySnapshot,
    MetricKind,
    MetricSnapshot,
    SampleSnapshot,
)

MetricInstance = Union[Counter, Gauge, Histogram, Summary]

# Default collector gauges that must not be summed across workers
DEFAULT_GAUGE_AGGREGATORS = {
    "process_start_time_seconds": GaugeAggregator.MIN,
    "process_max_fds": GaugeAggregator.FIRST,
    "python_info": GaugeAggregator.FIRST,
}


class DefaultLabelsCollector(Collector):
    """Adds constant labels to every sample of the wrapped collectors."""

    def __init__(self, collectors, labels: Optional[Dict[str, str]] = None):
        self._collectors = list(collectors)
        self._labels = {str(k): str(v) for k, v in (labels or {}).items()}

    def collect(self):
        for collector in self._collectors:
            for family in collector.collect():
                if self._labels:
                    family.samples = [
                        sample._replace(labels={**self._labels, **sample.labels})
                        for sample in family.samples
                    ]
                yield family


class MetricRegistry:
    def __init__(
        self,
        default_labels: Optional[Dict[str, str]] = None,
        collect_default_metrics: bool = True,
    ):
        self.logger = logging.getLogger(__name__)
        self._registry = CollectorRegistry()
        self._instances: Dict[str, MetricInstance] = {}
        self._kinds: Dict[str, MetricKind] = {}
        self._aggregators: Dict[str, GaugeAggregator] = dict(DEFAULT_GAUGE_AGGREGATORS)

        if collect_default_metrics:
            # each default collector self-registers, so it gets a private registry
            self._registry.register(
                DefaultLabelsCollector(
                    [
                        ProcessCollector(registry=CollectorRegistry()),
                        PlatformCollector(registry=CollectorRegistry()),
                        GCCollector(registry=CollectorRegistry()),
                    ],
                    labels=default_labels,
                )
            )

    @property
    def collector_registry(self) -> CollectorRegistry:
        return self._registry

    def register_metric(self, definition: MetricDefinition) -> MetricInstance:
        try:
            kind = MetricKind(definition.kind)
        except ValueError:
            raise UnknownMetricKindError(definition.kind, definition.name) from None

        labelnames = list(definition.label_names)
        if kind == MetricKind.COUNTER:
            instance = Counter(
                definition.name, definition.help, labelnames, registry=None
            )
        elif kind == MetricKind.GAUGE:
            instance = Gauge(definition.name, definition.help, labelnames, registry=None)
        elif kind == MetricKind.HISTOGRAM:
            if definition.buckets:
                instance = Histogram(
                    definition.name,
                    definition.help,
                    labelnames,
                    buckets=definition.buckets,
                    registry=None,
                )
            else:
                instance = Histogram(
                    definition.name, definition.help, labelnames, registry=None
                )
        else:
            instance = Summary(definition.name, definition.help, labelnames, registry=None)

        previous = self._instances.get(definition.name)
        if previous is not None:
            self.logger.warning(
                "Replacing previously registered metric",
                extra={"metric_name": definition.name},
            )
            self._registry.unregister(previous)

        self._registry.register(instance)
        self._instances[definition.name] = instance
        self._kinds[definition.name] = kind
        if kind == MetricKind.GAUGE:
            self._aggregators[definition.name] = definition.aggregator
        self.logger.debug(
            "Registered metric",
            extra={"metric_name": definition.name, "metric_kind": kind.value},
        )
        return instance

    def get_instance(self, name: str) -> Optional[MetricInstance]:
        return self._instances.get(name)

    def get_kind(self, name: str) -> Optional[MetricKind]:
        return self._kinds.get(name)

    def __len__(self):
        return len(self._instances)

    def snapshot(self) -> MetricSnapshot:
        """
        Materialize the current value of every collector as plain data.

        The result holds no reference to live metric objects, so it can be sent
        to another process and merged there.
        """
        families: List[dict] = []
        for family in self._registry.collect():
            snapshot = MetricFamilySnapshot(
                name=family.name,
                help=family.documentation,
                type=family.type,
                unit=family.unit,
                aggregator=self._aggregators.get(family.name, GaugeAggregator.SUM),
                samples=[
                    SampleSnapshot(
                        name=sample.name,
                        labels={k: str(v) for k, v in sample.labels.items()},
                        value=sample.value,
                    )
                    for sample in family.samples
                ],
            )
            families.append(snapshot.model_dump(mode="python"))
        return families

    def metrics(self) -> bytes:
        return generate_latest(self._registry)

    def content_type(self) -> str:
        return CONTENT_TYPE_LATEST

    def create_request_metrics(self):
        self.register_metric(
            MetricDefinition(
                kind=MetricKind.HISTOGRAM.value,
                name=HTTP_REQUEST_DURATION_METRIC,
                help="Duration of HTTP requests in ms",
                label_names=HTTP_REQUEST_LABELS,
                buckets=HTTP_REQUEST_DURATION_BUCKETS,
            )
        )
        self.register_metric(
            MetricDefinition(
                kind=MetricKind.GAUGE.value,
                name=HTTP_REQUEST_COUNTER_METRIC,
                help="Count of HTTP requests",
                label_names=HTTP_REQUEST_LABELS,
            )
        )
