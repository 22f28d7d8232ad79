import pytest
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Gauge, Histogram, Summary

from core.errors import UnknownMetricKindError
from core.registry import MetricRegistry
from models.metric import GaugeAggregator, MetricDefinition, MetricKind


@pytest.mark.parametrize(
    "kind, expected_class",
    [
        ("counter", Counter),
        ("gauge", Gauge),
        ("histogram", Histogram),
        ("summary", Summary),
    ],
)
def test_register_metric_creates_instance_of_kind(kind, expected_class):
    registry = MetricRegistry(collect_default_metrics=False)
    registry.register_metric(
        MetricDefinition(kind=kind, name=f"test_{kind}", help="help", label_names=["a"])
    )

    assert isinstance(registry.get_instance(f"test_{kind}"), expected_class)
    assert registry.get_kind(f"test_{kind}") == MetricKind(kind)


def test_unknown_kind_raises_and_leaves_registry_unchanged():
    registry = MetricRegistry(collect_default_metrics=False)
    registry.register_metric(MetricDefinition(kind="counter", name="known", help="help"))

    with pytest.raises(UnknownMetricKindError) as exc_info:
        registry.register_metric(MetricDefinition(kind="meter", name="unknown", help="help"))

    assert isinstance(exc_info.value, ValueError)
    assert len(registry) == 1
    assert registry.get_instance("unknown") is None


def test_get_instance_of_missing_metric_is_none():
    registry = MetricRegistry(collect_default_metrics=False)
    assert registry.get_instance("nope") is None


def test_registering_same_name_replaces_previous_instance():
    registry = MetricRegistry(collect_default_metrics=False)
    first = registry.register_metric(MetricDefinition(kind="gauge", name="queue_depth", help="h"))
    second = registry.register_metric(MetricDefinition(kind="gauge", name="queue_depth", help="h"))

    assert first is not second
    assert registry.get_instance("queue_depth") is second
    second.set(4)
    assert registry.collector_registry.get_sample_value("queue_depth") == 4


def test_histogram_uses_definition_buckets():
    registry = MetricRegistry(collect_default_metrics=False)
    histogram = registry.register_metric(
        MetricDefinition(kind="histogram", name="latency", help="h", buckets=[1, 10])
    )
    histogram.observe(5)

    sample = registry.collector_registry.get_sample_value
    assert sample("latency_bucket", {"le": "1.0"}) == 0
    assert sample("latency_bucket", {"le": "10.0"}) == 1
    assert sample("latency_bucket", {"le": "+Inf"}) == 1


def test_snapshot_is_plain_data():
    registry = MetricRegistry(collect_default_metrics=False)
    registry.register_metric(
        MetricDefinition(
            kind="gauge",
            name="workers_busy",
            help="Busy workers",
            label_names=["pool"],
            aggregator=GaugeAggregator.MAX,
        )
    )
    registry.get_instance("workers_busy").labels(pool="io").set(3)

    snapshot = registry.snapshot()

    assert snapshot == [
        {
            "name": "workers_busy",
            "help": "Busy workers",
            "type": "gauge",
            "unit": "",
            "aggregator": "max",
            "samples": [{"name": "workers_busy", "labels": {"pool": "io"}, "value": 3.0}],
        }
    ]


def test_snapshot_does_not_follow_later_updates():
    registry = MetricRegistry(collect_default_metrics=False)
    gauge = registry.register_metric(MetricDefinition(kind="gauge", name="g", help="h"))
    gauge.set(1)
    snapshot = registry.snapshot()
    gauge.set(2)

    assert snapshot[0]["samples"][0]["value"] == 1.0


def test_default_metrics_carry_default_labels():
    registry = MetricRegistry(default_labels={"app": "orders-api"})

    families = registry.snapshot()
    platform = [f for f in families if f["name"] == "python_info"]

    assert platform
    for sample in platform[0]["samples"]:
        assert sample["labels"]["app"] == "orders-api"


def test_create_request_metrics():
    registry = MetricRegistry(collect_default_metrics=False)
    registry.create_request_metrics()

    assert isinstance(registry.get_instance("http_request_duration_ms"), Histogram)
    assert isinstance(registry.get_instance("http_request_counter"), Gauge)


def test_content_type():
    assert MetricRegistry(collect_default_metrics=False).content_type() == CONTENT_TYPE_LATEST


def test_default_registry_snapshots_platform_info():
    registry = MetricRegistry()

    families = {f["name"]: f for f in registry.snapshot()}

    assert families["python_info"]["aggregator"] == "first"
    assert families["python_info"]["samples"][0]["value"] == 1.0
    assert "python_gc_objects_collected" in families
