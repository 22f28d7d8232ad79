from prometheus_client.parser import text_string_to_metric_families

from core.aggregation import aggregate, merge_snapshots, render
from core.registry import MetricRegistry
from models.metric import MetricDefinition


def _gauge_snapshot(value, aggregator="sum", name="pool_size"):
    return [
        {
            "name": name,
            "help": "Pool size",
            "type": "gauge",
            "unit": "",
            "aggregator": aggregator,
            "samples": [{"name": name, "labels": {"pool": "db"}, "value": value}],
        }
    ]


def _worker_registry(observations, requests):
    registry = MetricRegistry(collect_default_metrics=False)
    registry.register_metric(
        MetricDefinition(kind="counter", name="requests", help="Requests", label_names=["path"])
    )
    registry.register_metric(
        MetricDefinition(kind="histogram", name="latency_ms", help="Latency", buckets=[10, 100])
    )
    for path, count in requests.items():
        registry.get_instance("requests").labels(path=path).inc(count)
    for value in observations:
        registry.get_instance("latency_ms").observe(value)
    return registry


def test_counters_and_histograms_are_summed():
    first = _worker_registry([5, 50], {"/a": 2})
    second = _worker_registry([500], {"/a": 3, "/b": 1})

    merged = aggregate([first.snapshot(), second.snapshot()])

    assert merged.get_sample_value("requests_total", {"path": "/a"}) == 5
    assert merged.get_sample_value("requests_total", {"path": "/b"}) == 1
    assert merged.get_sample_value("latency_ms_bucket", {"le": "10.0"}) == 1
    assert merged.get_sample_value("latency_ms_bucket", {"le": "100.0"}) == 2
    assert merged.get_sample_value("latency_ms_bucket", {"le": "+Inf"}) == 3
    assert merged.get_sample_value("latency_ms_count") == 3
    assert merged.get_sample_value("latency_ms_sum") == 555


def test_created_samples_take_the_earliest_value():
    snapshots = [
        [
            {
                "name": "jobs",
                "help": "Jobs",
                "type": "counter",
                "unit": "",
                "aggregator": "sum",
                "samples": [
                    {"name": "jobs_total", "labels": {}, "value": 1},
                    {"name": "jobs_created", "labels": {}, "value": created},
                ],
            }
        ]
        for created in (200.0, 100.0, 300.0)
    ]

    merged = aggregate(snapshots)

    assert merged.get_sample_value("jobs_total") == 3
    assert merged.get_sample_value("jobs_created") == 100.0


def test_gauge_aggregators():
    values = [4, 1, 7]

    def merged(aggregator):
        registry = aggregate([_gauge_snapshot(v, aggregator) for v in values])
        return registry.get_sample_value("pool_size", {"pool": "db"})

    assert merged("sum") == 12
    assert merged("min") == 1
    assert merged("max") == 7
    assert merged("average") == 4
    assert merged("first") == 4
    assert merged("omit") is None


def test_conflicting_family_type_is_skipped():
    counter = [
        {
            "name": "pool_size",
            "help": "Pool size",
            "type": "counter",
            "unit": "",
            "aggregator": "sum",
            "samples": [{"name": "pool_size_total", "labels": {}, "value": 9}],
        }
    ]

    families = merge_snapshots([_gauge_snapshot(2), counter])

    assert len(families) == 1
    assert families[0]["type"] == "gauge"
    assert families[0]["samples"] == [{"name": "pool_size", "labels": {"pool": "db"}, "value": 2.0}]


def test_null_values_become_nan():
    families = merge_snapshots([_gauge_snapshot(None)])
    value = families[0]["samples"][0]["value"]
    assert value != value


def test_family_order_follows_first_appearance():
    snapshots = [_gauge_snapshot(1, name="b_gauge"), _gauge_snapshot(1, name="a_gauge")]
    assert [f["name"] for f in merge_snapshots(snapshots)] == ["b_gauge", "a_gauge"]


def test_single_snapshot_renders_like_the_registry():
    registry = _worker_registry([5, 50], {"/a": 2})
    assert render([registry.snapshot()]) == registry.metrics()


def test_empty_snapshot_list_renders_empty_exposition():
    output = render([])
    assert output == b""
    assert list(text_string_to_metric_families(output.decode())) == []


def test_platform_info_is_not_summed_across_workers():
    snapshots = [MetricRegistry().snapshot() for _ in range(3)]

    merged = {f["name"]: f for f in merge_snapshots(snapshots)}

    assert [s["value"] for s in merged["python_info"]["samples"]] == [1.0]
