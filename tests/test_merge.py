import pytest

from metrics_collector.errors import (
    InvalidCounterValue,
    InvalidGaugeValue,
    InvalidMetricName,
    InvalidMetricType,
)
from metrics_collector.metrics import Metric, format_value, merge, merge_batch, parse_metric
from metrics_collector.metrics.base import INT64_MAX


@pytest.mark.parametrize("first", [0.0, -12.5, 1e300, 123.45])
def test_gauge_last_write_wins(first):
    stored = merge(None, Metric.gauge("Alloc", first))
    stored = merge(stored, Metric.gauge("Alloc", 7.25))
    assert stored == Metric.gauge("Alloc", 7.25)


def test_counter_accumulates():
    stored = merge(None, Metric.counter("PollCount", 3))
    stored = merge(stored, Metric.counter("PollCount", 4))
    assert stored.delta == 7


def test_counter_is_not_idempotent():
    update = Metric.counter("hits", 5)
    stored = merge(merge(None, update), update)
    assert stored.delta == 10


def test_batch_sees_earlier_records():
    current = {"hits": Metric.counter("hits", 1)}
    merge_batch(
        current,
        [
            Metric.counter("hits", 2),
            Metric.gauge("Alloc", 1.0),
            Metric.counter("hits", 3),
            Metric.gauge("Alloc", 2.0),
        ],
    )
    assert current == {"hits": Metric.counter("hits", 6), "Alloc": Metric.gauge("Alloc", 2.0)}


def test_batch_failure_keeps_earlier_records():
    current = {}
    with pytest.raises(InvalidMetricType):
        merge_batch(current, [Metric.counter("a", 1), Metric("b", "meter", value=1.0)])
    assert current == {"a": Metric.counter("a", 1)}


def test_counter_replaces_gauge_with_same_id():
    stored = merge(Metric.gauge("x", 1.5), Metric.counter("x", 2))
    assert stored == Metric.counter("x", 2)


def test_counter_overflow_rejected():
    with pytest.raises(InvalidCounterValue):
        merge(Metric.counter("c", INT64_MAX), Metric.counter("c", 1))


def test_unknown_kind_rejected():
    with pytest.raises(InvalidMetricType):
        merge(None, Metric(id="x", kind="histogram", value=1.0))


@pytest.mark.parametrize(
    "metric, error",
    [
        (Metric(id="g", kind="gauge"), InvalidGaugeValue),
        (Metric(id="g", kind="gauge", value=1.0, delta=1), InvalidGaugeValue),
        (Metric(id="g", kind="gauge", value=float("nan")), InvalidGaugeValue),
        (Metric(id="c", kind="counter"), InvalidCounterValue),
        (Metric(id="c", kind="counter", delta=1, value=2.0), InvalidCounterValue),
        (Metric(id="c", kind="counter", delta=2**63), InvalidCounterValue),
        (Metric(id="c", kind="counter", delta=1.5), InvalidCounterValue),
        (Metric(id="c", kind="counter", delta=True), InvalidCounterValue),
        (Metric(id="g", kind="gauge", value="1.5"), InvalidGaugeValue),
        (Metric(id="", kind="counter", delta=1), InvalidMetricName),
    ],
)
def test_malformed_records_rejected(metric, error):
    with pytest.raises(error):
        merge(None, metric)


def test_parse_metric_from_path():
    assert parse_metric("gauge", "Alloc", "123.45") == Metric.gauge("Alloc", 123.45)
    assert parse_metric("counter", "PollCount", "-3") == Metric.counter("PollCount", -3)


@pytest.mark.parametrize(
    "kind, raw, error",
    [
        ("gauge", "abc", InvalidGaugeValue),
        ("gauge", "inf", InvalidGaugeValue),
        ("gauge", "1_0", InvalidGaugeValue),
        ("counter", "1.5", InvalidCounterValue),
        ("counter", "", InvalidCounterValue),
        ("counter", str(2**63), InvalidCounterValue),
        ("summary", "1", InvalidMetricType),
    ],
)
def test_parse_metric_rejects_bad_input(kind, raw, error):
    with pytest.raises(error):
        parse_metric(kind, "name", raw)


@pytest.mark.parametrize(
    "metric, text",
    [
        (Metric.gauge("g", 123.45), "123.45"),
        (Metric.gauge("g", 3.0), "3"),
        (Metric.gauge("g", 100.0), "100"),
        (Metric.gauge("g", 1e20), "100000000000000000000"),
        (Metric.gauge("g", 0.000125), "0.000125"),
        (Metric.counter("c", 42), "42"),
    ],
)
def test_format_value(metric, text):
    assert format_value(metric) == text


def test_wire_shape_omits_absent_fields():
    assert Metric.gauge("g", 1.5).to_dict() == {"id": "g", "type": "gauge", "value": 1.5}
    assert Metric.from_dict({"id": "c", "type": "counter", "delta": 2}) == Metric.counter("c", 2)
