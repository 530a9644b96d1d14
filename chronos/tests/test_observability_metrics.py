import math

import pytest

from chronos.observability.metrics import (
    LatencyRingBuffer,
    MetricsAggregator,
    RequestRateWindow,
    percentile,
)


def test_fresh_snapshot_has_empty_latency_and_zero_counters():
    snap = MetricsAggregator().get_snapshot()

    assert snap.total_requests == 0
    assert snap.in_flight == 0
    assert snap.last_request_at is None
    assert snap.rps_1m == 0
    assert snap.latency.samples == 0
    assert snap.latency.avg_ms is None
    assert snap.latency.min_ms is None
    assert snap.latency.max_ms is None
    assert snap.latency.p50_ms is None
    assert snap.latency.p95_ms is None


def test_two_samples_min_max_avg():
    m = MetricsAggregator(latency_samples=10)
    m.on_request_finish(10, now=1)
    m.on_request_finish(30, now=2)

    lat = m.get_snapshot().latency
    assert lat.samples == 2
    assert lat.min_ms == 10
    assert lat.max_ms == 30
    assert lat.avg_ms == 20


def test_capacity_one_keeps_only_latest_sample():
    m = MetricsAggregator(latency_samples=1)
    m.on_request_finish(10, now=1)
    m.on_request_finish(20, now=2)

    lat = m.get_snapshot().latency
    assert lat.samples == 1
    assert lat.min_ms == lat.max_ms == 20


def test_overflow_retains_most_recent_samples():
    m = MetricsAggregator(latency_samples=3)
    for d in [1, 2, 3, 4, 5, 6, 7]:
        m.on_request_finish(d, now=d)

    assert sorted(m.latency_values()) == [5, 6, 7]
    assert m.get_snapshot().latency.samples == 3
    assert m.get_snapshot().total_requests == 7


@pytest.mark.parametrize("bad", [math.nan, -1, math.inf, -math.inf])
def test_invalid_durations_count_but_are_not_sampled(bad):
    m = MetricsAggregator()
    m.on_request_finish(12, now=1)
    m.on_request_finish(bad, now=2)

    snap = m.get_snapshot()
    assert snap.total_requests == 2
    assert snap.latency.samples == 1
    assert snap.latency.min_ms == snap.latency.max_ms == snap.latency.avg_ms == 12


def test_in_flight_never_goes_negative():
    m = MetricsAggregator()
    m.on_request_finish(5, now=1)
    assert m.get_snapshot().in_flight == 0

    m.on_request_start(now=2)
    m.on_request_start(now=3)
    assert m.get_snapshot().in_flight == 2
    assert m.get_snapshot().last_request_at == 3

    m.on_request_finish(5, now=4)
    assert m.get_snapshot().in_flight == 1


def test_percentiles_use_floor_of_scaled_rank():
    m = MetricsAggregator(latency_samples=500)
    for d in range(100, 0, -1):
        m.on_request_finish(float(d), now=1)

    lat = m.get_snapshot().latency
    # sorted 1..100: p50 index floor(49.5) = 49, p95 index floor(94.05) = 94
    assert lat.p50_ms == 50
    assert lat.p95_ms == 95


def test_percentile_clamps_rank():
    values = [1.0, 2.0, 3.0]
    assert percentile(values, -5) == 1.0
    assert percentile(values, 99) == 3.0
    assert percentile([], 0) is None


def test_configure_latency_samples_resets_buffer():
    m = MetricsAggregator(latency_samples=10)
    m.on_request_finish(10, now=1)
    m.configure_latency_samples(4.9)

    assert m.latency_capacity == 4
    assert m.get_snapshot().latency.samples == 0
    assert m.get_snapshot().total_requests == 1


@pytest.mark.parametrize("bad", [0, -3, math.nan, math.inf, 0.5, "10", None])
def test_configure_latency_samples_ignores_invalid_capacity(bad):
    m = MetricsAggregator(latency_samples=7)
    m.on_request_finish(10, now=1)
    m.configure_latency_samples(bad)

    assert m.latency_capacity == 7
    assert m.get_snapshot().latency.samples == 1


def test_invalid_initial_capacity_keeps_default():
    assert MetricsAggregator(latency_samples=0).latency_capacity == 500


def test_rps_counts_trailing_minute():
    now = {"t": 0.0}
    m = MetricsAggregator(clock=lambda: now["t"])
    m.on_request_finish(1, now=1_000)
    m.on_request_finish(1, now=2_000)
    m.on_request_finish(1, now=61_500)

    now["t"] = 62_000
    assert m.get_snapshot().rps_1m == pytest.approx(2 / 60)

    now["t"] = 200_000
    assert m.get_snapshot().rps_1m == 0


def test_rate_window_prunes_front_on_insert():
    window = RequestRateWindow(window_ms=60_000)
    window.add(0)
    window.add(30_000)
    window.add(70_000)

    assert len(window) == 2
    assert window.count_since(30_000) == 2
    assert window.count_since(30_001) == 1


def test_ring_buffer_rejects_invalid_samples():
    buf = LatencyRingBuffer(2)
    assert buf.add(1.5) is True
    assert buf.add(math.nan) is False
    assert buf.add(-0.1) is False
    assert buf.values() == [1.5]


def test_ring_buffer_cursor_wraps():
    buf = LatencyRingBuffer(2)
    for v in [1, 2, 3, 4, 5]:
        buf.add(v)
    assert sorted(buf.values()) == [4, 5]


def test_snapshot_to_dict_uses_wire_keys():
    m = MetricsAggregator(clock=lambda: 5.0)
    m.on_request_start(now=1)
    m.on_request_finish(3, now=2)

    snap = m.get_snapshot().to_dict()
    assert snap["now"] == 5.0
    assert snap["totalRequests"] == 1
    assert snap["inFlight"] == 0
    assert snap["lastRequestAt"] == 1
    assert set(snap["latency"]) == {"samples", "avgMs", "minMs", "maxMs", "p50Ms", "p95Ms"}


@pytest.mark.parametrize("flag", [True, False])
def test_boolean_durations_are_not_sampled(flag):
    m = MetricsAggregator()
    m.on_request_finish(flag, now=1)

    snap = m.get_snapshot()
    assert snap.total_requests == 1
    assert snap.latency.samples == 0
    assert LatencyRingBuffer(2).add(flag) is False
