"""Tests for the metrics registry."""

from __future__ import annotations

import threading

from toolgate.metrics import Histogram, Metrics


class TestCounters:
    def test_increment(self, metrics: Metrics) -> None:
        metrics.increment("ws_connections_total")
        metrics.increment("ws_connections_total", 2)
        assert metrics.counter("ws_connections_total") == 3

    def test_unknown_counter_is_zero(self, metrics: Metrics) -> None:
        assert metrics.counter("nothing_total") == 0

    def test_thread_safety(self, metrics: Metrics) -> None:
        def bump() -> None:
            for _ in range(1000):
                metrics.increment("hits_total")

        threads = [threading.Thread(target=bump) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert metrics.counter("hits_total") == 8000


class TestHistograms:
    def test_observe(self, metrics: Metrics) -> None:
        metrics.observe("anthropic_stream_duration_ms", 10)
        metrics.observe("anthropic_stream_duration_ms", 5.5)
        assert metrics.histogram("anthropic_stream_duration_ms") == Histogram(count=2, sum=15.5)

    def test_histogram_returns_copy(self, metrics: Metrics) -> None:
        metrics.observe("d_ms", 1)
        snapshot = metrics.histogram("d_ms")
        snapshot.count = 99
        assert metrics.histogram("d_ms").count == 1

    def test_timer(self, metrics: Metrics) -> None:
        stop = metrics.timer()
        elapsed = stop()
        assert elapsed >= 0


class TestRender:
    def test_prometheus_text(self, metrics: Metrics) -> None:
        metrics.increment("ws_connections_total")
        metrics.observe("anthropic_stream_duration_ms", 12.25)

        text = metrics.render()

        assert text.splitlines() == [
            "# TYPE ws_connections_total counter",
            "ws_connections_total 1",
            "# TYPE anthropic_stream_duration_ms summary",
            "anthropic_stream_duration_ms_count 1",
            "anthropic_stream_duration_ms_sum 12.250",
        ]
        assert text.endswith("\n")

    def test_reset(self, metrics: Metrics) -> None:
        metrics.increment("a_total")
        metrics.observe("b_ms", 1)
        metrics.reset()
        assert metrics.render() == "\n"
