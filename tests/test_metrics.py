# tests/test_metrics.py
"""
Unit tests for MetricsAggregator.
"""

from __future__ import annotations

import pytest

from cascade_router.engine.metrics import MetricsAggregator
from cascade_router.models import ChatResponse, TokenUsage


def _response(endpoint: str = "a", input_tokens: int = 10, output_tokens: int = 20, cost_per_million: float = 1.0):
    tokens = TokenUsage.of(input_tokens, output_tokens)
    return ChatResponse(
        content="ok",
        model="m",
        endpoint=endpoint,
        tokens=tokens,
        cost=tokens.total / 1_000_000 * cost_per_million,
        duration_ms=5.0,
    )


class TestSuccessAndFailure:
    def test_global_totals_after_one_success(self):
        metrics = MetricsAggregator()
        metrics.record_success("a", _response(), 100.0)
        snap = metrics.snapshot()
        assert snap.total_requests == 1
        assert snap.total_tokens == 30
        assert snap.total_cost == pytest.approx(30 / 1_000_000)

    def test_running_average_latency(self):
        metrics = MetricsAggregator()
        for latency in (100.0, 200.0, 300.0):
            metrics.record_success("a", _response(), latency)
        entry = metrics.snapshot().endpoints["a"]
        assert entry.avg_latency_ms == pytest.approx(200.0)
        assert entry.success_count == 3
        assert entry.last_used > 0

    def test_failure_counts_only(self):
        metrics = MetricsAggregator()
        metrics.record_failure("a")
        entry = metrics.snapshot().endpoints["a"]
        assert entry.request_count == 1
        assert entry.failure_count == 1
        assert entry.total_cost == 0.0
        assert entry.avg_latency_ms == 0.0
        assert metrics.snapshot().total_requests == 0

    def test_failures_do_not_skew_latency(self):
        metrics = MetricsAggregator()
        metrics.record_failure("a")
        metrics.record_success("a", _response(), 100.0)
        assert metrics.snapshot().endpoints["a"].avg_latency_ms == pytest.approx(100.0)

    def test_counters(self):
        metrics = MetricsAggregator()
        metrics.record_fallback()
        metrics.record_rate_limit_hit()
        metrics.record_budget_rejection()
        metrics.record_budget_rejection()
        snap = metrics.snapshot()
        assert snap.fallback_count == 1
        assert snap.rate_limit_hits == 1
        assert snap.budget_rejections == 2


class TestRaceMetrics:
    def test_no_race_block_until_first_race(self):
        assert MetricsAggregator().snapshot().race is None

    def test_running_averages(self):
        metrics = MetricsAggregator()
        metrics.record_race(2, time_saved_ms=50.0, additional_cost=0.002, beat_sequential=True)
        metrics.record_race(3, time_saved_ms=150.0, additional_cost=0.004)
        race = metrics.snapshot().race
        assert race.total_races == 2
        assert race.total_additional_cost == pytest.approx(0.006)
        assert race.avg_time_saved_ms == pytest.approx(100.0)
        assert race.avg_cost_increase == pytest.approx(0.003)
        assert race.avg_candidates_raced == pytest.approx(2.5)
        assert race.races_faster_than_sequential == 1


class TestSnapshotAndReset:
    def test_snapshot_is_a_copy(self):
        metrics = MetricsAggregator()
        metrics.record_success("a", _response(), 10.0)
        snap = metrics.snapshot()
        snap.endpoints["a"].request_count = 999
        snap.total_requests = 999
        fresh = metrics.snapshot()
        assert fresh.endpoints["a"].request_count == 1
        assert fresh.total_requests == 1

    def test_reset_zeroes_everything(self):
        metrics = MetricsAggregator()
        metrics.record_success("a", _response(), 10.0)
        metrics.record_race(2, 5.0, 0.1)
        metrics.reset()
        snap = metrics.snapshot()
        assert snap.total_requests == 0
        assert snap.total_tokens == 0
        assert snap.total_cost == 0.0
        assert snap.endpoints == {}
        assert snap.race is None

    def test_reset_can_reseed_endpoints(self):
        metrics = MetricsAggregator()
        metrics.reset(["a", "b"])
        assert set(metrics.snapshot().endpoints) == {"a", "b"}
