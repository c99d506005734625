# tests/test_router.py
"""
Integration tests for CascadeRouter in sequential mode.

Uses in-memory mock endpoints so no real API calls are made. Tests cover:
  - Successful routing and result shape.
  - Fallback on endpoint failure, and fallback disabled.
  - AllProvidersFailed when every endpoint fails.
  - Per-call timeouts.
  - Budget / rate gating before any endpoint is touched.
  - Streaming.
  - Registration, initialisation, status and metrics.
  - on_route callback.
"""

from __future__ import annotations

import asyncio
import time

import pytest

from mocks import MockEndpoint, make_request, make_router

from cascade_router import (
    AllProvidersFailed,
    BudgetExceeded,
    CascadeRouter,
    EndpointFailure,
    NoProvidersAvailable,
    NotInitialized,
    RateLimited,
    RouterConfig,
    RoutingResult,
    Strategy,
)
from cascade_router.config import BudgetLimits, ProgressCheckpoint, RateLimits
from cascade_router.models import EndpointDescriptor


@pytest.mark.asyncio
class TestBasicRouting:
    async def test_successful_route(self):
        router = await make_router([MockEndpoint("a")])
        result = await router.route(make_request())
        assert isinstance(result, RoutingResult)
        assert result.endpoint == "a"
        assert result.response.content == "Response from a"
        assert len(result.attempts) == 1
        assert result.attempts[0].success
        assert result.decision.fallback_triggered is False
        assert result.total_cost == result.response.cost

    async def test_cost_follows_declared_rate(self):
        router = await make_router([MockEndpoint("a", cost=2.0, tokens=(100, 400))])
        result = await router.route(make_request())
        assert result.response.tokens.total == 500
        assert result.response.cost == pytest.approx(500 / 1_000_000 * 2.0)

    async def test_strategy_picks_cheapest(self):
        router = await make_router(
            [MockEndpoint("pricey", cost=30), MockEndpoint("cheap", cost=0.5)],
            strategy=Strategy.COST,
        )
        result = await router.route(make_request())
        assert result.endpoint == "cheap"
        assert result.decision.alternatives == ["pricey"]
        assert "lowest cost" in result.decision.reasoning

    async def test_per_call_strategy_override(self):
        router = await make_router(
            [MockEndpoint("slow", latency_ms=900, cost=0.1), MockEndpoint("quick", latency_ms=50, cost=5)],
            strategy=Strategy.COST,
        )
        result = await router.route(make_request(), strategy="speed")
        assert result.endpoint == "quick"
        assert result.decision.strategy is Strategy.SPEED

    async def test_not_initialized_raises(self):
        router = CascadeRouter(RouterConfig())
        router.register_endpoint(MockEndpoint("a"))
        with pytest.raises(NotInitialized):
            await router.route(make_request())

    async def test_no_endpoints_raises(self):
        router = await make_router([])
        with pytest.raises(NoProvidersAvailable):
            await router.route(make_request())

    async def test_all_disabled_raises(self):
        router = await make_router([MockEndpoint("a", enabled=False)])
        with pytest.raises(NoProvidersAvailable):
            await router.route(make_request())


@pytest.mark.asyncio
class TestFallback:
    async def test_falls_back_to_next_candidate(self):
        failing = MockEndpoint("a", priority=1, fail=True)
        working = MockEndpoint("b", priority=2)
        router = await make_router([failing, working], strategy=Strategy.QUALITY)
        result = await router.route(make_request())
        assert result.endpoint == "b"
        assert result.decision.fallback_triggered is True
        assert [a.success for a in result.attempts] == [False, True]
        assert "a failed" in result.attempts[0].error

    async def test_first_n_minus_one_fail(self):
        endpoints = [
            MockEndpoint("a", priority=1, fail=True),
            MockEndpoint("b", priority=2, fail=True),
            MockEndpoint("c", priority=3, fail=True),
            MockEndpoint("d", priority=4),
        ]
        router = await make_router(endpoints, strategy=Strategy.PRIORITY)
        result = await router.route(make_request())
        assert result.endpoint == "d"
        assert len(result.attempts) == 4
        assert [a.endpoint for a in result.attempts] == ["a", "b", "c", "d"]
        assert all(not a.success for a in result.attempts[:3])
        assert result.decision.fallback_triggered is True
        assert router.get_metrics().fallback_count == 1

    async def test_fallback_disabled_propagates_endpoint_failure(self):
        first = MockEndpoint("a", priority=1, fail=True)
        second = MockEndpoint("b", priority=2)
        router = await make_router([first, second], strategy=Strategy.QUALITY, fallback_enabled=False)
        with pytest.raises(EndpointFailure) as exc_info:
            await router.route(make_request())
        assert exc_info.value.endpoint == "a"
        assert isinstance(exc_info.value.cause, RuntimeError)
        assert second.calls == 0
        metrics = router.get_metrics()
        assert metrics.endpoints["a"].failure_count == 1
        assert metrics.endpoints["b"].request_count == 0

    async def test_all_fail_raises_with_attempts(self):
        endpoints = [MockEndpoint("a", fail=True), MockEndpoint("b", fail=True), MockEndpoint("c", fail=True)]
        router = await make_router(endpoints)
        with pytest.raises(AllProvidersFailed) as exc_info:
            await router.route(make_request())
        assert len(exc_info.value.attempts) == 3
        assert {a.endpoint for a in exc_info.value.attempts} == {"a", "b", "c"}

    async def test_never_attempts_an_endpoint_twice(self):
        endpoints = [MockEndpoint("a", fail=True), MockEndpoint("b", fail=True)]
        router = await make_router(endpoints)
        with pytest.raises(AllProvidersFailed):
            await router.route(make_request())
        assert endpoints[0].calls == 1
        assert endpoints[1].calls == 1

    async def test_timeout_is_a_failed_attempt(self):
        hanging = MockEndpoint("hang", priority=1, delay=5.0, timeout_seconds=0.05)
        backup = MockEndpoint("backup", priority=2)
        router = await make_router([hanging, backup], strategy=Strategy.QUALITY)
        result = await router.route(make_request())
        assert result.endpoint == "backup"
        assert result.attempts[0].error == "request timed out"

    async def test_router_timeout_applies_without_override(self):
        hanging = MockEndpoint("hang", delay=5.0)
        router = await make_router([hanging], timeout_seconds=0.05)
        with pytest.raises(AllProvidersFailed) as exc_info:
            await router.route(make_request())
        assert exc_info.value.attempts[0].error == "request timed out"


@pytest.mark.asyncio
class TestGating:
    async def test_budget_rejection_touches_no_endpoint(self):
        endpoint = MockEndpoint("a")
        router = await make_router([endpoint], budget=BudgetLimits(daily_tokens=10))
        with pytest.raises(BudgetExceeded) as exc_info:
            await router.route(make_request())
        assert exc_info.value.scope == "daily"
        assert endpoint.calls == 0
        metrics = router.get_metrics()
        assert metrics.budget_rejections == 1
        assert metrics.endpoints["a"].request_count == 0

    async def test_rate_limit_rejection(self):
        router = await make_router([MockEndpoint("a")], rate_limits=RateLimits(requests_per_minute=1))
        await router.route(make_request())
        with pytest.raises(RateLimited):
            await router.route(make_request())
        assert router.get_metrics().rate_limit_hits == 1

    async def test_usage_committed_with_actual_tokens(self):
        router = await make_router([MockEndpoint("a", tokens=(10, 20))])
        await router.route(make_request())
        snap = await router.get_usage_snapshot()
        assert snap.daily_tokens == 30
        assert snap.monthly_tokens == 30

    async def test_failed_route_bills_nothing(self):
        router = await make_router([MockEndpoint("a", fail=True)])
        with pytest.raises(AllProvidersFailed):
            await router.route(make_request())
        snap = await router.get_usage_snapshot()
        assert snap.daily_tokens == 0

    async def test_concurrent_request_cap(self):
        endpoint = MockEndpoint("a", delay=0.05)
        router = await make_router([endpoint], rate_limits=RateLimits(concurrent_requests=1))
        in_flight = 0
        peak = 0
        original = endpoint.chat

        async def tracking_chat(request):
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            try:
                return await original(request)
            finally:
                in_flight -= 1

        endpoint.chat = tracking_chat
        await asyncio.gather(*(router.route(make_request()) for _ in range(3)))
        assert peak == 1


@pytest.mark.asyncio
class TestStreaming:
    async def test_chunks_delivered_in_order(self):
        router = await make_router([MockEndpoint("a", chunks=("one", "two", "three"))])
        received: list[str] = []
        result = await router.route_stream(make_request(stream=True), received.append)
        assert received == ["one", "two", "three"]
        assert result.response.content == "onetwothree"

    async def test_async_chunk_callback(self):
        router = await make_router([MockEndpoint("a")])
        received: list[str] = []

        async def on_chunk(chunk: str) -> None:
            received.append(chunk)

        await router.route_stream(make_request(), on_chunk)
        assert "".join(received) == "Hello world"

    async def test_stream_falls_back(self):
        router = await make_router(
            [MockEndpoint("a", priority=1, fail=True), MockEndpoint("b", priority=2)],
            strategy=Strategy.QUALITY,
        )
        result = await router.route_stream(make_request(), lambda chunk: None)
        assert result.endpoint == "b"
        assert result.decision.fallback_triggered is True

    async def test_stream_with_speculative_strategy_is_sequential(self):
        slow = MockEndpoint("slow", latency_ms=300, delay=0.01)
        fast = MockEndpoint("fast", latency_ms=50)
        router = await make_router([slow, fast], strategy=Strategy.SPECULATIVE)
        result = await router.route_stream(make_request(), lambda chunk: None)
        assert result.endpoint == "fast"
        assert slow.calls == 0
        assert router.get_metrics().race is None

    async def test_stream_fallback_disabled(self):
        router = await make_router([MockEndpoint("a", fail=True)], fallback_enabled=False)
        with pytest.raises(EndpointFailure) as exc_info:
            await router.route_stream(make_request(), lambda chunk: None)
        assert exc_info.value.context == "stream"


@pytest.mark.asyncio
class TestRegistrationAndStatus:
    async def test_same_id_replaces(self):
        router = CascadeRouter(RouterConfig())
        router.register_endpoint(MockEndpoint("a", cost=5))
        replacement = MockEndpoint("a", cost=1)
        router.register_endpoint(replacement)
        assert len(router.descriptors) == 1
        assert router.descriptors[0].cost_per_million_tokens == 1
        await router.initialize()
        result = await router.route(make_request())
        assert result.response.cost == pytest.approx(30 / 1_000_000)

    async def test_explicit_descriptor_overrides_adapter(self):
        router = CascadeRouter(RouterConfig(strategy=Strategy.COST))
        router.register_endpoint(MockEndpoint("a", cost=50))
        router.register_endpoint(
            MockEndpoint("b", cost=1), EndpointDescriptor(id="b", cost_per_million_tokens=100)
        )
        await router.initialize()
        result = await router.route(make_request())
        assert result.endpoint == "a"

    async def test_explicit_descriptor_timeout_applies(self):
        router = CascadeRouter(RouterConfig(timeout_seconds=5))
        router.register_endpoint(
            MockEndpoint("slow", delay=0.3), EndpointDescriptor(id="slow", timeout_seconds=0.05)
        )
        await router.initialize()
        t0 = time.monotonic()
        with pytest.raises(AllProvidersFailed) as exc_info:
            await router.route(make_request())
        assert time.monotonic() - t0 < 0.25
        assert exc_info.value.attempts[0].error == "request timed out"

    async def test_explicit_descriptor_sets_billing_rate(self):
        router = CascadeRouter(RouterConfig())
        router.register_endpoint(
            MockEndpoint("b", cost=1), EndpointDescriptor(id="b", cost_per_million_tokens=100)
        )
        await router.initialize()
        result = await router.route(make_request())
        assert result.response.cost == pytest.approx(30 / 1_000_000 * 100)
        assert result.total_cost == pytest.approx(result.response.cost)
        assert router.get_metrics().total_cost == pytest.approx(result.response.cost)

    async def test_descriptor_id_must_match_endpoint(self):
        router = CascadeRouter(RouterConfig())
        with pytest.raises(ValueError, match="does not match"):
            router.register_endpoint(MockEndpoint("a"), EndpointDescriptor(id="other"))
        assert router.descriptors == []

    async def test_initialize_tolerates_unavailable(self, caplog):
        router = await make_router([MockEndpoint("a", available=False), MockEndpoint("b")])
        assert router.initialized
        assert any("'a' is not available" in r.getMessage() for r in caplog.records)

    async def test_status_reprobes(self):
        a = MockEndpoint("a")
        router = await make_router([a, MockEndpoint("b")])
        a.available = False
        status = await router.get_status()
        assert status.healthy is True
        assert status.available_endpoints == ["b"]
        assert status.unavailable_endpoints == ["a"]

    async def test_status_unhealthy_when_none_available(self):
        router = await make_router([MockEndpoint("a", available=False)])
        status = await router.get_status()
        assert status.healthy is False

    async def test_context_manager_initializes_and_closes(self):
        endpoint = MockEndpoint("a")
        router = CascadeRouter(RouterConfig())
        router.register_endpoint(endpoint)
        async with router:
            assert router.initialized
            await router.route(make_request())
        assert endpoint.closed


@pytest.mark.asyncio
class TestMetrics:
    async def test_metrics_after_one_success(self):
        router = await make_router([MockEndpoint("a", cost=1.0, tokens=(10, 20))])
        await router.route(make_request())
        metrics = router.get_metrics()
        assert metrics.total_requests == 1
        assert metrics.total_tokens == 30
        assert metrics.total_cost == pytest.approx(30 / 1_000_000)
        assert metrics.endpoints["a"].success_count == 1

    async def test_get_metrics_returns_copy(self):
        router = await make_router([MockEndpoint("a")])
        await router.route(make_request())
        snapshot = router.get_metrics()
        snapshot.total_requests = 42
        assert router.get_metrics().total_requests == 1

    async def test_reset_metrics(self):
        router = await make_router([MockEndpoint("a"), MockEndpoint("b")])
        await router.route(make_request())
        router.reset_metrics()
        metrics = router.get_metrics()
        assert metrics.total_requests == 0
        assert metrics.total_tokens == 0
        assert metrics.total_cost == 0.0
        assert metrics.endpoints == {}


@pytest.mark.asyncio
class TestCallbacks:
    async def test_on_route_async_callback(self):
        events = []

        async def on_route(event):
            events.append(event)

        router = await make_router([MockEndpoint("a")], on_route=on_route)
        await router.route(make_request())
        assert len(events) == 1
        assert events[0].endpoint == "a"
        assert events[0].output_tokens == 20
        assert events[0].attempt_count == 1

    async def test_on_route_sync_callback(self):
        events = []
        router = await make_router([MockEndpoint("a")], on_route=events.append)
        await router.route(make_request())
        assert len(events) == 1

    async def test_callback_errors_do_not_affect_routing(self):
        def broken(event):
            raise ValueError("boom")

        router = await make_router([MockEndpoint("a")], on_route=broken)
        result = await router.route(make_request())
        assert result.endpoint == "a"

    async def test_progress_checkpoints_receive_complete(self):
        updates = []
        router = await make_router(
            [MockEndpoint("a")],
            checkpoints=[ProgressCheckpoint(time_interval_seconds=1.0, callback=updates.append)],
        )
        await router.route(make_request())
        assert updates[-1].status == "complete"
        assert updates[-1].tokens_used == 30
