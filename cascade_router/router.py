# cascade_router/router.py
"""
CascadeRouter — the primary class the developer interacts with.

Orchestrates one logical request:
  1. Gate the request against the budget and rate limits (atomic reservation).
  2. Order the enabled endpoints for the active strategy.
  3. Either try candidates one at a time with fallback, or race the top N
     concurrently (strategy="speculative").
  4. Commit actual usage, update metrics, fire the on_route callback.
  5. Return a RoutingResult to the caller.
"""

from __future__ import annotations

import asyncio
import contextlib
import inspect
import logging
import time
from collections.abc import Awaitable
from typing import Any

from .config import RouterConfig
from .constants import SEQUENTIAL_TIME_FACTOR, TOKENS_PER_MILLION
from .engine.metrics import MetricsAggregator
from .engine.monitor import ProgressMonitor
from .engine.race import race_first_success
from .engine.selector import CandidateSelector
from .exceptions import (
    AllProvidersFailed,
    BudgetExceeded,
    EndpointFailure,
    NotInitialized,
    RateLimited,
    describe_error,
)
from .models import (
    ChatRequest,
    ChatResponse,
    EndpointDescriptor,
    RouteEvent,
    RouterMetrics,
    RouterStatus,
    RoutingAttempt,
    RoutingDecision,
    RoutingResult,
    Strategy,
    UsageSnapshot,
)
from .providers.base import BaseEndpoint, ChunkCallback
from .providers.factory import create_endpoints
from .state.limiter import Reservation, UsageLimiter

logger = logging.getLogger(__name__)


class CascadeRouter:
    """
    Cost-, speed- and quality-aware LLM router with fallback and racing.

    Parameters
    ----------
    config:
        Full router configuration. Use one of the factory class methods
        (from_dict, from_yaml, from_env) for convenient construction.
    """

    def __init__(self, config: RouterConfig) -> None:
        self._config = config
        self._endpoints: dict[str, BaseEndpoint] = {}
        self._descriptors: dict[str, EndpointDescriptor] = {}
        self._selector = CandidateSelector()
        self._limiter = UsageLimiter(
            budget=config.budget,
            rate_limits=config.rate_limits,
            estimate_cost_per_million=config.estimate_cost_per_million,
        )
        self._metrics = MetricsAggregator()
        self._monitor = ProgressMonitor(config.checkpoints)
        concurrent = config.rate_limits.concurrent_requests if config.rate_limits else 0
        self._slots = asyncio.Semaphore(concurrent) if concurrent else None
        self._initialized = False
        self._init_lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Factory methods
    # ------------------------------------------------------------------

    @classmethod
    def from_dict(cls, data: dict[str, Any], **kwargs: Any) -> "CascadeRouter":
        """Construct from a plain Python dictionary."""
        return cls(RouterConfig.from_dict(data, **kwargs))

    @classmethod
    def from_yaml(cls, path: str, **kwargs: Any) -> "CascadeRouter":
        """Construct from a YAML config file."""
        return cls(RouterConfig.from_yaml(path, **kwargs))

    @classmethod
    def from_env(cls, **kwargs: Any) -> "CascadeRouter":
        """Construct from environment variables."""
        return cls(RouterConfig.from_env(**kwargs))

    # ------------------------------------------------------------------
    # Registration & initialisation
    # ------------------------------------------------------------------

    @property
    def config(self) -> RouterConfig:
        return self._config

    @property
    def initialized(self) -> bool:
        return self._initialized

    @property
    def descriptors(self) -> list[EndpointDescriptor]:
        """Descriptors of every registered endpoint, in registration order."""
        return list(self._descriptors.values())

    def register_endpoint(
        self,
        endpoint: BaseEndpoint,
        descriptor: EndpointDescriptor | None = None,
    ) -> None:
        """
        Add or replace one routable endpoint.

        Parameters
        ----------
        endpoint:
            Any BaseEndpoint implementation, built-in or custom.
        descriptor:
            Routing attributes to use instead of ``endpoint.descriptor``.
            Its id must match ``endpoint.id``. Its timeout and cost rate
            apply to every call routed to this endpoint. Registering a second
            descriptor with the same id replaces the first.
        """
        descriptor = descriptor or endpoint.descriptor
        if descriptor.id != endpoint.id:
            raise ValueError(
                f"Descriptor id '{descriptor.id}' does not match endpoint id '{endpoint.id}'"
            )
        if descriptor.id in self._descriptors:
            logger.debug("Replacing endpoint '%s'", descriptor.id)
        self._endpoints[descriptor.id] = endpoint
        self._descriptors[descriptor.id] = descriptor
        self._metrics.ensure_endpoint(descriptor.id)

    async def initialize(self) -> None:
        """
        Build adapters for configured endpoints and probe every endpoint.

        Endpoints registered manually before this call keep precedence over
        config entries with the same id. Unavailable endpoints are logged,
        not removed.
        """
        if self._initialized:
            return
        async with self._init_lock:
            if self._initialized:
                return

            if self._config.endpoints:
                for problem in self._config.validate_endpoints():
                    logger.warning("Config: %s", problem)

            configs = []
            for endpoint_config in self._config.endpoints:
                if endpoint_config.id in self._endpoints:
                    logger.debug(
                        "Endpoint '%s' already registered; config entry ignored", endpoint_config.id
                    )
                else:
                    configs.append(endpoint_config)
            for endpoint in create_endpoints(configs):
                self.register_endpoint(endpoint)

            if not self._endpoints:
                logger.warning("No endpoints registered; route() will fail until one is added")

            available = await self._probe_all()
            for endpoint_id, ok in available.items():
                if not ok:
                    logger.warning("Endpoint '%s' is not available", endpoint_id)
            logger.info(
                "Router initialised with %d endpoint(s), %d available",
                len(available),
                sum(available.values()),
            )
            self._initialized = True

    async def _probe(self, endpoint: BaseEndpoint) -> bool:
        try:
            return await endpoint.is_available()
        except Exception as exc:
            logger.warning("Availability probe for '%s' raised: %s", endpoint.id, describe_error(exc))
            return False

    async def _probe_all(self) -> dict[str, bool]:
        ids = list(self._endpoints)
        results = await asyncio.gather(*(self._probe(self._endpoints[i]) for i in ids))
        return dict(zip(ids, results))

    # ------------------------------------------------------------------
    # Public interface
    # ------------------------------------------------------------------

    async def route(
        self,
        request: ChatRequest,
        strategy: Strategy | str | None = None,
    ) -> RoutingResult:
        """
        Route a chat request to the best endpoint for the active strategy.

        Parameters
        ----------
        request:
            The chat request.
        strategy:
            Overrides ``config.strategy`` for this call only.

        Raises
        ------
        NotInitialized
            If initialize() has not completed.
        BudgetExceeded, RateLimited
            Before any endpoint is called.
        NoProvidersAvailable
            If no endpoint is enabled.
        EndpointFailure
            On the first failure when fallback is disabled (sequential mode).
        AllProvidersFailed
            When every candidate failed, or a race timed out.
        """
        self._require_initialized()
        active = Strategy(strategy or self._config.strategy)
        async with self._slots or contextlib.nullcontext():
            reservation = await self._gate(request)
            try:
                if active is Strategy.SPECULATIVE:
                    result = await self._route_race(request)
                else:
                    result = await self._route_sequential(request, active)
            except BaseException:
                await self._limiter.release(reservation)
                raise
            await self._settle(reservation, result)
        return result

    async def route_stream(
        self,
        request: ChatRequest,
        on_chunk: ChunkCallback,
        strategy: Strategy | str | None = None,
    ) -> RoutingResult:
        """
        Streaming variant of route(). Always sequential.

        *on_chunk* receives each text chunk as it arrives. When the active
        strategy is speculative, candidates are tried one at a time in the
        race ordering instead of being raced. Chunks already delivered by a
        failing endpoint are not retracted before the next one starts.
        """
        self._require_initialized()
        active = Strategy(strategy or self._config.strategy)
        order = active
        if active is Strategy.SPECULATIVE:
            order = self._config.speculative.candidate_strategy
            logger.debug("Streaming does not race; trying candidates in %s order", order.value)
        async with self._slots or contextlib.nullcontext():
            reservation = await self._gate(request)
            try:
                result = await self._route_sequential(request, order, on_chunk=on_chunk)
            except BaseException:
                await self._limiter.release(reservation)
                raise
            await self._settle(reservation, result)
        return result

    def get_metrics(self) -> RouterMetrics:
        """Return a copy of the accumulated metrics."""
        return self._metrics.snapshot()

    def reset_metrics(self) -> None:
        """Zero every counter and empty the per-endpoint map."""
        self._metrics.reset()
        self._monitor.reset()

    async def get_usage_snapshot(self) -> UsageSnapshot:
        return await self._limiter.get_usage_snapshot()

    async def get_status(self) -> RouterStatus:
        """Re-probe every endpoint and report availability plus budget usage."""
        await self.initialize()
        probed = await self._probe_all()
        return RouterStatus(
            healthy=any(probed.values()),
            available_endpoints=[i for i, ok in probed.items() if ok],
            unavailable_endpoints=[i for i, ok in probed.items() if not ok],
            budget=await self._limiter.get_usage_snapshot(),
        )

    async def close(self) -> None:
        """Release all resources held by registered endpoints."""
        for endpoint in self._endpoints.values():
            await endpoint.close()

    async def __aenter__(self) -> "CascadeRouter":
        await self.initialize()
        return self

    async def __aexit__(self, *_: Any) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Core routing logic
    # ------------------------------------------------------------------

    def _require_initialized(self) -> None:
        if not self._initialized:
            raise NotInitialized("Router not initialized. Call await router.initialize() first.")

    async def _gate(self, request: ChatRequest) -> Reservation:
        try:
            return await self._limiter.acquire(request)
        except BudgetExceeded as exc:
            self._metrics.record_budget_rejection()
            logger.warning("Request rejected: %s", exc)
            raise
        except RateLimited as exc:
            self._metrics.record_rate_limit_hit()
            logger.warning("Request rejected: %s", exc)
            raise

    async def _settle(self, reservation: Reservation, result: RoutingResult) -> None:
        response = result.response
        await self._limiter.commit(reservation, response.tokens.total, response.cost)
        await self._fire_on_route(result)

    async def _call(
        self,
        endpoint: BaseEndpoint,
        request: ChatRequest,
        on_chunk: ChunkCallback | None = None,
        *,
        count_result: bool = True,
    ) -> ChatResponse:
        """One endpoint call bounded by the registered (or the router's) timeout."""
        descriptor = self._descriptors[endpoint.id]
        timeout = descriptor.timeout_seconds or self._config.timeout_seconds
        if on_chunk is None:
            call = endpoint.chat(request)
        else:
            if self._monitor.enabled:
                on_chunk = self._counting(endpoint, on_chunk)
            call = endpoint.chat_stream(request, on_chunk)
            count_result = False
        return await self._monitor.track(
            endpoint.id,
            self._priced(endpoint, descriptor, asyncio.wait_for(call, timeout)),
            count_result=count_result,
        )

    @staticmethod
    async def _priced(
        endpoint: BaseEndpoint,
        descriptor: EndpointDescriptor,
        call: Awaitable[ChatResponse],
    ) -> ChatResponse:
        """Await *call* and bill the response at the registered descriptor's rate."""
        response = await call
        if descriptor is endpoint.descriptor:
            return response
        cost = response.tokens.total / TOKENS_PER_MILLION * descriptor.cost_per_million_tokens
        return response.model_copy(update={"cost": cost})

    def _counting(self, endpoint: BaseEndpoint, on_chunk: ChunkCallback) -> ChunkCallback:
        """Wrap *on_chunk* so streamed text also feeds the progress monitor."""

        def counted(text: str) -> Any:
            self._monitor.add_tokens(endpoint.estimate_tokens(text))
            return on_chunk(text)

        return counted

    async def _route_sequential(
        self,
        request: ChatRequest,
        strategy: Strategy,
        on_chunk: ChunkCallback | None = None,
    ) -> RoutingResult:
        started = time.monotonic()
        candidates = self._selector.select(self._descriptors.values(), strategy)
        logger.debug("Sequential %s order: %s", strategy.value, candidates)
        attempts: list[RoutingAttempt] = []

        for index, endpoint_id in enumerate(candidates):
            endpoint = self._endpoints[endpoint_id]
            t0 = time.monotonic()
            try:
                response = await self._call(endpoint, request, on_chunk)
            except Exception as exc:
                duration_ms = (time.monotonic() - t0) * 1000
                attempts.append(
                    RoutingAttempt(
                        endpoint=endpoint_id,
                        success=False,
                        duration_ms=duration_ms,
                        error=describe_error(exc),
                    )
                )
                self._metrics.record_failure(endpoint_id)
                logger.warning("Endpoint '%s' failed: %s", endpoint_id, describe_error(exc))
                if not self._config.fallback_enabled:
                    raise EndpointFailure(
                        endpoint_id, "stream" if on_chunk else "chat", exc
                    ) from exc
                if index + 1 < len(candidates):
                    logger.info("Falling back to '%s'", candidates[index + 1])
                continue

            duration_ms = (time.monotonic() - t0) * 1000
            attempts.append(
                RoutingAttempt(endpoint=endpoint_id, success=True, duration_ms=duration_ms)
            )
            fallback_triggered = len(attempts) > 1
            self._metrics.record_success(endpoint_id, response, duration_ms)
            if fallback_triggered:
                self._metrics.record_fallback()

            decision = RoutingDecision(
                selected_endpoint=endpoint_id,
                strategy=strategy,
                reasoning=self._selector.explain(self._descriptors[endpoint_id], strategy),
                alternatives=[c for c in candidates if c != endpoint_id],
                fallback_triggered=fallback_triggered,
            )
            return RoutingResult(
                endpoint=endpoint_id,
                response=response,
                decision=decision,
                attempts=attempts,
                total_cost=response.cost,
                total_duration_ms=(time.monotonic() - started) * 1000,
            )

        raise AllProvidersFailed(f"All {len(attempts)} endpoint(s) failed.", attempts=attempts)

    async def _route_race(self, request: ChatRequest) -> RoutingResult:
        started = time.monotonic()
        speculative = self._config.speculative
        sub_strategy = speculative.candidate_strategy
        candidates = self._selector.select(
            self._descriptors.values(),
            Strategy.SPECULATIVE,
            candidate_count=speculative.candidate_count,
            sub_strategy=sub_strategy,
        )
        candidates = self._selector.limit_by_cost(
            candidates, self._descriptors, speculative.max_cost_multiplier
        )

        async def run(endpoint_id: str) -> ChatResponse:
            return await self._call(self._endpoints[endpoint_id], request, count_result=False)

        try:
            outcome = await race_first_success(
                candidates, run, timeout=self._config.timeout_seconds
            )
        except AllProvidersFailed as exc:
            for attempt in exc.attempts:
                self._metrics.record_failure(attempt.endpoint)
            raise

        for attempt in outcome.failed:
            self._metrics.record_failure(attempt.endpoint)

        response = outcome.result
        duration_ms = outcome.attempts[-1].duration_ms
        self._metrics.record_success(outcome.winner, response, duration_ms)
        self._monitor.add_tokens(response.tokens.total, response.cost)

        time_saved_ms = duration_ms * SEQUENTIAL_TIME_FACTOR - duration_ms
        additional_cost = (
            response.cost * (outcome.raced - 1) if speculative.enable_cost_tracking else 0.0
        )
        self._metrics.record_race(
            outcome.raced,
            time_saved_ms,
            additional_cost,
            beat_sequential=outcome.winner != candidates[0],
        )

        fallback_triggered = bool(outcome.failed)
        if fallback_triggered:
            self._metrics.record_fallback()

        decision = RoutingDecision(
            selected_endpoint=outcome.winner,
            strategy=Strategy.SPECULATIVE,
            reasoning=self._selector.explain(
                self._descriptors[outcome.winner],
                Strategy.SPECULATIVE,
                raced=outcome.raced,
                sub_strategy=sub_strategy,
            ),
            alternatives=[c for c in candidates if c != outcome.winner],
            fallback_triggered=fallback_triggered,
        )
        return RoutingResult(
            endpoint=outcome.winner,
            response=response,
            decision=decision,
            attempts=outcome.attempts,
            total_cost=response.cost,
            total_duration_ms=(time.monotonic() - started) * 1000,
        )

    async def _fire_on_route(self, result: RoutingResult) -> None:
        if self._config.on_route is None:
            return
        response = result.response
        event = RouteEvent(
            endpoint=result.endpoint,
            model=response.model,
            strategy=result.decision.strategy,
            input_tokens=response.tokens.input,
            output_tokens=response.tokens.output,
            cost=response.cost,
            latency_ms=response.duration_ms,
            attempt_count=len(result.attempts),
            fallback_triggered=result.decision.fallback_triggered,
            raced_candidates=(
                len(result.decision.alternatives) + 1
                if result.decision.strategy is Strategy.SPECULATIVE
                else 1
            ),
        )
        try:
            outcome = self._config.on_route(event)
            if inspect.isawaitable(outcome):
                await outcome
        except Exception:
            logger.exception("on_route callback failed")
