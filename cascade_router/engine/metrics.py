# cascade_router/engine/metrics.py
"""
Per-endpoint and global routing metrics.

Running averages are updated incrementally:

    avg += (sample - avg) / count

rather than by accumulating a raw sum, which keeps precision over
long-running processes with large counts.

All updates go through a single threading.Lock so the aggregator can be
shared by concurrent route() calls and read from other threads (e.g. a
status endpoint) without tearing.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Iterable

from ..models import ChatResponse, EndpointMetrics, RaceMetrics, RouterMetrics


def _running_average(current: float, sample: float, count: int) -> float:
    return current + (sample - current) / count


class MetricsAggregator:
    """Accumulates metrics until reset()."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._metrics = RouterMetrics()

    # ------------------------------------------------------------------
    # Updates
    # ------------------------------------------------------------------

    def ensure_endpoint(self, endpoint: str) -> None:
        """Create an empty entry for *endpoint* if none exists yet."""
        with self._lock:
            self._entry(endpoint)

    def record_success(self, endpoint: str, response: ChatResponse, duration_ms: float) -> None:
        with self._lock:
            entry = self._entry(endpoint)
            entry.request_count += 1
            entry.success_count += 1
            entry.total_tokens += response.tokens.total
            entry.total_cost += response.cost
            entry.last_used = time.time()
            entry.avg_latency_ms = _running_average(
                entry.avg_latency_ms, duration_ms, entry.success_count
            )

            self._metrics.total_requests += 1
            self._metrics.total_tokens += response.tokens.total
            self._metrics.total_cost += response.cost

    def record_failure(self, endpoint: str) -> None:
        """A failed call is assumed to bill nothing: counts only."""
        with self._lock:
            entry = self._entry(endpoint)
            entry.request_count += 1
            entry.failure_count += 1

    def record_fallback(self) -> None:
        with self._lock:
            self._metrics.fallback_count += 1

    def record_rate_limit_hit(self) -> None:
        with self._lock:
            self._metrics.rate_limit_hits += 1

    def record_budget_rejection(self) -> None:
        with self._lock:
            self._metrics.budget_rejections += 1

    def record_race(
        self,
        candidates: int,
        time_saved_ms: float,
        additional_cost: float,
        *,
        beat_sequential: bool = False,
    ) -> None:
        """
        Fold one completed race into the race metrics block.

        *time_saved_ms* is the duration heuristic and is only averaged.
        *beat_sequential* is True when the winner was not the candidate a
        sequential walk would have tried first, so the race returned sooner
        than that walk could have.
        """
        with self._lock:
            race = self._metrics.race
            if race is None:
                race = self._metrics.race = RaceMetrics()
            race.total_races += 1
            race.total_additional_cost += additional_cost
            race.avg_time_saved_ms = _running_average(
                race.avg_time_saved_ms, time_saved_ms, race.total_races
            )
            race.avg_cost_increase = _running_average(
                race.avg_cost_increase, additional_cost, race.total_races
            )
            race.avg_candidates_raced = _running_average(
                race.avg_candidates_raced, candidates, race.total_races
            )
            if beat_sequential:
                race.races_faster_than_sequential += 1

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def snapshot(self) -> RouterMetrics:
        """Return a deep copy; mutating it never affects the live counters."""
        with self._lock:
            return self._metrics.model_copy(deep=True)

    def reset(self, endpoints: Iterable[str] = ()) -> None:
        """Zero every counter and drop per-endpoint entries (optionally re-seeding *endpoints*)."""
        with self._lock:
            self._metrics = RouterMetrics()
            for endpoint in endpoints:
                self._entry(endpoint)

    def _entry(self, endpoint: str) -> EndpointMetrics:
        """Must be called while holding self._lock."""
        entry = self._metrics.endpoints.get(endpoint)
        if entry is None:
            entry = self._metrics.endpoints[endpoint] = EndpointMetrics(endpoint=endpoint)
        return entry
