# cascade_router/state/limiter.py
"""
In-process token budget and rate limiter.

Uses asyncio.Lock for safe concurrent access within a single event loop.
All state is lost when the process exits; usage history is
not persisted.

Architecture note
-----------------
Four deques are kept, each pruned lazily on every read and write:
  - request_window: timestamps of requests in the last 60 s
  - token_window:   (timestamp, tokens) in the last 60 s
  - daily ledger:   UsageEntry records from the last 24 h
  - monthly ledger: UsageEntry records from the last 30 days

Check-then-record
-----------------
check_budget() / check_rate_limits() followed later by record_usage() is
not atomic: concurrent callers can all pass the checks before any of
them records, and overshoot a ceiling together. The router therefore
uses acquire(), which checks both policies and books a provisional entry
for the estimated usage in one locked step. commit() swaps the estimate
for actual usage after a success; release() drops it after a failure.
"""

from __future__ import annotations

import asyncio
import logging
import math
import time
from collections import deque
from dataclasses import dataclass

from ..config import BudgetLimits, RateLimits
from ..constants import (
    DAILY_WINDOW_SECONDS,
    DEFAULT_ESTIMATE_COST_PER_MILLION,
    MONTHLY_WINDOW_SECONDS,
    RATE_WINDOW_SECONDS,
    TOKENS_PER_MILLION,
)
from ..engine.estimator import estimate_request_tokens
from ..exceptions import BudgetExceeded, RateLimited
from ..models import BudgetCheck, ChatRequest, RateLimitCheck, UsageSnapshot

logger = logging.getLogger(__name__)


@dataclass
class UsageEntry:
    """One ledger record. Mutable so a reservation can be settled in place."""

    tokens: int
    cost: float
    timestamp: float


@dataclass
class Reservation:
    """Provisional usage booked by acquire(); settle it with commit() or release()."""

    request_at: float
    window_tokens: list[float | int]
    daily: UsageEntry
    monthly: UsageEntry
    settled: bool = False


class UsageLimiter:
    """
    Budget (daily / monthly) and rate (per-minute) gate for every request.

    Parameters
    ----------
    budget:
        Ceilings on tokens and cost. None disables budget checks.
    rate_limits:
        Ceilings on requests and tokens per rolling minute. None disables
        rate checks.
    estimate_cost_per_million:
        Cost rate ($/M tokens) applied to pre-flight estimates and to
        record_usage() calls that don't pass an actual cost.
    """

    def __init__(
        self,
        budget: BudgetLimits | None = None,
        rate_limits: RateLimits | None = None,
        estimate_cost_per_million: float = DEFAULT_ESTIMATE_COST_PER_MILLION,
    ) -> None:
        self._budget = budget
        self._rate = rate_limits
        self._cost_rate = estimate_cost_per_million
        self._lock = asyncio.Lock()

        self._request_window: deque[float] = deque()
        # [timestamp, tokens] pairs; lists so a reservation can be settled in place
        self._token_window: deque[list[float | int]] = deque()
        self._daily: deque[UsageEntry] = deque()
        self._monthly: deque[UsageEntry] = deque()

        # scope -> whether the alert threshold warning has already fired
        self._alerted: dict[str, bool] = {"daily": False, "monthly": False}

    # ------------------------------------------------------------------
    # Checks
    # ------------------------------------------------------------------

    async def check_budget(self, request: ChatRequest) -> BudgetCheck:
        """Return whether *request* fits in the remaining daily/monthly budget."""
        async with self._lock:
            return self._check_budget(request, time.time())

    async def check_rate_limits(self) -> RateLimitCheck:
        """Return whether another request fits in the rolling one-minute window."""
        async with self._lock:
            return self._check_rate(time.time())

    # ------------------------------------------------------------------
    # Recording
    # ------------------------------------------------------------------

    async def record_usage(self, tokens: int, cost: float | None = None) -> None:
        """
        Record a completed request.

        *cost* defaults to tokens priced at the estimate rate.
        """
        if cost is None:
            cost = self._estimate_cost(tokens)
        now = time.time()
        async with self._lock:
            self._request_window.append(now)
            self._token_window.append([now, tokens])
            self._daily.append(UsageEntry(tokens, cost, now))
            self._monthly.append(UsageEntry(tokens, cost, now))
            self._prune(now)
            self._check_alerts()

    async def acquire(self, request: ChatRequest) -> Reservation:
        """
        Check both policies and book the estimated usage in one atomic step.

        Raises
        ------
        BudgetExceeded
            If the projected usage would exceed a budget ceiling.
        RateLimited
            If the one-minute request or token ceiling has been reached.
        """
        now = time.time()
        async with self._lock:
            budget = self._check_budget(request, now)
            if not budget.allowed:
                raise BudgetExceeded(
                    budget.reason or "Budget exceeded",
                    scope=budget.scope or "daily",
                    usage=budget.usage,
                    limit=budget.limit,
                )
            rate = self._check_rate(now)
            if not rate.allowed:
                raise RateLimited(
                    rate.reason or "Rate limit exceeded",
                    retry_after_seconds=rate.retry_after_seconds,
                )

            tokens = estimate_request_tokens(request)
            cost = self._estimate_cost(tokens)
            reservation = Reservation(
                request_at=now,
                window_tokens=[now, tokens],
                daily=UsageEntry(tokens, cost, now),
                monthly=UsageEntry(tokens, cost, now),
            )
            self._request_window.append(now)
            self._token_window.append(reservation.window_tokens)
            self._daily.append(reservation.daily)
            self._monthly.append(reservation.monthly)
            return reservation

    async def commit(self, reservation: Reservation, tokens: int, cost: float) -> None:
        """Replace a reservation's estimate with the actual usage of the completed call."""
        async with self._lock:
            if reservation.settled:
                return
            reservation.settled = True
            reservation.window_tokens[1] = tokens
            for entry in (reservation.daily, reservation.monthly):
                entry.tokens = tokens
                entry.cost = cost
            self._prune(time.time())
            self._check_alerts()

    async def release(self, reservation: Reservation) -> None:
        """Drop a reservation whose call failed; it bills nothing."""
        async with self._lock:
            if reservation.settled:
                return
            reservation.settled = True
            _remove_identity(self._token_window, reservation.window_tokens)
            _remove_identity(self._daily, reservation.daily)
            _remove_identity(self._monthly, reservation.monthly)
            try:
                self._request_window.remove(reservation.request_at)
            except ValueError:
                pass  # already aged out of the window

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    async def get_usage_snapshot(self) -> UsageSnapshot:
        async with self._lock:
            self._prune(time.time())
            return self._snapshot()

    # ------------------------------------------------------------------
    # Resets
    # ------------------------------------------------------------------

    async def reset_daily(self) -> None:
        async with self._lock:
            self._daily.clear()
            self._alerted["daily"] = False

    async def reset_monthly(self) -> None:
        async with self._lock:
            self._monthly.clear()
            self._alerted["monthly"] = False

    async def reset_all(self) -> None:
        async with self._lock:
            self._daily.clear()
            self._monthly.clear()
            self._request_window.clear()
            self._token_window.clear()
            self._alerted = {"daily": False, "monthly": False}

    # ------------------------------------------------------------------
    # Internals: all must be called while holding self._lock
    # ------------------------------------------------------------------

    def _estimate_cost(self, tokens: int) -> float:
        return tokens / TOKENS_PER_MILLION * self._cost_rate

    def _check_budget(self, request: ChatRequest, now: float) -> BudgetCheck:
        if self._budget is None:
            return BudgetCheck(allowed=True)

        self._prune(now)
        estimated_tokens = estimate_request_tokens(request)
        estimated_cost = self._estimate_cost(estimated_tokens)
        limits = self._budget

        daily_tokens = sum(e.tokens for e in self._daily) + estimated_tokens
        daily_cost = sum(e.cost for e in self._daily) + estimated_cost
        monthly_tokens = sum(e.tokens for e in self._monthly) + estimated_tokens
        monthly_cost = sum(e.cost for e in self._monthly) + estimated_cost

        checks: list[tuple[str, str, float, float]] = [
            ("daily", "token", daily_tokens, limits.daily_tokens),
            ("daily", "cost", daily_cost, limits.daily_cost),
            ("monthly", "token", monthly_tokens, limits.monthly_tokens),
            ("monthly", "cost", monthly_cost, limits.monthly_cost),
        ]
        for scope, kind, usage, limit in checks:
            if limit > 0 and usage > limit:
                if kind == "cost":
                    detail = f"${usage:.4f} > ${limit}"
                else:
                    detail = f"{usage} > {limit}"
                return BudgetCheck(
                    allowed=False,
                    reason=f"{scope.capitalize()} {kind} limit would be exceeded ({detail})",
                    scope=scope,
                    usage=usage,
                    limit=limit,
                )

        return BudgetCheck(allowed=True, usage=daily_cost, limit=limits.daily_cost)

    def _check_rate(self, now: float) -> RateLimitCheck:
        if self._rate is None:
            return RateLimitCheck(allowed=True)

        self._prune(now)

        rpm = self._rate.requests_per_minute
        if rpm > 0 and len(self._request_window) >= rpm:
            oldest = self._request_window[0]
            retry_after = max(0, math.ceil(oldest + RATE_WINDOW_SECONDS - now))
            return RateLimitCheck(
                allowed=False,
                reason=f"Rate limit exceeded: {len(self._request_window)} requests in last minute",
                retry_after_seconds=retry_after,
            )

        tpm = self._rate.tokens_per_minute
        if tpm > 0:
            recent_tokens = sum(tokens for _, tokens in self._token_window)
            if recent_tokens >= tpm:
                return RateLimitCheck(
                    allowed=False,
                    reason=f"Token rate limit exceeded: {recent_tokens} tokens in last minute",
                )

        return RateLimitCheck(allowed=True)

    def _prune(self, now: float) -> None:
        """Drop entries that have aged out of their windows."""
        rate_cutoff = now - RATE_WINDOW_SECONDS
        while self._request_window and self._request_window[0] <= rate_cutoff:
            self._request_window.popleft()
        while self._token_window and self._token_window[0][0] <= rate_cutoff:
            self._token_window.popleft()

        daily_cutoff = now - DAILY_WINDOW_SECONDS
        while self._daily and self._daily[0].timestamp <= daily_cutoff:
            self._daily.popleft()

        monthly_cutoff = now - MONTHLY_WINDOW_SECONDS
        while self._monthly and self._monthly[0].timestamp <= monthly_cutoff:
            self._monthly.popleft()

    def _snapshot(self) -> UsageSnapshot:
        daily_cost = sum(e.cost for e in self._daily)
        monthly_cost = sum(e.cost for e in self._monthly)
        daily_limit = self._budget.daily_cost if self._budget else 0.0
        monthly_limit = self._budget.monthly_cost if self._budget else 0.0
        return UsageSnapshot(
            daily_tokens=sum(e.tokens for e in self._daily),
            daily_cost=daily_cost,
            monthly_tokens=sum(e.tokens for e in self._monthly),
            monthly_cost=monthly_cost,
            daily_percentage=daily_cost / daily_limit * 100 if daily_limit > 0 else 0.0,
            monthly_percentage=monthly_cost / monthly_limit * 100 if monthly_limit > 0 else 0.0,
        )

    def _check_alerts(self) -> None:
        if self._budget is None:
            return
        snapshot = self._snapshot()
        threshold = self._budget.alert_threshold
        for scope, pct in (
            ("daily", snapshot.daily_percentage),
            ("monthly", snapshot.monthly_percentage),
        ):
            if pct >= threshold and pct > 0:
                if not self._alerted[scope]:
                    self._alerted[scope] = True
                    logger.warning(
                        "%s budget at %.1f%% of its cost ceiling (alert threshold %.0f%%)",
                        scope.capitalize(),
                        pct,
                        threshold,
                    )
            else:
                self._alerted[scope] = False


def _remove_identity(items: deque, target: object) -> None:
    """Remove *target* from *items* by identity rather than equality."""
    for index, item in enumerate(items):
        if item is target:
            del items[index]
            return
