# cascade_router/engine/monitor.py
"""
Progress checkpoints for in-flight endpoint calls.

While a call is tracked, a ticker wakes every PROGRESS_TICK_SECONDS and
emits an "in-progress" ProgressUpdate to every checkpoint whose time or
token interval has elapsed since its last notification. A final
"complete" or "error" update is emitted when the call ends.

Token counts come from add_tokens(), which the router calls for each
streamed chunk and after every successful call. Callbacks may be plain
functions or coroutines; their errors are logged and never affect routing.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import time
from collections.abc import Awaitable, Sequence
from dataclasses import dataclass, field
from typing import TypeVar

from ..config import ProgressCheckpoint
from ..constants import PROGRESS_TICK_SECONDS, PROGRESS_TOKENS_FOR_FULL
from ..exceptions import describe_error
from ..models import ChatResponse, ProgressUpdate

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class _Tracking:
    endpoint: str
    started: float
    start_tokens: int
    last_time: list[float] = field(default_factory=list)
    last_tokens: list[int] = field(default_factory=list)


class ProgressMonitor:
    """Emits ProgressUpdate notifications to configured checkpoints."""

    def __init__(
        self,
        checkpoints: Sequence[ProgressCheckpoint] = (),
        tick_seconds: float = PROGRESS_TICK_SECONDS,
    ) -> None:
        self._checkpoints = list(checkpoints)
        self._tick = tick_seconds
        self._total_tokens = 0
        self._total_cost = 0.0
        # keyed per call; one endpoint can serve several calls at once
        self._active: dict[int, _Tracking] = {}

    @property
    def enabled(self) -> bool:
        return bool(self._checkpoints)

    async def track(self, endpoint: str, call: Awaitable[T], *, count_result: bool = True) -> T:
        """
        Await *call* while emitting progress updates for *endpoint*.

        When *count_result* is set and the call returns a ChatResponse, its
        usage is added to the totals before the "complete" update. Streaming
        calls pass False because their chunks were already counted.
        """
        if not self.enabled:
            result = await call
            if count_result:
                self._count(result)
            return result

        tracking = _Tracking(
            endpoint=endpoint,
            started=time.monotonic(),
            start_tokens=self._total_tokens,
            last_time=[time.monotonic()] * len(self._checkpoints),
            last_tokens=[self._total_tokens] * len(self._checkpoints),
        )
        self._active[id(tracking)] = tracking
        ticker = asyncio.create_task(self._tick_loop(tracking))
        try:
            result = await call
        except BaseException as exc:
            if not isinstance(exc, asyncio.CancelledError):
                await self._emit_all(tracking, status="error", percentage=0.0, error=describe_error(exc))
            raise
        else:
            if count_result:
                self._count(result)
            await self._emit_all(tracking, status="complete", percentage=100.0)
            return result
        finally:
            ticker.cancel()
            self._active.pop(id(tracking), None)

    def add_tokens(self, tokens: int, cost: float = 0.0) -> None:
        """Add usage to the running totals seen by tracked calls."""
        self._total_tokens += tokens
        self._total_cost += cost

    def stats(self) -> dict[str, float | int]:
        return {
            "total_tokens": self._total_tokens,
            "total_cost": self._total_cost,
            "active_requests": len(self._active),
        }

    def reset(self) -> None:
        self._active.clear()
        self._total_tokens = 0
        self._total_cost = 0.0

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _count(self, result: object) -> None:
        if isinstance(result, ChatResponse):
            self.add_tokens(result.tokens.total, result.cost)

    async def _tick_loop(self, tracking: _Tracking) -> None:
        while True:
            await asyncio.sleep(self._tick)
            await self._check(tracking)

    async def _check(self, tracking: _Tracking) -> None:
        now = time.monotonic()
        tokens_used = self._total_tokens - tracking.start_tokens
        percentage = min(round(tokens_used / PROGRESS_TOKENS_FOR_FULL * 100), 95)
        for index, checkpoint in enumerate(self._checkpoints):
            time_due = (
                checkpoint.time_interval_seconds > 0
                and now - tracking.last_time[index] >= checkpoint.time_interval_seconds
            )
            tokens_due = (
                checkpoint.token_interval > 0
                and self._total_tokens - tracking.last_tokens[index] >= checkpoint.token_interval
            )
            if not (time_due or tokens_due):
                continue
            tracking.last_time[index] = now
            tracking.last_tokens[index] = self._total_tokens
            await self._notify(checkpoint, self._update(tracking, "in-progress", percentage))

    async def _emit_all(
        self,
        tracking: _Tracking,
        *,
        status: str,
        percentage: float,
        error: str | None = None,
    ) -> None:
        update = self._update(tracking, status, percentage, error)
        for checkpoint in self._checkpoints:
            await self._notify(checkpoint, update)

    def _update(
        self,
        tracking: _Tracking,
        status: str,
        percentage: float,
        error: str | None = None,
    ) -> ProgressUpdate:
        return ProgressUpdate(
            endpoint=tracking.endpoint,
            tokens_used=self._total_tokens - tracking.start_tokens,
            cost_incurred=self._total_cost,
            duration_ms=(time.monotonic() - tracking.started) * 1000,
            percentage=percentage,
            status=status,  # type: ignore[arg-type]
            error=error,
        )

    async def _notify(self, checkpoint: ProgressCheckpoint, update: ProgressUpdate) -> None:
        try:
            result = checkpoint.callback(update)
            if inspect.isawaitable(result):
                await result
        except Exception:
            logger.exception("Progress callback failed for endpoint '%s'", update.endpoint)
