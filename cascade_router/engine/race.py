# cascade_router/engine/race.py
"""
Speculative race execution.

Launches one task per candidate and returns the first successful result.

  - The driver loop below is the only place a winner is decided; tasks
    never write shared state, so two near-simultaneous finishers cannot
    both win.
  - When several tasks finish in the same wake-up they are handled in
    candidate order, so the better-ranked endpoint wins a tie.
  - Losers are cancelled and their outcomes are discarded.
  - Failures that complete before the winner are kept as failed attempts.
  - The whole race is bounded by *timeout*. Candidates still running at
    the deadline are recorded as timed-out attempts and AllProvidersFailed
    is raised.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from typing import Generic, TypeVar

from ..exceptions import AllProvidersFailed, describe_error
from ..models import RoutingAttempt

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class RaceOutcome(Generic[T]):
    """Winner of a race plus the attempts that count toward the result."""

    winner: str
    result: T
    raced: int
    attempts: list[RoutingAttempt] = field(default_factory=list)

    @property
    def failed(self) -> list[RoutingAttempt]:
        return [a for a in self.attempts if not a.success]


def _discard_outcome(task: asyncio.Task) -> None:
    # Retrieve the exception so asyncio does not log "never retrieved".
    if not task.cancelled():
        task.exception()


async def race_first_success(
    candidates: Sequence[str],
    call: Callable[[str], Awaitable[T]],
    *,
    timeout: float,
) -> RaceOutcome[T]:
    """
    Run ``call(candidate)`` for every candidate concurrently.

    Parameters
    ----------
    candidates:
        Endpoint ids in ranked order. Must not be empty.
    call:
        Coroutine factory performing one endpoint call.
    timeout:
        Seconds allowed for the whole race.

    Raises
    ------
    AllProvidersFailed
        If every candidate failed or the deadline passed without a winner.
    """
    if not candidates:
        raise ValueError("race_first_success() needs at least one candidate")

    rank = {cid: index for index, cid in enumerate(candidates)}
    started = time.monotonic()
    deadline = started + timeout
    tasks: dict[asyncio.Task, str] = {
        asyncio.create_task(call(cid), name=f"race:{cid}"): cid for cid in candidates
    }
    pending: set[asyncio.Task] = set(tasks)
    attempts: list[RoutingAttempt] = []
    logger.debug("Racing %d candidate(s): %s", len(candidates), ", ".join(candidates))

    try:
        while pending:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                break
            done, pending = await asyncio.wait(
                pending, timeout=remaining, return_when=asyncio.FIRST_COMPLETED
            )
            for task in sorted(done, key=lambda t: rank[tasks[t]]):
                cid = tasks[task]
                elapsed_ms = (time.monotonic() - started) * 1000
                exc = task.exception()
                if exc is None:
                    attempts.append(RoutingAttempt(endpoint=cid, success=True, duration_ms=elapsed_ms))
                    if pending:
                        logger.debug(
                            "Race won by '%s'; cancelling %d loser(s)", cid, len(pending)
                        )
                    return RaceOutcome(
                        winner=cid, result=task.result(), raced=len(candidates), attempts=attempts
                    )
                logger.warning("Race candidate '%s' failed: %s", cid, describe_error(exc))
                attempts.append(
                    RoutingAttempt(
                        endpoint=cid,
                        success=False,
                        duration_ms=elapsed_ms,
                        error=describe_error(exc),
                    )
                )

        elapsed_ms = (time.monotonic() - started) * 1000
        for task in sorted(pending, key=lambda t: rank[tasks[t]]):
            attempts.append(
                RoutingAttempt(
                    endpoint=tasks[task],
                    success=False,
                    duration_ms=elapsed_ms,
                    error=describe_error(TimeoutError()),
                )
            )
        if pending:
            raise AllProvidersFailed(
                f"Speculative race timed out after {timeout:g}s with no successful candidate.",
                attempts=attempts,
            )
        raise AllProvidersFailed(
            f"All {len(candidates)} raced candidate(s) failed.", attempts=attempts
        )
    finally:
        for task in pending:
            task.cancel()
            task.add_done_callback(_discard_outcome)
