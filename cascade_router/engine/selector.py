# cascade_router/engine/selector.py
"""
Candidate selection.

Turns the set of registered endpoint descriptors and a strategy name into
an ordered list of endpoint ids to try.

Orderings (stable, ascending unless noted)
------------------------------------------
  cost      → declared cost per million tokens
  speed     → declared average latency
  quality   → declared priority rank (lower = better)
  priority  → same as quality
  fallback  → same as quality
  balanced  → composite score, descending
  speculative → the configured sub-strategy, truncated to N candidates

Balanced score
--------------
  score = 0.4 x (1 - cost / 100)
        + 0.3 x (1 - latency_ms / 10000)
        + 0.2 x (1 - priority / 100)
        + 0.1 x availability

The denominators are fixed, not derived from the candidate pool, so
scores can go negative or exceed 1 for outlier descriptors. This is a
known approximation and is kept as-is.

The selector does not make any I/O calls. It receives descriptors as
arguments so it can be tested in isolation.
"""

from __future__ import annotations

from collections.abc import Iterable

from ..constants import (
    BALANCED_COST_CEILING,
    BALANCED_LATENCY_CEILING_MS,
    BALANCED_PRIORITY_CEILING,
    BALANCED_W_AVAILABILITY,
    BALANCED_W_COST,
    BALANCED_W_QUALITY,
    BALANCED_W_SPEED,
    DEFAULT_RACE_CANDIDATES,
)
from ..exceptions import NoProvidersAvailable
from ..models import RACE_SUB_STRATEGIES, EndpointDescriptor, Strategy


def balanced_score(descriptor: EndpointDescriptor) -> float:
    """Composite score of the four declared fields. Higher is better."""
    cost_score = 1 - descriptor.cost_per_million_tokens / BALANCED_COST_CEILING
    speed_score = 1 - descriptor.latency_ms / BALANCED_LATENCY_CEILING_MS
    quality_score = 1 - descriptor.priority / BALANCED_PRIORITY_CEILING
    return (
        cost_score * BALANCED_W_COST
        + speed_score * BALANCED_W_SPEED
        + quality_score * BALANCED_W_QUALITY
        + descriptor.availability * BALANCED_W_AVAILABILITY
    )


class CandidateSelector:
    """Stateless endpoint ordering."""

    def select(
        self,
        descriptors: Iterable[EndpointDescriptor],
        strategy: Strategy | str,
        *,
        candidate_count: int | None = None,
        sub_strategy: Strategy | str | None = None,
    ) -> list[str]:
        """
        Return endpoint ids in try-order for *strategy*.

        Parameters
        ----------
        descriptors:
            Every registered descriptor; disabled ones are filtered out here.
        strategy:
            One of the Strategy values.
        candidate_count:
            Speculative only — how many candidates to race.
        sub_strategy:
            Speculative only — speed, quality or balanced (default speed).

        Raises
        ------
        NoProvidersAvailable
            If no descriptor is enabled.
        """
        strategy = Strategy(strategy)
        enabled = [d for d in descriptors if d.enabled]
        if not enabled:
            raise NoProvidersAvailable("No enabled endpoints are registered.")

        if strategy is Strategy.SPECULATIVE:
            sub = Strategy(sub_strategy or Strategy.SPEED)
            if sub not in RACE_SUB_STRATEGIES:
                raise ValueError(f"Unsupported race candidate strategy '{sub.value}'")
            count = candidate_count if candidate_count is not None else DEFAULT_RACE_CANDIDATES
            return self._order(enabled, sub)[: max(count, 1)]

        return self._order(enabled, strategy)

    def _order(self, enabled: list[EndpointDescriptor], strategy: Strategy) -> list[str]:
        if strategy is Strategy.COST:
            ranked = sorted(enabled, key=lambda d: d.cost_per_million_tokens)
        elif strategy is Strategy.SPEED:
            ranked = sorted(enabled, key=lambda d: d.latency_ms)
        elif strategy is Strategy.BALANCED:
            ranked = sorted(enabled, key=balanced_score, reverse=True)
        else:
            # quality, priority and fallback share the priority-rank ordering
            ranked = sorted(enabled, key=lambda d: d.priority)
        return [d.id for d in ranked]

    def limit_by_cost(
        self,
        candidate_ids: list[str],
        descriptors: dict[str, EndpointDescriptor],
        max_cost_multiplier: float | None,
    ) -> list[str]:
        """
        Drop raced candidates whose declared cost exceeds the leader's cost
        times max_cost_multiplier percent. The leader is always kept.
        """
        if not candidate_ids or max_cost_multiplier is None:
            return candidate_ids
        leader = descriptors[candidate_ids[0]]
        ceiling = leader.cost_per_million_tokens * max_cost_multiplier / 100
        return [candidate_ids[0]] + [
            cid for cid in candidate_ids[1:] if descriptors[cid].cost_per_million_tokens <= ceiling
        ]

    def explain(
        self,
        descriptor: EndpointDescriptor,
        strategy: Strategy | str,
        *,
        raced: int = 1,
        sub_strategy: Strategy | str | None = None,
    ) -> str:
        """Return a short human-readable justification for choosing *descriptor*."""
        strategy = Strategy(strategy)
        if strategy is Strategy.COST:
            return f"Selected for lowest cost (${descriptor.cost_per_million_tokens}/M tokens)"
        if strategy is Strategy.SPEED:
            return f"Selected for lowest latency ({descriptor.latency_ms:g}ms)"
        if strategy is Strategy.QUALITY:
            return f"Selected for highest quality (priority: {descriptor.priority})"
        if strategy is Strategy.BALANCED:
            return f"Selected for balanced performance (score: {balanced_score(descriptor):.3f})"
        if strategy is Strategy.SPECULATIVE:
            sub = Strategy(sub_strategy or Strategy.SPEED).value
            return (
                f"Won speculative execution race against {raced - 1} other candidate(s) "
                f"(candidates chosen by {sub})"
            )
        return f"Selected based on priority order ({descriptor.priority})"
