# cascade_router/models.py
"""
Pydantic v2 data models used throughout cascade-router.

These are part of the public API surface — changes here require a major
version bump once the library reaches 1.0.
"""

from __future__ import annotations

import time
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator


class Strategy(str, Enum):
    """Named policies governing candidate ordering for one route() call."""

    COST = "cost"
    SPEED = "speed"
    QUALITY = "quality"
    BALANCED = "balanced"
    PRIORITY = "priority"
    FALLBACK = "fallback"
    SPECULATIVE = "speculative"


RACE_SUB_STRATEGIES = frozenset({Strategy.SPEED, Strategy.QUALITY, Strategy.BALANCED})
"""Orderings allowed for picking race-mode candidates."""


class EndpointDescriptor(BaseModel):
    """
    Static, declared attributes of one routable endpoint.

    Immutable once registered. Registering a second descriptor with the
    same id replaces the first.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1, description="Unique key within one router.")
    name: str | None = Field(default=None, description="Display name.")
    model: str | None = Field(default=None, description="Model string served by this endpoint.")
    enabled: bool = Field(default=True)
    cost_per_million_tokens: float = Field(default=0.0, ge=0.0)
    latency_ms: float = Field(default=0.0, ge=0.0, description="Declared average latency.")
    priority: int = Field(default=10, description="Lower = higher priority / quality.")
    availability: float = Field(default=1.0, ge=0.0, le=1.0)
    max_tokens: int = Field(default=4096, gt=0, description="Context window size.")
    timeout_seconds: float | None = Field(
        default=None,
        gt=0.0,
        description="Per-call timeout override; falls back to the router timeout.",
    )

    @property
    def display_name(self) -> str:
        return self.name or self.id


class Message(BaseModel):
    role: str
    content: str


class ChatRequest(BaseModel):
    """One logical chat-completion request."""

    prompt: str = Field(..., description="Free-text prompt, sent as the final user turn.")
    messages: list[Message] = Field(default_factory=list, description="Prior turns, oldest first.")
    max_tokens: int | None = Field(default=None, gt=0)
    temperature: float | None = Field(default=None, ge=0.0, le=2.0)
    stream: bool = Field(default=False)
    metadata: dict[str, Any] = Field(default_factory=dict)


class TokenUsage(BaseModel):
    input: int = Field(default=0, ge=0)
    output: int = Field(default=0, ge=0)
    total: int = Field(default=0, ge=0)

    @model_validator(mode="after")
    def _check_total(self) -> "TokenUsage":
        if self.total != self.input + self.output:
            raise ValueError(
                f"total tokens ({self.total}) must equal input + output "
                f"({self.input} + {self.output})"
            )
        return self

    @classmethod
    def of(cls, input_tokens: int, output_tokens: int) -> "TokenUsage":
        return cls(input=input_tokens, output=output_tokens, total=input_tokens + output_tokens)


class ChatResponse(BaseModel):
    """The completion produced by an endpoint adapter."""

    content: str
    model: str
    endpoint: str = Field(..., description="Id of the endpoint that served the request.")
    tokens: TokenUsage
    cost: float = Field(..., ge=0.0, description="total tokens / 1e6 x declared cost per million.")
    duration_ms: float = Field(..., ge=0.0)
    finish_reason: str = Field(default="stop")
    cached: bool = Field(default=False)


class RoutingAttempt(BaseModel):
    endpoint: str
    success: bool
    duration_ms: float
    error: str | None = None


class RoutingDecision(BaseModel):
    selected_endpoint: str
    strategy: Strategy
    reasoning: str
    alternatives: list[str] = Field(default_factory=list)
    fallback_triggered: bool = False


class RoutingResult(BaseModel):
    """Everything the caller gets back from a successful route() call."""

    endpoint: str
    response: ChatResponse
    decision: RoutingDecision
    attempts: list[RoutingAttempt]
    total_cost: float
    total_duration_ms: float


# ---------------------------------------------------------------------------
# Limiter results
# ---------------------------------------------------------------------------


class BudgetCheck(BaseModel):
    allowed: bool
    reason: str | None = None
    scope: Literal["daily", "monthly"] | None = None
    usage: float = 0.0
    limit: float = 0.0


class RateLimitCheck(BaseModel):
    allowed: bool
    reason: str | None = None
    retry_after_seconds: int | None = None


class UsageSnapshot(BaseModel):
    daily_tokens: int = 0
    daily_cost: float = 0.0
    monthly_tokens: int = 0
    monthly_cost: float = 0.0
    daily_percentage: float = 0.0
    monthly_percentage: float = 0.0


# ---------------------------------------------------------------------------
# Metrics
# ---------------------------------------------------------------------------


class EndpointMetrics(BaseModel):
    endpoint: str
    request_count: int = 0
    success_count: int = 0
    failure_count: int = 0
    total_tokens: int = 0
    total_cost: float = 0.0
    avg_latency_ms: float = 0.0
    last_used: float = 0.0


class RaceMetrics(BaseModel):
    total_races: int = 0
    total_additional_cost: float = 0.0
    avg_time_saved_ms: float = 0.0
    avg_cost_increase: float = 0.0
    races_faster_than_sequential: int = 0
    avg_candidates_raced: float = 0.0


class RouterMetrics(BaseModel):
    total_requests: int = 0
    total_tokens: int = 0
    total_cost: float = 0.0
    endpoints: dict[str, EndpointMetrics] = Field(default_factory=dict)
    race: RaceMetrics | None = None
    rate_limit_hits: int = 0
    budget_rejections: int = 0
    fallback_count: int = 0


class RouterStatus(BaseModel):
    healthy: bool
    available_endpoints: list[str]
    unavailable_endpoints: list[str]
    budget: UsageSnapshot


# ---------------------------------------------------------------------------
# Notifications
# ---------------------------------------------------------------------------


class ProgressUpdate(BaseModel):
    endpoint: str
    tokens_used: int
    cost_incurred: float
    duration_ms: float
    percentage: float
    status: Literal["in-progress", "complete", "error"]
    error: str | None = None


class RouteEvent(BaseModel):
    """
    Fired after every successful routing decision via the optional on_route callback.
    Forward it to whatever observability system the application uses.
    """

    endpoint: str
    model: str
    strategy: Strategy
    input_tokens: int
    output_tokens: int
    cost: float
    latency_ms: float
    attempt_count: int
    fallback_triggered: bool
    raced_candidates: int = Field(default=1, description="Candidates launched; 1 outside race mode.")
    timestamp: float = Field(default_factory=time.time)
