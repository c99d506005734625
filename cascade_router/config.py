# cascade_router/config.py
"""
RouterConfig and related sub-configs.

Supports construction from:
  - Python dict   → RouterConfig.from_dict(data)
  - YAML file     → RouterConfig.from_yaml("cascade-router.yaml")
  - Environment   → RouterConfig.from_env()
"""

from __future__ import annotations

import os
import re
from typing import Any, Callable, Literal

from pydantic import BaseModel, Field, field_validator

from .constants import (
    DEFAULT_ALERT_THRESHOLD_PCT,
    DEFAULT_ANTHROPIC_BASE_URL,
    DEFAULT_ANTHROPIC_MODEL,
    DEFAULT_ESTIMATE_COST_PER_MILLION,
    DEFAULT_OLLAMA_BASE_URL,
    DEFAULT_OLLAMA_MODEL,
    DEFAULT_OPENAI_BASE_URL,
    DEFAULT_OPENAI_MODEL,
    DEFAULT_RACE_CANDIDATES,
    DEFAULT_TIMEOUT_SECONDS,
)
from .models import RACE_SUB_STRATEGIES, EndpointDescriptor, ProgressUpdate, Strategy

EndpointType = Literal["openai", "anthropic", "ollama", "mcp", "custom"]


class BudgetLimits(BaseModel):
    """Token and cost ceilings. Zero means unlimited for that dimension."""

    daily_tokens: int = Field(default=0, ge=0)
    daily_cost: float = Field(default=0.0, ge=0.0)
    monthly_tokens: int = Field(default=0, ge=0)
    monthly_cost: float = Field(default=0.0, ge=0.0)
    alert_threshold: float = Field(
        default=DEFAULT_ALERT_THRESHOLD_PCT,
        ge=0.0,
        le=100.0,
        description="Log a warning once cost usage crosses this percentage of a ceiling.",
    )


class RateLimits(BaseModel):
    """Rolling one-minute ceilings. Zero means unlimited."""

    requests_per_minute: int = Field(default=0, ge=0)
    tokens_per_minute: int = Field(default=0, ge=0)
    concurrent_requests: int = Field(
        default=0,
        ge=0,
        description="Max in-flight route() calls per router; 0 disables the cap.",
    )


class SpeculativeConfig(BaseModel):
    """Tuning for race mode (strategy='speculative')."""

    candidate_count: int = Field(default=DEFAULT_RACE_CANDIDATES, gt=0)
    candidate_strategy: Strategy = Field(
        default=Strategy.SPEED,
        description="Ordering used to pick the raced candidates: speed, quality or balanced.",
    )
    enable_cost_tracking: bool = Field(
        default=True,
        description="Record the estimated extra cost of racing in the race metrics.",
    )
    max_cost_multiplier: float | None = Field(
        default=None,
        gt=0.0,
        description=(
            "Percentage cap on raced candidates' declared cost relative to the leading "
            "candidate, e.g. 150 keeps candidates costing at most 1.5x the leader."
        ),
    )

    @field_validator("candidate_strategy")
    @classmethod
    def validate_candidate_strategy(cls, v: Strategy) -> Strategy:
        if v not in RACE_SUB_STRATEGIES:
            allowed = sorted(s.value for s in RACE_SUB_STRATEGIES)
            raise ValueError(f"candidate_strategy must be one of {allowed}, got '{v.value}'")
        return v


class ProgressCheckpoint(BaseModel):
    """Emit an in-progress update every N tokens or every N seconds, whichever comes first."""

    model_config = {"arbitrary_types_allowed": True}

    token_interval: int = Field(default=0, ge=0)
    time_interval_seconds: float = Field(default=0.0, ge=0.0)
    callback: Callable[[ProgressUpdate], Any] = Field(exclude=True)


class EndpointConfig(BaseModel):
    """
    Configuration for one endpoint built by the adapter factory.

    Developers registering their own adapters via register_endpoint() don't
    need this — it's only used by from_dict / from_yaml / from_env.
    """

    id: str = Field(..., min_length=1)
    type: EndpointType
    name: str | None = None
    enabled: bool = True
    priority: int = 10
    max_tokens: int = Field(default=4096, gt=0)
    cost_per_million_tokens: float = Field(default=0.0, ge=0.0)
    latency_ms: float = Field(default=0.0, ge=0.0)
    availability: float = Field(default=1.0, ge=0.0, le=1.0)
    timeout_seconds: float | None = Field(default=None, gt=0.0)
    api_key: str | None = Field(default=None, repr=False)
    base_url: str | None = None
    model: str | None = None
    options: dict[str, Any] = Field(default_factory=dict)

    def descriptor(self) -> EndpointDescriptor:
        """Return the static routing attributes of this endpoint."""
        return EndpointDescriptor(
            id=self.id,
            name=self.name,
            model=self.model,
            enabled=self.enabled,
            cost_per_million_tokens=self.cost_per_million_tokens,
            latency_ms=self.latency_ms,
            priority=self.priority,
            availability=self.availability,
            max_tokens=self.max_tokens,
            timeout_seconds=self.timeout_seconds,
        )


class RouterConfig(BaseModel):
    """
    Top-level configuration for cascade-router.

    Instantiate directly or use one of the factory class methods:
      RouterConfig.from_dict(data)
      RouterConfig.from_yaml(path)
      RouterConfig.from_env()
    """

    model_config = {"arbitrary_types_allowed": True}

    strategy: Strategy = Field(default=Strategy.BALANCED)
    fallback_enabled: bool = Field(
        default=True,
        description="Continue to the next candidate after a failure instead of raising.",
    )
    timeout_seconds: float = Field(
        default=DEFAULT_TIMEOUT_SECONDS,
        gt=0.0,
        description="Per-call timeout; also bounds the whole race in speculative mode.",
    )
    budget: BudgetLimits | None = None
    rate_limits: RateLimits | None = None
    speculative: SpeculativeConfig = Field(default_factory=SpeculativeConfig)
    endpoints: list[EndpointConfig] = Field(default_factory=list)
    estimate_cost_per_million: float = Field(
        default=DEFAULT_ESTIMATE_COST_PER_MILLION,
        ge=0.0,
        description="Cost rate used for pre-flight budget estimates.",
    )
    log_level: Literal["debug", "info", "warning", "error"] = Field(default="info")
    checkpoints: list[ProgressCheckpoint] = Field(default_factory=list, exclude=True)
    on_route: Callable | None = Field(
        default=None,
        description="Optional callback (sync or async) fired after every routing decision. Receives a RouteEvent.",
        exclude=True,
    )

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def validate_endpoints(self) -> list[str]:
        """Return human-readable problems with the endpoint list (empty if none)."""
        errors: list[str] = []
        if not self.endpoints:
            errors.append("No endpoints configured")
        seen: set[str] = set()
        for endpoint in self.endpoints:
            if endpoint.id in seen:
                errors.append(f"Duplicate endpoint id '{endpoint.id}' (last definition wins)")
            seen.add(endpoint.id)
            if endpoint.type in ("openai", "anthropic") and not endpoint.api_key:
                errors.append(f"Endpoint '{endpoint.id}' ({endpoint.type}) is missing an API key")
        return errors

    # ------------------------------------------------------------------
    # Factory methods
    # ------------------------------------------------------------------

    @classmethod
    def from_dict(cls, data: dict[str, Any], **kwargs: Any) -> "RouterConfig":
        """Build config from a plain Python dictionary."""
        merged = {**data, **kwargs}
        return cls.model_validate(merged)

    @classmethod
    def from_yaml(cls, path: str, **kwargs: Any) -> "RouterConfig":
        """
        Build config from a YAML (or JSON) file.

        Environment variable interpolation is supported:
          api_key: "${OPENAI_API_KEY}"
        """
        import yaml

        with open(path) as f:
            raw = f.read()

        # Interpolate ${ENV_VAR} placeholders
        def _replace(match: re.Match) -> str:  # type: ignore[type-arg]
            var = match.group(1)
            value = os.environ.get(var)
            if value is None:
                raise EnvironmentError(
                    f"Environment variable '{var}' referenced in '{path}' is not set."
                )
            return value

        raw = re.sub(r"\$\{([^}]+)\}", _replace, raw)
        data = yaml.safe_load(raw) or {}
        return cls.from_dict(data, **kwargs)

    @classmethod
    def from_env(cls, **kwargs: Any) -> "RouterConfig":
        """
        Build a config from environment variables.

        Reads the following variables to auto-configure known endpoints:
          OPENAI_API_KEY    → registers an OpenAI endpoint
          ANTHROPIC_API_KEY → registers an Anthropic endpoint
          OLLAMA_BASE_URL   → registers an Ollama endpoint (always added, default localhost)

        Optional overrides:
          CASCADE_ROUTER_STRATEGY → strategy
          CASCADE_ROUTER_TIMEOUT  → timeout_seconds
        """
        data = cls.default_dict(
            openai_api_key=os.environ.get("OPENAI_API_KEY"),
            anthropic_api_key=os.environ.get("ANTHROPIC_API_KEY"),
            ollama_base_url=os.environ.get("OLLAMA_BASE_URL"),
        )

        strategy = os.environ.get("CASCADE_ROUTER_STRATEGY")
        if strategy:
            data["strategy"] = strategy

        timeout = os.environ.get("CASCADE_ROUTER_TIMEOUT")
        if timeout:
            data["timeout_seconds"] = float(timeout)

        data.update(kwargs)
        return cls.from_dict(data)

    @staticmethod
    def default_dict(
        openai_api_key: str | None = None,
        anthropic_api_key: str | None = None,
        ollama_base_url: str | None = None,
        include_ollama: bool = True,
        daily_cost: float = 10.0,
        strategy: str = Strategy.BALANCED.value,
        fallback_enabled: bool = True,
    ) -> dict[str, Any]:
        """
        Return the default configuration as plain data.

        OpenAI and Anthropic entries are only included when a key is supplied.
        The monthly cost ceiling is thirty times the daily one.
        """
        endpoints: list[dict[str, Any]] = []

        if openai_api_key:
            endpoints.append(
                {
                    "id": "openai-default",
                    "name": "OpenAI",
                    "type": "openai",
                    "priority": 10,
                    "max_tokens": 128_000,
                    "cost_per_million_tokens": 0.15,
                    "latency_ms": 500,
                    "availability": 0.99,
                    "api_key": openai_api_key,
                    "base_url": DEFAULT_OPENAI_BASE_URL,
                    "model": DEFAULT_OPENAI_MODEL,
                }
            )

        if anthropic_api_key:
            endpoints.append(
                {
                    "id": "anthropic-default",
                    "name": "Anthropic",
                    "type": "anthropic",
                    "priority": 5,
                    "max_tokens": 200_000,
                    "cost_per_million_tokens": 0.25,
                    "latency_ms": 600,
                    "availability": 0.99,
                    "api_key": anthropic_api_key,
                    "base_url": DEFAULT_ANTHROPIC_BASE_URL,
                    "model": DEFAULT_ANTHROPIC_MODEL,
                }
            )

        if include_ollama:
            endpoints.append(
                {
                    "id": "ollama-default",
                    "name": "Ollama",
                    "type": "ollama",
                    "priority": 20,
                    "max_tokens": 4096,
                    "cost_per_million_tokens": 0.0,
                    "latency_ms": 2000,
                    "availability": 0.9,
                    "base_url": ollama_base_url or DEFAULT_OLLAMA_BASE_URL,
                    "model": DEFAULT_OLLAMA_MODEL,
                }
            )

        return {
            "strategy": strategy,
            "fallback_enabled": fallback_enabled,
            "timeout_seconds": DEFAULT_TIMEOUT_SECONDS,
            "budget": {
                "daily_tokens": 0,
                "daily_cost": daily_cost,
                "monthly_tokens": 0,
                "monthly_cost": daily_cost * 30,
                "alert_threshold": DEFAULT_ALERT_THRESHOLD_PCT,
            },
            "rate_limits": {
                "requests_per_minute": 60,
                "tokens_per_minute": 100_000,
                "concurrent_requests": 5,
            },
            "endpoints": endpoints,
            "log_level": "info",
        }

    @classmethod
    def default(cls, **kwargs: Any) -> "RouterConfig":
        """The default configuration: a local Ollama endpoint with default limits."""
        return cls.from_dict(cls.default_dict(), **kwargs)
