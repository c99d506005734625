# cascade_router/__init__.py
"""
cascade-router — Cost-aware LLM routing with fallback and speculative racing.

Public API surface:
  CascadeRouter        — main class; register endpoints, call route() / route_stream()
  RouterConfig         — top-level configuration model
  BudgetLimits         — daily / monthly token and cost ceilings
  RateLimits           — per-minute request / token ceilings
  SpeculativeConfig    — race-mode tuning
  EndpointConfig       — per-endpoint config used in RouterConfig
  ProgressCheckpoint   — progress notification settings
  Strategy             — candidate ordering policies
  ChatRequest          — request model passed to route() / route_stream()
  RoutingResult        — result returned by route()
  RouteEvent           — event fired by the on_route callback
  BaseEndpoint         — subclass to add a custom backend
  CascadeRouterError   — base of every router exception
"""

from .router import CascadeRouter
from .config import (
    BudgetLimits,
    EndpointConfig,
    ProgressCheckpoint,
    RateLimits,
    RouterConfig,
    SpeculativeConfig,
)
from .models import (
    ChatRequest,
    ChatResponse,
    EndpointDescriptor,
    Message,
    ProgressUpdate,
    RouteEvent,
    RouterMetrics,
    RouterStatus,
    RoutingAttempt,
    RoutingDecision,
    RoutingResult,
    Strategy,
    TokenUsage,
    UsageSnapshot,
)
from .providers import BaseEndpoint
from .exceptions import (
    AllProvidersFailed,
    BudgetExceeded,
    CascadeRouterError,
    EndpointFailure,
    NoProvidersAvailable,
    NotInitialized,
    RateLimited,
    UnknownEndpointType,
)

__all__ = [
    "CascadeRouter",
    "RouterConfig",
    "BudgetLimits",
    "RateLimits",
    "SpeculativeConfig",
    "EndpointConfig",
    "ProgressCheckpoint",
    "ChatRequest",
    "ChatResponse",
    "EndpointDescriptor",
    "Message",
    "ProgressUpdate",
    "RouteEvent",
    "RouterMetrics",
    "RouterStatus",
    "RoutingAttempt",
    "RoutingDecision",
    "RoutingResult",
    "Strategy",
    "TokenUsage",
    "UsageSnapshot",
    "BaseEndpoint",
    "AllProvidersFailed",
    "BudgetExceeded",
    "CascadeRouterError",
    "EndpointFailure",
    "NoProvidersAvailable",
    "NotInitialized",
    "RateLimited",
    "UnknownEndpointType",
]

__version__ = "0.1.0"
