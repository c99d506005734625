# tests/conftest.py
"""
Shared pytest fixtures for cascade-router tests.
"""

from __future__ import annotations

import pytest

from cascade_router.config import BudgetLimits, RateLimits
from cascade_router.models import EndpointDescriptor


@pytest.fixture
def descriptors():
    """Three endpoints whose cost, speed and quality orderings all differ."""
    return [
        EndpointDescriptor(
            id="cheap", cost_per_million_tokens=0.5, latency_ms=2000, priority=20, availability=0.9
        ),
        EndpointDescriptor(
            id="fast", cost_per_million_tokens=10.0, latency_ms=50, priority=10, availability=0.99
        ),
        EndpointDescriptor(
            id="smart", cost_per_million_tokens=30.0, latency_ms=800, priority=1, availability=0.99
        ),
    ]


@pytest.fixture
def daily_budget():
    return BudgetLimits(daily_cost=1.0, monthly_cost=30.0)


@pytest.fixture
def rate_limits():
    return RateLimits(requests_per_minute=2, tokens_per_minute=0)
