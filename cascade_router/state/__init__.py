# cascade_router/state/__init__.py
from .limiter import Reservation, UsageEntry, UsageLimiter

__all__ = ["Reservation", "UsageEntry", "UsageLimiter"]
