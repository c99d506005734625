# cascade_router/engine/__init__.py
from .estimator import count_tokens, estimate_request_tokens, estimate_text_tokens
from .metrics import MetricsAggregator
from .monitor import ProgressMonitor
from .race import RaceOutcome, race_first_success
from .selector import CandidateSelector, balanced_score

__all__ = [
    "count_tokens",
    "estimate_request_tokens",
    "estimate_text_tokens",
    "MetricsAggregator",
    "ProgressMonitor",
    "RaceOutcome",
    "race_first_success",
    "CandidateSelector",
    "balanced_score",
]
