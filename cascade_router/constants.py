# cascade_router/constants.py
"""
Default constants for cascade-router.
All tunable values are centralised here so they can be overridden via RouterConfig
without touching internal logic.
"""

# ---------------------------------------------------------------------------
# Usage windows
# ---------------------------------------------------------------------------
RATE_WINDOW_SECONDS: float = 60.0
"""Duration of the rolling rate-limit window in seconds."""

DAILY_WINDOW_SECONDS: float = 24 * 60 * 60
"""Retention of the daily budget ledger."""

MONTHLY_WINDOW_SECONDS: float = 30 * 24 * 60 * 60
"""Retention of the monthly budget ledger (30 days, not a calendar month)."""

# ---------------------------------------------------------------------------
# Token / cost estimation
# ---------------------------------------------------------------------------
CHARS_PER_TOKEN: int = 4
"""Rough heuristic: one token is about four characters of English text."""

DEFAULT_OUTPUT_TOKENS: int = 500
"""Assumed completion size when a request does not set max_tokens."""

DEFAULT_ESTIMATE_COST_PER_MILLION: float = 1.0
"""Cost rate ($/M tokens) the limiter uses for pre-flight budget estimates."""

TOKENS_PER_MILLION: float = 1_000_000.0

DEFAULT_ALERT_THRESHOLD_PCT: float = 80.0
"""Budget percentage at which a warning is logged."""

# ---------------------------------------------------------------------------
# Balanced strategy: fixed normalisation, not derived from the candidate pool
# ---------------------------------------------------------------------------
BALANCED_W_COST: float = 0.4
BALANCED_W_SPEED: float = 0.3
BALANCED_W_QUALITY: float = 0.2
BALANCED_W_AVAILABILITY: float = 0.1

BALANCED_COST_CEILING: float = 100.0
BALANCED_LATENCY_CEILING_MS: float = 10_000.0
BALANCED_PRIORITY_CEILING: float = 100.0

# ---------------------------------------------------------------------------
# Speculative execution
# ---------------------------------------------------------------------------
DEFAULT_RACE_CANDIDATES: int = 2

SEQUENTIAL_TIME_FACTOR: float = 1.5
"""Assumed slowdown of a hypothetical sequential run relative to the race winner."""

# ---------------------------------------------------------------------------
# Timeouts
# ---------------------------------------------------------------------------
DEFAULT_TIMEOUT_SECONDS: float = 60.0
AVAILABILITY_PROBE_TIMEOUT_SECONDS: float = 5.0
LOCAL_PROBE_TIMEOUT_SECONDS: float = 2.0

# ---------------------------------------------------------------------------
# Progress monitor
# ---------------------------------------------------------------------------
PROGRESS_TICK_SECONDS: float = 1.0
PROGRESS_TOKENS_FOR_FULL: int = 1000
"""Token count treated as 100% by the in-progress percentage estimate (capped at 95)."""

# ---------------------------------------------------------------------------
# Endpoint defaults (used when a config entry omits them)
# ---------------------------------------------------------------------------
DEFAULT_OPENAI_MODEL: str = "gpt-4o-mini"
DEFAULT_ANTHROPIC_MODEL: str = "claude-3-haiku-20240307"
DEFAULT_OLLAMA_MODEL: str = "llama2"

DEFAULT_OPENAI_BASE_URL: str = "https://api.openai.com/v1"
DEFAULT_ANTHROPIC_BASE_URL: str = "https://api.anthropic.com"
DEFAULT_OLLAMA_BASE_URL: str = "http://localhost:11434"

DEFAULT_CONFIG_FILENAME: str = "cascade-router.yaml"
