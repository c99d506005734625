# cascade_router/engine/estimator.py
"""
Pre-flight token count estimation.

Two estimators live here:

  - estimate_text_tokens / estimate_request_tokens: the ~4 characters per
    token heuristic. Used by the usage limiter for budget projections and
    as the default adapter estimate. Cheap, dependency-free and
    deliberately rough.
  - count_tokens: tiktoken's cl100k_base encoding, used by OpenAI-compatible
    endpoints whose tokenizer it matches closely.
"""

from __future__ import annotations

import functools
import math

from ..constants import CHARS_PER_TOKEN, DEFAULT_OUTPUT_TOKENS
from ..models import ChatRequest

_ENCODING_NAME = "cl100k_base"


@functools.lru_cache(maxsize=1)
def _get_encoding():  # type: ignore[return]
    """Load the cl100k_base encoding once per process."""
    import tiktoken

    return tiktoken.get_encoding(_ENCODING_NAME)


def count_tokens(text: str) -> int:
    """Return the exact cl100k_base token count of *text*."""
    return len(_get_encoding().encode(text))


def estimate_text_tokens(text: str) -> int:
    """Estimate tokens in *text* as ceil(len / 4)."""
    return math.ceil(len(text) / CHARS_PER_TOKEN)


def estimate_request_tokens(request: ChatRequest) -> int:
    """
    Estimate the total tokens a request will consume.

    Counts the prompt and every prior turn, then adds the requested
    max_tokens (or DEFAULT_OUTPUT_TOKENS) for the completion.
    """
    total = estimate_text_tokens(request.prompt)
    for message in request.messages:
        total += estimate_text_tokens(message.content)
    total += request.max_tokens or DEFAULT_OUTPUT_TOKENS
    return total
