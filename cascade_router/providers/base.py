# cascade_router/providers/base.py
"""
BaseEndpoint — abstract contract every endpoint adapter must implement.

An adapter wraps one LLM backend (a vendor SDK client or a raw HTTP API)
and exposes a uniform interface to the router. The router never calls
vendor SDKs directly; it always goes through an adapter.

This design means:
  - Vendor-specific request/response shaping is contained inside each adapter.
  - The router doesn't need to know about 429 vs ConnectionError vs
    vendor-specific status codes — any exception is a failed attempt.
  - Adding a new backend requires only implementing this interface.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import Any

from ..constants import TOKENS_PER_MILLION
from ..engine.estimator import estimate_text_tokens
from ..models import ChatRequest, ChatResponse, EndpointDescriptor, TokenUsage

ChunkCallback = Callable[[str], Any]
"""Receives each streamed text chunk in order."""


class BaseEndpoint(ABC):
    """
    Abstract base class for all endpoint adapters.

    Attributes
    ----------
    descriptor:
        Static routing attributes (cost, latency, priority, availability).
        Read-only for the router.
    """

    def __init__(self, descriptor: EndpointDescriptor) -> None:
        self._descriptor = descriptor

    @property
    def descriptor(self) -> EndpointDescriptor:
        return self._descriptor

    @property
    def id(self) -> str:
        return self._descriptor.id

    @abstractmethod
    async def is_available(self) -> bool:
        """Probe the backend. Must return False rather than raise."""

    @abstractmethod
    async def chat(self, request: ChatRequest) -> ChatResponse:
        """
        Send a non-streaming chat request.

        Raises
        ------
        Any exception from the underlying client. The router handles all
        exceptions from this method uniformly (records failure, tries next).
        """

    @abstractmethod
    async def chat_stream(self, request: ChatRequest, on_chunk: ChunkCallback) -> ChatResponse:
        """
        Send a streaming chat request.

        Calls *on_chunk* with each text chunk as it arrives and returns the
        assembled response once the stream ends. The same exception
        semantics as chat() apply.
        """

    def estimate_tokens(self, text: str) -> int:
        """Estimate tokens for *text*. Override when a real tokenizer is available."""
        return estimate_text_tokens(text)

    def get_max_tokens(self) -> int:
        return self._descriptor.max_tokens

    async def close(self) -> None:
        """Release any resources held by this adapter (HTTP clients, etc.)."""

    # ------------------------------------------------------------------
    # Helpers for subclasses
    # ------------------------------------------------------------------

    def calculate_cost(self, tokens: int) -> float:
        return tokens / TOKENS_PER_MILLION * self._descriptor.cost_per_million_tokens

    def build_response(
        self,
        content: str,
        model: str,
        input_tokens: int,
        output_tokens: int,
        duration_ms: float,
        finish_reason: str = "stop",
    ) -> ChatResponse:
        tokens = TokenUsage.of(input_tokens, output_tokens)
        return ChatResponse(
            content=content,
            model=model,
            endpoint=self.id,
            tokens=tokens,
            cost=self.calculate_cost(tokens.total),
            duration_ms=duration_ms,
            finish_reason=finish_reason,
        )

    @staticmethod
    def build_messages(request: ChatRequest) -> list[dict[str, str]]:
        """Prior turns followed by the prompt as the final user message, in OpenAI format."""
        messages = [{"role": m.role, "content": m.content} for m in request.messages]
        messages.append({"role": "user", "content": request.prompt})
        return messages

    def __repr__(self) -> str:  # pragma: no cover
        d = self._descriptor
        return (
            f"{self.__class__.__name__}("
            f"id={d.id!r}, model={d.model!r}, "
            f"cost_per_million_tokens={d.cost_per_million_tokens}, "
            f"latency_ms={d.latency_ms}, priority={d.priority}, enabled={d.enabled})"
        )
