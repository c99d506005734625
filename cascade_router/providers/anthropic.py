# cascade_router/providers/anthropic.py
"""
Anthropic endpoint adapter.

Wraps an AsyncAnthropic client. Supports BYOC (pass an existing client)
or creates its own client from api_key.

Notes on message format
-----------------------
Anthropic's API separates the system message from the messages list and
requires max_tokens. This adapter transparently handles the conversion so
the router can use the uniform ChatRequest shape throughout.
"""

from __future__ import annotations

import asyncio
import inspect
import time
from typing import Any

import httpx

from ..constants import (
    AVAILABILITY_PROBE_TIMEOUT_SECONDS,
    DEFAULT_ANTHROPIC_MODEL,
    DEFAULT_OUTPUT_TOKENS,
)
from ..models import ChatRequest, ChatResponse, EndpointDescriptor
from .base import BaseEndpoint, ChunkCallback


class AnthropicEndpoint(BaseEndpoint):
    """Adapter wrapping anthropic.AsyncAnthropic."""

    def __init__(
        self,
        descriptor: EndpointDescriptor,
        api_key: str | None = None,
        base_url: str | None = None,
        client: Any = None,  # BYOC
    ) -> None:
        super().__init__(descriptor)
        self._model = descriptor.model or DEFAULT_ANTHROPIC_MODEL

        if client is not None:
            self._client = client
        else:
            try:
                import anthropic  # type: ignore[import]
            except ImportError as exc:
                raise ImportError(
                    "anthropic package is required for AnthropicEndpoint. "
                    "Install it with: pip install 'cascade-router[anthropic]'"
                ) from exc
            self._client = anthropic.AsyncAnthropic(
                api_key=api_key,
                base_url=base_url,
                max_retries=0,
                http_client=httpx.AsyncClient(
                    limits=httpx.Limits(max_connections=100, max_keepalive_connections=20)
                ),
            )

    async def is_available(self) -> bool:
        try:
            await asyncio.wait_for(self._client.models.list(), AVAILABILITY_PROBE_TIMEOUT_SECONDS)
        except Exception:
            return False
        return True

    def _split_messages(
        self, request: ChatRequest
    ) -> tuple[str | None, list[dict[str, Any]]]:
        """Extract optional system message; return (system, user_messages)."""
        system: str | None = None
        filtered: list[dict[str, Any]] = []
        for msg in self.build_messages(request):
            if msg["role"] == "system":
                system = msg["content"]
            else:
                filtered.append(msg)
        return system, filtered

    def _params(self, request: ChatRequest) -> dict[str, Any]:
        system, filtered = self._split_messages(request)
        params: dict[str, Any] = {
            "model": self._model,
            "messages": filtered,
            "max_tokens": request.max_tokens or DEFAULT_OUTPUT_TOKENS,
        }
        if request.temperature is not None:
            params["temperature"] = request.temperature
        if system:
            params["system"] = system
        return params

    async def chat(self, request: ChatRequest) -> ChatResponse:
        t0 = time.monotonic()
        response = await self._client.messages.create(**self._params(request))
        content = "".join(
            block.text for block in response.content if getattr(block, "type", "text") == "text"
        )
        return self.build_response(
            content=content,
            model=response.model or self._model,
            input_tokens=response.usage.input_tokens,
            output_tokens=response.usage.output_tokens,
            duration_ms=(time.monotonic() - t0) * 1000,
            finish_reason=response.stop_reason or "stop",
        )

    async def chat_stream(self, request: ChatRequest, on_chunk: ChunkCallback) -> ChatResponse:
        t0 = time.monotonic()
        parts: list[str] = []
        async with self._client.messages.stream(**self._params(request)) as stream:
            async for text in stream.text_stream:
                parts.append(text)
                result = on_chunk(text)
                if inspect.isawaitable(result):
                    await result
            final = await stream.get_final_message()

        return self.build_response(
            content="".join(parts),
            model=final.model or self._model,
            input_tokens=final.usage.input_tokens,
            output_tokens=final.usage.output_tokens,
            duration_ms=(time.monotonic() - t0) * 1000,
            finish_reason=final.stop_reason or "stop",
        )

    async def close(self) -> None:
        close = getattr(self._client, "close", None)
        if close is not None:
            await close()
