# cascade_router/providers/openai.py
"""
OpenAI endpoint adapter.

Wraps an AsyncOpenAI client. The factory builds this adapter when the
config either:
  a) Provides api_key in EndpointConfig (adapter creates its own client), or
  b) The developer passes client=... — BYOC mode (adapter uses the
     supplied client directly).

Also serves any OpenAI-compatible API via base_url.
"""

from __future__ import annotations

import asyncio
import inspect
import time
from typing import Any

import httpx

from ..constants import AVAILABILITY_PROBE_TIMEOUT_SECONDS, DEFAULT_OPENAI_MODEL
from ..engine.estimator import count_tokens, estimate_text_tokens
from ..models import ChatRequest, ChatResponse, EndpointDescriptor
from .base import BaseEndpoint, ChunkCallback


class OpenAIEndpoint(BaseEndpoint):
    """Adapter wrapping openai.AsyncOpenAI."""

    def __init__(
        self,
        descriptor: EndpointDescriptor,
        api_key: str | None = None,
        base_url: str | None = None,
        client: Any = None,  # pre-configured AsyncOpenAI (BYOC)
    ) -> None:
        super().__init__(descriptor)
        self._model = descriptor.model or DEFAULT_OPENAI_MODEL

        if client is not None:
            self._client = client
        else:
            try:
                import openai  # type: ignore[import]
            except ImportError as exc:
                raise ImportError(
                    "openai package is required for OpenAIEndpoint. "
                    "Install it with: pip install 'cascade-router[openai]'"
                ) from exc
            self._client = openai.AsyncOpenAI(
                api_key=api_key,
                base_url=base_url,
                max_retries=0,  # the router handles retries via fallback
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

    async def chat(self, request: ChatRequest) -> ChatResponse:
        t0 = time.monotonic()
        response = await self._client.chat.completions.create(**self._params(request))
        choice = response.choices[0]
        content = choice.message.content or ""
        return self.build_response(
            content=content,
            model=response.model or self._model,
            input_tokens=response.usage.prompt_tokens,
            output_tokens=response.usage.completion_tokens,
            duration_ms=(time.monotonic() - t0) * 1000,
            finish_reason=choice.finish_reason or "stop",
        )

    async def chat_stream(self, request: ChatRequest, on_chunk: ChunkCallback) -> ChatResponse:
        t0 = time.monotonic()
        stream = await self._client.chat.completions.create(
            **self._params(request),
            stream=True,
            stream_options={"include_usage": True},
        )
        parts: list[str] = []
        finish_reason = "stop"
        usage = None
        model = self._model
        async for chunk in stream:
            model = getattr(chunk, "model", None) or model
            if getattr(chunk, "usage", None) is not None:
                usage = chunk.usage
            if not chunk.choices:
                continue
            choice = chunk.choices[0]
            if choice.finish_reason:
                finish_reason = choice.finish_reason
            delta = choice.delta.content
            if delta:
                parts.append(delta)
                result = on_chunk(delta)
                if inspect.isawaitable(result):
                    await result

        content = "".join(parts)
        if usage is not None:
            input_tokens, output_tokens = usage.prompt_tokens, usage.completion_tokens
        else:
            input_tokens = sum(self.estimate_tokens(m["content"]) for m in self.build_messages(request))
            output_tokens = self.estimate_tokens(content)
        return self.build_response(
            content=content,
            model=model,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            duration_ms=(time.monotonic() - t0) * 1000,
            finish_reason=finish_reason,
        )

    def estimate_tokens(self, text: str) -> int:
        try:
            return count_tokens(text)
        except Exception:
            # tiktoken fetches its encoding on first use; offline hosts fall back
            return estimate_text_tokens(text)

    async def close(self) -> None:
        close = getattr(self._client, "close", None)
        if close is not None:
            await close()

    def _params(self, request: ChatRequest) -> dict[str, Any]:
        params: dict[str, Any] = {
            "model": self._model,
            "messages": self.build_messages(request),
        }
        if request.max_tokens is not None:
            params["max_tokens"] = request.max_tokens
        if request.temperature is not None:
            params["temperature"] = request.temperature
        return params
