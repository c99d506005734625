# cascade_router/providers/ollama.py
"""
Ollama endpoint adapter.

Talks to a local Ollama server over its HTTP API with a plain
httpx.AsyncClient — there is no SDK to wrap:

  GET  /api/tags      → availability probe
  POST /api/generate  → completion (stream=false) or NDJSON stream

Ollama does not bill, so cost is normally zero, and token counts are
estimated when the server omits prompt_eval_count / eval_count.
"""

from __future__ import annotations

import inspect
import json
import time
from typing import Any

import httpx

from ..constants import (
    DEFAULT_OLLAMA_BASE_URL,
    DEFAULT_OLLAMA_MODEL,
    LOCAL_PROBE_TIMEOUT_SECONDS,
)
from ..models import ChatRequest, ChatResponse, EndpointDescriptor
from .base import BaseEndpoint, ChunkCallback


class OllamaEndpoint(BaseEndpoint):
    """Adapter for a local Ollama server."""

    def __init__(
        self,
        descriptor: EndpointDescriptor,
        base_url: str | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        super().__init__(descriptor)
        self._model = descriptor.model or DEFAULT_OLLAMA_MODEL
        self._base_url = (base_url or DEFAULT_OLLAMA_BASE_URL).rstrip("/")
        self._client = client or httpx.AsyncClient(base_url=self._base_url)

    async def is_available(self) -> bool:
        try:
            response = await self._client.get(
                f"{self._base_url}/api/tags", timeout=LOCAL_PROBE_TIMEOUT_SECONDS
            )
        except httpx.HTTPError:
            return False
        return response.is_success

    def build_prompt(self, request: ChatRequest) -> str:
        """Flatten prior turns and the prompt into one text prompt."""
        lines = [f"{m.role}: {m.content}" for m in request.messages]
        lines.append(f"user: {request.prompt}" if request.messages else request.prompt)
        return "\n".join(lines)

    def _payload(self, request: ChatRequest, prompt: str, stream: bool) -> dict[str, Any]:
        options: dict[str, Any] = {}
        if request.temperature is not None:
            options["temperature"] = request.temperature
        if request.max_tokens is not None:
            options["num_predict"] = request.max_tokens
        return {"model": self._model, "prompt": prompt, "stream": stream, "options": options}

    async def chat(self, request: ChatRequest) -> ChatResponse:
        t0 = time.monotonic()
        prompt = self.build_prompt(request)
        response = await self._client.post(
            f"{self._base_url}/api/generate",
            json=self._payload(request, prompt, stream=False),
            timeout=self.descriptor.timeout_seconds,
        )
        response.raise_for_status()
        data = response.json()
        return self._finish(data, prompt, data.get("response", ""), t0)

    async def chat_stream(self, request: ChatRequest, on_chunk: ChunkCallback) -> ChatResponse:
        t0 = time.monotonic()
        prompt = self.build_prompt(request)
        parts: list[str] = []
        last: dict[str, Any] = {}
        async with self._client.stream(
            "POST",
            f"{self._base_url}/api/generate",
            json=self._payload(request, prompt, stream=True),
            timeout=self.descriptor.timeout_seconds,
        ) as response:
            response.raise_for_status()
            async for line in response.aiter_lines():
                if not line.strip():
                    continue
                data = json.loads(line)
                if "error" in data:
                    raise RuntimeError(f"Ollama error: {data['error']}")
                text = data.get("response", "")
                if text:
                    parts.append(text)
                    result = on_chunk(text)
                    if inspect.isawaitable(result):
                        await result
                last = data
                if data.get("done"):
                    break

        return self._finish(last, prompt, "".join(parts), t0)

    def _finish(self, data: dict[str, Any], prompt: str, content: str, t0: float) -> ChatResponse:
        input_tokens = data.get("prompt_eval_count") or self.estimate_tokens(prompt)
        output_tokens = data.get("eval_count") or self.estimate_tokens(content)
        return self.build_response(
            content=content,
            model=data.get("model") or self._model,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            duration_ms=(time.monotonic() - t0) * 1000,
            finish_reason=data.get("done_reason") or ("stop" if data.get("done") else "length"),
        )

    async def close(self) -> None:
        await self._client.aclose()
