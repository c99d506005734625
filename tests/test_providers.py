# tests/test_providers.py
"""
Tests for the endpoint adapters and the adapter factory.

Vendor SDK clients are replaced by small fakes (BYOC mode) and the Ollama
HTTP API by httpx.MockTransport, so no network access is needed.
"""

from __future__ import annotations

import json
from types import SimpleNamespace

import httpx
import pytest

from cascade_router.config import EndpointConfig
from cascade_router.exceptions import UnknownEndpointType
from cascade_router.models import ChatRequest, EndpointDescriptor, Message
from cascade_router.providers import (
    AnthropicEndpoint,
    OllamaEndpoint,
    OpenAIEndpoint,
    create_endpoint,
    create_endpoints,
)


def _descriptor(endpoint_id: str = "ep", cost: float = 2.0, model: str | None = None) -> EndpointDescriptor:
    return EndpointDescriptor(id=endpoint_id, cost_per_million_tokens=cost, model=model, timeout_seconds=5)


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


class FakeOpenAIClient:
    def __init__(self, content: str = "Hi there", fail_models: bool = False) -> None:
        self.calls: list[dict] = []
        self.closed = False
        self._content = content
        self._fail_models = fail_models
        self.chat = SimpleNamespace(completions=SimpleNamespace(create=self._create))
        self.models = SimpleNamespace(list=self._list_models)

    async def _list_models(self):
        if self._fail_models:
            raise ConnectionError("unreachable")
        return []

    async def _create(self, **params):
        self.calls.append(params)
        if params.get("stream"):
            return self._stream()
        return SimpleNamespace(
            model="gpt-test",
            choices=[
                SimpleNamespace(
                    message=SimpleNamespace(content=self._content), finish_reason="stop"
                )
            ],
            usage=SimpleNamespace(prompt_tokens=11, completion_tokens=4),
        )

    async def _stream(self):
        for piece in ("Hi", " there"):
            yield SimpleNamespace(
                model="gpt-test",
                usage=None,
                choices=[SimpleNamespace(delta=SimpleNamespace(content=piece), finish_reason=None)],
            )
        yield SimpleNamespace(
            model="gpt-test",
            usage=None,
            choices=[SimpleNamespace(delta=SimpleNamespace(content=None), finish_reason="stop")],
        )
        yield SimpleNamespace(
            model="gpt-test",
            usage=SimpleNamespace(prompt_tokens=11, completion_tokens=2),
            choices=[],
        )

    async def close(self):
        self.closed = True


class FakeAnthropicStream:
    def __init__(self) -> None:
        self.text_stream = self._text()

    async def _text(self):
        for piece in ("Bonjour", "!"):
            yield piece

    async def get_final_message(self):
        return SimpleNamespace(
            model="claude-test",
            stop_reason="end_turn",
            usage=SimpleNamespace(input_tokens=8, output_tokens=3),
        )

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False


class FakeAnthropicClient:
    def __init__(self) -> None:
        self.calls: list[dict] = []
        self.messages = SimpleNamespace(create=self._create, stream=self._stream)
        self.models = SimpleNamespace(list=self._list_models)

    async def _list_models(self):
        return []

    async def _create(self, **params):
        self.calls.append(params)
        return SimpleNamespace(
            model="claude-test",
            content=[SimpleNamespace(type="text", text="Bonjour!")],
            stop_reason="end_turn",
            usage=SimpleNamespace(input_tokens=8, output_tokens=3),
        )

    def _stream(self, **params):
        self.calls.append(params)
        return FakeAnthropicStream()


def _ollama(handler) -> OllamaEndpoint:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return OllamaEndpoint(
        EndpointDescriptor(id="local", cost_per_million_tokens=0.0, model="llama2"),
        base_url="http://ollama.test",
        client=client,
    )


# ---------------------------------------------------------------------------
# OpenAI
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
class TestOpenAIEndpoint:
    async def test_chat(self):
        client = FakeOpenAIClient()
        endpoint = OpenAIEndpoint(_descriptor(model="gpt-test"), client=client)
        response = await endpoint.chat(ChatRequest(prompt="Hello", max_tokens=50))
        assert response.content == "Hi there"
        assert response.endpoint == "ep"
        assert response.tokens.total == 15
        assert response.cost == pytest.approx(15 / 1_000_000 * 2.0)
        assert client.calls[0]["max_tokens"] == 50
        assert "temperature" not in client.calls[0]
        assert client.calls[0]["messages"][-1] == {"role": "user", "content": "Hello"}

    async def test_prior_turns_precede_prompt(self):
        client = FakeOpenAIClient()
        endpoint = OpenAIEndpoint(_descriptor(), client=client)
        request = ChatRequest(
            prompt="And now?",
            messages=[Message(role="system", content="Be brief"), Message(role="user", content="Hi")],
        )
        await endpoint.chat(request)
        roles = [m["role"] for m in client.calls[0]["messages"]]
        assert roles == ["system", "user", "user"]

    async def test_stream(self):
        client = FakeOpenAIClient()
        endpoint = OpenAIEndpoint(_descriptor(), client=client)
        chunks: list[str] = []
        response = await endpoint.chat_stream(ChatRequest(prompt="Hello"), chunks.append)
        assert chunks == ["Hi", " there"]
        assert response.content == "Hi there"
        assert response.tokens.total == 13
        assert client.calls[0]["stream"] is True
        assert client.calls[0]["stream_options"] == {"include_usage": True}

    async def test_availability(self):
        assert await OpenAIEndpoint(_descriptor(), client=FakeOpenAIClient()).is_available()
        down = OpenAIEndpoint(_descriptor(), client=FakeOpenAIClient(fail_models=True))
        assert not await down.is_available()

    async def test_close(self):
        client = FakeOpenAIClient()
        await OpenAIEndpoint(_descriptor(), client=client).close()
        assert client.closed


# ---------------------------------------------------------------------------
# Anthropic
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
class TestAnthropicEndpoint:
    async def test_system_message_split(self):
        client = FakeAnthropicClient()
        endpoint = AnthropicEndpoint(_descriptor(model="claude-test"), client=client)
        request = ChatRequest(prompt="Hello", messages=[Message(role="system", content="Be brief")])
        response = await endpoint.chat(request)
        params = client.calls[0]
        assert params["system"] == "Be brief"
        assert params["messages"] == [{"role": "user", "content": "Hello"}]
        assert params["max_tokens"] == 500
        assert response.content == "Bonjour!"
        assert response.finish_reason == "end_turn"
        assert response.tokens.total == 11

    async def test_stream(self):
        client = FakeAnthropicClient()
        endpoint = AnthropicEndpoint(_descriptor(), client=client)
        chunks: list[str] = []

        async def on_chunk(text: str) -> None:
            chunks.append(text)

        response = await endpoint.chat_stream(ChatRequest(prompt="Hello", max_tokens=20), on_chunk)
        assert chunks == ["Bonjour", "!"]
        assert response.content == "Bonjour!"
        assert response.tokens.input == 8
        assert client.calls[0]["max_tokens"] == 20

    async def test_availability(self):
        assert await AnthropicEndpoint(_descriptor(), client=FakeAnthropicClient()).is_available()


# ---------------------------------------------------------------------------
# Ollama
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
class TestOllamaEndpoint:
    async def test_available_when_tags_respond(self):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/api/tags"
            return httpx.Response(200, json={"models": []})

        assert await _ollama(handler).is_available()

    async def test_unavailable_on_error_status(self):
        assert not await _ollama(lambda request: httpx.Response(500)).is_available()

    async def test_unavailable_when_unreachable(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        assert not await _ollama(handler).is_available()

    async def test_chat(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen.update(json.loads(request.content))
            return httpx.Response(
                200,
                json={
                    "model": "llama2",
                    "response": "Hi from llama",
                    "done": True,
                    "prompt_eval_count": 5,
                    "eval_count": 7,
                },
            )

        endpoint = _ollama(handler)
        response = await endpoint.chat(ChatRequest(prompt="Hello", max_tokens=64, temperature=0.2))
        assert response.content == "Hi from llama"
        assert response.tokens.total == 12
        assert response.cost == 0.0
        assert response.finish_reason == "stop"
        assert seen["stream"] is False
        assert seen["prompt"] == "Hello"
        assert seen["options"] == {"temperature": 0.2, "num_predict": 64}

    async def test_chat_estimates_missing_counts(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"response": "12345678", "done": False})

        response = await _ollama(handler).chat(ChatRequest(prompt="abcd"))
        assert response.tokens.input == 1
        assert response.tokens.output == 2
        assert response.finish_reason == "length"

    async def test_chat_raises_on_http_error(self):
        endpoint = _ollama(lambda request: httpx.Response(404, json={"error": "model not found"}))
        with pytest.raises(httpx.HTTPStatusError):
            await endpoint.chat(ChatRequest(prompt="Hello"))

    async def test_stream_ndjson(self):
        lines = [
            {"model": "llama2", "response": "Hel", "done": False},
            {"model": "llama2", "response": "lo", "done": False},
            {"model": "llama2", "response": "", "done": True, "prompt_eval_count": 3, "eval_count": 2},
        ]
        body = "\n".join(json.dumps(line) for line in lines) + "\n"

        def handler(request: httpx.Request) -> httpx.Response:
            assert json.loads(request.content)["stream"] is True
            return httpx.Response(200, content=body.encode())

        chunks: list[str] = []
        response = await _ollama(handler).chat_stream(ChatRequest(prompt="Hi"), chunks.append)
        assert chunks == ["Hel", "lo"]
        assert response.content == "Hello"
        assert response.tokens.total == 5
        assert response.finish_reason == "stop"

    async def test_stream_error_line_raises(self):
        body = json.dumps({"error": "out of memory"}) + "\n"
        endpoint = _ollama(lambda request: httpx.Response(200, content=body.encode()))
        with pytest.raises(RuntimeError, match="out of memory"):
            await endpoint.chat_stream(ChatRequest(prompt="Hi"), lambda chunk: None)

    async def test_prompt_includes_prior_turns(self):
        endpoint = _ollama(lambda request: httpx.Response(200))
        request = ChatRequest(prompt="Next?", messages=[Message(role="assistant", content="Done.")])
        assert endpoint.build_prompt(request) == "assistant: Done.\nuser: Next?"


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------


class TestFactory:
    def test_builds_ollama(self):
        endpoint = create_endpoint(
            EndpointConfig(id="local", type="ollama", cost_per_million_tokens=0, priority=3)
        )
        assert isinstance(endpoint, OllamaEndpoint)
        assert endpoint.descriptor.priority == 3

    def test_byoc_client_passed_through(self):
        client = FakeOpenAIClient()
        endpoint = create_endpoint(EndpointConfig(id="gpt", type="openai"), client=client)
        assert isinstance(endpoint, OpenAIEndpoint)
        assert endpoint._client is client

    @pytest.mark.parametrize("endpoint_type", ["custom", "mcp"])
    def test_unbuildable_types(self, endpoint_type):
        with pytest.raises(UnknownEndpointType, match="register_endpoint"):
            create_endpoint(EndpointConfig(id="x", type=endpoint_type))

    def test_disabled_configs_skipped(self):
        endpoints = create_endpoints(
            [
                EndpointConfig(id="on", type="ollama"),
                EndpointConfig(id="off", type="ollama", enabled=False),
            ]
        )
        assert [e.id for e in endpoints] == ["on"]
