# examples/byoc.py
"""
BYOC: Bring Your Own Client.

Keep your existing, fully configured SDK clients and let the router add
ordering, budgets and fallback on top.

Run with:
  python examples/byoc.py
"""

import asyncio
import os

import anthropic
import openai

from cascade_router import CascadeRouter, ChatRequest, EndpointDescriptor, RouterConfig
from cascade_router.providers import AnthropicEndpoint, OpenAIEndpoint


async def main():
    openai_client = openai.AsyncOpenAI(
        api_key=os.environ["OPENAI_API_KEY"],
        timeout=30,
        max_retries=0,  # the router falls back instead
    )
    anthropic_client = anthropic.AsyncAnthropic(
        api_key=os.environ["ANTHROPIC_API_KEY"],
        timeout=30,
    )

    router = CascadeRouter(RouterConfig(strategy="quality"))
    router.register_endpoint(OpenAIEndpoint(
        EndpointDescriptor(id="gpt-4o", model="gpt-4o", priority=2, cost_per_million_tokens=5, latency_ms=900),
        client=openai_client,
    ))
    router.register_endpoint(AnthropicEndpoint(
        EndpointDescriptor(
            id="claude-sonnet", model="claude-sonnet-4-5", priority=1, cost_per_million_tokens=6, latency_ms=1100
        ),
        client=anthropic_client,
    ))

    async with router:
        result = await router.route(ChatRequest(prompt="Hello, which model am I talking to?"))
        print(f"Endpoint: {result.endpoint}")
        print(f"Response: {result.response.content}")


if __name__ == "__main__":
    asyncio.run(main())
