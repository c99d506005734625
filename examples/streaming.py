# examples/streaming.py
"""
Streaming chat completion with progress checkpoints.

Run with:
  python examples/streaming.py
"""

import asyncio
import os

from cascade_router import CascadeRouter, ChatRequest, ProgressCheckpoint, RouterConfig


def on_progress(update):
    print(f"\n[{update.status}] {update.endpoint}: {update.tokens_used} tokens, ~{update.percentage:.0f}%")


async def main():
    config = RouterConfig.from_dict(
        {
            "strategy": "speed",
            "endpoints": [
                {
                    "id": "openai",
                    "type": "openai",
                    "api_key": os.environ["OPENAI_API_KEY"],
                    "model": "gpt-4o-mini",
                    "latency_ms": 500,
                },
                {"id": "ollama", "type": "ollama", "model": "llama2", "latency_ms": 2000},
            ],
        },
        checkpoints=[ProgressCheckpoint(token_interval=50, time_interval_seconds=2, callback=on_progress)],
    )

    async with CascadeRouter(config) as router:
        print("Streaming response:\n")
        result = await router.route_stream(
            ChatRequest(prompt="Tell me a short story about a robot.", stream=True),
            lambda chunk: print(chunk, end="", flush=True),
        )
        print(f"\n\nServed by {result.endpoint} in {result.total_duration_ms:.0f}ms")


if __name__ == "__main__":
    asyncio.run(main())
