# examples/quickstart.py
"""
Quickstart: cost-first routing via dict config.

A free local Ollama model is tried first; OpenAI takes over if it fails.

Run with:
  python examples/quickstart.py
"""

import asyncio
import os

from cascade_router import CascadeRouter, ChatRequest


async def main():
    router = CascadeRouter.from_dict({
        "strategy": "cost",
        "fallback_enabled": True,
        "timeout_seconds": 60,
        "budget": {"daily_cost": 5, "monthly_cost": 150, "alert_threshold": 80},
        "rate_limits": {"requests_per_minute": 60, "tokens_per_minute": 100_000, "concurrent_requests": 5},
        "endpoints": [
            {
                "id": "ollama",
                "type": "ollama",
                "priority": 20,
                "cost_per_million_tokens": 0,
                "latency_ms": 2000,
                "availability": 0.9,
                "base_url": "http://localhost:11434",
                "model": "llama2",
            },
            {
                "id": "openai",
                "type": "openai",
                "priority": 10,
                "cost_per_million_tokens": 0.15,
                "latency_ms": 500,
                "availability": 0.99,
                "api_key": os.environ["OPENAI_API_KEY"],
                "model": "gpt-4o-mini",
            },
        ],
    })

    async with router:
        result = await router.route(ChatRequest(
            prompt="Summarise the benefits of functional programming.",
            max_tokens=300,
        ))

        print(f"Content:   {result.response.content[:200]}...")
        print(f"Endpoint:  {result.endpoint}")
        print(f"Reasoning: {result.decision.reasoning}")
        print(f"Attempts:  {len(result.attempts)}")
        print(f"Tokens:    {result.response.tokens.total}")
        print(f"Cost:      ${result.total_cost:.6f}")

        usage = await router.get_usage_snapshot()
        print(f"\nDaily budget used:   {usage.daily_percentage:.1f}%")
        print(f"Monthly budget used: {usage.monthly_percentage:.1f}%")


if __name__ == "__main__":
    asyncio.run(main())
