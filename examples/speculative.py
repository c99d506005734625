# examples/speculative.py
"""
Speculative execution: race the two fastest endpoints and keep the first
successful answer. The slower call is cancelled.

Run with:
  python examples/speculative.py
"""

import asyncio
import os

from cascade_router import CascadeRouter, ChatRequest, RouteEvent


def log_route(event: RouteEvent):
    print(f"-> {event.endpoint} ({event.strategy.value}) in {event.latency_ms:.0f}ms, ${event.cost:.6f}")


async def main():
    router = CascadeRouter.from_dict(
        {
            "strategy": "speculative",
            "timeout_seconds": 10,
            "speculative": {
                "candidate_count": 2,
                "candidate_strategy": "speed",
                "enable_cost_tracking": True,
                "max_cost_multiplier": 150,
            },
            "endpoints": [
                {
                    "id": "gpt-4o",
                    "type": "openai",
                    "priority": 1,
                    "cost_per_million_tokens": 5,
                    "latency_ms": 2000,
                    "availability": 0.95,
                    "api_key": os.environ["OPENAI_API_KEY"],
                    "model": "gpt-4o",
                },
                {
                    "id": "claude-haiku",
                    "type": "anthropic",
                    "priority": 2,
                    "cost_per_million_tokens": 4,
                    "latency_ms": 1500,
                    "availability": 0.98,
                    "api_key": os.environ["ANTHROPIC_API_KEY"],
                    "model": "claude-3-5-haiku-latest",
                },
                {
                    "id": "gpt-4o-mini",
                    "type": "openai",
                    "priority": 3,
                    "cost_per_million_tokens": 0.15,
                    "latency_ms": 800,
                    "availability": 0.99,
                    "api_key": os.environ["OPENAI_API_KEY"],
                    "model": "gpt-4o-mini",
                },
            ],
        },
        on_route=log_route,
    )

    async with router:
        for prompt in ("What is the capital of France?", "Explain quantum entanglement in one sentence."):
            result = await router.route(ChatRequest(prompt=prompt, max_tokens=100))
            print(f"{result.response.content}\n  {result.decision.reasoning}")
            print(f"  raced alongside: {', '.join(result.decision.alternatives) or 'nothing'}\n")

        race = router.get_metrics().race
        if race is not None:
            print(f"Races:               {race.total_races}")
            print(f"Avg time saved:      {race.avg_time_saved_ms:.0f}ms")
            print(f"Extra cost (total):  ${race.total_additional_cost:.6f}")
            print(f"Avg candidates:      {race.avg_candidates_raced:.1f}")


if __name__ == "__main__":
    asyncio.run(main())
