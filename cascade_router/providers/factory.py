# cascade_router/providers/factory.py
"""
Adapter factory — turns an EndpointConfig into a BaseEndpoint.

Keyed on EndpointConfig.type. "mcp" and "custom" endpoints have no
built-in adapter; implement a BaseEndpoint subclass and hand it to
CascadeRouter.register_endpoint() instead.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

from ..config import EndpointConfig
from ..exceptions import UnknownEndpointType
from .anthropic import AnthropicEndpoint
from .base import BaseEndpoint
from .ollama import OllamaEndpoint
from .openai import OpenAIEndpoint

# Map endpoint type → adapter class
_ENDPOINT_MAP: dict[str, type[BaseEndpoint]] = {
    "openai": OpenAIEndpoint,
    "anthropic": AnthropicEndpoint,
    "ollama": OllamaEndpoint,
}


def supported_types() -> list[str]:
    return list(_ENDPOINT_MAP)


def create_endpoint(config: EndpointConfig, client: Any = None) -> BaseEndpoint:
    """Build the adapter for *config*. *client* is passed through for BYOC."""
    adapter_cls = _ENDPOINT_MAP.get(config.type)
    if adapter_cls is None:
        raise UnknownEndpointType(
            f"No built-in adapter for endpoint type '{config.type}' (endpoint '{config.id}'). "
            f"Supported types: {supported_types()}. "
            "For custom endpoints, subclass BaseEndpoint and use register_endpoint()."
        )

    descriptor = config.descriptor()
    if adapter_cls is OllamaEndpoint:
        return OllamaEndpoint(descriptor, base_url=config.base_url, client=client)
    return adapter_cls(  # type: ignore[call-arg]
        descriptor,
        api_key=config.api_key,
        base_url=config.base_url,
        client=client,
    )


def create_endpoints(configs: Iterable[EndpointConfig]) -> list[BaseEndpoint]:
    """Build adapters for every enabled config, in order."""
    return [create_endpoint(c) for c in configs if c.enabled]
