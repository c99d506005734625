# cascade_router/providers/__init__.py
from .base import BaseEndpoint, ChunkCallback
from .factory import create_endpoint, create_endpoints, supported_types
from .openai import OpenAIEndpoint
from .anthropic import AnthropicEndpoint
from .ollama import OllamaEndpoint

__all__ = [
    "BaseEndpoint",
    "ChunkCallback",
    "create_endpoint",
    "create_endpoints",
    "supported_types",
    "OpenAIEndpoint",
    "AnthropicEndpoint",
    "OllamaEndpoint",
]
