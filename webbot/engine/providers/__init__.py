"""Inference backends for the agent runner."""
from .base import BackendChunk, ChatBackend, ToolCallFragment, Usage
from .openai_provider import OpenAIChatBackend
from .registry import build_backend, list_providers

__all__ = [
    "BackendChunk",
    "ChatBackend",
    "ToolCallFragment",
    "Usage",
    "OpenAIChatBackend",
    "build_backend",
    "list_providers",
]
