"""LLM module - provides unified interface for LLM API providers."""

from .base import LLMProvider, LLMMessage, RemoteFile, StreamChunk
from .gemini_provider import GeminiProvider
from .factory import create_llm_provider, provider_from_settings

__all__ = [
    'LLMProvider',
    'LLMMessage',
    'RemoteFile',
    'StreamChunk',
    'GeminiProvider',
    'create_llm_provider',
    'provider_from_settings',
]
