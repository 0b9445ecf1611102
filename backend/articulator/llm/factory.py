"""
Provider registry - builds the configured generative-AI provider.
"""

import logging
from typing import Any, Dict, Optional, Type

from .base import LLMProvider
from .gemini_provider import GeminiProvider

logger = logging.getLogger(__name__)

PROVIDERS: Dict[str, Type[LLMProvider]] = {
    "gemini": GeminiProvider,
}


def create_llm_provider(
    provider: str = "gemini",
    api_key: str = "",
    model: Optional[str] = None,
    base_url: Optional[str] = None,
    **kwargs
) -> Optional[LLMProvider]:
    """
    Instantiate a registered provider.

    Unset ``model``/``base_url`` fall back to the provider's own defaults.

    Returns:
        The provider, or None when no API key is configured

    Raises:
        ValueError: Unknown provider name
    """
    provider_cls = PROVIDERS.get(provider.lower())
    if provider_cls is None:
        raise ValueError(f"Unsupported LLM provider: {provider}")
    if not api_key:
        logger.warning(f"No API key for {provider}, analysis is disabled")
        return None

    overrides = {name: value for name, value in (("model", model), ("base_url", base_url)) if value}
    return provider_cls(api_key=api_key, **overrides, **kwargs)


def provider_from_settings(config: Any) -> Optional[LLMProvider]:
    """Build the provider described by the ``llm_*`` settings."""
    return create_llm_provider(
        provider=config.llm_provider,
        api_key=config.llm_api_key or "",
        model=config.llm_model,
        base_url=config.llm_base_url,
        default_temperature=config.llm_temperature,
        default_max_tokens=config.llm_max_tokens,
        timeout=config.llm_timeout,
    )
