"""
AI provider access for test generation.

Usage:
    from thinktest.services.ai import ChatClient, get_provider_config

    chat = ChatClient(**get_provider_config("openai"), provider="openai")
    response = await chat.complete(messages)
"""

from .clients import ChatClient
from .config import get_provider_config, normalize_base_url
from .errors import AIErrorInfo, classify_openai_error, handle_openai_error

__all__ = [
    "ChatClient",
    "get_provider_config",
    "normalize_base_url",
    "AIErrorInfo",
    "classify_openai_error",
    "handle_openai_error",
]
