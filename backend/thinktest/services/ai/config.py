"""
AI provider configuration from the environment.

Each provider is configured by three variables, e.g. for "openai":
OPENAI_API_KEY, OPENAI_API_BASE, OPENAI_MODEL.
"""

import os
from typing import Dict

from thinktest.exceptions import ConfigurationError

DEFAULT_API_BASE = "https://api.openai.com/v1"
DEFAULT_MODEL = "gpt-4o-mini"


def normalize_base_url(url: str) -> str:
    """
    Normalize an OpenAI-compatible base_url so it ends with /v1.

    Examples:
        https://api.example.com/v1/chat/completions -> https://api.example.com/v1
        https://api.example.com -> https://api.example.com/v1
        api.example.com/v1 -> https://api.example.com/v1
    """
    if not url:
        return url

    url = url.strip()

    if not url.startswith(("http://", "https://")):
        url = f"https://{url}"

    url = url.rstrip("/")

    for suffix in ("/chat/completions", "/completions"):
        if url.endswith(suffix):
            url = url[: -len(suffix)]
            break

    url = url.rstrip("/")

    if not url.endswith("/v1"):
        url = f"{url}/v1"

    return url


def get_provider_config(provider: str) -> Dict[str, str]:
    """
    Read api_key/api_base/model for a provider.

    Raises:
        ConfigurationError: when the provider's API key is not set
    """
    prefix = provider.upper().replace("-", "_")
    api_key = os.environ.get(f"{prefix}_API_KEY", "")
    if not api_key:
        raise ConfigurationError(provider, "API key")

    return {
        "api_key": api_key,
        "api_base": normalize_base_url(os.environ.get(f"{prefix}_API_BASE", DEFAULT_API_BASE)),
        "model": os.environ.get(f"{prefix}_MODEL", DEFAULT_MODEL),
    }
