"""
Chat completion client for OpenAI-compatible providers.
"""

import logging
from typing import Any, Dict, List

import httpx
from openai import AsyncOpenAI, APIConnectionError, APIStatusError, APITimeoutError

from thinktest.exceptions import ExternalServiceError
from thinktest.services.ai.errors import handle_openai_error

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = httpx.Timeout(90.0, connect=30.0)
DEFAULT_MAX_RETRIES = 2


class ChatClient:
    """
    Chat Completion client.

    Usage:
        client = ChatClient(api_key, api_base, model)
        response = await client.complete(messages)
    """

    def __init__(self, api_key: str, api_base: str, model: str, provider: str = "openai"):
        self._client = AsyncOpenAI(
            api_key=api_key,
            base_url=api_base,
            timeout=DEFAULT_TIMEOUT,
            max_retries=DEFAULT_MAX_RETRIES,
        )
        self.model = model
        self.provider = provider

    async def complete(
        self,
        messages: List[Dict[str, Any]],
        temperature: float = 0.2,
        max_tokens: int = 4096,
    ) -> str:
        """
        Non-streaming completion.

        Raises:
            ExternalServiceError: the provider call failed
        """
        try:
            response = await self._client.chat.completions.create(
                model=self.model,
                messages=messages,
                temperature=temperature,
                max_tokens=max_tokens,
            )
            content = response.choices[0].message.content
            return content or ""
        except (APIStatusError, APIConnectionError, APITimeoutError) as e:
            raise handle_openai_error(
                e, "chat completion", f"{self.provider} API",
                context={"model": self.model},
            ) from e
        except Exception as e:
            logger.error(f"Unexpected error in chat completion: {type(e).__name__}: {e}")
            raise ExternalServiceError(f"{self.provider} API", type(e).__name__) from e
