"""
Classification of OpenAI SDK failures.

Usage:
    try:
        response = await client.chat.completions.create(...)
    except Exception as e:
        raise handle_openai_error(e, "chat completion", context={"model": model})
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from openai import (
    APIConnectionError,
    APIStatusError,
    APITimeoutError,
    AuthenticationError as OpenAIAuthError,
    BadRequestError,
    NotFoundError as OpenAINotFoundError,
    RateLimitError as OpenAIRateLimitError,
)

from thinktest.exceptions import ExternalServiceError

logger = logging.getLogger(__name__)


@dataclass
class AIErrorInfo:
    """Structured details of an AI provider failure."""

    error_type: str  # "rate_limit", "authentication", "timeout", ...
    message: str
    status_code: Optional[int] = None
    request_id: Optional[str] = None

    def to_log_dict(self) -> Dict[str, Any]:
        return {
            k: v
            for k, v in {
                "error_type": self.error_type,
                "status_code": self.status_code,
                "request_id": self.request_id,
            }.items()
            if v is not None
        }


def _extract_error_message(e: APIStatusError) -> Optional[str]:
    if isinstance(e.body, dict):
        error = e.body.get("error", {})
        if isinstance(error, dict):
            return error.get("message")
        if isinstance(error, str):
            return error
        return e.body.get("msg") or e.body.get("message")
    return None


def classify_openai_error(e: Exception) -> AIErrorInfo:
    if isinstance(e, OpenAIRateLimitError):
        return AIErrorInfo("rate_limit", "provider rate limit exceeded", e.status_code, getattr(e, "request_id", None))

    if isinstance(e, OpenAIAuthError):
        return AIErrorInfo("authentication", "API key is invalid or expired", e.status_code, getattr(e, "request_id", None))

    if isinstance(e, BadRequestError):
        return AIErrorInfo("bad_request", _extract_error_message(e) or "invalid request", e.status_code)

    if isinstance(e, OpenAINotFoundError):
        return AIErrorInfo("not_found", "model or resource not found", e.status_code)

    if isinstance(e, APITimeoutError):
        return AIErrorInfo("timeout", "request timed out")

    if isinstance(e, APIConnectionError):
        return AIErrorInfo("connection", "could not connect to the provider")

    if isinstance(e, APIStatusError):
        return AIErrorInfo("api_error", _extract_error_message(e) or f"HTTP {e.status_code}", e.status_code)

    return AIErrorInfo("unknown", f"{type(e).__name__}: {e}" if str(e) else type(e).__name__)


def handle_openai_error(
    e: Exception,
    operation: str,
    service: str = "AI provider",
    context: Optional[Dict[str, Any]] = None,
) -> ExternalServiceError:
    """Classify, log and wrap an OpenAI SDK exception."""
    info = classify_openai_error(e)

    log_data = info.to_log_dict()
    if context:
        log_data.update(context)

    log_msg = f"{operation} failed: {info.message} | {log_data}"
    if info.error_type in ("rate_limit", "timeout", "connection"):
        logger.warning(log_msg)
    else:
        logger.error(log_msg)

    return ExternalServiceError(service, info.message)
