"""
Classification of GitHub API responses and transport failures.

Provides:
1. classify_response() - map a non-success httpx.Response to an AppException
2. classify_transport_error() - map an httpx transport failure to TransportError
3. parse_json() - decode a 2xx body, rejecting HTML login pages and other non-JSON
4. handle_github_error() - classify, log at the right level, return the exception

Usage:
    response = await self._http.get(url)
    if not response.is_success:
        raise handle_github_error(response, "fetch repository info", {"owner": owner})
    data = parse_json(response, "fetch repository info")
"""

import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional, Union

import httpx

from thinktest.exceptions import (
    AppException,
    GitHubAuthError,
    GitHubRateLimitError,
    MalformedResponseError,
    NotFoundError,
    ProviderError,
    RedirectError,
    TransportError,
    ValidationError,
)

logger = logging.getLogger(__name__)

HTML_INDICATORS = ("<!doctype", "<html", "<head>", "<body>", "<title>")
DEFAULT_RATE_LIMIT_WAIT = 3600
SERVER_ERROR_RETRY_AFTER = 300


# =============================================================================
# Response helpers
# =============================================================================

@dataclass
class RateLimitHeaders:
    """GitHub's rate-limit headers as sent on the response."""

    remaining: Optional[int] = None
    reset_at: Optional[int] = None
    retry_after: Optional[int] = None

    @classmethod
    def from_response(cls, response: httpx.Response) -> "RateLimitHeaders":
        return cls(
            remaining=_int_header(response, "X-RateLimit-Remaining"),
            reset_at=_int_header(response, "X-RateLimit-Reset"),
            retry_after=_int_header(response, "Retry-After"),
        )

    def seconds_until_reset(self) -> int:
        if self.retry_after is not None:
            return max(1, self.retry_after)
        if self.reset_at is not None:
            return max(1, self.reset_at - int(time.time()))
        return DEFAULT_RATE_LIMIT_WAIT


def _int_header(response: httpx.Response, name: str) -> Optional[int]:
    value = response.headers.get(name)
    if value is None:
        return None
    try:
        return int(value)
    except ValueError:
        return None


def is_html_response(text: str) -> bool:
    """Check whether a body is an HTML page: it opens with a tag carrying a common marker."""
    start = text.lstrip()[:200].lower() if text else ""
    if not start.startswith("<"):
        return False
    return any(marker in start for marker in HTML_INDICATORS)


def _error_text(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:500]
    if isinstance(body, dict):
        return str(body.get("message") or body)
    return str(body)


def _is_rate_limited(response: httpx.Response, headers: RateLimitHeaders) -> bool:
    if headers.remaining == 0 or headers.retry_after is not None:
        return True
    return "rate limit" in _error_text(response).lower()


# =============================================================================
# Classification
# =============================================================================

def classify_response(response: httpx.Response, operation: str = "GitHub request") -> AppException:
    """
    Map a non-2xx GitHub response to the matching error kind.

    Args:
        response: The httpx response
        operation: Human-readable action, used in messages

    Returns:
        AppException subclass instance (not raised)
    """
    status = response.status_code

    if 300 <= status < 400:
        location = response.headers.get("Location")
        return RedirectError(
            f"GitHub redirected the {operation} request" + (f" to {location}" if location else ""),
            location=location,
        )

    if status == 401:
        return GitHubAuthError("GitHub API authentication failed. Please check the configured GitHub token.")

    if status in (403, 429):
        headers = RateLimitHeaders.from_response(response)
        if status == 429 or _is_rate_limited(response, headers):
            return GitHubRateLimitError(
                "GitHub API rate limit exceeded. Please try again later.",
                retry_after=headers.seconds_until_reset(),
                reset_at=headers.reset_at,
            )
        return NotFoundError(
            "Access denied. The repository may be private or you may not have permission to access it.",
            error_code="GITHUB_ACCESS_DENIED",
        )

    if status == 404:
        return NotFoundError(
            "Repository not found. Please check the repository URL and ensure it exists.",
            error_code="GITHUB_NOT_FOUND",
        )

    if status == 409:
        return NotFoundError("Repository is empty", error_code="GITHUB_EMPTY_REPOSITORY")

    if status == 422:
        return ValidationError(
            f"GitHub rejected the request: {_error_text(response)}",
            error_code="GITHUB_VALIDATION_FAILED",
        )

    if status >= 500:
        return TransportError(
            "GitHub is experiencing issues. Please try again in a few minutes.",
            error_code="GITHUB_SERVER_ERROR",
            status_code=503,
            retry_after=SERVER_ERROR_RETRY_AFTER,
        )

    return ProviderError(
        f"Unexpected GitHub response (HTTP {status}) while trying to {operation}",
        error_code="GITHUB_UNKNOWN_ERROR",
    )


def classify_transport_error(e: Exception) -> TransportError:
    """Map an httpx transport exception to TransportError."""
    if isinstance(e, httpx.TimeoutException):
        return TransportError(
            "Request timed out. GitHub is slow to respond. Please try again.",
            error_code="NETWORK_TIMEOUT",
            status_code=504,
            retry_after=60,
        )

    return TransportError(
        "Network connection error while contacting GitHub. Please try again.",
        error_code="NETWORK_ERROR",
        status_code=503,
        retry_after=30,
    )


def handle_github_error(
    error: Union[httpx.Response, Exception],
    operation: str,
    context: Optional[Dict[str, Any]] = None,
) -> AppException:
    """
    Classify a failed response or transport exception and log it.

    Rate limits and transport failures log at WARNING, everything else at ERROR.

    Returns:
        AppException subclass instance to raise
    """
    if isinstance(error, httpx.Response):
        exc = classify_response(error, operation)
        detail = f"HTTP {error.status_code}"
    else:
        exc = classify_transport_error(error)
        detail = f"{type(error).__name__}: {error}"

    log_data = {"error_code": exc.error_code}
    if context:
        log_data.update(context)

    log_msg = f"GitHub {operation} failed ({detail}) | {log_data}"
    if isinstance(exc, (GitHubRateLimitError, TransportError, NotFoundError)):
        logger.warning(log_msg)
    else:
        logger.error(log_msg)

    return exc


def parse_json(response: httpx.Response, operation: str) -> Any:
    """
    Decode a successful response body as JSON.

    Raises:
        MalformedResponseError: body is HTML or otherwise not JSON
    """
    content_type = response.headers.get("Content-Type", "")
    text = response.text

    if "html" in content_type.lower() or is_html_response(text):
        logger.error(f"GitHub {operation} returned HTML instead of JSON | preview={text[:200]!r}")
        raise MalformedResponseError(
            "Received an HTML page instead of GitHub API data. This may indicate authentication or access issues."
        )

    try:
        return json.loads(text)
    except ValueError:
        logger.error(f"GitHub {operation} returned non-JSON content | preview={text[:200]!r}")
        raise MalformedResponseError()
