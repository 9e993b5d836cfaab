"""
Custom exception classes for the application.

These exceptions are caught by global exception handlers in exception_handlers.py,
providing consistent error responses across all API endpoints.

Every error kind declares the fields it carries through ``to_response()``, so
callers never have to guess whether ``retry_after`` or ``location`` is present.

Usage:
    from thinktest.exceptions import NotFoundError, ResourceLimitError, ValidationError

    # In route handlers and services - just raise, no try-except needed
    raise NotFoundError("Repository not found")          # 404
    raise ValidationError("Invalid branch name: ..")     # 422
    raise ResourceLimitError("Too many files", "TOO_MANY_FILES", hint="reduce_scope")  # 429
"""

from typing import Any, Dict, List, Optional


class AppException(Exception):
    """
    Base exception class for application-level errors.

    All custom exceptions should inherit from this class.
    The global exception handler will catch these and return
    appropriate HTTP responses.

    Attributes:
        message: Human-readable error message
        status_code: HTTP status code to return
        error_code: Machine-readable error code for client handling
    """

    retry_possible: bool = False

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        error_code: str | None = None,
    ):
        self.message = message
        self.status_code = status_code
        self.error_code = error_code or f"ERR_{status_code}"
        super().__init__(message)

    def to_response(self) -> Dict[str, Any]:
        """Response body shared by every error kind."""
        return {
            "success": False,
            "message": self.message,
            "error_code": self.error_code,
            "retry_possible": self.retry_possible,
        }


class AuthenticationError(AppException):
    """Missing or invalid session (401)."""

    def __init__(self, message: str = "Not authenticated"):
        super().__init__(message=message, status_code=401, error_code="NOT_AUTHENTICATED")


class PermissionDeniedError(AppException):
    """Authenticated but not allowed (403)."""

    def __init__(self, message: str = "Permission denied"):
        super().__init__(message=message, status_code=403, error_code="PERMISSION_DENIED")


class ValidationError(AppException):
    """
    Malformed or unsafe input (422). Always a client-side fix, never retried.

    Usage:
        raise ValidationError("Repository URL cannot be empty")
        raise ValidationError("Invalid branch name: x..y", errors={"branch": [...]})
    """

    def __init__(
        self,
        message: str,
        error_code: str = "VALIDATION_ERROR",
        errors: Optional[Dict[str, List[str]]] = None,
    ):
        super().__init__(message=message, status_code=422, error_code=error_code)
        self.errors = errors or {}

    def to_response(self) -> Dict[str, Any]:
        body = super().to_response()
        if self.errors:
            body["errors"] = self.errors
        return body


class ResourceLimitError(AppException):
    """
    Repository too large, too many files, or rate limit exceeded (429).

    Always carries ``retry_after`` (seconds, or None when waiting won't help)
    and a ``hint``: "wait" when the budget refills on its own, "reduce_scope"
    when the request itself must shrink.
    """

    retry_possible = True

    def __init__(
        self,
        message: str,
        error_code: str = "RESOURCE_LIMIT_EXCEEDED",
        retry_after: Optional[int] = None,
        hint: Optional[str] = None,
    ):
        super().__init__(message=message, status_code=429, error_code=error_code)
        self.retry_after = retry_after
        self.hint = hint or ("wait" if retry_after else "reduce_scope")

    def to_response(self) -> Dict[str, Any]:
        body = super().to_response()
        body["retry_after"] = self.retry_after
        body["hint"] = self.hint
        return body


class GitHubRateLimitError(ResourceLimitError):
    """GitHub's own API quota is exhausted; ``reset_at`` is GitHub's epoch reset time."""

    def __init__(self, message: str, retry_after: Optional[int] = None, reset_at: Optional[int] = None):
        super().__init__(
            message=message,
            error_code="GITHUB_RATE_LIMIT",
            retry_after=retry_after,
            hint="wait",
        )
        self.reset_at = reset_at

    def to_response(self) -> Dict[str, Any]:
        body = super().to_response()
        body["reset_at"] = self.reset_at
        return body


class NotFoundError(AppException):
    """
    Repository, branch, or file does not exist or is inaccessible (404).

    Usage:
        raise NotFoundError("Repository not found")
        raise NotFoundError("Access denied", error_code="GITHUB_ACCESS_DENIED")
    """

    def __init__(self, message: str = "Resource not found", error_code: str = "NOT_FOUND"):
        super().__init__(message=message, status_code=404, error_code=error_code)


class ProviderError(AppException):
    """
    GitHub answered with something other than the API (500).

    Usually points at the service's own credential rather than a network blip,
    so the body carries a diagnostic distinct from a generic failure.
    """

    def __init__(
        self,
        message: str,
        error_code: str = "GITHUB_PROVIDER_ERROR",
        diagnostic: str | None = None,
    ):
        super().__init__(message=message, status_code=500, error_code=error_code)
        self.diagnostic = diagnostic or "Check the GitHub API token configured for this service"

    def to_response(self) -> Dict[str, Any]:
        body = super().to_response()
        body["diagnostic"] = self.diagnostic
        return body


class GitHubAuthError(ProviderError):
    """GitHub rejected the service token (401)."""

    def __init__(self, message: str = "GitHub API authentication failed"):
        super().__init__(
            message=message,
            error_code="GITHUB_AUTH_FAILED",
            diagnostic="The configured GitHub API token is missing, expired or revoked",
        )


class RedirectError(ProviderError):
    """GitHub redirected an API call, typically to a login or permission page."""

    def __init__(self, message: str, location: str | None = None):
        super().__init__(
            message=message,
            error_code="GITHUB_REDIRECT",
            diagnostic="GitHub redirected the request; this usually indicates an authentication or access problem",
        )
        self.location = location

    def to_response(self) -> Dict[str, Any]:
        body = super().to_response()
        body["location"] = self.location
        return body


class MalformedResponseError(ProviderError):
    """GitHub returned HTML or other non-JSON content where JSON was expected."""

    def __init__(self, message: str = "GitHub returned an unexpected non-JSON response"):
        super().__init__(
            message=message,
            error_code="GITHUB_MALFORMED_RESPONSE",
            diagnostic="Received an HTML page instead of API data; the credential may be redirected to a login page",
        )


class TransportError(AppException):
    """
    Network-level failure: timeout, connection refused, DNS, upstream 5xx.

    Eligible for a single client-driven retry after ``retry_after`` seconds.
    """

    retry_possible = True

    def __init__(
        self,
        message: str,
        error_code: str = "NETWORK_ERROR",
        status_code: int = 503,
        retry_after: int = 30,
    ):
        super().__init__(message=message, status_code=status_code, error_code=error_code)
        self.retry_after = retry_after

    def to_response(self) -> Dict[str, Any]:
        body = super().to_response()
        body["retry_after"] = self.retry_after
        return body


class ProcessingError(AppException):
    """
    Repository processing failed for a reason no other kind describes.

    Usage:
        raise ProcessingError("No supported files found in repository", "NO_SUPPORTED_FILES", 422)
    """

    def __init__(self, message: str, error_code: str = "PROCESSING_FAILED", status_code: int = 500):
        super().__init__(message=message, status_code=status_code, error_code=error_code)


class ConfigurationError(AppException):
    """
    Configuration missing or invalid (400).

    Usage:
        raise ConfigurationError("openai", "API key")  # "Please configure openai API key first"
    """

    def __init__(self, config_name: str, config_type: str = "configuration"):
        super().__init__(
            message=f"Please configure {config_name} {config_type} first",
            status_code=400,
            error_code="CONFIGURATION_MISSING",
        )


class ExternalServiceError(AppException):
    """
    External service error (502).

    Usage:
        raise ExternalServiceError("OpenAI API", "timeout")
    """

    retry_possible = True

    def __init__(self, service: str, reason: str | None = None):
        message = f"{service} error"
        if reason:
            message = f"{service} error: {reason}"
        super().__init__(
            message=message,
            status_code=502,
            error_code="EXTERNAL_SERVICE_ERROR",
        )
