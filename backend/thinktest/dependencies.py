"""
FastAPI dependencies: authentication, shared services and per-request services.

Shared services (GitHub client, rate limiter, cache) are process-wide
singletons; the validation service and Supabase client are built per request.
Tests replace any of these through ``app.dependency_overrides``.
"""

import logging
from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from supabase import Client

from thinktest.core.config import Settings, get_settings
from thinktest.core.redis_client import get_redis
from thinktest.exceptions import AuthenticationError, PermissionDeniedError
from thinktest.services.analysis import PluginAnalyzer
from thinktest.services.github.cache import RepositoryCache
from thinktest.services.github.client import GitHubClient
from thinktest.services.github.processor import RepositoryProcessor
from thinktest.services.github.rate_limiter import GitHubRateLimiter
from thinktest.services.github.validation import GitHubValidationService
from thinktest.services.test_generation import TestGenerationService
from thinktest.supabase_client import get_supabase_client

logger = logging.getLogger(__name__)

security = HTTPBearer(auto_error=False)

# Cookie set by the auth frontend
COOKIE_NAME_ACCESS = "sb_access_token"


# =============================================================================
# Authentication
# =============================================================================

def get_access_token(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> Optional[str]:
    """Access token from the HttpOnly cookie, falling back to the bearer header."""
    token = request.cookies.get(COOKIE_NAME_ACCESS)
    if token:
        return token
    if credentials:
        return credentials.credentials
    return None


def verify_auth(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
):
    """
    Verify authentication from either cookie or Authorization header.
    Prioritizes cookie-based auth, falls back to header-based auth.
    """
    candidates = [request.cookies.get(COOKIE_NAME_ACCESS)]
    if credentials:
        candidates.append(credentials.credentials)
    candidates = [token for token in candidates if token]
    if not candidates:
        raise AuthenticationError()

    auth_client = get_supabase_client()
    for token in candidates:
        try:
            user_response = auth_client.auth.get_user(token)
        except Exception as e:
            logger.debug(f"Token rejected by Supabase: {type(e).__name__}")
            continue
        if user_response and user_response.user:
            return user_response

    raise AuthenticationError()


def get_current_user_id(user=Depends(verify_auth)) -> str:
    return str(user.user.id)


# Supabase app_metadata is writable only with the service role key
ADMIN_ROLE = "admin"


def require_admin(user=Depends(verify_auth)) -> str:
    """Allow only users whose Supabase ``app_metadata.role`` is admin; returns the user id."""
    app_metadata = getattr(user.user, "app_metadata", None) or {}
    if app_metadata.get("role") != ADMIN_ROLE:
        logger.warning("Admin route refused", extra={"user_id": str(user.user.id)})
        raise PermissionDeniedError("Administrator access required")
    return str(user.user.id)


def get_user_supabase(access_token: Optional[str] = Depends(get_access_token)) -> Client:
    """Supabase client acting as the authenticated user (RLS applies)."""
    return get_supabase_client(access_token)


# =============================================================================
# Shared services (global singletons)
# =============================================================================

_github_client: Optional[GitHubClient] = None
_rate_limiter: Optional[GitHubRateLimiter] = None
_repository_cache: Optional[RepositoryCache] = None


def get_github_client() -> GitHubClient:
    """Get the global GitHubClient instance."""
    global _github_client
    if _github_client is None:
        _github_client = GitHubClient(get_settings())
    return _github_client


async def close_github_client() -> None:
    global _github_client
    if _github_client is not None:
        await _github_client.aclose()
        _github_client = None


def get_rate_limiter() -> GitHubRateLimiter:
    """Get the global GitHubRateLimiter instance."""
    global _rate_limiter
    if _rate_limiter is None:
        settings = get_settings()
        _rate_limiter = GitHubRateLimiter(
            get_redis(),
            per_minute=settings.rate_limit_requests_per_minute,
            per_hour=settings.rate_limit_requests_per_hour,
        )
    return _rate_limiter


def get_repository_cache() -> RepositoryCache:
    """Get the global RepositoryCache instance."""
    global _repository_cache
    if _repository_cache is None:
        _repository_cache = RepositoryCache(get_redis(), get_settings())
    return _repository_cache


# =============================================================================
# Per-request services
# =============================================================================

def get_validation_service(
    request: Request,
    settings: Settings = Depends(get_settings),
    rate_limiter: GitHubRateLimiter = Depends(get_rate_limiter),
) -> GitHubValidationService:
    """Validation service carrying the caller's IP and user agent for audit events."""
    return GitHubValidationService(
        settings,
        rate_limiter,
        ip_address=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent"),
    )


def enforce_rate_limit(
    user_id: str = Depends(get_current_user_id),
    validation: GitHubValidationService = Depends(get_validation_service),
) -> None:
    """Consume one request from the caller's GitHub budget (429 when exhausted)."""
    validation.validate_rate_limit(user_id)


def get_repository_processor(
    client: GitHubClient = Depends(get_github_client),
    validation: GitHubValidationService = Depends(get_validation_service),
    supabase: Client = Depends(get_user_supabase),
    settings: Settings = Depends(get_settings),
) -> RepositoryProcessor:
    return RepositoryProcessor(client, validation, supabase, concurrency=settings.file_fetch_concurrency)


def get_plugin_analyzer() -> PluginAnalyzer:
    return PluginAnalyzer()


def get_test_generation_service() -> TestGenerationService:
    return TestGenerationService()
