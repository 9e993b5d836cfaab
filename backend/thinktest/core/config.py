"""
Application settings read from the environment.

Values come from process environment variables, with a local .env file
loaded first. Lists are comma or whitespace separated.

Usage:
    from thinktest.core.config import get_settings

    settings = get_settings()
    settings.max_repository_size  # 52428800
"""

import logging
import os
from dataclasses import dataclass
from functools import lru_cache
from typing import List, Tuple

from dotenv import find_dotenv, load_dotenv

_ = load_dotenv(find_dotenv())  # read local .env file

logger = logging.getLogger(__name__)

DEFAULT_SUPPORTED_EXTENSIONS = (
    ".php", ".js", ".jsx", ".ts", ".tsx", ".json", ".css", ".scss",
    ".txt", ".md", ".xml", ".yml", ".yaml", ".html",
)
DEFAULT_IGNORED_DIRECTORIES = ("vendor", "node_modules", ".git", ".github", "dist", "build")
DEFAULT_ALLOWED_DOMAINS = ("github.com", "www.github.com")


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning(f"Ignoring non-integer {name}={raw!r}, using {default}")
        return default


def _env_list(name: str, default: Tuple[str, ...]) -> Tuple[str, ...]:
    raw = os.environ.get(name)
    if not raw:
        return default
    items = [item.strip() for item in raw.replace(",", " ").split()]
    return tuple(item for item in items if item)


@dataclass(frozen=True)
class Settings:
    """GitHub ingestion, Redis and Supabase settings."""

    github_api_token: str = ""
    github_api_url: str = "https://api.github.com"
    github_timeout: int = 30

    max_repository_size: int = 52428800  # 50 MB
    max_files_per_repo: int = 1000
    rate_limit_requests_per_minute: int = 30
    rate_limit_requests_per_hour: int = 100

    allowed_domains: Tuple[str, ...] = DEFAULT_ALLOWED_DOMAINS
    supported_file_extensions: Tuple[str, ...] = DEFAULT_SUPPORTED_EXTENSIONS
    ignored_directories: Tuple[str, ...] = DEFAULT_IGNORED_DIRECTORIES

    cache_branches_minutes: int = 5
    cache_tree_minutes: int = 15
    cache_retention_hours: int = 24
    file_fetch_concurrency: int = 8

    redis_url: str = "redis://localhost:6379/0"
    supabase_url: str = ""
    supabase_anon_key: str = ""
    supabase_service_role_key: str = ""

    def configuration_gaps(self) -> List[str]:
        """Names of settings that are required in production but unset."""
        gaps = []
        if not self.github_api_token:
            gaps.append("GITHUB_API_TOKEN")
        if not self.supabase_url:
            gaps.append("SUPABASE_URL")
        if not self.supabase_anon_key:
            gaps.append("SUPABASE_ANON_KEY")
        return gaps

    def public_summary(self) -> dict:
        """Non-secret view used by the debug endpoint."""
        return {
            "api_url": self.github_api_url,
            "timeout": self.github_timeout,
            "token_configured": bool(self.github_api_token),
            "max_repository_size": self.max_repository_size,
            "max_files_per_repo": self.max_files_per_repo,
            "rate_limit_requests_per_minute": self.rate_limit_requests_per_minute,
            "rate_limit_requests_per_hour": self.rate_limit_requests_per_hour,
            "allowed_domains": list(self.allowed_domains),
            "supported_file_extensions": list(self.supported_file_extensions),
            "ignored_directories": list(self.ignored_directories),
        }


def load_settings() -> Settings:
    """Build a Settings instance from the current environment."""
    return Settings(
        github_api_token=os.environ.get("GITHUB_API_TOKEN", ""),
        github_api_url=os.environ.get("GITHUB_API_URL", "https://api.github.com").rstrip("/"),
        github_timeout=_env_int("GITHUB_TIMEOUT", 30),
        max_repository_size=_env_int("GITHUB_MAX_REPOSITORY_SIZE", 52428800),
        max_files_per_repo=_env_int("GITHUB_MAX_FILES_PER_REPO", 1000),
        rate_limit_requests_per_minute=_env_int("GITHUB_RATE_LIMIT_PER_MINUTE", 30),
        rate_limit_requests_per_hour=_env_int("GITHUB_RATE_LIMIT_PER_HOUR", 100),
        allowed_domains=tuple(d.lower() for d in _env_list("GITHUB_ALLOWED_DOMAINS", DEFAULT_ALLOWED_DOMAINS)),
        supported_file_extensions=tuple(
            ext.lower() if ext.startswith(".") else f".{ext.lower()}"
            for ext in _env_list("GITHUB_SUPPORTED_EXTENSIONS", DEFAULT_SUPPORTED_EXTENSIONS)
        ),
        ignored_directories=_env_list("GITHUB_IGNORED_DIRECTORIES", DEFAULT_IGNORED_DIRECTORIES),
        cache_branches_minutes=_env_int("GITHUB_CACHE_BRANCHES_MINUTES", 5),
        cache_tree_minutes=_env_int("GITHUB_CACHE_TREE_MINUTES", 15),
        cache_retention_hours=_env_int("GITHUB_CACHE_RETENTION_HOURS", 24),
        file_fetch_concurrency=max(1, _env_int("GITHUB_FILE_FETCH_CONCURRENCY", 8)),
        redis_url=os.environ.get("REDIS_URL", "redis://localhost:6379/0"),
        supabase_url=os.environ.get("SUPABASE_URL", ""),
        supabase_anon_key=os.environ.get("SUPABASE_ANON_KEY", ""),
        supabase_service_role_key=os.environ.get("SUPABASE_SERVICE_ROLE_KEY", ""),
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get the process-wide Settings instance."""
    return load_settings()
