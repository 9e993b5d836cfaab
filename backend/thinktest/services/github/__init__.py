"""
GitHub ingestion services.

Usage:
    from thinktest.services.github import GitHubClient, GitHubValidationService

    validation = GitHubValidationService(settings, rate_limiter)
    ref = validation.validate_repository_url("octocat/Hello-World")
    info = await client.get_repository_info(ref.owner, ref.repo)
"""

from .cache import RepositoryCache
from .client import GitHubClient
from .processor import RepositoryProcessor
from .rate_limiter import GitHubRateLimiter
from .structure import detect_plugin_structure
from .validation import GitHubValidationService

__all__ = [
    "GitHubClient",
    "GitHubRateLimiter",
    "GitHubValidationService",
    "RepositoryCache",
    "RepositoryProcessor",
    "detect_plugin_structure",
]
