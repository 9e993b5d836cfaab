"""
GitHub cache maintenance tasks.

The pruning logic lives in do_prune_cache() so it can be tested without a worker.
"""

import logging
from typing import Any, Dict

from thinktest.core.config import get_settings
from thinktest.core.redis_client import get_redis
from thinktest.services.github.cache import RepositoryCache

from .celery import app

logger = logging.getLogger(__name__)


def do_prune_cache(cache: RepositoryCache) -> Dict[str, Any]:
    """Delete cache entries past the retention window."""
    removed = cache.prune()
    logger.info(f"GitHub cache prune removed {removed} entries")
    return {"removed": removed}


@app.task(name="prune_github_cache")
def prune_github_cache():
    """
    Scheduled task: drop branch/tree cache entries older than the retention window.

    Runs every 15 minutes (Celery Beat).
    """
    try:
        return do_prune_cache(RepositoryCache(get_redis(), get_settings()))
    except Exception as e:
        logger.exception(f"Failed to prune GitHub cache: {e}")
        return {"removed": 0, "error": str(e)}
