"""
Repository ingestion records (table ``github_repositories``).

One row per (user, full_name, branch); the processor moves it through
pending -> processing -> completed | failed.
"""

import logging
from typing import List, Optional

from thinktest.schemas.github import RepositoryInfo, RepositoryReference
from thinktest.services.db.base import BaseDbService, utc_now

logger = logging.getLogger(__name__)

STATUS_PENDING = "pending"
STATUS_PROCESSING = "processing"
STATUS_COMPLETED = "completed"
STATUS_FAILED = "failed"


class GitHubRepositoryService(BaseDbService):
    """Service for github_repositories database operations."""

    table_name = "github_repositories"
    conflict_key = "user_id,full_name,branch"

    def get_record(self, full_name: str, branch: str) -> Optional[dict]:
        return self._get_one({"full_name": full_name, "branch": branch})

    def get_by_id(self, record_id: str) -> Optional[dict]:
        return self._get_one({"id": record_id})

    def list_records(self, limit: int = 50) -> List[dict]:
        return self._get_many(order_by="updated_at", order_desc=True, limit=limit)

    def upsert_pending(self, ref: RepositoryReference, branch: str, info: RepositoryInfo) -> dict:
        """Create or refresh the record for this triple with fresh GitHub metadata."""
        record = self._upsert(
            {
                "owner": ref.owner,
                "repo": ref.repo,
                "full_name": ref.full_name,
                "branch": branch,
                "github_id": info.id,
                "description": info.description,
                "is_private": info.private,
                "default_branch": info.default_branch,
                "size_bytes": info.size,
                "language": info.language,
                "clone_url": info.clone_url,
                "html_url": info.html_url,
                "last_updated_at": info.updated_at,
                "processing_status": STATUS_PENDING,
                "processing_error": None,
                "updated_at": utc_now(),
            },
            on_conflict=self.conflict_key,
        )
        logger.info(f"Upserted repository record {ref.full_name}@{branch}", extra={"user_id": self.user_id})
        return record

    def mark_processing(self, record_id: str) -> bool:
        return self._update_one(record_id, {"processing_status": STATUS_PROCESSING, "processing_error": None})

    def mark_completed(self, record_id: str, file_count: int, plugin_structure: dict) -> bool:
        return self._update_one(record_id, {
            "processing_status": STATUS_COMPLETED,
            "file_count": file_count,
            "plugin_structure": plugin_structure,
            "processing_error": None,
            "processed_at": utc_now(),
        })

    def mark_failed(self, record_id: str, error: str) -> bool:
        logger.warning(f"Repository record {record_id} failed", extra={"user_id": self.user_id, "error": error})
        return self._update_one(record_id, {
            "processing_status": STATUS_FAILED,
            "processing_error": error[:1000],
        })
