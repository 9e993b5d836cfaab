"""
Single-file test generations (table ``github_file_test_generations``).

One row per (repository record, file path, branch, content hash); generating
again for unchanged content updates that row with the latest provider,
framework and tests.
"""

import logging
from typing import List, Optional

from thinktest.schemas.github import FileContent
from thinktest.services.db.base import BaseDbService, utc_now

logger = logging.getLogger(__name__)

STATUS_PROCESSING = "processing"
STATUS_COMPLETED = "completed"
STATUS_FAILED = "failed"


class FileTestGenerationService(BaseDbService):
    """Service for github_file_test_generations database operations."""

    table_name = "github_file_test_generations"
    conflict_key = "github_repository_id,file_path,branch,file_content_hash"

    def start(
        self,
        github_repository_id: str,
        file: FileContent,
        branch: str,
        provider: str,
        framework: str,
        file_content_hash: str,
    ) -> dict:
        """Create or reset the row for this file version as ``processing``."""
        return self._upsert(
            {
                "github_repository_id": github_repository_id,
                "file_path": file.path,
                "file_name": file.name,
                "file_sha": file.sha,
                "file_size": file.size,
                "branch": branch,
                "provider": provider,
                "framework": framework,
                "file_content_hash": file_content_hash,
                "generation_status": STATUS_PROCESSING,
                "generation_error": None,
                "updated_at": utc_now(),
            },
            on_conflict=self.conflict_key,
        )

    def mark_completed(
        self,
        generation_id: str,
        generated_tests: str,
        analysis: dict,
        model: Optional[str],
        conversation_id: Optional[str],
    ) -> bool:
        return self._update_one(generation_id, {
            "generated_tests": generated_tests,
            "analysis_data": analysis,
            "model": model,
            "ai_conversation_id": conversation_id,
            "generation_status": STATUS_COMPLETED,
            "generation_error": None,
            "generated_at": utc_now(),
        })

    def mark_failed(self, generation_id: str, error: str) -> bool:
        logger.warning(f"File test generation {generation_id} failed", extra={"user_id": self.user_id, "error": error})
        return self._update_one(generation_id, {
            "generation_status": STATUS_FAILED,
            "generation_error": error[:1000],
        })

    def get_by_id(self, generation_id: str) -> Optional[dict]:
        return self._get_one({"id": generation_id})

    def list_for_file(self, github_repository_id: str, file_path: str) -> List[dict]:
        return self._get_many(
            {"github_repository_id": github_repository_id, "file_path": file_path},
            order_by="updated_at",
            order_desc=True,
        )
