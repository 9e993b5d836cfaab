"""Test-generation conversations (table ``ai_conversation_states``)."""

import logging
import uuid
from typing import List, Optional

from thinktest.services.db.base import BaseDbService, utc_now

logger = logging.getLogger(__name__)


class ConversationService(BaseDbService):
    """One row per /process call, recording the provider it used."""

    table_name = "ai_conversation_states"

    def create(
        self,
        provider: str,
        framework: str,
        github_repository_id: Optional[str],
        analysis_result_id: Optional[str],
        generated_tests: str,
        model: Optional[str],
        status: str = "completed",
    ) -> dict:
        record = self._insert({
            "conversation_id": str(uuid.uuid4()),
            "provider": provider,
            "framework": framework,
            "github_repository_id": github_repository_id,
            "analysis_result_id": analysis_result_id,
            "status": status,
            "generated_tests": generated_tests,
            "model": model,
            "created_at": utc_now(),
        })
        logger.info(
            f"Created conversation {record['conversation_id']} ({provider}/{framework})",
            extra={"user_id": self.user_id},
        )
        return record

    def get(self, conversation_id: str) -> Optional[dict]:
        return self._get_one({"conversation_id": conversation_id})

    def list_for_repository(self, github_repository_id: str) -> List[dict]:
        return self._get_many(
            {"github_repository_id": github_repository_id},
            order_by="created_at",
            order_desc=True,
        )
