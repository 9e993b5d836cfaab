"""Plugin analysis results (table ``plugin_analysis_results``), unique by content hash."""

import logging
from typing import Optional

from thinktest.services.db.base import BaseDbService, utc_now

logger = logging.getLogger(__name__)


class AnalysisResultService(BaseDbService):
    """Identical content updates the same row; different content gets a new row."""

    table_name = "plugin_analysis_results"

    def get_by_hash(self, file_hash: str) -> Optional[dict]:
        return self._get_one({"file_hash": file_hash})

    def save(self, filename: str, file_hash: str, analysis: dict) -> dict:
        record = self._upsert(
            {
                "filename": filename,
                "file_hash": file_hash,
                "analysis_data": analysis,
                "wordpress_patterns": analysis.get("wordpress_patterns", []),
                "functions": analysis.get("functions", []),
                "classes": analysis.get("classes", []),
                "hooks": analysis.get("hooks", []),
                "filters": analysis.get("filters", []),
                "security_patterns": analysis.get("security_patterns", []),
                "complexity_score": analysis.get("complexity_score", 0),
                "analyzed_at": utc_now(),
            },
            on_conflict="file_hash",
        )
        logger.debug(f"Saved analysis for {filename} ({file_hash[:12]})", extra={"user_id": self.user_id})
        return record
