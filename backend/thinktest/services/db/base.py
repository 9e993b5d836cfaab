"""
Base database service with unified patterns.

Provides:
- Automatic user isolation via _query()
- Single record fetching and upsert returning the stored row
- Consistent datetime handling

Usage:
    class GitHubRepositoryService(BaseDbService):
        table_name = "github_repositories"

        def get_record(self, record_id: str) -> Optional[dict]:
            return self._get_one({"id": record_id})
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from supabase import Client

logger = logging.getLogger(__name__)


def utc_now() -> str:
    """Current UTC time as an ISO string for timestamp columns."""
    return datetime.now(timezone.utc).isoformat()


class BaseDbService:
    """
    Base class for all database services.

    Subclasses set `table_name` and may override `_row_to_dict()`.
    """

    table_name: str = ""  # Subclass must override

    def __init__(self, supabase: Client, user_id: str):
        self.supabase = supabase
        self.user_id = user_id

    # =========================================================================
    # Query Builders (automatic user isolation)
    # =========================================================================

    def _table(self):
        return self.supabase.table(self.table_name)

    def _query(self, select: str = "*"):
        """Start a user-scoped SELECT query."""
        return self._table().select(select).eq("user_id", self.user_id)

    # =========================================================================
    # Reads
    # =========================================================================

    def _get_one(self, filters: Dict[str, Any], select: str = "*") -> Optional[dict]:
        """
        Get a single record, or None.

        Uses .limit(1) instead of .single() to avoid exceptions on empty results.
        """
        try:
            query = self._query(select)
            for key, value in filters.items():
                query = query.eq(key, value)

            response = query.limit(1).execute()
        except Exception as e:
            if self._is_not_found_error(e):
                return None
            logger.error(
                f"Error fetching {self.table_name}: {filters}",
                extra={"user_id": self.user_id, "error": str(e)},
            )
            raise

        if response.data:
            return self._row_to_dict(response.data[0])
        return None

    def _get_many(
        self,
        filters: Optional[Dict[str, Any]] = None,
        order_by: Optional[str] = None,
        order_desc: bool = False,
        limit: Optional[int] = None,
    ) -> List[dict]:
        query = self._query()

        for key, value in (filters or {}).items():
            query = query.eq(key, value)

        if order_by:
            query = query.order(order_by, desc=order_desc)

        if limit:
            query = query.limit(limit)

        response = query.execute()
        return [self._row_to_dict(row) for row in response.data or []]

    # =========================================================================
    # Writes
    # =========================================================================

    def _upsert(self, data: Dict[str, Any], on_conflict: str) -> dict:
        """Insert or update one row keyed by ``on_conflict``; returns the stored row."""
        row = self._dict_to_row(data)
        response = self._table().upsert(row, on_conflict=on_conflict).execute()
        if not response.data:
            raise RuntimeError(f"Upsert into {self.table_name} returned no row")
        return self._row_to_dict(response.data[0])

    def _insert(self, data: Dict[str, Any]) -> dict:
        response = self._table().insert(self._dict_to_row(data)).execute()
        if not response.data:
            raise RuntimeError(f"Insert into {self.table_name} returned no row")
        return self._row_to_dict(response.data[0])

    def _update_one(self, record_id: str, updates: Dict[str, Any]) -> bool:
        """Update a single user-owned record by ID."""
        if not updates:
            return True

        updates = {
            key: value.isoformat() if isinstance(value, datetime) else value
            for key, value in updates.items()
        }
        updates.setdefault("updated_at", utc_now())

        response = (
            self._table()
            .update(updates)
            .eq("id", record_id)
            .eq("user_id", self.user_id)
            .execute()
        )
        return bool(response.data)

    # =========================================================================
    # Row Conversion
    # =========================================================================

    def _row_to_dict(self, row: dict) -> dict:
        return row

    def _dict_to_row(self, data: dict) -> dict:
        """Add user_id and convert datetimes to ISO strings."""
        row = {"user_id": self.user_id}

        for key, value in data.items():
            if isinstance(value, datetime):
                value = value.isoformat()
            row[key] = value

        return row

    @staticmethod
    def _is_not_found_error(e: Exception) -> bool:
        """Check if exception is a 'not found' error (PGRST116)."""
        return "PGRST116" in str(e)
