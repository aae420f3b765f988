"""
Document status repository.

Mirrors document status records into a Supabase (PostgreSQL) table so that
status survives restarts and can be read by other processes.
"""

import logging
from typing import Any, Dict, Optional

from docgraph.core.config import settings
from docgraph.core.database import get_supabase_client
from docgraph.utils.exceptions import PersistenceError

logger = logging.getLogger(__name__)


class StatusRepository:
    """Upserts and reads rows of the document status table."""

    def __init__(self, client=None, table_name: Optional[str] = None):
        self.client = client or get_supabase_client()
        self.table_name = table_name or settings.supabase_status_table

    def save_status(self, record: Dict[str, Any]) -> None:
        """
        Upsert one status row keyed by document id.

        Raises:
            PersistenceError: If the write fails
        """
        try:
            self.client.table(self.table_name).upsert(record, on_conflict="id").execute()
        except Exception as e:
            raise PersistenceError(
                f"Failed to save status for {record.get('id')}: {str(e)}",
                {"document_id": record.get("id"), "table": self.table_name},
            ) from e

    def get_status(self, document_id: str) -> Optional[Dict[str, Any]]:
        """Read one status row, or None if the document is unknown."""
        try:
            result = (
                self.client.table(self.table_name)
                .select("*")
                .eq("id", document_id)
                .limit(1)
                .execute()
            )
        except Exception as e:
            raise PersistenceError(
                f"Failed to read status for {document_id}: {str(e)}",
                {"document_id": document_id, "table": self.table_name},
            ) from e
        return result.data[0] if result.data else None
