"""
Vector repository.

Stores chunk vectors in Qdrant and serves query-time similarity lookups.
"""

import logging
import uuid
from typing import Any, Dict, List, Optional

from qdrant_client.models import (
    Distance,
    FieldCondition,
    Filter,
    FilterSelector,
    MatchAny,
    MatchValue,
    PointStruct,
    VectorParams,
)

from docgraph.core.config import settings
from docgraph.core.database import get_qdrant_client
from docgraph.utils.exceptions import PersistenceError
from docgraph.utils.metrics import qdrant_operations_total

logger = logging.getLogger(__name__)


def point_id_for(chunk_id: str) -> str:
    """Deterministic Qdrant point id (UUID) for a chunk id, so re-ingestion overwrites."""
    return str(uuid.uuid5(uuid.NAMESPACE_URL, chunk_id))


class VectorRepository:
    """Repository for chunk vectors in a single Qdrant collection."""

    def __init__(
        self,
        client=None,
        collection_name: Optional[str] = None,
        vector_size: Optional[int] = None,
        ensure_collection: bool = True,
    ):
        self.client = client or get_qdrant_client()
        self.collection_name = collection_name or settings.qdrant_collection_name
        self.vector_size = vector_size or settings.qdrant_vector_size
        if ensure_collection:
            self._ensure_collection_exists()

    def _ensure_collection_exists(self) -> None:
        """Create the collection on first use."""
        try:
            existing = [c.name for c in self.client.get_collections().collections]
            if self.collection_name not in existing:
                logger.info(f"Creating Qdrant collection: {self.collection_name}")
                self.client.create_collection(
                    collection_name=self.collection_name,
                    vectors_config=VectorParams(size=self.vector_size, distance=Distance.COSINE),
                )
        except Exception as e:
            raise PersistenceError(
                f"Failed to ensure collection exists: {str(e)}",
                {"collection_name": self.collection_name, "error": str(e)},
            ) from e

    def store_vector(self, chunk_id: str, vector: List[float], payload: Dict[str, Any]) -> None:
        """
        Store one chunk vector with its metadata payload.

        Raises:
            PersistenceError: On dimension mismatch or a failed upsert
        """
        if len(vector) != self.vector_size:
            qdrant_operations_total.labels(operation="upsert", status="error").inc()
            raise PersistenceError(
                f"Vector dimension mismatch: expected {self.vector_size}, got {len(vector)}",
                {"chunk_id": chunk_id, "expected": self.vector_size, "got": len(vector)},
            )

        try:
            self.client.upsert(
                collection_name=self.collection_name,
                points=[
                    PointStruct(
                        id=point_id_for(chunk_id),
                        vector=vector,
                        payload={**payload, "chunk_id": chunk_id},
                    )
                ],
            )
            qdrant_operations_total.labels(operation="upsert", status="success").inc()
        except Exception as e:
            qdrant_operations_total.labels(operation="upsert", status="error").inc()
            raise PersistenceError(
                f"Failed to store vector for {chunk_id}: {str(e)}",
                {"chunk_id": chunk_id, "collection_name": self.collection_name},
            ) from e

    def search(
        self,
        query_vector: List[float],
        limit: int = 8,
        document_ids: Optional[List[str]] = None,
    ) -> List[Dict[str, Any]]:
        """Nearest chunks to ``query_vector``, optionally restricted to some documents."""
        query_filter = None
        if document_ids:
            query_filter = Filter(
                must=[FieldCondition(key="document_id", match=MatchAny(any=list(document_ids)))]
            )

        try:
            response = self.client.query_points(
                collection_name=self.collection_name,
                query=query_vector,
                limit=limit,
                query_filter=query_filter,
                with_payload=True,
            )
            qdrant_operations_total.labels(operation="search", status="success").inc()
        except Exception as e:
            qdrant_operations_total.labels(operation="search", status="error").inc()
            logger.error(f"Error searching vectors: {str(e)}", exc_info=True)
            raise PersistenceError(
                f"Failed to search vectors: {str(e)}",
                {"collection_name": self.collection_name},
            ) from e

        return [
            {"id": point.id, "score": point.score, "payload": point.payload or {}}
            for point in response.points
        ]

    def delete_by_document(self, document_id: str) -> None:
        """Delete every vector belonging to a document."""
        try:
            self.client.delete(
                collection_name=self.collection_name,
                points_selector=FilterSelector(
                    filter=Filter(
                        must=[FieldCondition(key="document_id", match=MatchValue(value=document_id))]
                    )
                ),
            )
            qdrant_operations_total.labels(operation="delete", status="success").inc()
            logger.info(f"Deleted vectors for document {document_id}")
        except Exception as e:
            qdrant_operations_total.labels(operation="delete", status="error").inc()
            raise PersistenceError(
                f"Failed to delete vectors for document {document_id}: {str(e)}",
                {"document_id": document_id},
            ) from e
