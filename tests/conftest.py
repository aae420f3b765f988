"""Pytest configuration and shared fixtures."""

import hashlib
from typing import Dict, List, Tuple
from unittest.mock import MagicMock

import pytest

from docgraph.services.ingestion.status import StatusTracker


class FakeEmbedder:
    """Deterministic stand-in for TextEmbedder (no model download)."""

    def __init__(self, dimension: int = 8, fail_on: Tuple[str, ...] = ()):
        self.dimension = dimension
        self.fail_on = fail_on
        self.calls: List[str] = []

    def embed_text(self, text: str) -> List[float]:
        self.calls.append(text)
        if any(marker in text for marker in self.fail_on):
            raise RuntimeError("embedding backend unavailable")
        digest = hashlib.sha256(text.encode("utf-8")).digest()
        return [b / 255.0 for b in digest[: self.dimension]]

    def embed_query(self, query: str) -> List[float]:
        return self.embed_text(query)


class FakeVectorRepository:
    """Records stored vectors in memory."""

    def __init__(self):
        self.points: Dict[str, Tuple[List[float], dict]] = {}

    def store_vector(self, chunk_id: str, vector: List[float], payload: dict) -> None:
        self.points[chunk_id] = (vector, payload)

    def search(self, query_vector, limit=8, document_ids=None):
        hits = []
        for chunk_id, (_, payload) in self.points.items():
            if document_ids and payload.get("document_id") not in document_ids:
                continue
            hits.append({"id": chunk_id, "score": 0.9, "payload": payload})
        return hits[:limit]


class FakeGraphRepository:
    """In-memory graph store with the GraphRepository write interface."""

    def __init__(self, fail_entities: Tuple[str, ...] = ()):
        self.documents: Dict[str, dict] = {}
        self.entities: Dict[str, dict] = {}
        self.relationships: List[Tuple[str, str, str, dict]] = []
        self.fail_entities = fail_entities

    def create_document_node(self, document_id, owner_id, file_name):
        self.documents[document_id] = {"owner_id": owner_id, "file_name": file_name}

    def upsert_entity(self, document_id, entity_id, entity_type, properties, embedding=None):
        if entity_id in self.fail_entities:
            raise RuntimeError("write rejected")
        self.entities[entity_id] = {
            "document_id": document_id,
            "type": entity_type,
            "properties": dict(properties),
            "embedding": embedding,
        }

    def upsert_relationship(self, source_id, target_id, rel_type, properties):
        if source_id not in self.entities or target_id not in self.entities:
            raise RuntimeError("endpoint missing")
        self.relationships.append((source_id, target_id, rel_type, dict(properties)))


@pytest.fixture
def fake_embedder() -> FakeEmbedder:
    return FakeEmbedder()


@pytest.fixture
def fake_vector_repository() -> FakeVectorRepository:
    return FakeVectorRepository()


@pytest.fixture
def fake_graph_repository() -> FakeGraphRepository:
    return FakeGraphRepository()


@pytest.fixture
def status_tracker() -> StatusTracker:
    return StatusTracker()


@pytest.fixture
def mock_status_repository() -> MagicMock:
    repository = MagicMock()
    repository.save_status.return_value = None
    return repository
