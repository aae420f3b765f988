"""Tests for per-item ontology persistence."""

from unittest.mock import AsyncMock

import pytest

from docgraph.services.ontology.models import RawEntity, RawOntology, RawRelationship
from docgraph.services.ontology.persistence import persist_ontology
from docgraph.services.ontology.resolver import resolve_ontology

from tests.conftest import FakeEmbedder, FakeGraphRepository


@pytest.fixture
def ontology():
    raw = RawOntology(
        entities=(
            RawEntity(name="Alice", type="PERSON"),
            RawEntity(name="Acme Corp", type="ORGANIZATION"),
            RawEntity(name="Berlin", type="LOCATION"),
        ),
        relationships=(
            RawRelationship(source="Alice", target="Acme Corp", type="WORKS_FOR"),
            RawRelationship(source="Acme Corp", target="Berlin", type="LOCATED_IN"),
        ),
    )
    return resolve_ontology(raw, "doc1")


class TestPersistOntology:
    @pytest.mark.asyncio
    async def test_all_items_written(self, ontology):
        repository = FakeGraphRepository()
        result = await persist_ontology(repository, "doc1", ontology, embedder=FakeEmbedder())

        assert result.entities.succeeded == 3
        assert result.relationships.succeeded == 2
        assert all(e["embedding"] for e in repository.entities.values())

    @pytest.mark.asyncio
    async def test_failures_tallied_and_rest_attempted(self, ontology):
        repository = FakeGraphRepository(fail_entities=("doc1_entity_berlin",))
        result = await persist_ontology(repository, "doc1", ontology)

        assert result.entities.succeeded == 2
        assert result.entities.failed == 1
        assert result.entities.attempted == 3
        assert result.relationships.succeeded == 1
        assert result.relationships.failed == 1
        assert len(result.relationships.errors) == 1

    @pytest.mark.asyncio
    async def test_embedding_failure_is_not_fatal(self, ontology):
        repository = FakeGraphRepository()
        result = await persist_ontology(
            repository, "doc1", ontology, embedder=FakeEmbedder(fail_on=("Alice",))
        )
        assert result.entities.succeeded == 3
        assert repository.entities["doc1_entity_alice"]["embedding"] is None

    @pytest.mark.asyncio
    async def test_progress_per_item(self, ontology):
        progress = AsyncMock()
        await persist_ontology(FakeGraphRepository(), "doc1", ontology, on_progress=progress)
        assert [call.args for call in progress.await_args_list] == [
            ("entities", 1, 3),
            ("entities", 2, 3),
            ("entities", 3, 3),
            ("relationships", 1, 2),
            ("relationships", 2, 2),
        ]
