"""
Ontology persistence.

Every entity and relationship is written on its own; a failed write is
recorded in the tally and the remaining items are still attempted.
"""
import asyncio
import json
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional

from docgraph.services.ontology.models import PersistenceTally, ResolvedOntology
from docgraph.utils.logging import get_logger
from docgraph.utils.metrics import ontology_items_persisted_total

logger = get_logger(__name__)

PersistProgress = Callable[[str, int, int], Awaitable[None]]


@dataclass
class OntologyPersistResult:
    entities: PersistenceTally = field(default_factory=PersistenceTally)
    relationships: PersistenceTally = field(default_factory=PersistenceTally)


async def persist_ontology(
    graph_repository,
    document_id: str,
    ontology: ResolvedOntology,
    embedder=None,
    on_progress: Optional[PersistProgress] = None,
) -> OntologyPersistResult:
    """
    Write a resolved ontology to the graph store.

    Args:
        graph_repository: Provides ``upsert_entity`` and ``upsert_relationship``
        document_id: Owning document
        ontology: Immutable resolution result
        embedder: Optional; when given each entity is stored with an embedding of its JSON
        on_progress: Awaited with ``(kind, done, total)`` after every item

    Returns:
        Separate tallies for entities and relationships
    """
    result = OntologyPersistResult()

    total = len(ontology.entities)
    for done, entity in enumerate(ontology.entities, start=1):
        embedding = None
        if embedder is not None:
            try:
                embedding = await asyncio.to_thread(
                    embedder.embed_text, json.dumps(entity.properties, default=str)
                )
            except Exception as e:
                logger.warning("entity_embedding_failed", entity_id=entity.id, error=str(e))

        try:
            await asyncio.to_thread(
                graph_repository.upsert_entity,
                document_id,
                entity.id,
                entity.type,
                entity.properties,
                embedding,
            )
            result.entities.succeeded += 1
            ontology_items_persisted_total.labels(kind="entity", status="success").inc()
        except Exception as e:
            result.entities.failed += 1
            result.entities.errors.append(f"{entity.id}: {e}")
            ontology_items_persisted_total.labels(kind="entity", status="error").inc()
            logger.error("entity_persist_failed", entity_id=entity.id, error=str(e))

        if on_progress is not None:
            await on_progress("entities", done, total)

    total = len(ontology.relationships)
    for done, rel in enumerate(ontology.relationships, start=1):
        try:
            await asyncio.to_thread(
                graph_repository.upsert_relationship,
                rel.source_entity_id,
                rel.target_entity_id,
                rel.type,
                rel.properties,
            )
            result.relationships.succeeded += 1
            ontology_items_persisted_total.labels(kind="relationship", status="success").inc()
        except Exception as e:
            result.relationships.failed += 1
            result.relationships.errors.append(
                f"{rel.source_entity_id}-[{rel.type}]->{rel.target_entity_id}: {e}"
            )
            ontology_items_persisted_total.labels(kind="relationship", status="error").inc()
            logger.error(
                "relationship_persist_failed",
                source=rel.source_entity_id,
                target=rel.target_entity_id,
                error=str(e),
            )

        if on_progress is not None:
            await on_progress("relationships", done, total)

    logger.info(
        "ontology_persisted",
        entities_created=result.entities.succeeded,
        entities_failed=result.entities.failed,
        relationships_created=result.relationships.succeeded,
        relationships_failed=result.relationships.failed,
    )
    return result
