"""
Ontology resolution.

Merges entity mentions that share a normalized name and rewrites
relationship endpoints to canonical entity ids.
"""
import logging
import re
from typing import Dict, List, Tuple

from docgraph.services.ontology.models import (
    Entity,
    RawEntity,
    RawOntology,
    Relationship,
    ResolvedOntology,
)
from docgraph.utils.text import count_filled, normalize_key, sanitize_relationship_type

logger = logging.getLogger(__name__)


def entity_id_for(document_id: str, normalized_name: str) -> str:
    slug = re.sub(r"\s+", "_", normalized_name)
    return f"{document_id}_entity_{slug}"


def _richness(entity: RawEntity) -> int:
    return count_filled({**entity.properties, "description": entity.description})


def _merge_group(group: List[RawEntity]) -> Tuple[RawEntity, Dict]:
    """Pick the richest mention and union the properties of the others under it."""
    richest = max(group, key=_richness)  # first wins on ties
    properties: Dict = {}
    for mention in group:
        if mention is richest:
            continue
        for key, value in mention.properties.items():
            if value not in (None, "", [], {}):
                properties.setdefault(key, value)
    properties.update(
        {k: v for k, v in richest.properties.items() if v not in (None, "", [], {}) or k not in properties}
    )

    description = richest.description or next((m.description for m in group if m.description), "")
    properties["name"] = richest.name
    properties["description"] = description
    return richest, properties


def resolve_ontology(raw: RawOntology, document_id: str) -> ResolvedOntology:
    """
    Deduplicate entities by normalized name and resolve relationship endpoints.

    Relationships whose endpoints do not resolve, or that point an entity at
    itself, are dropped and counted.
    """
    groups: Dict[str, List[RawEntity]] = {}
    for mention in raw.entities:
        key = normalize_key(mention.name)
        if key:
            groups.setdefault(key, []).append(mention)

    entities: List[Entity] = []
    id_by_name: Dict[str, str] = {}
    used_ids = set()
    for key, group in groups.items():
        richest, properties = _merge_group(group)
        entity_id = entity_id_for(document_id, key)
        suffix = 2
        while entity_id in used_ids:
            entity_id = f"{entity_id_for(document_id, key)}_{suffix}"
            suffix += 1
        used_ids.add(entity_id)
        id_by_name[key] = entity_id

        entity_type = richest.type or next((m.type for m in group if m.type), "CONCEPT")
        entities.append(
            Entity(
                id=entity_id,
                canonical_name=richest.name,
                type=entity_type,
                properties=properties,
                source_document=document_id,
            )
        )

    relationships: Dict[Tuple[str, str, str], Relationship] = {}
    dropped = 0
    for rel in raw.relationships:
        source_id = id_by_name.get(normalize_key(rel.source))
        target_id = id_by_name.get(normalize_key(rel.target))
        if source_id is None or target_id is None or source_id == target_id:
            dropped += 1
            continue
        rel_type = sanitize_relationship_type(rel.type)
        triple = (source_id, rel_type, target_id)
        existing = relationships.get(triple)
        if existing is None:
            relationships[triple] = Relationship(source_id, target_id, rel_type, dict(rel.properties))
        elif count_filled(rel.properties) > count_filled(existing.properties):
            relationships[triple] = Relationship(
                source_id, target_id, rel_type, {**existing.properties, **rel.properties}
            )

    merged = len(raw.entities) - len(entities)
    if merged or dropped:
        logger.info(
            f"Resolved ontology for {document_id}: merged {merged} duplicate mentions, "
            f"dropped {dropped} unresolvable relationships"
        )

    return ResolvedOntology(
        entities=tuple(entities),
        relationships=tuple(relationships.values()),
        merged_entities=merged,
        dropped_relationships=dropped,
    )
