"""
Ontology data types.

Extraction produces a ``RawOntology`` of name-keyed mentions; resolution
turns it into a ``ResolvedOntology`` whose relationships reference canonical
entity ids only. Both are frozen so persistence cannot alter them.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple


@dataclass(frozen=True)
class RawEntity:
    name: str
    type: str
    description: str = ""
    properties: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class RawRelationship:
    source: str
    target: str
    type: str
    properties: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class RawOntology:
    entities: Tuple[RawEntity, ...] = ()
    relationships: Tuple[RawRelationship, ...] = ()


@dataclass(frozen=True)
class Entity:
    """
    A deduplicated entity scoped to one document.

    ``properties`` always contains ``name`` and ``description``.
    """

    id: str
    canonical_name: str
    type: str
    properties: Dict[str, Any]
    source_document: str
    embedding: Optional[List[float]] = None


@dataclass(frozen=True)
class Relationship:
    source_entity_id: str
    target_entity_id: str
    type: str
    properties: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ResolvedOntology:
    entities: Tuple[Entity, ...] = ()
    relationships: Tuple[Relationship, ...] = ()
    merged_entities: int = 0
    dropped_relationships: int = 0


@dataclass
class PersistenceTally:
    """Outcome of a batch of independent writes."""

    succeeded: int = 0
    failed: int = 0
    errors: List[str] = field(default_factory=list)

    @property
    def attempted(self) -> int:
        return self.succeeded + self.failed
