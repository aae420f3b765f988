"""Ontology extraction, resolution and persistence."""

from docgraph.services.ontology.extractor import OntologyExtractor, sample_text
from docgraph.services.ontology.models import (
    Entity,
    PersistenceTally,
    RawEntity,
    RawOntology,
    RawRelationship,
    Relationship,
    ResolvedOntology,
)
from docgraph.services.ontology.persistence import OntologyPersistResult, persist_ontology
from docgraph.services.ontology.resolver import resolve_ontology

__all__ = [
    "Entity",
    "OntologyExtractor",
    "OntologyPersistResult",
    "PersistenceTally",
    "RawEntity",
    "RawOntology",
    "RawRelationship",
    "Relationship",
    "ResolvedOntology",
    "persist_ontology",
    "resolve_ontology",
    "sample_text",
]
