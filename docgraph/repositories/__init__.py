"""Repository layer - data access abstraction."""

from docgraph.repositories.graph_repository import GraphRepository
from docgraph.repositories.status_repository import StatusRepository
from docgraph.repositories.vector_repository import VectorRepository

__all__ = [
    "GraphRepository",
    "StatusRepository",
    "VectorRepository",
]
