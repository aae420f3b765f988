"""
Graph repository for Neo4j knowledge graph operations.

Each document gets a ``Document`` node that ``CONTAINS`` its ``Entity``
nodes; entity-to-entity relationships carry the extracted relationship type.
Nested property maps are stored as a JSON string because Neo4j properties
must be scalars or arrays.
"""
import json
import time
from typing import Any, Dict, List, Optional, Tuple

from neo4j import Driver

from docgraph.core.config import settings
from docgraph.core.neo4j_database import get_neo4j_driver
from docgraph.utils.exceptions import PersistenceError
from docgraph.utils.logging import get_logger
from docgraph.utils.metrics import neo4j_queries_total, neo4j_query_duration_seconds
from docgraph.utils.text import sanitize_relationship_type

logger = get_logger(__name__)


class GraphRepository:
    """Repository for Neo4j graph reads and per-item writes."""

    def __init__(self, driver: Optional[Driver] = None):
        self.driver = driver
        self.database = settings.neo4j_database

    def _get_driver(self) -> Driver:
        if self.driver is not None:
            return self.driver
        return get_neo4j_driver()

    def _run(self, operation: str, query: str, params: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Run one query in its own session and return the records as dicts."""
        start_time = time.time()
        session = self._get_driver().session(database=self.database)
        try:
            result = session.run(query, params)
            records = [record.data() for record in result]
            neo4j_queries_total.labels(operation=operation, status="success").inc()
            return records
        except Exception:
            neo4j_queries_total.labels(operation=operation, status="error").inc()
            raise
        finally:
            neo4j_query_duration_seconds.labels(operation=operation).observe(time.time() - start_time)
            session.close()

    def create_document_node(self, document_id: str, owner_id: Optional[str], file_name: str) -> None:
        """Create (or refresh) the document node that owns the extracted entities."""
        query = """
        MERGE (d:Document {document_id: $document_id})
        SET d.owner_id = $owner_id,
            d.file_name = $file_name,
            d.created_at = coalesce(d.created_at, datetime())
        """
        try:
            self._run("create_document", query, {
                "document_id": document_id,
                "owner_id": owner_id,
                "file_name": file_name,
            })
        except Exception as e:
            raise PersistenceError(
                f"Failed to create document node {document_id}: {str(e)}",
                {"document_id": document_id},
            ) from e
        logger.debug("document_node_created", document_id=document_id)

    def upsert_entity(
        self,
        document_id: str,
        entity_id: str,
        entity_type: str,
        properties: Dict[str, Any],
        embedding: Optional[List[float]] = None,
    ) -> None:
        """
        Insert or update one entity and link it to its document.

        Raises:
            PersistenceError: If the write fails
        """
        query = """
        MERGE (e:Entity {entity_id: $entity_id})
        SET e.name = $name,
            e.type = $type,
            e.description = $description,
            e.document_id = $document_id,
            e.properties_json = $properties_json,
            e.embedding = $embedding
        WITH e
        MATCH (d:Document {document_id: $document_id})
        MERGE (d)-[:CONTAINS]->(e)
        """
        params = {
            "entity_id": entity_id,
            "name": properties.get("name", entity_id),
            "type": entity_type,
            "description": properties.get("description", ""),
            "document_id": document_id,
            "properties_json": json.dumps(properties, default=str),
            "embedding": embedding,
        }
        try:
            self._run("upsert_entity", query, params)
        except Exception as e:
            raise PersistenceError(
                f"Failed to upsert entity {entity_id}: {str(e)}",
                {"entity_id": entity_id, "document_id": document_id},
            ) from e

    def upsert_relationship(
        self,
        source_id: str,
        target_id: str,
        rel_type: str,
        properties: Optional[Dict[str, Any]] = None,
    ) -> None:
        """
        Insert or update one relationship between two existing entities.

        Raises:
            PersistenceError: If either endpoint is missing or the write fails
        """
        rel_type = sanitize_relationship_type(rel_type)
        query = f"""
        MATCH (a:Entity {{entity_id: $source_id}}), (b:Entity {{entity_id: $target_id}})
        MERGE (a)-[r:{rel_type}]->(b)
        SET r.properties_json = $properties_json
        RETURN count(r) AS written
        """
        params = {
            "source_id": source_id,
            "target_id": target_id,
            "properties_json": json.dumps(properties or {}, default=str),
        }
        try:
            records = self._run("upsert_relationship", query, params)
        except Exception as e:
            raise PersistenceError(
                f"Failed to upsert relationship {source_id}-[{rel_type}]->{target_id}: {str(e)}",
                {"source_id": source_id, "target_id": target_id, "type": rel_type},
            ) from e

        if not records or not records[0].get("written"):
            raise PersistenceError(
                f"Relationship endpoints not found: {source_id} -> {target_id}",
                {"source_id": source_id, "target_id": target_id, "type": rel_type},
            )

    def get_document_graph(
        self,
        document_ids: Optional[List[str]] = None,
        limit: int = 500,
    ) -> Tuple[List[Dict[str, Any]], List[Dict[str, Any]]]:
        """Raw nodes and edges for the given documents (all documents when None)."""
        query = """
        MATCH (e:Entity)
        WHERE $document_ids IS NULL OR e.document_id IN $document_ids
        RETURN e.entity_id AS id, e.name AS name, e.type AS type,
               e.description AS description, e.document_id AS document_id,
               e.properties_json AS properties_json
        LIMIT $limit
        """
        node_rows = self._run("read_graph", query, {"document_ids": document_ids, "limit": limit})
        return self._subgraph(node_rows)

    def search_entities(
        self,
        terms: List[str],
        document_ids: Optional[List[str]] = None,
        limit: int = 50,
    ) -> Tuple[List[Dict[str, Any]], List[Dict[str, Any]]]:
        """Entities whose name contains any of ``terms``, plus their direct neighbours."""
        terms = [t.lower() for t in terms if t]
        if not terms:
            return [], []

        query = """
        MATCH (e:Entity)
        WHERE ($document_ids IS NULL OR e.document_id IN $document_ids)
          AND any(term IN $terms WHERE toLower(e.name) CONTAINS term)
        OPTIONAL MATCH (e)-[]-(n:Entity)
        WITH collect(DISTINCT e) + collect(DISTINCT n) AS found
        UNWIND found AS x
        WITH DISTINCT x
        RETURN x.entity_id AS id, x.name AS name, x.type AS type,
               x.description AS description, x.document_id AS document_id,
               x.properties_json AS properties_json
        LIMIT $limit
        """
        node_rows = self._run("search_entities", query, {
            "terms": terms,
            "document_ids": document_ids,
            "limit": limit,
        })
        return self._subgraph(node_rows)

    def delete_document_graph(self, document_id: str) -> None:
        """Remove a document node and every entity it contains."""
        query = """
        MATCH (d:Document {document_id: $document_id})
        OPTIONAL MATCH (d)-[:CONTAINS]->(e:Entity)
        DETACH DELETE e, d
        """
        self._run("delete_document", query, {"document_id": document_id})
        logger.info("document_graph_deleted", document_id=document_id)

    def _subgraph(
        self, node_rows: List[Dict[str, Any]]
    ) -> Tuple[List[Dict[str, Any]], List[Dict[str, Any]]]:
        nodes = [self._node_from_row(row) for row in node_rows]
        ids = [n["id"] for n in nodes]
        if not ids:
            return [], []

        query = """
        MATCH (a:Entity)-[r]->(b:Entity)
        WHERE a.entity_id IN $ids AND b.entity_id IN $ids
        RETURN a.entity_id AS source, b.entity_id AS target, type(r) AS type,
               r.properties_json AS properties_json
        """
        edge_rows = self._run("read_edges", query, {"ids": ids})
        edges = [
            {
                "source": row["source"],
                "target": row["target"],
                "type": row["type"],
                "properties": _loads(row.get("properties_json")),
            }
            for row in edge_rows
        ]
        return nodes, edges

    @staticmethod
    def _node_from_row(row: Dict[str, Any]) -> Dict[str, Any]:
        properties = _loads(row.get("properties_json"))
        if row.get("description"):
            properties.setdefault("description", row["description"])
        if row.get("document_id"):
            properties.setdefault("document_id", row["document_id"])
        return {
            "id": row["id"],
            "label": row.get("name") or row["id"],
            "type": row.get("type"),
            "properties": properties,
        }


def _loads(raw: Optional[str]) -> Dict[str, Any]:
    if not raw:
        return {}
    try:
        value = json.loads(raw)
    except (TypeError, ValueError):
        return {}
    return value if isinstance(value, dict) else {}
