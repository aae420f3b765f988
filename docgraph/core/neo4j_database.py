"""
Neo4j database connection and management.
"""
from neo4j import GraphDatabase, Driver
from typing import Optional

from docgraph.core.config import settings
from docgraph.utils.exceptions import DatabaseError
from docgraph.utils.logging import get_logger

logger = get_logger(__name__)

_neo4j_driver: Optional[Driver] = None


def get_neo4j_driver() -> Driver:
    """
    Get or create the Neo4j driver instance.

    Raises:
        DatabaseError: If Neo4j is disabled or the driver cannot connect
    """
    global _neo4j_driver

    if _neo4j_driver is not None:
        return _neo4j_driver

    if not settings.neo4j_enabled:
        raise DatabaseError(
            "Neo4j is disabled. Set NEO4J_ENABLED=true to enable.",
            {},
        )

    try:
        _neo4j_driver = GraphDatabase.driver(
            settings.neo4j_uri,
            auth=(settings.neo4j_user, settings.neo4j_password),
            max_connection_pool_size=settings.neo4j_max_connection_pool_size,
            connection_timeout=settings.neo4j_timeout,
        )
        _neo4j_driver.verify_connectivity()
        logger.info("neo4j_driver_initialized", uri=settings.neo4j_uri)
        return _neo4j_driver
    except Exception as e:
        _neo4j_driver = None
        logger.error("neo4j_driver_failed", uri=settings.neo4j_uri, error=str(e))
        raise DatabaseError(
            f"Failed to create Neo4j driver: {str(e)}",
            {"neo4j_uri": settings.neo4j_uri},
        ) from e


def close_neo4j_driver() -> None:
    """Close the Neo4j driver connection."""
    global _neo4j_driver
    if _neo4j_driver is not None:
        _neo4j_driver.close()
        _neo4j_driver = None
        logger.info("neo4j_driver_closed")
