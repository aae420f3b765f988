"""
Database client management.

Lazily created, process-wide clients for Qdrant (chunk vectors) and
Supabase (document status mirror).
"""
import logging
from typing import Optional

from qdrant_client import QdrantClient
from supabase import Client, create_client

from docgraph.core.config import settings
from docgraph.utils.exceptions import DatabaseError

logger = logging.getLogger(__name__)

_qdrant_client: Optional[QdrantClient] = None
_supabase_client: Optional[Client] = None


def get_qdrant_client() -> QdrantClient:
    """
    Get or create the Qdrant client instance.

    Raises:
        DatabaseError: If client creation fails
    """
    global _qdrant_client

    if _qdrant_client is not None:
        return _qdrant_client

    try:
        _qdrant_client = QdrantClient(
            host=settings.qdrant_host,
            port=settings.qdrant_port,
            grpc_port=settings.qdrant_grpc_port,
            timeout=settings.qdrant_timeout,
            prefer_grpc=True,
        )
        logger.info(
            f"Initialized Qdrant client: {settings.qdrant_host}:{settings.qdrant_grpc_port} (gRPC)"
        )
        return _qdrant_client
    except Exception as e:
        logger.error(f"Failed to create Qdrant client: {str(e)}")
        raise DatabaseError(
            f"Failed to create Qdrant client: {str(e)}",
            {"host": settings.qdrant_host, "port": settings.qdrant_port},
        ) from e


def reset_qdrant_client() -> None:
    """Reset the global Qdrant client (useful for testing)."""
    global _qdrant_client
    _qdrant_client = None


def get_supabase_client() -> Client:
    """
    Get or create the Supabase client instance.

    Raises:
        DatabaseError: If Supabase is not configured or client creation fails
    """
    global _supabase_client

    if _supabase_client is not None:
        return _supabase_client

    if not settings.supabase_url or not settings.supabase_service_role_key:
        raise DatabaseError(
            "Supabase is not configured. Set SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY.",
            {},
        )

    try:
        _supabase_client = create_client(
            settings.supabase_url,
            settings.supabase_service_role_key,
        )
        logger.info(f"Initialized Supabase client for: {settings.supabase_url}")
        return _supabase_client
    except Exception as e:
        logger.error(f"Failed to create Supabase client: {str(e)}")
        raise DatabaseError(
            f"Failed to create Supabase client: {str(e)}",
            {"supabase_url": settings.supabase_url},
        ) from e


def reset_supabase_client() -> None:
    """Reset the global Supabase client (useful for testing)."""
    global _supabase_client
    _supabase_client = None
