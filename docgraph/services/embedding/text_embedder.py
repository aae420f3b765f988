"""
Text embedding service.

Generates embeddings using sentence-transformers models
(e.g., e5-base-v2, all-mpnet-base-v2, all-MiniLM-L6-v2).
"""

import logging
from typing import List, Optional

from sentence_transformers import SentenceTransformer

from docgraph.core.config import settings
from docgraph.utils.exceptions import EmbeddingServiceError

logger = logging.getLogger(__name__)


class TextEmbedder:
    """
    Computes fixed-dimension, L2-normalized text vectors.

    e5 models expect a ``passage: `` / ``query: `` prefix; it is added here.
    """

    def __init__(
        self,
        model_name: Optional[str] = None,
        device: Optional[str] = None,
    ):
        self.model_name = model_name or settings.embedding_model
        self.device = device or settings.embedding_device

        try:
            logger.info(f"Loading embedding model: {self.model_name} on {self.device}")
            self.model = SentenceTransformer(self.model_name, device=self.device)
            self.embedding_dim = self.model.get_sentence_embedding_dimension()
            logger.info(
                f"Loaded embedding model: {self.model_name} (dimension: {self.embedding_dim})"
            )
        except Exception as e:
            logger.error(f"Failed to load embedding model: {str(e)}")
            raise EmbeddingServiceError(
                f"Failed to load embedding model {self.model_name}: {str(e)}",
                {"model_name": self.model_name, "device": self.device},
            ) from e

    def _prefixed(self, text: str, kind: str) -> str:
        if "e5" in self.model_name.lower():
            return f"{kind}: {text}"
        return text

    def embed_text(self, text: str) -> List[float]:
        """
        Embed one passage.

        Raises:
            EmbeddingServiceError: If the text is empty or the model fails
        """
        if not text or not text.strip():
            raise EmbeddingServiceError("Cannot embed empty text", {})
        try:
            embedding = self.model.encode(
                self._prefixed(text, "passage"),
                convert_to_numpy=True,
                normalize_embeddings=True,
                show_progress_bar=False,
            )
            return embedding.tolist()
        except Exception as e:
            raise EmbeddingServiceError(
                f"Failed to generate embedding: {str(e)}",
                {"text_length": len(text)},
            ) from e

    def embed_query(self, query: str) -> List[float]:
        """Embed a search query."""
        if not query or not query.strip():
            raise EmbeddingServiceError("Cannot embed empty query", {})
        try:
            embedding = self.model.encode(
                self._prefixed(query, "query"),
                convert_to_numpy=True,
                normalize_embeddings=True,
                show_progress_bar=False,
            )
            return embedding.tolist()
        except Exception as e:
            raise EmbeddingServiceError(
                f"Failed to generate query embedding: {str(e)}",
                {"query_length": len(query)},
            ) from e

    @property
    def dimension(self) -> int:
        return self.embedding_dim
