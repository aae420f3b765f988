"""
Text chunking service.

Fixed-size sliding window with fixed overlap. Chunk order and offsets are
kept so the normalized source text can be rebuilt from the chunks.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from docgraph.core.config import settings
from docgraph.utils.exceptions import BaseAppException

logger = logging.getLogger(__name__)


class ChunkingError(BaseAppException):
    """Raised when chunking fails."""
    pass


@dataclass
class Chunk:
    """
    A window of a document's normalized text.

    Attributes:
        text: The chunk text content
        chunk_index: Position of the chunk within the document (0-based)
        document_id: Owning document
        start_char_index: Offset of the first character in the source text
        end_char_index: Offset one past the last character
        token_count: Estimated token count (~4 characters per token)
        metadata: Extra fields forwarded to the vector payload
    """

    text: str
    chunk_index: int
    document_id: str
    start_char_index: int
    end_char_index: int
    token_count: int = 0
    metadata: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if self.token_count == 0 and self.text:
            self.token_count = max(1, len(self.text) // 4)

    @property
    def chunk_id(self) -> str:
        return f"{self.document_id}_chunk_{self.chunk_index}"


class TextChunker:
    """Splits text into overlapping fixed-size character windows."""

    def __init__(
        self,
        chunk_size: Optional[int] = None,
        chunk_overlap: Optional[int] = None,
    ):
        """
        Args:
            chunk_size: Maximum chunk length in characters (default: from config)
            chunk_overlap: Characters shared by neighbouring chunks (default: from config)

        Raises:
            ChunkingError: If the overlap is not smaller than the chunk size
        """
        self.chunk_size = chunk_size if chunk_size is not None else settings.chunk_size
        self.chunk_overlap = chunk_overlap if chunk_overlap is not None else settings.chunk_overlap

        if self.chunk_size <= 0:
            raise ChunkingError(
                f"chunk_size must be positive, got {self.chunk_size}",
                {"chunk_size": self.chunk_size},
            )
        if self.chunk_overlap < 0 or self.chunk_overlap >= self.chunk_size:
            raise ChunkingError(
                f"chunk_overlap must be in [0, chunk_size), got {self.chunk_overlap}",
                {"chunk_size": self.chunk_size, "chunk_overlap": self.chunk_overlap},
            )

    def chunk_text(
        self,
        text: str,
        document_id: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> List[Chunk]:
        """
        Chunk text into overlapping windows.

        Every chunk is at most ``chunk_size`` characters; consecutive chunks
        share exactly ``chunk_overlap`` characters.
        """
        if not text:
            logger.warning("Empty text provided for chunking")
            return []

        chunks: List[Chunk] = []
        start = 0
        text_length = len(text)

        while start < text_length:
            end = min(start + self.chunk_size, text_length)
            chunks.append(
                Chunk(
                    text=text[start:end],
                    chunk_index=len(chunks),
                    document_id=document_id,
                    start_char_index=start,
                    end_char_index=end,
                    metadata=dict(metadata or {}),
                )
            )
            if end == text_length:
                break
            start = end - self.chunk_overlap

        logger.info(
            f"Split {text_length} characters into {len(chunks)} chunks "
            f"(size={self.chunk_size}, overlap={self.chunk_overlap})"
        )
        return chunks


def reassemble_chunks(chunks: List[Chunk]) -> str:
    """Rebuild the source text from ordered chunks, dropping the overlaps."""
    text = ""
    for chunk in sorted(chunks, key=lambda c: c.chunk_index):
        text += chunk.text[len(text) - chunk.start_char_index:]
    return text


def get_chunk_statistics(chunks: List[Chunk]) -> Dict[str, Any]:
    """Summary statistics for a chunk list, used in pipeline logs."""
    if not chunks:
        return {"total_chunks": 0, "total_tokens": 0, "avg_chunk_length": 0}

    lengths = [len(c.text) for c in chunks]
    return {
        "total_chunks": len(chunks),
        "total_tokens": sum(c.token_count for c in chunks),
        "avg_chunk_length": sum(lengths) / len(lengths),
        "min_chunk_length": min(lengths),
        "max_chunk_length": max(lengths),
    }
