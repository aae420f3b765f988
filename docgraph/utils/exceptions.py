"""
Custom exceptions.

Application-specific exception classes. Per-item failures (one chunk, one
entity) are counted by their callers; stage-level failures are recorded on
the document status before they propagate.
"""


class BaseAppException(Exception):
    """Base exception for all application-specific exceptions."""

    def __init__(self, message: str, details: dict | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class UnsupportedFormatError(BaseAppException):
    """Raised when a file format has no extraction strategy."""
    pass


class EmptyContentError(BaseAppException):
    """Raised when extraction (including OCR fallback) yields no text."""
    pass


class ExtractionError(BaseAppException):
    """Raised when document extraction fails."""
    pass


class EmbeddingServiceError(BaseAppException):
    """Raised when an embedding cannot be computed or stored for one chunk."""
    pass


class OntologyServiceError(BaseAppException):
    """Raised when the ontology extraction call fails or returns garbage."""
    pass


class PersistenceError(BaseAppException):
    """Raised when a single entity, relationship or vector write fails."""
    pass


class StatusTransitionError(BaseAppException):
    """Raised when a status update would move a document backwards."""
    pass


class StreamMalformedFrameError(BaseAppException):
    """Raised for a stream frame whose payload cannot be parsed."""
    pass


class StreamTransportError(BaseAppException):
    """Raised when the query stream transport fails."""
    pass


class DatabaseError(BaseAppException):
    """Raised when a database client cannot be created."""
    pass
