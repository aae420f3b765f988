"""
Pydantic schemas for request/response models.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    """Error response model."""

    success: bool = False
    error: str
    details: Optional[Dict[str, Any]] = None


class DocumentStatusResponse(BaseModel):
    """Status record of one document."""

    id: str
    file_name: str
    mime_type: Optional[str] = None
    size_bytes: int
    owner_id: Optional[str] = None
    status: str
    stage: str
    progress: int
    message: str
    total_chunks: int = 0
    processed_chunks: int = 0
    failed_chunks: int = 0
    entities_created: int = 0
    relationships_created: int = 0
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_record(cls, record) -> "DocumentStatusResponse":
        return cls(**record.to_dict())


class DocumentListResponse(BaseModel):
    """Response model for document listing."""

    success: bool = True
    documents: List[DocumentStatusResponse]
    count: int


class CancelResponse(BaseModel):
    success: bool
    message: str
    document: DocumentStatusResponse


class ChatRequest(BaseModel):
    """Request model for the answer stream."""

    message: str = Field(..., min_length=1)
    document_ids: List[str] = Field(default_factory=list)
    session_id: Optional[str] = None


class GraphResponse(BaseModel):
    """A knowledge graph with display styles and statistics."""

    success: bool = True
    nodes: List[Dict[str, Any]]
    edges: List[Dict[str, Any]]
    metadata: Dict[str, Any] = Field(default_factory=dict)
    statistics: Dict[str, Any] = Field(default_factory=dict)


class GraphPathResponse(BaseModel):
    success: bool = True
    found: bool
    distance: Optional[int] = None
    nodes: List[Dict[str, Any]] = Field(default_factory=list)
    edges: List[Dict[str, Any]] = Field(default_factory=list)
