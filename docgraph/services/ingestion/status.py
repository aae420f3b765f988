"""
Document status tracking.

One record per uploaded document. Only the pipeline run that owns a document
writes its record; API pollers read snapshot copies. Stages move forward
through parsing -> embedding -> ontology -> completed, or jump to failed.
Progress never decreases while a document is processing.
"""
import dataclasses
import logging
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from docgraph.utils.exceptions import StatusTransitionError

logger = logging.getLogger(__name__)


class DocumentStatus(str, Enum):
    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    ERROR = "error"


class ProcessingStage(str, Enum):
    PARSING = "parsing"
    EMBEDDING = "embedding"
    ONTOLOGY = "ontology"
    COMPLETED = "completed"
    FAILED = "failed"


STAGE_ORDER = [
    ProcessingStage.PARSING,
    ProcessingStage.EMBEDDING,
    ProcessingStage.ONTOLOGY,
    ProcessingStage.COMPLETED,
]

COUNTER_FIELDS = (
    "total_chunks",
    "processed_chunks",
    "failed_chunks",
    "entities_created",
    "relationships_created",
)


@dataclass
class DocumentRecord:
    """Status record of one uploaded document."""

    id: str
    file_name: str
    mime_type: Optional[str]
    size_bytes: int
    owner_id: Optional[str] = None
    status: DocumentStatus = DocumentStatus.QUEUED
    stage: ProcessingStage = ProcessingStage.PARSING
    progress: int = 0
    message: str = ""
    total_chunks: int = 0
    processed_chunks: int = 0
    failed_chunks: int = 0
    entities_created: int = 0
    relationships_created: int = 0
    created_at: datetime = field(default_factory=datetime.utcnow)
    updated_at: datetime = field(default_factory=datetime.utcnow)

    @property
    def is_terminal(self) -> bool:
        return self.status in (DocumentStatus.COMPLETED, DocumentStatus.ERROR)

    def to_dict(self) -> Dict[str, Any]:
        data = dataclasses.asdict(self)
        data["status"] = self.status.value
        data["stage"] = self.stage.value
        data["created_at"] = self.created_at.isoformat()
        data["updated_at"] = self.updated_at.isoformat()
        return data


class StatusTracker:
    """
    In-process owner of document status records.

    When a ``StatusRepository`` is given, every change is mirrored to it. A
    failed mirror write is logged; the in-process record stays authoritative.
    """

    def __init__(self, repository=None):
        self.repository = repository
        self._records: Dict[str, DocumentRecord] = {}
        self._lock = threading.Lock()

    def create(
        self,
        file_name: str,
        mime_type: Optional[str],
        size_bytes: int,
        owner_id: Optional[str] = None,
        document_id: Optional[str] = None,
    ) -> DocumentRecord:
        record = DocumentRecord(
            id=document_id or str(uuid.uuid4()),
            file_name=file_name,
            mime_type=mime_type,
            size_bytes=size_bytes,
            owner_id=owner_id,
            message="Queued for processing",
        )
        with self._lock:
            self._records[record.id] = record
            snapshot = dataclasses.replace(record)
        self._mirror(snapshot)
        return snapshot

    def get(self, document_id: str) -> Optional[DocumentRecord]:
        """Snapshot of a record, or None if unknown."""
        with self._lock:
            record = self._records.get(document_id)
            return dataclasses.replace(record) if record else None

    def list(self, owner_id: Optional[str] = None) -> List[DocumentRecord]:
        with self._lock:
            records = [
                dataclasses.replace(r)
                for r in self._records.values()
                if owner_id is None or r.owner_id == owner_id
            ]
        return sorted(records, key=lambda r: r.created_at, reverse=True)

    def has_active(self) -> bool:
        """True while any document is not yet terminal (pollers keep polling)."""
        with self._lock:
            return any(not r.is_terminal for r in self._records.values())

    def report_progress(
        self,
        document_id: str,
        stage: ProcessingStage,
        percent: float,
        message: Optional[str] = None,
        **counters: int,
    ) -> DocumentRecord:
        """
        Record progress for a processing document.

        Repeating a call is a no-op. ``percent`` below the current progress is
        ignored. Updates to a terminal record are ignored.

        Raises:
            StatusTransitionError: If ``stage`` is behind the current stage or is terminal
            KeyError: If the document is unknown
        """
        stage = ProcessingStage(stage)
        if stage not in STAGE_ORDER or stage is ProcessingStage.COMPLETED:
            raise StatusTransitionError(
                f"Use mark_completed/mark_failed for terminal stage {stage.value}",
                {"document_id": document_id, "stage": stage.value},
            )
        unknown = set(counters) - set(COUNTER_FIELDS)
        if unknown:
            raise ValueError(f"Unknown status counters: {sorted(unknown)}")

        with self._lock:
            record = self._records[document_id]
            if record.is_terminal:
                logger.debug(f"Ignoring progress for terminal document {document_id}")
                return dataclasses.replace(record)
            if STAGE_ORDER.index(stage) < STAGE_ORDER.index(record.stage):
                raise StatusTransitionError(
                    f"Stage cannot move from {record.stage.value} back to {stage.value}",
                    {"document_id": document_id, "from": record.stage.value, "to": stage.value},
                )

            changes: Dict[str, Any] = {
                "status": DocumentStatus.PROCESSING,
                "stage": stage,
                "progress": max(record.progress, min(100, max(0, int(percent)))),
                **counters,
            }
            if message is not None:
                changes["message"] = message
            snapshot = self._apply(record, changes)

        if snapshot is not None:
            self._mirror(snapshot)
            return snapshot
        return self.get(document_id)

    def mark_completed(
        self,
        document_id: str,
        message: str = "Processing complete",
        **counters: int,
    ) -> DocumentRecord:
        with self._lock:
            record = self._records[document_id]
            if record.is_terminal:
                if record.status is DocumentStatus.ERROR:
                    logger.warning(f"Document {document_id} already failed, not marking completed")
                return dataclasses.replace(record)
            snapshot = self._apply(record, {
                "status": DocumentStatus.COMPLETED,
                "stage": ProcessingStage.COMPLETED,
                "progress": 100,
                "message": message,
                **counters,
            })
        self._mirror(snapshot)
        return snapshot

    def mark_failed(self, document_id: str, message: str) -> DocumentRecord:
        """Move a document to error/failed from any non-terminal stage."""
        with self._lock:
            record = self._records[document_id]
            if record.is_terminal:
                return dataclasses.replace(record)
            snapshot = self._apply(record, {
                "status": DocumentStatus.ERROR,
                "stage": ProcessingStage.FAILED,
                "message": message,
            })
        self._mirror(snapshot)
        return snapshot

    def restart(self, document_id: str, message: str = "Reprocessing") -> DocumentRecord:
        """
        Reopen a record for a new processing run.

        Resets the record to processing/parsing with zero progress and counters.
        Only the run that takes over the document calls this, after the previous
        run has finished.
        """
        changes: Dict[str, Any] = {
            "status": DocumentStatus.PROCESSING,
            "stage": ProcessingStage.PARSING,
            "progress": 0,
            "message": message,
            **{name: 0 for name in COUNTER_FIELDS},
        }
        with self._lock:
            record = self._records[document_id]
            snapshot = self._apply(record, changes) or dataclasses.replace(record)
        logger.info(f"Restarting processing of {document_id}")
        self._mirror(snapshot)
        return snapshot

    @staticmethod
    def _apply(record: DocumentRecord, changes: Dict[str, Any]) -> Optional[DocumentRecord]:
        """Apply changes in place; returns a snapshot, or None if nothing changed."""
        if all(getattr(record, key) == value for key, value in changes.items()):
            return None
        for key, value in changes.items():
            setattr(record, key, value)
        record.updated_at = datetime.utcnow()
        return dataclasses.replace(record)

    def _mirror(self, snapshot: DocumentRecord) -> None:
        if self.repository is None:
            return
        try:
            self.repository.save_status(snapshot.to_dict())
        except Exception as e:
            logger.error(f"Failed to mirror status for {snapshot.id}: {str(e)}")
