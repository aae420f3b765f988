"""
Document upload and status endpoints.

POST /api/v1/documents - Upload a document and start processing it
GET  /api/v1/documents - List document status records
GET  /api/v1/documents/{document_id}/status - Status of one document
POST /api/v1/documents/{document_id}/cancel - Cancel processing
"""
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile, status

from docgraph.api.dependencies import (
    get_ingestion_pipeline,
    get_status_tracker,
    get_task_registry,
)
from docgraph.api.schemas import (
    CancelResponse,
    DocumentListResponse,
    DocumentStatusResponse,
    ErrorResponse,
)
from docgraph.core.config import settings
from docgraph.services.ingestion.status import ProcessingStage
from docgraph.utils.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/documents", tags=["documents"])


def _bad_request(error: str, **details) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_400_BAD_REQUEST,
        detail={"success": False, "error": error, "details": details},
    )


@router.post(
    "",
    response_model=DocumentStatusResponse,
    status_code=status.HTTP_202_ACCEPTED,
    responses={400: {"model": ErrorResponse}, 503: {"model": ErrorResponse}},
)
async def upload_document(
    file: UploadFile = File(...),
    owner_id: Optional[str] = Form(None),
    tracker=Depends(get_status_tracker),
    registry=Depends(get_task_registry),
    pipeline=Depends(get_ingestion_pipeline),
) -> DocumentStatusResponse:
    """
    Upload a document for processing.

    Returns immediately with the new status record (processing/parsing);
    poll the status endpoint for progress.
    """
    file_name = file.filename
    if not file_name:
        raise _bad_request("Filename is required")

    if not pipeline.extractor.is_supported(file_name):
        logger.warning("upload_unsupported_file_type", file_name=file_name)
        raise _bad_request(f"Unsupported file type: {file_name}", file_name=file_name)

    file_bytes = await file.read()
    if len(file_bytes) == 0:
        logger.warning("upload_empty_file", file_name=file_name)
        raise _bad_request("File is empty", file_name=file_name)
    if len(file_bytes) > settings.max_upload_bytes:
        logger.warning("upload_too_large", file_name=file_name, size_bytes=len(file_bytes))
        raise _bad_request(
            "File exceeds the upload size limit",
            file_name=file_name,
            size_bytes=len(file_bytes),
            max_upload_bytes=settings.max_upload_bytes,
        )

    record = tracker.create(
        file_name=file_name,
        mime_type=file.content_type,
        size_bytes=len(file_bytes),
        owner_id=owner_id,
    )
    record = tracker.report_progress(record.id, ProcessingStage.PARSING, 0, "Upload received")
    registry.submit(
        record.id,
        pipeline.process_document(
            record.id, file_bytes, file_name, mime_type=file.content_type, owner_id=owner_id
        ),
    )
    logger.info("upload_accepted", document_id=record.id, file_name=file_name, size_bytes=len(file_bytes))
    return DocumentStatusResponse.from_record(record)


@router.get("", response_model=DocumentListResponse)
async def list_documents(
    owner_id: Optional[str] = None,
    tracker=Depends(get_status_tracker),
) -> DocumentListResponse:
    records = tracker.list(owner_id=owner_id)
    return DocumentListResponse(
        documents=[DocumentStatusResponse.from_record(r) for r in records],
        count=len(records),
    )


@router.get(
    "/{document_id}/status",
    response_model=DocumentStatusResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_document_status(
    document_id: str,
    tracker=Depends(get_status_tracker),
) -> DocumentStatusResponse:
    record = tracker.get(document_id)
    if record is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={
                "success": False,
                "error": f"Document not found: {document_id}",
                "details": {"document_id": document_id},
            },
        )
    return DocumentStatusResponse.from_record(record)


@router.post(
    "/{document_id}/cancel",
    response_model=CancelResponse,
    responses={404: {"model": ErrorResponse}},
)
async def cancel_document(
    document_id: str,
    tracker=Depends(get_status_tracker),
    registry=Depends(get_task_registry),
) -> CancelResponse:
    """Cancel processing; the record ends in error/failed."""
    record = tracker.get(document_id)
    if record is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={
                "success": False,
                "error": f"Document not found: {document_id}",
                "details": {"document_id": document_id},
            },
        )

    cancelled = registry.cancel(document_id)
    if cancelled:
        # The pipeline also marks failed when the cancellation lands
        record = tracker.mark_failed(document_id, "Processing cancelled")
    return CancelResponse(
        success=cancelled,
        message="Processing cancelled" if cancelled else "Document is not being processed",
        document=DocumentStatusResponse.from_record(record),
    )
