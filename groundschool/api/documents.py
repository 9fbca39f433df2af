"""
Document upload and lookup API endpoints
"""
from fastapi import APIRouter, Depends, UploadFile, File, Form, Query
from typing import Optional
import logging

from groundschool.dependencies import get_current_user, get_document_service
from groundschool.schemas.document import Document, DocumentHistoryPage, DocumentMetadata
from groundschool.services.document_service import DocumentIngestionService
from groundschool.utils.exceptions import ValidationError

router = APIRouter(prefix="/api/documents", tags=["documents"])
logger = logging.getLogger(__name__)


@router.post("", response_model=Document, status_code=201)
async def upload_document(
    file: UploadFile = File(...),
    title: Optional[str] = Form(None),
    user_id: Optional[str] = Depends(get_current_user),
    documents: DocumentIngestionService = Depends(get_document_service)
):
    """
    Upload a study document

    - Stores the file under a timestamped key
    - Registers the document record
    - Mirrors it into the local cache
    """
    if not file.filename:
        raise ValidationError("File name is required", error_code="MISSING_FILENAME")

    content = await file.read()
    metadata = DocumentMetadata(
        filename=file.filename,
        mime_type=file.content_type or "application/octet-stream",
        owner_id=user_id,
        title=title
    )

    logger.info(f"Document upload received: {file.filename} ({len(content)} bytes)")
    return await documents.ingest(content, metadata)


@router.get("", response_model=DocumentHistoryPage)
async def list_documents(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    user_id: Optional[str] = Depends(get_current_user),
    documents: DocumentIngestionService = Depends(get_document_service)
):
    """Current user's documents, newest first"""
    return await documents.history(user_id, page=page, limit=limit)


@router.get("/{document_id}", response_model=Document)
async def get_document(
    document_id: str,
    documents: DocumentIngestionService = Depends(get_document_service)
):
    return await documents.get_document(document_id)
