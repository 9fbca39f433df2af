"""
Pydantic schemas for study documents
"""
import logging
from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


class DocumentStatus(str, Enum):
    UPLOADING = "uploading"
    COMPLETED = "completed"
    ERROR = "error"


# Values written by older clients
LEGACY_STATUSES = {
    "processing": DocumentStatus.UPLOADING,
    "failed": DocumentStatus.ERROR,
}


def parse_document_status(value: Optional[str]) -> DocumentStatus:
    """Map a stored status onto DocumentStatus; unknown values become error"""
    if not value:
        return DocumentStatus.COMPLETED
    value = str(value).strip().lower()
    if value in LEGACY_STATUSES:
        return LEGACY_STATUSES[value]
    try:
        return DocumentStatus(value)
    except ValueError:
        logger.warning(f"Unknown document status '{value}', treating as error")
        return DocumentStatus.ERROR


class DocumentMetadata(BaseModel):
    """Caller-supplied metadata accompanying an upload"""
    filename: str = Field(..., min_length=1, description="Original file name")
    mime_type: str = Field("application/octet-stream", description="Declared content type")
    owner_id: Optional[str] = Field(None, description="Uploading user")
    title: Optional[str] = Field(None, max_length=255, description="Overrides the title derived from the file name")


class Document(BaseModel):
    """Registered document record"""
    id: str
    title: str
    storage_path: str
    mime_type: str
    byte_size: int = 0
    status: DocumentStatus = DocumentStatus.COMPLETED
    created_at: Optional[datetime] = None
    owner_id: Optional[str] = None
    public_url: Optional[str] = None

    @classmethod
    def from_record(cls, record: dict, public_url: Optional[str] = None) -> "Document":
        """Build from a `documents` row"""
        return cls(
            id=str(record["id"]),
            title=record.get("title") or "Untitled",
            storage_path=record.get("file_path") or "",
            mime_type=record.get("file_type") or "application/octet-stream",
            byte_size=record.get("file_size") or 0,
            status=parse_document_status(record.get("status")),
            created_at=record.get("created_at"),
            owner_id=record.get("user_id"),
            public_url=public_url,
        )


class UploadedFile(BaseModel):
    """Raw file handed to the generation pipeline"""
    content: bytes
    metadata: DocumentMetadata


class DocumentHistoryPage(BaseModel):
    documents: List[Document]
    total: int
    page: int
    limit: int
