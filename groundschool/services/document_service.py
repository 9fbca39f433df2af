"""
Document ingestion: blob upload, record registration and cache mirroring
"""
import logging
import re
import time
from datetime import datetime, timezone
from typing import Callable, Optional, Tuple

from groundschool.config import settings
from groundschool.schemas.document import (
    Document,
    DocumentHistoryPage,
    DocumentMetadata,
    DocumentStatus,
)
from groundschool.services.supabase_store import RemoteStore
from groundschool.services.text_extraction import extract_text
from groundschool.utils.cache import LocalCacheStore
from groundschool.utils.exceptions import (
    GroundSchoolError,
    NotFoundError,
    PersistenceError,
    StorageConflictError,
    ValidationError,
)
from groundschool.utils.identifiers import normalize_id

logger = logging.getLogger(__name__)

UNSAFE_FILENAME_CHARS = re.compile(r"[^a-zA-Z0-9._-]")
MAX_TITLE_LENGTH = 100


def split_filename(filename: str) -> Tuple[str, str]:
    """Split into (base name, extension); extension is "file" when absent"""
    parts = filename.split(".")
    if len(parts) > 1 and parts[-1]:
        return ".".join(parts[:-1]), parts[-1].lower()
    return filename, "file"


def sanitize_filename(filename: str) -> str:
    return UNSAFE_FILENAME_CHARS.sub("_", filename)


def build_storage_key(filename: str, timestamp_ms: int, retry: bool = False) -> str:
    """Timestamped storage key; the retry marker keeps a second attempt distinct"""
    marker = "retry_" if retry else ""
    return f"{timestamp_ms}_{marker}{sanitize_filename(filename)}"


class DocumentIngestionService:
    """
    Uploads study documents and registers their metadata

    Steps:
    1. Derive a timestamped storage key from the sanitized file name
    2. Upload the blob (one re-keyed retry on a storage conflict)
    3. Insert the `documents` record
    4. Mirror the record into the local cache
    """

    TABLE = "documents"

    def __init__(
        self,
        store: RemoteStore,
        cache: LocalCacheStore,
        bucket: str = None,
        clock: Callable[[], float] = time.time,
    ):
        self.store = store
        self.cache = cache
        self.bucket = bucket or settings.SUPABASE_BUCKET
        self._clock = clock

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    async def ingest(self, file_bytes: bytes, metadata: DocumentMetadata) -> Document:
        """
        Upload a document and register it

        Raises:
            ValidationError: empty payload or missing file name
            StorageConflictError: key collision persisted after the retry
            NetworkError: blob upload failed after retries
            PersistenceError: blob stored but the record could not be created
        """
        if not file_bytes:
            raise ValidationError("File is empty", error_code="EMPTY_FILE")
        if not metadata.filename or not metadata.filename.strip():
            raise ValidationError("File name is required", error_code="MISSING_FILENAME")

        filename = metadata.filename.strip()
        base_name, extension = split_filename(filename)
        storage_path = build_storage_key(filename, self._now_ms())

        logger.info(f"Uploading document {filename} ({len(file_bytes)} bytes, .{extension})")

        try:
            await self.store.upload(self.bucket, storage_path, file_bytes, metadata.mime_type)
        except StorageConflictError:
            storage_path = build_storage_key(filename, self._now_ms(), retry=True)
            logger.warning(f"Storage key collision, retrying upload as {storage_path}")
            await self.store.upload(self.bucket, storage_path, file_bytes, metadata.mime_type)

        now = datetime.now(timezone.utc).isoformat()
        record = {
            "title": (metadata.title or base_name)[:MAX_TITLE_LENGTH],
            "file_path": storage_path,
            "file_type": metadata.mime_type,
            "file_size": len(file_bytes),
            "status": DocumentStatus.COMPLETED.value,
            "created_at": now,
            "updated_at": now,
            "user_id": metadata.owner_id,
        }

        try:
            created = await self.store.insert(self.TABLE, record)
        except Exception as e:
            # The uploaded blob stays behind; there is no rollback of storage
            logger.error(f"Document record creation failed after upload of {storage_path}: {str(e)}")
            raise PersistenceError(
                f"Failed to create document record: {str(e)}",
                context={"storage_path": storage_path, "bucket": self.bucket},
            ) from e

        document = Document.from_record(created, public_url=self.store.public_url(self.bucket, storage_path))
        logger.info(f"Document created: {document.id}")

        self._mirror(document)
        return document

    def _mirror(self, document: Document) -> None:
        payload = document.model_dump(mode="json")
        self.cache.put(LocalCacheStore.DOCUMENT, document.id, payload)
        self.cache.append_to_index(LocalCacheStore.DOCUMENT_HISTORY, payload)

    async def get_document(self, document_id: str) -> Document:
        """
        Fetch a document record, remote first with cache fallback

        Raises:
            ValidationError: missing id
            NotFoundError: absent from both the remote store and the cache
        """
        if not document_id or not str(document_id).strip():
            raise ValidationError("Document ID is required", error_code="MISSING_DOCUMENT_ID")

        normalized = normalize_id(document_id)
        try:
            record = await self.store.select_single(self.TABLE, {"id": normalized})
            public_url = None
            if record.get("file_path"):
                public_url = self.store.public_url(self.bucket, record["file_path"])
            document = Document.from_record(record, public_url=public_url)
            self._mirror(document)
            return document
        except GroundSchoolError as e:
            logger.info(f"Could not fetch document {normalized} remotely ({e.error_code}), trying cache")

        for candidate in dict.fromkeys([normalized, str(document_id)]):
            cached = self.cache.get(LocalCacheStore.DOCUMENT, candidate)
            if cached:
                return Document.model_validate(cached)

        raise NotFoundError(f"Document not found: {document_id}", error_code="DOCUMENT_NOT_FOUND")

    async def load_text(self, document: Document) -> str:
        """Download the stored blob and extract its text"""
        if not document.storage_path:
            raise ValidationError(
                f"Document {document.id} has no storage path",
                error_code="MISSING_STORAGE_PATH"
            )
        content = await self.store.download(self.bucket, document.storage_path)
        return extract_text(content, mime_type=document.mime_type, filename=document.storage_path)

    async def _remote_history(self, owner_id: str, page: int, limit: int) -> DocumentHistoryPage:
        rows, total = await self.store.select(
            self.TABLE,
            filters={"user_id": owner_id},
            order="created_at.desc",
            limit=limit,
            offset=(page - 1) * limit,
        )
        documents = []
        for row in rows:
            public_url = self.store.public_url(self.bucket, row["file_path"]) if row.get("file_path") else None
            document = Document.from_record(row, public_url=public_url)
            self.cache.put(LocalCacheStore.DOCUMENT, document.id, document.model_dump(mode="json"))
            documents.append(document)
        return DocumentHistoryPage(documents=documents, total=total, page=page, limit=limit)

    async def history(self, owner_id: Optional[str], page: int = 1, limit: int = 10) -> DocumentHistoryPage:
        """User's documents, newest first; cached history when the remote is unreachable"""
        offset = (page - 1) * limit
        if owner_id:
            try:
                return await self._remote_history(owner_id, page, limit)
            except GroundSchoolError as e:
                logger.warning(f"Document history unavailable remotely ({e.error_code}), using cache")
        else:
            logger.info("No user id supplied, serving cached document history")

        entries = self.cache.read_index(LocalCacheStore.DOCUMENT_HISTORY)
        if owner_id:
            entries = [entry for entry in entries if entry.get("owner_id") in (owner_id, None)]
        documents = [Document.model_validate(entry) for entry in entries[offset:offset + limit]]
        return DocumentHistoryPage(documents=documents, total=len(entries), page=page, limit=limit)
