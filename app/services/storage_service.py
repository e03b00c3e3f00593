"""
Document store for bid, carnival and award documents.

The engine only relies on four things from a store: put bytes under a path,
delete a path, resolve a path for download, and mint a signed URL. The
bundled implementation writes to a local directory; any remote blob store
can replace it by raising StorageUnavailable for transient faults.
"""
import hashlib
import logging
import os
import time
from dataclasses import dataclass
from typing import Callable, List, Optional, TypeVar
from urllib.parse import quote

from app.core.config import settings
from app.core.errors import UpstreamStorageFailure, ValidationFailed
from app.utils.security import create_document_token

logger = logging.getLogger(__name__)

T = TypeVar("T")

# File validation constants
ALLOWED_EXTENSIONS = {"pdf", "docx", "doc", "zip", "jpg", "jpeg", "png"}
MAX_FILE_SIZE = 50 * 1024 * 1024  # 50 MB


class StorageUnavailable(Exception):
    """Transient store fault (timeout, connection reset). Safe to retry."""


@dataclass
class DocumentUpload:
    """One file received from a caller, already read into memory."""
    filename: str
    content: bytes
    content_type: Optional[str] = None

    @property
    def extension(self) -> str:
        return self.filename.rsplit(".", 1)[-1].lower() if "." in self.filename else ""


@dataclass
class StoredDocument:
    path: str
    sha256: str
    size: int


def _too_large(label: str) -> ValidationFailed:
    return ValidationFailed(f"{label} too large. Max size: {MAX_FILE_SIZE // (1024 * 1024)} MB")


async def read_upload(file, label: str = "Document") -> Optional[DocumentUpload]:
    """
    Read a FastAPI UploadFile into memory; None when the part was omitted.

    Oversize parts are refused from the declared size before any read, and
    the read itself never takes more than MAX_FILE_SIZE + 1 bytes.
    """
    if file is None:
        return None
    if file.size and file.size > MAX_FILE_SIZE:
        raise _too_large(label)
    content = await file.read(MAX_FILE_SIZE + 1)
    if len(content) > MAX_FILE_SIZE:
        raise _too_large(label)
    return DocumentUpload(filename=file.filename or "", content=content, content_type=file.content_type)


def calculate_hash(content: bytes) -> str:
    """SHA256 of document content for integrity and idempotence checks"""
    return hashlib.sha256(content).hexdigest()


def validate_upload(upload: Optional[DocumentUpload], label: str) -> DocumentUpload:
    """Validate presence, extension and size of a required document"""
    if upload is None or not upload.filename or not upload.content:
        raise ValidationFailed(f"{label} is required.")
    if upload.extension not in ALLOWED_EXTENSIONS:
        raise ValidationFailed(
            f"Invalid file type '{upload.extension}' for {label}. Allowed: {', '.join(sorted(ALLOWED_EXTENSIONS))}"
        )
    if len(upload.content) > MAX_FILE_SIZE:
        raise _too_large(label)
    return upload


class LocalDocumentStore:
    """Filesystem-backed store rooted at STORAGE_ROOT."""

    def __init__(self, root: str):
        self.root = os.path.abspath(root)
        os.makedirs(self.root, exist_ok=True)

    def resolve(self, path: str) -> str:
        full_path = os.path.abspath(os.path.join(self.root, path))
        if os.path.commonpath([full_path, self.root]) != self.root:
            raise ValidationFailed("Document path escapes the storage root")
        return full_path

    def put(self, path: str, content: bytes, content_type: Optional[str] = None) -> StoredDocument:
        full_path = self.resolve(path)
        try:
            os.makedirs(os.path.dirname(full_path), exist_ok=True)
            with open(full_path, "wb") as f:
                f.write(content)
        except (TimeoutError, ConnectionError) as e:
            raise StorageUnavailable(str(e)) from e
        return StoredDocument(path=path, sha256=calculate_hash(content), size=len(content))

    def delete(self, path: str) -> None:
        full_path = self.resolve(path)
        if os.path.exists(full_path):
            os.remove(full_path)

    def exists(self, path: str) -> bool:
        return os.path.exists(self.resolve(path))

    def signed_url(self, path: Optional[str], download_name: Optional[str] = None) -> Optional[str]:
        if not path:
            return None
        token = create_document_token(path, download_name)
        return f"{settings.PUBLIC_BASE_URL}/documents/download?token={quote(token)}"


def with_storage_retry(operation: Callable[[], T], description: str) -> T:
    """
    Run a store call, retrying transient faults a bounded number of times.

    Raises UpstreamStorageFailure once the retries are exhausted.
    """
    attempts = max(1, settings.STORAGE_MAX_RETRIES)
    last_error = None
    for attempt in range(attempts):
        try:
            return operation()
        except StorageUnavailable as e:
            last_error = e
            logger.warning(f"Storage {description} failed (attempt {attempt + 1}/{attempts}): {e}")
            if attempt + 1 < attempts:
                time.sleep(settings.STORAGE_RETRY_BACKOFF * (attempt + 1))

    logger.error(f"Storage {description} gave up after {attempts} attempts: {last_error}")
    raise UpstreamStorageFailure(
        f"Document storage is temporarily unavailable ({description}). Please retry."
    )


class UploadBatch:
    """
    Uploads that belong to one logical write.

    If the write fails after some documents were stored, discard() removes
    them so no orphaned blobs remain.
    """

    def __init__(self, store):
        self.store = store
        self.stored: List[StoredDocument] = []

    def put(self, path: str, upload: DocumentUpload) -> StoredDocument:
        doc = with_storage_retry(
            lambda: self.store.put(path, upload.content, upload.content_type),
            f"upload of {path}",
        )
        self.stored.append(doc)
        return doc

    def discard(self, keep=()) -> None:
        """Delete everything this batch stored, except paths listed in keep."""
        keep = {path for path in keep if path}
        for doc in reversed(self.stored):
            if doc.path in keep:
                continue
            try:
                self.store.delete(doc.path)
            except (StorageUnavailable, OSError) as e:
                logger.error(f"Could not remove orphaned document {doc.path}: {e}")
        self.stored = []


_default_store = None


def get_document_store():
    """FastAPI dependency returning the process-wide document store"""
    global _default_store
    if _default_store is None:
        _default_store = LocalDocumentStore(settings.STORAGE_ROOT)
    return _default_store
