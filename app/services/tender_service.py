"""
Tender documents and tender removal.

Documents can be attached while a tender is DRAFT or PUBLISHED. A tender can
only be deleted while it is still a DRAFT; once published it has an audit
trail and is closed instead.
"""
import logging
import uuid
from typing import List

from sqlalchemy.orm import Session

from app.core.errors import InvalidTransition, NotFound, UpstreamStorageFailure, ValidationFailed
from app.db.models import Tender, TenderDocument
from app.services.bid_store import document_extension, get_tender_or_404
from app.services.storage_service import (
    DocumentUpload, UploadBatch, validate_upload, with_storage_retry
)
from app.utils.deadline import utcnow
from app.utils.tender_state import TenderStateMachine, TenderStatus

logger = logging.getLogger(__name__)

DOCUMENT_TYPES = {"general", "technical", "financial", "drawing", "boq", "terms", "addendum"}


def _lock_tender(db: Session, tender_id, statuses) -> bool:
    """Touch updated_at only while the tender is in one of statuses; False when it has moved on"""
    return (
        db.query(Tender)
        .filter(Tender.id == tender_id, Tender.status.in_(statuses))
        .update({Tender.updated_at: utcnow()}, synchronize_session=False)
    ) == 1


def upload_tender_document(
    db: Session,
    store,
    tender_id,
    upload: DocumentUpload,
    document_type: str,
    uploaded_by,
) -> TenderDocument:
    tender = get_tender_or_404(db, tender_id)
    if not TenderStateMachine.can_edit_tender(tender.status):
        raise InvalidTransition(
            f"Cannot attach documents to a tender in '{tender.status}' status."
        )
    if document_type not in DOCUMENT_TYPES:
        raise ValidationFailed(
            f"Unknown document_type '{document_type}'. Allowed: {', '.join(sorted(DOCUMENT_TYPES))}"
        )
    validate_upload(upload, "Tender document")

    batch = UploadBatch(store)
    try:
        stored = batch.put(
            f"tenders/{tender_id}/documents/{uuid.uuid4()}_{document_type}.{upload.extension}", upload
        )
        if not _lock_tender(db, tender_id, TenderStateMachine.EDITABLE):
            raise InvalidTransition("Tender was closed or awarded while the document was uploading.")

        document = TenderDocument(
            tender_id=tender_id,
            document_type=document_type,
            file_name=upload.filename,
            file_path=stored.path,
            file_size=stored.size,
            file_hash=stored.sha256,
            uploaded_by=uploaded_by,
        )
        db.add(document)
        db.commit()
    except Exception:
        db.rollback()
        batch.discard()
        raise

    db.refresh(document)
    logger.info(f"Tender document {document.id} ({document_type}) attached to tender {tender_id}")
    return document


def document_view(store, document: TenderDocument) -> dict:
    return {
        "id": document.id,
        "document_type": document.document_type,
        "file_name": document.file_name,
        "file_size": document.file_size,
        "uploaded_at": document.uploaded_at,
        "download_url": store.signed_url(
            document.file_path, f"{document.document_type}.{document_extension(document.file_path)}"
        ),
    }


def tender_document_urls(store, tender: Tender) -> List[dict]:
    return [document_view(store, document) for document in tender.documents]


def get_tender_document(db: Session, tender_id, document_id) -> TenderDocument:
    document = (
        db.query(TenderDocument)
        .filter(TenderDocument.id == document_id, TenderDocument.tender_id == tender_id)
        .first()
    )
    if not document:
        raise NotFound("Tender document not found")
    return document


def delete_tender(db: Session, store, tender_id) -> int:
    """
    Delete a DRAFT tender with its documents. Returns the number of documents removed.

    The status check and the delete share one transaction, so a publish that
    commits first turns the delete into InvalidTransition.
    """
    tender = get_tender_or_404(db, tender_id)
    if tender.status != TenderStatus.DRAFT:
        raise InvalidTransition(
            f"Only DRAFT tenders can be deleted; this tender is '{tender.status}'. Close it instead."
        )

    if not _lock_tender(db, tender_id, (TenderStatus.DRAFT,)):
        db.rollback()
        raise InvalidTransition("Tender left DRAFT while it was being deleted.")
    paths = [
        path for (path,) in db.query(TenderDocument.file_path).filter(TenderDocument.tender_id == tender_id)
    ]
    db.query(TenderDocument).filter(TenderDocument.tender_id == tender_id).delete(synchronize_session=False)
    db.query(Tender).filter(Tender.id == tender_id).delete(synchronize_session=False)
    db.commit()

    for path in paths:
        try:
            with_storage_retry(lambda: store.delete(path), f"delete of {path}")
        except (UpstreamStorageFailure, OSError) as e:
            logger.error(f"Could not remove document {path} of deleted tender {tender_id}: {e}")
    logger.info(f"Tender {tender_id} deleted with {len(paths)} documents")
    return len(paths)
