from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import FileResponse
import logging
import os

from app.services.storage_service import get_document_store
from app.utils.security import decode_document_token

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/documents", tags=["documents"])


@router.get("/download")
def download_document(
    token: str = Query(..., description="Signed token from a download URL"),
    store=Depends(get_document_store),
):
    """
    Serve a stored document named by a signed, short-lived token.

    The token itself is the authorization; links are only minted for callers
    allowed to see the document (financial links only once unlocked).
    """
    claims = decode_document_token(token)
    if not claims:
        raise HTTPException(status_code=403, detail="Download link is invalid or has expired")

    path = claims.get("path")
    full_path = store.resolve(path)
    if not os.path.exists(full_path):
        logger.warning(f"Signed download for missing document {path}")
        raise HTTPException(status_code=404, detail="Document not found")

    return FileResponse(full_path, filename=claims.get("name") or os.path.basename(full_path))
