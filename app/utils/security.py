from datetime import datetime, timedelta, timezone
from typing import Optional
from jose import jwt, JWTError
from app.core.config import settings

# Default lifetime for caller tokens minted by the identity provider / tests
ACCESS_TOKEN_EXPIRE_MINUTES = 60 * 24  # 1 day
DOCUMENT_TOKEN_TYPE = "document"


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_access_token(token: str) -> Optional[dict]:
    """Return the token claims, or None if the signature or expiry is invalid."""
    try:
        return jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except JWTError:
        return None


def create_document_token(path: str, download_name: Optional[str] = None, ttl_seconds: Optional[int] = None) -> str:
    """Short-lived token naming one stored document; backs signed download URLs."""
    ttl = ttl_seconds or settings.SIGNED_URL_TTL_SECONDS
    claims = {"typ": DOCUMENT_TOKEN_TYPE, "path": path}
    if download_name:
        claims["name"] = download_name
    return create_access_token(claims, expires_delta=timedelta(seconds=ttl))


def decode_document_token(token: str) -> Optional[dict]:
    claims = decode_access_token(token)
    if not claims or claims.get("typ") != DOCUMENT_TOKEN_TYPE:
        return None
    return claims
