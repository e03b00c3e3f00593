from dataclasses import dataclass
from typing import Optional
from uuid import UUID

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer

from app.utils.permissions import ROLES
from app.utils.security import decode_access_token

# Tokens are minted by the portal's auth service; this engine only verifies them
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login")


@dataclass(frozen=True)
class Caller:
    """Identity of the user making a request, passed explicitly into every operation."""
    user_id: UUID
    role: str
    supplier_id: Optional[UUID] = None


def _parse_uuid(value) -> Optional[UUID]:
    if value is None:
        return None
    try:
        return UUID(str(value))
    except ValueError:
        return None


def get_current_user(token: str = Depends(oauth2_scheme)) -> Caller:
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Invalid or expired token",
        headers={"WWW-Authenticate": "Bearer"},
    )
    claims = decode_access_token(token)
    if not claims:
        raise credentials_exception

    user_id = _parse_uuid(claims.get("sub"))
    role = claims.get("role")
    if user_id is None or role not in ROLES:
        raise credentials_exception

    if claims.get("is_active") is False:
        raise HTTPException(status_code=403, detail="Your account is pending admin approval.")

    return Caller(user_id=user_id, role=role, supplier_id=_parse_uuid(claims.get("supplier_id")))
