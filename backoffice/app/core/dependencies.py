"""
Authentication dependencies for FastAPI.

Resolves the calling principal {user_id, agency_id, role}. The ledger trusts
this triple as given and re-checks agency ownership on every row it touches.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional
from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from backoffice.app.core.config import settings
from backoffice.app.core.exceptions import AuthenticationError
from backoffice.app.core.jwt import decode_access_token

# HTTP Bearer security scheme (cookies are accepted too)
security = HTTPBearer(auto_error=False)

USER_ID_CLAIMS = ("user_id", "id_user", "userId", "uid")
AGENCY_ID_CLAIMS = ("agency_id", "id_agency", "agencyId", "aid")


@dataclass(frozen=True)
class Principal:
    """Authenticated caller."""
    user_id: int
    agency_id: int
    role: str


def _first_int_claim(payload: Dict[str, Any], names) -> Optional[int]:
    for name in names:
        value = payload.get(name)
        if value is None:
            continue
        try:
            number = int(value)
        except (TypeError, ValueError):
            continue
        if number > 0:
            return number
    return None


def _token_from_request(request: Request, credentials: Optional[HTTPAuthorizationCredentials]) -> Optional[str]:
    if credentials and credentials.credentials:
        return credentials.credentials
    for name in settings.auth_cookie_names:
        value = request.cookies.get(name)
        if value:
            return value
    return None


def principal_from_payload(payload: Dict[str, Any]) -> Principal:
    """Build a Principal from decoded claims, accepting legacy claim names."""
    user_id = _first_int_claim(payload, USER_ID_CLAIMS)
    agency_id = _first_int_claim(payload, AGENCY_ID_CLAIMS)
    if not user_id or not agency_id:
        raise AuthenticationError("Invalid token payload")
    role = str(payload.get("role") or "").strip().lower()
    return Principal(user_id=user_id, agency_id=agency_id, role=role)


async def get_current_principal(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> Principal:
    """
    FastAPI dependency for JWT authentication.

    Reads the token from the Authorization header or a session cookie.

    Raises:
        AuthenticationError: 401 if the token is missing, invalid or incomplete
    """
    token = _token_from_request(request, credentials)
    if not token:
        raise AuthenticationError("Not authenticated")

    payload = decode_access_token(token)
    if payload is None:
        raise AuthenticationError("Could not validate credentials")

    return principal_from_payload(payload)
