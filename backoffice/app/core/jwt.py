"""
JWT token utilities for authentication.

This module provides functions for encoding and decoding JWT tokens. Tokens
are issued by the agency platform; the ledger only needs the caller's user,
agency and role claims.
"""

from datetime import datetime, timedelta
from typing import Optional, Dict, Any
from jose import JWTError, jwt
from backoffice.app.core.config import settings


def create_access_token(data: Dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
    """
    Create a JWT access token.

    Args:
        data: Data payload to encode in the token (should include: user_id, agency_id, role)
        expires_delta: Optional custom expiration time

    Returns:
        Encoded JWT token string

    Example payload:
        {
            "user_id": 12,
            "agency_id": 3,
            "role": "gerente",
            "exp": 1234567890
        }
    """
    to_encode = data.copy()

    if expires_delta:
        expire = datetime.utcnow() + expires_delta
    else:
        expire = datetime.utcnow() + timedelta(minutes=settings.access_token_expire_minutes)

    to_encode.update({"exp": expire})
    encoded_jwt = jwt.encode(to_encode, settings.secret_key, algorithm=settings.algorithm)

    return encoded_jwt


def create_principal_token(
    user_id: int,
    agency_id: int,
    role: str,
    expires_delta: Optional[timedelta] = None,
) -> str:
    """Token carrying the claims the ledger resolves a principal from."""
    return create_access_token(
        data={"user_id": user_id, "agency_id": agency_id, "role": role},
        expires_delta=expires_delta,
    )


def decode_access_token(token: str) -> Optional[Dict[str, Any]]:
    """
    Decode and validate a JWT access token.

    Tokens without an expiry are rejected; platform sessions always carry one.

    Args:
        token: JWT token string to decode

    Returns:
        Decoded token payload if valid, None otherwise
    """
    try:
        payload = jwt.decode(
            token,
            settings.secret_key,
            algorithms=[settings.algorithm],
            options={"require_exp": True},
        )
        return payload
    except JWTError:
        return None
