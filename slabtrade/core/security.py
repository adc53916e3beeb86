from __future__ import annotations

from typing import Optional

import jwt
from fastapi import HTTPException, status

from slabtrade.config import get_settings


def _load_api_keys() -> set[str]:
    settings = get_settings()
    keys = set()
    if settings.API_KEYS:
        for value in settings.API_KEYS.split(","):
            value = value.strip()
            if value:
                keys.add(value)
    return keys


def _get_bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    parts = authorization.split()
    if len(parts) == 2 and parts[0].lower() == "bearer":
        return parts[1]
    return None


def _decode_jwt(token: str) -> dict:
    settings = get_settings()
    if not settings.JWT_SECRET:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="JWT auth is not configured",
        )

    options = {"verify_aud": bool(settings.JWT_AUDIENCE)}
    try:
        return jwt.decode(
            token,
            settings.JWT_SECRET,
            algorithms=[settings.JWT_ALGORITHM],
            audience=settings.JWT_AUDIENCE,
            issuer=settings.JWT_ISSUER,
            options=options,
        )
    except jwt.PyJWTError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid JWT",
        ) from exc


def authenticate_request(
    api_key: Optional[str],
    authorization: Optional[str],
    *,
    user_id: Optional[str] = None,
) -> dict:
    """Resolve the caller's identity claim.

    A JWT carries the user id in its ``sub`` claim. An API key authenticates
    a trusted gateway, which passes the user id in a header. Without any
    configured credentials (local development) the header alone is trusted.
    """
    settings = get_settings()
    keys = _load_api_keys()

    token = _get_bearer_token(authorization)
    if token:
        payload = _decode_jwt(token)
        subject = payload.get("sub")
        if not subject:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="JWT has no subject",
            )
        return {"auth_type": "jwt", "user_id": str(subject), "payload": payload}

    if settings.JWT_REQUIRED:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
        )

    if keys and (not api_key or api_key not in keys):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
        )

    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing user identity",
        )
    return {"auth_type": "api_key" if keys else "header", "user_id": user_id}
