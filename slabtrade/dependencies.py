from typing import Optional

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.orm import Session

from slabtrade.core.errors import UserNotFound
from slabtrade.core.security import authenticate_request
from slabtrade.database.session import get_db
from slabtrade.services.authorization import Actor, load_actor


def require_auth(
    api_key: Optional[str] = Header(None, alias="X-API-Key"),
    api_key_alt: Optional[str] = Header(None, alias="api-key"),
    authorization: Optional[str] = Header(None),
    user_id: Optional[str] = Header(None, alias="X-User-Id"),
):
    api_key_value = api_key or api_key_alt
    return authenticate_request(
        api_key=api_key_value,
        authorization=authorization,
        user_id=user_id,
    )


def get_actor(
    auth: dict = Depends(require_auth),
    db: Session = Depends(get_db),
) -> Actor:
    try:
        return load_actor(db, auth["user_id"])
    except UserNotFound as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unknown or inactive user",
        ) from exc


__all__ = ["get_actor", "get_db", "require_auth"]
