# Bearer token check for /api routes

import secrets
from typing import Optional

from fastapi import Depends, Header, HTTPException

from .config import Settings, get_settings


def require_token(
    authorization: Optional[str] = Header(None),
    settings: Settings = Depends(get_settings),
) -> None:
    """
    FastAPI dependency rejecting requests without the configured API token.
    Tokens are issued out of band; this only verifies them.
    """
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Missing or invalid Authorization header")

    token = authorization[len("Bearer "):]
    if not secrets.compare_digest(token.encode("utf-8"), settings.api_token.encode("utf-8")):
        raise HTTPException(status_code=401, detail="Invalid token")
