"""Shared API dependencies."""

import secrets

from fastapi import Depends, HTTPException, Security, status
from fastapi.security import APIKeyHeader

from critcss.core.config import settings
from critcss.core.logging import get_logger

logger = get_logger(__name__)

api_token_header = APIKeyHeader(name=settings.auth_token_header, auto_error=False)


def _presented_key(token: str | None) -> str:
    if not token:
        return ""
    scheme, _, credentials = token.partition(" ")
    if scheme.lower() == "bearer" and credentials:
        return credentials.strip()
    return token.strip()


def verify_api_key(token: str | None = Security(api_token_header)) -> str:
    """Accept the shared secret as-is or as a bearer token. An empty secret disables auth."""

    expected = settings.auth_jwt_secret
    if not expected:
        return ""

    presented = _presented_key(token)
    if presented and secrets.compare_digest(presented.encode(), expected.encode()):
        return presented

    logger.info("api_key_rejected", header=settings.auth_token_header, provided=bool(token))
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid API token")


def get_auth_dependency(token: str = Depends(verify_api_key)) -> str:
    return token
