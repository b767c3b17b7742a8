"""Authentication dependencies for FastAPI."""
from typing import Optional
from fastapi import Depends, Header, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
import structlog

from mailer.core.security import decode_access_token, verify_cron_secret, verify_qstash_signature

logger = structlog.get_logger()

bearer_scheme = HTTPBearer(auto_error=False)


async def get_current_user_email(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme)
) -> str:
    """Resolve the signed-in owner's email from the session bearer token."""
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Unauthorized",
        headers={"WWW-Authenticate": "Bearer"},
    )
    if credentials is None:
        raise credentials_exception

    payload = decode_access_token(credentials.credentials)
    if payload is None:
        raise credentials_exception

    email: Optional[str] = payload.get("sub")
    if not email:
        raise credentials_exception

    return email.lower()


async def verify_qstash_request(
    request: Request,
    upstash_signature: Optional[str] = Header(None, alias="Upstash-Signature")
) -> bytes:
    """Reject delay-queue callbacks whose signature does not match the raw body."""
    body = await request.body()
    if not verify_qstash_signature(upstash_signature, body):
        logger.warning("Rejected callback with invalid signature", path=request.url.path)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid signature"
        )
    return body


async def verify_cron_request(
    authorization: Optional[str] = Header(None)
) -> None:
    """Require ``Authorization: Bearer <CRON_SECRET>`` on the sweep endpoint."""
    if not verify_cron_secret(authorization):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized"
        )
