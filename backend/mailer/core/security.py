"""Session tokens, cron secret and delay-queue callback signatures."""
import base64
import hashlib
import hmac
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import structlog
from jose import JWTError, jwt

from mailer.core.config import settings

logger = structlog.get_logger()

ALGORITHM = "HS256"
QSTASH_ISSUER = "Upstash"


def create_access_token(data: Dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
    """Create a signed session token. ``sub`` carries the owner email."""
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=ALGORITHM)


def decode_access_token(token: str) -> Optional[Dict[str, Any]]:
    """Decode a session token, returning None when invalid or expired."""
    try:
        return jwt.decode(token, settings.SECRET_KEY, algorithms=[ALGORITHM])
    except JWTError:
        return None


def verify_cron_secret(authorization: Optional[str]) -> bool:
    """Check an ``Authorization: Bearer <CRON_SECRET>`` header."""
    if not settings.CRON_SECRET or not authorization:
        return False
    expected = f"Bearer {settings.CRON_SECRET}"
    return hmac.compare_digest(authorization.encode("utf-8"), expected.encode("utf-8"))


def _body_hash(body: bytes) -> str:
    digest = hashlib.sha256(body).digest()
    return base64.urlsafe_b64encode(digest).decode("ascii").rstrip("=")


def _verify_with_key(signature: str, body: bytes, key: str) -> bool:
    try:
        claims = jwt.decode(
            signature,
            key,
            algorithms=[ALGORITHM],
            issuer=QSTASH_ISSUER,
            options={"verify_aud": False},
        )
    except JWTError:
        return False
    return str(claims.get("body", "")).rstrip("=") == _body_hash(body)


def verify_qstash_signature(signature: Optional[str], body: bytes) -> bool:
    """Verify an ``Upstash-Signature`` JWT against the current then the next signing key.

    The token must be HS256 signed, issued by Upstash, unexpired, and its ``body``
    claim must equal the base64url SHA-256 of the raw request body.
    """
    if not signature:
        return False
    keys = [k for k in (settings.QSTASH_CURRENT_SIGNING_KEY, settings.QSTASH_NEXT_SIGNING_KEY) if k]
    if not keys:
        logger.warning("QStash signing keys not configured, rejecting callback")
        return False
    return any(_verify_with_key(signature, body, key) for key in keys)


def sign_qstash_body(body: bytes, key: str, url: str = "", expires_in: int = 300) -> str:
    """Produce an ``Upstash-Signature`` compatible token for a body (used by tests and local tooling)."""
    now = datetime.now(timezone.utc)
    claims = {
        "iss": QSTASH_ISSUER,
        "sub": url,
        "iat": int(now.timestamp()),
        "nbf": int(now.timestamp()),
        "exp": int((now + timedelta(seconds=expires_in)).timestamp()),
        "body": _body_hash(body),
    }
    return jwt.encode(claims, key, algorithm=ALGORITHM)
