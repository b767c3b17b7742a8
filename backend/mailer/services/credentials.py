"""Stored provider credentials."""
from typing import Callable, Optional

import structlog
from sqlalchemy import update
from sqlalchemy.orm import Session

from mailer.db.models.user_token import UserToken
from mailer.schemas.auth import ProviderTokensUpdate

logger = structlog.get_logger()


def store_provider_tokens(db: Session, user_email: str, tokens_in: ProviderTokensUpdate) -> UserToken:
    """Store or replace an owner's OAuth credentials."""
    credentials = db.get(UserToken, user_email)
    if credentials is None:
        credentials = UserToken(user_email=user_email)
        db.add(credentials)

    credentials.access_token = tokens_in.access_token
    credentials.refresh_token = tokens_in.refresh_token
    credentials.hosted_domain = tokens_in.hosted_domain
    db.commit()
    db.refresh(credentials)

    logger.info("Provider tokens stored", user_email=user_email, is_workspace=credentials.is_workspace)
    return credentials


def save_refreshed_access_token(
    user_email: str,
    access_token: str,
    session_factory: Optional[Callable[[], Session]] = None
) -> None:
    """Persist an access token issued by a refresh.

    Runs in its own session: refreshes happen inside provider calls, which may
    be on a worker thread while the caller's session is busy.
    """
    if session_factory is None:
        from mailer.db.base import SessionLocal
        session_factory = SessionLocal

    db = session_factory()
    try:
        db.execute(
            update(UserToken)
            .where(UserToken.user_email == user_email)
            .values(access_token=access_token)
            .execution_options(synchronize_session=False)
        )
        db.commit()
    finally:
        db.close()
    logger.info("Refreshed access token stored", user_email=user_email)
