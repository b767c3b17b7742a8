"""Daily quota endpoint."""
from typing import Callable
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
import structlog

from mailer.api.deps import get_current_user_email, get_db, get_sender_factory
from mailer.core.exceptions import AUTH_ERROR_CODE, AuthExpiredError
from mailer.db.models.user_token import UserToken
from mailer.schemas.quota import QuotaSnapshot
from mailer.services import quota as quota_service

logger = structlog.get_logger()

router = APIRouter(tags=["Quota"])


def get_user_credentials(
    db: Session = Depends(get_db),
    user_email: str = Depends(get_current_user_email)
) -> UserToken:
    """Stored provider credentials of the signed-in user; 401 when there are none."""
    credentials = db.get(UserToken, user_email)
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=AUTH_ERROR_CODE
        )
    return credentials


@router.get("/quota", response_model=QuotaSnapshot)
def get_quota(
    credentials: UserToken = Depends(get_user_credentials),
    db: Session = Depends(get_db),
    sender_factory: Callable = Depends(get_sender_factory)
):
    """Remaining sends today for the signed-in user's mailbox."""
    sender = sender_factory(credentials)
    try:
        return quota_service.get_allowance(db, sender, credentials.user_email, credentials.is_workspace)
    except AuthExpiredError:
        logger.info("Quota lookup with expired credentials", user_email=credentials.user_email)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=AUTH_ERROR_CODE
        )
