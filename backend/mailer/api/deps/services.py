"""Service dependencies, overridable in tests."""
from typing import Callable
from fastapi import Depends
from sqlalchemy.orm import Session

from mailer.api.deps.database import get_db
from mailer.db.models.user_token import UserToken
from mailer.services.adapters import dispatch
from mailer.services.adapters.base import DispatchAdapter, EmailSendAdapter
from mailer.services.adapters.email_sending import get_email_sender
from mailer.services.batch_executor import BatchExecutor


def get_sender_factory() -> Callable[[UserToken], EmailSendAdapter]:
    """Builds a sender adapter from an owner's stored credentials."""
    return get_email_sender


def get_dispatcher() -> DispatchAdapter:
    return dispatch.get_dispatcher()


def get_batch_executor(
    db: Session = Depends(get_db),
    sender_factory: Callable[[UserToken], EmailSendAdapter] = Depends(get_sender_factory),
    dispatcher: DispatchAdapter = Depends(get_dispatcher)
) -> BatchExecutor:
    return BatchExecutor(db, sender_factory=sender_factory, dispatcher=dispatcher)
