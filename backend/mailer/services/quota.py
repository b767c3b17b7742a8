"""Daily send quota: provider count and local ledger, whichever is higher."""
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta, timezone
from typing import Iterable, Optional

import structlog
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from mailer.core.config import settings
from mailer.db.base import utcnow
from mailer.db.models.sent_email import SentEmail
from mailer.schemas.quota import QuotaSnapshot
from mailer.services.adapters.base import EmailSendAdapter

logger = structlog.get_logger()

_provider_pool = ThreadPoolExecutor(max_workers=4, thread_name_prefix="quota")


def get_daily_limit(is_workspace: bool) -> int:
    return settings.QUOTA_LIMIT_WORKSPACE if is_workspace else settings.QUOTA_LIMIT_PERSONAL


def _utc_midnight(now: Optional[datetime] = None) -> datetime:
    now = now or utcnow()
    return now.replace(hour=0, minute=0, second=0, microsecond=0)


def next_reset_time(now: Optional[datetime] = None) -> datetime:
    """Next UTC midnight, as an aware datetime."""
    return (_utc_midnight(now) + timedelta(days=1)).replace(tzinfo=timezone.utc)


def get_today_sent_count(db: Session, user_email: str) -> int:
    """Ledger rows for this sender since UTC midnight."""
    return db.scalar(
        select(func.count(SentEmail.id)).where(
            SentEmail.user_email == user_email,
            SentEmail.sent_at >= _utc_midnight()
        )
    ) or 0


def get_allowance(db: Session, sender: EmailSendAdapter, user_email: str, is_workspace: bool) -> QuotaSnapshot:
    """Compute the remaining daily allowance for a sender identity.

    The provider's Sent folder counts a Bcc batch once, the ledger counts one
    row per recipient, and either may lag the other; the higher of the two is
    used. AuthExpiredError from the provider propagates to the caller.
    """
    provider_future = _provider_pool.submit(sender.get_sent_today_count)
    ledger_count = get_today_sent_count(db, user_email)
    provider_count = provider_future.result()

    sent_today = max(provider_count, ledger_count)
    limit = get_daily_limit(is_workspace)
    snapshot = QuotaSnapshot(
        sent_today=sent_today,
        limit=limit,
        remaining=max(0, limit - sent_today),
        reset_time=next_reset_time(),
    )
    logger.debug(
        "Quota computed",
        user_email=user_email,
        provider_count=provider_count,
        ledger_count=ledger_count,
        remaining=snapshot.remaining
    )
    return snapshot


def record_sent_emails(db: Session, user_email: str, emails: Iterable[str], campaign_id: Optional[str] = None) -> int:
    """Append one ledger row per delivered recipient."""
    now = utcnow()
    rows = [
        SentEmail(user_email=user_email, recipient_email=email, campaign_id=campaign_id, sent_at=now)
        for email in emails
    ]
    db.add_all(rows)
    db.commit()
    return len(rows)
