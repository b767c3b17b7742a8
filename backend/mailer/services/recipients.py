"""Recipient store: claim protocol, outcome recording and progress aggregation.

Exclusion between overlapping triggers rests on conditional writes only:

* the claim first updates the campaign row (``WHERE status = 'running'``),
  which takes that row's write lock until commit, so two claimers of the same
  campaign are serialised on SQLite, PostgreSQL and MySQL alike;
* any recipient already in ``sending`` means a batch is in flight and the
  claim returns nothing;
* the pending -> sending update repeats ``status = 'pending'`` in its WHERE
  clause, so a row can only ever be claimed once.
"""
from datetime import datetime
from typing import List, Optional, Tuple

import structlog
from sqlalchemy import case, delete, func, select, update
from sqlalchemy.orm import Session

from mailer.db.base import utcnow
from mailer.db.models.campaign import Campaign, CampaignStatus
from mailer.db.models.recipient import Recipient, RecipientStatus
from mailer.schemas.campaign import CampaignProgress

logger = structlog.get_logger()

INTERRUPTED_ERROR = "Send interrupted before an outcome was recorded"

STATUS_FILTERS = {
    "all": None,
    "sent": [RecipientStatus.SENT],
    "pending": [RecipientStatus.PENDING, RecipientStatus.SENDING],
    "failed": [RecipientStatus.FAILED],
}


def add_recipients(db: Session, campaign_id: str, emails: List[str]) -> int:
    """Insert pending recipients in list order. Caller commits."""
    db.add_all([
        Recipient(campaign_id=campaign_id, email=email, status=RecipientStatus.PENDING)
        for email in emails
    ])
    return len(emails)


def replace_recipients(db: Session, campaign_id: str, emails: List[str]) -> int:
    """Delete every recipient of the campaign and insert the new list. Caller commits."""
    db.execute(delete(Recipient).where(Recipient.campaign_id == campaign_id))
    return add_recipients(db, campaign_id, emails)


def _lock_running_campaign(db: Session, campaign_id: str) -> bool:
    result = db.execute(
        update(Campaign)
        .where(Campaign.id == campaign_id, Campaign.status == CampaignStatus.RUNNING)
        .values(last_claimed_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    return result.rowcount > 0


def count_in_flight(db: Session, campaign_id: str) -> int:
    return db.scalar(
        select(func.count(Recipient.id)).where(
            Recipient.campaign_id == campaign_id,
            Recipient.status == RecipientStatus.SENDING
        )
    ) or 0


def select_pending_ids(db: Session, campaign_id: str, limit: int) -> List[int]:
    return list(db.scalars(
        select(Recipient.id)
        .where(Recipient.campaign_id == campaign_id, Recipient.status == RecipientStatus.PENDING)
        .order_by(Recipient.id)
        .limit(limit)
    ))


def mark_sending(db: Session, recipient_ids: List[int]) -> int:
    """Move still-pending rows to sending; returns the affected row count."""
    if not recipient_ids:
        return 0
    result = db.execute(
        update(Recipient)
        .where(Recipient.id.in_(recipient_ids), Recipient.status == RecipientStatus.PENDING)
        .values(status=RecipientStatus.SENDING, updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    return result.rowcount


def claim_pending(db: Session, campaign_id: str, limit: int) -> List[Recipient]:
    """Atomically claim up to ``limit`` pending recipients of a running campaign.

    Returns an empty list when the campaign is not running, a batch is already
    in flight, nothing is pending, or another claimer won the race.
    """
    try:
        if not _lock_running_campaign(db, campaign_id):
            db.rollback()
            return []

        in_flight = count_in_flight(db, campaign_id)
        if in_flight > 0:
            db.rollback()
            logger.info("Batch already in flight, claim refused", campaign_id=campaign_id, sending=in_flight)
            return []

        ids = select_pending_ids(db, campaign_id, limit)
        if not ids:
            db.rollback()
            return []

        if mark_sending(db, ids) == 0:
            db.rollback()
            logger.info("Recipients claimed by another process", campaign_id=campaign_id)
            return []

        db.commit()
    except Exception:
        db.rollback()
        raise

    claimed = list(db.scalars(
        select(Recipient)
        .where(Recipient.id.in_(ids), Recipient.status == RecipientStatus.SENDING)
        .order_by(Recipient.id)
    ))
    logger.info("Recipients claimed", campaign_id=campaign_id, count=len(claimed))
    return claimed


def mark_sent(db: Session, recipient_ids: List[int], batch_number: int) -> None:
    if not recipient_ids:
        return
    db.execute(
        update(Recipient)
        .where(Recipient.id.in_(recipient_ids))
        .values(status=RecipientStatus.SENT, batch_number=batch_number, sent_at=utcnow(), error_message=None)
        .execution_options(synchronize_session=False)
    )
    db.commit()


def mark_failed(db: Session, recipient_ids: List[int], error_message: str, batch_number: int) -> None:
    if not recipient_ids:
        return
    db.execute(
        update(Recipient)
        .where(Recipient.id.in_(recipient_ids))
        .values(status=RecipientStatus.FAILED, error_message=error_message, batch_number=batch_number)
        .execution_options(synchronize_session=False)
    )
    db.commit()


def release_stale_sending(db: Session, older_than: datetime) -> int:
    """Fail recipients left in ``sending`` since before ``older_than``.

    A batch whose process died between claim and outcome leaves its rows in
    ``sending``, which blocks every later claim for that campaign.
    """
    result = db.execute(
        update(Recipient)
        .where(Recipient.status == RecipientStatus.SENDING, Recipient.updated_at < older_than)
        .values(status=RecipientStatus.FAILED, error_message=INTERRUPTED_ERROR)
        .execution_options(synchronize_session=False)
    )
    db.commit()
    if result.rowcount:
        logger.warning("Released recipients stuck in sending", count=result.rowcount)
    return result.rowcount


def get_progress(db: Session, campaign_id: str) -> CampaignProgress:
    """Count recipients by status in a single aggregate query."""
    def _count(status: RecipientStatus):
        return func.coalesce(func.sum(case((Recipient.status == status, 1), else_=0)), 0)

    row = db.execute(
        select(
            func.count(Recipient.id),
            _count(RecipientStatus.SENT),
            _count(RecipientStatus.FAILED),
            _count(RecipientStatus.PENDING),
            _count(RecipientStatus.SENDING),
        ).where(Recipient.campaign_id == campaign_id)
    ).one()

    return CampaignProgress(
        total=int(row[0] or 0),
        sent=int(row[1] or 0),
        failed=int(row[2] or 0),
        pending=int(row[3] or 0),
        sending=int(row[4] or 0),
    )


def get_pending_recipients(db: Session, campaign_id: str, limit: int) -> List[Recipient]:
    """Next recipients in claim order, for the upcoming-batch preview."""
    return list(db.scalars(
        select(Recipient)
        .where(Recipient.campaign_id == campaign_id, Recipient.status == RecipientStatus.PENDING)
        .order_by(Recipient.id)
        .limit(limit)
    ))


def list_recipients(
    db: Session,
    campaign_id: str,
    status: str = "all",
    limit: int = 50,
    offset: int = 0
) -> Tuple[List[Recipient], int]:
    """Page through recipients: sent, failed, sending, pending; newest sends first."""
    statuses: Optional[List[RecipientStatus]] = STATUS_FILTERS.get(status)
    conditions = [Recipient.campaign_id == campaign_id]
    if statuses:
        conditions.append(Recipient.status.in_(statuses))

    total = db.scalar(select(func.count(Recipient.id)).where(*conditions)) or 0

    status_order = case(
        (Recipient.status == RecipientStatus.SENT, 1),
        (Recipient.status == RecipientStatus.FAILED, 2),
        (Recipient.status == RecipientStatus.SENDING, 3),
        else_=4,
    )
    rows = db.scalars(
        select(Recipient)
        .where(*conditions)
        .order_by(status_order, Recipient.sent_at.is_(None), Recipient.sent_at.desc(), Recipient.id)
        .offset(offset)
        .limit(limit)
    )
    return list(rows), total
