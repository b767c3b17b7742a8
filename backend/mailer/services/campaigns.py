"""Campaign lifecycle: status graph, draft editing, deletion and duplication."""
from datetime import datetime
from typing import Dict, FrozenSet, List, Optional, Tuple

import structlog
from sqlalchemy import case, func, or_, select, update
from sqlalchemy.orm import Session

from mailer.core.exceptions import (
    CampaignNotEditableError, CampaignRunningError, IllegalTransitionError, RecipientValidationError
)
from mailer.db.base import utcnow
from mailer.db.models.campaign import Campaign, CampaignStatus
from mailer.db.models.campaign_image import CampaignImage
from mailer.db.models.recipient import Recipient, RecipientStatus
from mailer.schemas.campaign import CampaignCreate, CampaignUpdate
from mailer.services import recipients as recipient_store
from mailer.services.adapters.base import DispatchAdapter
from mailer.services.address_list import parse_address_list
from mailer.services.mime import extract_inline_images

logger = structlog.get_logger()

LEGAL_TRANSITIONS: Dict[CampaignStatus, FrozenSet[CampaignStatus]] = {
    CampaignStatus.DRAFT: frozenset({CampaignStatus.RUNNING, CampaignStatus.STOPPED}),
    CampaignStatus.RUNNING: frozenset({CampaignStatus.PAUSED, CampaignStatus.STOPPED, CampaignStatus.COMPLETED}),
    CampaignStatus.PAUSED: frozenset({CampaignStatus.RUNNING, CampaignStatus.STOPPED}),
    CampaignStatus.COMPLETED: frozenset(),
    CampaignStatus.STOPPED: frozenset(),
}

# Fields of CampaignUpdate that map straight onto Campaign columns
DRAFT_FIELDS = ("name", "subject", "body", "signature", "to_email", "batch_size", "batch_delay_seconds")


def can_transition(current: CampaignStatus, requested: CampaignStatus) -> bool:
    return requested in LEGAL_TRANSITIONS.get(CampaignStatus(current), frozenset())


def transition_status(
    db: Session,
    campaign: Campaign,
    new_status: CampaignStatus,
    dispatcher: Optional[DispatchAdapter] = None,
    reason: Optional[str] = None
) -> Campaign:
    """Move a campaign along one edge of the status graph.

    The write is conditional on the status the caller observed, so a
    concurrent change in between is reported as an illegal transition rather
    than silently overwritten.
    """
    current = CampaignStatus(campaign.status)
    new_status = CampaignStatus(new_status)
    if not can_transition(current, new_status):
        raise IllegalTransitionError(current, new_status)

    values = {"status": new_status, "updated_at": utcnow()}
    if new_status == CampaignStatus.RUNNING:
        values["status_reason"] = None
    else:
        values["next_batch_at"] = None
        if new_status == CampaignStatus.PAUSED:
            values["status_reason"] = reason

    result = db.execute(
        update(Campaign)
        .where(Campaign.id == campaign.id, Campaign.status == current)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        db.rollback()
        db.refresh(campaign)
        raise IllegalTransitionError(campaign.status, new_status)
    db.commit()
    db.refresh(campaign)

    logger.info(
        "Campaign status changed",
        campaign_id=campaign.id,
        from_status=current.value,
        to_status=new_status.value,
        reason=reason
    )

    if new_status == CampaignStatus.RUNNING and dispatcher is not None:
        try:
            dispatcher.trigger_immediate(campaign.id)
        except Exception as e:
            logger.error("Immediate trigger failed", campaign_id=campaign.id, error=str(e))

    return campaign


def pause_campaign(db: Session, campaign: Campaign, reason: str) -> Campaign:
    """Pause a running campaign with a reason; a campaign that already left running is left alone."""
    try:
        return transition_status(db, campaign, CampaignStatus.PAUSED, reason=reason)
    except IllegalTransitionError:
        logger.info("Pause skipped, campaign no longer running", campaign_id=campaign.id, status=campaign.status)
        return campaign


def complete_campaign(db: Session, campaign: Campaign) -> Campaign:
    try:
        return transition_status(db, campaign, CampaignStatus.COMPLETED)
    except IllegalTransitionError:
        logger.info("Completion skipped, campaign no longer running", campaign_id=campaign.id, status=campaign.status)
        return campaign


def _validated_recipients(raw: List[str]) -> List[str]:
    parsed = parse_address_list(raw)
    if parsed.invalid:
        raise RecipientValidationError(parsed.invalid)
    if not parsed.valid:
        raise RecipientValidationError([], "At least one recipient is required")
    return parsed.valid


def _store_images(db: Session, campaign_id: str, images) -> None:
    db.add_all([
        CampaignImage(
            campaign_id=campaign_id,
            content_id=image.content_id,
            filename=image.filename,
            mime_type=image.mime_type,
            base64_data=image.base64_data,
        )
        for image in images
    ])


def _drop_unreferenced_images(db: Session, campaign: Campaign, body: str) -> None:
    """Delete stored images the new body no longer refers to by ``cid:``."""
    for image in list(campaign.images):
        if f"cid:{image.content_id}" not in body:
            campaign.images.remove(image)
            db.delete(image)


def create_campaign(db: Session, user_email: str, data: CampaignCreate) -> Campaign:
    """Create a draft campaign with its recipients and inline images."""
    emails = _validated_recipients(data.recipients)
    body, images = extract_inline_images(data.body)

    campaign = Campaign(
        user_email=user_email,
        name=data.name,
        subject=data.subject,
        body=body,
        signature=data.signature,
        to_email=data.to_email,
        batch_size=data.batch_size,
        batch_delay_seconds=data.batch_delay_seconds,
        status=CampaignStatus.DRAFT,
        total_recipients=len(emails),
    )
    db.add(campaign)
    db.flush()

    recipient_store.add_recipients(db, campaign.id, emails)
    _store_images(db, campaign.id, images)
    db.commit()
    db.refresh(campaign)

    logger.info("Campaign created", campaign_id=campaign.id, user_email=user_email, recipients=len(emails))
    return campaign


def update_draft(db: Session, campaign: Campaign, data: CampaignUpdate) -> Campaign:
    """Apply content edits to a draft. A recipients list replaces the old one."""
    changes = data.content_fields()
    if not changes:
        return campaign
    if campaign.status != CampaignStatus.DRAFT:
        raise CampaignNotEditableError(campaign.status)

    emails = None
    if changes.get("recipients") is not None:
        emails = _validated_recipients(changes["recipients"])

    for field in DRAFT_FIELDS:
        if field not in changes:
            continue
        value = changes[field]
        if field in ("subject", "body", "batch_size", "batch_delay_seconds") and value is None:
            continue
        if field == "body":
            value, images = extract_inline_images(value)
            _drop_unreferenced_images(db, campaign, value)
            if images:
                _store_images(db, campaign.id, images)
        setattr(campaign, field, value)

    if emails is not None:
        recipient_store.replace_recipients(db, campaign.id, emails)
        campaign.total_recipients = len(emails)
        campaign.sent_count = 0
        campaign.failed_count = 0

    db.commit()
    db.refresh(campaign)
    logger.info("Draft campaign updated", campaign_id=campaign.id, fields=sorted(changes))
    return campaign


def delete_campaign(db: Session, campaign: Campaign) -> None:
    """Delete a campaign with its recipients and images; ledger rows are kept."""
    if campaign.status == CampaignStatus.RUNNING:
        raise CampaignRunningError()
    campaign_id = campaign.id
    db.delete(campaign)
    db.commit()
    logger.info("Campaign deleted", campaign_id=campaign_id)


def duplicate_campaign(db: Session, campaign: Campaign) -> Campaign:
    """Copy content, pacing, images and the full recipient list into a new draft."""
    emails = list(db.scalars(
        select(Recipient.email).where(Recipient.campaign_id == campaign.id).order_by(Recipient.id)
    ))
    copy = Campaign(
        user_email=campaign.user_email,
        name=f"{campaign.name or campaign.subject} (Copy)",
        subject=campaign.subject,
        body=campaign.body,
        signature=campaign.signature,
        to_email=campaign.to_email,
        batch_size=campaign.batch_size,
        batch_delay_seconds=campaign.batch_delay_seconds,
        status=CampaignStatus.DRAFT,
        total_recipients=len(emails),
    )
    db.add(copy)
    db.flush()

    recipient_store.add_recipients(db, copy.id, emails)
    _store_images(db, copy.id, campaign.images)
    db.commit()
    db.refresh(copy)

    logger.info("Campaign duplicated", campaign_id=campaign.id, copy_id=copy.id)
    return copy


def list_campaigns(db: Session, user_email: str) -> List[Tuple[Campaign, int]]:
    """Owner's campaigns, newest first, each with its pending (incl. sending) count."""
    pending = func.coalesce(func.sum(case(
        (Recipient.status.in_([RecipientStatus.PENDING, RecipientStatus.SENDING]), 1),
        else_=0
    )), 0)
    rows = db.execute(
        select(Campaign, pending)
        .outerjoin(Recipient, Recipient.campaign_id == Campaign.id)
        .where(Campaign.user_email == user_email)
        .group_by(Campaign.id)
        .order_by(Campaign.created_at.desc())
    ).all()
    return [(campaign, int(count or 0)) for campaign, count in rows]


def get_campaign(db: Session, campaign_id: str) -> Optional[Campaign]:
    return db.get(Campaign, campaign_id)


def get_running_campaigns(db: Session, limit: int, due_by: Optional[datetime] = None) -> List[Campaign]:
    """Running campaigns, least recently touched first.

    With ``due_by``, campaigns whose next batch is scheduled after that time
    are left to their pending callback.
    """
    conditions = [Campaign.status == CampaignStatus.RUNNING]
    if due_by is not None:
        conditions.append(or_(Campaign.next_batch_at.is_(None), Campaign.next_batch_at <= due_by))
    return list(db.scalars(
        select(Campaign)
        .where(*conditions)
        .order_by(Campaign.updated_at.asc())
        .limit(limit)
    ))
