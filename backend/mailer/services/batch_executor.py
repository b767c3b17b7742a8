"""Batch executor: runs one batch of a running campaign.

Every trigger (sweep, delayed callback, interactive request) goes through
``BatchExecutor.run_batch``. The ordering is:

1. skip unless the campaign is running;
2. pause when the owner has no stored credentials;
3. pause when the provider rejects the credentials or the daily allowance
   cannot cover a full batch;
4. claim up to ``batch_size`` pending recipients (empty claim: complete,
   or skip because a batch is in flight);
5. send one Bcc message to the claimed addresses;
6. record the outcome, resync the counters from the recipient aggregate,
   then complete the campaign or schedule the next batch. Only one delayed
   callback is outstanding at a time: the next batch is scheduled only when
   no later ``next_batch_at`` is already set.
"""
from datetime import datetime, timedelta
from typing import Callable, List, Optional

import structlog
from sqlalchemy import or_, update
from sqlalchemy.orm import Session

from mailer.core.exceptions import AUTH_ERROR_CODE, AuthExpiredError
from mailer.db.base import utcnow
from mailer.db.models.campaign import Campaign, CampaignStatus
from mailer.db.models.recipient import Recipient
from mailer.db.models.user_token import UserToken
from mailer.schemas.batch import BatchOutcome
from mailer.schemas.campaign import CampaignProgress
from mailer.services import quota, recipients as recipient_store
from mailer.services.adapters.base import DispatchAdapter, EmailSendAdapter
from mailer.services.campaigns import complete_campaign, pause_campaign
from mailer.services.mime import InlineImage

logger = structlog.get_logger()

SenderFactory = Callable[[UserToken], EmailSendAdapter]

NO_TOKENS_ERROR = "No valid tokens found - campaign paused"
QUOTA_EXHAUSTED_ERROR = "Quota exhausted - campaign paused"
UNEXPECTED_ERROR = "Failed to process batch"


class BatchExecutor:
    """Run batches for campaigns with one database session."""

    def __init__(self, db: Session, sender_factory: SenderFactory, dispatcher: Optional[DispatchAdapter] = None):
        self.db = db
        self.sender_factory = sender_factory
        self.dispatcher = dispatcher

    def run_batch(self, campaign: Campaign) -> BatchOutcome:
        """Run at most one batch. Never raises; faults become a failed outcome."""
        campaign_id = campaign.id
        try:
            return self._run(campaign)
        except Exception as e:
            self.db.rollback()
            logger.exception("Batch processing failed", campaign_id=campaign_id, error=str(e))
            return BatchOutcome(success=False, error=UNEXPECTED_ERROR)

    def _run(self, campaign: Campaign) -> BatchOutcome:
        self.db.refresh(campaign)
        if campaign.status != CampaignStatus.RUNNING:
            return _skipped(campaign)

        credentials = self.db.get(UserToken, campaign.user_email)
        if credentials is None:
            pause_campaign(self.db, campaign, NO_TOKENS_ERROR)
            logger.warning("No stored credentials, campaign paused", campaign_id=campaign.id)
            return BatchOutcome(success=False, error=NO_TOKENS_ERROR)

        sender = self.sender_factory(credentials)

        try:
            allowance = quota.get_allowance(self.db, sender, campaign.user_email, credentials.is_workspace)
        except AuthExpiredError as e:
            pause_campaign(self.db, campaign, str(e))
            logger.warning("Provider authorization expired, campaign paused", campaign_id=campaign.id)
            return BatchOutcome(success=False, auth_expired=True, error=AUTH_ERROR_CODE)

        if allowance.remaining < campaign.batch_size:
            pause_campaign(self.db, campaign, QUOTA_EXHAUSTED_ERROR)
            logger.info(
                "Daily quota cannot cover a full batch, campaign paused",
                campaign_id=campaign.id,
                remaining=allowance.remaining,
                batch_size=campaign.batch_size
            )
            return BatchOutcome(success=False, quota_exhausted=True, error=QUOTA_EXHAUSTED_ERROR)

        claimed = recipient_store.claim_pending(self.db, campaign.id, campaign.batch_size)
        if not claimed:
            return self._handle_empty_claim(campaign)

        progress = recipient_store.get_progress(self.db, campaign.id)
        batch_number = progress.sent // campaign.batch_size + 1
        return self._send(campaign, sender, claimed, batch_number)

    def _handle_empty_claim(self, campaign: Campaign) -> BatchOutcome:
        self.db.refresh(campaign)
        if campaign.status != CampaignStatus.RUNNING:
            return _skipped(campaign)

        progress = recipient_store.get_progress(self.db, campaign.id)
        if progress.pending == 0 and progress.sending == 0:
            self._sync_counters(campaign, progress)
            complete_campaign(self.db, campaign)
            return BatchOutcome(completed=True, remaining=0, reason="Campaign completed")
        return BatchOutcome(
            skipped=True,
            reason="No recipients to process (another batch may be in progress)"
        )

    def _send(
        self,
        campaign: Campaign,
        sender: EmailSendAdapter,
        claimed: List[Recipient],
        batch_number: int
    ) -> BatchOutcome:
        emails = [r.email for r in claimed]
        ids = [r.id for r in claimed]
        images = [
            InlineImage(
                content_id=image.content_id,
                filename=image.filename,
                mime_type=image.mime_type,
                base64_data=image.base64_data,
            )
            for image in campaign.images
        ]

        error = None
        try:
            sender.send_confidential_batch(
                bcc=emails,
                subject=campaign.subject,
                html_body=campaign.body,
                signature=campaign.signature,
                inline_images=images or None,
                to_email=campaign.to_email,
            )
        except Exception as e:
            error = str(e) or e.__class__.__name__

        if error is None:
            recipient_store.mark_sent(self.db, ids, batch_number)
            quota.record_sent_emails(self.db, campaign.user_email, emails, campaign.id)
            self._set_campaign(campaign.id, last_batch_at=utcnow())
            logger.info("Batch sent", campaign_id=campaign.id, batch_number=batch_number, sent=len(emails))
        else:
            recipient_store.mark_failed(self.db, ids, error, batch_number)
            logger.warning(
                "Batch send failed",
                campaign_id=campaign.id,
                batch_number=batch_number,
                failed=len(emails),
                error=error
            )

        outcome = self._finish_batch(campaign)
        outcome.batch_number = batch_number
        if error is None:
            outcome.sent = len(emails)
        else:
            outcome.failed = len(emails)
            outcome.error = error
        return outcome

    def _finish_batch(self, campaign: Campaign) -> BatchOutcome:
        """Resync counters, then complete the campaign or schedule its next batch."""
        progress = recipient_store.get_progress(self.db, campaign.id)
        self._sync_counters(campaign, progress)
        self.db.refresh(campaign)

        if progress.pending == 0 and progress.sending == 0:
            complete_campaign(self.db, campaign)
            return BatchOutcome(completed=True, remaining=0)

        outcome = BatchOutcome(remaining=progress.pending)
        if campaign.status != CampaignStatus.RUNNING or progress.pending == 0:
            return outcome

        delay = campaign.batch_delay_seconds
        now = utcnow()
        next_batch_at = now + timedelta(seconds=delay)
        if not self._set_campaign(campaign.id, only_running=True, due_by=now, next_batch_at=next_batch_at):
            # paused or stopped meanwhile, or a callback is already scheduled for later
            self.db.refresh(campaign)
            outcome.next_batch_at = campaign.next_batch_at
            return outcome
        outcome.next_batch_at = next_batch_at

        if self.dispatcher is None:
            return outcome
        try:
            self.dispatcher.schedule_callback(campaign.id, delay)
            outcome.next_batch_scheduled = True
        except Exception as e:
            logger.error("Failed to schedule next batch", campaign_id=campaign.id, error=str(e))
        return outcome

    def _sync_counters(self, campaign: Campaign, progress: CampaignProgress) -> None:
        self._set_campaign(
            campaign.id,
            sent_count=progress.sent,
            failed_count=progress.failed,
            total_recipients=progress.total,
        )

    def _set_campaign(
        self,
        campaign_id: str,
        only_running: bool = False,
        due_by: Optional[datetime] = None,
        **values
    ) -> bool:
        values.setdefault("updated_at", utcnow())
        conditions = [Campaign.id == campaign_id]
        if only_running:
            conditions.append(Campaign.status == CampaignStatus.RUNNING)
        if due_by is not None:
            conditions.append(or_(Campaign.next_batch_at.is_(None), Campaign.next_batch_at <= due_by))
        result = self.db.execute(
            update(Campaign)
            .where(*conditions)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        self.db.commit()
        return result.rowcount > 0


def _skipped(campaign: Campaign) -> BatchOutcome:
    return BatchOutcome(skipped=True, reason=f"Campaign is {CampaignStatus(campaign.status).value}")
