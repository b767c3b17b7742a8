"""Delay-queue callback that runs the next batch of a campaign."""
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
import structlog

from mailer.api.deps import get_batch_executor, get_db, verify_qstash_request
from mailer.services import campaigns as campaign_service
from mailer.services.batch_executor import BatchExecutor

logger = structlog.get_logger()

router = APIRouter(prefix="/campaigns", tags=["Triggers"])


@router.post("/{campaign_id}/process", dependencies=[Depends(verify_qstash_request)])
def process_campaign(
    campaign_id: str,
    db: Session = Depends(get_db),
    executor: BatchExecutor = Depends(get_batch_executor)
):
    """Signed callback from the delay queue.

    Safe to deliver more than once: a stale or duplicate callback finds the
    campaign not running or a batch in flight and is skipped.
    """
    campaign = campaign_service.get_campaign(db, campaign_id)
    if not campaign:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Campaign not found"
        )

    outcome = executor.run_batch(campaign)
    logger.info("Callback batch finished", campaign_id=campaign_id, outcome=outcome.as_response())
    return outcome.as_response()
