"""Scheduled sweep over running campaigns."""
from datetime import timedelta
from typing import Any, Dict

import structlog
from sqlalchemy.orm import Session

from mailer.core.config import settings
from mailer.db.base import utcnow
from mailer.services import recipients as recipient_store
from mailer.services.batch_executor import BatchExecutor
from mailer.services.campaigns import get_running_campaigns

logger = structlog.get_logger()


def process_running_campaigns(db: Session, executor: BatchExecutor, limit: int) -> Dict[str, Any]:
    """Run one batch for each of up to ``limit`` due running campaigns, sequentially.

    Recipients stuck in ``sending`` past STALE_SENDING_TIMEOUT_SECONDS are
    failed first. Campaigns untouched the longest go first; a campaign whose
    next batch is scheduled for later is left to that callback.
    """
    now = utcnow()
    recipient_store.release_stale_sending(db, now - timedelta(seconds=settings.STALE_SENDING_TIMEOUT_SECONDS))

    campaigns = get_running_campaigns(db, limit, due_by=now)
    results: Dict[str, Any] = {}

    for campaign in campaigns:
        outcome = executor.run_batch(campaign)
        results[campaign.id] = outcome.as_response()

    if campaigns:
        logger.info("Sweep processed running campaigns", processed=len(campaigns))
    return {"processed": len(campaigns), "results": results}
