"""Scheduled sweep endpoint, the backstop for lost delay-queue callbacks."""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from mailer.api.deps import get_batch_executor, get_db, verify_cron_request
from mailer.core.config import settings
from mailer.schemas.batch import SweepResponse
from mailer.services.batch_executor import BatchExecutor
from mailer.services.triggers import process_running_campaigns

router = APIRouter(prefix="/cron", tags=["Triggers"])


@router.get("/process-campaigns", response_model=SweepResponse, dependencies=[Depends(verify_cron_request)])
def process_campaigns(
    db: Session = Depends(get_db),
    executor: BatchExecutor = Depends(get_batch_executor)
):
    """Run one batch for each running campaign, oldest activity first."""
    return process_running_campaigns(db, executor, limit=settings.SWEEP_BATCH_LIMIT)
