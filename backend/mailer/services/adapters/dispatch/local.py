"""In-process delay dispatch on the APScheduler background scheduler."""
from datetime import datetime, timedelta, timezone
from typing import Optional
import structlog
from mailer.services.adapters.base import DispatchAdapter

logger = structlog.get_logger()


class LocalDispatcher(DispatchAdapter):
    """Schedules a one-shot job that runs the batch executor in this process.

    Jobs live in memory only; after a restart the sweep picks the campaign up.
    """

    def schedule_callback(self, campaign_id: str, delay_seconds: int) -> Optional[str]:
        from apscheduler.triggers.date import DateTrigger
        from mailer.services.scheduler import get_scheduler, job_process_campaign

        scheduler = get_scheduler()
        if scheduler is None:
            logger.warning("Scheduler not running, batch not scheduled", campaign_id=campaign_id)
            return None

        run_date = datetime.now(timezone.utc) + timedelta(seconds=max(0, int(delay_seconds)))
        job = scheduler.add_job(
            job_process_campaign,
            DateTrigger(run_date=run_date),
            args=[campaign_id],
            id=f"campaign_batch_{campaign_id}",
            name=f"Campaign batch {campaign_id}",
            replace_existing=True,
            misfire_grace_time=None,
        )
        logger.info("Batch job scheduled", campaign_id=campaign_id, run_date=run_date.isoformat())
        return job.id
