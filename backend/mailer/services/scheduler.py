"""APScheduler integration - in-process delay dispatch and sweep for local runs."""
import structlog
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from mailer.core.config import settings

logger = structlog.get_logger()
_scheduler = None


def get_scheduler():
    global _scheduler
    return _scheduler


def init_scheduler():
    """Start the background scheduler when DISPATCH_MODE is ``local``."""
    global _scheduler
    if settings.DISPATCH_MODE != "local":
        logger.info("Local scheduler not started", dispatch_mode=settings.DISPATCH_MODE)
        return None
    if _scheduler is not None:
        return _scheduler

    _scheduler = BackgroundScheduler(timezone="UTC")
    if settings.LOCAL_SWEEP_INTERVAL_SECONDS > 0:
        _scheduler.add_job(
            job_sweep,
            IntervalTrigger(seconds=settings.LOCAL_SWEEP_INTERVAL_SECONDS),
            id="campaign_sweep",
            name="Running Campaign Sweep",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
    _scheduler.start()
    logger.info("Campaign scheduler started", jobs=len(_scheduler.get_jobs()))
    return _scheduler


def shutdown_scheduler():
    global _scheduler
    if _scheduler:
        _scheduler.shutdown(wait=False)
        logger.info("Campaign scheduler stopped")
        _scheduler = None


def _get_db():
    from mailer.db.base import SessionLocal
    return SessionLocal()


def _build_executor(db):
    from mailer.services.adapters.dispatch import get_dispatcher
    from mailer.services.adapters.email_sending import get_email_sender
    from mailer.services.batch_executor import BatchExecutor
    return BatchExecutor(db, sender_factory=get_email_sender, dispatcher=get_dispatcher())


def job_process_campaign(campaign_id: str):
    """Delayed re-trigger for one campaign, the local stand-in for the signed callback."""
    from mailer.db.models.campaign import Campaign

    db = _get_db()
    try:
        campaign = db.get(Campaign, campaign_id)
        if campaign is None:
            logger.info("Scheduled batch for deleted campaign ignored", campaign_id=campaign_id)
            return
        outcome = _build_executor(db).run_batch(campaign)
        logger.info("Scheduled batch finished", campaign_id=campaign_id, outcome=outcome.as_response())
    except Exception as e:
        logger.error("Scheduled batch failed", campaign_id=campaign_id, error=str(e))
    finally:
        db.close()


def job_sweep():
    logger.info("Running campaign sweep")
    db = _get_db()
    try:
        from mailer.services.triggers import process_running_campaigns
        result = process_running_campaigns(db, _build_executor(db), limit=settings.SWEEP_BATCH_LIMIT)
        logger.info("Campaign sweep complete", processed=result["processed"])
    except Exception as e:
        logger.error("Campaign sweep failed", error=str(e))
    finally:
        db.close()
