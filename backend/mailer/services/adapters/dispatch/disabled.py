"""No-op dispatch: progress relies on the scheduled sweep alone."""
from typing import Optional
import structlog
from mailer.services.adapters.base import DispatchAdapter

logger = structlog.get_logger()


class DisabledDispatcher(DispatchAdapter):

    def schedule_callback(self, campaign_id: str, delay_seconds: int) -> Optional[str]:
        logger.info("Dispatch disabled, leaving batch to the sweep", campaign_id=campaign_id, delay_seconds=delay_seconds)
        return None
