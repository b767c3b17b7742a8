"""QStash delay-dispatch adapter."""
from typing import Optional
import httpx
import structlog
from mailer.core.config import settings
from mailer.services.adapters.base import DispatchAdapter

logger = structlog.get_logger()


class QStashDispatcher(DispatchAdapter):
    """Publishes a delayed POST to the campaign's process endpoint through QStash."""

    def __init__(
        self,
        token: str = None,
        base_url: str = None,
        site_url: str = None,
        transport: Optional[httpx.BaseTransport] = None
    ):
        self.token = token if token is not None else settings.QSTASH_TOKEN
        self.base_url = (base_url or settings.QSTASH_URL).rstrip("/")
        self.site_url = (site_url if site_url is not None else settings.SITE_URL).rstrip("/")
        self._transport = transport

    def callback_url(self, campaign_id: str) -> str:
        return f"{self.site_url}{settings.API_V1_PREFIX}/campaigns/{campaign_id}/process"

    def schedule_callback(self, campaign_id: str, delay_seconds: int) -> Optional[str]:
        """Publish the callback; raises on a QStash API error."""
        if not self.token:
            logger.warning("QSTASH_TOKEN not configured, batch not scheduled", campaign_id=campaign_id)
            return None
        if not self.site_url:
            logger.error("SITE_URL not configured, batch not scheduled", campaign_id=campaign_id)
            return None

        target_url = self.callback_url(campaign_id)
        with httpx.Client(transport=self._transport, timeout=10) as client:
            response = client.post(
                f"{self.base_url}/v2/publish/{target_url}",
                headers={
                    "Authorization": f"Bearer {self.token}",
                    "Upstash-Delay": f"{max(0, int(delay_seconds))}s",
                },
                json={"campaign_id": campaign_id},
            )
            response.raise_for_status()
            message_id = response.json().get("messageId")

        logger.info("Batch callback scheduled", campaign_id=campaign_id, delay_seconds=delay_seconds, message_id=message_id)
        return message_id
