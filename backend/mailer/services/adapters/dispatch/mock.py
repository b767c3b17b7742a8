"""Mock dispatch adapter for testing."""
from typing import List, Dict, Any, Optional
import uuid
from mailer.services.adapters.base import DispatchAdapter


class MockDispatcher(DispatchAdapter):
    """Records scheduled callbacks instead of delivering them."""

    def __init__(self, fail_with: Optional[str] = None):
        self.fail_with = fail_with
        self.scheduled: List[Dict[str, Any]] = []

    def schedule_callback(self, campaign_id: str, delay_seconds: int) -> Optional[str]:
        if self.fail_with:
            raise RuntimeError(self.fail_with)
        message_id = f"mock-msg-{uuid.uuid4()}"
        self.scheduled.append({
            "message_id": message_id,
            "campaign_id": campaign_id,
            "delay_seconds": delay_seconds
        })
        return message_id

    def for_campaign(self, campaign_id: str) -> List[Dict[str, Any]]:
        return [s for s in self.scheduled if s["campaign_id"] == campaign_id]
