"""Base adapter interfaces for all provider types."""
from abc import ABC, abstractmethod
from typing import List, Optional

from mailer.services.mime import InlineImage


class BaseAdapter(ABC):
    """Base class for all adapters."""

    @abstractmethod
    def test_connection(self) -> bool:
        """Test connection to the provider."""
        pass


class EmailSendAdapter(BaseAdapter):
    """Base adapter for email sending providers, bound to one sender identity."""

    @abstractmethod
    def get_sender_address(self) -> str:
        """Return the authenticated sender address."""
        pass

    @abstractmethod
    def get_sent_today_count(self) -> int:
        """
        Return the provider-reported number of messages sent since UTC midnight.

        Raises AuthExpiredError when the credentials are no longer accepted.
        """
        pass

    @abstractmethod
    def send_confidential_batch(
        self,
        bcc: List[str],
        subject: str,
        html_body: str,
        signature: Optional[str] = None,
        inline_images: Optional[List[InlineImage]] = None,
        to_email: Optional[str] = None
    ) -> str:
        """
        Send one message to every address in ``bcc`` without exposing them to each other.

        Returns the provider message id. Raises on any failure; there is no
        per-recipient partial result.
        """
        pass

    def send_email(
        self,
        to_email: str,
        subject: str,
        html_body: str,
        signature: Optional[str] = None
    ) -> str:
        """Send a single visible-recipient message (test sends)."""
        return self.send_confidential_batch(
            bcc=[],
            subject=subject,
            html_body=html_body,
            signature=signature,
            to_email=to_email
        )


class DispatchAdapter(ABC):
    """Base adapter for delay-dispatch services that re-trigger a campaign later."""

    @abstractmethod
    def schedule_callback(self, campaign_id: str, delay_seconds: int) -> Optional[str]:
        """
        Ask for the campaign's process callback to fire after ``delay_seconds``.

        Returns a message/job id, or None when dispatch is not configured.
        """
        pass

    def trigger_immediate(self, campaign_id: str) -> Optional[str]:
        """Fire the process callback as soon as possible."""
        return self.schedule_callback(campaign_id, 0)
