"""Mock email sending adapter for testing."""
from typing import List, Dict, Any, Optional
import time
import uuid
from mailer.core.exceptions import AuthExpiredError, EmailSendError
from mailer.services.adapters.base import EmailSendAdapter
from mailer.services.mime import InlineImage


class MockEmailSendAdapter(EmailSendAdapter):
    """Mock adapter that simulates a provider mailbox.

    ``fail_with`` makes every send raise that message; ``auth_expired`` makes
    quota lookups raise AuthExpiredError.
    """

    def __init__(
        self,
        sender_address: str = "sender@example.com",
        sent_today: int = 0,
        fail_with: Optional[str] = None,
        auth_expired: bool = False
    ):
        self.sender_address = sender_address
        self.sent_today = sent_today
        self.fail_with = fail_with
        self.auth_expired = auth_expired
        self.sent_batches = []  # Store sent batches for verification

    def test_connection(self) -> bool:
        """Mock connection reflects the simulated auth state."""
        return not self.auth_expired

    def get_sender_address(self) -> str:
        return self.sender_address

    def get_sent_today_count(self) -> int:
        if self.auth_expired:
            raise AuthExpiredError()
        return self.sent_today

    def send_confidential_batch(
        self,
        bcc: List[str],
        subject: str,
        html_body: str,
        signature: Optional[str] = None,
        inline_images: Optional[List[InlineImage]] = None,
        to_email: Optional[str] = None
    ) -> str:
        """Simulate sending one batch message."""
        if self.fail_with:
            raise EmailSendError(self.fail_with)

        message_id = f"mock-{uuid.uuid4()}"
        self.sent_batches.append({
            "message_id": message_id,
            "to": to_email or self.sender_address,
            "bcc": list(bcc),
            "subject": subject,
            "html_body": html_body,
            "signature": signature,
            "inline_images": list(inline_images or []),
            "sent_at": time.time()
        })
        # Provider counts the message once regardless of Bcc fan-out
        self.sent_today += 1
        return message_id

    def get_sent_batches(self) -> List[Dict[str, Any]]:
        """Return all sent batches (for testing)."""
        return self.sent_batches

    def clear_sent_batches(self):
        """Clear sent batches (for testing)."""
        self.sent_batches = []
