"""Email sending adapters package."""
from functools import partial

from mailer.core.config import settings
from mailer.db.models.user_token import UserToken
from mailer.services.adapters.base import EmailSendAdapter
from mailer.services.adapters.email_sending.gmail import GmailAdapter
from mailer.services.adapters.email_sending.mock import MockEmailSendAdapter
from mailer.services.credentials import save_refreshed_access_token


def get_email_sender(credentials: UserToken) -> EmailSendAdapter:
    """Build the configured sender adapter for one owner's stored credentials."""
    if settings.EMAIL_SEND_MODE == "mock":
        return MockEmailSendAdapter(sender_address=credentials.user_email)
    return GmailAdapter(
        access_token=credentials.access_token,
        refresh_token=credentials.refresh_token,
        on_token_refresh=partial(save_refreshed_access_token, credentials.user_email)
    )


__all__ = ["GmailAdapter", "MockEmailSendAdapter", "get_email_sender"]
