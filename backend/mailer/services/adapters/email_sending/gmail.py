"""Gmail REST API email sending adapter."""
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

import httpx
import structlog

from mailer.core.config import settings
from mailer.core.exceptions import AuthExpiredError, EmailSendError
from mailer.services.adapters.base import EmailSendAdapter
from mailer.services.mime import InlineImage, build_message, encode_raw

logger = structlog.get_logger()


class GmailAdapter(EmailSendAdapter):
    """Adapter for sending through the Gmail API with an owner's OAuth tokens.

    The access token is refreshed once on a 401; a failed refresh means the
    grant is gone and surfaces as AuthExpiredError. A new access token is
    handed to ``on_token_refresh`` so it can be stored.
    """

    BASE_URL = "https://gmail.googleapis.com/gmail/v1/users/me"
    TOKEN_URL = "https://oauth2.googleapis.com/token"

    def __init__(
        self,
        access_token: str,
        refresh_token: str,
        client_id: str = None,
        client_secret: str = None,
        transport: Optional[httpx.BaseTransport] = None,
        on_token_refresh: Optional[Callable[[str], None]] = None
    ):
        self.access_token = access_token
        self.refresh_token = refresh_token
        self.client_id = client_id or settings.GOOGLE_CLIENT_ID
        self.client_secret = client_secret or settings.GOOGLE_CLIENT_SECRET
        self._transport = transport
        self._on_token_refresh = on_token_refresh
        self._sender_address: Optional[str] = None

    def _client(self) -> httpx.Client:
        return httpx.Client(transport=self._transport, timeout=settings.GMAIL_API_TIMEOUT_SECONDS)

    def _refresh_access_token(self, client: httpx.Client) -> None:
        response = client.post(
            self.TOKEN_URL,
            data={
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "refresh_token": self.refresh_token,
                "grant_type": "refresh_token",
            },
        )
        if response.status_code in (400, 401):
            logger.warning("Gmail token refresh rejected", status=response.status_code)
            raise AuthExpiredError("Gmail authorization expired, please sign in again")
        response.raise_for_status()
        self.access_token = response.json()["access_token"]
        if self._on_token_refresh is None:
            return
        try:
            self._on_token_refresh(self.access_token)
        except Exception as e:
            logger.error("Failed to store refreshed Gmail token", error=str(e))

    def _request(self, method: str, path: str, **kwargs) -> Dict[str, Any]:
        with self._client() as client:
            response = None
            for attempt in range(2):
                response = client.request(
                    method,
                    f"{self.BASE_URL}{path}",
                    headers={"Authorization": f"Bearer {self.access_token}"},
                    **kwargs,
                )
                if response.status_code != 401:
                    break
                if attempt == 0 and self.refresh_token:
                    self._refresh_access_token(client)
                    continue
                raise AuthExpiredError("Gmail authorization expired, please sign in again")

            if response.status_code >= 400:
                raise EmailSendError(f"Gmail API error {response.status_code}: {_error_message(response)}")
            return response.json() if response.content else {}

    def test_connection(self) -> bool:
        """Test that the tokens still grant access to the mailbox."""
        try:
            self.get_sender_address()
            return True
        except Exception:
            return False

    def get_sender_address(self) -> str:
        if self._sender_address is None:
            profile = self._request("GET", "/profile")
            self._sender_address = profile["emailAddress"]
        return self._sender_address

    def get_sent_today_count(self) -> int:
        """Count messages in the Sent folder since UTC midnight.

        A Bcc batch counts once here even though it consumes one quota unit per
        recipient, which is why the local ledger is consulted as well.
        """
        midnight = datetime.now(timezone.utc).replace(hour=0, minute=0, second=0, microsecond=0)
        params = {"q": f"in:sent after:{int(midnight.timestamp())}", "maxResults": 500}
        count = 0
        while True:
            data = self._request("GET", "/messages", params=params)
            count += len(data.get("messages", []))
            page_token = data.get("nextPageToken")
            if not page_token:
                return count
            params = {**params, "pageToken": page_token}

    def send_confidential_batch(
        self,
        bcc: List[str],
        subject: str,
        html_body: str,
        signature: Optional[str] = None,
        inline_images: Optional[List[InlineImage]] = None,
        to_email: Optional[str] = None
    ) -> str:
        sender = self.get_sender_address()
        message = build_message(
            sender=sender,
            to_email=to_email or sender,
            bcc=bcc,
            subject=subject,
            html_body=html_body,
            signature=signature,
            inline_images=inline_images,
        )
        result = self._request("POST", "/messages/send", json={"raw": encode_raw(message)})
        logger.info("Gmail message sent", sender=sender, bcc_count=len(bcc), message_id=result.get("id"))
        return result.get("id", "")


def _error_message(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        return response.text
    error = data.get("error") if isinstance(data, dict) else None
    if isinstance(error, dict) and error.get("message"):
        return error["message"]
    return response.text
