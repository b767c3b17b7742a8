"""Domain exceptions raised by services and translated to HTTP errors by endpoints."""
from typing import List, Optional

AUTH_ERROR_CODE = "AUTH_EXPIRED"


class CampaignError(Exception):
    """Base class for campaign-level client errors."""


class IllegalTransitionError(CampaignError):
    """Requested status change is not an edge of the campaign status graph."""

    def __init__(self, current, requested):
        self.current = current
        self.requested = requested
        super().__init__(f"Cannot transition from {_value(current)} to {_value(requested)}")


class CampaignNotEditableError(CampaignError):
    """Content edits are only allowed while the campaign is a draft."""

    def __init__(self, status):
        self.status = status
        super().__init__(f"Campaign can only be edited while in draft (status: {_value(status)})")


class CampaignRunningError(CampaignError):
    """Running campaigns cannot be deleted."""

    def __init__(self):
        super().__init__("Cannot delete a running campaign. Stop it first.")


class RecipientValidationError(CampaignError):
    """One or more recipient addresses failed validation."""

    def __init__(self, invalid: List[dict], message: Optional[str] = None):
        self.invalid = invalid
        super().__init__(message or f"{len(invalid)} invalid recipient address(es)")


class AuthExpiredError(Exception):
    """Provider credentials are expired or revoked; the owner must sign in again."""

    code = AUTH_ERROR_CODE

    def __init__(self, message: str = "Provider authorization expired"):
        super().__init__(message)


class EmailSendError(Exception):
    """The provider rejected an outbound message."""


def _value(status) -> str:
    return getattr(status, "value", status)
