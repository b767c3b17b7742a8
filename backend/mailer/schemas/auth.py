"""Provider credential schemas."""
from typing import Optional
from pydantic import BaseModel, Field


class ProviderTokensUpdate(BaseModel):
    """OAuth credentials handed over by the sign-in layer."""
    access_token: str = Field(..., min_length=1)
    refresh_token: str = Field(..., min_length=1)
    hosted_domain: Optional[str] = None


class ProviderTokensResponse(BaseModel):
    """Stored credential summary (tokens are never echoed back)."""
    user_email: str
    is_workspace: bool


class SendTestRequest(BaseModel):
    """Schema for sending a test message to the signed-in user."""
    subject: str = Field(..., min_length=1)
    body: str = Field(..., min_length=1)
    signature: Optional[str] = None


class SendTestResponse(BaseModel):
    success: bool
    recipient: str
