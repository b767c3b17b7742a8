"""Campaign and recipient schemas."""
from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field
from mailer.core.config import settings
from mailer.db.models.campaign import CampaignStatus
from mailer.db.models.recipient import RecipientStatus


class CampaignCreate(BaseModel):
    """Schema for creating a draft campaign."""
    name: Optional[str] = None
    subject: str = Field(..., min_length=1)
    body: str = Field(..., min_length=1)
    signature: Optional[str] = None
    to_email: Optional[str] = None
    batch_size: int = Field(settings.DEFAULT_BATCH_SIZE, ge=1, le=settings.MAX_BATCH_SIZE)
    batch_delay_seconds: int = Field(settings.DEFAULT_BATCH_DELAY_SECONDS, ge=0)
    recipients: List[str] = Field(..., min_length=1)


class CampaignUpdate(BaseModel):
    """Schema for PATCH: draft content edits and/or a status transition."""
    status: Optional[CampaignStatus] = None
    name: Optional[str] = None
    subject: Optional[str] = Field(None, min_length=1)
    body: Optional[str] = Field(None, min_length=1)
    signature: Optional[str] = None
    to_email: Optional[str] = None
    batch_size: Optional[int] = Field(None, ge=1, le=settings.MAX_BATCH_SIZE)
    batch_delay_seconds: Optional[int] = Field(None, ge=0)
    recipients: Optional[List[str]] = None

    def content_fields(self) -> dict:
        """Fields explicitly sent by the client, excluding the status."""
        return self.model_dump(exclude_unset=True, exclude={"status"})


class CampaignResponse(BaseModel):
    """Schema for campaign response."""
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_email: str
    name: Optional[str] = None
    subject: str
    body: str
    signature: Optional[str] = None
    to_email: Optional[str] = None
    batch_size: int
    batch_delay_seconds: int
    status: CampaignStatus
    status_reason: Optional[str] = None
    total_recipients: int
    sent_count: int
    failed_count: int
    last_batch_at: Optional[datetime] = None
    next_batch_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


class CampaignWithProgressResponse(CampaignResponse):
    """Campaign row plus its live pending count, used in listings."""
    pending_count: int = 0


class CampaignListResponse(BaseModel):
    """Schema for campaign listing."""
    campaigns: List[CampaignWithProgressResponse]


class CampaignProgress(BaseModel):
    """Aggregate recipient counts for one campaign."""
    total: int = 0
    sent: int = 0
    failed: int = 0
    pending: int = 0
    sending: int = 0


class RecipientResponse(BaseModel):
    """Schema for recipient response."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    campaign_id: str
    email: str
    status: RecipientStatus
    error_message: Optional[str] = None
    batch_number: Optional[int] = None
    sent_at: Optional[datetime] = None


class RecipientPage(BaseModel):
    """A page of recipients filtered by status."""
    recipients: List[RecipientResponse]
    total: int


class CampaignDetailResponse(BaseModel):
    """Campaign, first page of recipients and progress."""
    campaign: CampaignResponse
    recipients: List[RecipientResponse]
    recipients_total: int
    progress: CampaignProgress
