"""Pydantic schemas package."""
from mailer.schemas.campaign import (
    CampaignCreate, CampaignUpdate, CampaignResponse, CampaignWithProgressResponse,
    CampaignListResponse, CampaignProgress, RecipientResponse, RecipientPage,
    CampaignDetailResponse
)
from mailer.schemas.batch import BatchOutcome, SweepResponse
from mailer.schemas.quota import QuotaSnapshot
from mailer.schemas.auth import (
    ProviderTokensUpdate, ProviderTokensResponse, SendTestRequest, SendTestResponse
)

__all__ = [
    "CampaignCreate", "CampaignUpdate", "CampaignResponse", "CampaignWithProgressResponse",
    "CampaignListResponse", "CampaignProgress", "RecipientResponse", "RecipientPage",
    "CampaignDetailResponse",
    "BatchOutcome", "SweepResponse",
    "QuotaSnapshot",
    "ProviderTokensUpdate", "ProviderTokensResponse", "SendTestRequest", "SendTestResponse"
]
