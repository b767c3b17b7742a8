"""Database models package."""
from mailer.db.models.campaign import Campaign, CampaignStatus
from mailer.db.models.recipient import Recipient, RecipientStatus
from mailer.db.models.campaign_image import CampaignImage
from mailer.db.models.sent_email import SentEmail
from mailer.db.models.user_token import UserToken

__all__ = [
    "Campaign",
    "CampaignStatus",
    "Recipient",
    "RecipientStatus",
    "CampaignImage",
    "SentEmail",
    "UserToken",
]
