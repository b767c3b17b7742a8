"""Campaign model: a bulk-send job with content, batch pacing and a status."""
import uuid
from enum import Enum as PyEnum
from sqlalchemy import Column, Integer, String, DateTime, Enum, Text, Index
from sqlalchemy.orm import relationship
from mailer.db.base import Base


class CampaignStatus(str, PyEnum):
    """Campaign lifecycle status."""
    DRAFT = "draft"
    RUNNING = "running"
    PAUSED = "paused"
    COMPLETED = "completed"
    STOPPED = "stopped"


def _new_campaign_id() -> str:
    return str(uuid.uuid4())


class Campaign(Base):
    """Campaigns model - content, pacing and denormalized delivery counters."""

    __tablename__ = "campaigns"

    id = Column(String(36), primary_key=True, default=_new_campaign_id)
    user_email = Column(String(255), nullable=False)
    name = Column(String(255), nullable=True)
    subject = Column(String(998), nullable=False)
    body = Column(Text, nullable=False)
    signature = Column(Text, nullable=True)
    to_email = Column(String(255), nullable=True)  # visible To header, sender when empty

    batch_size = Column(Integer, default=30, nullable=False)
    batch_delay_seconds = Column(Integer, default=60, nullable=False)

    status = Column(Enum(CampaignStatus), default=CampaignStatus.DRAFT, nullable=False)
    status_reason = Column(Text, nullable=True)  # why the campaign was last paused

    # Resynced from the recipients aggregate after every batch
    total_recipients = Column(Integer, default=0, nullable=False)
    sent_count = Column(Integer, default=0, nullable=False)
    failed_count = Column(Integer, default=0, nullable=False)

    last_batch_at = Column(DateTime, nullable=True)
    next_batch_at = Column(DateTime, nullable=True)
    last_claimed_at = Column(DateTime, nullable=True)

    recipients = relationship(
        "Recipient",
        back_populates="campaign",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="Recipient.id",
    )
    images = relationship(
        "CampaignImage",
        back_populates="campaign",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    __table_args__ = (
        Index('idx_campaigns_user_email', 'user_email'),
        Index('idx_campaigns_status', 'status'),
    )

    def __repr__(self) -> str:
        return f"<Campaign(id={self.id}, user_email='{self.user_email}', status='{self.status}')>"
