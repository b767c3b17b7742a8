"""Inline images referenced from a campaign body by content id."""
from sqlalchemy import Column, Integer, String, Text, ForeignKey, Index
from sqlalchemy.orm import relationship
from mailer.db.base import Base


class CampaignImage(Base):
    """Campaign images model - sent as multipart/related parts."""

    __tablename__ = "campaign_images"

    id = Column(Integer, primary_key=True, autoincrement=True)
    campaign_id = Column(String(36), ForeignKey('campaigns.id', ondelete="CASCADE"), nullable=False)
    content_id = Column(String(255), nullable=False)
    filename = Column(String(255), nullable=False)
    mime_type = Column(String(100), nullable=False)
    base64_data = Column(Text, nullable=False)

    campaign = relationship("Campaign", back_populates="images")

    __table_args__ = (
        Index('idx_campaign_images_campaign_id', 'campaign_id'),
    )

    def __repr__(self) -> str:
        return f"<CampaignImage(id={self.id}, content_id='{self.content_id}')>"
