"""Recipient model: one target address within a campaign."""
from enum import Enum as PyEnum
from sqlalchemy import Column, Integer, String, DateTime, Enum, Text, ForeignKey, Index
from sqlalchemy.orm import relationship
from mailer.db.base import Base


class RecipientStatus(str, PyEnum):
    """Per-recipient delivery status. pending -> sending -> sent | failed."""
    PENDING = "pending"
    SENDING = "sending"
    SENT = "sent"
    FAILED = "failed"


class Recipient(Base):
    """Recipients model - delivery state of one address in one campaign."""

    __tablename__ = "recipients"

    # Autoincrement id doubles as insertion order for claiming
    id = Column(Integer, primary_key=True, autoincrement=True)
    campaign_id = Column(String(36), ForeignKey('campaigns.id', ondelete="CASCADE"), nullable=False)
    email = Column(String(320), nullable=False)
    status = Column(Enum(RecipientStatus), default=RecipientStatus.PENDING, nullable=False)
    error_message = Column(Text, nullable=True)
    batch_number = Column(Integer, nullable=True)
    sent_at = Column(DateTime, nullable=True)

    campaign = relationship("Campaign", back_populates="recipients")

    __table_args__ = (
        Index('idx_recipients_campaign_id', 'campaign_id'),
        Index('idx_recipients_campaign_status', 'campaign_id', 'status'),
    )

    def __repr__(self) -> str:
        return f"<Recipient(id={self.id}, email='{self.email}', status='{self.status}')>"
