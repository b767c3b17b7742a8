"""Sent email ledger used for quota accounting."""
from sqlalchemy import Column, Integer, String, DateTime, Index
from mailer.db.base import Base, utcnow


class SentEmail(Base):
    """Sent emails model - append-only, one row per delivered recipient.

    campaign_id is not a foreign key; ledger rows outlive their campaign.
    """

    __tablename__ = "sent_emails"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_email = Column(String(255), nullable=False)
    recipient_email = Column(String(320), nullable=False)
    campaign_id = Column(String(36), nullable=True)
    sent_at = Column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (
        Index('idx_sent_emails_user_sent_at', 'user_email', 'sent_at'),
    )

    def __repr__(self) -> str:
        return f"<SentEmail(id={self.id}, user_email='{self.user_email}', recipient='{self.recipient_email}')>"
