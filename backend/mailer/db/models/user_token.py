"""Stored provider credentials used for server-side batch sending."""
from sqlalchemy import Column, String, Text
from mailer.db.base import Base


class UserToken(Base):
    """User tokens model - OAuth credentials per campaign owner."""

    __tablename__ = "user_tokens"

    user_email = Column(String(255), primary_key=True)
    access_token = Column(Text, nullable=False)
    refresh_token = Column(Text, nullable=False)
    hosted_domain = Column(String(255), nullable=True)  # set for workspace accounts

    @property
    def is_workspace(self) -> bool:
        """Workspace accounts carry a hosted domain and get the higher daily limit."""
        return bool(self.hosted_domain)

    def __repr__(self) -> str:
        return f"<UserToken(user_email='{self.user_email}', hosted_domain='{self.hosted_domain}')>"
