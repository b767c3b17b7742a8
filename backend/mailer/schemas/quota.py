"""Quota schemas."""
from datetime import datetime
from pydantic import BaseModel


class QuotaSnapshot(BaseModel):
    """Daily send allowance for one sender identity. Derived, never stored."""
    sent_today: int
    limit: int
    remaining: int
    reset_time: datetime
