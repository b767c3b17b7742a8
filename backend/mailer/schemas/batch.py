"""Batch outcome schema shared by every trigger."""
from datetime import datetime
from typing import Optional
from pydantic import BaseModel


class BatchOutcome(BaseModel):
    """Result of one batch attempt.

    ``success`` is False only for soft failures (no credentials, auth expired,
    quota exhausted, unexpected fault). A failed send still yields
    ``success=True`` with ``failed`` set, because the campaign advanced.
    """
    success: bool = True
    skipped: bool = False
    completed: bool = False
    sent: int = 0
    failed: int = 0
    batch_number: Optional[int] = None
    remaining: Optional[int] = None
    reason: Optional[str] = None
    error: Optional[str] = None
    quota_exhausted: bool = False
    auth_expired: bool = False
    next_batch_scheduled: bool = False
    next_batch_at: Optional[datetime] = None

    def as_response(self) -> dict:
        """JSON body for trigger endpoints; unset optionals are omitted."""
        return self.model_dump(mode="json", exclude_none=True)


class SweepResponse(BaseModel):
    """Result of one scheduled sweep."""
    processed: int
    results: dict
