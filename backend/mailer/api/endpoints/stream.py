"""Server-sent events stream of a campaign's status and progress."""
import asyncio
import json
from typing import Any, AsyncIterator, Callable, Dict, Optional
from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool
import structlog

from mailer.api.deps import get_session_factory
from mailer.api.endpoints.campaigns import get_owned_campaign
from mailer.core.config import settings
from mailer.db.models.campaign import Campaign, CampaignStatus
from mailer.services import recipients as recipient_store

logger = structlog.get_logger()

router = APIRouter(prefix="/campaigns", tags=["Campaigns"])

TERMINAL_STATUSES = (CampaignStatus.COMPLETED, CampaignStatus.STOPPED)


def read_campaign_state(session_factory: Callable[[], Session], campaign_id: str) -> Optional[Dict[str, Any]]:
    """Snapshot of the campaign for the stream, or None once it is deleted."""
    db = session_factory()
    try:
        campaign = db.get(Campaign, campaign_id)
        if campaign is None:
            return None
        progress = recipient_store.get_progress(db, campaign_id)
        pending = progress.pending + progress.sending
        status = CampaignStatus(campaign.status)

        next_batch = []
        if status == CampaignStatus.RUNNING and pending > 0:
            next_batch = [
                r.email for r in recipient_store.get_pending_recipients(db, campaign_id, campaign.batch_size)
            ]

        return {
            "type": "update",
            "status": status.value,
            "progress": {
                "total": progress.total,
                "sent": progress.sent,
                "failed": progress.failed,
                "pending": pending,
            },
            "next_batch": next_batch,
            "next_batch_at": campaign.next_batch_at.isoformat() if campaign.next_batch_at else None,
        }
    finally:
        db.close()


def _change_key(state: Dict[str, Any]) -> tuple:
    progress = state["progress"]
    return (state["status"], progress["sent"], progress["failed"], progress["pending"], state["next_batch_at"])


def _event(payload: Dict[str, Any]) -> str:
    return f"data: {json.dumps(payload)}\n\n"


async def campaign_events(
    request: Request,
    session_factory: Callable[[], Session],
    campaign_id: str,
    poll_interval: float
) -> AsyncIterator[str]:
    """Poll the campaign and yield an event whenever its visible state changes.

    Ends after a terminal status has been emitted, after a ``deleted`` event,
    or when the client disconnects.
    """
    last_key = None
    while True:
        try:
            state = await run_in_threadpool(read_campaign_state, session_factory, campaign_id)
        except Exception as e:
            logger.error("Stream poll failed", campaign_id=campaign_id, error=str(e))
            state = {}

        if state is None:
            yield _event({"type": "deleted"})
            return

        if state:
            key = _change_key(state)
            if key != last_key:
                last_key = key
                yield _event(state)
            if state["status"] in (s.value for s in TERMINAL_STATUSES):
                return

        if await request.is_disconnected():
            return
        await asyncio.sleep(poll_interval)


@router.get("/{campaign_id}/stream")
async def stream_campaign(
    request: Request,
    campaign: Campaign = Depends(get_owned_campaign),
    session_factory: Callable[[], Session] = Depends(get_session_factory)
):
    """Push campaign updates to the browser as server-sent events."""
    return StreamingResponse(
        campaign_events(request, session_factory, campaign.id, settings.STREAM_POLL_INTERVAL_SECONDS),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
    )
