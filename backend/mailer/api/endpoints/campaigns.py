"""Campaign management endpoints."""
from typing import Literal
from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session
import structlog

from mailer.api.deps import get_batch_executor, get_current_user_email, get_db, get_dispatcher
from mailer.core.exceptions import CampaignError, RecipientValidationError
from mailer.db.models.campaign import Campaign
from mailer.schemas.campaign import (
    CampaignCreate, CampaignUpdate, CampaignResponse, CampaignWithProgressResponse,
    CampaignListResponse, CampaignDetailResponse, RecipientResponse, RecipientPage
)
from mailer.services import campaigns as campaign_service
from mailer.services import recipients as recipient_store
from mailer.services.adapters.base import DispatchAdapter
from mailer.services.batch_executor import BatchExecutor

logger = structlog.get_logger()

router = APIRouter(prefix="/campaigns", tags=["Campaigns"])

DETAIL_RECIPIENT_LIMIT = 100


def get_owned_campaign(
    campaign_id: str,
    db: Session = Depends(get_db),
    user_email: str = Depends(get_current_user_email)
) -> Campaign:
    """Load a campaign and check it belongs to the signed-in user."""
    campaign = campaign_service.get_campaign(db, campaign_id)
    if not campaign:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Campaign not found"
        )
    if campaign.user_email != user_email:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Forbidden"
        )
    return campaign


def _bad_request(error: CampaignError) -> HTTPException:
    detail = str(error)
    if isinstance(error, RecipientValidationError) and error.invalid:
        detail = {"message": str(error), "invalid": error.invalid}
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)


@router.get("", response_model=CampaignListResponse)
async def list_campaigns(
    db: Session = Depends(get_db),
    user_email: str = Depends(get_current_user_email)
):
    """List the signed-in user's campaigns with pending counts."""
    rows = campaign_service.list_campaigns(db, user_email)
    return CampaignListResponse(campaigns=[
        CampaignWithProgressResponse.model_validate(campaign).model_copy(update={"pending_count": pending})
        for campaign, pending in rows
    ])


@router.post("", response_model=CampaignResponse, status_code=status.HTTP_201_CREATED)
async def create_campaign(
    campaign_in: CampaignCreate,
    db: Session = Depends(get_db),
    user_email: str = Depends(get_current_user_email)
):
    """Create a draft campaign."""
    try:
        campaign = campaign_service.create_campaign(db, user_email, campaign_in)
    except CampaignError as e:
        raise _bad_request(e)
    return CampaignResponse.model_validate(campaign)


@router.get("/{campaign_id}", response_model=CampaignDetailResponse)
async def get_campaign(
    campaign: Campaign = Depends(get_owned_campaign),
    db: Session = Depends(get_db)
):
    """Get a campaign with its first page of recipients and progress."""
    recipients, total = recipient_store.list_recipients(db, campaign.id, limit=DETAIL_RECIPIENT_LIMIT)
    return CampaignDetailResponse(
        campaign=CampaignResponse.model_validate(campaign),
        recipients=[RecipientResponse.model_validate(r) for r in recipients],
        recipients_total=total,
        progress=recipient_store.get_progress(db, campaign.id),
    )


@router.patch("/{campaign_id}", response_model=CampaignResponse)
async def update_campaign(
    campaign_in: CampaignUpdate,
    campaign: Campaign = Depends(get_owned_campaign),
    db: Session = Depends(get_db),
    dispatcher: DispatchAdapter = Depends(get_dispatcher)
):
    """Edit a draft and/or move the campaign to another status.

    Content edits are applied first, so a draft can be edited and launched in
    one request.
    """
    try:
        campaign = campaign_service.update_draft(db, campaign, campaign_in)
        if campaign_in.status is not None:
            campaign = campaign_service.transition_status(db, campaign, campaign_in.status, dispatcher=dispatcher)
    except CampaignError as e:
        raise _bad_request(e)
    return CampaignResponse.model_validate(campaign)


@router.delete("/{campaign_id}")
async def delete_campaign(
    campaign: Campaign = Depends(get_owned_campaign),
    db: Session = Depends(get_db)
):
    """Delete a campaign that is not running."""
    try:
        campaign_service.delete_campaign(db, campaign)
    except CampaignError as e:
        raise _bad_request(e)
    return {"success": True}


@router.post("/{campaign_id}/duplicate", response_model=CampaignResponse, status_code=status.HTTP_201_CREATED)
async def duplicate_campaign(
    campaign: Campaign = Depends(get_owned_campaign),
    db: Session = Depends(get_db)
):
    """Copy a campaign into a new draft."""
    copy = campaign_service.duplicate_campaign(db, campaign)
    return CampaignResponse.model_validate(copy)


@router.get("/{campaign_id}/recipients", response_model=RecipientPage)
async def list_campaign_recipients(
    status_filter: Literal["all", "sent", "pending", "failed"] = Query("all", alias="status"),
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    campaign: Campaign = Depends(get_owned_campaign),
    db: Session = Depends(get_db)
):
    """Page through a campaign's recipients, filtered by status."""
    recipients, total = recipient_store.list_recipients(
        db, campaign.id, status=status_filter, limit=limit, offset=offset
    )
    return RecipientPage(
        recipients=[RecipientResponse.model_validate(r) for r in recipients],
        total=total
    )


@router.post("/{campaign_id}/send-next-batch")
def send_next_batch(
    campaign: Campaign = Depends(get_owned_campaign),
    executor: BatchExecutor = Depends(get_batch_executor)
):
    """Run the next batch now, on behalf of the signed-in owner."""
    outcome = executor.run_batch(campaign)
    logger.info("Interactive batch finished", campaign_id=campaign.id, outcome=outcome.as_response())
    return outcome.as_response()
