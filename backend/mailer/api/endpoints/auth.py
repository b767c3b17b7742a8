"""Provider credential endpoints used by the sign-in layer."""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from mailer.api.deps import get_current_user_email, get_db
from mailer.schemas.auth import ProviderTokensUpdate, ProviderTokensResponse
from mailer.services.credentials import store_provider_tokens as save_provider_tokens

router = APIRouter(prefix="/auth", tags=["Authentication"])


@router.put("/provider-tokens", response_model=ProviderTokensResponse)
async def store_provider_tokens(
    tokens_in: ProviderTokensUpdate,
    db: Session = Depends(get_db),
    user_email: str = Depends(get_current_user_email)
):
    """Store or replace the OAuth credentials used for server-side sending."""
    credentials = save_provider_tokens(db, user_email, tokens_in)
    return ProviderTokensResponse(user_email=user_email, is_workspace=credentials.is_workspace)
