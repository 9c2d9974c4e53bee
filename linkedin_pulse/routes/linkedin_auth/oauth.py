"""
LinkedIn OAuth routes for the connection flow.
"""

from fastapi import APIRouter, Depends, Query

from linkedin_pulse.dependencies import get_connection_service
from linkedin_pulse.infrastructure.observability.logging import get_logger
from linkedin_pulse.models.api.linkedin_request import LinkedInTokenRequest
from linkedin_pulse.models.api.linkedin_response import (
    LinkedInAuthURLResponse,
    LinkedInSessionResponse,
)
from linkedin_pulse.routes.linkedin_auth.errors import to_http_exception
from linkedin_pulse.services.linkedin_connection_service import LinkedInConnectionService
from linkedin_pulse.services.linkedin_oauth_service import linkedin_oauth_service

logger = get_logger(__name__)

router = APIRouter()


@router.get("/url", response_model=LinkedInAuthURLResponse)
async def get_oauth_url(
    state: str = Query(..., min_length=8, description="Client-generated CSRF state"),
    redirect_uri: str | None = Query(default=None),
):
    """Build the LinkedIn authorization URL for a client-generated state."""
    return LinkedInAuthURLResponse(
        auth_url=linkedin_oauth_service.build_authorization_url(state, redirect_uri)
    )


@router.post("/token", response_model=LinkedInSessionResponse)
async def exchange_token(
    request: LinkedInTokenRequest,
    service: LinkedInConnectionService = Depends(get_connection_service),
):
    """
    Complete the OAuth redirect.

    Exchanges the code, stores encrypted credentials for ``principal_id`` and
    returns a session id; tokens never leave the server.

    Raises:
        400: LinkedIn rejected the authorization code
        502: LinkedIn profile could not be read
        503: Service misconfigured
    """
    try:
        logger.info("Processing LinkedIn OAuth exchange", principal_id=request.principal_id)
        result = await service.complete_oauth(
            request.principal_id, request.code, request.redirect_uri
        )
        return LinkedInSessionResponse(**result)

    except Exception as e:
        logger.error(
            "LinkedIn OAuth exchange failed",
            principal_id=request.principal_id,
            error=str(e),
            error_type=type(e).__name__,
        )
        raise to_http_exception(e) from None
