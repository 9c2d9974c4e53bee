"""LinkedIn connection status, session, analytics and snapshot history routes."""

from fastapi import APIRouter, Depends, Query

from linkedin_pulse.dependencies import get_connection_service
from linkedin_pulse.infrastructure.observability.logging import get_logger
from linkedin_pulse.models.api.linkedin_response import (
    AnalyticsSnapshotListResponse,
    LinkedInDisconnectResponse,
    LinkedInSessionResponse,
    LinkedInStatusResponse,
)
from linkedin_pulse.models.domain.credential_domain import LinkedInProfile
from linkedin_pulse.models.domain.sync_domain import AnalyticsPayload
from linkedin_pulse.routes.linkedin_auth.errors import session_id_header, to_http_exception
from linkedin_pulse.services.linkedin_connection_service import LinkedInConnectionService

logger = get_logger(__name__)

router = APIRouter()


@router.get("/status", response_model=LinkedInStatusResponse)
async def get_connection_status(
    session_id: str | None = Depends(session_id_header),
    service: LinkedInConnectionService = Depends(get_connection_service),
):
    """
    Connection status for the browser session.

    An unknown or expired session is reported as ``connected: false`` rather
    than an error.
    """
    try:
        return LinkedInStatusResponse(**await service.get_status(session_id))
    except Exception as e:
        logger.error("Error getting LinkedIn status", error=str(e), error_type=type(e).__name__)
        raise to_http_exception(e) from None


@router.get("/profile", response_model=LinkedInProfile)
async def get_profile(
    session_id: str | None = Depends(session_id_header),
    service: LinkedInConnectionService = Depends(get_connection_service),
):
    try:
        return await service.get_profile(session_id)
    except Exception as e:
        logger.info("LinkedIn profile unavailable", error=str(e), error_type=type(e).__name__)
        raise to_http_exception(e) from None


@router.post("/disconnect", response_model=LinkedInDisconnectResponse)
async def disconnect(
    session_id: str | None = Depends(session_id_header),
    service: LinkedInConnectionService = Depends(get_connection_service),
):
    """Delete stored credentials and every session of the principal."""
    try:
        principal_id = await service.disconnect(session_id)
        logger.info("LinkedIn disconnect completed", principal_id=principal_id)
        return LinkedInDisconnectResponse()
    except Exception as e:
        logger.error("LinkedIn disconnect failed", error=str(e), error_type=type(e).__name__)
        raise to_http_exception(e) from None


@router.post("/session/refresh", response_model=LinkedInSessionResponse)
async def refresh_session(
    session_id: str | None = Depends(session_id_header),
    service: LinkedInConnectionService = Depends(get_connection_service),
):
    """Swap a live session for a new one with a full lifetime."""
    try:
        new_session_id = await service.refresh_session(session_id)
        return LinkedInSessionResponse(
            session_id=new_session_id, expires_in=service.session_store.ttl_ms // 1000
        )
    except Exception as e:
        logger.info("LinkedIn session refresh rejected", error=str(e))
        raise to_http_exception(e) from None


@router.get("/analytics", response_model=AnalyticsPayload)
async def get_analytics(
    session_id: str | None = Depends(session_id_header),
    service: LinkedInConnectionService = Depends(get_connection_service),
):
    """
    Fetch the member's post analytics on demand.

    Raises:
        401: Invalid session
        404: LinkedIn not connected
        409: Re-authorization required
        502: LinkedIn rejected the request
    """
    try:
        return await service.fetch_current_analytics(session_id)
    except Exception as e:
        logger.error("LinkedIn analytics fetch failed", error=str(e), error_type=type(e).__name__)
        raise to_http_exception(e) from None


@router.get("/snapshots", response_model=AnalyticsSnapshotListResponse)
async def list_snapshots(
    limit: int = Query(default=30, ge=1, le=100),
    session_id: str | None = Depends(session_id_header),
    service: LinkedInConnectionService = Depends(get_connection_service),
):
    """Snapshots stored by past syncs for the session's principal, newest first."""
    try:
        snapshots = await service.list_snapshots(session_id, limit=limit)
        return AnalyticsSnapshotListResponse(snapshots=snapshots, count=len(snapshots))
    except Exception as e:
        logger.error("LinkedIn snapshot listing failed", error=str(e), error_type=type(e).__name__)
        raise to_http_exception(e) from None
