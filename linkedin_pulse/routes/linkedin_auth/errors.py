"""Translate LinkedIn connection errors into HTTP responses."""

from fastapi import Header, HTTPException, status

from linkedin_pulse.config import ConfigError
from linkedin_pulse.infrastructure.observability.logging import get_logger
from linkedin_pulse.services.credential_store import (
    CredentialNotFoundError,
    CredentialsExpiredError,
)
from linkedin_pulse.services.infrastructure.encryption_service import (
    DecryptionError,
    InvalidKeyError,
)
from linkedin_pulse.services.linkedin_analytics_service import RemoteAnalyticsError
from linkedin_pulse.services.linkedin_oauth_service import LinkedInOAuthError, OAuthExchangeError
from linkedin_pulse.services.session_store import SessionInvalidError, SessionStoreError

logger = get_logger(__name__)


async def session_id_header(x_session_id: str | None = Header(default=None)) -> str | None:
    """Session id sent by the browser in ``X-Session-Id``."""
    return x_session_id


def to_http_exception(error: Exception) -> HTTPException:
    """Map a domain error to the status code the browser client understands."""
    if isinstance(error, SessionInvalidError):
        return HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(error))

    if isinstance(error, CredentialsExpiredError):
        return HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={"error": str(error), "reauthorize_required": True},
        )

    if isinstance(error, CredentialNotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(error))

    if isinstance(error, OAuthExchangeError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(error))

    if isinstance(error, LinkedInOAuthError | RemoteAnalyticsError):
        return HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(error))

    if isinstance(error, ConfigError | InvalidKeyError | SessionStoreError):
        logger.error("Service misconfigured or unavailable", error=str(error))
        return HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="LinkedIn service temporarily unavailable",
        )

    if isinstance(error, DecryptionError):
        logger.error("Stored credentials could not be decrypted", error=str(error))

    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="An unexpected error occurred"
    )
