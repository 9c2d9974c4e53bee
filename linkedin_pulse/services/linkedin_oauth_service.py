"""
LinkedIn OAuth Service.
Handles authorization URL generation, code exchange, token refresh and the
basic profile lookup that follows a successful exchange.
"""

from urllib.parse import urlencode

import httpx

from linkedin_pulse.config import settings
from linkedin_pulse.infrastructure.observability.logging import get_logger
from linkedin_pulse.models.domain.credential_domain import LinkedInProfile, TokenSet

logger = get_logger(__name__)

# OAuth configuration
LINKEDIN_AUTHORIZATION_URL = "https://www.linkedin.com/oauth/v2/authorization"
LINKEDIN_TOKEN_URL = "https://www.linkedin.com/oauth/v2/accessToken"
LINKEDIN_PROFILE_URL = "https://api.linkedin.com/v2/me"

LINKEDIN_SCOPES = [
    "r_member_postAnalytics",  # Post analytics
    "r_basicprofile",  # Name, photo, headline
]

REQUEST_TIMEOUT = 10  # seconds


class LinkedInOAuthError(Exception):
    """Base exception for LinkedIn OAuth failures."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        error_code: str | None = None,
        error_description: str | None = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.error_code = error_code
        self.error_description = error_description


class RemoteRefreshError(LinkedInOAuthError):
    """The token endpoint rejected (or never answered) a refresh request."""


class OAuthExchangeError(LinkedInOAuthError):
    """Authorization code could not be exchanged for tokens."""


class ProfileFetchError(LinkedInOAuthError):
    """The member profile could not be read with a fresh access token."""


class LinkedInOAuthService:
    """
    Thin client for LinkedIn's OAuth 2.0 endpoints.

    Every call is a single request; nothing here retries.
    """

    def __init__(
        self,
        client_id: str | None = None,
        client_secret: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.client_id = client_id if client_id is not None else settings.LINKEDIN_CLIENT_ID
        self.client_secret = (
            client_secret if client_secret is not None else settings.LINKEDIN_CLIENT_SECRET
        )
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=REQUEST_TIMEOUT, transport=self._transport)

    def build_authorization_url(self, state: str, redirect_uri: str | None = None) -> str:
        """
        Generate the LinkedIn authorization URL the browser is sent to.

        Args:
            state: CSRF protection state parameter
            redirect_uri: Registered redirect URI (defaults to settings)
        """
        params = {
            "response_type": "code",
            "client_id": self.client_id,
            "redirect_uri": redirect_uri or settings.linkedin_redirect_uri(),
            "state": state,
            "scope": " ".join(LINKEDIN_SCOPES),
        }
        return f"{LINKEDIN_AUTHORIZATION_URL}?{urlencode(params)}"

    async def exchange_code_for_tokens(self, code: str, redirect_uri: str) -> TokenSet:
        """
        Exchange an authorization code for a token set.

        Raises:
            OAuthExchangeError: If LinkedIn rejects the code or cannot be reached
        """
        data = {
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": redirect_uri,
            "client_id": self.client_id,
            "client_secret": self.client_secret,
        }

        try:
            async with self._client() as client:
                response = await client.post(LINKEDIN_TOKEN_URL, data=data)
        except httpx.RequestError as e:
            logger.error(
                "Network error during code exchange", error=str(e), error_type=type(e).__name__
            )
            raise OAuthExchangeError(f"Network error during code exchange: {e}") from e

        return self._handle_token_response(response, "code_exchange", OAuthExchangeError)

    async def refresh_access_token(self, refresh_token: str) -> TokenSet:
        """
        Refresh an access token.

        Args:
            refresh_token: Decrypted refresh token

        Returns:
            TokenSet: New access token; ``refresh_token`` is set only when
            LinkedIn rotated it

        Raises:
            RemoteRefreshError: On any non-success response, unparseable body
                or network failure
        """
        data = {
            "grant_type": "refresh_token",
            "refresh_token": refresh_token,
            "client_id": self.client_id,
            "client_secret": self.client_secret,
        }

        try:
            async with self._client() as client:
                response = await client.post(LINKEDIN_TOKEN_URL, data=data)
        except httpx.RequestError as e:
            logger.error(
                "Network error during token refresh", error=str(e), error_type=type(e).__name__
            )
            raise RemoteRefreshError(f"Network error during token refresh: {e}") from e

        return self._handle_token_response(response, "token_refresh", RemoteRefreshError)

    async def fetch_profile(self, access_token: str) -> LinkedInProfile:
        """
        Read the member's basic profile.

        Raises:
            ProfileFetchError: If the profile request fails
        """
        try:
            async with self._client() as client:
                response = await client.get(
                    LINKEDIN_PROFILE_URL,
                    headers={"Authorization": f"Bearer {access_token}"},
                )
        except httpx.RequestError as e:
            logger.error("Network error fetching profile", error=str(e))
            raise ProfileFetchError(f"Network error fetching profile: {e}") from e

        if not response.is_success:
            logger.error("LinkedIn profile fetch failed", status_code=response.status_code)
            raise ProfileFetchError(
                f"Failed to fetch LinkedIn profile (HTTP {response.status_code})",
                status_code=response.status_code,
            )

        try:
            data = response.json()
        except ValueError as e:
            raise ProfileFetchError("Failed to parse LinkedIn profile response") from e

        member_id = data.get("id")
        if not member_id:
            raise ProfileFetchError("LinkedIn profile response has no member id")

        profile = LinkedInProfile(
            id=member_id,
            first_name=data.get("localizedFirstName") or "",
            last_name=data.get("localizedLastName") or "",
            headline=data.get("localizedHeadline"),
            picture_url=_extract_picture_url(data),
        )

        logger.info("LinkedIn profile fetched", remote_subject_id=member_id)
        return profile

    def _handle_token_response(
        self,
        response: httpx.Response,
        operation: str,
        error_cls: type[LinkedInOAuthError],
    ) -> TokenSet:
        """
        Validate a token endpoint response and build the token set.

        LinkedIn can answer 200 with an ``error`` body, so the payload is
        checked as well as the status.
        """
        try:
            data = response.json()
        except ValueError:
            logger.error(
                f"LinkedIn {operation} failed with non-JSON response",
                status_code=response.status_code,
            )
            raise error_cls(
                f"Failed to parse LinkedIn response (HTTP {response.status_code})",
                status_code=response.status_code,
            ) from None

        if not response.is_success or (isinstance(data, dict) and data.get("error")):
            data = data if isinstance(data, dict) else {}
            error_code = data.get("error")
            error_description = data.get("error_description")

            logger.error(
                f"LinkedIn {operation} failed",
                status_code=response.status_code,
                error_code=error_code,
                error_description=error_description,
            )
            raise error_cls(
                error_description or error_code or f"LinkedIn {operation} failed",
                status_code=response.status_code,
                error_code=error_code,
                error_description=error_description,
            )

        try:
            token_set = TokenSet.from_provider(data)
        except (ValueError, TypeError) as e:
            logger.error(f"Invalid token response from LinkedIn {operation}", error=str(e))
            raise error_cls(
                f"Invalid token response from LinkedIn: {e}", status_code=response.status_code
            ) from e

        logger.info(
            f"LinkedIn {operation} successful",
            expires_in=token_set.expires_in,
            has_refresh_token=bool(token_set.refresh_token),
        )
        return token_set


def _extract_picture_url(data: dict) -> str | None:
    """Largest display image from a ``profilePicture(displayImage~)`` projection, if present."""
    picture = data.get("profilePicture") or {}
    elements = (picture.get("displayImage~") or {}).get("elements") or []
    for element in reversed(elements):
        for identifier in element.get("identifiers") or []:
            if identifier.get("identifier"):
                return identifier["identifier"]
    return None


# Singleton instance for application use
linkedin_oauth_service = LinkedInOAuthService()

