"""
LinkedIn Connection Service.
Session-facing flows: completing OAuth, connection status, profile,
disconnect, session refresh, the interactive analytics fetch and the
snapshot history recorded by past syncs.
"""

from datetime import timedelta

from linkedin_pulse.config import settings
from linkedin_pulse.infrastructure.observability.logging import get_logger
from linkedin_pulse.models.domain.credential_domain import LinkedInProfile
from linkedin_pulse.models.domain.sync_domain import AnalyticsPayload, AnalyticsSnapshot
from linkedin_pulse.repositories.snapshot_repository import SnapshotRepository
from linkedin_pulse.services.credential_store import CredentialNotFoundError, CredentialStore
from linkedin_pulse.services.linkedin_analytics_service import LinkedInAnalyticsService
from linkedin_pulse.services.linkedin_oauth_service import LinkedInOAuthService
from linkedin_pulse.services.session_store import SessionInvalidError, SessionStore
from linkedin_pulse.utils.clock import ms_to_date

logger = get_logger(__name__)


class LinkedInConnectionService:
    """Composes the credential and session stores for browser-driven flows."""

    def __init__(
        self,
        credential_store: CredentialStore,
        session_store: SessionStore,
        oauth_service: LinkedInOAuthService,
        analytics_service: LinkedInAnalyticsService,
        snapshot_repository: SnapshotRepository,
        window_days: int | None = None,
    ):
        self.credential_store = credential_store
        self.session_store = session_store
        self.oauth_service = oauth_service
        self.analytics_service = analytics_service
        self.snapshot_repository = snapshot_repository
        self.window_days = window_days or settings.SYNC_WINDOW_DAYS

    async def complete_oauth(
        self, principal_id: str, code: str, redirect_uri: str | None = None
    ) -> dict:
        """
        Finish the OAuth redirect: exchange the code, cache the profile,
        store credentials and open a session.

        Raises:
            OAuthExchangeError: If the code exchange fails
            ProfileFetchError: If the profile cannot be read
        """
        token_set = await self.oauth_service.exchange_code_for_tokens(
            code, redirect_uri or settings.linkedin_redirect_uri()
        )
        profile = await self.oauth_service.fetch_profile(token_set.access_token)

        await self.credential_store.put(principal_id, token_set, profile)
        session_id = await self.session_store.create(principal_id)

        logger.info(
            "LinkedIn connected", principal_id=principal_id, remote_subject_id=profile.id
        )
        return {
            "session_id": session_id,
            "profile": profile,
            "expires_in": self.session_store.ttl_ms // 1000,
        }

    async def get_status(self, session_id: str | None) -> dict:
        """Connection status for a browser session. Never raises for a bad session."""
        principal_id = await self.session_store.validate(session_id) if session_id else None
        if principal_id is None:
            return {"connected": False, "reason": "invalid_session"}

        record = await self.credential_store.get(principal_id)
        if record is None:
            return {"connected": False, "reason": "no_credentials"}

        now = self.credential_store.clock()
        can_refresh = bool(record.refresh_token)
        if record.is_expired(now) and not can_refresh:
            return {
                "connected": False,
                "reason": "expired",
                "profile": record.profile,
                "expires_at": record.expires_at,
                "can_refresh": False,
            }

        return {
            "connected": True,
            "profile": record.profile,
            "expires_at": record.expires_at,
            "needs_refresh": record.needs_refresh(now, self.credential_store.refresh_skew_ms),
            "can_refresh": can_refresh,
        }

    async def get_profile(self, session_id: str | None) -> LinkedInProfile:
        """
        Raises:
            SessionInvalidError: If the session is not live
            CredentialNotFoundError: If the principal has no credentials or profile
        """
        principal_id = await self.session_store.require(session_id)
        record = await self.credential_store.get(principal_id)
        if record is None or record.profile is None:
            raise CredentialNotFoundError("LinkedIn not connected", principal_id=principal_id)
        return record.profile

    async def disconnect(self, session_id: str | None) -> str:
        """
        Remove the principal's credentials and every session they hold.

        Returns:
            str: The disconnected principal id
        """
        principal_id = await self.session_store.require(session_id)

        await self.credential_store.delete(principal_id)
        removed = await self.session_store.delete_all_for_principal(principal_id)
        # The calling session goes even when the index was unavailable
        await self.session_store.delete(session_id, principal_id=principal_id)

        logger.info("LinkedIn disconnected", principal_id=principal_id, sessions_removed=removed)
        return principal_id

    async def refresh_session(self, session_id: str | None) -> str:
        """
        Raises:
            SessionInvalidError: If the session is not live
        """
        new_session_id = await self.session_store.refresh(session_id) if session_id else None
        if new_session_id is None:
            raise SessionInvalidError("Invalid or expired session")
        return new_session_id

    async def fetch_current_analytics(self, session_id: str | None) -> AnalyticsPayload:
        """
        Fetch analytics for the session's principal over the configured window.

        Raises:
            SessionInvalidError, CredentialNotFoundError, CredentialsExpiredError,
            RemoteRefreshError, RemoteAnalyticsError
        """
        principal_id = await self.session_store.require(session_id)
        record = await self.credential_store.get(principal_id)
        if record is None or not record.remote_subject_id:
            raise CredentialNotFoundError("LinkedIn not connected", principal_id=principal_id)

        access_token = await self.credential_store.get_valid_access_token(principal_id)

        today = ms_to_date(self.credential_store.clock())
        return await self.analytics_service.fetch_analytics(
            access_token,
            record.remote_subject_id,
            today - timedelta(days=self.window_days),
            today,
        )

    async def list_snapshots(
        self, session_id: str | None, limit: int = 30
    ) -> list[AnalyticsSnapshot]:
        """
        Most recent sync snapshots of the session's principal, newest first.

        Raises:
            SessionInvalidError: If the session is not live
        """
        principal_id = await self.session_store.require(session_id)
        return await self.snapshot_repository.list_for_principal(principal_id, limit=limit)
