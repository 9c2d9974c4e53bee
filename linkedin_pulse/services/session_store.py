"""
Session Store for browser sessions.
Short-lived opaque session ids mapped to a principal, held in Redis with a
per-principal index set so every session of a user can be revoked at once.
"""

import json
import secrets

from pydantic import ValidationError

from linkedin_pulse.config import settings
from linkedin_pulse.infrastructure.observability.logging import get_logger, preview
from linkedin_pulse.models.domain.credential_domain import Session
from linkedin_pulse.services.infrastructure.redis_client import (
    FastRedisClient,
    RedisOperationError,
)
from linkedin_pulse.utils.clock import Clock, now_ms

logger = get_logger(__name__)

SESSION_KEY_PREFIX = "session"
PRINCIPAL_INDEX_PREFIX = "principal_sessions"
SESSION_ID_BYTES = 32


class SessionStoreError(Exception):
    """Base exception for session store operations."""

    pass


class SessionInvalidError(SessionStoreError):
    """Session id is unknown or expired."""

    pass


class IndexUnavailableError(SessionStoreError):
    """The principal -> sessions index could not be read."""

    pass


class SessionStore:
    """
    Creates, validates and revokes browser sessions.

    Expiry is checked against the injected clock on every read; an expired
    session is deleted the moment it is observed. The Redis key TTL only
    garbage-collects sessions nobody reads again.
    """

    def __init__(
        self,
        redis: FastRedisClient,
        clock: Clock = now_ms,
        ttl_hours: int | None = None,
    ):
        self.redis = redis
        self.clock = clock
        self.ttl_ms = (ttl_hours if ttl_hours is not None else settings.SESSION_TTL_HOURS) * 3600 * 1000

    def _session_key(self, session_id: str) -> str:
        return f"{SESSION_KEY_PREFIX}:{session_id}"

    def _index_key(self, principal_id: str) -> str:
        return f"{PRINCIPAL_INDEX_PREFIX}:{principal_id}"

    @property
    def _ttl_seconds(self) -> int:
        return -(-self.ttl_ms // 1000)

    async def create(self, principal_id: str) -> str:
        """
        Create a session for ``principal_id``.

        Returns:
            str: New opaque session id

        Raises:
            SessionStoreError: If the session could not be stored
        """
        session_id = secrets.token_urlsafe(SESSION_ID_BYTES)
        now = self.clock()
        session = Session(
            session_id=session_id,
            principal_id=principal_id,
            created_at=now,
            expires_at=now + self.ttl_ms,
        )

        stored = await self.redis.set_with_ttl(
            self._session_key(session_id), session.model_dump_json(), self._ttl_seconds
        )
        if not stored:
            raise SessionStoreError("Failed to store session")

        indexed = await self.redis.set_add(
            self._index_key(principal_id), session_id, self._ttl_seconds
        )
        if not indexed:
            logger.warning("Session created without index entry", principal_id=principal_id)

        logger.info(
            "Session created",
            principal_id=principal_id,
            session_preview=preview(session_id),
            expires_at=session.expires_at,
        )
        return session_id

    async def get(self, session_id: str) -> Session | None:
        """Return the session if it exists and has not expired."""
        if not session_id:
            return None

        raw = await self.redis.get(self._session_key(session_id))
        if raw is None:
            logger.info("Session not found", session_preview=preview(session_id))
            return None

        try:
            session = Session.model_validate_json(raw)
        except (ValidationError, json.JSONDecodeError):
            logger.warning("Discarding unreadable session", session_preview=preview(session_id))
            await self.redis.delete(self._session_key(session_id))
            return None

        if not session.is_valid(self.clock()):
            logger.info("Session expired", session_preview=preview(session_id))
            await self.delete(session_id, principal_id=session.principal_id)
            return None

        return session

    async def validate(self, session_id: str) -> str | None:
        """Return the principal id of a live session, or None."""
        session = await self.get(session_id)
        return session.principal_id if session else None

    async def require(self, session_id: str | None) -> str:
        """
        Return the principal id of a live session.

        Raises:
            SessionInvalidError: If the session is missing, unknown or expired
        """
        principal_id = await self.validate(session_id) if session_id else None
        if principal_id is None:
            raise SessionInvalidError("Invalid or expired session")
        return principal_id

    async def delete(self, session_id: str, principal_id: str | None = None) -> None:
        """Delete a session. Deleting an unknown session is a no-op."""
        if principal_id is None:
            raw = await self.redis.get(self._session_key(session_id))
            if raw:
                try:
                    principal_id = Session.model_validate_json(raw).principal_id
                except (ValidationError, json.JSONDecodeError):
                    principal_id = None

        await self.redis.delete(self._session_key(session_id))
        if principal_id:
            await self.redis.set_remove(self._index_key(principal_id), session_id)

        logger.info("Session deleted", session_preview=preview(session_id))

    async def delete_all_for_principal(self, principal_id: str) -> int:
        """
        Delete every session of ``principal_id``.

        An unreadable index is logged and skipped: the caller's disconnect
        still succeeds and the sessions expire on their own.

        Returns:
            int: Number of sessions deleted
        """
        try:
            session_ids = await self._index_members(principal_id)
        except IndexUnavailableError as e:
            logger.warning(
                "Session index unavailable, skipping session cleanup",
                principal_id=principal_id,
                error=str(e),
            )
            return 0

        for session_id in session_ids:
            await self.redis.delete(self._session_key(session_id))
        await self.redis.delete(self._index_key(principal_id))

        if session_ids:
            logger.info(
                "Deleted all sessions for principal",
                principal_id=principal_id,
                count=len(session_ids),
            )
        return len(session_ids)

    async def _index_members(self, principal_id: str) -> set[str]:
        try:
            return await self.redis.set_members(self._index_key(principal_id))
        except RedisOperationError as e:
            raise IndexUnavailableError(str(e)) from e

    async def refresh(self, session_id: str) -> str | None:
        """Replace a live session with a new one; None if it was not live."""
        principal_id = await self.validate(session_id)
        if principal_id is None:
            return None

        await self.delete(session_id, principal_id=principal_id)
        return await self.create(principal_id)
