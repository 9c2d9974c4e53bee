"""
Credential Store for LinkedIn token lifecycle management.
Handles encryption at rest, expiry checks and refresh-ahead of access tokens.
"""

import asyncio
import weakref
from collections.abc import AsyncIterator

from linkedin_pulse.config import settings
from linkedin_pulse.infrastructure.observability.logging import get_logger
from linkedin_pulse.models.domain.credential_domain import (
    CredentialRecord,
    EncryptedCredential,
    LinkedInProfile,
    StoredCredential,
    TokenSet,
)
from linkedin_pulse.repositories.credential_repository import CredentialRepository
from linkedin_pulse.services.infrastructure.encryption_service import TokenCipher
from linkedin_pulse.services.linkedin_oauth_service import LinkedInOAuthService
from linkedin_pulse.utils.clock import Clock, now_ms

logger = get_logger(__name__)

ENUMERATION_PAGE_SIZE = 100


class CredentialStoreError(Exception):
    """Base exception for credential store operations."""

    def __init__(self, message: str, principal_id: str | None = None):
        super().__init__(message)
        self.principal_id = principal_id


class CredentialNotFoundError(CredentialStoreError):
    """No credential record exists for the principal."""


class CredentialsExpiredError(CredentialStoreError):
    """Access token is expiring and there is no refresh token; re-authorization required."""


class CredentialStore:
    """
    Owns the encrypted credential record of every principal.

    Tokens are encrypted before they reach the repository and decrypted only
    on the way out, so nothing below this class ever sees a plaintext token.
    """

    def __init__(
        self,
        repository: CredentialRepository,
        cipher: TokenCipher,
        refresher: LinkedInOAuthService,
        clock: Clock = now_ms,
        refresh_skew_ms: int | None = None,
    ):
        self.repository = repository
        self.cipher = cipher
        self.refresher = refresher
        self.clock = clock
        self.refresh_skew_ms = (
            refresh_skew_ms if refresh_skew_ms is not None else settings.refresh_skew_ms()
        )
        # Entries vanish once no caller holds or waits on the lock
        self._refresh_locks: weakref.WeakValueDictionary[str, asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    def _decrypt(self, row: EncryptedCredential) -> CredentialRecord:
        return CredentialRecord(
            principal_id=row.principal_id,
            remote_subject_id=row.remote_subject_id,
            access_token=self.cipher.decrypt(row.access_token_encrypted),
            refresh_token=(
                self.cipher.decrypt(row.refresh_token_encrypted)
                if row.refresh_token_encrypted
                else None
            ),
            expires_at=row.expires_at,
            last_refreshed_at=row.last_refreshed_at,
            profile=row.profile,
            created_at=row.created_at,
            updated_at=row.updated_at,
        )

    async def put(
        self, principal_id: str, token_set: TokenSet, profile: LinkedInProfile | None = None
    ) -> CredentialRecord:
        """
        Create or overwrite the principal's credential record.

        Args:
            principal_id: Workspace user id the credential belongs to
            token_set: Fresh tokens from the OAuth exchange
            profile: Cached member profile; its id becomes the remote subject id

        Returns:
            CredentialRecord: The stored record, decrypted
        """
        now = self.clock()
        row = EncryptedCredential(
            principal_id=principal_id,
            remote_subject_id=profile.id if profile else None,
            access_token_encrypted=self.cipher.encrypt(token_set.access_token),
            refresh_token_encrypted=(
                self.cipher.encrypt(token_set.refresh_token) if token_set.refresh_token else None
            ),
            expires_at=now + token_set.expires_in * 1000,
            last_refreshed_at=None,
            profile=profile,
            created_at=now,
            updated_at=now,
        )

        stored = await self.repository.upsert(row)

        logger.info(
            "LinkedIn credentials stored",
            principal_id=principal_id,
            remote_subject_id=stored.remote_subject_id,
            has_refresh_token=bool(token_set.refresh_token),
            expires_at=stored.expires_at,
        )
        return self._decrypt(stored)

    async def get(self, principal_id: str) -> CredentialRecord | None:
        row = await self.repository.get(principal_id)
        if row is None:
            return None
        return self._decrypt(row)

    async def delete(self, principal_id: str) -> bool:
        """Remove the credential record. Sessions are left to the caller."""
        deleted = await self.repository.delete(principal_id)
        logger.info("LinkedIn credentials deleted", principal_id=principal_id, deleted=deleted)
        return deleted

    async def update_after_refresh(
        self, principal_id: str, token_set: TokenSet
    ) -> CredentialRecord:
        """
        Persist a refreshed token set.

        The stored refresh token is replaced only when LinkedIn issued a new one.

        Raises:
            CredentialNotFoundError: If the record disappeared meanwhile
        """
        now = self.clock()
        row = await self.repository.update_tokens(
            principal_id,
            access_token_encrypted=self.cipher.encrypt(token_set.access_token),
            refresh_token_encrypted=(
                self.cipher.encrypt(token_set.refresh_token) if token_set.refresh_token else None
            ),
            expires_at=now + token_set.expires_in * 1000,
            refreshed_at=now,
        )
        if row is None:
            raise CredentialNotFoundError(
                "Credential record not found during refresh", principal_id=principal_id
            )

        logger.info(
            "LinkedIn credentials refreshed",
            principal_id=principal_id,
            rotated_refresh_token=bool(token_set.refresh_token),
            expires_at=row.expires_at,
        )
        return self._decrypt(row)

    async def update_profile(self, principal_id: str, profile: LinkedInProfile) -> bool:
        """Refresh the cached profile (and remote subject id) of an existing record."""
        updated = await self.repository.update_profile(principal_id, profile, self.clock())
        if not updated:
            logger.warning("Profile update for unknown principal", principal_id=principal_id)
        return updated

    async def has_valid_tokens(self, principal_id: str) -> bool:
        """True when a record exists and its access token has not expired yet."""
        record = await self.get(principal_id)
        return record is not None and not record.is_expired(self.clock())

    async def get_valid_access_token(self, principal_id: str) -> str:
        """
        Return an access token good for at least the refresh skew.

        A token inside the skew window is refreshed first. Concurrent callers
        for the same principal wait on one refresh instead of issuing their own.

        Raises:
            CredentialNotFoundError: If the principal has no record
            CredentialsExpiredError: If a refresh is needed but impossible
            RemoteRefreshError: If LinkedIn rejects the refresh
        """
        lock = self._refresh_locks.get(principal_id)
        if lock is None:
            lock = self._refresh_locks[principal_id] = asyncio.Lock()

        async with lock:
            record = await self.get(principal_id)
            if record is None:
                raise CredentialNotFoundError(
                    "No LinkedIn credentials for principal", principal_id=principal_id
                )

            now = self.clock()
            if not record.needs_refresh(now, self.refresh_skew_ms):
                return record.access_token

            if not record.refresh_token:
                logger.warning(
                    "Access token expiring without refresh token",
                    principal_id=principal_id,
                    expires_in_ms=record.expires_in_ms(now),
                )
                raise CredentialsExpiredError(
                    "LinkedIn token expired. Please reconnect your account.",
                    principal_id=principal_id,
                )

            logger.info(
                "Refreshing LinkedIn access token",
                principal_id=principal_id,
                expires_in_ms=record.expires_in_ms(now),
            )
            token_set = await self.refresher.refresh_access_token(record.refresh_token)
            # A rotated refresh token is persisted even if the caller is cancelled
            refreshed = await asyncio.shield(self.update_after_refresh(principal_id, token_set))
            return refreshed.access_token

    async def iter_stored(
        self, page_size: int = ENUMERATION_PAGE_SIZE
    ) -> AsyncIterator[StoredCredential]:
        """Yield a summary of every stored credential, paging to completion."""
        after = None
        while True:
            page = await self.repository.list_page(after=after, limit=page_size)
            for row in page:
                yield row.summary()

            if len(page) < page_size:
                return
            after = page[-1].principal_id
