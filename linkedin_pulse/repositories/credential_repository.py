"""
Persistence for encrypted LinkedIn credentials.

Rows only ever hold cipher blobs; encryption and decryption happen in the
credential store above this layer.
"""

from pydantic import ValidationError

from linkedin_pulse.db.helpers import DatabaseError, execute_query, fetch_all, fetch_one
from linkedin_pulse.infrastructure.observability.logging import get_logger
from linkedin_pulse.models.domain.credential_domain import EncryptedCredential, LinkedInProfile
from linkedin_pulse.models.encoding import EncodingError, decode_versioned, encode_versioned

logger = get_logger(__name__)


class CredentialRepositoryError(DatabaseError):
    """More specific exception for credential persistence failures."""


def _encode_profile(profile: LinkedInProfile | None) -> str | None:
    if profile is None:
        return None
    return encode_versioned(profile.model_dump(mode="json"))


def _decode_profile(row: dict) -> tuple[LinkedInProfile | None, str | None]:
    """
    Read the cached profile of a row.

    An unreadable profile is reported instead of raised, so one bad row
    cannot break a page of results.
    """
    try:
        profile_data = decode_versioned(row.get("profile"))
        if not profile_data:
            return None, None
        return LinkedInProfile.model_validate(profile_data), None
    except (EncodingError, ValidationError) as e:
        logger.warning(
            "Unreadable cached profile",
            principal_id=row.get("principal_id"),
            error=str(e),
            error_type=type(e).__name__,
        )
        detail = str(e) if isinstance(e, EncodingError) else "invalid profile data"
        return None, f"Malformed credential record: {detail}"


class CredentialRepository:
    """SQL access for the ``linkedin_credentials`` table."""

    SELECT_COLUMNS = """
        principal_id, remote_subject_id, access_token_encrypted,
        refresh_token_encrypted, expires_at, last_refreshed_at,
        profile, created_at, updated_at
    """

    @staticmethod
    def _row_to_credential(row: dict | None) -> EncryptedCredential | None:
        if not row:
            return None

        profile, decode_error = _decode_profile(row)
        return EncryptedCredential(
            principal_id=row["principal_id"],
            remote_subject_id=row.get("remote_subject_id"),
            access_token_encrypted=row["access_token_encrypted"],
            refresh_token_encrypted=row.get("refresh_token_encrypted"),
            expires_at=row["expires_at"],
            last_refreshed_at=row.get("last_refreshed_at"),
            profile=profile,
            created_at=row["created_at"],
            updated_at=row["updated_at"],
            decode_error=decode_error,
        )

    async def upsert(self, credential: EncryptedCredential) -> EncryptedCredential:
        """
        Create or overwrite the record for ``credential.principal_id``.

        ``created_at`` of an existing row is kept; ``expires_at`` never moves
        backwards.
        """
        query = f"""
            INSERT INTO linkedin_credentials (
                principal_id, remote_subject_id, access_token_encrypted,
                refresh_token_encrypted, expires_at, last_refreshed_at,
                profile, created_at, updated_at
            ) VALUES (%s, %s, %s, %s, %s, %s, %s::jsonb, %s, %s)
            ON CONFLICT (principal_id)
            DO UPDATE SET
                remote_subject_id = EXCLUDED.remote_subject_id,
                access_token_encrypted = EXCLUDED.access_token_encrypted,
                refresh_token_encrypted = EXCLUDED.refresh_token_encrypted,
                expires_at = GREATEST(linkedin_credentials.expires_at, EXCLUDED.expires_at),
                last_refreshed_at = EXCLUDED.last_refreshed_at,
                profile = EXCLUDED.profile,
                updated_at = EXCLUDED.updated_at
            RETURNING {self.SELECT_COLUMNS}
        """

        row = await fetch_one(
            query,
            (
                credential.principal_id,
                credential.remote_subject_id,
                credential.access_token_encrypted,
                credential.refresh_token_encrypted,
                credential.expires_at,
                credential.last_refreshed_at,
                _encode_profile(credential.profile),
                credential.created_at,
                credential.updated_at,
            ),
        )
        if not row:
            raise CredentialRepositoryError("Failed to upsert credential", operation="upsert")

        return self._row_to_credential(row)

    async def get(self, principal_id: str) -> EncryptedCredential | None:
        query = f"SELECT {self.SELECT_COLUMNS} FROM linkedin_credentials WHERE principal_id = %s"
        row = await fetch_one(query, (principal_id,))
        return self._row_to_credential(row)

    async def delete(self, principal_id: str) -> bool:
        affected = await execute_query(
            "DELETE FROM linkedin_credentials WHERE principal_id = %s", (principal_id,)
        )
        return affected > 0

    async def update_tokens(
        self,
        principal_id: str,
        access_token_encrypted: str,
        refresh_token_encrypted: str | None,
        expires_at: int,
        refreshed_at: int,
    ) -> EncryptedCredential | None:
        """
        Store a refreshed token pair.

        A ``None`` refresh token keeps the stored one.
        """
        query = f"""
            UPDATE linkedin_credentials
            SET access_token_encrypted = %s,
                refresh_token_encrypted = COALESCE(%s, refresh_token_encrypted),
                expires_at = GREATEST(expires_at, %s),
                last_refreshed_at = %s,
                updated_at = %s
            WHERE principal_id = %s
            RETURNING {self.SELECT_COLUMNS}
        """

        row = await fetch_one(
            query,
            (
                access_token_encrypted,
                refresh_token_encrypted,
                expires_at,
                refreshed_at,
                refreshed_at,
                principal_id,
            ),
        )
        return self._row_to_credential(row)

    async def update_profile(
        self, principal_id: str, profile: LinkedInProfile, updated_at: int
    ) -> bool:
        query = """
            UPDATE linkedin_credentials
            SET profile = %s::jsonb,
                remote_subject_id = %s,
                updated_at = %s
            WHERE principal_id = %s
        """

        affected = await execute_query(
            query, (_encode_profile(profile), profile.id, updated_at, principal_id)
        )
        return affected > 0

    async def list_page(
        self, after: str | None = None, limit: int = 100
    ) -> list[EncryptedCredential]:
        """Keyset page ordered by ``principal_id``, starting after ``after``."""
        if after is None:
            query = f"""
                SELECT {self.SELECT_COLUMNS} FROM linkedin_credentials
                ORDER BY principal_id
                LIMIT %s
            """
            rows = await fetch_all(query, (limit,))
        else:
            query = f"""
                SELECT {self.SELECT_COLUMNS} FROM linkedin_credentials
                WHERE principal_id > %s
                ORDER BY principal_id
                LIMIT %s
            """
            rows = await fetch_all(query, (after, limit))

        return [self._row_to_credential(row) for row in rows]
