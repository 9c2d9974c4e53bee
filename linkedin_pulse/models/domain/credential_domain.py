# models/domain/credential_domain.py
"""
LinkedIn credential, profile and session domain models.
Tokens held here are decrypted, in-memory only values.
"""

from typing import Any

from pydantic import BaseModel, Field

PERSON_URN_PREFIX = "urn:li:person:"


class TokenSet(BaseModel):
    """Token set returned by the LinkedIn token endpoint."""

    access_token: str = Field(repr=False)
    expires_in: int
    refresh_token: str | None = Field(default=None, repr=False)
    refresh_token_expires_in: int | None = None
    scope: str | None = None

    @classmethod
    def from_provider(cls, data: dict[str, Any]) -> "TokenSet":
        """
        Build a token set from the provider's JSON body.

        Raises:
            ValueError: If access_token or expires_in are missing
        """
        access_token = data.get("access_token")
        expires_in = data.get("expires_in")
        if not access_token or expires_in is None:
            raise ValueError("Token response missing access_token or expires_in")

        return cls(
            access_token=access_token,
            expires_in=int(expires_in),
            refresh_token=data.get("refresh_token") or None,
            refresh_token_expires_in=data.get("refresh_token_expires_in"),
            scope=data.get("scope"),
        )


class LinkedInProfile(BaseModel):
    """Cached LinkedIn member profile."""

    id: str
    first_name: str
    last_name: str = ""
    headline: str | None = None
    picture_url: str | None = None

    @property
    def person_urn(self) -> str:
        return to_person_urn(self.id)

    @property
    def display_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


class CredentialRecord(BaseModel):
    """Decrypted credential record for one principal."""

    principal_id: str
    remote_subject_id: str | None = None
    access_token: str = Field(repr=False)
    refresh_token: str | None = Field(default=None, repr=False)
    expires_at: int
    last_refreshed_at: int | None = None
    profile: LinkedInProfile | None = None
    created_at: int
    updated_at: int

    def expires_in_ms(self, now: int) -> int:
        return self.expires_at - now

    def is_expired(self, now: int) -> bool:
        return now >= self.expires_at

    def needs_refresh(self, now: int, skew_ms: int) -> bool:
        """True when the access token expires within ``skew_ms`` (or already has)."""
        return self.expires_in_ms(now) < skew_ms


class EncryptedCredential(BaseModel):
    """Credential row exactly as persisted: tokens are cipher blobs."""

    principal_id: str
    remote_subject_id: str | None = None
    access_token_encrypted: str = Field(repr=False)
    refresh_token_encrypted: str | None = Field(default=None, repr=False)
    expires_at: int
    last_refreshed_at: int | None = None
    profile: LinkedInProfile | None = None
    created_at: int
    updated_at: int
    # Set when the stored profile could not be read; the tokens are still usable
    decode_error: str | None = None

    def summary(self) -> "StoredCredential":
        return StoredCredential(
            principal_id=self.principal_id,
            remote_subject_id=self.remote_subject_id,
            expires_at=self.expires_at,
            profile=self.profile,
            decode_error=self.decode_error,
        )


class StoredCredential(BaseModel):
    """Credential row summary used for enumeration; tokens stay encrypted."""

    principal_id: str
    remote_subject_id: str | None = None
    expires_at: int
    profile: LinkedInProfile | None = None
    decode_error: str | None = None

    @property
    def label(self) -> str:
        """Human readable name for sync log summaries."""
        if self.profile and self.profile.first_name:
            return self.profile.first_name
        return self.principal_id


class Session(BaseModel):
    """Short-lived browser session bound to a principal."""

    session_id: str = Field(repr=False)
    principal_id: str
    created_at: int
    expires_at: int

    def is_valid(self, now: int) -> bool:
        return now < self.expires_at


def to_person_urn(remote_subject_id: str) -> str:
    """Normalize a LinkedIn member id to its person URN."""
    if remote_subject_id.startswith(PERSON_URN_PREFIX):
        return remote_subject_id
    return f"{PERSON_URN_PREFIX}{remote_subject_id}"
