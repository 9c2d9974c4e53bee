# models/api/linkedin_response.py
"""
API response models for the LinkedIn connection and sync endpoints.
"""

from typing import Literal

from pydantic import BaseModel, Field

from linkedin_pulse.models.domain.credential_domain import LinkedInProfile
from linkedin_pulse.models.domain.sync_domain import AnalyticsSnapshot, SyncLog, SyncStatus


class LinkedInAuthURLResponse(BaseModel):
    auth_url: str = Field(..., description="LinkedIn authorization URL")


class LinkedInSessionResponse(BaseModel):
    """Returned after a successful code exchange or session refresh."""

    session_id: str = Field(..., description="Opaque browser session id")
    profile: LinkedInProfile | None = None
    expires_in: int = Field(..., description="Session lifetime in seconds")


class LinkedInStatusResponse(BaseModel):
    connected: bool
    reason: Literal["invalid_session", "no_credentials", "expired"] | None = None
    profile: LinkedInProfile | None = None
    expires_at: int | None = Field(default=None, description="Access token expiry, epoch ms")
    needs_refresh: bool = False
    can_refresh: bool = False


class LinkedInDisconnectResponse(BaseModel):
    success: bool = True
    message: str = "LinkedIn disconnected"


class SyncRunResponse(BaseModel):
    sync_job_id: str | None = None
    status: SyncStatus | None = None
    total_users: int = 0
    success_count: int = 0
    error_count: int = 0
    skipped: bool = False
    reason: str | None = None
    reconciled: list[str] = Field(default_factory=list)


class SyncLogListResponse(BaseModel):
    logs: list[SyncLog]
    count: int


class AnalyticsSnapshotListResponse(BaseModel):
    snapshots: list[AnalyticsSnapshot]
    count: int
