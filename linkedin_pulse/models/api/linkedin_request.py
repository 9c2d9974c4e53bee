# models/api/linkedin_request.py
from pydantic import BaseModel, Field


class LinkedInTokenRequest(BaseModel):
    """Request sent by the OAuth redirect page once LinkedIn returns a code."""

    code: str = Field(..., min_length=1, description="Authorization code from OAuth flow")
    principal_id: str = Field(..., min_length=1, description="Workspace user the account belongs to")
    redirect_uri: str | None = Field(
        default=None, description="Redirect URI used to obtain the code (defaults to configured)"
    )


class SyncRunRequest(BaseModel):
    """Manual sync trigger body."""

    reconcile_stale: bool = Field(
        default=False, description="Fail orphaned running logs before starting"
    )
