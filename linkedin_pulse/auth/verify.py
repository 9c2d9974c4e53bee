"""
verify.py
---------
Purpose:
    Shared-secret check for operator endpoints (manual sync trigger, sync logs).

Notes:
    - The secret is SYNC_TRIGGER_TOKEN, sent in the ``X-Sync-Token`` header.
    - When no secret is configured the endpoints are closed, not open.
"""

import secrets

from fastapi import Header, HTTPException, status

from linkedin_pulse.config import settings


def verify_sync_token(token: str | None) -> None:
    expected = settings.SYNC_TRIGGER_TOKEN
    if not expected:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Sync trigger is not configured",
        )

    if not token or not secrets.compare_digest(token, expected):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid sync token"
        )


def sync_token_dependency(x_sync_token: str | None = Header(default=None)) -> None:
    verify_sync_token(x_sync_token)
