"""LinkedIn auth route aggregation."""

from fastapi import APIRouter

from linkedin_pulse.routes.linkedin_auth import oauth, status

router = APIRouter(prefix="/auth/linkedin", tags=["linkedin-auth"])

router.include_router(oauth.router)
router.include_router(status.router)
