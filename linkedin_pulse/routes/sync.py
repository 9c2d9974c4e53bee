"""
Analytics sync routes: manual trigger and sync log inspection.
"""

from fastapi import APIRouter, Depends, HTTPException, Query, status

from linkedin_pulse.auth.verify import sync_token_dependency
from linkedin_pulse.dependencies import get_analytics_sync_job, get_sync_log_repository
from linkedin_pulse.infrastructure.observability.logging import get_logger
from linkedin_pulse.jobs.analytics_sync_job import (
    AnalyticsSyncJob,
    AnalyticsSyncJobError,
    reconcile_stale_sync_logs,
)
from linkedin_pulse.models.api.linkedin_request import SyncRunRequest
from linkedin_pulse.models.api.linkedin_response import SyncLogListResponse, SyncRunResponse
from linkedin_pulse.models.domain.sync_domain import SyncLog, TriggerType
from linkedin_pulse.repositories.sync_log_repository import SyncLogRepository

logger = get_logger(__name__)

router = APIRouter(prefix="/sync", tags=["sync"], dependencies=[Depends(sync_token_dependency)])


@router.post("/run", response_model=SyncRunResponse)
async def run_sync(
    request: SyncRunRequest | None = None,
    job: AnalyticsSyncJob = Depends(get_analytics_sync_job),
    sync_log_repository: SyncLogRepository = Depends(get_sync_log_repository),
):
    """
    Run an analytics sync now and wait for it to finish.

    Returns a skipped response when a run is already in progress.
    """
    reconciled: list[str] = []
    if request and request.reconcile_stale:
        reconciled = await reconcile_stale_sync_logs(sync_log_repository, clock=job.clock)

    try:
        summary = await job.run(TriggerType.MANUAL)
    except AnalyticsSyncJobError as e:
        logger.error("Manual analytics sync failed", error=str(e), operation=e.operation)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Analytics sync could not run"
        ) from None

    return SyncRunResponse(**summary.model_dump(), reconciled=reconciled)


@router.get("/logs", response_model=SyncLogListResponse)
async def list_sync_logs(
    limit: int = Query(default=20, ge=1, le=100),
    sync_log_repository: SyncLogRepository = Depends(get_sync_log_repository),
):
    """Most recent sync logs, newest first."""
    logs = await sync_log_repository.list_recent(limit)
    return SyncLogListResponse(logs=logs, count=len(logs))


@router.get("/logs/{sync_job_id}", response_model=SyncLog)
async def get_sync_log(
    sync_job_id: str,
    sync_log_repository: SyncLogRepository = Depends(get_sync_log_repository),
):
    log = await sync_log_repository.get(sync_job_id)
    if log is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Sync log not found")
    return log
