"""
Analytics Sync Job.
Collects a fresh analytics snapshot for every connected LinkedIn member and
records the outcome of the run in a sync log.
"""

import asyncio
import uuid
from datetime import date, timedelta

from linkedin_pulse.config import settings
from linkedin_pulse.infrastructure.observability.logging import get_logger
from linkedin_pulse.models.domain.credential_domain import StoredCredential
from linkedin_pulse.models.domain.sync_domain import (
    AnalyticsSnapshot,
    AnalyticsTotals,
    SyncStatus,
    SyncSummary,
    TriggerType,
    resolve_sync_status,
)
from linkedin_pulse.repositories.snapshot_repository import SnapshotRepository
from linkedin_pulse.repositories.sync_log_repository import SyncLogRepository
from linkedin_pulse.services.credential_store import CredentialStore
from linkedin_pulse.services.linkedin_analytics_service import LinkedInAnalyticsService
from linkedin_pulse.utils.clock import Clock, ms_to_date, now_ms

logger = get_logger(__name__)


class AnalyticsSyncJobError(Exception):
    """A sync run could not be started or recorded at all."""

    def __init__(self, message: str, operation: str | None = None):
        super().__init__(message)
        self.operation = operation


class SyncRunMetrics:
    """
    Counters and messages for one run.

    Principals are processed concurrently, so every update goes through the lock.
    """

    def __init__(self, sync_job_id: str):
        self.sync_job_id = sync_job_id
        self.success_count = 0
        self.error_count = 0
        self.errors: list[str] = []
        self.success_details: list[str] = []
        self._lock = asyncio.Lock()

    async def record_success(self, principal_id: str, detail: str):
        async with self._lock:
            self.success_count += 1
            self.success_details.append(detail)

        logger.info(
            "Principal synced", sync_job_id=self.sync_job_id, principal_id=principal_id, detail=detail
        )

    async def record_error(self, principal_id: str, message: str):
        async with self._lock:
            self.error_count += 1
            self.errors.append(message)

        logger.warning(
            "Principal sync failed",
            sync_job_id=self.sync_job_id,
            principal_id=principal_id,
            error=message,
        )


class AnalyticsSyncJob:
    """
    Fan-out over every stored credential.

    One principal failing (or hanging) never stops the others; the run's
    terminal status is derived from the success/error counts once every
    principal has settled.
    """

    def __init__(
        self,
        credential_store: CredentialStore,
        analytics_service: LinkedInAnalyticsService,
        sync_log_repository: SyncLogRepository,
        snapshot_repository: SnapshotRepository,
        clock: Clock = now_ms,
        window_days: int | None = None,
        max_concurrency: int | None = None,
        principal_timeout: float | None = None,
    ):
        self.credential_store = credential_store
        self.analytics_service = analytics_service
        self.sync_log_repository = sync_log_repository
        self.snapshot_repository = snapshot_repository
        self.clock = clock
        self.window_days = window_days or settings.SYNC_WINDOW_DAYS
        self.max_concurrency = max_concurrency or settings.SYNC_MAX_CONCURRENCY
        self.principal_timeout = principal_timeout or settings.SYNC_PRINCIPAL_TIMEOUT_SECONDS

        self.is_running = False
        self.last_run_time: int | None = None
        self.last_summary: SyncSummary | None = None

    def reporting_window(self, now: int) -> tuple[date, date]:
        """Trailing window of ``window_days`` ending today (UTC)."""
        today = ms_to_date(now)
        return today - timedelta(days=self.window_days), today

    async def run(self, trigger_type: TriggerType = TriggerType.SCHEDULED) -> SyncSummary:
        """
        Run one sync over every connected principal.

        Returns:
            SyncSummary: Outcome of the run, or a skipped summary when a run
            is already in progress in this process

        Raises:
            AnalyticsSyncJobError: If the sync log could not be created
        """
        if self.is_running:
            logger.warning("Analytics sync already running, skipping this trigger")
            return SyncSummary(skipped=True, reason="already_running")

        self.is_running = True
        try:
            summary = await self._run(trigger_type)
            self.last_run_time = self.clock()
            self.last_summary = summary
            return summary
        finally:
            self.is_running = False

    async def _run(self, trigger_type: TriggerType) -> SyncSummary:
        sync_job_id = str(uuid.uuid4())
        started_at = self.clock()

        try:
            await self.sync_log_repository.create_running(sync_job_id, trigger_type, started_at)
        except Exception as e:
            logger.error("Could not create sync log", sync_job_id=sync_job_id, error=str(e))
            raise AnalyticsSyncJobError(
                f"Failed to start analytics sync: {e}", operation="create_sync_log"
            ) from e

        logger.info(
            "Starting analytics sync", sync_job_id=sync_job_id, trigger_type=trigger_type.value
        )
        metrics = SyncRunMetrics(sync_job_id)

        try:
            credentials = [credential async for credential in self.credential_store.iter_stored()]
        except Exception as e:
            logger.error("Failed to enumerate credentials", sync_job_id=sync_job_id, error=str(e))
            metrics.error_count += 1
            metrics.errors.append(f"Failed to enumerate credentials: {e}")
            return await self._finalize(sync_job_id, SyncStatus.FAILED, 0, metrics)

        window_start, window_end = self.reporting_window(started_at)
        semaphore = asyncio.Semaphore(self.max_concurrency)

        tasks = [
            self._sync_principal(
                semaphore, credential, sync_job_id, window_start, window_end, metrics
            )
            for credential in credentials
        ]
        results = await asyncio.gather(*tasks, return_exceptions=True)

        for credential, result in zip(credentials, results):
            # _sync_principal records its own failures; anything here escaped it
            if isinstance(result, BaseException):
                await metrics.record_error(
                    credential.principal_id, f"{credential.label}: {result}"
                )

        status = resolve_sync_status(len(credentials), metrics.success_count, metrics.error_count)
        return await self._finalize(sync_job_id, status, len(credentials), metrics)

    async def _finalize(
        self, sync_job_id: str, status: SyncStatus, total_users: int, metrics: SyncRunMetrics
    ) -> SyncSummary:
        try:
            await self.sync_log_repository.finalize(
                sync_job_id,
                status=status,
                completed_at=self.clock(),
                total_users=total_users,
                success_count=metrics.success_count,
                error_count=metrics.error_count,
                errors=metrics.errors,
                success_details=metrics.success_details,
            )
        except Exception as e:
            logger.error("Could not finalize sync log", sync_job_id=sync_job_id, error=str(e))
            raise AnalyticsSyncJobError(
                f"Failed to record analytics sync outcome: {e}", operation="finalize_sync_log"
            ) from e

        summary = SyncSummary(
            sync_job_id=sync_job_id,
            status=status,
            total_users=total_users,
            success_count=metrics.success_count,
            error_count=metrics.error_count,
        )
        logger.info("Analytics sync completed", **summary.model_dump(mode="json"))
        return summary

    async def _sync_principal(
        self,
        semaphore: asyncio.Semaphore,
        credential: StoredCredential,
        sync_job_id: str,
        window_start: date,
        window_end: date,
        metrics: SyncRunMetrics,
    ):
        async with semaphore:
            if credential.decode_error:
                await metrics.record_error(
                    credential.principal_id,
                    f"{credential.principal_id}: {credential.decode_error}",
                )
                return

            if not credential.remote_subject_id:
                await metrics.record_error(
                    credential.principal_id, f"{credential.principal_id}: No LinkedIn ID"
                )
                return

            try:
                snapshot = await asyncio.wait_for(
                    self._collect_snapshot(credential, sync_job_id, window_start, window_end),
                    timeout=self.principal_timeout,
                )
            except TimeoutError:
                await metrics.record_error(
                    credential.principal_id,
                    f"{credential.label}: Sync timed out after {self.principal_timeout}s",
                )
                return
            except Exception as e:
                await metrics.record_error(credential.principal_id, f"{credential.label}: {e}")
                return

            await metrics.record_success(
                credential.principal_id,
                f"{credential.label}: {snapshot.totals.impressions} impressions, "
                f"{snapshot.totals.post_count} posts",
            )

    async def _collect_snapshot(
        self,
        credential: StoredCredential,
        sync_job_id: str,
        window_start: date,
        window_end: date,
    ) -> AnalyticsSnapshot:
        access_token = await self.credential_store.get_valid_access_token(credential.principal_id)

        payload = await self.analytics_service.fetch_analytics(
            access_token, credential.remote_subject_id, window_start, window_end
        )

        snapshot = AnalyticsSnapshot(
            principal_id=credential.principal_id,
            remote_subject_id=credential.remote_subject_id,
            synced_at=self.clock(),
            sync_job_id=sync_job_id,
            date_range_start=window_start,
            date_range_end=window_end,
            totals=AnalyticsTotals.from_payload(payload),
            raw_payload=payload.raw(),
        )
        await self.snapshot_repository.append(snapshot)
        return snapshot

    def get_job_status(self) -> dict:
        return {
            "job_name": "analytics_sync",
            "is_running": self.is_running,
            "last_run_time": self.last_run_time,
            "window_days": self.window_days,
            "max_concurrency": self.max_concurrency,
            "last_summary": self.last_summary.model_dump(mode="json") if self.last_summary else None,
        }


async def reconcile_stale_sync_logs(
    sync_log_repository: SyncLogRepository,
    stale_after_minutes: int | None = None,
    clock: Clock = now_ms,
) -> list[str]:
    """
    Fail sync logs left ``running`` by a process that died mid-run.

    Only logs that started more than ``stale_after_minutes`` ago are touched,
    so a run in progress elsewhere is left alone.
    """
    minutes = stale_after_minutes or settings.SYNC_STALE_AFTER_MINUTES
    now = clock()
    reconciled = await sync_log_repository.mark_stale_failed(
        started_before=now - minutes * 60 * 1000, completed_at=now
    )

    if reconciled:
        logger.warning(
            "Reconciled stale sync logs", count=len(reconciled), sync_job_ids=reconciled
        )
    else:
        logger.info("No stale sync logs found", stale_after_minutes=minutes)
    return reconciled


# Background job scheduler
async def start_analytics_sync_scheduler(job: AnalyticsSyncJob | None = None):
    """Run the analytics sync on a fixed interval until cancelled."""
    if job is None:
        from linkedin_pulse.dependencies import get_analytics_sync_job

        job = get_analytics_sync_job()

    interval_minutes = settings.SYNC_INTERVAL_MINUTES
    logger.info("Starting analytics sync scheduler", interval_minutes=interval_minutes)

    while True:
        try:
            summary = await job.run(TriggerType.SCHEDULED)
            if not summary.skipped:
                logger.info("Analytics sync cycle completed", **summary.model_dump(mode="json"))

            await asyncio.sleep(interval_minutes * 60)

        except AnalyticsSyncJobError as e:
            logger.error("Error in analytics sync scheduler", error=str(e), operation=e.operation)
            # Wait a bit before retrying to avoid tight error loops
            await asyncio.sleep(60)
