"""
Generic background worker runner.

Reads the desired job name from CLI args or the WORKER_JOB environment
variable, brings up the database pool and delegates to the job.
"""

import asyncio
import os
import sys
from collections.abc import Awaitable, Callable

from linkedin_pulse.config import settings
from linkedin_pulse.db.pool import db_pool
from linkedin_pulse.db.schema import apply_schema
from linkedin_pulse.infrastructure.observability.logging import get_logger, setup_logging
from linkedin_pulse.jobs.analytics_sync_job import (
    reconcile_stale_sync_logs,
    start_analytics_sync_scheduler,
)
from linkedin_pulse.models.domain.sync_domain import TriggerType

logger = get_logger(__name__)

JobCoroutine = Callable[[], Awaitable[None]]


async def run_analytics_sync_once() -> None:
    """Single manual-style sync run, then exit."""
    from linkedin_pulse.dependencies import get_analytics_sync_job

    summary = await get_analytics_sync_job().run(TriggerType.MANUAL)
    logger.info("One-off analytics sync finished", **summary.model_dump(mode="json"))


async def run_sync_log_reconcile() -> None:
    """Fail sync logs orphaned in ``running`` by a crashed process."""
    from linkedin_pulse.dependencies import get_sync_log_repository

    await reconcile_stale_sync_logs(get_sync_log_repository())


JOB_REGISTRY: dict[str, JobCoroutine] = {
    "analytics_sync": start_analytics_sync_scheduler,
    "analytics_sync_once": run_analytics_sync_once,
    "sync_log_reconcile": run_sync_log_reconcile,
}


def _resolve_job_name() -> str:
    """Pick the target job from CLI args or WORKER_JOB env variable."""
    if len(sys.argv) > 1:
        return sys.argv[1].strip().lower()
    return os.getenv("WORKER_JOB", "analytics_sync").strip().lower()


async def run_worker(job_name: str | None = None) -> None:
    """Run the requested background job."""
    name = (job_name or _resolve_job_name()).strip().lower()
    if name not in JOB_REGISTRY:
        raise ValueError(
            f"Unknown worker job '{name}'. "
            f"Available jobs: {', '.join(sorted(JOB_REGISTRY.keys()))}"
        )

    settings.validate_runtime()

    logger.info("Starting background worker", job=name)
    await db_pool.initialize()
    try:
        await apply_schema()
        await JOB_REGISTRY[name]()
    finally:
        await db_pool.close()


def main() -> None:
    """CLI entrypoint."""
    setup_logging(settings.LOG_LEVEL)
    job_name = _resolve_job_name()
    asyncio.run(run_worker(job_name))


if __name__ == "__main__":
    main()
