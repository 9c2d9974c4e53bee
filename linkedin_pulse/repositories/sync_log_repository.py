"""
Persistence for analytics sync run logs.

A log is created ``running`` and finalized exactly once; the finalize and
reconcile updates are both guarded on ``status = 'running'`` so neither can
overwrite an already terminal log.
"""

from linkedin_pulse.db.helpers import DatabaseError, execute_query, fetch_all, fetch_one
from linkedin_pulse.infrastructure.observability.logging import get_logger
from linkedin_pulse.models.domain.sync_domain import SyncLog, SyncStatus, TriggerType
from linkedin_pulse.models.encoding import decode_versioned, encode_versioned

logger = get_logger(__name__)

MAX_RECORDED_MESSAGES = 500


class SyncLogRepositoryError(DatabaseError):
    """More specific exception for sync log persistence failures."""


class SyncLogRepository:
    """SQL access for the ``sync_logs`` table."""

    SELECT_COLUMNS = """
        sync_job_id, started_at, completed_at, status, trigger_type,
        total_users, success_count, error_count, errors, success_details
    """

    @staticmethod
    def _row_to_log(row: dict | None) -> SyncLog | None:
        if not row:
            return None

        return SyncLog(
            sync_job_id=row["sync_job_id"],
            started_at=row["started_at"],
            completed_at=row.get("completed_at"),
            status=SyncStatus(row["status"]),
            trigger_type=TriggerType(row["trigger_type"]),
            total_users=row.get("total_users") or 0,
            success_count=row.get("success_count") or 0,
            error_count=row.get("error_count") or 0,
            errors=decode_versioned(row.get("errors")) or [],
            success_details=decode_versioned(row.get("success_details")) or [],
        )

    async def create_running(
        self, sync_job_id: str, trigger_type: TriggerType, started_at: int
    ) -> SyncLog:
        query = f"""
            INSERT INTO sync_logs (
                sync_job_id, started_at, status, trigger_type,
                total_users, success_count, error_count, errors, success_details
            ) VALUES (%s, %s, 'running', %s, 0, 0, 0, %s::jsonb, %s::jsonb)
            RETURNING {self.SELECT_COLUMNS}
        """

        row = await fetch_one(
            query,
            (
                sync_job_id,
                started_at,
                trigger_type.value,
                encode_versioned([]),
                encode_versioned([]),
            ),
        )
        if not row:
            raise SyncLogRepositoryError("Failed to create sync log", operation="create_running")

        logger.info("Sync log created", sync_job_id=sync_job_id, trigger_type=trigger_type.value)
        return self._row_to_log(row)

    async def finalize(
        self,
        sync_job_id: str,
        status: SyncStatus,
        completed_at: int,
        total_users: int,
        success_count: int,
        error_count: int,
        errors: list[str],
        success_details: list[str],
    ) -> bool:
        """
        Write terminal fields. Returns False if the log was no longer running.
        """
        query = """
            UPDATE sync_logs
            SET status = %s,
                completed_at = %s,
                total_users = %s,
                success_count = %s,
                error_count = %s,
                errors = %s::jsonb,
                success_details = %s::jsonb
            WHERE sync_job_id = %s AND status = 'running'
        """

        affected = await execute_query(
            query,
            (
                status.value,
                completed_at,
                total_users,
                success_count,
                error_count,
                encode_versioned(errors[:MAX_RECORDED_MESSAGES]),
                encode_versioned(success_details[:MAX_RECORDED_MESSAGES]),
                sync_job_id,
            ),
        )

        if affected == 0:
            logger.warning("Sync log was not running, finalize skipped", sync_job_id=sync_job_id)
        return affected > 0

    async def get(self, sync_job_id: str) -> SyncLog | None:
        query = f"SELECT {self.SELECT_COLUMNS} FROM sync_logs WHERE sync_job_id = %s"
        row = await fetch_one(query, (sync_job_id,))
        return self._row_to_log(row)

    async def list_recent(self, limit: int = 20) -> list[SyncLog]:
        query = f"""
            SELECT {self.SELECT_COLUMNS} FROM sync_logs
            ORDER BY started_at DESC
            LIMIT %s
        """
        rows = await fetch_all(query, (limit,))
        return [self._row_to_log(row) for row in rows]

    async def mark_stale_failed(self, started_before: int, completed_at: int) -> list[str]:
        """
        Fail every log still ``running`` that started before ``started_before``.

        Returns:
            The sync job ids that were reconciled
        """
        query = """
            UPDATE sync_logs
            SET status = 'failed',
                completed_at = %s,
                errors = %s::jsonb
            WHERE status = 'running' AND started_at < %s
            RETURNING sync_job_id
        """

        message = "Sync run did not finish; marked failed by reconciliation"
        rows = await fetch_all(query, (completed_at, encode_versioned([message]), started_before))
        return [row["sync_job_id"] for row in rows]
