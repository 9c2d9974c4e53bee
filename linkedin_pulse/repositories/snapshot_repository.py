"""Insert-only persistence for aggregated analytics snapshots."""

from linkedin_pulse.db.helpers import DatabaseError, fetch_all, fetch_one
from linkedin_pulse.infrastructure.observability.logging import get_logger
from linkedin_pulse.models.domain.sync_domain import AnalyticsSnapshot, AnalyticsTotals
from linkedin_pulse.models.encoding import decode_versioned, encode_versioned

logger = get_logger(__name__)


class SnapshotRepositoryError(DatabaseError):
    """More specific exception for snapshot persistence failures."""


class SnapshotRepository:
    """SQL access for the ``analytics_snapshots`` table."""

    SELECT_COLUMNS = """
        snapshot_id, principal_id, remote_subject_id, synced_at, sync_job_id,
        date_range_start, date_range_end, impressions, unique_views, reactions,
        comments, shares, clicks, engagements, post_count, raw_payload
    """

    @staticmethod
    def _row_to_snapshot(row: dict) -> AnalyticsSnapshot:
        return AnalyticsSnapshot(
            principal_id=row["principal_id"],
            remote_subject_id=row["remote_subject_id"],
            synced_at=row["synced_at"],
            sync_job_id=row.get("sync_job_id"),
            date_range_start=row["date_range_start"],
            date_range_end=row["date_range_end"],
            totals=AnalyticsTotals(
                impressions=row["impressions"],
                unique_views=row["unique_views"],
                reactions=row["reactions"],
                comments=row["comments"],
                shares=row["shares"],
                clicks=row["clicks"],
                engagements=row["engagements"],
                post_count=row["post_count"],
            ),
            raw_payload=decode_versioned(row.get("raw_payload")) or {},
        )

    async def append(self, snapshot: AnalyticsSnapshot) -> str:
        """Insert a snapshot; an existing id is a conflict, never an overwrite."""
        totals = snapshot.totals
        query = """
            INSERT INTO analytics_snapshots (
                snapshot_id, principal_id, remote_subject_id, synced_at, sync_job_id,
                date_range_start, date_range_end, impressions, unique_views, reactions,
                comments, shares, clicks, engagements, post_count, raw_payload
            ) VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s::jsonb)
            ON CONFLICT (snapshot_id) DO NOTHING
            RETURNING snapshot_id
        """

        row = await fetch_one(
            query,
            (
                snapshot.snapshot_id,
                snapshot.principal_id,
                snapshot.remote_subject_id,
                snapshot.synced_at,
                snapshot.sync_job_id,
                snapshot.date_range_start,
                snapshot.date_range_end,
                totals.impressions,
                totals.unique_views,
                totals.reactions,
                totals.comments,
                totals.shares,
                totals.clicks,
                totals.engagements,
                totals.post_count,
                encode_versioned(snapshot.raw_payload),
            ),
        )
        if not row:
            raise SnapshotRepositoryError(
                f"Snapshot {snapshot.snapshot_id} already exists", operation="append"
            )

        return row["snapshot_id"]

    async def list_for_principal(
        self, principal_id: str, limit: int = 30
    ) -> list[AnalyticsSnapshot]:
        query = f"""
            SELECT {self.SELECT_COLUMNS} FROM analytics_snapshots
            WHERE principal_id = %s
            ORDER BY synced_at DESC
            LIMIT %s
        """
        rows = await fetch_all(query, (principal_id, limit))
        return [self._row_to_snapshot(row) for row in rows]
