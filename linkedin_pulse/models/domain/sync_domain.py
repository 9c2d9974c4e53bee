# models/domain/sync_domain.py
"""
Analytics sync domain models: provider payloads, snapshots and sync logs.
"""

from datetime import date
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, Field


class SyncStatus(str, Enum):
    RUNNING = "running"
    COMPLETED = "completed"
    PARTIAL = "partial"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self is not SyncStatus.RUNNING


class TriggerType(str, Enum):
    SCHEDULED = "scheduled"
    MANUAL = "manual"


StatisticsSource = Literal["post_analytics", "social_actions"]
PostSource = Literal["posts", "shares"]


class LinkedInPost(BaseModel):
    """A member post inside the reporting window."""

    urn: str
    created_at: int | None = None
    text: str | None = None


class PostStatistics(BaseModel):
    """Normalized per-post counters, whichever endpoint produced them."""

    post_urn: str
    impressions: int = 0
    unique_impressions: int = 0
    clicks: int = 0
    reactions: int = 0
    comments: int = 0
    shares: int = 0
    source: StatisticsSource = "post_analytics"

    @property
    def engagements(self) -> int:
        return self.reactions + self.comments + self.shares + self.clicks


class AnalyticsPayload(BaseModel):
    """Normalized result of one analytics fetch for a principal."""

    posts: list[LinkedInPost] = Field(default_factory=list)
    statistics: list[PostStatistics] = Field(default_factory=list)
    has_more: bool = False
    post_source: PostSource = "posts"
    statistics_source: StatisticsSource = "post_analytics"

    def raw(self) -> dict[str, Any]:
        """Payload retained on the snapshot for audit/debugging."""
        return self.model_dump(mode="json")


class AnalyticsTotals(BaseModel):
    impressions: int = 0
    unique_views: int = 0
    reactions: int = 0
    comments: int = 0
    shares: int = 0
    clicks: int = 0
    engagements: int = 0
    post_count: int = 0

    @classmethod
    def from_payload(cls, payload: AnalyticsPayload) -> "AnalyticsTotals":
        """Sum counters across every returned post."""
        totals = cls(post_count=len(payload.posts))
        for stats in payload.statistics:
            totals.impressions += stats.impressions
            totals.unique_views += stats.unique_impressions
            totals.reactions += stats.reactions
            totals.comments += stats.comments
            totals.shares += stats.shares
            totals.clicks += stats.clicks
            totals.engagements += stats.engagements
        return totals


class AnalyticsSnapshot(BaseModel):
    """Immutable aggregated metrics for one principal over one window."""

    principal_id: str
    remote_subject_id: str
    synced_at: int
    sync_job_id: str | None = None
    date_range_start: date
    date_range_end: date
    totals: AnalyticsTotals
    raw_payload: dict[str, Any] = Field(default_factory=dict)

    model_config = {"frozen": True}

    @property
    def snapshot_id(self) -> str:
        return f"{self.principal_id}#{self.remote_subject_id}#{self.synced_at}"


class SyncLog(BaseModel):
    """Outcome record of one analytics sync run."""

    sync_job_id: str
    started_at: int
    completed_at: int | None = None
    status: SyncStatus = SyncStatus.RUNNING
    trigger_type: TriggerType
    total_users: int = 0
    success_count: int = 0
    error_count: int = 0
    errors: list[str] = Field(default_factory=list)
    success_details: list[str] = Field(default_factory=list)


class SyncSummary(BaseModel):
    """What the scheduler/manual trigger receives once a run settles."""

    sync_job_id: str | None = None
    status: SyncStatus | None = None
    total_users: int = 0
    success_count: int = 0
    error_count: int = 0
    skipped: bool = False
    reason: str | None = None


def resolve_sync_status(total_users: int, success_count: int, error_count: int) -> SyncStatus:
    """
    Terminal status for a finished run.

    completed iff no errors; failed iff nothing succeeded out of a non-empty
    batch; partial otherwise.
    """
    if error_count == 0:
        return SyncStatus.COMPLETED
    if success_count == 0 and total_users > 0:
        return SyncStatus.FAILED
    return SyncStatus.PARTIAL
