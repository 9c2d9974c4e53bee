import asyncio

import pytest

from linkedin_pulse.auth.verify import sync_token_dependency
from linkedin_pulse.models.domain.credential_domain import (
    EncryptedCredential,
    LinkedInProfile,
    TokenSet,
)
from linkedin_pulse.models.domain.sync_domain import (
    AnalyticsPayload,
    AnalyticsSnapshot,
    LinkedInPost,
    PostStatistics,
    SyncLog,
    SyncStatus,
)
from linkedin_pulse.services.credential_store import CredentialStore
from linkedin_pulse.services.infrastructure.encryption_service import TokenCipher
from linkedin_pulse.services.infrastructure.redis_client import RedisOperationError
from linkedin_pulse.services.session_store import SessionStore

TEST_KEY = "00112233445566778899aabbccddeeff00112233445566778899aabbccddeeff"

# 2024-03-15T12:00:00Z
START_MS = 1_710_504_000_000
HOUR_MS = 60 * 60 * 1000
MINUTE_MS = 60 * 1000


class FakeClock:
    def __init__(self, now: int = START_MS):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int):
        self.now += ms


class FakeRedis:
    def __init__(self):
        self.store: dict[str, str] = {}
        self.sets: dict[str, set[str]] = {}
        self.fail_set_reads = False

    async def set_with_ttl(self, key: str, value: str, ttl_s: int | None = None) -> bool:
        self.store[key] = value
        return True

    async def get(self, key: str) -> str | None:
        return self.store.get(key)

    async def delete(self, key: str) -> bool:
        removed = self.store.pop(key, None) is not None
        removed = self.sets.pop(key, None) is not None or removed
        return removed

    async def set_add(self, key: str, member: str, ttl_s: int | None = None) -> bool:
        self.sets.setdefault(key, set()).add(member)
        return True

    async def set_remove(self, key: str, member: str) -> bool:
        members = self.sets.get(key, set())
        if member in members:
            members.discard(member)
            return True
        return False

    async def set_members(self, key: str) -> set[str]:
        if self.fail_set_reads:
            raise RedisOperationError("index unavailable")
        return set(self.sets.get(key, set()))

    async def ping(self) -> bool:
        return True


class InMemoryCredentialRepository:
    """Mirrors the SQL semantics: created_at kept on upsert, expires_at never decreases."""

    def __init__(self):
        self.rows: dict[str, EncryptedCredential] = {}
        self.list_page_calls = 0

    async def upsert(self, credential: EncryptedCredential) -> EncryptedCredential:
        existing = self.rows.get(credential.principal_id)
        if existing:
            credential = credential.model_copy(
                update={
                    "created_at": existing.created_at,
                    "expires_at": max(existing.expires_at, credential.expires_at),
                }
            )
        self.rows[credential.principal_id] = credential
        return credential

    async def get(self, principal_id: str) -> EncryptedCredential | None:
        return self.rows.get(principal_id)

    async def delete(self, principal_id: str) -> bool:
        return self.rows.pop(principal_id, None) is not None

    async def update_tokens(
        self,
        principal_id,
        access_token_encrypted,
        refresh_token_encrypted,
        expires_at,
        refreshed_at,
    ):
        existing = self.rows.get(principal_id)
        if existing is None:
            return None
        updated = existing.model_copy(
            update={
                "access_token_encrypted": access_token_encrypted,
                "refresh_token_encrypted": refresh_token_encrypted
                or existing.refresh_token_encrypted,
                "expires_at": max(existing.expires_at, expires_at),
                "last_refreshed_at": refreshed_at,
                "updated_at": refreshed_at,
            }
        )
        self.rows[principal_id] = updated
        return updated

    async def update_profile(self, principal_id, profile, updated_at) -> bool:
        existing = self.rows.get(principal_id)
        if existing is None:
            return False
        self.rows[principal_id] = existing.model_copy(
            update={"profile": profile, "remote_subject_id": profile.id, "updated_at": updated_at}
        )
        return True

    async def list_page(self, after=None, limit=100):
        self.list_page_calls += 1
        keys = sorted(k for k in self.rows if after is None or k > after)
        return [self.rows[k] for k in keys[:limit]]


class InMemorySyncLogRepository:
    def __init__(self):
        self.logs: dict[str, SyncLog] = {}
        self.finalize_calls = 0

    async def create_running(self, sync_job_id, trigger_type, started_at):
        log = SyncLog(sync_job_id=sync_job_id, started_at=started_at, trigger_type=trigger_type)
        self.logs[sync_job_id] = log
        return log

    async def finalize(
        self,
        sync_job_id,
        status,
        completed_at,
        total_users,
        success_count,
        error_count,
        errors,
        success_details,
    ) -> bool:
        self.finalize_calls += 1
        log = self.logs.get(sync_job_id)
        if log is None or log.status is not SyncStatus.RUNNING:
            return False
        self.logs[sync_job_id] = log.model_copy(
            update={
                "status": status,
                "completed_at": completed_at,
                "total_users": total_users,
                "success_count": success_count,
                "error_count": error_count,
                "errors": list(errors),
                "success_details": list(success_details),
            }
        )
        return True

    async def get(self, sync_job_id):
        return self.logs.get(sync_job_id)

    async def list_recent(self, limit=20):
        return sorted(self.logs.values(), key=lambda log: log.started_at, reverse=True)[:limit]

    async def mark_stale_failed(self, started_before, completed_at):
        reconciled = []
        for sync_job_id, log in self.logs.items():
            if log.status is SyncStatus.RUNNING and log.started_at < started_before:
                self.logs[sync_job_id] = log.model_copy(
                    update={
                        "status": SyncStatus.FAILED,
                        "completed_at": completed_at,
                        "errors": ["Sync run did not finish; marked failed by reconciliation"],
                    }
                )
                reconciled.append(sync_job_id)
        return reconciled


class InMemorySnapshotRepository:
    def __init__(self):
        self.snapshots: list[AnalyticsSnapshot] = []

    async def append(self, snapshot: AnalyticsSnapshot) -> str:
        self.snapshots.append(snapshot)
        return snapshot.snapshot_id

    async def list_for_principal(self, principal_id, limit=30):
        owned = [s for s in self.snapshots if s.principal_id == principal_id]
        return sorted(owned, key=lambda s: s.synced_at, reverse=True)[:limit]


class FakeRefresher:
    """Stands in for the LinkedIn token endpoint; counts refresh calls."""

    def __init__(self, expires_in: int = 3600, new_refresh_token: str | None = None):
        self.expires_in = expires_in
        self.new_refresh_token = new_refresh_token
        self.calls: list[str] = []
        self.error: Exception | None = None

    async def refresh_access_token(self, refresh_token: str) -> TokenSet:
        self.calls.append(refresh_token)
        # Yield so concurrent callers interleave
        await asyncio.sleep(0)
        if self.error:
            raise self.error
        return TokenSet(
            access_token=f"refreshed-access-{len(self.calls)}",
            expires_in=self.expires_in,
            refresh_token=self.new_refresh_token,
        )


class FakeAnalyticsService:
    def __init__(self, impressions_per_post: int = 100, posts: int = 2):
        self.impressions_per_post = impressions_per_post
        self.posts = posts
        self.calls: list[tuple] = []
        self.errors: dict[str, Exception] = {}
        self.delays: dict[str, float] = {}

    async def fetch_analytics(self, access_token, remote_subject_id, date_range_start, date_range_end):
        self.calls.append((access_token, remote_subject_id, date_range_start, date_range_end))
        if remote_subject_id in self.delays:
            await asyncio.sleep(self.delays[remote_subject_id])
        if remote_subject_id in self.errors:
            raise self.errors[remote_subject_id]

        urns = [f"urn:li:share:{remote_subject_id}-{i}" for i in range(self.posts)]
        return AnalyticsPayload(
            posts=[LinkedInPost(urn=urn, created_at=START_MS) for urn in urns],
            statistics=[
                PostStatistics(post_urn=urn, impressions=self.impressions_per_post, reactions=3)
                for urn in urns
            ],
        )


def make_profile(member_id: str = "abc123", first_name: str = "Ada") -> LinkedInProfile:
    return LinkedInProfile(id=member_id, first_name=first_name, last_name="Lovelace")


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cipher():
    return TokenCipher(TEST_KEY)


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def credential_repository():
    return InMemoryCredentialRepository()


@pytest.fixture
def sync_log_repository():
    return InMemorySyncLogRepository()


@pytest.fixture
def snapshot_repository():
    return InMemorySnapshotRepository()


@pytest.fixture
def refresher():
    return FakeRefresher()


@pytest.fixture
def analytics_service():
    return FakeAnalyticsService()


@pytest.fixture
def credential_store(credential_repository, cipher, refresher, clock):
    return CredentialStore(
        repository=credential_repository,
        cipher=cipher,
        refresher=refresher,
        clock=clock,
        refresh_skew_ms=5 * MINUTE_MS,
    )


@pytest.fixture
def session_store(fake_redis, clock):
    return SessionStore(fake_redis, clock=clock, ttl_hours=24)


@pytest.fixture
def apply_sync_token_override():
    def _apply(app):
        app.dependency_overrides[sync_token_dependency] = lambda: None

    return _apply


