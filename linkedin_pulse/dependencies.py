"""
Process-wide service wiring.

Services that need configuration (the cipher key above all) are built on
first use rather than at import, so importing a module never fails on a
missing secret. Routes receive them through FastAPI ``Depends`` and tests
swap them with ``app.dependency_overrides``.
"""

from functools import lru_cache

from linkedin_pulse.config import settings
from linkedin_pulse.jobs.analytics_sync_job import AnalyticsSyncJob
from linkedin_pulse.repositories.credential_repository import CredentialRepository
from linkedin_pulse.repositories.snapshot_repository import SnapshotRepository
from linkedin_pulse.repositories.sync_log_repository import SyncLogRepository
from linkedin_pulse.services.credential_store import CredentialStore
from linkedin_pulse.services.infrastructure.encryption_service import TokenCipher
from linkedin_pulse.services.infrastructure.redis_client import fast_redis
from linkedin_pulse.services.linkedin_analytics_service import linkedin_analytics_service
from linkedin_pulse.services.linkedin_connection_service import LinkedInConnectionService
from linkedin_pulse.services.linkedin_oauth_service import linkedin_oauth_service
from linkedin_pulse.services.session_store import SessionStore


@lru_cache
def get_token_cipher() -> TokenCipher:
    return TokenCipher(settings.TOKEN_ENCRYPTION_KEY)


@lru_cache
def get_credential_store() -> CredentialStore:
    return CredentialStore(
        repository=CredentialRepository(),
        cipher=get_token_cipher(),
        refresher=linkedin_oauth_service,
        refresh_skew_ms=settings.refresh_skew_ms(),
    )


@lru_cache
def get_session_store() -> SessionStore:
    return SessionStore(fast_redis, ttl_hours=settings.SESSION_TTL_HOURS)


@lru_cache
def get_sync_log_repository() -> SyncLogRepository:
    return SyncLogRepository()


@lru_cache
def get_snapshot_repository() -> SnapshotRepository:
    return SnapshotRepository()


@lru_cache
def get_analytics_sync_job() -> AnalyticsSyncJob:
    return AnalyticsSyncJob(
        credential_store=get_credential_store(),
        analytics_service=linkedin_analytics_service,
        sync_log_repository=get_sync_log_repository(),
        snapshot_repository=get_snapshot_repository(),
        window_days=settings.SYNC_WINDOW_DAYS,
        max_concurrency=settings.SYNC_MAX_CONCURRENCY,
        principal_timeout=settings.SYNC_PRINCIPAL_TIMEOUT_SECONDS,
    )


@lru_cache
def get_connection_service() -> LinkedInConnectionService:
    return LinkedInConnectionService(
        credential_store=get_credential_store(),
        session_store=get_session_store(),
        oauth_service=linkedin_oauth_service,
        analytics_service=linkedin_analytics_service,
        snapshot_repository=get_snapshot_repository(),
        window_days=settings.SYNC_WINDOW_DAYS,
    )
