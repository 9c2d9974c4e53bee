"""
Test domain models: status resolution, totals, URNs and the stored envelope.
"""

from datetime import date

import pytest
from pydantic import ValidationError

from linkedin_pulse.models.domain.credential_domain import CredentialRecord, TokenSet, to_person_urn
from linkedin_pulse.models.domain.sync_domain import (
    AnalyticsPayload,
    AnalyticsSnapshot,
    AnalyticsTotals,
    LinkedInPost,
    PostStatistics,
    SyncStatus,
    resolve_sync_status,
)
from linkedin_pulse.models.encoding import EncodingError, decode_versioned, encode_versioned


@pytest.mark.parametrize(
    "total, success, errors, expected",
    [
        (0, 0, 0, SyncStatus.COMPLETED),
        (3, 3, 0, SyncStatus.COMPLETED),
        (3, 0, 3, SyncStatus.FAILED),
        (3, 2, 1, SyncStatus.PARTIAL),
        (3, 1, 2, SyncStatus.PARTIAL),
    ],
)
def test_resolve_sync_status(total, success, errors, expected):
    assert resolve_sync_status(total, success, errors) is expected


def test_only_running_is_not_terminal():
    assert not SyncStatus.RUNNING.is_terminal
    assert all(s.is_terminal for s in SyncStatus if s is not SyncStatus.RUNNING)


def test_totals_from_payload():
    payload = AnalyticsPayload(
        posts=[LinkedInPost(urn="urn:li:share:1"), LinkedInPost(urn="urn:li:share:2")],
        statistics=[
            PostStatistics(
                post_urn="urn:li:share:1",
                impressions=100,
                unique_impressions=80,
                clicks=5,
                reactions=10,
                comments=2,
                shares=1,
            ),
            PostStatistics(post_urn="urn:li:share:2", impressions=50, reactions=4),
        ],
    )

    totals = AnalyticsTotals.from_payload(payload)

    assert totals.post_count == 2
    assert totals.impressions == 150
    assert totals.unique_views == 80
    assert totals.reactions == 14
    assert totals.engagements == 18 + 4


def test_totals_of_empty_payload():
    totals = AnalyticsTotals.from_payload(AnalyticsPayload())
    assert totals == AnalyticsTotals()


def test_snapshot_id_and_immutability():
    snapshot = AnalyticsSnapshot(
        principal_id="user-1",
        remote_subject_id="abc123",
        synced_at=1_710_504_000_000,
        date_range_start=date(2024, 3, 8),
        date_range_end=date(2024, 3, 15),
        totals=AnalyticsTotals(),
    )

    assert snapshot.snapshot_id == "user-1#abc123#1710504000000"
    with pytest.raises(ValidationError):
        snapshot.principal_id = "user-2"


def test_to_person_urn():
    assert to_person_urn("abc123") == "urn:li:person:abc123"
    assert to_person_urn("urn:li:person:abc123") == "urn:li:person:abc123"


def test_token_set_from_provider():
    token_set = TokenSet.from_provider(
        {"access_token": "at", "expires_in": "3600", "refresh_token": "", "scope": "r_basicprofile"}
    )

    assert token_set.expires_in == 3600
    assert token_set.refresh_token is None
    with pytest.raises(ValueError):
        TokenSet.from_provider({"expires_in": 3600})


def test_tokens_hidden_from_repr():
    record = CredentialRecord(
        principal_id="user-1",
        access_token="secret-access",
        refresh_token="secret-refresh",
        expires_at=10,
        created_at=0,
        updated_at=0,
    )

    assert "secret-access" not in repr(record)
    assert "secret-refresh" not in repr(record)


def test_credential_refresh_window():
    record = CredentialRecord(
        principal_id="user-1", access_token="at", expires_at=1000, created_at=0, updated_at=0
    )

    assert record.needs_refresh(now=500, skew_ms=600) is True
    assert record.needs_refresh(now=300, skew_ms=600) is False
    assert record.is_expired(1000) is True
    assert record.is_expired(999) is False


def test_encoding_envelope():
    encoded = encode_versioned(["a", "b"])

    assert encoded == '{"v":1,"data":["a","b"]}'
    assert decode_versioned(encoded) == ["a", "b"]
    assert decode_versioned({"v": 1, "data": {"k": 1}}) == {"k": 1}
    assert decode_versioned(None) is None


@pytest.mark.parametrize("raw", ["not json", '["a"]', '{"data": 1}', '{"v": 2, "data": 1}'])
def test_encoding_rejects_unknown_values(raw):
    with pytest.raises(EncodingError):
        decode_versioned(raw)
