# tests/test_sources.py
"""
Test channel evidence sources and the source registry.

Runs against the seeded SQLite store from conftest.
"""

import hashlib

import pytest
from sqlalchemy import create_engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import sessionmaker

from audit_comms.db import check_connection
from audit_comms.models import (
    Channel,
    CorrelationKey,
    CorrelationKeyType,
    EvidenceConstructionError,
    EvidenceSourceError,
)
from audit_comms.settings import settings
from audit_comms.sources import (
    ChatPlatformEvidenceSource,
    DirectMessageEvidenceSource,
    EvidenceSourceQuery,
    EvidenceSourceRegistry,
    clamp_limit,
)
from audit_comms.sources.chat_platform import ChatPlatformStatusEvent, build_status_progression_hash

from conftest import ORDER_KEY


def sha256(value: str) -> str:
    return hashlib.sha256(value.encode("utf-8")).hexdigest()


@pytest.fixture
def empty_session_factory(tmp_path):
    """Session factory for a store without any evidence tables."""
    engine = create_engine(f"sqlite:///{tmp_path / 'empty.db'}")
    yield sessionmaker(bind=engine, autoflush=False)
    engine.dispose()


class FlakyDirectMessageSource(DirectMessageEvidenceSource):
    """Fails with OperationalError for the first `failures` queries."""

    def __init__(self, session_factory, failures):
        super().__init__(session_factory=session_factory)
        self.failures = failures
        self.calls = 0

    def _query(self, session, query):
        self.calls += 1
        if self.calls <= self.failures:
            raise OperationalError("SELECT 1", {}, Exception("connection reset"))
        return super()._query(session, query)


class TestDirectMessageSource:
    """Tests for direct_message_dispatches."""

    def test_rows_newest_first(self, session_factory):
        """Rows for other keys and rows without dispatch_id are excluded."""
        rows = DirectMessageEvidenceSource(session_factory).fetch_evidence_rows(
            EvidenceSourceQuery(correlation_key=ORDER_KEY)
        )

        assert [row.dispatch_id for row in rows] == ["e-2", "e-1"]
        assert {row.channel_name for row in rows} == {Channel.DIRECT_MESSAGE}

    def test_valid_rendered_hash_lowercased(self, session_factory):
        """A stored SHA-256 is used as the payload hash."""
        rows = DirectMessageEvidenceSource(session_factory).fetch_evidence_rows(
            EvidenceSourceQuery(correlation_key=ORDER_KEY)
        )
        e1 = next(row for row in rows if row.dispatch_id == "e-1")

        assert e1.payload_hash == "a" * 64

    def test_invalid_rendered_hash_falls_back(self, session_factory):
        """A malformed stored hash is replaced by a dispatch fingerprint."""
        rows = DirectMessageEvidenceSource(session_factory).fetch_evidence_rows(
            EvidenceSourceQuery(correlation_key=ORDER_KEY)
        )
        e2 = next(row for row in rows if row.dispatch_id == "e-2")

        assert e2.payload_hash == sha256("e-2|2026-02-14T02:00:00.000Z|FAILED")

    def test_status_progression_hash(self, session_factory):
        """Status hash covers send status, provider message id and error."""
        rows = {
            row.dispatch_id: row
            for row in DirectMessageEvidenceSource(session_factory).fetch_evidence_rows(
                EvidenceSourceQuery(correlation_key=ORDER_KEY)
            )
        }

        assert rows["e-1"].status_progression_hash == sha256("SENT|pm-1|")
        assert rows["e-2"].status_progression_hash == sha256("FAILED|pm-2|BOUNCE_550")
        assert rows["e-2"].status_summary == "FAILED"
        assert rows["e-2"].provider_error_code == "BOUNCE_550"

    def test_correlation_refs(self, session_factory):
        rows = {
            row.dispatch_id: row
            for row in DirectMessageEvidenceSource(session_factory).fetch_evidence_rows(
                EvidenceSourceQuery(correlation_key=ORDER_KEY)
            )
        }

        assert rows["e-2"].correlation_refs.to_dict() == {"order_id": "ORD-100", "shipment_id": "SHP-7"}
        assert rows["e-1"].correlation_refs.to_dict() == {"order_id": "ORD-100"}

    def test_other_key_type(self, session_factory):
        """Key types map to their own column."""
        rows = DirectMessageEvidenceSource(session_factory).fetch_evidence_rows(
            EvidenceSourceQuery(correlation_key=CorrelationKey(CorrelationKeyType.SHIPMENT, "SHP-7"))
        )
        assert [row.dispatch_id for row in rows] == ["e-2"]

    def test_date_range(self, session_factory):
        """created_at bounds are inclusive."""
        rows = DirectMessageEvidenceSource(session_factory).fetch_evidence_rows(
            EvidenceSourceQuery(
                correlation_key=ORDER_KEY,
                start_date="2026-02-14T01:00:00.000Z",
                end_date="2026-02-14T01:02:03.000Z",
            )
        )
        assert [row.dispatch_id for row in rows] == ["e-1"]

    def test_unknown_key_returns_nothing(self, session_factory):
        rows = DirectMessageEvidenceSource(session_factory).fetch_evidence_rows(
            EvidenceSourceQuery(correlation_key=CorrelationKey(CorrelationKeyType.ORDER, "ORD-404"))
        )
        assert rows == []

    def test_empty_key_rejected(self, session_factory):
        """An empty key value never reaches the store."""
        with pytest.raises(EvidenceConstructionError):
            DirectMessageEvidenceSource(session_factory).fetch_evidence_rows(
                EvidenceSourceQuery(correlation_key=CorrelationKey(CorrelationKeyType.ORDER, "  "))
            )


class TestChatPlatformSource:
    """Tests for chat_platform_dispatches and status events."""

    def test_rows_newest_first(self, session_factory):
        rows = ChatPlatformEvidenceSource(session_factory).fetch_evidence_rows(
            EvidenceSourceQuery(correlation_key=ORDER_KEY)
        )
        assert [row.dispatch_id for row in rows] == ["w-2", "w-1"]

    def test_status_from_latest_event(self, session_factory):
        """Status summary is the latest event's provider status."""
        rows = {
            row.dispatch_id: row
            for row in ChatPlatformEvidenceSource(session_factory).fetch_evidence_rows(
                EvidenceSourceQuery(correlation_key=ORDER_KEY)
            )
        }
        assert rows["w-1"].status_summary == "DELIVERED"
        assert rows["w-2"].status_summary == "QUEUED"

    def test_status_progression_hash_over_sorted_events(self, session_factory):
        """Event fragments are sorted before hashing."""
        rows = {
            row.dispatch_id: row
            for row in ChatPlatformEvidenceSource(session_factory).fetch_evidence_rows(
                EvidenceSourceQuery(correlation_key=ORDER_KEY)
            )
        }
        expected = sha256("\n".join([
            "2026-02-14T01:30:01.000Z|SEND|SENT|req-1||ev-1",
            "2026-02-14T01:31:00.000Z|DELIVERY|DELIVERED|req-1||ev-2",
        ]))

        assert rows["w-1"].status_progression_hash == expected
        assert rows["w-1"].payload_hash == "b" * 64

    def test_dispatch_without_events(self, session_factory):
        """No status events means no status progression hash."""
        rows = {
            row.dispatch_id: row
            for row in ChatPlatformEvidenceSource(session_factory).fetch_evidence_rows(
                EvidenceSourceQuery(correlation_key=ORDER_KEY)
            )
        }

        assert rows["w-2"].status_progression_hash is None
        assert rows["w-2"].payload_hash == sha256("w-2|2026-02-14T03:00:00.000Z|QUEUED")
        assert rows["w-2"].provider_error_code == "ERR_RATE"

    def test_limit(self, session_factory):
        rows = ChatPlatformEvidenceSource(session_factory).fetch_evidence_rows(
            EvidenceSourceQuery(correlation_key=ORDER_KEY, limit=1)
        )
        assert [row.dispatch_id for row in rows] == ["w-2"]

    def test_event_order_does_not_matter(self):
        first = ChatPlatformStatusEvent("ev-1", "w-1", "SEND", "SENT", None, None, "2026-02-14T01:00:00.000Z")
        second = ChatPlatformStatusEvent("ev-2", "w-1", "DELIVERY", "DELIVERED", None, None, "2026-02-14T01:01:00.000Z")

        assert build_status_progression_hash([first, second]) == build_status_progression_hash([second, first])
        assert build_status_progression_hash([]) is None


class TestLimits:
    """Tests for row limit clamping."""

    def test_default(self):
        assert clamp_limit(None) == settings.source_default_limit

    @pytest.mark.parametrize("requested,expected", [
        (0, 1),
        (-5, 1),
        (10, 10),
        (100000, settings.source_max_limit),
    ])
    def test_clamped(self, requested, expected):
        assert clamp_limit(requested) == expected


class TestRetry:
    """Tests for transient failure handling."""

    def test_transient_failure_retried(self, session_factory):
        """OperationalErrors are retried until the store answers."""
        source = FlakyDirectMessageSource(session_factory, failures=2)
        rows = source.fetch_evidence_rows(EvidenceSourceQuery(correlation_key=ORDER_KEY))

        assert source.calls == 3
        assert [row.dispatch_id for row in rows] == ["e-2", "e-1"]

    def test_persistent_failure_raises_source_error(self, session_factory):
        """Exhausted retries surface as EvidenceSourceError."""
        source = FlakyDirectMessageSource(session_factory, failures=10)

        with pytest.raises(EvidenceSourceError) as exc_info:
            source.fetch_evidence_rows(EvidenceSourceQuery(correlation_key=ORDER_KEY))

        assert source.calls == 3
        assert exc_info.value.channel == Channel.DIRECT_MESSAGE


class TestRegistry:
    """Tests for EvidenceSourceRegistry."""

    def test_fetch_all_channels(self, session_factory):
        """Rows of both channels, in canonical channel order."""
        result = EvidenceSourceRegistry(session_factory=session_factory).fetch(
            EvidenceSourceQuery(correlation_key=ORDER_KEY)
        )

        assert not result.has_adapter_error
        assert result.requested_channels == [Channel.DIRECT_MESSAGE, Channel.CHAT_PLATFORM]
        assert [row.dispatch_id for row in result.all_rows] == ["e-2", "e-1", "w-2", "w-1"]

    def test_channel_subset(self, session_factory):
        result = EvidenceSourceRegistry(session_factory=session_factory).fetch(
            EvidenceSourceQuery(correlation_key=ORDER_KEY),
            channels=["CHAT_PLATFORM"],
        )

        assert list(result.rows) == [Channel.CHAT_PLATFORM]
        assert not result.has_adapter_error

    def test_unregistered_channel_is_an_error(self, session_factory):
        """A channel without a source is recorded, not treated as empty."""
        registry = EvidenceSourceRegistry(sources=[DirectMessageEvidenceSource(session_factory)])
        result = registry.fetch(EvidenceSourceQuery(correlation_key=ORDER_KEY))

        assert result.has_adapter_error
        assert Channel.CHAT_PLATFORM in result.errors
        assert Channel.CHAT_PLATFORM not in result.rows
        assert [row.dispatch_id for row in result.all_rows] == ["e-2", "e-1"]

    def test_unavailable_store_recorded(self, empty_session_factory):
        """Source failures are collected per channel instead of raised."""
        result = EvidenceSourceRegistry(session_factory=empty_session_factory).fetch(
            EvidenceSourceQuery(correlation_key=ORDER_KEY)
        )

        assert result.has_adapter_error
        assert set(result.errors) == {Channel.DIRECT_MESSAGE, Channel.CHAT_PLATFORM}
        assert result.errors[Channel.DIRECT_MESSAGE].startswith("EvidenceSourceError")
        assert result.all_rows == []

    def test_empty_key_raises(self, session_factory):
        """Construction errors are not downgraded to source errors."""
        with pytest.raises(EvidenceConstructionError):
            EvidenceSourceRegistry(session_factory=session_factory).fetch(
                EvidenceSourceQuery(correlation_key=CorrelationKey(CorrelationKeyType.ORDER, ""))
            )


class TestConnection:
    """Tests for check_connection."""

    def test_connection_ok(self, session_factory):
        assert check_connection(session_factory) is True

    def test_connection_failure(self, tmp_path):
        engine = create_engine(f"sqlite:///{tmp_path / 'missing' / 'nested' / 'audit.db'}")
        assert check_connection(sessionmaker(bind=engine)) is False
