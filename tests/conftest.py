# tests/conftest.py
"""
Pytest configuration and fixtures.

Source tests run against a throwaway SQLite file seeded with both channel
tables, so no external database is needed. Each test gets a fresh file.
"""

import pytest

from sqlalchemy import create_engine, text
from sqlalchemy.orm import sessionmaker

from audit_comms.models import (
    Channel,
    CorrelationKey,
    CorrelationKeyType,
    CorrelationRefs,
    RawSourceRow,
)


ORDER_KEY = CorrelationKey(CorrelationKeyType.ORDER, "ORD-100")
GENERATED_AT = "2026-02-14T13:05:00.000Z"


def fixture_rows():
    """Three raw rows over both channels; e-0 has no status progression hash."""
    return [
        RawSourceRow(
            channel_name=Channel.CHAT_PLATFORM,
            dispatch_id="w-2",
            created_at="2026-02-14T01:02:03.000Z",
            payload_hash="b" * 64,
            status_progression_hash="c" * 64,
            status_summary="DELIVERED",
            correlation_refs=CorrelationRefs(order_id="ORD-100"),
            provider_status="DELIVERED",
            provider_error_code="ERR_RATE_LIMIT",
        ),
        RawSourceRow(
            channel_name=Channel.DIRECT_MESSAGE,
            dispatch_id="e-1",
            created_at="2026-02-14T01:02:03.000Z",
            payload_hash="a" * 64,
            status_progression_hash="d" * 64,
            status_summary="SENT",
            correlation_refs=CorrelationRefs(order_id="ORD-100", payment_id="PAY-55501"),
            provider_status="SENT",
        ),
        RawSourceRow(
            channel_name=Channel.DIRECT_MESSAGE,
            dispatch_id="e-0",
            created_at="2026-02-14T00:00:00.000Z",
            payload_hash="e" * 64,
            status_progression_hash=None,
            status_summary="QUEUED",
            correlation_refs=CorrelationRefs(order_id="ORD-100"),
            provider_status="QUEUED",
        ),
    ]


def complete_rows():
    """One fully evidenced row per channel (the two-row scenario)."""
    return [row for row in fixture_rows() if row.dispatch_id in ("e-1", "w-2")]


@pytest.fixture
def order_key() -> CorrelationKey:
    return ORDER_KEY


@pytest.fixture
def raw_rows():
    return fixture_rows()


# ============================================================
# SQLITE EVIDENCE STORE
# ============================================================

SCHEMA = [
    """
    CREATE TABLE direct_message_dispatches (
        dispatch_id TEXT,
        created_at TEXT,
        rendered_hash TEXT,
        send_status TEXT,
        error TEXT,
        provider_message_id TEXT,
        order_id TEXT,
        shipment_id TEXT,
        payment_id TEXT,
        compliance_case_id TEXT,
        governance_case_id TEXT
    )
    """,
    """
    CREATE TABLE chat_platform_dispatches (
        dispatch_id TEXT,
        created_at TEXT,
        rendered_payload_hash TEXT,
        provider_status TEXT,
        provider_error_code TEXT,
        order_id TEXT,
        shipment_id TEXT,
        payment_id TEXT,
        compliance_case_id TEXT,
        governance_case_id TEXT
    )
    """,
    """
    CREATE TABLE chat_platform_status_events (
        status_event_id TEXT,
        dispatch_id TEXT,
        event_type TEXT,
        provider_status TEXT,
        provider_request_id TEXT,
        provider_error_code TEXT,
        created_at TEXT
    )
    """,
]

DIRECT_MESSAGE_SEED = [
    {"dispatch_id": "e-1", "created_at": "2026-02-14T01:02:03.000Z", "rendered_hash": "A" * 64,
     "send_status": "SENT", "error": None, "provider_message_id": "pm-1",
     "order_id": "ORD-100", "shipment_id": None},
    {"dispatch_id": "e-2", "created_at": "2026-02-14T02:00:00.000Z", "rendered_hash": "not-a-hash",
     "send_status": "FAILED", "error": "BOUNCE_550", "provider_message_id": "pm-2",
     "order_id": "ORD-100", "shipment_id": "SHP-7"},
    {"dispatch_id": "", "created_at": "2026-02-14T02:30:00.000Z", "rendered_hash": None,
     "send_status": "SENT", "error": None, "provider_message_id": None,
     "order_id": "ORD-100", "shipment_id": None},
    {"dispatch_id": "e-9", "created_at": "2026-02-14T02:00:00.000Z", "rendered_hash": None,
     "send_status": "SENT", "error": None, "provider_message_id": None,
     "order_id": "ORD-999", "shipment_id": None},
]

CHAT_DISPATCH_SEED = [
    {"dispatch_id": "w-1", "created_at": "2026-02-14T01:30:00.000Z", "rendered_payload_hash": "b" * 64,
     "provider_status": "SENT", "provider_error_code": None, "order_id": "ORD-100"},
    {"dispatch_id": "w-2", "created_at": "2026-02-14T03:00:00.000Z", "rendered_payload_hash": None,
     "provider_status": "QUEUED", "provider_error_code": "ERR_RATE", "order_id": "ORD-100"},
]

CHAT_EVENT_SEED = [
    {"status_event_id": "ev-2", "dispatch_id": "w-1", "event_type": "DELIVERY", "provider_status": "DELIVERED",
     "provider_request_id": "req-1", "provider_error_code": None, "created_at": "2026-02-14T01:31:00.000Z"},
    {"status_event_id": "ev-1", "dispatch_id": "w-1", "event_type": "SEND", "provider_status": "SENT",
     "provider_request_id": "req-1", "provider_error_code": None, "created_at": "2026-02-14T01:30:01.000Z"},
]


@pytest.fixture
def evidence_engine(tmp_path):
    """SQLite file engine seeded with both channel tables."""
    engine = create_engine(f"sqlite:///{tmp_path / 'audit_comms.db'}")

    with engine.begin() as conn:
        for statement in SCHEMA:
            conn.execute(text(statement))
        conn.execute(
            text("""
                INSERT INTO direct_message_dispatches
                    (dispatch_id, created_at, rendered_hash, send_status, error,
                     provider_message_id, order_id, shipment_id)
                VALUES (:dispatch_id, :created_at, :rendered_hash, :send_status, :error,
                        :provider_message_id, :order_id, :shipment_id)
            """),
            DIRECT_MESSAGE_SEED,
        )
        conn.execute(
            text("""
                INSERT INTO chat_platform_dispatches
                    (dispatch_id, created_at, rendered_payload_hash, provider_status,
                     provider_error_code, order_id)
                VALUES (:dispatch_id, :created_at, :rendered_payload_hash, :provider_status,
                        :provider_error_code, :order_id)
            """),
            CHAT_DISPATCH_SEED,
        )
        conn.execute(
            text("""
                INSERT INTO chat_platform_status_events
                    (status_event_id, dispatch_id, event_type, provider_status,
                     provider_request_id, provider_error_code, created_at)
                VALUES (:status_event_id, :dispatch_id, :event_type, :provider_status,
                        :provider_request_id, :provider_error_code, :created_at)
            """),
            CHAT_EVENT_SEED,
        )

    yield engine

    engine.dispose()


@pytest.fixture
def session_factory(evidence_engine) -> sessionmaker:
    return sessionmaker(bind=evidence_engine, autoflush=False)
