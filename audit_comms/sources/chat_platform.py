# audit_comms/sources/chat_platform.py
"""
Chat-platform dispatch evidence source.

Tables:
- chat_platform_dispatches: one row per dispatch
- chat_platform_status_events: provider status history per dispatch

The status progression fingerprint covers the whole event history and is
absent while a dispatch has no events yet.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence

from sqlalchemy import bindparam, text
from sqlalchemy.orm import Session

from ..hashing import compute_sha256
from ..models import CORRELATION_REF_FIELDS, Channel, CorrelationRefs, RawSourceRow
from .base import EvidenceSource, EvidenceSourceQuery, as_text, fallback_payload_hash

CHAT_DISPATCH_TABLE = "chat_platform_dispatches"
CHAT_STATUS_TABLE = "chat_platform_status_events"


@dataclass
class ChatPlatformStatusEvent:
    """A chat_platform_status_events row as stored."""
    status_event_id: Optional[str]
    dispatch_id: Optional[str]
    event_type: Optional[str]
    provider_status: Optional[str]
    provider_request_id: Optional[str]
    provider_error_code: Optional[str]
    created_at: Optional[str]

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "ChatPlatformStatusEvent":
        return cls(**{name: as_text(row[name]) for name in (
            "status_event_id",
            "dispatch_id",
            "event_type",
            "provider_status",
            "provider_request_id",
            "provider_error_code",
            "created_at",
        )})

    @property
    def fragment(self) -> str:
        return "|".join([
            self.created_at or "",
            self.event_type or "",
            self.provider_status or "",
            self.provider_request_id or "",
            self.provider_error_code or "",
            self.status_event_id or "",
        ])


def build_status_progression_hash(events: Sequence[ChatPlatformStatusEvent]) -> Optional[str]:
    """SHA-256 over sorted event fragments; None without events."""
    if not events:
        return None
    return compute_sha256("\n".join(sorted(event.fragment for event in events)))


def latest_status(events: Sequence[ChatPlatformStatusEvent], fallback: str) -> str:
    """Provider status of the latest event (created_at, then status_event_id)."""
    ordered = sorted(events, key=lambda event: (event.created_at or "", event.status_event_id or ""))
    if ordered and ordered[-1].provider_status:
        return ordered[-1].provider_status
    return fallback


@dataclass
class ChatPlatformDispatchRecord:
    """A chat_platform_dispatches row as stored, with its status events."""
    dispatch_id: Optional[str]
    created_at: Optional[str]
    rendered_payload_hash: Optional[str]
    provider_status: Optional[str]
    provider_error_code: Optional[str]
    correlation: Dict[str, Any]
    status_events: List[ChatPlatformStatusEvent] = field(default_factory=list)

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "ChatPlatformDispatchRecord":
        return cls(
            dispatch_id=as_text(row["dispatch_id"]),
            created_at=as_text(row["created_at"]),
            rendered_payload_hash=as_text(row["rendered_payload_hash"]),
            provider_status=as_text(row["provider_status"]),
            provider_error_code=as_text(row["provider_error_code"]),
            correlation={name: row[name] for name in CORRELATION_REF_FIELDS},
        )

    def to_source_row(self) -> Optional[RawSourceRow]:
        """RawSourceRow, or None when dispatch_id or created_at is missing."""
        if not self.dispatch_id or not self.created_at:
            return None

        provider_status = latest_status(self.status_events, self.provider_status or "UNKNOWN")

        return RawSourceRow(
            channel_name=Channel.CHAT_PLATFORM,
            dispatch_id=self.dispatch_id,
            created_at=self.created_at,
            payload_hash=fallback_payload_hash(
                self.rendered_payload_hash, self.dispatch_id, self.created_at, provider_status
            ),
            status_progression_hash=build_status_progression_hash(self.status_events),
            status_summary=provider_status,
            correlation_refs=CorrelationRefs.from_mapping(self.correlation),
            provider_status=provider_status,
            provider_error_code=self.provider_error_code,
        )


class ChatPlatformEvidenceSource(EvidenceSource):
    """Reads chat-platform dispatch evidence and status history."""

    channel = Channel.CHAT_PLATFORM

    def _query(self, session: Session, query: EvidenceSourceQuery) -> List[RawSourceRow]:
        where, params = self.build_filters(query, "c")
        result = session.execute(
            text(f"""
                SELECT c.dispatch_id, c.created_at, c.rendered_payload_hash,
                       c.provider_status, c.provider_error_code,
                       c.order_id, c.shipment_id, c.payment_id,
                       c.compliance_case_id, c.governance_case_id
                FROM {CHAT_DISPATCH_TABLE} c
                WHERE {where}
                ORDER BY c.created_at DESC, c.dispatch_id ASC
                LIMIT :limit
            """),
            params
        )
        dispatches = [ChatPlatformDispatchRecord.from_row(row) for row in result.mappings()]

        events_by_dispatch = self._load_status_events(
            session,
            [record.dispatch_id for record in dispatches if record.dispatch_id],
        )

        rows = []
        for record in dispatches:
            record.status_events = events_by_dispatch.get(record.dispatch_id, [])
            source_row = record.to_source_row()
            if source_row is not None:
                rows.append(source_row)
        return rows

    def _load_status_events(
        self,
        session: Session,
        dispatch_ids: List[str],
    ) -> Dict[str, List[ChatPlatformStatusEvent]]:
        """Status events grouped by dispatch_id."""
        if not dispatch_ids:
            return {}

        statement = text(f"""
            SELECT status_event_id, dispatch_id, event_type, provider_status,
                   provider_request_id, provider_error_code, created_at
            FROM {CHAT_STATUS_TABLE}
            WHERE dispatch_id IN :dispatch_ids
            ORDER BY created_at ASC, status_event_id ASC
        """).bindparams(bindparam("dispatch_ids", expanding=True))

        grouped: Dict[str, List[ChatPlatformStatusEvent]] = {}
        for row in session.execute(statement, {"dispatch_ids": dispatch_ids}).mappings():
            event = ChatPlatformStatusEvent.from_row(row)
            if not event.dispatch_id:
                continue
            grouped.setdefault(event.dispatch_id, []).append(event)
        return grouped
