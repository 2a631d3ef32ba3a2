# audit_comms/sources/direct_message.py
"""
Direct-message dispatch evidence source.

Table: direct_message_dispatches

A direct message has a single terminal send status, so its status
progression fingerprint is derived from the send status, provider
message id and error together and is always present.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional

from sqlalchemy import text
from sqlalchemy.orm import Session

from ..hashing import compute_sha256
from ..models import CORRELATION_REF_FIELDS, Channel, CorrelationRefs, RawSourceRow
from .base import EvidenceSource, EvidenceSourceQuery, as_text, fallback_payload_hash

DIRECT_MESSAGE_TABLE = "direct_message_dispatches"


@dataclass
class DirectMessageDispatchRecord:
    """A direct_message_dispatches row as stored."""
    dispatch_id: Optional[str]
    created_at: Optional[str]
    rendered_hash: Optional[str]
    send_status: Optional[str]
    error: Optional[str]
    provider_message_id: Optional[str]
    correlation: Dict[str, Any]

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "DirectMessageDispatchRecord":
        return cls(
            dispatch_id=as_text(row["dispatch_id"]),
            created_at=as_text(row["created_at"]),
            rendered_hash=as_text(row["rendered_hash"]),
            send_status=as_text(row["send_status"]),
            error=as_text(row["error"]),
            provider_message_id=as_text(row["provider_message_id"]),
            correlation={name: row[name] for name in CORRELATION_REF_FIELDS},
        )

    def to_source_row(self) -> Optional[RawSourceRow]:
        """RawSourceRow, or None when dispatch_id or created_at is missing."""
        if not self.dispatch_id or not self.created_at:
            return None

        send_status = self.send_status or "UNKNOWN"
        status_progression_hash = compute_sha256(
            f"{send_status}|{self.provider_message_id or ''}|{self.error or ''}"
        )

        return RawSourceRow(
            channel_name=Channel.DIRECT_MESSAGE,
            dispatch_id=self.dispatch_id,
            created_at=self.created_at,
            payload_hash=fallback_payload_hash(self.rendered_hash, self.dispatch_id, self.created_at, send_status),
            status_progression_hash=status_progression_hash,
            status_summary=send_status,
            correlation_refs=CorrelationRefs.from_mapping(self.correlation),
            provider_status=send_status,
            provider_error_code=self.error,
        )


class DirectMessageEvidenceSource(EvidenceSource):
    """Reads direct-message dispatch evidence."""

    channel = Channel.DIRECT_MESSAGE

    def _query(self, session: Session, query: EvidenceSourceQuery) -> List[RawSourceRow]:
        where, params = self.build_filters(query, "d")
        result = session.execute(
            text(f"""
                SELECT d.dispatch_id, d.created_at, d.rendered_hash, d.send_status,
                       d.error, d.provider_message_id,
                       d.order_id, d.shipment_id, d.payment_id,
                       d.compliance_case_id, d.governance_case_id
                FROM {DIRECT_MESSAGE_TABLE} d
                WHERE {where}
                ORDER BY d.created_at DESC, d.dispatch_id ASC
                LIMIT :limit
            """),
            params
        )

        rows = []
        for row in result.mappings():
            source_row = DirectMessageDispatchRecord.from_row(row).to_source_row()
            if source_row is not None:
                rows.append(source_row)
        return rows
