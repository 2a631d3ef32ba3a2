# audit_comms/normalize.py
"""
Unified evidence normalizer.

Collapses per-channel raw source rows into one canonical row shape.

Display ordering is defined HERE and only here:
    (correlation key, channel order, created_at, dispatch_id)

The composite hash does not rely on this order - it re-sorts its own
fragments - so changing display order never changes a hash.
"""

from datetime import datetime, timezone
from typing import Iterable, List, Optional, Union

from .hashing import canonical_json
from .models import (
    CHANNEL_ORDER,
    Channel,
    CompletenessLabel,
    CorrelationKey,
    EvidenceConstructionError,
    RawSourceRow,
    SliceType,
    UnifiedEvidenceRow,
    coerce_enum,
    normalize_correlation_key,
    non_empty_string,
)

PROVIDER_ERROR_REDACTED = "REDACTED"


def parse_instant(value: Union[str, datetime, None]) -> Optional[datetime]:
    """
    Parse a timestamp into an aware UTC datetime.

    Naive values are taken as UTC.

    Returns:
        datetime, or None if value is empty or unparseable
    """
    if isinstance(value, datetime):
        parsed = value
    else:
        text = (value or "").strip()
        if not text:
            return None
        try:
            parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    try:
        return parsed.astimezone(timezone.utc)
    except OverflowError:
        return None


def format_instant(value: datetime) -> str:
    """Render as YYYY-MM-DDTHH:MM:SS.mmmZ (UTC, millisecond precision)."""
    value = value.astimezone(timezone.utc)
    return f"{value:%Y-%m-%dT%H:%M:%S}.{value.microsecond // 1000:03d}Z"


def normalize_instant(value: Union[str, datetime, None]) -> str:
    """
    Canonical instant string.

    Unparseable input is returned verbatim (trimmed) so malformed upstream
    timestamps stay visible instead of being dropped or zeroed.
    """
    parsed = parse_instant(value)
    if parsed is None:
        return (value or "").strip() if isinstance(value, str) else ""
    return format_instant(parsed)


def derive_completeness_contribution(status_progression_hash: Optional[str]) -> CompletenessLabel:
    """PARTIAL when the row carries no status progression fingerprint."""
    if not status_progression_hash:
        return CompletenessLabel.PARTIAL
    return CompletenessLabel.FULL


def display_sort_key(row: UnifiedEvidenceRow):
    """Sort key for the canonical display order."""
    return (
        row.correlation_key.label,
        CHANNEL_ORDER[row.channel_name],
        row.created_at,
        row.dispatch_id,
        # rows sharing a dispatch_id still resolve identically
        canonical_json(row.to_dict()),
    )


def _to_unified_row(
    row: RawSourceRow,
    correlation_key: CorrelationKey,
    redaction_level: SliceType,
) -> UnifiedEvidenceRow:
    dispatch_id = non_empty_string(row.dispatch_id)
    if not dispatch_id:
        raise EvidenceConstructionError("normalize: dispatch_id is required")

    channel_name = coerce_enum(Channel, row.channel_name, "normalize: channel_name")
    status_progression_hash = non_empty_string(row.status_progression_hash)

    return UnifiedEvidenceRow(
        correlation_key=correlation_key,
        channel_name=channel_name,
        dispatch_id=dispatch_id,
        created_at=normalize_instant(row.created_at),
        payload_hash=(row.payload_hash or "").strip(),
        status_progression_hash=status_progression_hash,
        status_summary=non_empty_string(row.status_summary) or "UNKNOWN",
        completeness_contribution=derive_completeness_contribution(status_progression_hash),
        redaction_level=redaction_level,
        correlation_refs=row.correlation_refs,
        provider_status=non_empty_string(row.provider_status),
        provider_error_code_redacted=PROVIDER_ERROR_REDACTED if non_empty_string(row.provider_error_code) else None,
    )


def normalize_unified_evidence_rows(
    correlation_key: CorrelationKey,
    rows: Iterable[RawSourceRow],
    redaction_level: Union[SliceType, str] = SliceType.ADMIN,
) -> List[UnifiedEvidenceRow]:
    """
    Normalize raw source rows into the canonical ordered sequence.

    Args:
        correlation_key: Entity the rows were fetched for
        rows: Raw source rows from one or more channels, any order
        redaction_level: Redaction marker stamped on every row

    Returns:
        Unified rows in display order. The same input multiset always
        yields an identical sequence.

    Raises:
        EvidenceConstructionError: On an empty key value or dispatch_id
    """
    correlation_key = normalize_correlation_key(correlation_key, "normalize")
    redaction_level = coerce_enum(SliceType, redaction_level, "normalize: redaction_level")

    unified = [_to_unified_row(row, correlation_key, redaction_level) for row in rows]
    return sorted(unified, key=display_sort_key)


def deterministic_order_signature(rows: Iterable[UnifiedEvidenceRow]) -> str:
    """One line per row: <type>:<value>|<channel>|<created_at>|<dispatch_id>."""
    return "\n".join(
        f"{row.correlation_key.label}|{row.channel_name.value}|{row.created_at}|{row.dispatch_id}"
        for row in rows
    )
