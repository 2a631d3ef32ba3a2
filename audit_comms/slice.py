# audit_comms/slice.py
"""
Slice renderer.

Projects unified evidence rows into a consumer-class view:

- REGULATOR: correlation identifiers masked, no provider error detail,
  no completeness diagnostics.
- ADMIN: identifiers in clear, provider error codes reduced to a fixed
  marker, completeness diagnostics attached.

Both are pure projections of the same rows; neither is authored separately.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Union

from .composite import CompositeHashResult
from .hashing import compute_sha256
from .models import (
    CHANNEL_ORDER,
    CORRELATION_REF_FIELDS,
    Channel,
    CompletenessLabel,
    CorrelationRefs,
    SliceType,
    UnifiedEvidenceRow,
    coerce_enum,
)
from .normalize import format_instant, normalize_instant, parse_instant

# Keys that must never appear on a regulator row
REGULATOR_SUPPRESSED_KEYS = (
    "raw_body",
    "template_content",
    "unmasked_identity",
    "provider_payload",
    "secret",
    "token",
    "credential",
    "internal_note",
)

DEFAULT_STALE_THRESHOLD_SECONDS = 300

# Fixed-length so masked output never reveals identifier length
MASK = "****"
MASK_VISIBLE_SUFFIX = 4


def mask_ref(value: Optional[str]) -> Optional[str]:
    """
    Irreversibly mask an identifier, keeping its last 4 characters.

    Identifiers of 4 characters or fewer are masked entirely.
    """
    if not value:
        return None
    if len(value) <= MASK_VISIBLE_SUFFIX:
        return MASK
    return f"{MASK}{value[-MASK_VISIBLE_SUFFIX:]}"


def _masked_refs(refs: CorrelationRefs) -> Dict[str, str]:
    return {
        name: mask_ref(getattr(refs, name))
        for name in CORRELATION_REF_FIELDS
        if getattr(refs, name)
    }


def _base_row(row: UnifiedEvidenceRow, slice_type: SliceType) -> Dict[str, Any]:
    return {
        "channel_name": row.channel_name.value,
        "dispatch_id": row.dispatch_id,
        "created_at": row.created_at,
        "payload_hash": row.payload_hash,
        "status_progression_hash": row.status_progression_hash,
        "status_summary": row.status_summary,
        "completeness_contribution": row.completeness_contribution.value,
        "redaction_level": slice_type.value,
        "provider_status": row.provider_status,
    }


def to_regulator_row(row: UnifiedEvidenceRow) -> Dict[str, Any]:
    rendered = _base_row(row, SliceType.REGULATOR)
    rendered["correlation_key"] = {
        "key_type": row.correlation_key.key_type.value,
        "key_value": mask_ref(row.correlation_key.key_value),
    }
    rendered["correlation_refs"] = _masked_refs(row.correlation_refs)
    return rendered


def to_admin_row(row: UnifiedEvidenceRow) -> Dict[str, Any]:
    rendered = _base_row(row, SliceType.ADMIN)
    rendered["correlation_key"] = {
        "key_type": row.correlation_key.key_type.value,
        "key_value": row.correlation_key.key_value,
    }
    rendered["correlation_refs"] = row.correlation_refs.to_dict()
    rendered["provider_error_code_redacted"] = row.provider_error_code_redacted
    rendered["completeness_diagnostics"] = {
        "missing_status_progression_hash": not row.status_progression_hash,
        "status_summary": row.status_summary,
    }
    return rendered


@dataclass
class PerChannelHashSummary:
    """Channel-scoped digest, checkable without the composite hash."""
    channel_name: Channel
    row_count: int
    payload_hashes: List[str]
    status_progression_hashes: List[str]
    channel_digest_hash: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "channel_name": self.channel_name.value,
            "row_count": self.row_count,
            "payload_hashes": self.payload_hashes,
            "status_progression_hashes": self.status_progression_hashes,
            "channel_digest_hash": self.channel_digest_hash,
        }


def _channel_triple(row: UnifiedEvidenceRow) -> str:
    return f"{row.dispatch_id}|{row.payload_hash}|{row.status_progression_hash or ''}"


def build_per_channel_hash_summary(rows: Sequence[UnifiedEvidenceRow]) -> List[PerChannelHashSummary]:
    """
    One summary per channel present, in canonical channel order.

    Triples are sorted lexically before hashing, independent of display
    order, and the hash lists follow the same sorted order.
    """
    summaries = []
    for channel in sorted({row.channel_name for row in rows}, key=CHANNEL_ORDER.__getitem__):
        channel_rows = sorted(
            (row for row in rows if row.channel_name is channel),
            key=_channel_triple,
        )
        summaries.append(PerChannelHashSummary(
            channel_name=channel,
            row_count=len(channel_rows),
            payload_hashes=[row.payload_hash for row in channel_rows],
            status_progression_hashes=[row.status_progression_hash or "" for row in channel_rows],
            channel_digest_hash=compute_sha256("\n".join(_channel_triple(row) for row in channel_rows)),
        ))
    return summaries


def compute_cache_age_seconds(generated_at: str, source_generated_at: Optional[str] = None) -> int:
    """
    Whole seconds between source generation and render, never negative.

    0 when source_generated_at is absent or either instant is unparseable.
    """
    generated = parse_instant(generated_at)
    source = parse_instant(source_generated_at) if source_generated_at else generated
    if generated is None or source is None:
        return 0
    return max(0, int((generated - source).total_seconds()))


@dataclass
class SliceView:
    """Redacted, consumer-class-specific rendering of unified evidence."""
    slice_type: SliceType
    generated_at: str
    cache_age: int
    scope_label: str
    completeness_label: CompletenessLabel
    composite_evidence_hash: str
    channel_evidence: List[Dict[str, Any]] = field(default_factory=list)
    per_channel_hash_summary: List[PerChannelHashSummary] = field(default_factory=list)
    stale: bool = False
    stale_threshold: int = DEFAULT_STALE_THRESHOLD_SECONDS

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "generated_at": self.generated_at,
            "cache_age": self.cache_age,
            "scope_label": self.scope_label,
            "completeness_label": self.completeness_label.value,
            "composite_evidence_hash": self.composite_evidence_hash,
            "channel_evidence": self.channel_evidence,
            "per_channel_hash_summary": [summary.to_dict() for summary in self.per_channel_hash_summary],
            "stale": self.stale,
            "stale_threshold": self.stale_threshold,
        }


def render_slice(
    slice_type: Union[SliceType, str],
    rows: Sequence[UnifiedEvidenceRow],
    composite: CompositeHashResult,
    generated_at: Optional[str] = None,
    source_generated_at: Optional[str] = None,
    stale_threshold_seconds: Optional[int] = None,
) -> SliceView:
    """
    Render a slice view.

    Args:
        slice_type: ADMIN or REGULATOR
        rows: Unified rows in display order
        composite: Composite hash computed over the same rows
        generated_at: Render instant (defaults to now, UTC)
        source_generated_at: When the source data was produced
        stale_threshold_seconds: Staleness threshold (default 300, minimum 1)

    Returns:
        SliceView
    """
    slice_type = coerce_enum(SliceType, slice_type, "render_slice: slice_type")
    generated_at = normalize_instant(generated_at) or format_instant(datetime.now(timezone.utc))

    if stale_threshold_seconds is None:
        stale_threshold = DEFAULT_STALE_THRESHOLD_SECONDS
    else:
        stale_threshold = max(1, int(stale_threshold_seconds))

    cache_age = compute_cache_age_seconds(generated_at, source_generated_at)

    to_row = to_regulator_row if slice_type is SliceType.REGULATOR else to_admin_row

    return SliceView(
        slice_type=slice_type,
        generated_at=generated_at,
        cache_age=cache_age,
        scope_label=composite.scope_label,
        completeness_label=composite.completeness_label,
        composite_evidence_hash=composite.composite_evidence_hash,
        channel_evidence=[to_row(row) for row in rows],
        per_channel_hash_summary=build_per_channel_hash_summary(rows),
        stale=cache_age > stale_threshold,
        stale_threshold=stale_threshold,
    )
