# audit_comms/composite.py
"""
Composite evidence hash engine.

Two stages:
1. One fragment per row: channel|dispatch_id|payload_hash|status_progression_hash
2. SHA-256 over  scope_label + "||" + sorted fragments joined by newline

Fragments are sorted here, independently of the normalizer's display
order. A single added, removed or modified row changes the composite hash,
and the offending fragment can be found by diffing row_fragments.
"""

from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Sequence, Set, Union

from .hashing import compute_sha256
from .logging import get_logger
from .models import (
    Channel,
    CompletenessLabel,
    EvidenceConstructionError,
    UnifiedEvidenceRow,
)
from .scope import normalize_channels

logger = get_logger(__name__)

MISSING_STATUS_HASH_PLACEHOLDER = "MISSING_STATUS_HASH"
COMPOSITE_SEPARATOR = "||"


@dataclass
class CompositeHashResult:
    """Composite hash plus completeness classification."""
    scope_label: str
    completeness_label: CompletenessLabel
    composite_evidence_hash: str
    placeholder_used: bool
    missing_channels: List[Channel] = field(default_factory=list)

    # Diagnostics for investigating a mismatch
    row_fragments: List[str] = field(default_factory=list)
    composite_input: str = ""


def normalize_scope_label(scope_label: str) -> str:
    """
    Raises:
        EvidenceConstructionError: If scope_label is empty
    """
    normalized = (scope_label or "").strip()
    if not normalized:
        raise EvidenceConstructionError("composite_hash: scope_label is required")
    return normalized


def normalize_expected_channels(
    expected_channels: Optional[Iterable[Union[Channel, str]]],
) -> List[Channel]:
    """Default is every channel; canonical order, no duplicates."""
    channels = normalize_channels(expected_channels)
    return channels or list(Channel)


def build_row_fragment(row: UnifiedEvidenceRow) -> str:
    status_progression_hash = (row.status_progression_hash or "").strip() or MISSING_STATUS_HASH_PLACEHOLDER
    return "|".join([
        row.channel_name.value.lower(),
        row.dispatch_id.strip(),
        row.payload_hash.strip(),
        status_progression_hash,
    ])


def derive_completeness_label(
    row_count: int,
    expected_channels: List[Channel],
    present_channels: Set[Channel],
    placeholder_used: bool,
    has_adapter_error: bool = False,
):
    """
    Classify completeness.

    UNKNOWN: an adapter failed, or there are no rows at all
    PARTIAL: an expected channel is absent, or a placeholder was used
    FULL: otherwise

    Returns:
        (completeness_label, missing_channels)
    """
    if has_adapter_error:
        return CompletenessLabel.UNKNOWN, []

    missing_channels = [channel for channel in expected_channels if channel not in present_channels]

    if row_count == 0:
        return CompletenessLabel.UNKNOWN, missing_channels

    if missing_channels or placeholder_used:
        return CompletenessLabel.PARTIAL, missing_channels

    return CompletenessLabel.FULL, missing_channels


def compute_composite_evidence_hash(
    rows: Sequence[UnifiedEvidenceRow],
    scope_label: str,
    expected_channels: Optional[Iterable[Union[Channel, str]]] = None,
    has_adapter_error: bool = False,
) -> CompositeHashResult:
    """
    Compute the composite evidence hash for a scope.

    Args:
        rows: Unified evidence rows (any order)
        scope_label: Label from build_scope_label
        expected_channels: Channels that should have contributed rows
        has_adapter_error: True when a channel source failed to answer

    Returns:
        CompositeHashResult

    Raises:
        EvidenceConstructionError: If scope_label is empty
    """
    scope_label = normalize_scope_label(scope_label)
    expected = normalize_expected_channels(expected_channels)

    fragments = sorted(build_row_fragment(row) for row in rows)
    placeholder_used = any(
        not (row.status_progression_hash or "").strip() for row in rows
    )
    present_channels = {row.channel_name for row in rows}

    completeness_label, missing_channels = derive_completeness_label(
        row_count=len(rows),
        expected_channels=expected,
        present_channels=present_channels,
        placeholder_used=placeholder_used,
        has_adapter_error=has_adapter_error,
    )

    composite_input = f"{scope_label}{COMPOSITE_SEPARATOR}" + "\n".join(fragments)
    composite_evidence_hash = compute_sha256(composite_input)

    logger.debug(
        "composite_hash_computed",
        scope_label=scope_label,
        row_count=len(rows),
        completeness_label=completeness_label.value,
        placeholder_used=placeholder_used,
        missing_channels=[channel.value for channel in missing_channels],
    )

    return CompositeHashResult(
        scope_label=scope_label,
        completeness_label=completeness_label,
        composite_evidence_hash=composite_evidence_hash,
        placeholder_used=placeholder_used,
        missing_channels=missing_channels,
        row_fragments=fragments,
        composite_input=composite_input,
    )
