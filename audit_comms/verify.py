# audit_comms/verify.py
"""
Independent composite hash verification.

Recomputes the composite hash from raw unified rows and compares it with
an expected value. MISMATCH is a normal outcome, never an exception.
"""

from dataclasses import dataclass
from typing import Iterable, Optional, Sequence, Union

from .composite import compute_composite_evidence_hash
from .hashing import verify_sha256
from .logging import get_logger
from .models import (
    Channel,
    CompletenessLabel,
    EvidenceConstructionError,
    UnifiedEvidenceRow,
    VerificationStatus,
    coerce_enum,
)

logger = get_logger(__name__)


@dataclass
class VerificationResult:
    """
    Hash comparison plus both completeness labels, so a caller can tell
    a drifted channel expectation apart from a true mismatch.
    """
    status: VerificationStatus
    scope_label: str
    expected_composite_evidence_hash: str
    recomputed_composite_evidence_hash: str
    expected_completeness_label: CompletenessLabel
    recomputed_completeness_label: CompletenessLabel

    @property
    def completeness_matches(self) -> bool:
        return self.expected_completeness_label is self.recomputed_completeness_label


def verify_composite_evidence_hash(
    rows: Sequence[UnifiedEvidenceRow],
    scope_label: str,
    completeness_label: Union[CompletenessLabel, str],
    expected_composite_evidence_hash: str,
    expected_channels: Optional[Iterable[Union[Channel, str]]] = None,
    has_adapter_error: bool = False,
) -> VerificationResult:
    """
    Recompute and compare a composite evidence hash.

    Args:
        rows: Unified evidence rows
        scope_label: Scope label the hash was bound to
        completeness_label: Completeness label recorded with the hash
        expected_composite_evidence_hash: Hash to check (case-insensitive)
        expected_channels: Same channel expectation used at creation time
        has_adapter_error: Same adapter error flag used at creation time

    Returns:
        VerificationResult

    Raises:
        EvidenceConstructionError: If the expected hash or scope label is empty
    """
    expected_hash = (expected_composite_evidence_hash or "").strip().lower()
    if not expected_hash:
        raise EvidenceConstructionError("verify: expected_composite_evidence_hash is required")
    expected_completeness = coerce_enum(CompletenessLabel, completeness_label, "verify: completeness_label")

    recomputed = compute_composite_evidence_hash(
        rows=rows,
        scope_label=scope_label,
        expected_channels=expected_channels,
        has_adapter_error=has_adapter_error,
    )

    if verify_sha256(recomputed.composite_input, expected_hash):
        status = VerificationStatus.MATCH
    else:
        status = VerificationStatus.MISMATCH

    logger.info(
        "composite_hash_verified",
        scope_label=recomputed.scope_label,
        status=status.value,
        expected_completeness_label=expected_completeness.value,
        recomputed_completeness_label=recomputed.completeness_label.value,
    )

    return VerificationResult(
        status=status,
        scope_label=recomputed.scope_label,
        expected_composite_evidence_hash=expected_hash,
        recomputed_composite_evidence_hash=recomputed.composite_evidence_hash,
        expected_completeness_label=expected_completeness,
        recomputed_completeness_label=recomputed.completeness_label,
    )
