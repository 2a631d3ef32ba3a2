# Audit comms evidence - unified evidence, composite hashing, slices and packs
from .models import (
    AuditCommsError,
    EvidenceConstructionError,
    EvidenceSourceError,
    Channel,
    CorrelationKeyType,
    CorrelationKey,
    CorrelationRefs,
    SliceType,
    CompletenessLabel,
    VerificationStatus,
    RawSourceRow,
    UnifiedEvidenceRow,
)
from .normalize import normalize_unified_evidence_rows, deterministic_order_signature
from .scope import ScopeFilters, build_scope_label
from .composite import (
    CompositeHashResult,
    MISSING_STATUS_HASH_PLACEHOLDER,
    compute_composite_evidence_hash,
)
from .slice import SliceView, REGULATOR_SUPPRESSED_KEYS, render_slice
from .export import (
    EvidencePack,
    ManifestIntegrityResult,
    assemble_evidence_pack,
    verify_evidence_pack_manifest_integrity,
)
from .verify import VerificationResult, verify_composite_evidence_hash
from .builder import EvidenceViewBuilder, EvidenceViewResult

__all__ = [
    "AuditCommsError",
    "EvidenceConstructionError",
    "EvidenceSourceError",
    "Channel",
    "CorrelationKeyType",
    "CorrelationKey",
    "CorrelationRefs",
    "SliceType",
    "CompletenessLabel",
    "VerificationStatus",
    "RawSourceRow",
    "UnifiedEvidenceRow",
    "normalize_unified_evidence_rows",
    "deterministic_order_signature",
    "ScopeFilters",
    "build_scope_label",
    "CompositeHashResult",
    "MISSING_STATUS_HASH_PLACEHOLDER",
    "compute_composite_evidence_hash",
    "SliceView",
    "REGULATOR_SUPPRESSED_KEYS",
    "render_slice",
    "EvidencePack",
    "ManifestIntegrityResult",
    "assemble_evidence_pack",
    "verify_evidence_pack_manifest_integrity",
    "VerificationResult",
    "verify_composite_evidence_hash",
    "EvidenceViewBuilder",
    "EvidenceViewResult",
]
