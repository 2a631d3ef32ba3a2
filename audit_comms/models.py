# audit_comms/models.py
"""
Audit communications evidence models.

Raw source rows are produced by the channel adapters. Everything past the
normalizer works on UnifiedEvidenceRow only - channel-specific storage
shapes never leave the adapters.
"""

from enum import Enum
from typing import Any, Dict, Optional, Type, TypeVar
from dataclasses import dataclass, field


class AuditCommsError(Exception):
    """Base exception for audit comms evidence errors."""
    pass


class EvidenceConstructionError(AuditCommsError, ValueError):
    """
    Raised when an identity or required field is missing or malformed.

    Never defaulted: a guessed identity would silently corrupt a hash
    that downstream parties trust.
    """
    pass


class EvidenceSourceError(AuditCommsError):
    """Raised when a channel evidence source cannot be queried."""

    def __init__(self, channel: "Channel", message: str):
        self.channel = channel
        super().__init__(f"{channel.value}: {message}")


class Channel(Enum):
    """
    Dispatch channel kinds.

    Declaration order is the canonical channel order.
    """
    DIRECT_MESSAGE = "DIRECT_MESSAGE"
    CHAT_PLATFORM = "CHAT_PLATFORM"


CHANNEL_ORDER: Dict[Channel, int] = {
    Channel.DIRECT_MESSAGE: 0,
    Channel.CHAT_PLATFORM: 1,
}


class CorrelationKeyType(Enum):
    """Business entity types evidence can be correlated to."""
    ORDER = "order"
    SHIPMENT = "shipment"
    PAYMENT = "payment"
    COMPLIANCE_CASE = "complianceCase"
    GOVERNANCE_CASE = "governanceCase"


class SliceType(Enum):
    """Consumer classes a slice can be rendered for."""
    ADMIN = "ADMIN"
    REGULATOR = "REGULATOR"


class CompletenessLabel(Enum):
    """Whether all expected evidence was present and well-formed."""
    FULL = "FULL"
    PARTIAL = "PARTIAL"
    UNKNOWN = "UNKNOWN"


class VerificationStatus(Enum):
    MATCH = "MATCH"
    MISMATCH = "MISMATCH"


E = TypeVar("E", bound=Enum)


def coerce_enum(enum_type: Type[E], value: Any, field_name: str) -> E:
    """
    Accept an enum member or its raw value.

    Raises:
        EvidenceConstructionError: If value is not a member of enum_type
    """
    if isinstance(value, enum_type):
        return value
    try:
        return enum_type(value)
    except ValueError:
        raise EvidenceConstructionError(
            f"{field_name}: unsupported value {value!r}"
        ) from None


def non_empty_string(value: Any) -> Optional[str]:
    """Trimmed string, or None for non-strings and blanks."""
    normalized = value.strip() if isinstance(value, str) else ""
    return normalized or None


@dataclass(frozen=True)
class CorrelationKey:
    """Typed identity of the business entity evidence is about."""
    key_type: CorrelationKeyType
    key_value: str

    @property
    def label(self) -> str:
        return f"{self.key_type.value}:{self.key_value}"


def normalize_correlation_key(key: CorrelationKey, context: str) -> CorrelationKey:
    """
    Validate and trim a correlation key.

    Args:
        key: Correlation key (key_type may be an enum member or raw value)
        context: Caller name used in the error message

    Raises:
        EvidenceConstructionError: If key_value is empty
    """
    key_type = coerce_enum(CorrelationKeyType, key.key_type, f"{context}: correlation_key.key_type")
    key_value = non_empty_string(key.key_value)
    if not key_value:
        raise EvidenceConstructionError(f"{context}: correlation_key.key_value is required")
    return CorrelationKey(key_type=key_type, key_value=key_value)


CORRELATION_REF_FIELDS = (
    "order_id",
    "shipment_id",
    "payment_id",
    "compliance_case_id",
    "governance_case_id",
)


@dataclass(frozen=True)
class CorrelationRefs:
    """Optional secondary IDs for cross-linking."""
    order_id: Optional[str] = None
    shipment_id: Optional[str] = None
    payment_id: Optional[str] = None
    compliance_case_id: Optional[str] = None
    governance_case_id: Optional[str] = None

    @classmethod
    def from_mapping(cls, mapping: Optional[Dict[str, Any]]) -> "CorrelationRefs":
        """Build refs from a column/field mapping, dropping blanks."""
        if not mapping:
            return cls()
        return cls(**{
            name: non_empty_string(mapping.get(name))
            for name in CORRELATION_REF_FIELDS
        })

    def to_dict(self) -> Dict[str, str]:
        """Present refs only, so absent refs never serialize."""
        return {
            name: getattr(self, name)
            for name in CORRELATION_REF_FIELDS
            if getattr(self, name)
        }


@dataclass
class RawSourceRow:
    """
    Per-channel dispatch/status record as returned by an evidence source.

    Owned by the channel adapters; never mutated by this package.
    """
    channel_name: Channel
    dispatch_id: str
    created_at: str
    payload_hash: str
    status_progression_hash: Optional[str] = None
    status_summary: str = "UNKNOWN"
    correlation_refs: CorrelationRefs = field(default_factory=CorrelationRefs)
    provider_status: Optional[str] = None
    provider_error_code: Optional[str] = None  # raw; reduced to a marker by the normalizer


@dataclass(frozen=True)
class UnifiedEvidenceRow:
    """
    Canonical evidence row.

    completeness_contribution is FULL when a status-progression
    fingerprint is present, PARTIAL otherwise.
    """
    correlation_key: CorrelationKey
    channel_name: Channel
    dispatch_id: str
    created_at: str
    payload_hash: str
    status_progression_hash: Optional[str]
    status_summary: str
    completeness_contribution: CompletenessLabel
    redaction_level: SliceType
    correlation_refs: CorrelationRefs = field(default_factory=CorrelationRefs)
    provider_status: Optional[str] = None
    provider_error_code_redacted: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "correlation_key": {
                "key_type": self.correlation_key.key_type.value,
                "key_value": self.correlation_key.key_value,
            },
            "channel_name": self.channel_name.value,
            "dispatch_id": self.dispatch_id,
            "created_at": self.created_at,
            "payload_hash": self.payload_hash,
            "status_progression_hash": self.status_progression_hash,
            "status_summary": self.status_summary,
            "completeness_contribution": self.completeness_contribution.value,
            "redaction_level": self.redaction_level.value,
            "correlation_refs": self.correlation_refs.to_dict(),
            "provider_status": self.provider_status,
            "provider_error_code_redacted": self.provider_error_code_redacted,
        }
