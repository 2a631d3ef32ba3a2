# Channel evidence sources - read-only adapters per channel kind
from .base import EvidenceSource, EvidenceSourceQuery, CORRELATION_COLUMNS, clamp_limit
from .direct_message import DirectMessageEvidenceSource, DirectMessageDispatchRecord
from .chat_platform import (
    ChatPlatformEvidenceSource,
    ChatPlatformDispatchRecord,
    ChatPlatformStatusEvent,
)
from .registry import EvidenceSourceRegistry, EvidenceFetchResult

__all__ = [
    "EvidenceSource",
    "EvidenceSourceQuery",
    "CORRELATION_COLUMNS",
    "clamp_limit",
    "DirectMessageEvidenceSource",
    "DirectMessageDispatchRecord",
    "ChatPlatformEvidenceSource",
    "ChatPlatformDispatchRecord",
    "ChatPlatformStatusEvent",
    "EvidenceSourceRegistry",
    "EvidenceFetchResult",
]
