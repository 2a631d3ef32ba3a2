# audit_comms/scope.py
"""
Deterministic scope labels.

A scope label binds a composite hash to the exact question that was asked:

    correlation=order:ORD-100; slice=ADMIN; time.start=*; time.end=*; channels=*; statuses=*

Semantically equal filters (different ordering, casing or timestamp
formatting) always render the same label.
"""

from dataclasses import dataclass
from typing import Iterable, List, Optional, Union

from .models import (
    CHANNEL_ORDER,
    Channel,
    CorrelationKey,
    SliceType,
    coerce_enum,
    normalize_correlation_key,
    non_empty_string,
)
from .normalize import normalize_instant

WILDCARD = "*"


@dataclass
class ScopeFilters:
    """Optional query filters. None or empty means unconstrained."""
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    channels: Optional[List[Union[Channel, str]]] = None
    statuses: Optional[List[str]] = None


def normalize_channels(channels: Optional[Iterable[Union[Channel, str]]]) -> List[Channel]:
    """Deduplicate channels into canonical order."""
    present = {coerce_enum(Channel, channel, "scope: channels") for channel in channels or []}
    return sorted(present, key=CHANNEL_ORDER.__getitem__)


def normalize_statuses(statuses: Optional[Iterable[str]]) -> List[str]:
    """Trim, uppercase, deduplicate and sort; blanks dropped."""
    cleaned = {status.upper() for status in map(non_empty_string, statuses or []) if status}
    return sorted(cleaned)


def _render_instant(value: Optional[str]) -> str:
    return normalize_instant(value) or WILDCARD


def _render_list(values: List[str]) -> str:
    return ",".join(values) if values else WILDCARD


def build_scope_label(
    correlation_key: CorrelationKey,
    slice_type: Union[SliceType, str],
    filters: Optional[ScopeFilters] = None,
) -> str:
    """
    Build the scope label for a query.

    Args:
        correlation_key: Entity the query is about
        slice_type: ADMIN or REGULATOR
        filters: Optional time range, channel subset and status subset

    Returns:
        Deterministic label string

    Raises:
        EvidenceConstructionError: If correlation_key.key_value is empty
    """
    correlation_key = normalize_correlation_key(correlation_key, "scope")
    slice_type = coerce_enum(SliceType, slice_type, "scope: slice_type")
    filters = filters or ScopeFilters()

    channels = [channel.value for channel in normalize_channels(filters.channels)]
    statuses = normalize_statuses(filters.statuses)

    parts = [
        f"correlation={correlation_key.label}",
        f"slice={slice_type.value}",
        f"time.start={_render_instant(filters.start_date)}",
        f"time.end={_render_instant(filters.end_date)}",
        f"channels={_render_list(channels)}",
        f"statuses={_render_list(statuses)}",
    ]
    return "; ".join(parts)
