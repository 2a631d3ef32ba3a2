# audit_comms/builder.py
"""
Evidence view builder.

Runs one request end to end: fetch -> normalize -> scope label ->
composite hash -> slice -> evidence pack. Every step below the fetch is
pure, so the same source rows always produce the same pack.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional, Union

from .composite import CompositeHashResult, compute_composite_evidence_hash
from .export import EvidencePack, assemble_evidence_pack
from .logging import get_logger
from .models import (
    Channel,
    CorrelationKey,
    SliceType,
    UnifiedEvidenceRow,
    coerce_enum,
    normalize_correlation_key,
)
from .normalize import format_instant, normalize_instant, normalize_unified_evidence_rows
from .scope import ScopeFilters, build_scope_label, normalize_channels, normalize_statuses
from .settings import settings
from .slice import SliceView, render_slice
from .sources import EvidenceSourceQuery, EvidenceSourceRegistry

logger = get_logger(__name__)


@dataclass
class ScopedEvidence:
    """Rows, hash and rendered slice for one scope."""
    rows: List[UnifiedEvidenceRow]
    composite: CompositeHashResult
    view: SliceView
    source_errors: Dict[Channel, str] = field(default_factory=dict)


@dataclass
class EvidenceViewResult:
    """Everything produced for one view/export request."""
    rows: List[UnifiedEvidenceRow]
    composite: CompositeHashResult
    view: SliceView
    pack: EvidencePack
    source_errors: Dict[Channel, str] = field(default_factory=dict)
    export: Optional[ScopedEvidence] = None


class EvidenceViewBuilder:
    """
    Builds slice views and evidence packs from channel sources.
    """

    def __init__(
        self,
        registry: Optional[EvidenceSourceRegistry] = None,
        stale_threshold_seconds: Optional[int] = None,
    ):
        self.registry = registry or EvidenceSourceRegistry()
        if stale_threshold_seconds is None:
            stale_threshold_seconds = settings.stale_threshold_seconds
        self.stale_threshold_seconds = stale_threshold_seconds

    def build(
        self,
        correlation_key: CorrelationKey,
        slice_type: Union[SliceType, str],
        filters: Optional[ScopeFilters] = None,
        generated_at: Optional[str] = None,
        source_generated_at: Optional[str] = None,
        export_filters: Optional[ScopeFilters] = None,
        limit: Optional[int] = None,
    ) -> EvidenceViewResult:
        """
        Build the view and evidence pack for a correlation key.

        Args:
            correlation_key: Entity to gather evidence for
            slice_type: ADMIN or REGULATOR
            filters: Filters for the on-screen view
            generated_at: Render instant (default: now)
            source_generated_at: When the source data was produced
            export_filters: Different filters for export.json, if any
            limit: Per-channel row limit

        Returns:
            EvidenceViewResult

        Raises:
            EvidenceConstructionError: On an empty correlation key value
        """
        correlation_key = normalize_correlation_key(correlation_key, "builder")
        slice_type = coerce_enum(SliceType, slice_type, "builder: slice_type")
        generated_at = normalize_instant(generated_at) or format_instant(datetime.now(timezone.utc))

        scoped = self.build_scope(
            correlation_key, slice_type, filters, generated_at, source_generated_at, limit
        )

        export = None
        if export_filters is not None and export_filters != filters:
            export = self.build_scope(
                correlation_key, slice_type, export_filters, generated_at, source_generated_at, limit
            )

        pack = assemble_evidence_pack(scoped.view, export.view if export else None)

        logger.info(
            "evidence_view_built",
            slice_type=slice_type.value,
            scope_label=scoped.composite.scope_label,
            completeness_label=scoped.composite.completeness_label.value,
            row_count=len(scoped.rows),
            separate_export=export is not None,
        )

        return EvidenceViewResult(
            rows=scoped.rows,
            composite=scoped.composite,
            view=scoped.view,
            pack=pack,
            source_errors=scoped.source_errors,
            export=export,
        )

    def build_scope(
        self,
        correlation_key: CorrelationKey,
        slice_type: SliceType,
        filters: Optional[ScopeFilters],
        generated_at: str,
        source_generated_at: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> ScopedEvidence:
        """Fetch, normalize, hash and render a single scope."""
        filters = filters or ScopeFilters()
        channels = normalize_channels(filters.channels) or list(Channel)

        fetched = self.registry.fetch(
            EvidenceSourceQuery(
                correlation_key=correlation_key,
                start_date=normalize_instant(filters.start_date) or None,
                end_date=normalize_instant(filters.end_date) or None,
                limit=limit,
            ),
            channels=channels,
        )

        rows = normalize_unified_evidence_rows(
            correlation_key, fetched.all_rows, redaction_level=slice_type
        )

        statuses = normalize_statuses(filters.statuses)
        if statuses:
            rows = [row for row in rows if row.status_summary.upper() in statuses]

        scope_label = build_scope_label(correlation_key, slice_type, filters)
        composite = compute_composite_evidence_hash(
            rows,
            scope_label,
            expected_channels=channels,
            has_adapter_error=fetched.has_adapter_error,
        )

        view = render_slice(
            slice_type,
            rows,
            composite,
            generated_at=generated_at,
            source_generated_at=source_generated_at,
            stale_threshold_seconds=self.stale_threshold_seconds,
        )

        return ScopedEvidence(
            rows=rows,
            composite=composite,
            view=view,
            source_errors=dict(fetched.errors),
        )
