# audit_comms/sources/registry.py
"""
Evidence source registry for coordinating channel sources.

Fetches every requested channel for a correlation key and reports
per-channel failures explicitly. "No rows because nothing happened" and
"no rows because the source could not be asked" must never look the
same, so a failed source is recorded, never silently turned into an
empty list.
"""

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Union

from sqlalchemy.orm import sessionmaker

from ..logging import get_logger
from ..models import CHANNEL_ORDER, Channel, RawSourceRow, normalize_correlation_key
from ..scope import normalize_channels
from ..settings import settings
from .base import EvidenceSource, EvidenceSourceQuery
from .chat_platform import ChatPlatformEvidenceSource
from .direct_message import DirectMessageEvidenceSource

logger = get_logger(__name__)


@dataclass
class EvidenceFetchResult:
    """Combined fetch result for all requested channels."""
    requested_channels: List[Channel]
    rows: Dict[Channel, List[RawSourceRow]] = field(default_factory=dict)
    errors: Dict[Channel, str] = field(default_factory=dict)
    fetched_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def all_rows(self) -> List[RawSourceRow]:
        """Rows of every successful channel, in canonical channel order."""
        combined = []
        for channel in sorted(self.rows, key=CHANNEL_ORDER.__getitem__):
            combined.extend(self.rows[channel])
        return combined

    @property
    def has_adapter_error(self) -> bool:
        return bool(self.errors)


class EvidenceSourceRegistry:
    """
    Coordinates fetches from all channel evidence sources.

    Usage:
        registry = EvidenceSourceRegistry()
        result = registry.fetch(EvidenceSourceQuery(correlation_key=key))
    """

    def __init__(
        self,
        sources: Optional[Iterable[EvidenceSource]] = None,
        session_factory: Optional[sessionmaker] = None,
        timeout: Optional[float] = None,
    ):
        """
        Args:
            sources: Explicit sources (default: one per channel kind)
            session_factory: Session factory for the default sources
            timeout: Per-source wait in seconds (default: settings)
        """
        if sources is None:
            sources = [
                DirectMessageEvidenceSource(session_factory=session_factory),
                ChatPlatformEvidenceSource(session_factory=session_factory),
            ]
        self.sources: Dict[Channel, EvidenceSource] = {source.channel: source for source in sources}
        self.timeout = timeout if timeout is not None else settings.source_timeout_seconds

    def fetch(
        self,
        query: EvidenceSourceQuery,
        channels: Optional[Iterable[Union[Channel, str]]] = None,
    ) -> EvidenceFetchResult:
        """
        Fetch evidence rows from each requested channel in parallel.

        Args:
            query: Correlation key, optional created_at range and limit
            channels: Channels to ask (default: every channel)

        Returns:
            EvidenceFetchResult; failed channels appear in `errors`

        Raises:
            EvidenceConstructionError: If the correlation key value is empty
        """
        # Construction errors propagate; only source failures are recorded
        correlation_key = normalize_correlation_key(query.correlation_key, "registry")
        requested = normalize_channels(channels) or list(Channel)
        result = EvidenceFetchResult(requested_channels=requested)

        # Each source opens its own session, so this is thread-safe.
        futures = {}
        with ThreadPoolExecutor(max_workers=len(requested)) as executor:
            for channel in requested:
                source = self.sources.get(channel)
                if source is None:
                    result.errors[channel] = "No evidence source registered"
                    continue
                futures[channel] = executor.submit(source.fetch_evidence_rows, query)

            for channel, future in futures.items():
                try:
                    result.rows[channel] = future.result(timeout=self.timeout)
                except Exception as e:
                    # Recorded, not raised: the hash engine must see the failure
                    result.errors[channel] = f"{type(e).__name__}: {e}"

        if result.has_adapter_error:
            logger.warning(
                "evidence_fetch_incomplete",
                key_type=correlation_key.key_type.value,
                failed_channels=[channel.value for channel in result.errors],
            )

        return result
