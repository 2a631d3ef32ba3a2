# audit_comms/sources/base.py
"""
Shared pieces of the channel evidence sources.

Sources are read-only: they issue parameterized SELECT statements and
nothing else. Transient database failures are retried here, inside the
source; the pure components never retry.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from tenacity import (
    retry,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception_type,
)

from ..db import get_session_factory, session_scope
from ..hashing import compute_sha256, is_sha256_hex
from ..logging import get_source_logger
from ..models import (
    Channel,
    CorrelationKey,
    CorrelationKeyType,
    EvidenceSourceError,
    RawSourceRow,
    normalize_correlation_key,
    non_empty_string,
)
from ..normalize import format_instant
from ..settings import settings

# Retry configuration for transient database errors
DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_WAIT_MIN = 0.2
DEFAULT_WAIT_MAX = 2

# Correlation key type -> column holding that identifier.
# Fixed whitelist: column names are never taken from caller input.
CORRELATION_COLUMNS: Dict[CorrelationKeyType, str] = {
    CorrelationKeyType.ORDER: "order_id",
    CorrelationKeyType.SHIPMENT: "shipment_id",
    CorrelationKeyType.PAYMENT: "payment_id",
    CorrelationKeyType.COMPLIANCE_CASE: "compliance_case_id",
    CorrelationKeyType.GOVERNANCE_CASE: "governance_case_id",
}


@dataclass
class EvidenceSourceQuery:
    """Which evidence to fetch from a channel source."""
    correlation_key: CorrelationKey
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    limit: Optional[int] = None


def clamp_limit(limit: Optional[int]) -> int:
    """Clamp a requested limit into [1, settings.source_max_limit]."""
    value = settings.source_default_limit if limit is None else int(limit)
    return max(1, min(value, settings.source_max_limit))


def as_text(value: Any) -> Optional[str]:
    """
    Column value as trimmed text.

    Drivers that return datetimes get the canonical instant string, so
    fallback hashes do not depend on the driver.
    """
    if isinstance(value, datetime):
        return format_instant(value)
    if value is None:
        return None
    return non_empty_string(str(value))


def fallback_payload_hash(rendered_hash: Optional[str], dispatch_id: str, created_at: str, status: str) -> str:
    """
    Stored rendered hash when it is a well-formed SHA-256, else a
    fingerprint of the dispatch identity.
    """
    if rendered_hash and is_sha256_hex(rendered_hash):
        return rendered_hash.lower()
    return compute_sha256(f"{dispatch_id}|{created_at}|{status}")


class EvidenceSource:
    """
    Base class for a channel evidence source.

    Subclasses set `channel` and implement `_query`, which receives an
    open session and returns RawSourceRows.
    """

    channel: Channel

    def __init__(self, session_factory: Optional[sessionmaker] = None):
        self._session_factory = session_factory
        self.logger = get_source_logger(self.channel.value)

    @property
    def session_factory(self) -> sessionmaker:
        return self._session_factory or get_session_factory()

    def fetch_evidence_rows(self, query: EvidenceSourceQuery) -> List[RawSourceRow]:
        """
        Fetch raw evidence rows for a correlation key.

        Args:
            query: Correlation key, optional created_at range and limit

        Returns:
            RawSourceRows, newest first

        Raises:
            EvidenceConstructionError: If the correlation key value is empty
            EvidenceSourceError: If the store cannot be queried after retries
        """
        correlation_key = normalize_correlation_key(query.correlation_key, f"source.{self.channel.value}")
        query = EvidenceSourceQuery(
            correlation_key=correlation_key,
            start_date=non_empty_string(query.start_date),
            end_date=non_empty_string(query.end_date),
            limit=clamp_limit(query.limit),
        )

        try:
            rows = self._fetch_with_retry(query)
        except SQLAlchemyError as e:
            self.logger.error(
                "evidence_source_failed",
                key_type=correlation_key.key_type.value,
                error_type=type(e).__name__,
            )
            raise EvidenceSourceError(self.channel, str(e)) from e

        self.logger.info(
            "evidence_rows_fetched",
            key_type=correlation_key.key_type.value,
            count=len(rows),
        )
        return rows

    @retry(
        stop=stop_after_attempt(DEFAULT_MAX_ATTEMPTS),
        wait=wait_exponential(
            multiplier=DEFAULT_WAIT_MIN,
            min=DEFAULT_WAIT_MIN,
            max=DEFAULT_WAIT_MAX
        ),
        retry=retry_if_exception_type(OperationalError),
        reraise=True,  # Re-raise the last exception after retries exhausted
    )
    def _fetch_with_retry(self, query: EvidenceSourceQuery) -> List[RawSourceRow]:
        with session_scope(self.session_factory) as session:
            return self._query(session, query)

    def _query(self, session: Session, query: EvidenceSourceQuery) -> List[RawSourceRow]:
        raise NotImplementedError

    @staticmethod
    def build_filters(query: EvidenceSourceQuery, table_alias: str):
        """
        WHERE clause and parameters for correlation key and created_at range.

        Returns:
            (where_sql, params)
        """
        column = CORRELATION_COLUMNS[query.correlation_key.key_type]
        clauses = [f"{table_alias}.{column} = :key_value"]
        params: Dict[str, Any] = {
            "key_value": query.correlation_key.key_value,
            "limit": query.limit,
        }

        if query.start_date:
            clauses.append(f"{table_alias}.created_at >= :start_date")
            params["start_date"] = query.start_date
        if query.end_date:
            clauses.append(f"{table_alias}.created_at <= :end_date")
            params["end_date"] = query.end_date

        return " AND ".join(clauses), params
