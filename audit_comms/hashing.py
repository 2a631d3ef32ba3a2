# audit_comms/hashing.py
"""
SHA-256 helpers and canonical JSON serialization.

Every digest in this package (composite hash, channel digests, artifact
and manifest digests) goes through compute_sha256 so encoding is fixed
to UTF-8 and output to lowercase hex.
"""

import hashlib
import json
import re
from typing import Any, Union

SHA256_HEX_PATTERN = re.compile(r'^[a-f0-9]{64}$', re.IGNORECASE)


def compute_sha256(data: Union[bytes, str]) -> str:
    """
    Compute SHA-256 hash of data.

    Args:
        data: Raw bytes or string to hash

    Returns:
        Lowercase hex string of SHA-256 hash (64 characters)
    """
    if isinstance(data, str):
        data = data.encode('utf-8')
    return hashlib.sha256(data).hexdigest().lower()


def verify_sha256(data: Union[bytes, str], expected_hash: str) -> bool:
    """
    Verify that data matches expected SHA-256 hash.

    Comparison is case-insensitive.
    """
    actual = compute_sha256(data)
    return actual == expected_hash.strip().lower()


def is_sha256_hex(value: str) -> bool:
    """True if value is exactly 64 hex characters."""
    return bool(SHA256_HEX_PATTERN.match(value))


def canonical_json(value: Any) -> str:
    """
    Serialize value canonically.

    Object keys are sorted at every nesting level, arrays keep their
    element order, separators are compact and non-ASCII characters are
    written as-is. Two equal documents always serialize to the same bytes.
    """
    return json.dumps(value, sort_keys=True, separators=(',', ':'), ensure_ascii=False)


def byte_length(content: str) -> int:
    """Length of content in UTF-8 bytes."""
    return len(content.encode('utf-8'))
