# audit_comms/export.py
"""
Evidence pack assembly and manifest integrity verification.

A pack holds three canonical JSON artifacts:
- view.json:     the rendered slice
- export.json:   the export variant (same as view unless given)
- manifest.json: digests of the two above plus the view's hash context

manifest_hash is the SHA-256 of manifest.json and travels alongside it,
not inside it, so the manifest's own integrity is checkable.
"""

import json
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional

from .hashing import byte_length, canonical_json, compute_sha256, verify_sha256
from .logging import get_logger
from .slice import SliceView

logger = get_logger(__name__)

MANIFEST_VERSION = "audit-comms-export-manifest.v1"

VIEW_ARTIFACT = "view.json"
EXPORT_ARTIFACT = "export.json"
MANIFEST_ARTIFACT = "manifest.json"
MANIFEST_HASH_FILE = "manifest.sha256"


@dataclass(frozen=True)
class ArtifactDigest:
    """Digest of one serialized artifact."""
    name: str
    sha256: str
    byte_length: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "sha256": self.sha256,
            "byte_length": self.byte_length,
        }


def artifact_digest(name: str, content: str) -> ArtifactDigest:
    return ArtifactDigest(name=name, sha256=compute_sha256(content), byte_length=byte_length(content))


@dataclass(frozen=True)
class EvidencePack:
    """
    Export bundle. Immutable; a new export is a new pack.
    """
    generated_at: str
    scope_label: str
    completeness_label: str
    composite_evidence_hash: str
    artifacts: Mapping[str, str]
    artifact_digests: List[ArtifactDigest]
    manifest_hash: str

    def __post_init__(self):
        object.__setattr__(self, "artifacts", MappingProxyType(dict(self.artifacts)))

    def write_to(self, directory: Path) -> List[Path]:
        """
        Write the artifacts and manifest hash into directory.

        Args:
            directory: Target directory (created if missing)

        Returns:
            Paths written, in artifact name order
        """
        directory = Path(directory)
        directory.mkdir(parents=True, exist_ok=True)

        written = []
        for name in sorted(self.artifacts):
            path = directory / name
            path.write_bytes(self.artifacts[name].encode('utf-8'))
            written.append(path)

        hash_path = directory / MANIFEST_HASH_FILE
        hash_path.write_bytes(f"{self.manifest_hash}\n".encode('utf-8'))
        written.append(hash_path)

        return written


def build_manifest(view: SliceView, digests: List[ArtifactDigest]) -> Dict[str, Any]:
    return {
        "manifest_version": MANIFEST_VERSION,
        "generated_at": view.generated_at,
        "scope_label": view.scope_label,
        "completeness_label": view.completeness_label.value,
        "composite_evidence_hash": view.composite_evidence_hash,
        "artifacts": [digest.to_dict() for digest in digests],
    }


def assemble_evidence_pack(view: SliceView, export_view: Optional[SliceView] = None) -> EvidencePack:
    """
    Serialize a slice into an evidence pack.

    Args:
        view: Rendered slice shown on screen
        export_view: Export variant; defaults to view

    Returns:
        EvidencePack
    """
    export_view = export_view or view

    view_json = canonical_json(view.to_dict())
    export_json = canonical_json(export_view.to_dict())

    digests = sorted(
        [
            artifact_digest(VIEW_ARTIFACT, view_json),
            artifact_digest(EXPORT_ARTIFACT, export_json),
        ],
        key=lambda digest: digest.name,
    )

    manifest_json = canonical_json(build_manifest(view, digests))
    manifest_hash = compute_sha256(manifest_json)

    logger.info(
        "evidence_pack_assembled",
        scope_label=view.scope_label,
        completeness_label=view.completeness_label.value,
        manifest_hash=manifest_hash,
    )

    return EvidencePack(
        generated_at=view.generated_at,
        scope_label=view.scope_label,
        completeness_label=view.completeness_label.value,
        composite_evidence_hash=view.composite_evidence_hash,
        artifacts={
            VIEW_ARTIFACT: view_json,
            EXPORT_ARTIFACT: export_json,
            MANIFEST_ARTIFACT: manifest_json,
        },
        artifact_digests=digests,
        manifest_hash=manifest_hash,
    )


@dataclass
class ArtifactCheck:
    """Per-artifact integrity comparison."""
    name: str
    expected_sha256: str
    actual_sha256: str
    expected_byte_length: int
    actual_byte_length: int

    @property
    def hash_match(self) -> bool:
        return self.expected_sha256 == self.actual_sha256

    @property
    def byte_match(self) -> bool:
        return self.expected_byte_length == self.actual_byte_length


@dataclass
class ManifestIntegrityResult:
    """Outcome of verify_evidence_pack_manifest_integrity."""
    manifest_hash_matches: bool
    artifact_hash_matches: bool
    artifact_byte_matches: bool
    details: List[ArtifactCheck] = field(default_factory=list)

    @property
    def valid(self) -> bool:
        return self.manifest_hash_matches and self.artifact_hash_matches and self.artifact_byte_matches


def verify_evidence_pack_manifest_integrity(pack: EvidencePack) -> ManifestIntegrityResult:
    """
    Recompute every digest in a pack and compare against its manifest.

    Tampering is reported, not raised: a pack whose manifest cannot be
    parsed, or whose artifacts or manifest hash drifted, is invalid.
    """
    manifest_json = pack.artifacts.get(MANIFEST_ARTIFACT, "")
    manifest_hash_matches = verify_sha256(manifest_json, pack.manifest_hash)

    details = []
    try:
        for artifact in json.loads(manifest_json)["artifacts"]:
            content = pack.artifacts.get(artifact["name"], "")
            details.append(ArtifactCheck(
                name=artifact["name"],
                expected_sha256=artifact["sha256"],
                actual_sha256=compute_sha256(content),
                expected_byte_length=artifact["byte_length"],
                actual_byte_length=byte_length(content),
            ))
    except (json.JSONDecodeError, KeyError, TypeError):
        logger.warning("evidence_pack_manifest_unreadable", scope_label=pack.scope_label)
        return ManifestIntegrityResult(
            manifest_hash_matches=manifest_hash_matches,
            artifact_hash_matches=False,
            artifact_byte_matches=False,
        )

    result = ManifestIntegrityResult(
        manifest_hash_matches=manifest_hash_matches,
        artifact_hash_matches=bool(details) and all(check.hash_match for check in details),
        artifact_byte_matches=bool(details) and all(check.byte_match for check in details),
        details=details,
    )

    if not result.valid:
        logger.warning(
            "evidence_pack_integrity_failed",
            scope_label=pack.scope_label,
            manifest_hash_matches=result.manifest_hash_matches,
            artifact_hash_matches=result.artifact_hash_matches,
            artifact_byte_matches=result.artifact_byte_matches,
        )

    return result
