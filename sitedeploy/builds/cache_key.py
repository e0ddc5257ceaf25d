"""Cache key computation for dependency sets.

This module handles:
- Reading a dependency manifest (package.json) from a staged tree
- Normalizing dependency name/version pairs (order-independent)
- Deterministic hash computation over the normalized pairs

Two manifests that declare the same dependencies in any order map to the
same key, and therefore to the same dependency cache entry.
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any

from sitedeploy.errors import BuildError

# Schema version for cache key format; bump when cache key format changes
CACHE_KEY_SCHEMA_VERSION = "1"

# Manifest sections that contribute to the installed dependency set
DEPENDENCY_SECTIONS = ("dependencies", "devDependencies")

MANIFEST_FILENAME = "package.json"


@dataclass
class DependencyInputs:
    """Canonical representation of a dependency set.

    Attributes:
        schema_version: Version of cache key schema.
        dependencies: Sorted [name, version] pairs per manifest section.
    """

    schema_version: str = CACHE_KEY_SCHEMA_VERSION
    dependencies: dict[str, list[list[str]]] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return asdict(self)


def normalize_dependencies(manifest: dict[str, Any]) -> DependencyInputs:
    """Extract and sort dependency pairs from a manifest.

    Args:
        manifest: Parsed package.json content.

    Returns:
        DependencyInputs with sorted pairs for each non-empty section.

    Raises:
        BuildError: If a dependency section is not a name -> version mapping.
    """
    sections: dict[str, list[list[str]]] = {}
    for section in DEPENDENCY_SECTIONS:
        value = manifest.get(section) or {}
        if not isinstance(value, dict):
            raise BuildError(
                f"Invalid {section} in {MANIFEST_FILENAME}: expected an object",
                code="invalid_manifest",
            )
        if value:
            sections[section] = sorted([str(k), str(v)] for k, v in value.items())
    return DependencyInputs(dependencies=sections)


def dependency_manifest(manifest: dict[str, Any]) -> dict[str, Any]:
    """Return the subset of a manifest needed to install its dependencies."""
    inputs = normalize_dependencies(manifest)
    result: dict[str, Any] = {"name": "sitedeploy-dependency-cache", "private": True}
    for section, pairs in inputs.dependencies.items():
        result[section] = dict(pairs)
    return result


def compute_manifest_key(manifest: dict[str, Any]) -> str:
    """Compute a cache key for a manifest's dependency set.

    The key is the SHA-256 of the canonical JSON of the normalized inputs.

    Args:
        manifest: Parsed package.json content.

    Returns:
        Hex digest usable as a directory name.
    """
    inputs = normalize_dependencies(manifest)
    canonical_json = json.dumps(
        inputs.to_dict(),
        sort_keys=True,
        separators=(",", ":"),
    )
    return hashlib.sha256(canonical_json.encode("utf-8")).hexdigest()


def load_manifest(source_dir: Path) -> dict[str, Any]:
    """Read and parse the manifest of a staged tree.

    Raises:
        BuildError: If the manifest is missing or not a JSON object.
    """
    path = source_dir / MANIFEST_FILENAME
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError as e:
        raise BuildError(
            f"{MANIFEST_FILENAME} not found in staged tree", code="missing_manifest"
        ) from e
    except json.JSONDecodeError as e:
        raise BuildError(
            f"Invalid {MANIFEST_FILENAME}: {e}", code="invalid_manifest"
        ) from e
    if not isinstance(data, dict):
        raise BuildError(
            f"Invalid {MANIFEST_FILENAME}: expected an object", code="invalid_manifest"
        )
    return data


__all__ = [
    "CACHE_KEY_SCHEMA_VERSION",
    "DEPENDENCY_SECTIONS",
    "MANIFEST_FILENAME",
    "DependencyInputs",
    "compute_manifest_key",
    "dependency_manifest",
    "load_manifest",
    "normalize_dependencies",
]
