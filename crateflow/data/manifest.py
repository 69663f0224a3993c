"""Project manifest and locked dependency graph.

The project identity (name and version) and the locked dependency graph are derived once, at
the start of a pipeline invocation, by :func:`load_project_manifest`. Every downstream
component receives the resulting :class:`ProjectManifest` instead of reading ``Cargo.toml``
again.
"""

from __future__ import annotations

import hashlib
import json
import tomllib
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import Field, ValidationError, model_validator

from crateflow.errors import ManifestError

from .utils import BaseModelWithDocstrings, NonEmptyString

MANIFEST_FILE_NAME = "Cargo.toml"
"""The project manifest file, relative to the project root."""

LOCK_FILE_NAME = "Cargo.lock"
"""The lockfile holding the resolved dependency graph, relative to the project root."""


class LockedPackage(BaseModelWithDocstrings):
    """A single resolved package from the lockfile."""

    name: NonEmptyString
    """The package name as published (e.g. 'serde')."""
    version: NonEmptyString
    """The exact resolved version (e.g. '1.0.210')."""
    source: Optional[str] = Field(default=None)
    """Where the package comes from (e.g. 'registry+https://github.com/rust-lang/crates.io-index').
    Absent for workspace members, which are part of the project source."""
    checksum: Optional[str] = Field(default=None)
    """The content hash of the package archive, if the source provides one."""
    dependencies: List[str] = Field(default_factory=list)
    """Names (optionally with versions) of the packages this one depends on."""

    @property
    def is_local(self) -> bool:
        """Whether the package is a workspace member rather than an external dependency."""
        return self.source is None


class LockedGraph(BaseModelWithDocstrings):
    """The fully resolved dependency graph of the project."""

    version: int = Field(default=3)
    """The lockfile format version."""
    packages: List[LockedPackage] = Field(default_factory=list)
    """Every package in the graph, including workspace members."""

    @property
    def dependencies(self) -> List[LockedPackage]:
        """The external packages, sorted by name and version."""
        deps = [pkg for pkg in self.packages if not pkg.is_local]
        return sorted(deps, key=lambda p: (p.name, p.version, p.source or ""))

    def fingerprint(self) -> str:
        """Compute the cache fingerprint of the graph.

        The fingerprint is the SHA-256 of the canonical JSON encoding of the sorted
        ``(name, version, source, checksum)`` tuples of all external packages. It never
        depends on project source, workspace member versions or the order of packages in the
        lockfile.

        Returns
        -------
        str
            A 64-character lowercase hex digest.
        """
        canonical = [[p.name, p.version, p.source, p.checksum] for p in self.dependencies]
        payload = json.dumps(canonical, separators=(",", ":"), sort_keys=True)
        return hashlib.sha256(payload.encode("utf-8")).hexdigest()


class ProjectManifest(BaseModelWithDocstrings):
    """The identity of the package being built plus its locked dependency graph."""

    name: NonEmptyString
    """The package name. The built executable is named after it."""
    version: NonEmptyString
    """The package version."""
    lock: LockedGraph
    """The locked dependency graph read from the lockfile."""
    manifest_path: Path
    """Absolute path of the manifest the identity was derived from."""
    metadata: Dict[str, Any] = Field(default_factory=dict)
    """The ``[package.metadata.crateflow]`` table, used as a configuration layer."""

    @model_validator(mode="after")
    def _validate_name(self) -> "ProjectManifest":
        """Reject names that cannot be used as a file name.

        Raises
        ------
        ValueError
            If the name contains a path separator.
        """
        if "/" in self.name or "\\" in self.name:
            raise ValueError(f"Invalid package name '{self.name}'")
        return self

    @property
    def fingerprint(self) -> str:
        """The fingerprint of the locked dependency graph."""
        return self.lock.fingerprint()

    @property
    def pname(self) -> str:
        """Name of the dependencies-only build, e.g. ``demo-deps``."""
        return f"{self.name}-deps"

    @property
    def root(self) -> Path:
        """The project root directory."""
        return self.manifest_path.parent


def _read_toml(path: Path) -> Dict[str, Any]:
    try:
        with open(path, "rb") as f:
            return tomllib.load(f)
    except FileNotFoundError as e:
        raise ManifestError(f"{path.name} not found at {path}") from e
    except tomllib.TOMLDecodeError as e:
        raise ManifestError(f"Malformed {path.name}: {e}") from e


def _resolve_version(manifest: Dict[str, Any], package: Dict[str, Any]) -> str:
    version = package.get("version")
    if isinstance(version, dict) and version.get("workspace") is True:
        version = manifest.get("workspace", {}).get("package", {}).get("version")
    if version is None:
        # Cargo treats a missing version as 0.0.0 since 1.75
        return "0.0.0"
    if not isinstance(version, str):
        raise ManifestError(f"Invalid package version: {version!r}")
    return version


def parse_lockfile(path: Path) -> LockedGraph:
    """Parse a Cargo lockfile into a :class:`LockedGraph`.

    Parameters
    ----------
    path : Path
        Path of the ``Cargo.lock`` file.

    Returns
    -------
    LockedGraph
        The parsed graph.

    Raises
    ------
    ManifestError
        If the lockfile is missing or malformed.
    """
    data = _read_toml(path)
    try:
        return LockedGraph(version=data.get("version", 1), packages=data.get("package", []))
    except ValidationError as e:
        raise ManifestError(f"Malformed {path.name}: {e}") from e


def load_project_manifest(root: Path) -> ProjectManifest:
    """Derive the project identity and locked dependency graph from a project root.

    Parameters
    ----------
    root : Path
        The project root containing ``Cargo.toml`` and ``Cargo.lock``.

    Returns
    -------
    ProjectManifest
        The manifest every later pipeline stage works from.

    Raises
    ------
    ManifestError
        If either file is missing, malformed, the manifest has no ``[package]`` name, or its
        ``[package.metadata.crateflow]`` entry is not a table.
    """
    root = Path(root).resolve()
    manifest_path = root / MANIFEST_FILE_NAME
    data = _read_toml(manifest_path)

    package = data.get("package")
    if not isinstance(package, dict) or not package.get("name"):
        raise ManifestError(f"{manifest_path} has no [package] name")

    lock = parse_lockfile(root / LOCK_FILE_NAME)
    package_metadata = package.get("metadata", {})
    if not isinstance(package_metadata, dict):
        raise ManifestError(f"{manifest_path}: [package.metadata] must be a table")
    metadata = package_metadata.get("crateflow", {})
    if not isinstance(metadata, dict):
        raise ManifestError(f"{manifest_path}: [package.metadata.crateflow] must be a table")
    try:
        return ProjectManifest(
            name=package["name"],
            version=_resolve_version(data, package),
            lock=lock,
            manifest_path=manifest_path,
            metadata=metadata,
        )
    except ValidationError as e:
        raise ManifestError(f"Invalid manifest {manifest_path}: {e}") from e
