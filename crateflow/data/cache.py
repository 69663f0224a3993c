"""Records describing dependency cache entries."""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import List

from pydantic import Field

from .utils import FrozenModelWithDocstrings, HexDigest, NonEmptyString, PathComponent


class CacheKey(FrozenModelWithDocstrings):
    """Key of a dependency cache entry.

    The fingerprint identifies the dependency graph; platform and profile select the
    namespace. Entries are never shared across namespaces.
    """

    platform: PathComponent
    """The platform identifier the dependencies were compiled for (e.g. 'x86_64-linux')."""
    profile: PathComponent
    """The build profile (e.g. 'release')."""
    fingerprint: HexDigest
    """The fingerprint of the locked dependency graph."""

    @property
    def namespace(self) -> str:
        """The cache namespace, ``<platform>/<profile>``."""
        return f"{self.platform}/{self.profile}"

    @property
    def directory_name(self) -> str:
        """Directory name of the entry inside its namespace."""
        return self.fingerprint

    def __str__(self) -> str:
        return f"{self.namespace}/{self.fingerprint[:12]}"


class DependencyCacheEntry(FrozenModelWithDocstrings):
    """A committed, immutable dependencies-only build."""

    key: CacheKey
    """The key this entry was built for."""
    pname: NonEmptyString
    """Name of the dependencies-only build (e.g. 'demo-deps')."""
    path: Path
    """Root directory of the entry."""
    packages: List[str] = Field(default_factory=list)
    """The ``name@version`` of every dependency compiled into the entry."""
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    """When the entry was committed."""

    @property
    def target_dir(self) -> Path:
        """The compiled dependency outputs, laid out as a cargo target directory."""
        return self.path / "target"
