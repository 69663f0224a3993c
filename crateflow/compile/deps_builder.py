"""Dependencies-only builds backed by the dependency cache."""

from __future__ import annotations

import tempfile
from pathlib import Path

from crateflow.config import BuildConfig
from crateflow.data import (
    LOCK_FILE_NAME,
    CacheKey,
    DependencyCacheEntry,
    ProjectManifest,
    SourceTree,
    parse_lockfile,
)
from crateflow.errors import BuildError, DependencyBuildError, FingerprintMismatchError
from crateflow.logging import get_logger
from crateflow.source import make_dummy_source

from .cache import DependencyCache
from .toolchain import Toolchain

logger = get_logger("DependencyBuilder")


def make_cache_key(manifest: ProjectManifest, config: BuildConfig) -> CacheKey:
    """Build the cache key of a project's dependency graph under a configuration.

    Parameters
    ----------
    manifest : ProjectManifest
        The project; supplies the fingerprint.
    config : BuildConfig
        The configuration; supplies the platform and profile namespace.

    Returns
    -------
    CacheKey
        The key.
    """
    return CacheKey(
        platform=config.platform, profile=config.profile, fingerprint=manifest.fingerprint
    )


class DependencyBuilder:
    """Resolves a project's dependency cache entry, compiling the dependencies on a miss.

    The compilation only ever sees the dummy variant of the source tree (manifests and
    lockfile, with every Rust file stubbed out), so its result depends on the locked
    dependency graph alone and can be reused by every build with the same fingerprint.
    """

    def __init__(self, toolchain: Toolchain, cache: DependencyCache) -> None:
        self._toolchain = toolchain
        self._cache = cache

    @property
    def cache(self) -> DependencyCache:
        return self._cache

    def resolve(
        self, manifest: ProjectManifest, source: SourceTree, config: BuildConfig
    ) -> DependencyCacheEntry:
        """Get the dependency cache entry for a project, building it if needed.

        Parameters
        ----------
        manifest : ProjectManifest
            The project.
        source : SourceTree
            The filtered source snapshot; only its manifests and lockfile are used.
        config : BuildConfig
            The build configuration.

        Returns
        -------
        DependencyCacheEntry
            A committed entry whose fingerprint matches ``manifest``.

        Raises
        ------
        DependencyBuildError
            If compiling the dependencies fails. No entry is committed.
        FingerprintMismatchError
            If the snapshot's lockfile no longer matches ``manifest``, e.g. because
            ``Cargo.lock`` changed after the manifest was loaded.
        """
        snapshot_fingerprint = parse_lockfile(source.path_of(LOCK_FILE_NAME)).fingerprint()
        if snapshot_fingerprint != manifest.fingerprint:
            raise FingerprintMismatchError(
                f"{LOCK_FILE_NAME} of '{manifest.name}' changed since the manifest was loaded "
                f"(fingerprint {snapshot_fingerprint[:12]}, expected "
                f"{manifest.fingerprint[:12]}); reload the project"
            )

        key = make_cache_key(manifest, config)
        packages = [f"{pkg.name}@{pkg.version}" for pkg in manifest.lock.dependencies]

        def build_fn(target_dir: Path) -> None:
            logger.info(
                "Compiling %d dependencies of %s for %s",
                len(packages),
                manifest.name,
                key.namespace,
            )
            with tempfile.TemporaryDirectory(prefix="crateflow-deps-") as tmp:
                dummy = make_dummy_source(source, Path(tmp) / "source")
                try:
                    self._toolchain.build_dependencies(dummy, target_dir, config)
                except DependencyBuildError:
                    raise
                except BuildError as e:
                    raise DependencyBuildError(
                        f"Dependencies of '{manifest.name}' failed to build: {e}"
                    ) from e

        return self._cache.get_or_build(key, manifest.pname, packages, build_fn)
