"""Final package builds against a dependency cache entry."""

from __future__ import annotations

import os
import shutil
import tempfile
import uuid
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Iterator, Optional

from crateflow.config import BuildConfig
from crateflow.data import BuiltArtifact, DependencyCacheEntry, ProjectManifest, SourceTree
from crateflow.errors import BuildError, FingerprintMismatchError, SourceBuildError
from crateflow.logging import get_logger

from .toolchain import Toolchain
from .utils import copy_target_dir

logger = get_logger("PackageBuilder")

PostInstallHook = Callable[[BuiltArtifact], None]
"""Called with the staged artifact before it is moved into place."""


def verify_cache_entry(
    entry: DependencyCacheEntry, manifest: ProjectManifest, config: BuildConfig
) -> None:
    """Check that a cache entry was built for this manifest's dependency graph.

    Parameters
    ----------
    entry : DependencyCacheEntry
        The entry about to be used.
    manifest : ProjectManifest
        The project being built.
    config : BuildConfig
        The configuration; its platform and profile must match the entry's namespace.

    Raises
    ------
    FingerprintMismatchError
        If the fingerprint, platform or profile differ.
    """
    if entry.key.fingerprint != manifest.fingerprint:
        raise FingerprintMismatchError(
            f"Cache entry {entry.key} was built for fingerprint {entry.key.fingerprint[:12]}, "
            f"but '{manifest.name}' locks fingerprint {manifest.fingerprint[:12]}"
        )
    if entry.key.platform != config.platform or entry.key.profile != config.profile:
        raise FingerprintMismatchError(
            f"Cache entry {entry.key} belongs to namespace {entry.key.namespace}, "
            f"not {config.platform}/{config.profile}"
        )


@contextmanager
def scratch_target_dir(entry: DependencyCacheEntry) -> Iterator[Path]:
    """Yield a private, writable copy of a cache entry's target directory.

    The copy is removed on exit. The cache entry itself is never written to.
    """
    with tempfile.TemporaryDirectory(prefix="crateflow-target-") as tmp:
        yield copy_target_dir(entry.target_dir, Path(tmp) / "target")


class PackageBuilder:
    """Builds the project's own source against a dependency cache entry.

    The output is installed to ``<project>/<out_dir>/bin/<name>``. Installation goes through a
    staging directory that replaces the previous output only once it is complete.
    """

    def __init__(self, toolchain: Toolchain) -> None:
        self._toolchain = toolchain

    def build(
        self,
        source: SourceTree,
        manifest: ProjectManifest,
        entry: DependencyCacheEntry,
        config: BuildConfig,
        out_dir: Optional[Path] = None,
        post_install: Optional[PostInstallHook] = None,
    ) -> BuiltArtifact:
        """Build and install the package.

        Parameters
        ----------
        source : SourceTree
            The filtered source snapshot.
        manifest : ProjectManifest
            The project.
        entry : DependencyCacheEntry
            The dependency cache entry to build against.
        config : BuildConfig
            The build configuration.
        out_dir : Optional[Path]
            Output directory. Defaults to ``<project root>/<config.out_dir>``.
        post_install : Optional[PostInstallHook]
            Hook run on the staged output, e.g. to write the launch wrapper.

        Returns
        -------
        BuiltArtifact
            The installed artifact.

        Raises
        ------
        FingerprintMismatchError
            If ``entry`` does not match the manifest and configuration.
        SourceBuildError
            If the project fails to compile.
        """
        verify_cache_entry(entry, manifest, config)
        out_dir = Path(out_dir) if out_dir is not None else manifest.root / config.out_dir

        logger.info("Building %s %s against %s", manifest.name, manifest.version, entry.key)
        with scratch_target_dir(entry) as target_dir:
            try:
                binary = self._toolchain.build_package(
                    source.root, target_dir, manifest.name, config
                )
            except BuildError as e:
                raise SourceBuildError(f"'{manifest.name}' failed to build: {e}") from e
            artifact = self._install(
                binary, manifest, entry, config, out_dir, source.digest, post_install
            )

        logger.info("Installed %s", artifact.executable)
        return artifact

    def _install(
        self,
        binary: Path,
        manifest: ProjectManifest,
        entry: DependencyCacheEntry,
        config: BuildConfig,
        out_dir: Path,
        source_digest: str,
        post_install: Optional[PostInstallHook],
    ) -> BuiltArtifact:
        out_dir.parent.mkdir(parents=True, exist_ok=True)
        staging = out_dir.with_name(f".{out_dir.name}.tmp-{uuid.uuid4().hex}")
        fields = dict(
            name=manifest.name,
            version=manifest.version,
            fingerprint=entry.key.fingerprint,
            platform=config.platform,
            profile=config.profile,
            source_digest=source_digest,
        )
        try:
            staged = BuiltArtifact(out_dir=staging, **fields)
            staged.executable.parent.mkdir(parents=True)
            shutil.copy2(binary, staged.executable)
            staged.executable.chmod(0o755)
            if post_install is not None:
                post_install(staged)
            self._swap(staging, out_dir)
        except BaseException:
            shutil.rmtree(staging, ignore_errors=True)
            raise
        return BuiltArtifact(out_dir=out_dir, **fields)

    @staticmethod
    def _swap(staging: Path, out_dir: Path) -> None:
        if not out_dir.exists():
            os.replace(staging, out_dir)
            return
        old = out_dir.with_name(f".{out_dir.name}.old-{uuid.uuid4().hex}")
        os.replace(out_dir, old)
        os.replace(staging, out_dir)
        shutil.rmtree(old, ignore_errors=True)
