"""The build pipeline behind the ``build``, ``check``, ``run`` and ``develop`` commands.

A :class:`Pipeline` derives the project manifest and the build configuration once, when it
is created, and hands the same objects to every stage it runs.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Mapping, Optional, Sequence

from crateflow.check import VerificationRunner
from crateflow.compile import (
    DependencyBuilder,
    DependencyCache,
    LocalDependencyCache,
    PackageBuilder,
    Toolchain,
    ToolchainRegistry,
    make_cache_key,
)
from crateflow.config import BuildConfig, env_config_layer, merge_build_config
from crateflow.data import (
    CacheKey,
    CheckReport,
    DependencyCacheEntry,
    EnvironmentVariableSet,
    ProjectManifest,
    SourceTree,
    WrappedArtifact,
    load_project_manifest,
)
from crateflow.errors import LaunchError
from crateflow.logging import get_logger
from crateflow.source import extract_source
from crateflow.wrap import derive_environment, launch, load_wrapped_artifact, wrap_artifact
from crateflow.workspace import Workspace, enter_workspace, provision_workspace

logger = get_logger("Pipeline")


class Pipeline:
    """Orchestrates the build stages of one project.

    Parameters
    ----------
    project_root : Path
        The directory holding ``Cargo.toml`` and ``Cargo.lock``.
    overrides : Optional[Mapping[str, Any]]
        The highest-precedence configuration layer, typically from the command line.
    toolchain : Optional[Toolchain]
        The compiler service. Defaults to the registry's choice for the project.
    cache : Optional[DependencyCache]
        The dependency cache. Defaults to the shared on-disk cache.

    Examples
    --------
    >>> pipeline = Pipeline(Path("."))
    >>> wrapped = pipeline.build()
    >>> report = pipeline.check()
    >>> exit_code = pipeline.run(["--help"])
    """

    def __init__(
        self,
        project_root: Path,
        overrides: Optional[Mapping[str, Any]] = None,
        toolchain: Optional[Toolchain] = None,
        cache: Optional[DependencyCache] = None,
    ) -> None:
        self._root = Path(project_root).resolve()
        self.manifest: ProjectManifest = load_project_manifest(self._root)
        self.config: BuildConfig = merge_build_config(
            self.manifest.metadata, env_config_layer(), overrides
        )
        self.cache = cache if cache is not None else LocalDependencyCache()
        self._toolchain = toolchain

    @property
    def root(self) -> Path:
        return self._root

    @property
    def toolchain(self) -> Toolchain:
        """The compiler service, selected on first use."""
        if self._toolchain is None:
            self._toolchain = ToolchainRegistry.get_instance().select(self.manifest)
        return self._toolchain

    @property
    def out_dir(self) -> Path:
        return self._root / self.config.out_dir

    @property
    def cache_key(self) -> CacheKey:
        return make_cache_key(self.manifest, self.config)

    def runtime_environment(self) -> EnvironmentVariableSet:
        """The variables set before every invocation of the built executable."""
        return derive_environment(self.config.runtime_inputs, self.config.platform)

    def _extract(self):
        return extract_source(self._root, self.config.source_include)

    def resolve_dependencies(self, source: SourceTree) -> DependencyCacheEntry:
        builder = DependencyBuilder(self.toolchain, self.cache)
        return builder.resolve(self.manifest, source, self.config)

    def build(self) -> WrappedArtifact:
        """Build, install and wrap the package.

        Returns
        -------
        WrappedArtifact
            The installed executable and its launch environment.
        """
        environment = self.runtime_environment()
        with self._extract() as source:
            entry = self.resolve_dependencies(source)
            artifact = PackageBuilder(self.toolchain).build(
                source,
                self.manifest,
                entry,
                self.config,
                out_dir=self.out_dir,
                post_install=lambda staged: wrap_artifact(staged, environment),
            )
        return WrappedArtifact(artifact=artifact, environment=environment)

    def check(self, names: Optional[Sequence[str]] = None) -> CheckReport:
        """Run the declared checks, or the named ones, against the dependency cache."""
        with self._extract() as source:
            entry = self.resolve_dependencies(source)
            return VerificationRunner(self.toolchain).run(
                source, self.manifest, entry, self.config, names
            )

    def _up_to_date(self) -> Optional[WrappedArtifact]:
        try:
            wrapped = load_wrapped_artifact(self.out_dir)
        except LaunchError:
            return None
        artifact = wrapped.artifact
        with self._extract() as source:
            digest = source.digest
        if (
            artifact.name != self.manifest.name
            or artifact.fingerprint != self.manifest.fingerprint
            or artifact.platform != self.config.platform
            or artifact.profile != self.config.profile
            or artifact.source_digest != digest
            or wrapped.environment != self.runtime_environment()
            or not artifact.executable.is_file()
        ):
            return None
        return wrapped

    def run(self, args: Sequence[str] = ()) -> int:
        """Build the package if its output is stale, then run it.

        Returns
        -------
        int
            The exit code of the executable.
        """
        wrapped = self._up_to_date()
        if wrapped is None:
            wrapped = self.build()
        else:
            logger.info("%s is up to date", wrapped.artifact.executable)
        return launch(wrapped, args)

    def workspace(self, checks: Optional[Sequence[str]] = None) -> Workspace:
        return provision_workspace(self.config, self.toolchain, checks)

    def develop(self, command: Optional[str] = None) -> int:
        """Enter the development workspace and return the session's exit code."""
        return enter_workspace(self.workspace(), command)
