"""Error taxonomy of the build pipeline.

Every error carries the name of the pipeline stage that raised it, so the CLI can report
which stage failed without inspecting the exception type.
"""

from __future__ import annotations

from typing import ClassVar


class CrateflowError(RuntimeError):
    """Base class of all fatal pipeline errors."""

    stage: ClassVar[str] = "pipeline"
    """The pipeline stage reported to the user when this error aborts a command."""


class ConfigError(CrateflowError):
    """Raised when build configuration layers cannot be merged or validated."""

    stage = "config"


class ManifestError(CrateflowError):
    """Raised when the project manifest or lockfile is missing or malformed."""

    stage = "manifest"


class BuildError(CrateflowError):
    """Raised when a toolchain fails to compile its input."""

    stage = "build"


class ToolchainError(BuildError):
    """Raised when a toolchain command cannot be run at all (missing executable, timeout)."""


class DependencyBuildError(BuildError):
    """Raised when the dependencies-only build fails. No cache entry is persisted."""

    stage = "dependencies"


class SourceBuildError(BuildError):
    """Raised when the project's own source fails to build against a valid cache entry."""

    stage = "package"


class FingerprintMismatchError(CrateflowError):
    """Raised when a cache entry does not belong to the manifest's dependency graph."""

    stage = "cache"


class LaunchError(CrateflowError):
    """Raised when a wrapped artifact or workspace shell cannot be started."""

    stage = "run"
