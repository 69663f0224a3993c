from crateflow.compile import (
    DependencyCache,
    InMemoryDependencyCache,
    LocalDependencyCache,
    Toolchain,
    ToolchainRegistry,
)
from crateflow.config import BuildConfig, merge_build_config
from crateflow.data import (
    BuiltArtifact,
    CacheKey,
    CheckReport,
    CheckResult,
    CheckStatus,
    DependencyCacheEntry,
    EnvironmentVariableSet,
    LockedGraph,
    LockedPackage,
    ProjectManifest,
    SourceTree,
    WrappedArtifact,
    load_project_manifest,
)
from crateflow.errors import (
    BuildError,
    ConfigError,
    CrateflowError,
    DependencyBuildError,
    FingerprintMismatchError,
    LaunchError,
    ManifestError,
    SourceBuildError,
    ToolchainError,
)
from crateflow.logging import configure_logging, get_logger
from crateflow.pipeline import Pipeline

__all__ = [
    # Main classes
    "Pipeline",
    "BuildConfig",
    "merge_build_config",
    # Toolchain and cache
    "Toolchain",
    "ToolchainRegistry",
    "DependencyCache",
    "LocalDependencyCache",
    "InMemoryDependencyCache",
    # Data types
    "LockedPackage",
    "LockedGraph",
    "ProjectManifest",
    "load_project_manifest",
    "SourceTree",
    "CacheKey",
    "DependencyCacheEntry",
    "BuiltArtifact",
    "EnvironmentVariableSet",
    "WrappedArtifact",
    "CheckStatus",
    "CheckResult",
    "CheckReport",
    # Errors
    "CrateflowError",
    "ConfigError",
    "ManifestError",
    "BuildError",
    "DependencyBuildError",
    "SourceBuildError",
    "ToolchainError",
    "FingerprintMismatchError",
    "LaunchError",
    # Logging
    "configure_logging",
    "get_logger",
]
