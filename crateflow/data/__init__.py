"""Data layer with strongly-typed pydantic records for crateflow."""

from .artifact import BuiltArtifact, EnvironmentVariableSet, WrappedArtifact
from .cache import CacheKey, DependencyCacheEntry
from .check import CheckReport, CheckResult, CheckStatus
from .json_codec import load_json_file, save_json_file
from .manifest import (
    LOCK_FILE_NAME,
    MANIFEST_FILE_NAME,
    LockedGraph,
    LockedPackage,
    ProjectManifest,
    load_project_manifest,
    parse_lockfile,
)
from .source import SourceTree

__all__ = [
    # Manifest types
    "MANIFEST_FILE_NAME",
    "LOCK_FILE_NAME",
    "LockedPackage",
    "LockedGraph",
    "ProjectManifest",
    "load_project_manifest",
    "parse_lockfile",
    # Source types
    "SourceTree",
    # Cache types
    "CacheKey",
    "DependencyCacheEntry",
    # Artifact types
    "BuiltArtifact",
    "EnvironmentVariableSet",
    "WrappedArtifact",
    # Check types
    "CheckStatus",
    "CheckResult",
    "CheckReport",
    # JSON functions
    "save_json_file",
    "load_json_file",
]
