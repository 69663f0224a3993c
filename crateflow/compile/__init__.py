"""Compiler subsystem package.

This package turns a filtered source snapshot into build outputs. It includes:

- Toolchain: Abstract base class of the opaque compiler service
- ToolchainRegistry: Selects the toolchain that can build a project
- DependencyCache: Get-or-build store of dependencies-only builds, keyed by fingerprint
- DependencyBuilder: Resolves the cache entry of a project, compiling on a miss
- PackageBuilder: Builds the project against a matching cache entry

The typical workflow is:

1. Select a toolchain: ``toolchain = ToolchainRegistry.get_instance().select(manifest)``
2. Resolve dependencies: ``entry = DependencyBuilder(toolchain, cache).resolve(manifest, src, cfg)``
3. Build: ``artifact = PackageBuilder(toolchain).build(src, manifest, entry, cfg)``
"""

from .cache import DependencyCache, InMemoryDependencyCache, LocalDependencyCache
from .deps_builder import DependencyBuilder, make_cache_key
from .package_builder import PackageBuilder, scratch_target_dir, verify_cache_entry
from .registry import ToolchainRegistry
from .toolchain import Toolchain, ToolResult

__all__ = [
    "Toolchain",
    "ToolResult",
    "ToolchainRegistry",
    "DependencyCache",
    "LocalDependencyCache",
    "InMemoryDependencyCache",
    "DependencyBuilder",
    "make_cache_key",
    "PackageBuilder",
    "scratch_target_dir",
    "verify_cache_entry",
]
