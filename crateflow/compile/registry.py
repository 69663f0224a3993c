"""Toolchain registry for dispatching projects to a compiler service."""

from __future__ import annotations

from typing import ClassVar, List, Optional, Type

from crateflow.data import ProjectManifest
from crateflow.errors import BuildError

from .toolchain import Toolchain
from .toolchains import CargoToolchain

_TOOLCHAIN_PRIORITY: List[Type[Toolchain]] = [CargoToolchain]
"""Toolchain types in priority order for automatic selection."""


class ToolchainRegistry:
    """Central registry of available toolchains.

    The registry selects the first toolchain that reports it can build a given project.
    Use :meth:`get_instance` to obtain the shared registry built from the toolchains
    installed on this machine, or construct one directly to inject a custom toolchain.
    """

    _instance: ClassVar[Optional["ToolchainRegistry"]] = None
    """Singleton instance of the ToolchainRegistry."""

    _toolchains: List[Toolchain]
    """List of available toolchains in priority order."""

    def __init__(self, toolchains: List[Toolchain]) -> None:
        """Initialize the registry with a list of toolchains.

        Parameters
        ----------
        toolchains : List[Toolchain]
            Toolchain instances in priority order. May be empty, in which case every
            selection fails with a BuildError.
        """
        self._toolchains = list(toolchains)

    @classmethod
    def get_instance(cls) -> "ToolchainRegistry":
        """Get the singleton registry instance.

        On first call, this instantiates every toolchain type whose ``is_available()``
        returns True, in priority order. Subsequent calls return the same instance.

        Returns
        -------
        ToolchainRegistry
            The shared registry instance.
        """
        if cls._instance is None:
            toolchains = [t() for t in _TOOLCHAIN_PRIORITY if t.is_available()]
            cls._instance = ToolchainRegistry(toolchains)
        return cls._instance

    def select(self, manifest: ProjectManifest) -> Toolchain:
        """Select the toolchain for a project.

        Parameters
        ----------
        manifest : ProjectManifest
            The project to build.

        Returns
        -------
        Toolchain
            The first registered toolchain that can build the project.

        Raises
        ------
        BuildError
            If no registered toolchain can build the project.
        """
        for toolchain in self._toolchains:
            if toolchain.can_build(manifest):
                return toolchain
        raise BuildError(
            f"No available toolchain can build '{manifest.name}' "
            f"(from {manifest.manifest_path.name})"
        )
